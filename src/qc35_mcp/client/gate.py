"""Debounce gate for outgoing commands.

A user dragging a slider or toggling ANC repeatedly must not turn into
one RFCOMM write per input. Commands submitted within the cooldown
window are coalesced into a single pending request (last write wins)
that is sent once input has been idle for the full delay.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

from ..exceptions import TransportUnavailable
from ..protocol.commands import Command

logger = logging.getLogger(__name__)

DEBOUNCE_MS = 100


@dataclass(frozen=True)
class PendingRequest:
    """The one command waiting for the debounce timer."""

    command: Command
    payload: bytes = b""


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


class CommandGate:
    """Decides whether a command is sent now, later, or replaced.

    Args:
        send: Writes one command to the device.
        delay_ms: Cooldown window and debounce delay.
        clock: Returns monotonic time in milliseconds.
        timer_factory: Builds a startable, cancellable timer with the
            ``threading.Timer(interval, function, args)`` signature.
    """

    def __init__(
        self,
        send: Callable[[Command, bytes], object],
        delay_ms: int = DEBOUNCE_MS,
        clock: Callable[[], float] = _monotonic_ms,
        timer_factory: Callable[..., threading.Timer] = threading.Timer,
    ) -> None:
        self._send = send
        self._delay_ms = delay_ms
        self._clock = clock
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._pending: PendingRequest | None = None
        self._timer: threading.Timer | None = None
        self._generation = 0
        self._cooldown_until = 0.0

    @property
    def delay_ms(self) -> int:
        return self._delay_ms

    @property
    def pending(self) -> PendingRequest | None:
        with self._lock:
            return self._pending

    def submit(self, command: Command, payload: bytes = b"", force: bool = False) -> bool:
        """Send a command now or schedule it behind the cooldown.

        Returns:
            True if the command was written immediately, False if it was
            stored as the pending request.
        """
        if force:
            with self._lock:
                self._cooldown_until = self._clock() + self._delay_ms
            self._send(command, payload)
            return True

        with self._lock:
            now = self._clock()
            in_cooldown = now < self._cooldown_until
            self._cooldown_until = now + self._delay_ms

            if not in_cooldown:
                # A newer request supersedes anything still waiting
                self._disarm()
                self._send(command, payload)
                return True

            self._disarm()
            self._pending = PendingRequest(command, bytes(payload))
            self._generation += 1
            timer = self._timer_factory(
                self._delay_ms / 1000, self._fire, args=(self._generation,)
            )
            timer.daemon = True
            self._timer = timer
            timer.start()
            logger.debug(
                "Deferred %s for %d ms", command.name, self._delay_ms
            )
            return False

    def cancel(self) -> None:
        """Drop the pending request and cancel its timer."""
        with self._lock:
            self._disarm()
            self._generation += 1

    def _disarm(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._pending = None

    def _fire(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation or self._pending is None:
                return
            request = self._pending
            self._pending = None
            self._timer = None
            self._cooldown_until = self._clock() + self._delay_ms
            try:
                self._send(request.command, request.payload)
            except TransportUnavailable as e:
                logger.warning("Dropped deferred %s: %s", request.command.name, e)
