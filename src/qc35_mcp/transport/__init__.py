"""Transport layer: RFCOMM byte stream to the headset."""

from .rfcomm_connection import RFCOMM_CHANNEL, RFCOMMConnection
