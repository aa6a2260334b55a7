"""
Result codes returned to the transport.

Codes travel as the single-byte result of a GATT write/read. Success and
UNLIKELY_ERROR reuse the ATT protocol values; the gateway's own errors
sit in the ATT application error range (0x80-0x9F).

The names are part of the wire contract and must not change.
"""

from enum import IntEnum


class ResultCode(IntEnum):
    """Closed set of result codes delivered through ``respond``."""

    RESULT_SUCCESS = 0x00
    UNLIKELY_ERROR = 0x0E
    INVALID_JSON_IN_REQUEST = 0x80
    INVALID_TX_HASH = 0x81
    NO_SIGNED_MSG_IN_REQUEST = 0x82
    INVALID_CALL_DATA = 0x83
    INSUFFICIENT_GAS = 0x84
    INVALID_TX_SENDER_ADDRESS = 0x85
    NO_TX_DB_ERR = 0x86


# End-of-stream marker notified once after the last queued packet.
EOF = b"EOF"
