"""
ethgatt: Ethereum ledger gateway behind a BLE GATT-style request surface.

Every request is:
- decoded from JSON and checked against a closed schema
- authenticated by a signature over the rotating pin (where required)
- answered with a single result code, plus notify payloads

Long-running ledger work (mining, the auth/verify chain) continues in the
background and is observed through later requests.
"""

__version__ = "0.1.0"

from ethgatt.codes import EOF, ResultCode
from ethgatt.config import GatewayConfig
from ethgatt.contracts import AuthStatus, ContractRecord, ContractRecordStore
from ethgatt.dispatcher import OPERATIONS, RequestDispatcher
from ethgatt.errors import (
    GatewayError,
    InvalidRequestError,
    NoSignedMessageError,
    StatusTransitionError,
)
from ethgatt.pin import PinChallenge
from ethgatt.send_queue import SendQueue, chunk
from ethgatt.service import CHARACTERISTICS, Characteristic, Gateway, characteristic
from ethgatt.sessions import Session, SessionStore
from ethgatt.storage import DocumentStore
from ethgatt.watcher import TxLifecycleWatcher
from ethgatt.wire import NULL_PAYLOAD

__all__ = [
    "CHARACTERISTICS",
    "EOF",
    "NULL_PAYLOAD",
    "OPERATIONS",
    "AuthStatus",
    "Characteristic",
    "ContractRecord",
    "ContractRecordStore",
    "DocumentStore",
    "Gateway",
    "GatewayConfig",
    "GatewayError",
    "InvalidRequestError",
    "NoSignedMessageError",
    "PinChallenge",
    "RequestDispatcher",
    "ResultCode",
    "SendQueue",
    "Session",
    "SessionStore",
    "StatusTransitionError",
    "TxLifecycleWatcher",
    "characteristic",
    "chunk",
]
