"""
Ledger error types and JSON-RPC error classification.

Node errors are mapped coarsely: the gateway only needs to tell
"the chain refused this transaction" apart from everything else.
Unknown messages default to a generic LedgerRpcError rather than
guessing.
"""

from __future__ import annotations

from typing import Any

from ethgatt.errors import GatewayError


class LedgerError(GatewayError):
    """Base class for ledger-side failures."""


class LedgerRpcError(LedgerError):
    """The node answered with a JSON-RPC error object.

    Attributes:
        code: JSON-RPC error code (e.g. -32000).
        message: Node-supplied message.
    """

    def __init__(self, code: int | None, message: str) -> None:
        super().__init__(f"rpc error {code}: {message}")
        self.code = code
        self.message = message


class TransactionRejectedError(LedgerRpcError):
    """The node refused a submitted transaction (gas, nonce, funds)."""


class RawTransactionError(LedgerError, ValueError):
    """A raw transaction could not be decoded."""


# Substrings of geth/ganache/anvil rejection messages.
_REJECTION_MARKERS = (
    "intrinsic gas too low",
    "out of gas",
    "gas limit",
    "insufficient funds",
    "nonce too low",
    "nonce too high",
    "underpriced",
    "exceeds block gas limit",
    "invalid sender",
)


def classify_rpc_error(error: Any) -> LedgerRpcError:
    """Build the exception for a JSON-RPC ``error`` member.

    Args:
        error: The ``error`` value of a JSON-RPC response. Normally a
            dict with ``code`` and ``message``; anything else is
            stringified.

    Returns:
        TransactionRejectedError for known rejection messages,
        LedgerRpcError otherwise.
    """
    if isinstance(error, dict):
        code = error.get("code")
        message = str(error.get("message") or "unknown rpc error")
    else:
        code = None
        message = str(error)

    lowered = message.lower()
    for marker in _REJECTION_MARKERS:
        if marker in lowered:
            return TransactionRejectedError(code, message)
    return LedgerRpcError(code, message)
