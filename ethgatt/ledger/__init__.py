"""
Ledger backend for the gateway.

Public API:

    Protocols (for dependency injection):
        - ``LedgerClient`` — network boundary (queries, calls, submission).
        - ``AuthoritySigner`` — secrets boundary (signs authority txs).
        - ``JsonRpcTransport`` — injectable HTTP transport.

    Result types:
        - ``TxInfo``, ``TxReceipt`` — client result types.
        - ``SignResult`` — signer result type.

    Pure helpers (no I/O):
        - ``parse_raw_transaction()`` / ``RawTransaction`` — decode a
          signed envelope, check gas, recover the sender.
        - ``intrinsic_gas()`` — minimum gas for a transaction.
        - ``encode_call()`` — calldata from a method signature.

    Errors:
        - ``LedgerError``, ``LedgerRpcError``, ``TransactionRejectedError``,
          ``RawTransactionError``, ``classify_rpc_error()``.

    Concrete implementations:
        - ``JsonRpcClient`` — Ethereum JSON-RPC LedgerClient.
        - ``HttpxTransport`` — default httpx-based transport.
        - ``LocalAccountSigner`` — eth-account key signer.
"""

from ethgatt.ledger.client import LedgerClient, TxInfo, TxReceipt
from ethgatt.ledger.errors import (
    LedgerError,
    LedgerRpcError,
    RawTransactionError,
    TransactionRejectedError,
    classify_rpc_error,
)
from ethgatt.ledger.jsonrpc_client import JsonRpcClient
from ethgatt.ledger.signer import AuthoritySigner, LocalAccountSigner, SignResult
from ethgatt.ledger.transport import HttpxTransport, JsonRpcTransport
from ethgatt.ledger.tx import (
    RawTransaction,
    encode_call,
    intrinsic_gas,
    parse_raw_transaction,
)

__all__ = [
    "AuthoritySigner",
    "HttpxTransport",
    "JsonRpcClient",
    "JsonRpcTransport",
    "LedgerClient",
    "LedgerError",
    "LedgerRpcError",
    "LocalAccountSigner",
    "RawTransaction",
    "RawTransactionError",
    "SignResult",
    "TransactionRejectedError",
    "TxInfo",
    "TxReceipt",
    "classify_rpc_error",
    "encode_call",
    "intrinsic_gas",
    "parse_raw_transaction",
]
