"""
Authority signer protocol — the secrets boundary.

The JSON-RPC client never sees the authority's private key. It hands an
unsigned transaction dict to the signer and submits the signed bytes it
gets back.

Concrete implementations:
    - LocalAccountSigner (eth-account key held in process)
    - FakeSigner (tests)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from eth_account import Account


@dataclass(frozen=True)
class SignResult:
    """Result of signing a transaction.

    Attributes:
        raw_transaction: Signed envelope bytes, ready for submission.
        tx_hash: 0x-prefixed hash of the signed transaction.
    """

    raw_transaction: bytes
    tx_hash: str


@runtime_checkable
class AuthoritySigner(Protocol):
    """Interface for signing authority transactions.

    Properties:
        address: Checksummed account of the authority.
    """

    @property
    def address(self) -> str:
        ...

    def sign(self, tx: dict[str, Any]) -> SignResult:
        """Sign a complete transaction dict (nonce, gas, chainId set).

        Raises:
            ValueError: If the transaction dict is malformed.
        """
        ...


class LocalAccountSigner:
    """Signs with a private key held in memory.

    Args:
        private_key: 0x-prefixed hex key. Never logged or returned.
    """

    def __init__(self, private_key: str) -> None:
        self._account = Account.from_key(private_key)

    @property
    def address(self) -> str:
        return str(self._account.address)

    def sign(self, tx: dict[str, Any]) -> SignResult:
        signed = self._account.sign_transaction(tx)
        return SignResult(
            raw_transaction=bytes(signed.raw_transaction),
            tx_hash="0x" + bytes(signed.hash).hex(),
        )

    def __repr__(self) -> str:
        return f"LocalAccountSigner(address={self.address!r})"
