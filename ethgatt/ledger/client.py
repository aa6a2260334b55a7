"""
Ledger client protocol — the network boundary.

Defines the interface that the dispatcher and watcher depend on, not a
concrete implementation. This keeps request handling testable and keeps
JSON-RPC details out of the gateway logic.

Concrete implementations:
    - JsonRpcClient (Ethereum JSON-RPC over an injectable transport)
    - FakeLedger (tests)

Lookups return None for "not found"; node-side errors raise LedgerError.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, Sequence, runtime_checkable


# =========================================================================
# Result types
# =========================================================================


@dataclass(frozen=True)
class TxInfo:
    """A transaction as known to the node.

    Attributes:
        hash: 0x-prefixed transaction hash.
        block_number: Block the tx was mined in. None while pending.
        nonce: Sender nonce.
        gas: Gas limit supplied by the sender.
    """

    hash: str
    block_number: int | None
    nonce: int
    gas: int

    def to_wire(self) -> dict[str, Any]:
        """Payload notified by get_tx_status."""
        return {"blockNumber": self.block_number, "nonce": self.nonce, "gas": self.gas}


@dataclass(frozen=True)
class TxReceipt:
    """Receipt of a mined transaction.

    Attributes:
        hash: 0x-prefixed transaction hash.
        block_number: Block the tx was mined in.
        status: 1 on success, 0 if the execution reverted. None for
            pre-Byzantium receipts that carry no status.
        gas_used: Gas consumed.
        contract_address: Created contract, for deployments.
    """

    hash: str
    block_number: int
    status: int | None = None
    gas_used: int | None = None
    contract_address: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status != 0


# =========================================================================
# Protocol
# =========================================================================


@runtime_checkable
class LedgerClient(Protocol):
    """Interface for ledger operations used by the gateway.

    Methods are async because network I/O is inherently asynchronous.
    """

    async def get_transaction(self, tx_hash: str) -> TxInfo | None:
        """Look up a transaction by hash. None if unknown to the node."""
        ...

    async def get_transaction_receipt(self, tx_hash: str) -> TxReceipt | None:
        """Receipt of a mined transaction. None while pending or unknown."""
        ...

    async def send_raw_transaction(self, raw_tx: bytes) -> str:
        """Submit a signed transaction. Returns its 0x-prefixed hash."""
        ...

    async def call(self, to: str, data: str) -> str:
        """Execute a read-only call. Returns the 0x-prefixed result."""
        ...

    async def get_block_number(self) -> int:
        """Current block height."""
        ...

    async def get_code(self, address: str) -> str:
        """Deployed bytecode at ``address`` ("0x" if none)."""
        ...

    async def sign_and_send_authority_call(
        self,
        contract_address: str,
        method: str,
        args: Sequence[Any],
    ) -> str:
        """Sign a contract call as the authority and submit it.

        Args:
            contract_address: Target contract.
            method: Solidity signature, e.g. "verifyPresence(address,uint64)".
            args: Positional arguments matching the signature.

        Returns:
            0x-prefixed hash of the submitted transaction.
        """
        ...
