"""
Per-account contract records.

An authority registers a counterparty by writing a record keyed by the
counterparty's account: which authority vouches for it and which
deployed contract tracks its presence. The gateway then advances the
record's auth status as the authority and verify transactions mine.

Status transitions (enforced by update_status):
    UNSET → PENDING (auth tx submitted)
    PENDING → SUCCESS (auth tx mined)
    PENDING → FAILED (auth tx reverted or timed out)
    UNSET → SUCCESS or FAILED (outcome recorded without a pending step)
    any → PENDING (a new auth tx is submitted: re-arm)

Nothing moves backward: a status never returns to UNSET, and SUCCESS
and FAILED never turn into each other.

Records are never deleted by the request path.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import StrEnum
from pathlib import Path
from typing import Any

from eth_utils import is_address, to_checksum_address

from ethgatt.errors import StatusTransitionError
from ethgatt.storage import DocumentStore


class AuthStatus(StrEnum):
    """Auth/verification progress of a contract record."""

    UNSET = "unset"
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


def normalize_account(account: str) -> str:
    """Checksum an address so lookups are case-insensitive.

    Non-address keys are returned unchanged.
    """
    if is_address(account):
        return str(to_checksum_address(account))
    return account


@dataclass(frozen=True)
class ContractRecord:
    """A counterparty's contract registration.

    Attributes:
        id: Counterparty account (primary key).
        authority: Account allowed to sign the authority call.
        contract_address: Deployed contract the authority call targets.
        auth_status: Current AuthStatus.
        auth_tx_hash: Hash of the submitted authority tx, if any.
        verified_tx_hash: Hash of the mined verify tx, if any.
    """

    id: str
    authority: str | None = None
    contract_address: str | None = None
    auth_status: AuthStatus = AuthStatus.UNSET
    auth_tx_hash: str | None = None
    verified_tx_hash: str | None = None

    def to_doc(self) -> dict[str, Any]:
        return {
            "_id": self.id,
            "authority": self.authority,
            "contractAddress": self.contract_address,
            "authStatus": self.auth_status.value,
            "authTxHash": self.auth_tx_hash,
            "verifiedTxHash": self.verified_tx_hash,
        }

    @classmethod
    def from_doc(cls, doc: dict[str, Any]) -> ContractRecord:
        status = doc.get("authStatus") or AuthStatus.UNSET.value
        return cls(
            id=doc["_id"],
            authority=doc.get("authority"),
            contract_address=doc.get("contractAddress"),
            auth_status=AuthStatus(status),
            auth_tx_hash=doc.get("authTxHash"),
            verified_tx_hash=doc.get("verifiedTxHash"),
        )

    def status_view(self) -> dict[str, Any]:
        """Payload for get_verified_tx_hash. UNSET is reported as null."""
        return {
            "authStatus": (
                None if self.auth_status == AuthStatus.UNSET else self.auth_status.value
            ),
            "authTxHash": self.auth_tx_hash,
            "verifiedTxHash": self.verified_tx_hash,
        }


# Fields update_status() may touch.
_STATUS_FIELDS = frozenset({"auth_status", "auth_tx_hash", "verified_tx_hash"})

# Targets reachable from each status, besides staying put and re-arming
# to PENDING.
_FORWARD: dict[AuthStatus, frozenset[AuthStatus]] = {
    AuthStatus.UNSET: frozenset({AuthStatus.SUCCESS, AuthStatus.FAILED}),
    AuthStatus.PENDING: frozenset({AuthStatus.SUCCESS, AuthStatus.FAILED}),
    AuthStatus.SUCCESS: frozenset(),
    AuthStatus.FAILED: frozenset(),
}


def check_transition(current: AuthStatus, requested: AuthStatus) -> None:
    """Raise StatusTransitionError unless current → requested moves forward."""
    if requested in (current, AuthStatus.PENDING):
        return
    if requested not in _FORWARD[current]:
        raise StatusTransitionError(current.value, requested.value)


class ContractRecordStore:
    """Contract records keyed by account.

    Args:
        db_path: SQLite path for the "contracts" collection.
    """

    def __init__(self, db_path: str | Path = ":memory:") -> None:
        self._docs = DocumentStore("contracts", db_path)

    def get(self, account: str) -> ContractRecord | None:
        doc = self._docs.get(normalize_account(account))
        if doc is None:
            return None
        return ContractRecord.from_doc(doc)

    def put(self, record: ContractRecord) -> ContractRecord:
        """Create or fully replace a record."""
        record = replace(record, id=normalize_account(record.id))
        self._docs.put(record.to_doc())
        return record

    def update_status(self, account: str, **fields: Any) -> ContractRecord | None:
        """Merge status fields into an existing record.

        Args:
            account: Record key.
            **fields: Any of auth_status, auth_tx_hash, verified_tx_hash.

        Returns:
            The merged record, or None if no record exists (no-op).

        Raises:
            ValueError: On an unknown field name.
            StatusTransitionError: If auth_status would move backward.
        """
        unknown = set(fields) - _STATUS_FIELDS
        if unknown:
            raise ValueError(f"cannot update fields: {sorted(unknown)}")

        current = self.get(account)
        if current is None:
            return None

        if "auth_status" in fields:
            fields["auth_status"] = AuthStatus(fields["auth_status"])
            check_transition(current.auth_status, fields["auth_status"])
        merged = replace(current, **fields)
        self._docs.put(merged.to_doc())
        return merged

    def remove(self, account: str) -> bool:
        """Delete a record (administrative)."""
        return self._docs.remove(normalize_account(account))

    def destroy(self) -> None:
        """Drop every record (administrative)."""
        self._docs.destroy()
