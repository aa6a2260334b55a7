"""
Short-lived sessions binding a random id to a verified account.

A session is opened after a successful pin challenge and lets the
client submit signed transactions (send_tx) without re-signing the pin.

Invariants:
    - session_id is exactly SESSION_ID_LENGTH base62 characters, unique.
    - expires (epoch seconds) is strictly later than creation time.
    - Sessions are immutable; expiry is enforced lazily at lookup.
"""

from __future__ import annotations

import secrets
import string
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from ethgatt.storage import DocumentStore

SESSION_ID_LENGTH = 10
DEFAULT_SESSION_TTL_S = 600

_ID_ALPHABET = string.ascii_letters + string.digits


@dataclass(frozen=True)
class Session:
    """An open session.

    Attributes:
        session_id: Random 10-character id handed to the client.
        account: Checksummed account recovered from the pin signature.
        expires: Expiry as integer epoch seconds.
    """

    session_id: str
    account: str
    expires: int

    def to_doc(self) -> dict[str, Any]:
        return {
            "_id": self.session_id,
            "sessionId": self.session_id,
            "account": self.account,
            "expires": self.expires,
        }

    @classmethod
    def from_doc(cls, doc: dict[str, Any]) -> Session:
        return cls(
            session_id=doc["sessionId"],
            account=doc["account"],
            expires=int(doc["expires"]),
        )

    def to_wire(self) -> dict[str, Any]:
        """Payload notified to the client after new_session."""
        return {"sessionId": self.session_id, "expires": self.expires}


class SessionStore:
    """Persistent session records keyed by session id.

    Args:
        db_path: SQLite path for the "sessions" collection.
        ttl_s: Session lifetime in seconds. Must be positive.
        clock: Callable returning epoch seconds. Inject for tests.
    """

    def __init__(
        self,
        db_path: str | Path = ":memory:",
        *,
        ttl_s: int = DEFAULT_SESSION_TTL_S,
        clock: Callable[[], float] | None = None,
    ) -> None:
        if ttl_s <= 0:
            raise ValueError(f"ttl_s must be positive, got: {ttl_s}")
        self._docs = DocumentStore("sessions", db_path)
        self._ttl_s = ttl_s
        self._clock = clock or time.time

    def _new_id(self) -> str:
        while True:
            session_id = "".join(
                secrets.choice(_ID_ALPHABET) for _ in range(SESSION_ID_LENGTH)
            )
            if self._docs.get(session_id) is None:
                return session_id

    def start(self, session: dict[str, Any]) -> Session:
        """Open a session for ``session["account"]``.

        Raises:
            ValueError: If no account is given.
        """
        account = session.get("account")
        if not isinstance(account, str) or not account:
            raise ValueError("session requires an account")

        now = self._clock()
        record = Session(
            session_id=self._new_id(),
            account=account,
            expires=int(now) + self._ttl_s,
        )
        self._docs.put(record.to_doc())
        return record

    def lookup(self, session_id: str) -> Session | None:
        """Return a live session, or None if unknown or expired.

        Expired sessions are deleted on the way out.
        """
        doc = self._docs.get(session_id)
        if doc is None:
            return None
        record = Session.from_doc(doc)
        if record.expires <= self._clock():
            self._docs.remove(session_id)
            return None
        return record

    def destroy_all(self) -> None:
        """Drop every session (administrative reset)."""
        self._docs.destroy()

    def count(self) -> int:
        return self._docs.count()
