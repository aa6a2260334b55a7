"""
Gateway configuration.

All settings have working defaults for a local development node. Values
can come from a dict (e.g. a parsed JSON file) or from ETHGATT_*
environment variables; pydantic coerces raw values to the field types
and __post_init__ checks their ranges.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, fields
from typing import Any

from pydantic import TypeAdapter

from ethgatt.dispatcher import DEFAULT_AUTHORITY_METHOD
from ethgatt.send_queue import DEFAULT_PACKET_SIZE
from ethgatt.sessions import DEFAULT_SESSION_TTL_S
from ethgatt.watcher import DEFAULT_POLL_INTERVAL_S


@dataclass(frozen=True)
class GatewayConfig:
    """
    Immutable gateway settings.

    Attributes:
        rpc_url: Ledger JSON-RPC endpoint.
        rpc_timeout_s: HTTP timeout for each RPC call.
        sessions_db: SQLite path for sessions (":memory:" = ephemeral).
        contracts_db: SQLite path for contract records.
        session_ttl_s: Session lifetime.
        pin_rotation_s: Seconds between pin rotations.
        mining_check_interval_s: Watcher receipt poll period.
        auth_timeout_s: Watcher timeout per phase (None = wait forever).
        packet_size: Send queue packet size (transport MTU payload).
        authority_key: Private key of the authority account. Never logged.
        authority_method: Solidity signature of the authority call.
        authority_gas: Fixed gas limit for authority calls (None = estimate).
    """

    rpc_url: str = "http://localhost:8545"
    rpc_timeout_s: float = 30.0
    sessions_db: str = ":memory:"
    contracts_db: str = ":memory:"
    session_ttl_s: int = DEFAULT_SESSION_TTL_S
    pin_rotation_s: float = 300.0
    mining_check_interval_s: float = DEFAULT_POLL_INTERVAL_S
    auth_timeout_s: float | None = None
    packet_size: int = DEFAULT_PACKET_SIZE
    authority_key: str | None = None
    authority_method: str = DEFAULT_AUTHORITY_METHOD
    authority_gas: int | None = None

    def __post_init__(self) -> None:
        """Validate settings."""
        if not self.rpc_url.startswith(("http://", "https://")):
            raise ValueError(f"rpc_url must be an http(s) URL, got: {self.rpc_url!r}")
        if self.rpc_timeout_s <= 0:
            raise ValueError("rpc_timeout_s must be positive")
        if self.session_ttl_s < 1:
            raise ValueError("session_ttl_s must be at least 1")
        if self.pin_rotation_s <= 0:
            raise ValueError("pin_rotation_s must be positive")
        if self.mining_check_interval_s <= 0:
            raise ValueError("mining_check_interval_s must be positive")
        if self.auth_timeout_s is not None and self.auth_timeout_s <= 0:
            raise ValueError("auth_timeout_s must be positive if specified")
        if self.packet_size < 1:
            raise ValueError("packet_size must be at least 1")
        if self.authority_gas is not None and self.authority_gas < 21000:
            raise ValueError("authority_gas must be at least 21000 if specified")
        if "(" not in self.authority_method or not self.authority_method.endswith(")"):
            raise ValueError(f"Invalid authority_method: {self.authority_method!r}")

    def __repr__(self) -> str:
        key = None if self.authority_key is None else "***"
        return (
            f"GatewayConfig(rpc_url={self.rpc_url!r}, "
            f"sessions_db={self.sessions_db!r}, contracts_db={self.contracts_db!r}, "
            f"authority_key={key})"
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> GatewayConfig:
        """
        Create from a mapping, coercing values to the field types.

        Numeric strings become numbers ("30" → 30); a value that does not
        fit its field ("12.5" for an int, "ten" for a float) is rejected.

        Raises:
            ValueError: On unknown keys. pydantic.ValidationError (also a
                ValueError) on values that cannot be coerced or fail
                validation.
        """
        unknown = set(data) - {f.name for f in fields(cls)}
        if unknown:
            raise ValueError(f"Unknown config keys: {sorted(unknown)}")
        return _ADAPTER.validate_python(dict(data))

    @classmethod
    def from_env(
        cls,
        prefix: str = "ETHGATT_",
        environ: Mapping[str, str] | None = None,
    ) -> GatewayConfig:
        """
        Create from environment variables.

        Each field reads ``<prefix><FIELD_NAME>``, e.g. ETHGATT_RPC_URL.
        An empty value means None, which only optional fields accept.
        """
        env = os.environ if environ is None else environ
        data: dict[str, Any] = {}
        for f in fields(cls):
            if (raw := env.get(prefix + f.name.upper())) is not None:
                data[f.name] = raw or None
        return cls.from_dict(data)


_ADAPTER: TypeAdapter[GatewayConfig] = TypeAdapter(GatewayConfig)
