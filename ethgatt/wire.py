"""
Wire JSON helpers.

Every request reaching the gateway is JSON text carried as bytes, and
every notify payload is the UTF-8 bytes of a JSON value. Encoding is
compact (no whitespace) so packets stay small on a low-MTU link; key
order is preserved rather than sorted.
"""

import json
from typing import Any

# Sentinel sent in place of a missing tx, record or lookup result.
NULL_PAYLOAD = b'"null"'


def decode_request(data: bytes | bytearray | str | None) -> Any:
    """Parse a request buffer into a JSON value.

    Raises:
        ValueError: If the buffer is empty, not UTF-8, or not JSON.
            ``json.JSONDecodeError`` is a ValueError subclass.
    """
    if data is None:
        raise ValueError("empty request")
    if isinstance(data, (bytes, bytearray)):
        data = bytes(data).decode("utf-8")
    if not data:
        raise ValueError("empty request")
    return json.loads(data)


def encode_payload(obj: Any) -> bytes:
    """Serialize a JSON value to compact UTF-8 bytes for notify."""
    return json.dumps(
        obj,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    ).encode("utf-8")
