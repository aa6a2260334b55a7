"""
Pin challenge — the gateway's lightweight authentication handshake.

The gateway publishes a rotating pin. A client proves it holds an
account key by signing keccak256(pin); the gateway recovers the signer
address from that signature.

Two signature encodings are accepted, each with its own signing scheme:
    - web3 style: "0x" + 130 hex chars (r || s || v, 65 bytes), made by
      eth_sign / personal_sign, so keccak256(pin) is recovered as an
      EIP-191 personal message.
    - wallet style: {"v": ..., "r": ..., "s": ...} as produced by
      lightwallet signMsg, a raw ecsign over keccak256(pin) with no
      message prefix. r and s may be hex strings, integers, or
      serialized byte buffers ({"type": "Buffer", "data": [...]}).

verify() only decides whether the input *is* a signature. A valid
signature by the wrong key recovers some other address; callers detect
that when the recovered account has no session or contract record.
"""

from __future__ import annotations

import json
import re
import secrets
import string
from typing import Any

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_keys import keys
from eth_utils import keccak

from ethgatt.errors import NoSignedMessageError

PIN_LENGTH = 32
_PIN_ALPHABET = string.ascii_letters + string.digits

_HEX_SIGNATURE_RE = re.compile(r"^0x[0-9a-fA-F]{130}$")
_HEX_WORD_RE = re.compile(r"^(0x)?[0-9a-fA-F]{1,64}$")


def generate_pin(length: int = PIN_LENGTH) -> str:
    """Random base62 pin."""
    return "".join(secrets.choice(_PIN_ALPHABET) for _ in range(length))


def _to_int(value: Any, name: str) -> int:
    """Coerce one signature component to an integer."""
    if isinstance(value, bool):
        raise NoSignedMessageError(f"{name} must not be a boolean")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        if not _HEX_WORD_RE.match(value):
            raise NoSignedMessageError(f"{name} is not a hex word")
        return int(value, 16)
    if isinstance(value, dict) and value.get("type") == "Buffer":
        data = value.get("data")
        if (
            isinstance(data, list)
            and 0 < len(data) <= 32
            and all(isinstance(b, int) and 0 <= b <= 255 for b in data)
        ):
            return int.from_bytes(bytes(data), "big")
    raise NoSignedMessageError(f"{name} has an unsupported encoding")


class PinChallenge:
    """Holds the current pin and verifies signatures over it.

    Args:
        pin: Initial pin. A random one is generated if omitted.
    """

    def __init__(self, pin: str | None = None) -> None:
        self._pin = pin if pin is not None else generate_pin()

    @property
    def pin(self) -> str:
        return self._pin

    def current_pin(self) -> bytes:
        """The current pin as bytes, as sent to clients."""
        return self._pin.encode("utf-8")

    def pin_hash(self) -> bytes:
        """keccak256 of the current pin (the message clients sign)."""
        return keccak(text=self._pin)

    def rotate(self) -> str:
        """Replace the pin. Outstanding signatures stop verifying."""
        self._pin = generate_pin()
        return self._pin

    def verify(self, signed: Any) -> str:
        """Recover the account that signed the current pin hash.

        Args:
            signed: Parsed request value: a hex signature string, a
                {v, r, s} mapping, or a JSON string encoding either.

        Returns:
            Checksummed signer address.

        Raises:
            NoSignedMessageError: If ``signed`` is not a recoverable
                signature structure.
        """
        if isinstance(signed, str) and signed.lstrip().startswith("{"):
            try:
                signed = json.loads(signed)
            except ValueError as exc:
                raise NoSignedMessageError("signature object is not JSON") from exc

        if isinstance(signed, str):
            if not _HEX_SIGNATURE_RE.match(signed):
                raise NoSignedMessageError("not a 65-byte hex signature")
            message = encode_defunct(primitive=self.pin_hash())
            try:
                return str(Account.recover_message(
                    message, signature=bytes.fromhex(signed[2:])
                ))
            except Exception as exc:
                raise NoSignedMessageError(f"unrecoverable signature: {exc}") from exc

        if isinstance(signed, dict):
            missing = {"v", "r", "s"} - signed.keys()
            if missing:
                raise NoSignedMessageError(
                    f"signature missing fields: {sorted(missing)}"
                )
            v = _to_int(signed["v"], "v")
            # ecsign reports v as 27/28; recovery wants the parity bit.
            if v >= 27:
                v -= 27
            if v not in (0, 1):
                raise NoSignedMessageError(f"v out of range: {signed['v']!r}")
            vrs = (v, _to_int(signed["r"], "r"), _to_int(signed["s"], "s"))
            try:
                public_key = keys.Signature(vrs=vrs).recover_public_key_from_msg_hash(
                    self.pin_hash()
                )
                return str(public_key.to_checksum_address())
            except Exception as exc:
                raise NoSignedMessageError(f"unrecoverable signature: {exc}") from exc

        raise NoSignedMessageError(
            f"unsupported signature type: {type(signed).__name__}"
        )
