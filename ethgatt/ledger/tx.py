"""
Raw transaction inspection and contract-call encoding.

Pure helpers, no network:
    - parse_raw_transaction() decodes a signed legacy, EIP-2930 or
      EIP-1559 envelope far enough to check gas and recover the sender.
    - intrinsic_gas() is the minimum gas the chain charges before any
      execution; a tx whose gas limit is below it can never be mined.
    - encode_call() builds calldata from a Solidity method signature.

Envelope layouts (RLP list after the optional type byte):
    legacy: [nonce, gasPrice, gas, to, value, data, v, r, s]
    0x01:   [chainId, nonce, gasPrice, gas, to, value, data, accessList, y, r, s]
    0x02:   [chainId, nonce, maxPriorityFee, maxFee, gas, to, value, data, accessList, y, r, s]
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Sequence

import rlp
from eth_abi import encode
from eth_account import Account
from eth_utils import keccak, to_checksum_address
from rlp.exceptions import DecodingError

from ethgatt.ledger.errors import RawTransactionError

# Gas schedule (post-Shanghai).
TX_GAS = 21000
TX_CREATE_GAS = 53000
TX_DATA_ZERO_GAS = 4
TX_DATA_NONZERO_GAS = 16
ACCESS_LIST_ADDRESS_GAS = 2400
ACCESS_LIST_STORAGE_KEY_GAS = 1900
INITCODE_WORD_GAS = 2

# (nonce, gas, to, value, data, access_list) positions per envelope type.
_LAYOUTS: dict[int, tuple[int, int, int, int, int, int | None, int]] = {
    # type: (nonce, gas, to, value, data, access_list, item_count)
    0: (0, 2, 3, 4, 5, None, 9),
    1: (1, 3, 4, 5, 6, 7, 11),
    2: (1, 4, 5, 6, 7, 8, 12),
}

_METHOD_RE = re.compile(r"^([A-Za-z_][A-Za-z0-9_]*)\(([A-Za-z0-9_,\[\]]*)\)$")
_HEX_RE = re.compile(r"^0x([0-9a-fA-F]{2})+$")


def _to_bytes(raw: str | bytes) -> bytes:
    if isinstance(raw, (bytes, bytearray)):
        return bytes(raw)
    if not isinstance(raw, str) or not _HEX_RE.match(raw):
        raise RawTransactionError("raw transaction must be 0x-prefixed hex")
    return bytes.fromhex(raw[2:])


def _int(value: Any) -> int:
    if not isinstance(value, bytes):
        raise RawTransactionError("expected an RLP string, got a list")
    return int.from_bytes(value, "big")


@dataclass(frozen=True)
class RawTransaction:
    """Decoded view of a signed transaction.

    Attributes:
        raw: The signed envelope bytes.
        tx_type: 0 (legacy), 1 (EIP-2930) or 2 (EIP-1559).
        nonce: Sender nonce.
        gas: Gas limit.
        to: Checksummed recipient, None for contract creation.
        value: Wei transferred.
        data: Calldata or initcode.
        access_list: (address, storage key count) pairs.
    """

    raw: bytes
    tx_type: int
    nonce: int
    gas: int
    to: str | None
    value: int
    data: bytes
    access_list: tuple[tuple[str, int], ...] = field(default_factory=tuple)

    @property
    def hash(self) -> str:
        """0x-prefixed keccak256 of the envelope (the tx hash)."""
        return "0x" + keccak(self.raw).hex()

    @property
    def is_creation(self) -> bool:
        return self.to is None

    def intrinsic_gas(self) -> int:
        return intrinsic_gas(self.data, self.is_creation, self.access_list)

    def has_sufficient_gas(self) -> bool:
        """True if the gas limit covers the intrinsic cost."""
        return self.gas >= self.intrinsic_gas()

    def sender(self) -> str:
        """Recover the checksummed signer address.

        Raises:
            RawTransactionError: If the signature does not recover.
        """
        try:
            return str(Account.recover_transaction(self.raw))
        except Exception as exc:
            raise RawTransactionError(f"cannot recover sender: {exc}") from exc


def intrinsic_gas(
    data: bytes,
    is_creation: bool = False,
    access_list: Sequence[tuple[str, int]] = (),
) -> int:
    """Minimum gas charged for a transaction before execution."""
    zeros = data.count(0)
    gas = TX_CREATE_GAS if is_creation else TX_GAS
    gas += zeros * TX_DATA_ZERO_GAS
    gas += (len(data) - zeros) * TX_DATA_NONZERO_GAS
    if is_creation:
        gas += ((len(data) + 31) // 32) * INITCODE_WORD_GAS
    for _address, key_count in access_list:
        gas += ACCESS_LIST_ADDRESS_GAS + key_count * ACCESS_LIST_STORAGE_KEY_GAS
    return gas


def parse_raw_transaction(raw: str | bytes) -> RawTransaction:
    """Decode a signed transaction envelope.

    Args:
        raw: Envelope bytes or 0x-prefixed hex.

    Raises:
        RawTransactionError: On malformed hex, RLP, or unsupported type.
    """
    envelope = _to_bytes(raw)
    if not envelope:
        raise RawTransactionError("empty raw transaction")

    first = envelope[0]
    if first >= 0xC0:
        tx_type, body = 0, envelope
    elif first in (1, 2):
        tx_type, body = first, envelope[1:]
    else:
        raise RawTransactionError(f"unsupported transaction type: {first:#04x}")

    try:
        items = rlp.decode(body)
    except DecodingError as exc:
        raise RawTransactionError(f"invalid RLP: {exc}") from exc

    nonce_i, gas_i, to_i, value_i, data_i, access_i, count = _LAYOUTS[tx_type]
    if not isinstance(items, list) or len(items) != count:
        raise RawTransactionError(
            f"type {tx_type} transaction must have {count} fields"
        )

    to_raw = items[to_i]
    if not isinstance(to_raw, bytes) or len(to_raw) not in (0, 20):
        raise RawTransactionError("recipient must be empty or 20 bytes")
    data = items[data_i]
    if not isinstance(data, bytes):
        raise RawTransactionError("data must be an RLP string")

    access_list: list[tuple[str, int]] = []
    if access_i is not None:
        entries = items[access_i]
        if not isinstance(entries, list):
            raise RawTransactionError("access list must be an RLP list")
        for entry in entries:
            if (
                not isinstance(entry, list)
                or len(entry) != 2
                or not isinstance(entry[0], bytes)
                or not isinstance(entry[1], list)
            ):
                raise RawTransactionError("malformed access list entry")
            access_list.append(("0x" + entry[0].hex(), len(entry[1])))

    return RawTransaction(
        raw=envelope,
        tx_type=tx_type,
        nonce=_int(items[nonce_i]),
        gas=_int(items[gas_i]),
        to=str(to_checksum_address(to_raw)) if to_raw else None,
        value=_int(items[value_i]),
        data=data,
        access_list=tuple(access_list),
    )


def encode_call(method: str, args: Sequence[Any]) -> str:
    """Encode calldata for a Solidity method signature.

    Args:
        method: e.g. "verifyPresence(address,uint64)". Tuple types are
            not supported.
        args: Positional arguments for the ABI types.

    Returns:
        0x-prefixed calldata (4-byte selector + ABI-encoded args).

    Raises:
        ValueError: On a malformed signature or arity mismatch.
    """
    match = _METHOD_RE.match(method.replace(" ", ""))
    if match is None:
        raise ValueError(f"invalid method signature: {method!r}")
    canonical = f"{match.group(1)}({match.group(2)})"
    types = [t for t in match.group(2).split(",") if t]
    if len(types) != len(args):
        raise ValueError(
            f"{canonical} takes {len(types)} arguments, got {len(args)}"
        )
    selector = keccak(text=canonical)[:4]
    return "0x" + (selector + encode(types, list(args))).hex()
