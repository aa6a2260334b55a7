"""
Ethereum JSON-RPC client — real network implementation of LedgerClient.

Translates eth_* JSON-RPC responses into TxInfo/TxReceipt and plain
values. Uses an injectable transport (JsonRpcTransport) so the HTTP
layer can be swapped for test fakes without changing parsing logic.

No retry loops. A JSON-RPC ``error``
member becomes a LedgerRpcError (TransactionRejectedError for refused
submissions). Transport exceptions propagate unchanged.

Authority calls need an AuthoritySigner; without one,
sign_and_send_authority_call() raises LedgerError.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Any, Sequence

from eth_utils import to_checksum_address

from ethgatt.ledger.client import TxInfo, TxReceipt
from ethgatt.ledger.errors import LedgerError, classify_rpc_error
from ethgatt.ledger.signer import AuthoritySigner
from ethgatt.ledger.transport import HttpxTransport, JsonRpcTransport
from ethgatt.ledger.tx import encode_call

logger = logging.getLogger(__name__)

# Gas headroom applied to eth_estimateGas for authority calls.
_GAS_MARGIN_PERCENT = 20


def _quantity(value: Any) -> int | None:
    """Decode a JSON-RPC hex quantity ("0x1a") to int."""
    if value is None:
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.startswith("0x"):
        return int(value, 16)
    raise LedgerError(f"not a hex quantity: {value!r}")


class JsonRpcClient:
    """Ethereum JSON-RPC client implementing the LedgerClient protocol.

    Args:
        url: Node endpoint (e.g. "http://localhost:8545").
        transport: Injectable transport for HTTP POST. Defaults to
            HttpxTransport. Pass a FakeTransport for testing.
        signer: Authority signer for sign_and_send_authority_call().
        authority_gas: Fixed gas limit for authority calls. None means
            eth_estimateGas plus a margin.
    """

    def __init__(
        self,
        url: str,
        transport: JsonRpcTransport | None = None,
        *,
        signer: AuthoritySigner | None = None,
        authority_gas: int | None = None,
    ) -> None:
        self._url = url
        self._transport = transport or HttpxTransport()
        self._signer = signer
        self._authority_gas = authority_gas
        self._ids = itertools.count(1)
        self._chain_id: int | None = None
        self._nonce_lock = asyncio.Lock()
        self._next_nonce: int | None = None

    @property
    def url(self) -> str:
        """The JSON-RPC endpoint URL."""
        return self._url

    @property
    def transport(self) -> JsonRpcTransport:
        return self._transport

    async def _rpc(self, method: str, params: list[Any]) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": next(self._ids),
        }
        response = await self._transport.post_json(self._url, payload)
        if response.get("error") is not None:
            error = classify_rpc_error(response["error"])
            logger.debug("%s failed: %s", method, error)
            raise error
        return response.get("result")

    # -----------------------------------------------------------------
    # LedgerClient protocol methods
    # -----------------------------------------------------------------

    async def get_transaction(self, tx_hash: str) -> TxInfo | None:
        result = await self._rpc("eth_getTransactionByHash", [tx_hash])
        return _parse_transaction(result)

    async def get_transaction_receipt(self, tx_hash: str) -> TxReceipt | None:
        result = await self._rpc("eth_getTransactionReceipt", [tx_hash])
        return _parse_receipt(result)

    async def send_raw_transaction(self, raw_tx: bytes) -> str:
        result = await self._rpc("eth_sendRawTransaction", ["0x" + raw_tx.hex()])
        if not isinstance(result, str):
            raise LedgerError(f"eth_sendRawTransaction returned {result!r}")
        return result

    async def call(self, to: str, data: str) -> str:
        result = await self._rpc("eth_call", [{"to": to, "data": data}, "latest"])
        if not isinstance(result, str):
            raise LedgerError(f"eth_call returned {result!r}")
        return result

    async def get_block_number(self) -> int:
        number = _quantity(await self._rpc("eth_blockNumber", []))
        if number is None:
            raise LedgerError("eth_blockNumber returned null")
        return number

    async def get_code(self, address: str) -> str:
        result = await self._rpc("eth_getCode", [address, "latest"])
        if not isinstance(result, str):
            raise LedgerError(f"eth_getCode returned {result!r}")
        return result

    async def sign_and_send_authority_call(
        self,
        contract_address: str,
        method: str,
        args: Sequence[Any],
    ) -> str:
        """Build, sign and submit a contract call from the authority.

        Gas price from eth_gasPrice; chain id is fetched once and cached.
        Calls are serialized from nonce selection through submission so
        concurrent requests never sign the same nonce. The nonce is the
        larger of the node's pending count and the one after the last
        submission from this client.
        """
        if self._signer is None:
            raise LedgerError("no authority signer configured")

        sender = self._signer.address
        to = str(to_checksum_address(contract_address))
        data = encode_call(method, args)

        async with self._nonce_lock:
            if self._chain_id is None:
                self._chain_id = _quantity(await self._rpc("eth_chainId", []))
            pending = _quantity(
                await self._rpc("eth_getTransactionCount", [sender, "pending"])
            ) or 0
            nonce = max(pending, self._next_nonce or 0)
            gas_price = _quantity(await self._rpc("eth_gasPrice", []))

            gas = self._authority_gas
            if gas is None:
                estimate = _quantity(
                    await self._rpc(
                        "eth_estimateGas", [{"from": sender, "to": to, "data": data}]
                    )
                )
                gas = (estimate or 0) * (100 + _GAS_MARGIN_PERCENT) // 100

            signed = self._signer.sign({
                "chainId": self._chain_id,
                "nonce": nonce,
                "gasPrice": gas_price,
                "gas": gas,
                "to": to,
                "value": 0,
                "data": data,
            })
            tx_hash = await self.send_raw_transaction(signed.raw_transaction)
            self._next_nonce = nonce + 1

        logger.info(
            "authority call %s to %s submitted: %s (nonce %d)", method, to, tx_hash, nonce
        )
        return tx_hash


# =====================================================================
# Response parsing (pure functions, no I/O)
# =====================================================================


def _parse_transaction(result: Any) -> TxInfo | None:
    """Parse an eth_getTransactionByHash result. null → None."""
    if result is None:
        return None
    if not isinstance(result, dict):
        raise LedgerError(f"unexpected transaction result: {result!r}")
    return TxInfo(
        hash=result["hash"],
        block_number=_quantity(result.get("blockNumber")),
        nonce=_quantity(result.get("nonce")) or 0,
        gas=_quantity(result.get("gas")) or 0,
    )


def _parse_receipt(result: Any) -> TxReceipt | None:
    """Parse an eth_getTransactionReceipt result.

    null, or a receipt without a block number (some nodes return
    pending receipts), → None.
    """
    if result is None:
        return None
    if not isinstance(result, dict):
        raise LedgerError(f"unexpected receipt result: {result!r}")
    block_number = _quantity(result.get("blockNumber"))
    if block_number is None:
        return None
    return TxReceipt(
        hash=result["transactionHash"],
        block_number=block_number,
        status=_quantity(result.get("status")),
        gas_used=_quantity(result.get("gasUsed")),
        contract_address=result.get("contractAddress"),
    )
