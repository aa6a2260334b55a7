"""
Tests for the Ethereum JsonRpcClient — canned JSON-RPC responses, no network.

Uses a FakeTransport that answers per method name, exercising the
request building and parsing logic in jsonrpc_client.py.

Test plan:
- Queries: transaction found/not found, receipt mined/pending/null,
  block number, code, call params
- Submission: raw bytes sent as 0x hex, hash returned
- Errors: rejection messages → TransactionRejectedError, others →
  LedgerRpcError, transport exceptions propagate
- Authority calls: no signer → LedgerError, signed tx recovers to the
  authority and targets the contract, estimate margin, fixed gas, chain
  id cached, concurrent calls get distinct nonces, nonce tracked past a
  lagging pending count, rejected submission does not consume a nonce
- Request ids increment
"""

import asyncio
from typing import Any

import pytest

from conftest import AUTHORITY, AUTHORITY_KEY, CLIENT, CONTRACT_ADDRESS
from ethgatt.ledger.errors import LedgerError, LedgerRpcError, TransactionRejectedError
from ethgatt.ledger.jsonrpc_client import JsonRpcClient
from ethgatt.ledger.signer import LocalAccountSigner
from ethgatt.ledger.tx import encode_call, parse_raw_transaction

URL = "http://node.test:8545"
TX_HASH = "0x" + "ab" * 32

# ---------------------------------------------------------------------------
# Fake transport
# ---------------------------------------------------------------------------


class FakeTransport:
    """Answers each JSON-RPC method with a canned result or error."""

    def __init__(
        self,
        results: dict[str, Any] | None = None,
        errors: dict[str, Any] | None = None,
    ) -> None:
        self._results = results or {}
        self._errors = errors or {}
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def methods(self) -> list[str]:
        return [payload["method"] for _, payload in self.calls]

    def params(self, method: str) -> list[Any]:
        return next(p["params"] for _, p in self.calls if p["method"] == method)

    async def post_json(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        self.calls.append((url, payload))
        method = payload["method"]
        if method in self._errors:
            return {"jsonrpc": "2.0", "id": payload["id"], "error": self._errors[method]}
        return {"jsonrpc": "2.0", "id": payload["id"], "result": self._results.get(method)}


class ErrorTransport:
    """Raises an exception on post_json to simulate transport failures."""

    def __init__(self, exc: Exception) -> None:
        self._exc = exc

    async def post_json(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        raise self._exc


class YieldingNodeTransport:
    """Node double that yields to the event loop on every RPC.

    The pending nonce counts submitted transactions, like a real node's
    txpool. ``reject_next`` refuses the next submission.
    """

    def __init__(self, start_nonce: int = 4) -> None:
        self.start_nonce = start_nonce
        self.sent: list[str] = []
        self.reject_next = False

    def nonces(self) -> list[int]:
        return [parse_raw_transaction(raw).nonce for raw in self.sent]

    async def post_json(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        await asyncio.sleep(0)
        method = payload["method"]
        if method == "eth_sendRawTransaction":
            if self.reject_next:
                self.reject_next = False
                error = {"code": -32000, "message": "insufficient funds for gas"}
                return {"jsonrpc": "2.0", "id": payload["id"], "error": error}
            self.sent.append(payload["params"][0])
            result: Any = "0x" + f"{len(self.sent):064x}"
        elif method == "eth_getTransactionCount":
            result = hex(self.start_nonce + len(self.sent))
        else:
            result = AUTHORITY_RESULTS[method]
        return {"jsonrpc": "2.0", "id": payload["id"], "result": result}


# ---------------------------------------------------------------------------
# Canned responses
# ---------------------------------------------------------------------------

TX_RESULT = {
    "hash": TX_HASH,
    "blockNumber": "0x10",
    "nonce": "0x1",
    "gas": "0x5208",
    "from": CLIENT,
}

RECEIPT_RESULT = {
    "transactionHash": TX_HASH,
    "blockNumber": "0x10",
    "status": "0x1",
    "gasUsed": "0x5208",
    "contractAddress": None,
}

AUTHORITY_RESULTS = {
    "eth_chainId": "0x539",
    "eth_getTransactionCount": "0x4",
    "eth_gasPrice": "0x3b9aca00",
    "eth_estimateGas": "0x7530",
    "eth_sendRawTransaction": TX_HASH,
}


def _client(transport: Any, **kwargs: Any) -> JsonRpcClient:
    return JsonRpcClient(URL, transport, **kwargs)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


class TestQueries:
    @pytest.mark.asyncio
    async def test_transaction_parsed(self) -> None:
        client = _client(FakeTransport({"eth_getTransactionByHash": TX_RESULT}))
        info = await client.get_transaction(TX_HASH)
        assert info is not None
        assert (info.block_number, info.nonce, info.gas) == (16, 1, 21000)
        assert info.to_wire() == {"blockNumber": 16, "nonce": 1, "gas": 21000}

    @pytest.mark.asyncio
    async def test_transaction_not_found(self) -> None:
        client = _client(FakeTransport({"eth_getTransactionByHash": None}))
        assert await client.get_transaction(TX_HASH) is None

    @pytest.mark.asyncio
    async def test_pending_transaction_has_no_block(self) -> None:
        pending = {**TX_RESULT, "blockNumber": None}
        client = _client(FakeTransport({"eth_getTransactionByHash": pending}))
        info = await client.get_transaction(TX_HASH)
        assert info is not None
        assert info.block_number is None

    @pytest.mark.asyncio
    async def test_receipt_parsed(self) -> None:
        client = _client(FakeTransport({"eth_getTransactionReceipt": RECEIPT_RESULT}))
        receipt = await client.get_transaction_receipt(TX_HASH)
        assert receipt is not None
        assert receipt.block_number == 16
        assert receipt.status == 1
        assert receipt.succeeded is True

    @pytest.mark.asyncio
    async def test_reverted_receipt(self) -> None:
        reverted = {**RECEIPT_RESULT, "status": "0x0"}
        client = _client(FakeTransport({"eth_getTransactionReceipt": reverted}))
        receipt = await client.get_transaction_receipt(TX_HASH)
        assert receipt is not None
        assert receipt.succeeded is False

    @pytest.mark.asyncio
    async def test_receipt_without_block_is_pending(self) -> None:
        pending = {**RECEIPT_RESULT, "blockNumber": None}
        client = _client(FakeTransport({"eth_getTransactionReceipt": pending}))
        assert await client.get_transaction_receipt(TX_HASH) is None

    @pytest.mark.asyncio
    async def test_receipt_null(self) -> None:
        client = _client(FakeTransport())
        assert await client.get_transaction_receipt(TX_HASH) is None

    @pytest.mark.asyncio
    async def test_block_number(self) -> None:
        client = _client(FakeTransport({"eth_blockNumber": "0x4d2"}))
        assert await client.get_block_number() == 1234

    @pytest.mark.asyncio
    async def test_code(self) -> None:
        transport = FakeTransport({"eth_getCode": "0x6080"})
        assert await _client(transport).get_code(CONTRACT_ADDRESS) == "0x6080"
        assert transport.params("eth_getCode") == [CONTRACT_ADDRESS, "latest"]

    @pytest.mark.asyncio
    async def test_call_params(self) -> None:
        transport = FakeTransport({"eth_call": "0x01"})
        assert await _client(transport).call(CONTRACT_ADDRESS, "0xabcd") == "0x01"
        assert transport.params("eth_call") == [
            {"to": CONTRACT_ADDRESS, "data": "0xabcd"},
            "latest",
        ]

    @pytest.mark.asyncio
    async def test_request_ids_increment(self) -> None:
        transport = FakeTransport({"eth_blockNumber": "0x1"})
        client = _client(transport)
        await client.get_block_number()
        await client.get_block_number()
        assert [p["id"] for _, p in transport.calls] == [1, 2]
        assert all(p["jsonrpc"] == "2.0" for _, p in transport.calls)
        assert all(url == URL for url, _ in transport.calls)


# ---------------------------------------------------------------------------
# Submission and errors
# ---------------------------------------------------------------------------


class TestSubmit:
    @pytest.mark.asyncio
    async def test_raw_bytes_sent_as_hex(self) -> None:
        transport = FakeTransport({"eth_sendRawTransaction": TX_HASH})
        assert await _client(transport).send_raw_transaction(b"\xf8\x6b") == TX_HASH
        assert transport.params("eth_sendRawTransaction") == ["0xf86b"]

    @pytest.mark.asyncio
    async def test_rejection_classified(self) -> None:
        transport = FakeTransport(
            errors={"eth_sendRawTransaction": {"code": -32000, "message": "intrinsic gas too low"}}
        )
        with pytest.raises(TransactionRejectedError) as exc_info:
            await _client(transport).send_raw_transaction(b"\x01")
        assert exc_info.value.code == -32000

    @pytest.mark.asyncio
    async def test_other_rpc_error(self) -> None:
        transport = FakeTransport(
            errors={"eth_blockNumber": {"code": -32601, "message": "method not found"}}
        )
        with pytest.raises(LedgerRpcError) as exc_info:
            await _client(transport).get_block_number()
        assert not isinstance(exc_info.value, TransactionRejectedError)

    @pytest.mark.asyncio
    async def test_transport_error_propagates(self) -> None:
        client = _client(ErrorTransport(ConnectionError("refused")))
        with pytest.raises(ConnectionError):
            await client.get_block_number()


# ---------------------------------------------------------------------------
# Authority calls
# ---------------------------------------------------------------------------


class TestAuthorityCall:
    @pytest.mark.asyncio
    async def test_requires_signer(self) -> None:
        client = _client(FakeTransport(AUTHORITY_RESULTS))
        with pytest.raises(LedgerError):
            await client.sign_and_send_authority_call(
                CONTRACT_ADDRESS, "verifyPresence(address,uint64)", [CLIENT, 1]
            )

    @pytest.mark.asyncio
    async def test_signed_by_authority(self) -> None:
        transport = FakeTransport(AUTHORITY_RESULTS)
        client = _client(transport, signer=LocalAccountSigner(AUTHORITY_KEY))
        tx_hash = await client.sign_and_send_authority_call(
            CONTRACT_ADDRESS, "verifyPresence(address,uint64)", [CLIENT, 1_700_000_000]
        )
        assert tx_hash == TX_HASH

        sent = parse_raw_transaction(transport.params("eth_sendRawTransaction")[0])
        assert sent.sender() == AUTHORITY
        assert sent.to == CONTRACT_ADDRESS
        assert sent.nonce == 4
        assert sent.gas == 36_000
        assert "0x" + sent.data.hex() == encode_call(
            "verifyPresence(address,uint64)", [CLIENT, 1_700_000_000]
        )
        assert transport.params("eth_getTransactionCount") == [AUTHORITY, "pending"]

    @pytest.mark.asyncio
    async def test_fixed_gas_skips_estimate(self) -> None:
        transport = FakeTransport(AUTHORITY_RESULTS)
        client = _client(
            transport, signer=LocalAccountSigner(AUTHORITY_KEY), authority_gas=90_000
        )
        await client.sign_and_send_authority_call(
            CONTRACT_ADDRESS, "verifyPresence(address,uint64)", [CLIENT, 1]
        )
        assert "eth_estimateGas" not in transport.methods()
        sent = parse_raw_transaction(transport.params("eth_sendRawTransaction")[0])
        assert sent.gas == 90_000

    @pytest.mark.asyncio
    async def test_chain_id_cached(self) -> None:
        transport = FakeTransport(AUTHORITY_RESULTS)
        client = _client(transport, signer=LocalAccountSigner(AUTHORITY_KEY))
        for _ in range(2):
            await client.sign_and_send_authority_call(
                CONTRACT_ADDRESS, "verifyPresence(address,uint64)", [CLIENT, 1]
            )
        assert transport.methods().count("eth_chainId") == 1

    @pytest.mark.asyncio
    async def test_concurrent_calls_use_distinct_nonces(self) -> None:
        transport = YieldingNodeTransport()
        client = _client(transport, signer=LocalAccountSigner(AUTHORITY_KEY))
        hashes = await asyncio.gather(*(
            client.sign_and_send_authority_call(
                CONTRACT_ADDRESS, "verifyPresence(address,uint64)", [CLIENT, i]
            )
            for i in range(3)
        ))
        assert len(set(hashes)) == 3
        assert sorted(transport.nonces()) == [4, 5, 6]

    @pytest.mark.asyncio
    async def test_lagging_pending_count(self) -> None:
        # FakeTransport reports the same pending count every time.
        transport = FakeTransport(AUTHORITY_RESULTS)
        client = _client(transport, signer=LocalAccountSigner(AUTHORITY_KEY))
        for i in range(2):
            await client.sign_and_send_authority_call(
                CONTRACT_ADDRESS, "verifyPresence(address,uint64)", [CLIENT, i]
            )
        sent = [
            p["params"][0] for _, p in transport.calls
            if p["method"] == "eth_sendRawTransaction"
        ]
        assert [parse_raw_transaction(raw).nonce for raw in sent] == [4, 5]

    @pytest.mark.asyncio
    async def test_rejected_submission_keeps_nonce(self) -> None:
        transport = YieldingNodeTransport()
        transport.reject_next = True
        client = _client(transport, signer=LocalAccountSigner(AUTHORITY_KEY))
        with pytest.raises(TransactionRejectedError):
            await client.sign_and_send_authority_call(
                CONTRACT_ADDRESS, "verifyPresence(address,uint64)", [CLIENT, 1]
            )
        await client.sign_and_send_authority_call(
            CONTRACT_ADDRESS, "verifyPresence(address,uint64)", [CLIENT, 1]
        )
        assert transport.nonces() == [4]

    def test_signer_repr_hides_key(self) -> None:
        signer = LocalAccountSigner(AUTHORITY_KEY)
        assert AUTHORITY_KEY[2:] not in repr(signer)
        assert signer.address == AUTHORITY
