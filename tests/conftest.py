"""
Shared fakes and fixtures.

FakeLedger stands in for the JSON-RPC client: canned transactions,
receipts a test can "mine" on demand, and a record of everything sent.
Keys are real eth-account keys so signatures and raw transactions go
through the same recovery code as production.
"""

from __future__ import annotations

from typing import Any, Sequence

import pytest
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_keys import keys
from eth_utils import keccak, to_checksum_address

from ethgatt.contracts import ContractRecord, ContractRecordStore
from ethgatt.dispatcher import RequestDispatcher
from ethgatt.ledger.client import TxInfo, TxReceipt
from ethgatt.pin import PinChallenge
from ethgatt.send_queue import SendQueue
from ethgatt.sessions import SessionStore
from ethgatt.watcher import TxLifecycleWatcher

CLIENT_KEY = "0x" + "11" * 32
OTHER_KEY = "0x" + "22" * 32
AUTHORITY_KEY = "0x" + "33" * 32

CLIENT = Account.from_key(CLIENT_KEY).address
OTHER = Account.from_key(OTHER_KEY).address
AUTHORITY = Account.from_key(AUTHORITY_KEY).address
CONTRACT_ADDRESS = to_checksum_address("0x" + "c0" * 20)

FIXED_NOW = 1_700_000_000
SAMPLE_PIN = "Zx9" * 10 + "Q1"


# ---------------------------------------------------------------------------
# Signing helpers
# ---------------------------------------------------------------------------


def sign_pin(pin: PinChallenge, key: str = CLIENT_KEY) -> str:
    """web3-style 0x hex signature over the current pin hash."""
    signed = Account.sign_message(encode_defunct(primitive=pin.pin_hash()), private_key=key)
    return "0x" + bytes(signed.signature).hex()


def sign_pin_vrs(pin: PinChallenge, key: str = CLIENT_KEY) -> dict[str, Any]:
    """Wallet-style {v, r, s}: raw ecsign over the pin hash, no prefix."""
    signature = keys.PrivateKey(bytes.fromhex(key[2:])).sign_msg_hash(pin.pin_hash())
    return {"v": signature.v + 27, "r": hex(signature.r), "s": hex(signature.s)}


def raw_tx(
    key: str = CLIENT_KEY,
    *,
    gas: int = 50_000,
    data: bytes = b"\x60\x0d",
    nonce: int = 0,
) -> str:
    """0x hex of a signed legacy transaction to CONTRACT_ADDRESS."""
    signed = Account.sign_transaction(
        {
            "nonce": nonce,
            "gasPrice": 1_000_000_000,
            "gas": gas,
            "to": CONTRACT_ADDRESS,
            "value": 0,
            "data": data,
            "chainId": 1337,
        },
        key,
    )
    return "0x" + bytes(signed.raw_transaction).hex()


# ---------------------------------------------------------------------------
# Fake ledger
# ---------------------------------------------------------------------------


class FakeLedger:
    """In-memory LedgerClient.

    Attributes:
        transactions: hash → TxInfo returned by get_transaction.
        receipts: hash → TxReceipt returned by get_transaction_receipt.
        auto_mine: Give every submitted tx a successful receipt at once.
        failing: method name → exception raised by that method.
    """

    def __init__(self, *, auto_mine: bool = False) -> None:
        self.transactions: dict[str, TxInfo] = {}
        self.receipts: dict[str, TxReceipt] = {}
        self.sent: list[bytes] = []
        self.authority_calls: list[tuple[str, str, list[Any]]] = []
        self.calls: list[tuple[str, str]] = []
        self.receipt_polls: list[str] = []
        self.block_number = 1234
        self.code = "0x6080604052"
        self.call_result = "0x" + "00" * 31 + "01"
        self.auto_mine = auto_mine
        self.failing: dict[str, Exception] = {}

    def _check(self, method: str) -> None:
        if method in self.failing:
            raise self.failing[method]

    def mine(self, tx_hash: str, status: int = 1) -> TxReceipt:
        receipt = TxReceipt(hash=tx_hash, block_number=self.block_number, status=status)
        self.receipts[tx_hash] = receipt
        return receipt

    async def get_transaction(self, tx_hash: str) -> TxInfo | None:
        self._check("get_transaction")
        return self.transactions.get(tx_hash)

    async def get_transaction_receipt(self, tx_hash: str) -> TxReceipt | None:
        self.receipt_polls.append(tx_hash)
        self._check("get_transaction_receipt")
        return self.receipts.get(tx_hash)

    async def send_raw_transaction(self, raw_tx: bytes) -> str:
        self._check("send_raw_transaction")
        self.sent.append(raw_tx)
        tx_hash = "0x" + keccak(raw_tx).hex()
        if self.auto_mine:
            self.mine(tx_hash)
        return tx_hash

    async def call(self, to: str, data: str) -> str:
        self._check("call")
        self.calls.append((to, data))
        return self.call_result

    async def get_block_number(self) -> int:
        self._check("get_block_number")
        return self.block_number

    async def get_code(self, address: str) -> str:
        self._check("get_code")
        return self.code

    async def sign_and_send_authority_call(
        self,
        contract_address: str,
        method: str,
        args: Sequence[Any],
    ) -> str:
        self._check("sign_and_send_authority_call")
        self.authority_calls.append((contract_address, method, list(args)))
        tx_hash = "0x" + keccak(
            text=f"{contract_address}:{method}:{list(args)}:{len(self.authority_calls)}"
        ).hex()
        if self.auto_mine:
            self.mine(tx_hash)
        return tx_hash


class Recorder:
    """Captures respond/notify calls in order."""

    def __init__(self) -> None:
        self.events: list[tuple[str, Any]] = []

    def respond(self, code: int, payload: bytes | None = None) -> None:
        self.events.append(("respond", (code, payload)))

    def notify(self, value: bytes) -> None:
        self.events.append(("notify", value))

    @property
    def codes(self) -> list[int]:
        return [e[1][0] for e in self.events if e[0] == "respond"]

    @property
    def payloads(self) -> list[bytes | None]:
        return [e[1][1] for e in self.events if e[0] == "respond"]

    @property
    def notified(self) -> list[bytes]:
        return [e[1] for e in self.events if e[0] == "notify"]

    @property
    def kinds(self) -> list[str]:
        return [e[0] for e in self.events]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def pin() -> PinChallenge:
    return PinChallenge()


@pytest.fixture
def contracts() -> ContractRecordStore:
    return ContractRecordStore()


@pytest.fixture
def client_record(contracts: ContractRecordStore) -> ContractRecord:
    return contracts.put(
        ContractRecord(id=CLIENT, authority=AUTHORITY, contract_address=CONTRACT_ADDRESS)
    )


@pytest.fixture
def dispatcher(
    pin: PinChallenge,
    contracts: ContractRecordStore,
    ledger: FakeLedger,
) -> RequestDispatcher:
    return RequestDispatcher(
        pin=pin,
        sessions=SessionStore(clock=lambda: FIXED_NOW),
        contracts=contracts,
        queue=SendQueue(packet_size=32),
        ledger=ledger,
        watcher=TxLifecycleWatcher(ledger, contracts, poll_interval=0.005),
        clock=lambda: FIXED_NOW,
    )
