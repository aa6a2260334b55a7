"""
Request dispatcher — one coroutine per characteristic operation.

Every operation has the same shape::

    await dispatcher.<operation>(data, respond, notify)

    data     request bytes (JSON text), None for operations without input
    respond  respond(code) or respond(code, payload): the result code
    notify   notify(payload): out-of-band answer bytes (a JSON value)

Step order inside an operation:
    1. decode and validate locally (JSON, schema, signature, store lookups)
    2. respond(RESULT_SUCCESS), or respond(<error code>) and stop
    3. ledger round trip
    4. notify(<JSON payload>)

send_tx swaps steps 2 and 3: the node's answer to the submission
decides the code, and a refused transaction (gas, funds, nonce) answers
INSUFFICIENT_GAS.

No operation raises to the transport. Validation failures answer their
ResultCode. Any other failure answers UNLIKELY_ERROR if no code was sent
yet; after SUCCESS it is logged and notified as "null".
"""

from __future__ import annotations

import functools
import json
import logging
import time
from typing import Any, Awaitable, Callable

from ethgatt import schema
from ethgatt.codes import ResultCode
from ethgatt.contracts import ContractRecordStore
from ethgatt.errors import InvalidRequestError, NoSignedMessageError
from ethgatt.ledger.client import LedgerClient
from ethgatt.ledger.errors import RawTransactionError, TransactionRejectedError
from ethgatt.ledger.tx import RawTransaction, parse_raw_transaction
from ethgatt.pin import PinChallenge
from ethgatt.send_queue import SendQueue
from ethgatt.sessions import SessionStore
from ethgatt.watcher import TxLifecycleWatcher
from ethgatt.wire import NULL_PAYLOAD, decode_request, encode_payload

logger = logging.getLogger(__name__)

DEFAULT_AUTHORITY_METHOD = "verifyPresence(address,uint64)"

Respond = Callable[..., None]
Notify = Callable[[bytes], None]

OPERATIONS = (
    "get_pin",
    "get_tx_status",
    "new_session",
    "call",
    "auth_tx",
    "auth_and_send_tx",
    "send_tx",
    "get_verified_tx_hash",
    "get_block_number",
    "get_contract",
    "get_contract_indicate",
)


class _Reply:
    """Tracks what an operation has already sent to the transport."""

    def __init__(self, respond: Respond | None, notify: Notify | None) -> None:
        self._respond = respond
        self._notify = notify
        self.code_sent: ResultCode | None = None
        self.notified = False

    @property
    def notify(self) -> Notify | None:
        return self._notify

    def code(self, code: ResultCode, payload: bytes | None = None) -> None:
        self.code_sent = code
        if self._respond is None:
            return
        if payload is None:
            self._respond(code)
        else:
            self._respond(code, payload)

    def send(self, payload: bytes) -> None:
        self.notified = True
        if self._notify is not None:
            self._notify(payload)


Operation = Callable[["RequestDispatcher", Any, _Reply], Awaitable[None]]


def _operation(func: Operation) -> Callable[..., Awaitable[None]]:
    """Wrap an operation body with the transport-facing error guard."""

    @functools.wraps(func)
    async def guarded(
        self: RequestDispatcher,
        data: Any = None,
        respond: Respond | None = None,
        notify: Notify | None = None,
    ) -> None:
        reply = _Reply(respond, notify)
        try:
            await func(self, data, reply)
        except InvalidRequestError as exc:
            logger.debug("%s rejected: %s (%s)", func.__name__, exc.code.name, exc.detail)
            if reply.code_sent is None:
                reply.code(exc.code)
        except Exception:
            logger.exception("%s failed", func.__name__)
            if reply.code_sent is None:
                reply.code(ResultCode.UNLIKELY_ERROR)
            elif not reply.notified:
                reply.send(NULL_PAYLOAD)

    return guarded


def _decode(data: Any, code: ResultCode) -> Any:
    """Parse request JSON, unwrapping one level of string-encoded JSON.

    Raises:
        InvalidRequestError: With ``code`` if the buffer is not JSON.
    """
    try:
        value = decode_request(data)
        if isinstance(value, str) and value.lstrip()[:1] in ("{", "["):
            value = json.loads(value)
    except ValueError as exc:
        raise InvalidRequestError(code, f"undecodable request: {exc}") from exc
    return value


def _require(value: Any, schema_name: str, code: ResultCode) -> None:
    problems = schema.errors(value, schema_name)
    if problems:
        raise InvalidRequestError(code, problems[0].message)


class RequestDispatcher:
    """The gateway's eleven operations over injected services.

    Args:
        pin: Pin challenge used to authenticate signed requests.
        sessions: Session store for new_session/send_tx.
        contracts: Contract record store.
        queue: Send queue streaming get_contract payloads.
        ledger: Ledger client.
        watcher: Lifecycle watcher for auth_and_send_tx.
        authority_method: Solidity signature of the authority call. It
            receives (account, now).
        clock: Callable returning epoch seconds. Inject for tests.
    """

    def __init__(
        self,
        pin: PinChallenge,
        sessions: SessionStore,
        contracts: ContractRecordStore,
        queue: SendQueue,
        ledger: LedgerClient,
        watcher: TxLifecycleWatcher,
        *,
        authority_method: str = DEFAULT_AUTHORITY_METHOD,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.pin = pin
        self.sessions = sessions
        self.contracts = contracts
        self.queue = queue
        self.ledger = ledger
        self.watcher = watcher
        self.authority_method = authority_method
        self._clock = clock or time.time

    def operation(self, name: str) -> Callable[..., Awaitable[None]]:
        """Look up an operation by name.

        Raises:
            KeyError: If ``name`` is not an operation.
        """
        if name not in OPERATIONS:
            raise KeyError(f"unknown operation: {name}")
        return getattr(self, name)

    # -----------------------------------------------------------------
    # Shared steps
    # -----------------------------------------------------------------

    def _verify_signed_pin(self, data: Any) -> str:
        """Decode a signed-pin request and recover the signer."""
        value = _decode(data, ResultCode.NO_SIGNED_MSG_IN_REQUEST)
        _require(value, "signed_pin", ResultCode.NO_SIGNED_MSG_IN_REQUEST)
        return self.pin.verify(value)

    async def _submit_authority_call(self, account: str, contract_address: str) -> str:
        return await self.ledger.sign_and_send_authority_call(
            contract_address,
            self.authority_method,
            [account, int(self._clock())],
        )

    # -----------------------------------------------------------------
    # Operations
    # -----------------------------------------------------------------

    @_operation
    async def get_pin(self, data: Any, reply: _Reply) -> None:
        pin = self.pin.current_pin()
        reply.send(pin)
        # Reads have no notify channel; the pin rides on the result too.
        reply.code(ResultCode.RESULT_SUCCESS, pin)

    @_operation
    async def get_tx_status(self, data: Any, reply: _Reply) -> None:
        tx_hash = _decode(data, ResultCode.INVALID_TX_HASH)
        _require(tx_hash, "tx_hash", ResultCode.INVALID_TX_HASH)
        reply.code(ResultCode.RESULT_SUCCESS)

        info = await self.ledger.get_transaction(tx_hash)
        reply.send(NULL_PAYLOAD if info is None else encode_payload(info.to_wire()))

    @_operation
    async def new_session(self, data: Any, reply: _Reply) -> None:
        account = self._verify_signed_pin(data)
        session = self.sessions.start({"account": account})
        logger.info("session %s opened for %s", session.session_id, account)
        reply.code(ResultCode.RESULT_SUCCESS)
        reply.send(encode_payload(session.to_wire()))

    @_operation
    async def call(self, data: Any, reply: _Reply) -> None:
        args = _decode(data, ResultCode.INVALID_CALL_DATA)
        _require(args, "call", ResultCode.INVALID_CALL_DATA)
        reply.code(ResultCode.RESULT_SUCCESS)

        to, calldata = args
        result = await self.ledger.call(to, calldata)
        reply.send(encode_payload(result))

    @_operation
    async def auth_tx(self, data: Any, reply: _Reply) -> None:
        account = self._verify_signed_pin(data)
        record = self.contracts.get(account)
        reply.code(ResultCode.RESULT_SUCCESS)

        if record is None or record.contract_address is None:
            logger.info("auth_tx: no contract record for %s", account)
            reply.send(NULL_PAYLOAD)
            return

        tx_hash = await self._submit_authority_call(record.id, record.contract_address)
        reply.send(encode_payload(tx_hash))

    @_operation
    async def auth_and_send_tx(self, data: Any, reply: _Reply) -> None:
        request = _decode(data, ResultCode.NO_SIGNED_MSG_IN_REQUEST)
        # The pin is checked before anything else in the request.
        if not isinstance(request, dict) or "pin" not in request:
            raise NoSignedMessageError("request has no pin")
        account = self.pin.verify(request["pin"])
        _require(request, "auth_and_send_tx", ResultCode.INSUFFICIENT_GAS)

        try:
            verify_tx = parse_raw_transaction(request["tx"])
        except RawTransactionError as exc:
            raise InvalidRequestError(ResultCode.INSUFFICIENT_GAS, str(exc)) from exc
        if not verify_tx.has_sufficient_gas():
            raise InvalidRequestError(
                ResultCode.INSUFFICIENT_GAS,
                f"gas {verify_tx.gas} below intrinsic {verify_tx.intrinsic_gas()}",
            )

        record = self.contracts.get(account)
        reply.code(ResultCode.RESULT_SUCCESS)

        if record is None or record.contract_address is None:
            logger.info("auth_and_send_tx: no contract record for %s", account)
            reply.send(NULL_PAYLOAD)
            return

        auth_hash = await self._submit_authority_call(record.id, record.contract_address)
        self.watcher.watch(record.id, auth_hash, self._sender_for(verify_tx))
        reply.send(encode_payload(auth_hash))

    def _sender_for(self, tx: RawTransaction) -> Callable[[], Awaitable[str]]:
        async def send() -> str:
            return await self.ledger.send_raw_transaction(tx.raw)

        return send

    @_operation
    async def send_tx(self, data: Any, reply: _Reply) -> None:
        request = _decode(data, ResultCode.INVALID_JSON_IN_REQUEST)
        _require(request, "send_tx", ResultCode.INVALID_JSON_IN_REQUEST)

        session = self.sessions.lookup(request["id"])
        if session is None:
            raise InvalidRequestError(
                ResultCode.INVALID_TX_SENDER_ADDRESS, "unknown or expired session"
            )
        try:
            tx = parse_raw_transaction(request["tx"])
            sender = tx.sender()
        except RawTransactionError as exc:
            raise InvalidRequestError(
                ResultCode.INVALID_TX_SENDER_ADDRESS, str(exc)
            ) from exc
        if sender.lower() != session.account.lower():
            raise InvalidRequestError(
                ResultCode.INVALID_TX_SENDER_ADDRESS,
                f"tx signed by {sender}, session belongs to {session.account}",
            )
        # Submitted before the code so a node rejection can still be answered.
        try:
            tx_hash = await self.ledger.send_raw_transaction(tx.raw)
        except TransactionRejectedError as exc:
            raise InvalidRequestError(ResultCode.INSUFFICIENT_GAS, exc.message) from exc
        reply.code(ResultCode.RESULT_SUCCESS)
        reply.send(encode_payload(tx_hash))

    @_operation
    async def get_verified_tx_hash(self, data: Any, reply: _Reply) -> None:
        account = self._verify_signed_pin(data)
        record = self.contracts.get(account)
        reply.code(ResultCode.RESULT_SUCCESS)
        reply.send(NULL_PAYLOAD if record is None else encode_payload(record.status_view()))

    @_operation
    async def get_block_number(self, data: Any, reply: _Reply) -> None:
        number = await self.ledger.get_block_number()
        reply.code(ResultCode.RESULT_SUCCESS, encode_payload(number))

    @_operation
    async def get_contract(self, data: Any, reply: _Reply) -> None:
        request = _decode(data, ResultCode.INVALID_JSON_IN_REQUEST)
        _require(request, "wallet_signature", ResultCode.INVALID_JSON_IN_REQUEST)
        try:
            account = self.pin.verify(request)
        except NoSignedMessageError as exc:
            raise InvalidRequestError(
                ResultCode.INVALID_JSON_IN_REQUEST, exc.detail
            ) from exc

        record = self.contracts.get(account)
        if record is None or record.contract_address is None:
            raise InvalidRequestError(
                ResultCode.NO_TX_DB_ERR, f"no contract record for {account}"
            )

        code = await self.ledger.get_code(record.contract_address)
        packets = self.queue.fill(encode_payload({
            "id": record.id,
            "authority": record.authority,
            "contractAddress": record.contract_address,
            "code": code,
        }))
        logger.debug("get_contract: %d packets queued for %s", packets, account)

        if reply.notify is not None:
            self.queue.subscribe(reply.notify)
        reply.code(ResultCode.RESULT_SUCCESS)
        self.queue.drain_next()

    @_operation
    async def get_contract_indicate(self, data: Any, reply: _Reply) -> None:
        if reply.notify is not None:
            self.queue.subscribe(reply.notify)
        self.queue.drain_next()
