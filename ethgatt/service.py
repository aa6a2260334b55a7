"""
GATT service surface and composition root.

CHARACTERISTICS maps each operation to the characteristic a BLE stack
exposes for it. Gateway wires the stores, queue, ledger client and
watcher together from a GatewayConfig and routes transport requests to
the dispatcher by characteristic name or UUID.

The BLE stack itself (advertising, connections, MTU negotiation) is
outside this package. An adapter calls:

    await gateway.handle(name_or_uuid, data, respond, notify)   # write/read
    await gateway.indicate()                                    # flow-control pull
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable

from ethgatt.config import GatewayConfig
from ethgatt.contracts import ContractRecordStore
from ethgatt.dispatcher import Notify, RequestDispatcher, Respond
from ethgatt.ledger.client import LedgerClient
from ethgatt.ledger.jsonrpc_client import JsonRpcClient
from ethgatt.ledger.signer import LocalAccountSigner
from ethgatt.ledger.transport import HttpxTransport
from ethgatt.pin import PinChallenge
from ethgatt.send_queue import SendQueue
from ethgatt.sessions import SessionStore
from ethgatt.watcher import TxLifecycleWatcher

logger = logging.getLogger(__name__)

SERVICE_UUID = "a3e1c000-5d6f-4b7e-9c21-7f3b2e8d4a10"


@dataclass(frozen=True)
class Characteristic:
    """
    One GATT characteristic.

    Attributes:
        name: Dispatcher operation it triggers.
        uuid: 128-bit characteristic UUID.
        properties: GATT properties the BLE stack should advertise.
    """

    name: str
    uuid: str
    properties: tuple[str, ...]


CHARACTERISTICS: tuple[Characteristic, ...] = (
    Characteristic("get_pin", "a3e1c001-5d6f-4b7e-9c21-7f3b2e8d4a10", ("read", "notify")),
    Characteristic("get_tx_status", "a3e1c002-5d6f-4b7e-9c21-7f3b2e8d4a10", ("write", "notify")),
    Characteristic("new_session", "a3e1c003-5d6f-4b7e-9c21-7f3b2e8d4a10", ("write", "notify")),
    Characteristic("call", "a3e1c004-5d6f-4b7e-9c21-7f3b2e8d4a10", ("write", "notify")),
    Characteristic("auth_tx", "a3e1c005-5d6f-4b7e-9c21-7f3b2e8d4a10", ("write", "notify")),
    Characteristic("auth_and_send_tx", "a3e1c006-5d6f-4b7e-9c21-7f3b2e8d4a10", ("write", "notify")),
    Characteristic("send_tx", "a3e1c007-5d6f-4b7e-9c21-7f3b2e8d4a10", ("write", "notify")),
    Characteristic("get_verified_tx_hash", "a3e1c008-5d6f-4b7e-9c21-7f3b2e8d4a10", ("write", "notify")),
    Characteristic("get_block_number", "a3e1c009-5d6f-4b7e-9c21-7f3b2e8d4a10", ("read",)),
    Characteristic("get_contract", "a3e1c00a-5d6f-4b7e-9c21-7f3b2e8d4a10", ("write", "notify", "indicate")),
    Characteristic("get_contract_indicate", "a3e1c00b-5d6f-4b7e-9c21-7f3b2e8d4a10", ("indicate",)),
)

_BY_KEY: dict[str, Characteristic] = {
    **{c.name: c for c in CHARACTERISTICS},
    **{c.uuid: c for c in CHARACTERISTICS},
}


def characteristic(key: str) -> Characteristic:
    """
    Look up a characteristic by operation name or UUID.

    Raises:
        KeyError: If nothing matches.
    """
    found = _BY_KEY.get(key.lower())
    if found is None:
        raise KeyError(f"unknown characteristic: {key}")
    return found


class Gateway:
    """
    Composition root for one gateway process.

    Args:
        dispatcher: Fully wired dispatcher.
        pin_rotation_s: Seconds between pin rotations.
        transport: HTTP transport to close on shutdown, if owned.
    """

    def __init__(
        self,
        dispatcher: RequestDispatcher,
        *,
        pin_rotation_s: float = 300.0,
        transport: HttpxTransport | None = None,
    ) -> None:
        self.dispatcher = dispatcher
        self.pin_rotation_s = pin_rotation_s
        self._transport = transport
        self._rotation: asyncio.Task[None] | None = None

    @classmethod
    def from_config(
        cls,
        config: GatewayConfig,
        *,
        ledger: LedgerClient | None = None,
        clock: Callable[[], float] | None = None,
    ) -> Gateway:
        """
        Build every service from config.

        Args:
            config: Gateway settings.
            ledger: Injected ledger client. Defaults to a JsonRpcClient
                over HttpxTransport for config.rpc_url.
            clock: Epoch-seconds clock shared by sessions and dispatcher.
        """
        transport: HttpxTransport | None = None
        if ledger is None:
            transport = HttpxTransport(timeout=config.rpc_timeout_s)
            signer = (
                LocalAccountSigner(config.authority_key)
                if config.authority_key
                else None
            )
            ledger = JsonRpcClient(
                config.rpc_url,
                transport,
                signer=signer,
                authority_gas=config.authority_gas,
            )
            if signer is None:
                logger.warning("no authority key configured; auth operations will fail")

        contracts = ContractRecordStore(config.contracts_db)
        dispatcher = RequestDispatcher(
            pin=PinChallenge(),
            sessions=SessionStore(config.sessions_db, ttl_s=config.session_ttl_s, clock=clock),
            contracts=contracts,
            queue=SendQueue(config.packet_size),
            ledger=ledger,
            watcher=TxLifecycleWatcher(
                ledger,
                contracts,
                poll_interval=config.mining_check_interval_s,
                timeout=config.auth_timeout_s,
            ),
            authority_method=config.authority_method,
            clock=clock,
        )
        logger.info("gateway configured: %r", config)
        return cls(dispatcher, pin_rotation_s=config.pin_rotation_s, transport=transport)

    async def handle(
        self,
        key: str,
        data: Any = None,
        respond: Respond | None = None,
        notify: Notify | None = None,
    ) -> None:
        """
        Route one transport request to its operation.

        Raises:
            KeyError: If ``key`` names no characteristic.
        """
        op = self.dispatcher.operation(characteristic(key).name)
        await op(data, respond, notify)

    async def indicate(self, notify: Notify | None = None) -> None:
        """Transport flow-control pull: send the next queued packet."""
        await self.dispatcher.get_contract_indicate(None, None, notify)

    async def run_pin_rotation(self) -> None:
        """Rotate the pin every pin_rotation_s seconds until cancelled."""
        while True:
            await asyncio.sleep(self.pin_rotation_s)
            self.dispatcher.pin.rotate()
            logger.info("pin rotated")

    def start(self) -> None:
        """Start background pin rotation. Must run inside an event loop."""
        if self._rotation is None or self._rotation.done():
            self._rotation = asyncio.get_running_loop().create_task(
                self.run_pin_rotation(), name="pin-rotation"
            )

    async def close(self) -> None:
        """Stop rotation, cancel watchers, close the HTTP client."""
        if self._rotation is not None:
            self._rotation.cancel()
            await asyncio.gather(self._rotation, return_exceptions=True)
            self._rotation = None
        await self.dispatcher.watcher.close()
        if self._transport is not None:
            await self._transport.aclose()
