"""
Transaction lifecycle watcher.

Drives the two-phase auth chain for one account in the background:

    auth tx submitted → PENDING
        poll receipt every poll_interval
    auth tx mined     → SUCCESS
        submit follow-up (verify) tx
        poll receipt every poll_interval
    verify tx mined   → verified_tx_hash recorded

Completion is only observable through later reads of the contract
record; the request that started the watch has already been answered.

Restart policy: one watch per account. Starting a new watch for an
account cancels the previous task (cancel-and-replace).

Failure handling:
    - auth receipt with status 0 (reverted) → FAILED.
    - timeout (optional, off by default) elapses before the auth tx
      mines → FAILED. Without a timeout the record stays PENDING for as
      long as the tx is not mined.
    - poll errors are logged and polling continues.
    - a follow-up that cannot be submitted leaves SUCCESS with
      verified_tx_hash null.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from ethgatt.contracts import AuthStatus, ContractRecordStore
from ethgatt.ledger.client import LedgerClient, TxReceipt

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_S = 1.0

FollowUp = Callable[[], Awaitable[str]]


class TxLifecycleWatcher:
    """Background pollers keyed by account.

    Args:
        ledger: Ledger client used for receipt polling.
        contracts: Store whose records the watcher advances.
        poll_interval: Seconds between receipt polls. May be changed at
            runtime; running watches pick it up on their next tick.
        timeout: Seconds to wait for each phase to mine. None waits
            forever.
    """

    def __init__(
        self,
        ledger: LedgerClient,
        contracts: ContractRecordStore,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL_S,
        timeout: float | None = None,
    ) -> None:
        if poll_interval <= 0:
            raise ValueError(f"poll_interval must be positive, got: {poll_interval}")
        self._ledger = ledger
        self._contracts = contracts
        self.poll_interval = poll_interval
        self.timeout = timeout
        self._tasks: dict[str, asyncio.Task[None]] = {}

    def watch(
        self,
        account: str,
        tx_hash: str,
        follow_up: FollowUp | None = None,
    ) -> asyncio.Task[None]:
        """Mark the record PENDING and start polling ``tx_hash``.

        Must be called from a running event loop.
        """
        self._contracts.update_status(
            account,
            auth_status=AuthStatus.PENDING,
            auth_tx_hash=tx_hash,
            verified_tx_hash=None,
        )

        previous = self._tasks.get(account)
        if previous is not None and not previous.done():
            logger.info("replacing watch for %s", account)
            previous.cancel()

        task = asyncio.get_running_loop().create_task(
            self._run(account, tx_hash, follow_up),
            name=f"watch:{account}:{tx_hash}",
        )
        self._tasks[account] = task
        task.add_done_callback(lambda t, a=account: self._forget(a, t))
        return task

    def _forget(self, account: str, task: asyncio.Task[None]) -> None:
        if self._tasks.get(account) is task:
            del self._tasks[account]

    def active(self) -> list[str]:
        """Accounts with a running watch."""
        return [a for a, t in self._tasks.items() if not t.done()]

    def cancel(self, account: str) -> bool:
        task = self._tasks.get(account)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    async def wait(self, account: str) -> None:
        """Wait for the account's current watch to finish, if any."""
        task = self._tasks.get(account)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def close(self) -> None:
        """Cancel every watch and wait for them to unwind."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    # -----------------------------------------------------------------
    # Polling
    # -----------------------------------------------------------------

    async def _wait_mined(self, tx_hash: str) -> TxReceipt | None:
        """Poll until ``tx_hash`` has a receipt. None on timeout."""
        loop = asyncio.get_running_loop()
        deadline = None if self.timeout is None else loop.time() + self.timeout
        while True:
            try:
                receipt = await self._ledger.get_transaction_receipt(tx_hash)
            except Exception as exc:
                logger.warning("receipt poll for %s failed: %s", tx_hash, exc)
                receipt = None
            if receipt is not None:
                return receipt
            if deadline is not None and loop.time() >= deadline:
                return None
            await asyncio.sleep(self.poll_interval)

    async def _run(
        self,
        account: str,
        tx_hash: str,
        follow_up: FollowUp | None,
    ) -> None:
        receipt = await self._wait_mined(tx_hash)
        if receipt is None:
            logger.warning("auth tx %s for %s not mined before timeout", tx_hash, account)
            self._contracts.update_status(account, auth_status=AuthStatus.FAILED)
            return
        if not receipt.succeeded:
            logger.warning("auth tx %s for %s reverted", tx_hash, account)
            self._contracts.update_status(account, auth_status=AuthStatus.FAILED)
            return

        self._contracts.update_status(account, auth_status=AuthStatus.SUCCESS)
        logger.info("auth tx %s for %s mined in block %d", tx_hash, account, receipt.block_number)

        if follow_up is None:
            return

        try:
            verify_hash = await follow_up()
        except Exception:
            logger.exception("verify tx for %s could not be submitted", account)
            return

        verify_receipt = await self._wait_mined(verify_hash)
        if verify_receipt is None:
            logger.warning("verify tx %s for %s not mined before timeout", verify_hash, account)
            return

        self._contracts.update_status(account, verified_tx_hash=verify_hash)
        logger.info("verify tx %s for %s mined", verify_hash, account)
