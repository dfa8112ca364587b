"""
Root-chain confirmation watching with uncle detection.

A transaction is confirmed once its block is ``blocks_to_wait`` blocks
behind the head and the transaction is still included when re-fetched.
If the re-fetched transaction has lost its block, it ended up in an
uncle block and the watch fails.

Features:
- Single or batch watching (batch fails fast and cancels the rest)
- Optional timeout
- Per-transaction progress tracking
- Confirmation and uncle callbacks
"""
from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from .exceptions import ConfirmationError, ConfirmationTimeoutError, UncleDetectedError
from .ports import Receipt, RootChainPort
from .rpc_client import to_int

logger = logging.getLogger(__name__)


class ConfirmationState(str, Enum):
    """Progress of a single watched transaction."""
    AWAITING_RECEIPT = "awaiting_receipt"  # Not yet mined
    AWAITING_DEPTH = "awaiting_depth"  # Mined, waiting for blocks on top
    CONFIRMED = "confirmed"
    UNCLE_DETECTED = "uncle_detected"  # Dropped by a reorg


@dataclass
class TrackedConfirmation:
    """A transaction being watched for confirmation."""
    tx_hash: str
    blocks_to_wait: int
    state: ConfirmationState = ConfirmationState.AWAITING_RECEIPT
    receipt: Optional[Receipt] = None
    block_number: Optional[int] = None
    head_number: Optional[int] = None
    polls: int = 0
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_updated: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None

    @property
    def depth(self) -> int:
        if self.block_number is None or self.head_number is None:
            return 0
        return max(0, self.head_number - self.block_number)

    def transition(self, state: ConfirmationState) -> None:
        self.state = state
        self.last_updated = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tx_hash": self.tx_hash,
            "state": self.state.value,
            "blocks_to_wait": self.blocks_to_wait,
            "block_number": self.block_number,
            "head_number": self.head_number,
            "depth": self.depth,
            "polls": self.polls,
            "started_at": self.started_at.isoformat(),
            "last_updated": self.last_updated.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


ConfirmationCallback = Callable[[TrackedConfirmation], Any]


class ConfirmationWatcher:
    """
    Waits for root-chain transactions to reach a confirmation depth.

    Args:
        root_chain: Source of receipts, blocks and transactions
        poll_interval_seconds: Delay between polls
        blocks_to_wait: Required depth; 0 accepts the first receipt
        timeout_seconds: Default timeout per watch, None waits forever
        max_tracked: Finished watches kept for progress queries; the oldest
            are dropped beyond this
    """

    def __init__(
        self,
        root_chain: RootChainPort,
        poll_interval_seconds: float = 1.0,
        blocks_to_wait: int = 13,
        timeout_seconds: Optional[float] = None,
        max_tracked: int = 1000,
    ):
        self._root_chain = root_chain
        self._poll_interval = poll_interval_seconds
        self._blocks_to_wait = blocks_to_wait
        self._timeout = timeout_seconds
        self._max_tracked = max_tracked

        self._tracked: Dict[str, TrackedConfirmation] = {}
        self._confirmation_callbacks: List[ConfirmationCallback] = []
        self._uncle_callbacks: List[ConfirmationCallback] = []

    def add_confirmation_callback(self, callback: ConfirmationCallback) -> None:
        """Register a callback for confirmed transactions."""
        self._confirmation_callbacks.append(callback)

    def add_uncle_callback(self, callback: ConfirmationCallback) -> None:
        """Register a callback for transactions that ended up in an uncle block."""
        self._uncle_callbacks.append(callback)

    async def confirm(
        self,
        tx_hash: Union[str, Sequence[str]],
        poll_interval: Optional[float] = None,
        blocks_to_wait: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
    ) -> Union[Receipt, List[Receipt]]:
        """
        Wait for one transaction, or a list of them, to be confirmed.

        A list resolves to the receipts in input order. The first failure
        cancels the remaining watches and is raised.

        Raises:
            UncleDetectedError: The transaction was dropped by a reorg
            ConfirmationError: A receipt lookup failed
            ConfirmationTimeoutError: Not confirmed within the timeout
        """
        if poll_interval is None:
            poll_interval = self._poll_interval
        if blocks_to_wait is None:
            blocks_to_wait = self._blocks_to_wait
        if timeout_seconds is None:
            timeout_seconds = self._timeout

        if isinstance(tx_hash, str):
            return await self._confirm_one(tx_hash, poll_interval, blocks_to_wait, timeout_seconds)

        tasks = [
            asyncio.create_task(
                self._confirm_one(h, poll_interval, blocks_to_wait, timeout_seconds)
            )
            for h in tx_hash
        ]
        if not tasks:
            return []

        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def _confirm_one(
        self,
        tx_hash: str,
        poll_interval: float,
        blocks_to_wait: int,
        timeout_seconds: Optional[float],
    ) -> Receipt:
        tracked = TrackedConfirmation(tx_hash=tx_hash, blocks_to_wait=blocks_to_wait)
        self._tracked.pop(tx_hash, None)
        self._tracked[tx_hash] = tracked

        logger.info(
            f"Watching transaction {tx_hash}, required confirmations: {blocks_to_wait}"
        )

        try:
            if timeout_seconds is None:
                return await self._watch(tracked, poll_interval)
            try:
                return await asyncio.wait_for(self._watch(tracked, poll_interval), timeout_seconds)
            except asyncio.TimeoutError:
                raise ConfirmationTimeoutError(tx_hash, timeout_seconds, tracked.state.value) from None
        finally:
            tracked.finished_at = datetime.now(timezone.utc)
            self._prune_tracked()

    async def _watch(self, tracked: TrackedConfirmation, poll_interval: float) -> Receipt:
        tx_hash = tracked.tx_hash

        while True:
            tracked.polls += 1

            if tracked.state == ConfirmationState.AWAITING_RECEIPT:
                try:
                    receipt = await self._root_chain.get_transaction_receipt(tx_hash)
                except Exception as e:
                    raise ConfirmationError(
                        f"Failed to fetch receipt for {tx_hash}: {e}",
                        step="get_transaction_receipt",
                        details={"tx_hash": tx_hash},
                    ) from e

                if receipt is not None:
                    tracked.receipt = receipt
                    if tracked.blocks_to_wait == 0:
                        await self._mark_confirmed(tracked)
                        return receipt

                    block_number = to_int(receipt.get("blockNumber"))
                    if block_number is not None:
                        tracked.block_number = block_number
                        tracked.transition(ConfirmationState.AWAITING_DEPTH)

            if tracked.state == ConfirmationState.AWAITING_DEPTH:
                try:
                    receipt_block = await self._root_chain.get_block(tracked.block_number)
                    latest_block = await self._root_chain.get_block("latest")
                    deep_enough = False
                    transaction = None
                    if receipt_block and latest_block:
                        block_number = to_int(receipt_block.get("number"))
                        tracked.head_number = to_int(latest_block.get("number"))
                        tracked.last_updated = datetime.now(timezone.utc)
                        deep_enough = tracked.head_number - block_number >= tracked.blocks_to_wait
                        if deep_enough:
                            transaction = await self._root_chain.get_transaction(tx_hash)
                except Exception as e:
                    logger.debug(f"Retrying depth check for {tx_hash}: {e}")
                    deep_enough = False

                if deep_enough:
                    if not transaction or transaction.get("blockNumber") is None:
                        tracked.transition(ConfirmationState.UNCLE_DETECTED)
                        logger.warning(f"Transaction {tx_hash} ended up in an uncle block")
                        await self._notify(self._uncle_callbacks, tracked)
                        raise UncleDetectedError(tx_hash, tracked.block_number)

                    await self._mark_confirmed(tracked)
                    return tracked.receipt

            await asyncio.sleep(poll_interval)

    async def _mark_confirmed(self, tracked: TrackedConfirmation) -> None:
        tracked.transition(ConfirmationState.CONFIRMED)
        logger.info(
            f"Transaction {tracked.tx_hash} confirmed at depth {tracked.depth} "
            f"after {tracked.polls} polls"
        )
        await self._notify(self._confirmation_callbacks, tracked)

    @staticmethod
    async def _notify(callbacks: List[ConfirmationCallback], tracked: TrackedConfirmation) -> None:
        for callback in callbacks:
            try:
                if inspect.iscoroutinefunction(callback):
                    await callback(tracked)
                else:
                    callback(tracked)
            except Exception as e:
                logger.error(f"Error in confirmation callback: {e}")

    def get_progress(self, tx_hash: str) -> Optional[TrackedConfirmation]:
        """Get the latest watch progress of a transaction."""
        return self._tracked.get(tx_hash)

    def untrack(self, tx_hash: str) -> bool:
        """Forget a watch. Returns False if the hash was not tracked."""
        if tx_hash in self._tracked:
            del self._tracked[tx_hash]
            return True
        return False

    def _prune_tracked(self) -> None:
        """Drop the oldest finished watches beyond max_tracked."""
        excess = len(self._tracked) - self._max_tracked
        if excess <= 0:
            return
        finished = [h for h, t in self._tracked.items() if t.finished_at is not None]
        for tx_hash in finished[:excess]:
            del self._tracked[tx_hash]

    def get_stats(self) -> Dict[str, Any]:
        """Get watcher statistics."""
        by_state = {state.value: 0 for state in ConfirmationState}
        for tracked in self._tracked.values():
            by_state[tracked.state.value] += 1
        return {
            "tracked_transactions": len(self._tracked),
            "by_state": by_state,
            "blocks_to_wait": self._blocks_to_wait,
            "poll_interval_seconds": self._poll_interval,
        }
