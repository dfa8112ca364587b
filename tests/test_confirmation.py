"""
Tests for plasma_bridge.confirmation.

Tests cover:
- Receipt polling and depth checks
- Uncle detection on the final re-fetch
- blocks_to_wait == 0 shortcut
- Timeouts and terminal receipt errors
- Transient depth-check errors
- Batch ordering and fail-fast cancellation
- Progress tracking and callbacks
"""
from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from plasma_bridge.confirmation import (
    ConfirmationState,
    ConfirmationWatcher,
    TrackedConfirmation,
)
from plasma_bridge.exceptions import (
    ConfirmationError,
    ConfirmationTimeoutError,
    RPCError,
    UncleDetectedError,
)
from plasma_bridge.ports import RootChainPort

POLL = 0.001


def chain_with_head(receipt_block: int, heads):
    """Mock root chain whose latest block advances through ``heads``."""
    root = MagicMock(spec=RootChainPort)
    head_iter = iter(heads)
    last = {"head": None}

    async def get_block(block):
        if block == "latest":
            last["head"] = next(head_iter, last["head"])
            return {"number": hex(last["head"])}
        return {"number": hex(block)}

    root.get_block = AsyncMock(side_effect=get_block)
    root.get_transaction_receipt = AsyncMock(
        return_value={"transactionHash": "0xtx", "blockNumber": hex(receipt_block), "status": "0x1"}
    )
    root.get_transaction = AsyncMock(return_value={"hash": "0xtx", "blockNumber": hex(receipt_block)})
    return root


class TestTrackedConfirmation:
    """Tests for TrackedConfirmation."""

    def test_depth_without_blocks(self):
        """Should report zero depth before the transaction is mined."""
        tracked = TrackedConfirmation(tx_hash="0xtx", blocks_to_wait=13)

        assert tracked.depth == 0
        assert tracked.state == ConfirmationState.AWAITING_RECEIPT

    def test_depth(self):
        """Should compute depth from block and head numbers."""
        tracked = TrackedConfirmation(tx_hash="0xtx", blocks_to_wait=13, block_number=10, head_number=15)

        assert tracked.depth == 5
        assert tracked.to_dict()["depth"] == 5


class TestSingleConfirmation:
    """Tests for watching one transaction."""

    async def test_confirms_once_deep_enough(self):
        """Should return the receipt once the head is blocks_to_wait past it."""
        root = chain_with_head(16, heads=[16, 17, 18])
        watcher = ConfirmationWatcher(root, poll_interval_seconds=POLL, blocks_to_wait=2)

        receipt = await watcher.confirm("0xtx")

        assert receipt["blockNumber"] == hex(16)
        assert root.get_transaction.await_count == 1
        progress = watcher.get_progress("0xtx")
        assert progress.state == ConfirmationState.CONFIRMED
        assert progress.head_number == 18

    async def test_waits_for_receipt(self):
        """Should keep polling while the receipt is missing."""
        root = chain_with_head(16, heads=[20])
        receipt = {"transactionHash": "0xtx", "blockNumber": hex(16)}
        root.get_transaction_receipt = AsyncMock(side_effect=[None, None, receipt])
        watcher = ConfirmationWatcher(root, poll_interval_seconds=POLL, blocks_to_wait=2)

        assert await watcher.confirm("0xtx") == receipt
        assert root.get_transaction_receipt.await_count == 3

    async def test_uncle_detected_when_transaction_loses_block(self):
        """Should raise when the re-fetched transaction has no block number."""
        root = chain_with_head(16, heads=[20])
        root.get_transaction = AsyncMock(return_value={"hash": "0xtx", "blockNumber": None})
        watcher = ConfirmationWatcher(root, poll_interval_seconds=POLL, blocks_to_wait=2)

        with pytest.raises(UncleDetectedError) as exc_info:
            await watcher.confirm("0xtx")

        assert "ended up in an uncle block" in str(exc_info.value)
        assert watcher.get_progress("0xtx").state == ConfirmationState.UNCLE_DETECTED

    async def test_uncle_detected_when_transaction_missing(self):
        """Should raise when the transaction can no longer be found."""
        root = chain_with_head(16, heads=[20])
        root.get_transaction = AsyncMock(return_value=None)
        watcher = ConfirmationWatcher(root, poll_interval_seconds=POLL, blocks_to_wait=2)

        with pytest.raises(UncleDetectedError):
            await watcher.confirm("0xtx")

    async def test_zero_blocks_accepts_first_receipt(self):
        """Should confirm on any receipt without depth queries."""
        root = chain_with_head(16, heads=[16])
        root.get_transaction_receipt = AsyncMock(return_value={"transactionHash": "0xtx"})
        watcher = ConfirmationWatcher(root, poll_interval_seconds=POLL, blocks_to_wait=13)

        receipt = await watcher.confirm("0xtx", blocks_to_wait=0)

        assert receipt == {"transactionHash": "0xtx"}
        root.get_block.assert_not_awaited()
        root.get_transaction.assert_not_awaited()

    async def test_receipt_without_block_number_never_confirms(self):
        """Should stay awaiting the receipt and time out."""
        root = chain_with_head(16, heads=[100])
        root.get_transaction_receipt = AsyncMock(return_value={"transactionHash": "0xtx", "blockNumber": None})
        watcher = ConfirmationWatcher(root, poll_interval_seconds=POLL, blocks_to_wait=2)

        with pytest.raises(ConfirmationTimeoutError) as exc_info:
            await watcher.confirm("0xtx", timeout_seconds=0.05)

        assert exc_info.value.details["state"] == ConfirmationState.AWAITING_RECEIPT.value
        root.get_block.assert_not_awaited()

    async def test_receipt_error_is_terminal(self):
        """Should fail on the first receipt lookup error."""
        root = chain_with_head(16, heads=[20])
        root.get_transaction_receipt = AsyncMock(side_effect=RPCError("node down", code=-32000))
        watcher = ConfirmationWatcher(root, poll_interval_seconds=POLL, blocks_to_wait=2)

        with pytest.raises(ConfirmationError) as exc_info:
            await watcher.confirm("0xtx")

        assert isinstance(exc_info.value.__cause__, RPCError)
        assert root.get_transaction_receipt.await_count == 1

    async def test_depth_errors_are_retried(self):
        """Should retry transient errors while waiting for depth."""
        root = chain_with_head(16, heads=[20])
        real_get_block = root.get_block.side_effect
        failures = {"left": 2}

        async def flaky_get_block(block):
            if failures["left"]:
                failures["left"] -= 1
                raise RPCError("header not found")
            return await real_get_block(block)

        root.get_block = AsyncMock(side_effect=flaky_get_block)
        watcher = ConfirmationWatcher(root, poll_interval_seconds=POLL, blocks_to_wait=2)

        receipt = await watcher.confirm("0xtx")

        assert receipt["blockNumber"] == hex(16)
        assert watcher.get_progress("0xtx").state == ConfirmationState.CONFIRMED

    async def test_default_timeout_from_constructor(self):
        """Should apply the watcher's default timeout."""
        root = chain_with_head(16, heads=[20])
        root.get_transaction_receipt = AsyncMock(return_value=None)
        watcher = ConfirmationWatcher(root, poll_interval_seconds=POLL, blocks_to_wait=2, timeout_seconds=0.02)

        with pytest.raises(ConfirmationTimeoutError):
            await watcher.confirm("0xtx")


class TestBatchConfirmation:
    """Tests for watching several transactions."""

    async def test_results_in_input_order(self):
        """Should resolve to receipts in input order."""
        root = chain_with_head(16, heads=[30])
        receipts = {
            "0xa": {"transactionHash": "0xa", "blockNumber": hex(16)},
            "0xb": {"transactionHash": "0xb", "blockNumber": hex(16)},
        }
        delays = {"0xa": 0.02, "0xb": 0.0}

        async def get_receipt(tx_hash):
            await asyncio.sleep(delays[tx_hash])
            return receipts[tx_hash]

        root.get_transaction_receipt = AsyncMock(side_effect=get_receipt)
        watcher = ConfirmationWatcher(root, poll_interval_seconds=POLL, blocks_to_wait=2)

        result = await watcher.confirm(["0xa", "0xb"])

        assert result == [receipts["0xa"], receipts["0xb"]]

    async def test_empty_batch(self):
        """Should resolve an empty batch to an empty list."""
        watcher = ConfirmationWatcher(chain_with_head(1, heads=[1]), poll_interval_seconds=POLL)

        assert await watcher.confirm([]) == []

    async def test_first_failure_cancels_the_rest(self):
        """Should raise the first failure without waiting for pending hashes."""
        root = chain_with_head(16, heads=[30])

        async def get_receipt(tx_hash):
            if tx_hash == "0xbad":
                return {"transactionHash": "0xbad", "blockNumber": hex(16)}
            return None

        root.get_transaction_receipt = AsyncMock(side_effect=get_receipt)
        root.get_transaction = AsyncMock(return_value=None)
        watcher = ConfirmationWatcher(root, poll_interval_seconds=POLL, blocks_to_wait=2)

        with pytest.raises(UncleDetectedError):
            await asyncio.wait_for(watcher.confirm(["0xpending", "0xbad"]), timeout=2)

        assert watcher.get_progress("0xpending").state == ConfirmationState.AWAITING_RECEIPT
        polls = watcher.get_progress("0xpending").polls
        await asyncio.sleep(0.02)
        assert watcher.get_progress("0xpending").polls == polls


class TestCallbacksAndStats:
    """Tests for callbacks and statistics."""

    async def test_confirmation_callbacks(self):
        """Should notify sync and async confirmation callbacks."""
        root = chain_with_head(16, heads=[20])
        watcher = ConfirmationWatcher(root, poll_interval_seconds=POLL, blocks_to_wait=2)
        sync_callback = MagicMock()
        async_callback = AsyncMock()
        watcher.add_confirmation_callback(sync_callback)
        watcher.add_confirmation_callback(async_callback)

        await watcher.confirm("0xtx")

        sync_callback.assert_called_once()
        async_callback.assert_awaited_once()
        assert sync_callback.call_args[0][0].tx_hash == "0xtx"

    async def test_uncle_callback(self):
        """Should notify uncle callbacks before raising."""
        root = chain_with_head(16, heads=[20])
        root.get_transaction = AsyncMock(return_value=None)
        watcher = ConfirmationWatcher(root, poll_interval_seconds=POLL, blocks_to_wait=2)
        callback = MagicMock()
        watcher.add_uncle_callback(callback)

        with pytest.raises(UncleDetectedError):
            await watcher.confirm("0xtx")

        callback.assert_called_once()

    async def test_callback_errors_do_not_fail_the_watch(self):
        """Should log and ignore callback errors."""
        root = chain_with_head(16, heads=[20])
        watcher = ConfirmationWatcher(root, poll_interval_seconds=POLL, blocks_to_wait=2)
        watcher.add_confirmation_callback(MagicMock(side_effect=RuntimeError("boom")))

        assert await watcher.confirm("0xtx")

    async def test_stats(self):
        """Should count watched transactions by state."""
        root = chain_with_head(16, heads=[20])
        watcher = ConfirmationWatcher(root, poll_interval_seconds=POLL, blocks_to_wait=2)

        await watcher.confirm(["0xa", "0xb"])
        stats = watcher.get_stats()

        assert stats["tracked_transactions"] == 2
        assert stats["by_state"]["confirmed"] == 2
        assert stats["blocks_to_wait"] == 2


class TestTrackedHistory:
    """Tests for bounding the watch history."""

    async def test_oldest_finished_watches_dropped(self):
        """Should keep only the newest max_tracked finished watches."""
        root = chain_with_head(16, heads=[20])
        watcher = ConfirmationWatcher(
            root, poll_interval_seconds=POLL, blocks_to_wait=0, max_tracked=2,
        )

        for tx_hash in ("0xa", "0xb", "0xc"):
            await watcher.confirm(tx_hash)

        assert watcher.get_progress("0xa") is None
        assert watcher.get_progress("0xb").state == ConfirmationState.CONFIRMED
        assert watcher.get_progress("0xc").finished_at is not None
        assert watcher.get_stats()["tracked_transactions"] == 2

    async def test_rewatched_hash_counts_as_newest(self):
        """Should move a watched-again hash behind older entries."""
        root = chain_with_head(16, heads=[20])
        watcher = ConfirmationWatcher(
            root, poll_interval_seconds=POLL, blocks_to_wait=0, max_tracked=2,
        )

        for tx_hash in ("0xa", "0xb", "0xa", "0xc"):
            await watcher.confirm(tx_hash)

        assert watcher.get_progress("0xb") is None
        assert watcher.get_progress("0xa") is not None

    async def test_failed_watch_is_finished(self):
        """Should mark watches that raised as finished."""
        root = chain_with_head(16, heads=[20])
        root.get_transaction_receipt = AsyncMock(side_effect=RPCError("connection refused"))
        watcher = ConfirmationWatcher(root, poll_interval_seconds=POLL, blocks_to_wait=2)

        with pytest.raises(ConfirmationError):
            await watcher.confirm("0xtx")

        assert watcher.get_progress("0xtx").finished_at is not None

    async def test_untrack(self):
        """Should forget a watch on request."""
        root = chain_with_head(16, heads=[20])
        watcher = ConfirmationWatcher(root, poll_interval_seconds=POLL, blocks_to_wait=0)
        await watcher.confirm("0xtx")

        assert watcher.untrack("0xtx") is True
        assert watcher.get_progress("0xtx") is None
        assert watcher.untrack("0xtx") is False
