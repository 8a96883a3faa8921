"""Confirmation tracker: state transitions, reorgs, retries and cancellation."""

from __future__ import annotations

import asyncio

import pytest

from bebaiosis.errors import ConfirmationTimeout, TransportError
from bebaiosis.pneuma.confirm import (
    ConfirmationState,
    ConfirmationStatus,
    ConfirmationTracker,
    DropReason,
    advance,
    wait_for_confirmations,
)

from conftest import TX_HASH, FakeTransport, receipt

FAST = 0.001


def _state(required: int = 3) -> ConfirmationState:
    return ConfirmationState(tx_hash=TX_HASH, required_confirmations=required)


def _tracker(transport: FakeTransport, **options) -> tuple[ConfirmationTracker, list[ConfirmationState]]:
    updates: list[ConfirmationState] = []
    options.setdefault("poll_interval", FAST)
    tracker = ConfirmationTracker(transport, TX_HASH, on_update=updates.append, **options)
    return tracker, updates


# ============ advance() ============


class TestAdvance:
    """Pure state transitions for one new-block observation."""

    def test_pending_without_receipt(self) -> None:
        state = advance(_state(), 100, None)
        assert state.status is ConfirmationStatus.PENDING
        assert state.confirmations_seen == 0
        assert state.last_observed_block == 100

    def test_first_sighting_counts_inclusion_block(self) -> None:
        state = advance(_state(), 100, receipt(100))
        assert state.status is ConfirmationStatus.ACCUMULATING
        assert state.confirmations_seen == 1
        assert state.inclusion_block == 100

    def test_recomputed_across_skipped_blocks(self) -> None:
        state = advance(_state(5), 100, receipt(100))
        advance(state, 103, receipt(100))
        assert state.confirmations_seen == 4

    def test_monotonic_without_reorg(self) -> None:
        state = _state(10)
        seen = []
        for block in [100, 101, 101, 100, 104, 102, 105]:
            advance(state, block, receipt(100))
            seen.append(state.confirmations_seen)
        assert seen == sorted(seen)
        assert seen[-1] == 6

    def test_head_behind_inclusion_counts_one(self) -> None:
        state = advance(_state(), 99, receipt(100))
        assert state.confirmations_seen == 1
        assert state.last_observed_block == 100

    def test_confirmed_at_required_depth(self) -> None:
        state = _state(3)
        advance(state, 100, receipt(100))
        advance(state, 101, receipt(100))
        assert state.status is ConfirmationStatus.ACCUMULATING
        advance(state, 102, receipt(100))
        assert state.status is ConfirmationStatus.CONFIRMED
        assert state.confirmations_seen == 3

    def test_zero_required_confirms_on_first_receipt(self) -> None:
        state = _state(0)
        advance(state, 100, None)
        assert state.status is ConfirmationStatus.PENDING
        advance(state, 101, receipt(101))
        assert state.status is ConfirmationStatus.CONFIRMED

    def test_receipt_vanishing_resets_to_pending(self) -> None:
        state = _state(3)
        advance(state, 100, receipt(100))
        advance(state, 101, receipt(100))
        advance(state, 102, None)
        assert state.status is ConfirmationStatus.PENDING
        assert state.confirmations_seen == 0
        assert state.inclusion_block is None
        assert state.reorgs == 1
        assert state.missing_since_reorg == 1

    def test_reappearing_receipt_counts_from_new_block(self) -> None:
        state = _state(3)
        advance(state, 100, receipt(100))
        advance(state, 101, None)
        advance(state, 103, receipt(102))
        assert state.confirmations_seen == 2
        assert state.inclusion_block == 102
        assert state.missing_since_reorg == 0
        assert state.status is ConfirmationStatus.ACCUMULATING

    def test_inclusion_block_moving_is_a_reorg(self) -> None:
        state = _state(5)
        advance(state, 101, receipt(100))
        advance(state, 102, receipt(102))
        assert state.confirmations_seen == 1
        assert state.reorgs == 1

    def test_missing_counter_grows_only_after_reorg(self) -> None:
        state = _state()
        advance(state, 100, None)
        advance(state, 101, None)
        assert state.missing_since_reorg == 0

    def test_terminal_state_is_untouched(self) -> None:
        state = _state(1)
        advance(state, 100, receipt(100))
        advance(state, 101, None)
        assert state.status is ConfirmationStatus.CONFIRMED
        assert state.confirmations_seen == 1

    def test_failed_execution_still_confirms(self) -> None:
        state = advance(_state(1), 100, receipt(100, status=0))
        assert state.status is ConfirmationStatus.CONFIRMED
        assert state.succeeded is False


class TestConfirmationState:

    def test_snapshot_is_a_copy(self) -> None:
        state = _state()
        snapshot = state.snapshot()
        advance(state, 100, receipt(100))
        assert snapshot.confirmations_seen == 0

    def test_raise_for_status(self) -> None:
        state = _state()
        state.status = ConfirmationStatus.DROPPED
        state.drop_reason = DropReason.GAVE_UP
        with pytest.raises(ConfirmationTimeout, match="gave_up"):
            state.raise_for_status()

    def test_raise_for_status_passes_through(self) -> None:
        state = advance(_state(1), 100, receipt(100))
        assert state.raise_for_status() is state


# ============ ConfirmationTracker ============


class TestTrackerPolling:
    """Polling eth_blockNumber when the transport cannot push."""

    @pytest.mark.asyncio
    async def test_confirms_exactly_at_third_block(self) -> None:
        transport = FakeTransport(blocks=[100, 101, 102, 103], receipts=[receipt(100)])
        tracker, updates = _tracker(transport, confirmations=3)

        state = await tracker.wait()

        assert state.status is ConfirmationStatus.CONFIRMED
        assert [(u.last_observed_block, u.status) for u in updates] == [
            (100, ConfirmationStatus.ACCUMULATING),
            (101, ConfirmationStatus.ACCUMULATING),
            (102, ConfirmationStatus.CONFIRMED),
        ]
        assert [u.confirmations_seen for u in updates] == [1, 2, 3]
        assert transport.methods().count("eth_blockNumber") == 3

    @pytest.mark.asyncio
    async def test_pending_before_receipt(self) -> None:
        transport = FakeTransport(blocks=[99, 100, 101], receipts=[None, receipt(100)])
        tracker, updates = _tracker(transport, confirmations=2)

        state = await tracker.wait()

        assert state.status is ConfirmationStatus.CONFIRMED
        assert updates[0].status is ConfirmationStatus.PENDING
        assert state.inclusion_block == 100

    @pytest.mark.asyncio
    async def test_unchanged_block_is_not_refetched(self) -> None:
        transport = FakeTransport(blocks=[100, 100, 100, 101], receipts=[receipt(100)])
        tracker, _ = _tracker(transport, confirmations=2)

        await tracker.wait()

        assert transport.methods().count("eth_getTransactionReceipt") == 2

    @pytest.mark.asyncio
    async def test_reorg_reset_then_confirm(self) -> None:
        transport = FakeTransport(
            blocks=[100, 101, 102, 103, 104],
            receipts=[receipt(100), receipt(100), None, receipt(102)],
        )
        tracker, updates = _tracker(transport, confirmations=3)

        state = await tracker.wait()

        assert [u.confirmations_seen for u in updates] == [1, 2, 0, 2, 3]
        assert state.status is ConfirmationStatus.CONFIRMED
        assert state.inclusion_block == 102
        assert state.reorgs == 1

    @pytest.mark.asyncio
    async def test_reorg_patience_exhausted(self) -> None:
        transport = FakeTransport(
            blocks=[100, 101, 102, 103, 104, 105],
            receipts=[receipt(100), None],
        )
        tracker, updates = _tracker(transport, confirmations=3, reorg_patience=2)

        state = await tracker.wait()

        assert state.status is ConfirmationStatus.DROPPED
        assert state.drop_reason is DropReason.REORG
        assert state.last_observed_block == 103
        assert updates[-1].drop_reason is DropReason.REORG

    @pytest.mark.asyncio
    async def test_zero_confirmations(self) -> None:
        transport = FakeTransport(blocks=[100], receipts=[receipt(100)])
        state = await wait_for_confirmations(transport, TX_HASH, confirmations=0, poll_interval=FAST)
        assert state.status is ConfirmationStatus.CONFIRMED


class TestTrackerRetries:
    """Transport errors are retried with backoff, optionally up to a cap."""

    @pytest.mark.asyncio
    async def test_recovers_from_transient_errors(self) -> None:
        transport = FakeTransport(blocks=[100], receipts=[receipt(100)])
        transport.fail("eth_blockNumber", TransportError("down"), TransportError("down"))
        transport.fail("eth_getTransactionReceipt", TransportError("flaky"))
        tracker, _ = _tracker(transport, confirmations=1, max_attempts=3)

        state = await tracker.wait()

        assert state.status is ConfirmationStatus.CONFIRMED
        assert transport.methods().count("eth_blockNumber") == 3
        assert transport.methods().count("eth_getTransactionReceipt") == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self) -> None:
        transport = FakeTransport(blocks=[100], receipts=[receipt(100)])
        transport.fail("eth_blockNumber", *[TransportError("down")] * 5)
        tracker, updates = _tracker(transport, confirmations=1, max_attempts=3)

        state = await tracker.wait()

        assert state.status is ConfirmationStatus.DROPPED
        assert state.drop_reason is DropReason.GAVE_UP
        assert transport.methods().count("eth_blockNumber") == 3
        assert updates[-1].status is ConfirmationStatus.DROPPED
        with pytest.raises(ConfirmationTimeout):
            state.raise_for_status()

    @pytest.mark.asyncio
    async def test_retries_forever_by_default(self) -> None:
        transport = FakeTransport(blocks=[100], receipts=[receipt(100)])
        transport.fail("eth_blockNumber", *[TransportError("down")] * 6)
        tracker, _ = _tracker(transport, confirmations=1, max_backoff=FAST)

        state = await tracker.wait()

        assert state.status is ConfirmationStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_malformed_block_number_is_retried(self) -> None:
        transport = FakeTransport(blocks=["0xzz", 100], receipts=[receipt(100)])
        tracker, _ = _tracker(transport, confirmations=1, use_subscription=False)

        state = await tracker.wait()

        assert state.status is ConfirmationStatus.CONFIRMED
        assert transport.methods().count("eth_blockNumber") == 2

    @pytest.mark.asyncio
    async def test_malformed_receipt_is_retried(self) -> None:
        transport = FakeTransport(
            blocks=[100], receipts=[{"blockNumber": "junk"}, receipt(100)]
        )
        tracker, _ = _tracker(transport, confirmations=1, use_subscription=False)

        state = await tracker.wait()

        assert state.status is ConfirmationStatus.CONFIRMED
        assert transport.methods().count("eth_getTransactionReceipt") == 2

    @pytest.mark.asyncio
    async def test_persistent_garbage_gives_up(self) -> None:
        transport = FakeTransport(blocks=["not-a-number"], receipts=[None])
        tracker, _ = _tracker(transport, confirmations=1, max_attempts=3, use_subscription=False)

        state = await tracker.wait()

        assert state.status is ConfirmationStatus.DROPPED
        assert state.drop_reason is DropReason.GAVE_UP
        assert transport.methods().count("eth_blockNumber") == 3

    def test_backoff_is_bounded(self) -> None:
        tracker = ConfirmationTracker(
            FakeTransport(), TX_HASH, poll_interval=1.0, max_backoff=5.0
        )
        assert [tracker._backoff(n) for n in range(1, 6)] == [1.0, 2.0, 4.0, 5.0, 5.0]

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        transport = FakeTransport(blocks=[100], receipts=[None])
        tracker, updates = _tracker(transport, confirmations=1, timeout=0.05)

        state = await tracker.wait()

        assert state.status is ConfirmationStatus.DROPPED
        assert state.drop_reason is DropReason.TIMEOUT
        assert updates[-1].drop_reason is DropReason.TIMEOUT


class TestTrackerSubscription:
    """newHeads notifications drive the tracker when available."""

    @pytest.mark.asyncio
    async def test_follows_new_heads(self) -> None:
        transport = FakeTransport(
            receipts=[receipt(100)],
            heads=[{"number": "0x64"}, {"number": "0x65"}, {"number": "0x66"}],
        )
        tracker, updates = _tracker(transport, confirmations=2)

        state = await tracker.wait()

        assert state.status is ConfirmationStatus.CONFIRMED
        assert state.last_observed_block == 101
        assert "eth_blockNumber" not in transport.methods()
        assert transport.subscriptions_closed == 1

    @pytest.mark.asyncio
    async def test_falls_back_to_polling_when_unsupported(self) -> None:
        transport = FakeTransport(blocks=[100], receipts=[receipt(100)])
        tracker, _ = _tracker(transport, confirmations=1)

        state = await tracker.wait()

        assert state.status is ConfirmationStatus.CONFIRMED
        assert transport.methods()[:2] == ["eth_subscribe", "eth_blockNumber"]

    @pytest.mark.asyncio
    async def test_falls_back_to_polling_when_stream_fails(self) -> None:
        transport = FakeTransport(
            blocks=[101],
            receipts=[receipt(100)],
            heads=[{"number": "0x64"}],
            subscribe_error=TransportError("socket closed"),
        )
        tracker, updates = _tracker(transport, confirmations=2)

        state = await tracker.wait()

        assert state.status is ConfirmationStatus.CONFIRMED
        assert [u.last_observed_block for u in updates] == [100, 101]
        assert transport.subscriptions_closed == 1

    @pytest.mark.asyncio
    async def test_falls_back_to_polling_on_malformed_head(self) -> None:
        transport = FakeTransport(
            blocks=[100], receipts=[receipt(100)], heads=[{"hash": "0x01"}]
        )
        tracker, _ = _tracker(transport, confirmations=1)

        state = await tracker.wait()

        assert state.status is ConfirmationStatus.CONFIRMED
        assert transport.methods()[:2] == ["eth_subscribe", "eth_blockNumber"]
        assert transport.subscriptions_closed == 1

    @pytest.mark.asyncio
    async def test_subscription_can_be_disabled(self) -> None:
        transport = FakeTransport(blocks=[100], receipts=[receipt(100)], heads=[])
        tracker, _ = _tracker(transport, confirmations=1, use_subscription=False)

        await tracker.wait()

        assert "eth_subscribe" not in transport.methods()


class TestTrackerLifecycle:
    """Cancellation, context management and independence."""

    @pytest.mark.asyncio
    async def test_cancel_is_idempotent_and_stops_polling(self) -> None:
        transport = FakeTransport(blocks=[100], receipts=[None])
        tracker, _ = _tracker(transport, confirmations=1, poll_interval=0.005)

        task = tracker.start()
        await asyncio.sleep(0.03)
        tracker.cancel()
        tracker.cancel()
        await asyncio.wait({task})

        assert tracker.cancelled
        assert task.cancelled()
        calls = len(transport.calls)
        await asyncio.sleep(0.03)
        assert len(transport.calls) == calls
        tracker.cancel()

    @pytest.mark.asyncio
    async def test_wait_raises_after_cancel(self) -> None:
        transport = FakeTransport(blocks=[100], receipts=[None])
        tracker, _ = _tracker(transport, confirmations=1)
        tracker.start()
        await asyncio.sleep(0)
        tracker.cancel()
        with pytest.raises(asyncio.CancelledError):
            await tracker.wait()

    @pytest.mark.asyncio
    async def test_cancel_before_start_never_observes(self) -> None:
        transport = FakeTransport(blocks=[100], receipts=[receipt(100)], heads=[{"number": "0x64"}])
        tracker, updates = _tracker(transport, confirmations=1)
        tracker.cancel()
        tracker.cancel()

        with pytest.raises(asyncio.CancelledError):
            await tracker.wait()

        assert tracker.cancelled
        assert transport.calls == []
        assert updates == []
        assert tracker.state.status is ConfirmationStatus.PENDING

    @pytest.mark.asyncio
    async def test_run_after_cancel_never_observes(self) -> None:
        transport = FakeTransport(blocks=[100], receipts=[receipt(100)])
        tracker, _ = _tracker(transport, confirmations=1)
        tracker.cancel()

        with pytest.raises(asyncio.CancelledError):
            await tracker.run()

        assert transport.calls == []

    @pytest.mark.asyncio
    async def test_cancel_stops_a_directly_awaited_run(self) -> None:
        transport = FakeTransport(blocks=[100], receipts=[None])
        tracker, _ = _tracker(transport, confirmations=1, poll_interval=0.005)

        runner = asyncio.ensure_future(tracker.run())
        await asyncio.sleep(0.03)
        tracker.cancel()
        await asyncio.wait({runner})

        assert runner.cancelled()
        calls = len(transport.calls)
        await asyncio.sleep(0.03)
        assert len(transport.calls) == calls

    @pytest.mark.asyncio
    async def test_cancel_from_update_callback(self) -> None:
        transport = FakeTransport(blocks=[100, 101, 102], receipts=[receipt(100)])
        tracker = ConfirmationTracker(
            transport,
            TX_HASH,
            confirmations=5,
            poll_interval=FAST,
            use_subscription=False,
            on_update=lambda state: tracker.cancel(),
        )

        with pytest.raises(asyncio.CancelledError):
            await tracker.run()

        assert transport.methods() == ["eth_blockNumber", "eth_getTransactionReceipt"]

    @pytest.mark.asyncio
    async def test_cancel_releases_subscription(self) -> None:
        class EndlessHeads(FakeTransport):
            async def subscribe(self, params):
                self.calls.append(("eth_subscribe", list(params)))
                try:
                    number = 100
                    while True:
                        await asyncio.sleep(0.001)
                        yield hex(number)
                        number += 1
                finally:
                    self.subscriptions_closed += 1

        transport = EndlessHeads(receipts=[None])
        async with ConfirmationTracker(transport, TX_HASH, confirmations=1) as tracker:
            await asyncio.sleep(0.02)

        assert tracker.cancelled
        assert transport.subscriptions_closed == 1
        calls = len(transport.calls)
        await asyncio.sleep(0.02)
        assert len(transport.calls) == calls

    @pytest.mark.asyncio
    async def test_state_is_a_snapshot(self) -> None:
        transport = FakeTransport(blocks=[100], receipts=[receipt(100)])
        tracker, _ = _tracker(transport, confirmations=1)
        before = tracker.state
        await tracker.wait()
        assert before.status is ConfirmationStatus.PENDING
        assert tracker.state.status is ConfirmationStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_trackers_for_same_hash_are_independent(self) -> None:
        transport = FakeTransport(blocks=[100, 101, 102, 103, 104, 105], receipts=[receipt(100)])
        one = ConfirmationTracker(transport, TX_HASH, confirmations=1, poll_interval=FAST)
        three = ConfirmationTracker(transport, TX_HASH, confirmations=3, poll_interval=FAST)

        first, second = await asyncio.gather(one.wait(), three.wait())

        assert first.status is ConfirmationStatus.CONFIRMED
        assert second.status is ConfirmationStatus.CONFIRMED
        assert first.required_confirmations == 1
        assert second.required_confirmations == 3
        assert second.confirmations_seen >= 3

    @pytest.mark.parametrize(
        "options",
        [{"confirmations": -1}, {"poll_interval": 0}, {"max_attempts": 0}],
    )
    def test_invalid_options(self, options: dict) -> None:
        with pytest.raises(ValueError):
            ConfirmationTracker(FakeTransport(), TX_HASH, **options)
