"""
Confirmation Tracker - follow a submitted transaction to a required depth.

One tracker per transaction hash, running as an asyncio task:

    pending ──receipt seen──▶ accumulating ──depth reached──▶ confirmed
       ▲                          │
       └────receipt vanished──────┘ (reorg: confirmations reset to 0)

    any non-terminal state ──limits exceeded──▶ dropped
        reorg    receipt stayed missing after a reorg for too long
        gave_up  too many consecutive transport failures
        timeout  the caller's overall time bound elapsed

Confirmations are recomputed from the inclusion block on every new-block
signal (``head - inclusion + 1``), never incremented blindly, so skipped
blocks and late polls still produce the right depth. They never decrease
while the inclusion block is unchanged.

New-block signals come from an ``eth_subscribe("newHeads")`` stream when
the transport supports it, and from polling ``eth_blockNumber`` otherwise
(or once the stream fails). Transport errors are retried with bounded
exponential backoff.

Usage:
    tracker = ConfirmationTracker(transport, tx_hash, confirmations=3)
    state = await tracker.wait()
    if state.status is ConfirmationStatus.CONFIRMED:
        ...

    async with ConfirmationTracker(transport, tx_hash) as tracker:
        ...  # leaving the block cancels the tracker
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeVar

from ..errors import ConfirmationTimeout, SubscriptionUnsupported, TransportError
from ..utils import hex_to_int
from . import rpc
from .transport import Transport

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_POLL_INTERVAL = 1.0
DEFAULT_MAX_BACKOFF = 30.0
DEFAULT_REORG_PATIENCE = 12

NEW_HEADS = "newHeads"


class ConfirmationStatus(str, Enum):
    PENDING = "pending"
    ACCUMULATING = "accumulating"
    CONFIRMED = "confirmed"
    DROPPED = "dropped"

    @property
    def is_terminal(self) -> bool:
        return self in (ConfirmationStatus.CONFIRMED, ConfirmationStatus.DROPPED)


class DropReason(str, Enum):
    REORG = "reorg"
    GAVE_UP = "gave_up"
    TIMEOUT = "timeout"


@dataclass
class ConfirmationState:
    """Observed progress of one tracked transaction.

    Attributes:
        tx_hash: 0x-prefixed transaction hash.
        required_confirmations: Depth N at which the tx counts as confirmed.
            Zero is satisfied by the first receipt sighting.
        poll_interval: Seconds between polls (and the backoff base).
        confirmations_seen: Current depth; 0 until a receipt is seen.
        last_observed_block: Latest head the tracker has acted on.
        inclusion_block: Block number from the current receipt.
        status: Lifecycle state.
        drop_reason: Why the tracker gave up; set only when dropped.
        receipt: The latest receipt, as returned by the node.
        reorgs: Number of times the inclusion block changed or vanished.
        missing_since_reorg: Consecutive observations without a receipt
            since the last reorg. Zero when no reorg is outstanding.
    """

    tx_hash: str
    required_confirmations: int
    poll_interval: float = DEFAULT_POLL_INTERVAL
    confirmations_seen: int = 0
    last_observed_block: Optional[int] = None
    inclusion_block: Optional[int] = None
    status: ConfirmationStatus = ConfirmationStatus.PENDING
    drop_reason: Optional[DropReason] = None
    receipt: Optional[dict[str, Any]] = None
    reorgs: int = 0
    missing_since_reorg: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def succeeded(self) -> Optional[bool]:
        """Receipt execution status, or None without a receipt."""
        if self.receipt is None or self.receipt.get("status") is None:
            return None
        return hex_to_int(self.receipt["status"]) == 1

    def snapshot(self) -> "ConfirmationState":
        return replace(self)

    def raise_for_status(self) -> "ConfirmationState":
        """Raise ``ConfirmationTimeout`` if dropped; otherwise return self."""
        if self.status is ConfirmationStatus.DROPPED:
            reason = self.drop_reason.value if self.drop_reason else "unknown"
            raise ConfirmationTimeout(self.tx_hash, reason)
        return self


def _inclusion_block(receipt: Optional[dict[str, Any]]) -> Optional[int]:
    # Some nodes return receipts for pending transactions with a null block.
    if not receipt or receipt.get("blockNumber") is None:
        return None
    return hex_to_int(receipt["blockNumber"])


def advance(
    state: ConfirmationState,
    current_block: int,
    receipt: Optional[dict[str, Any]],
) -> ConfirmationState:
    """Apply one new-block observation to ``state`` (in place) and return it.

    Terminal states are left untouched.
    """
    if state.is_terminal:
        return state

    inclusion = _inclusion_block(receipt)

    if inclusion is None:
        if state.status is ConfirmationStatus.ACCUMULATING:
            logger.warning(
                "Receipt for %s vanished at block %d (was in block %s); resetting",
                state.tx_hash, current_block, state.inclusion_block,
            )
            state.status = ConfirmationStatus.PENDING
            state.confirmations_seen = 0
            state.inclusion_block = None
            state.receipt = None
            state.reorgs += 1
            state.missing_since_reorg = 1
        elif state.missing_since_reorg:
            state.missing_since_reorg += 1
        state.last_observed_block = current_block
        return state

    head = max(current_block, inclusion)
    confirmations = head - inclusion + 1
    if state.inclusion_block is not None and state.inclusion_block != inclusion:
        logger.warning(
            "Transaction %s moved from block %d to block %d",
            state.tx_hash, state.inclusion_block, inclusion,
        )
        state.reorgs += 1
    elif state.inclusion_block == inclusion:
        confirmations = max(confirmations, state.confirmations_seen)

    state.inclusion_block = inclusion
    state.receipt = receipt
    state.confirmations_seen = confirmations
    state.last_observed_block = head
    state.missing_since_reorg = 0

    if confirmations >= state.required_confirmations:
        state.status = ConfirmationStatus.CONFIRMED
    else:
        state.status = ConfirmationStatus.ACCUMULATING
    return state


class _GaveUp(Exception):
    pass


class ConfirmationTracker:
    """Asyncio watcher for one transaction hash.

    Args:
        transport: Read-only handle used for receipts and block signals.
        tx_hash: 0x-prefixed transaction hash.
        confirmations: Required depth (>= 0).
        poll_interval: Seconds between ``eth_blockNumber`` polls, and the
            first retry delay after a transport error.
        max_attempts: Consecutive transport failures tolerated before
            dropping with ``gave_up``. None retries forever.
        reorg_patience: Observations a receipt may stay missing after a
            reorg before dropping with ``reorg``. None waits forever.
        timeout: Overall bound in seconds; exceeding it drops with
            ``timeout``. None waits forever.
        max_backoff: Upper bound for the retry delay.
        use_subscription: Try ``eth_subscribe("newHeads")`` before polling.
        on_update: Called with a state snapshot after every observation
            and on every terminal transition.
    """

    def __init__(
        self,
        transport: Transport,
        tx_hash: str,
        *,
        confirmations: int = 1,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        max_attempts: Optional[int] = None,
        reorg_patience: Optional[int] = DEFAULT_REORG_PATIENCE,
        timeout: Optional[float] = None,
        max_backoff: float = DEFAULT_MAX_BACKOFF,
        use_subscription: bool = True,
        on_update: Optional[Callable[[ConfirmationState], None]] = None,
    ) -> None:
        if confirmations < 0:
            raise ValueError("confirmations must be >= 0")
        if poll_interval <= 0:
            raise ValueError("poll_interval must be > 0")
        if max_attempts is not None and max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._transport = transport
        self._state = ConfirmationState(
            tx_hash=tx_hash,
            required_confirmations=confirmations,
            poll_interval=poll_interval,
        )
        self._max_attempts = max_attempts
        self._reorg_patience = reorg_patience
        self._timeout = timeout
        self._max_backoff = max_backoff
        self._use_subscription = use_subscription
        self._on_update = on_update
        self._failures = 0
        self._task: Optional[asyncio.Task[ConfirmationState]] = None
        self._runner: Optional[asyncio.Task[Any]] = None
        self._cancelled = False

    @property
    def tx_hash(self) -> str:
        return self._state.tx_hash

    @property
    def state(self) -> ConfirmationState:
        """A copy of the current state."""
        return self._state.snapshot()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    # -----------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------

    def start(self) -> "asyncio.Task[ConfirmationState]":
        """Schedule ``run()`` as a task (once) and return it.

        After ``cancel()`` the returned task is already cancelled and
        ``run()`` never executes.
        """
        if self._task is None:
            self._task = asyncio.create_task(self.run(), name=f"confirm-{self.tx_hash}")
            if self._cancelled:
                self._task.cancel()
        return self._task

    async def wait(self) -> ConfirmationState:
        """Start if needed and wait for the terminal state.

        Raises:
            asyncio.CancelledError: If the tracker was cancelled.
        """
        return await self.start()

    def cancel(self) -> None:
        """Stop observing. Safe to call any number of times.

        Cancels the task started by ``start()``, or the task currently
        awaiting ``run()`` directly, at its next suspension point.
        """
        if self._cancelled:
            return
        self._cancelled = True
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        # From inside the observing task (an on_update callback) the
        # loops see the flag on their own.
        for task in (self._task, self._runner):
            if task is not None and task is not current and not task.done():
                task.cancel()
        logger.debug("Tracker for %s cancelled", self.tx_hash)

    async def __aenter__(self) -> "ConfirmationTracker":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.cancel()
        if self._task is not None:
            await asyncio.wait({self._task})

    # -----------------------------------------------------------------
    # Observation loop
    # -----------------------------------------------------------------

    async def run(self) -> ConfirmationState:
        """Observe until confirmed or dropped and return the final state.

        Raises:
            asyncio.CancelledError: If ``cancel()`` was or gets called.
        """
        self._check_cancelled()
        logger.info(
            "Tracking %s for %d confirmation(s)",
            self.tx_hash, self._state.required_confirmations,
        )
        self._runner = asyncio.current_task()
        try:
            if self._timeout is None:
                await self._observe()
            else:
                await asyncio.wait_for(self._observe(), self._timeout)
        except _GaveUp:
            pass
        except asyncio.TimeoutError:
            self._drop(DropReason.TIMEOUT)
        finally:
            self._runner = None
        self._check_cancelled()
        return self.state

    def _check_cancelled(self) -> None:
        if self._cancelled:
            raise asyncio.CancelledError()

    async def _observe(self) -> None:
        if self._use_subscription:
            try:
                await self._follow_heads()
            except SubscriptionUnsupported:
                logger.debug("Transport has no subscriptions; polling %s", self.tx_hash)
            except TransportError as exc:
                logger.warning("newHeads subscription failed (%s); falling back to polling", exc)
            if self._state.is_terminal:
                return
        await self._poll()

    async def _follow_heads(self) -> None:
        async with contextlib.aclosing(self._transport.subscribe([NEW_HEADS])) as heads:
            async for head in heads:
                self._check_cancelled()
                number = head.get("number") if isinstance(head, dict) else head
                await self._on_block(rpc.quantity("newHeads", number))
                if self._state.is_terminal:
                    return

    async def _poll(self) -> None:
        last_block: Optional[int] = None
        while not self._state.is_terminal:
            self._check_cancelled()
            block = await self._retrying(lambda: rpc.block_number(self._transport))
            if block != last_block:
                last_block = block
                await self._on_block(block)
                if self._state.is_terminal:
                    return
            await asyncio.sleep(self._state.poll_interval)

    async def _on_block(self, block: int) -> None:
        receipt = await self._retrying(
            lambda: rpc.get_transaction_receipt(self._transport, self.tx_hash)
        )
        before = self._state.status
        advance(self._state, block, receipt)
        logger.debug(
            "%s at block %d: %s, %d/%d",
            self.tx_hash, block, self._state.status.value,
            self._state.confirmations_seen, self._state.required_confirmations,
        )
        if self._state.status is not before:
            logger.info("%s: %s -> %s", self.tx_hash, before.value, self._state.status.value)
        if (
            self._reorg_patience is not None
            and self._state.missing_since_reorg > self._reorg_patience
        ):
            self._drop(DropReason.REORG)
            return
        self._notify()

    async def _retrying(self, call: Callable[[], Awaitable[T]]) -> T:
        while True:
            self._check_cancelled()
            try:
                result = await call()
            except TransportError as exc:
                self._failures += 1
                if self._max_attempts is not None and self._failures >= self._max_attempts:
                    logger.error(
                        "Giving up on %s after %d failed attempt(s): %s",
                        self.tx_hash, self._failures, exc,
                    )
                    self._drop(DropReason.GAVE_UP)
                    raise _GaveUp() from exc
                delay = self._backoff(self._failures)
                logger.warning(
                    "RPC failed for %s (attempt %d): %s; retrying in %.2fs",
                    self.tx_hash, self._failures, exc, delay,
                )
                await asyncio.sleep(delay)
            else:
                self._failures = 0
                return result

    def _backoff(self, failures: int) -> float:
        return min(self._state.poll_interval * (2 ** (failures - 1)), self._max_backoff)

    def _drop(self, reason: DropReason) -> None:
        if self._state.is_terminal:
            return
        self._state.status = ConfirmationStatus.DROPPED
        self._state.drop_reason = reason
        logger.warning("%s dropped: %s", self.tx_hash, reason.value)
        self._notify()

    def _notify(self) -> None:
        if self._on_update is not None:
            self._on_update(self.state)


async def wait_for_confirmations(
    transport: Transport,
    tx_hash: str,
    confirmations: int = 1,
    **options: Any,
) -> ConfirmationState:
    """Track ``tx_hash`` in the current task until it is confirmed or dropped.

    Keyword options are passed to ``ConfirmationTracker``.
    """
    tracker = ConfirmationTracker(transport, tx_hash, confirmations=confirmations, **options)
    return await tracker.run()
