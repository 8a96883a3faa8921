"""
Theurgy Watch - Follow a submitted transaction.

Tracks TX_HASH until it reaches the required depth or is dropped,
printing every state change. Exit status is 0 when confirmed and 1
when dropped.
"""

from __future__ import annotations

import asyncio
import sys
from typing import Any, Optional

import click

from ..config import Settings
from ..pneuma.confirm import ConfirmationState, ConfirmationStatus, wait_for_confirmations
from ..pneuma.transport import HttpxTransport, Transport

_STATUS_COLORS = {
    ConfirmationStatus.PENDING: "yellow",
    ConfirmationStatus.ACCUMULATING: "cyan",
    ConfirmationStatus.CONFIRMED: "green",
    ConfirmationStatus.DROPPED: "red",
}


def open_transport(settings: Settings, rpc_url: Optional[str]) -> Transport:
    """HTTP transport for ``--rpc-url`` if given, else from settings."""
    if rpc_url:
        return HttpxTransport(rpc_url)
    return settings.transport()


def print_update(state: ConfirmationState) -> None:
    line = f"  [{state.status.value}] {state.confirmations_seen}/{state.required_confirmations}"
    if state.last_observed_block is not None:
        line += f" at block {state.last_observed_block}"
    if state.drop_reason is not None:
        line += f" ({state.drop_reason.value})"
    click.secho(line, fg=_STATUS_COLORS[state.status])


def report(state: ConfirmationState) -> None:
    """Print the final state and exit non-zero if it was dropped."""
    click.echo()
    if state.status is ConfirmationStatus.CONFIRMED:
        click.secho(
            f"  Confirmed in block {state.inclusion_block} "
            f"({state.confirmations_seen} confirmation(s))",
            fg="green",
            bold=True,
        )
        if state.succeeded is False:
            click.secho("  WARNING: transaction reverted (receipt status 0)", fg="yellow")
        return
    reason = state.drop_reason.value if state.drop_reason else "unknown"
    click.secho(f"  Dropped: {reason}", fg="red", bold=True)
    sys.exit(1)


def tracker_options(
    settings: Settings,
    *,
    poll_interval: Optional[float],
    max_attempts: Optional[int],
    timeout: Optional[float],
    subscribe: bool,
) -> dict[str, Any]:
    options = settings.tracker_options()
    if poll_interval is not None:
        options["poll_interval"] = poll_interval
    if max_attempts is not None:
        options["max_attempts"] = max_attempts
    options["timeout"] = timeout
    options["use_subscription"] = subscribe
    options["on_update"] = print_update
    return options


@click.command()
@click.argument("tx_hash")
@click.option("--confirmations", "-n", type=click.IntRange(min=0), default=None,
              help="Required depth (default: CONFIRMATIONS)")
@click.option("--timeout", type=float, default=None, help="Give up after this many seconds")
@click.option("--poll-interval", type=click.FloatRange(min=0, min_open=True), default=None,
              help="Seconds between polls (default: POLL_INTERVAL)")
@click.option("--max-attempts", type=click.IntRange(min=1), default=None,
              help="Consecutive RPC failures tolerated (default: MAX_ATTEMPTS)")
@click.option("--subscribe/--no-subscribe", default=True, help="Try newHeads before polling")
@click.option("--rpc-url", default=None, help="JSON-RPC URL (default: BEBAIOSIS_RPC_URL)")
@click.pass_obj
def watch(
    settings: Settings,
    tx_hash: str,
    confirmations: Optional[int],
    timeout: Optional[float],
    poll_interval: Optional[float],
    max_attempts: Optional[int],
    subscribe: bool,
    rpc_url: Optional[str],
) -> None:
    """Wait until TX_HASH is confirmed or dropped."""
    required = settings.confirmations if confirmations is None else confirmations
    transport = open_transport(settings, rpc_url)
    options = tracker_options(
        settings,
        poll_interval=poll_interval,
        max_attempts=max_attempts,
        timeout=timeout,
        subscribe=subscribe,
    )

    click.echo(f"  Watching {tx_hash} for {required} confirmation(s)")
    state = asyncio.run(
        wait_for_confirmations(transport, tx_hash, confirmations=required, **options)
    )
    report(state)
