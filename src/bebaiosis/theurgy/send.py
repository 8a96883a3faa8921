"""
Theurgy Send - Submit a transaction and follow it.

Flow:
1. Build the transaction from options (or take a pre-signed ``--raw``)
2. Fill nonce / gas price / gas limit from the node where omitted
3. Sign locally and submit with eth_sendRawTransaction
4. Wait for the required confirmations unless ``--no-wait``
"""

from __future__ import annotations

import asyncio
import sys
from typing import Optional

import click

from ..config import Settings
from ..errors import BebaiosisError, TransportError
from ..pneuma import rpc
from ..pneuma.confirm import wait_for_confirmations
from ..pneuma.tx import sign_and_send
from .sign import build_transaction, key_options, resolve_key, transaction_options
from .watch import open_transport, print_update, report


@click.command()
@transaction_options(required=False)
@key_options
@click.option("--raw", "raw_tx", default=None, help="Submit this signed payload instead of building one")
@click.option("--confirmations", "-n", type=click.IntRange(min=0), default=None,
              help="Required depth (default: CONFIRMATIONS)")
@click.option("--wait/--no-wait", default=True, help="Wait for confirmations after sending")
@click.option("--timeout", type=float, default=None, help="Stop waiting after this many seconds")
@click.option("--rpc-url", default=None, help="JSON-RPC URL (default: BEBAIOSIS_RPC_URL)")
@click.pass_obj
def send(
    settings: Settings,
    to: Optional[str],
    value: int,
    data: str,
    nonce: Optional[int],
    gas_price: Optional[int],
    gas_limit: Optional[int],
    chain_id: Optional[int],
    legacy: bool,
    require_replay_protection: bool,
    keyfile: Optional[str],
    password: Optional[str],
    raw_tx: Optional[str],
    confirmations: Optional[int],
    wait: bool,
    timeout: Optional[float],
    rpc_url: Optional[str],
) -> None:
    """Sign and submit a transaction, then wait for confirmations."""
    required = settings.confirmations if confirmations is None else confirmations
    transport = open_transport(settings, rpc_url)
    options = settings.tracker_options()
    options.update(timeout=timeout, on_update=print_update)

    if raw_tx is not None:
        try:
            tx_hash = asyncio.run(rpc.send_raw_transaction(transport, raw_tx))
        except TransportError as exc:
            click.secho(f"ERROR: {exc}", fg="red")
            sys.exit(1)
        click.echo(f"  Sent: {tx_hash}")
        if wait:
            report(asyncio.run(
                wait_for_confirmations(transport, tx_hash, confirmations=required, **options)
            ))
        return

    try:
        tx = build_transaction(
            settings,
            to=to,
            value=value,
            data=data,
            nonce=nonce,
            gas_price=gas_price,
            gas_limit=gas_limit,
            chain_id=chain_id,
            legacy=legacy,
        )
        key = resolve_key(settings, keyfile, password)
    except (BebaiosisError, ValueError) as exc:
        click.secho(f"ERROR: {exc}", fg="red")
        sys.exit(1)

    if tx.chain_id is None:
        click.secho("  WARNING: no chain id; this transaction is valid on any chain.", fg="yellow")
    click.echo(f"  Sender: {key.address}")

    try:
        result = asyncio.run(sign_and_send(
            transport,
            tx,
            key,
            confirmations=required if wait else None,
            require_replay_protection=require_replay_protection,
            **(options if wait else {}),
        ))
    except (BebaiosisError, ValueError) as exc:
        click.secho(f"ERROR: {exc}", fg="red")
        sys.exit(1)

    click.echo(f"  Sent: {result.tx_hash}")
    if result.confirmation is not None:
        report(result.confirmation)
