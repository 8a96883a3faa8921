"""
Theurgy Sign - Sign a transaction offline.

No node is contacted: nonce, gas price and gas limit must be given. The
raw payload printed here can be submitted later with
``bebaiosis send --raw``.

The chain id defaults to CHAIN_ID from the settings. ``--legacy``
signs without one, producing a transaction that is valid on any chain.
"""

from __future__ import annotations

import sys
from typing import Any, Callable, Optional

import click

from ..config import Settings
from ..errors import BebaiosisError
from ..sigil.keys import LocalKey, load_key, load_keyfile
from ..sigil.signer import sign_with_key
from ..sigil.transaction import RawTransaction


class QuantityType(click.ParamType):
    """Non-negative integer given in decimal or 0x-hex."""

    name = "quantity"

    def convert(self, value: Any, param: Optional[click.Parameter], ctx: Optional[click.Context]) -> int:
        if isinstance(value, int):
            result = value
        else:
            try:
                result = int(str(value), 0)
            except ValueError:
                self.fail(f"{value!r} is not an integer", param, ctx)
        if result < 0:
            self.fail(f"{value!r} is negative", param, ctx)
        return result


QUANTITY = QuantityType()


def key_options(func: Callable) -> Callable:
    """--keyfile / --password, shared by commands that sign."""
    func = click.option(
        "--password",
        envvar="BEBAIOSIS_KEYFILE_PASSWORD",
        default=None,
        help="Keyfile password (prompted if omitted)",
    )(func)
    func = click.option(
        "--keyfile",
        type=click.Path(exists=True, dir_okay=False),
        default=None,
        help="Encrypted JSON keystore to sign with instead of PRIVATE_KEY",
    )(func)
    return func


def transaction_options(required: bool) -> Callable[[Callable], Callable]:
    """Transaction field options. ``required`` applies to nonce and gas."""

    def decorate(func: Callable) -> Callable:
        # An explicit default=None would satisfy required=True.
        field = {"required": True} if required else {"default": None}
        options = [
            click.option("--to", default=None, help="Recipient address (omit to create a contract)"),
            click.option("--value", type=QUANTITY, default=0, help="Value in wei"),
            click.option("--data", default="", help="Call data / init code as hex"),
            click.option("--nonce", type=QUANTITY, help="Sender nonce", **field),
            click.option("--gas-price", type=QUANTITY, help="Gas price in wei", **field),
            click.option("--gas-limit", type=QUANTITY, help="Gas limit", **field),
            click.option("--chain-id", type=QUANTITY, default=None, help="EIP-155 chain id (default: CHAIN_ID)"),
            click.option("--legacy", is_flag=True, help="Sign without a chain id (valid on any chain)"),
            click.option(
                "--require-replay-protection",
                is_flag=True,
                help="Refuse to sign without a chain id",
            ),
        ]
        for option in reversed(options):
            func = option(func)
        return func

    return decorate


def resolve_key(settings: Settings, keyfile: Optional[str], password: Optional[str]) -> LocalKey:
    """Key from ``--keyfile`` if given, otherwise PRIVATE_KEY from settings."""
    if keyfile:
        if password is None:
            password = click.prompt("Keyfile password", hide_input=True)
        return load_keyfile(keyfile, password)
    return load_key(env_path=settings.env_path)


def build_transaction(
    settings: Settings,
    *,
    to: Optional[str],
    value: int,
    data: str,
    nonce: Optional[int],
    gas_price: Optional[int],
    gas_limit: Optional[int],
    chain_id: Optional[int],
    legacy: bool,
) -> RawTransaction:
    if legacy and chain_id is not None:
        raise click.UsageError("--legacy and --chain-id are mutually exclusive")
    if not legacy and chain_id is None:
        chain_id = settings.chain_id
    return RawTransaction(
        nonce=nonce,
        gas_price=gas_price,
        gas_limit=gas_limit,
        to=to,
        value=value,
        data=data,
        chain_id=None if legacy else chain_id,
    )


@click.command()
@transaction_options(required=True)
@key_options
@click.pass_obj
def sign(
    settings: Settings,
    to: Optional[str],
    value: int,
    data: str,
    nonce: int,
    gas_price: int,
    gas_limit: int,
    chain_id: Optional[int],
    legacy: bool,
    require_replay_protection: bool,
    keyfile: Optional[str],
    password: Optional[str],
) -> None:
    """Sign a transaction offline and print its raw payload."""
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
        signed = sign_with_key(tx, key, require_replay_protection=require_replay_protection)
    except (BebaiosisError, ValueError) as exc:
        click.secho(f"ERROR: {exc}", fg="red")
        sys.exit(1)

    if signed.chain_id is None:
        click.secho("  WARNING: no chain id; this transaction is valid on any chain.", fg="yellow")
    click.echo(f"From:  {key.address}")
    click.echo(f"Chain: {signed.chain_id if signed.chain_id is not None else 'none (legacy)'}")
    click.echo(f"Hash:  {signed.hash_hex}")
    click.echo(f"Raw:   {signed.to_hex()}")
