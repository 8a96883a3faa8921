"""
Theurgy Decode - Inspect a raw transaction.

Accepts any of the three wire shapes (6-field signing payload, 9-field
EIP-155 signing payload, 9-field signed form) and prints the fields as
JSON. For signed transactions the sender is recovered from the
signature.
"""

from __future__ import annotations

import json
import sys

import click

from ..errors import MalformedTransaction, SigningError
from ..sigil.codec import decode as decode_transaction
from ..sigil.transaction import SignedTransaction


@click.command()
@click.argument("raw")
def decode(raw: str) -> None:
    """Decode RAW (0x-prefixed hex) and print it as JSON."""
    try:
        decoded = decode_transaction(raw)
    except MalformedTransaction as exc:
        click.secho(f"ERROR: {exc}", fg="red")
        sys.exit(1)

    if isinstance(decoded, SignedTransaction):
        out = {"type": "signed", **decoded.to_dict()}
        try:
            out["from"] = decoded.sender
        except SigningError as exc:
            click.secho(f"  WARNING: {exc}", fg="yellow", err=True)
            out["from"] = None
    else:
        out = {"type": "unsigned", **decoded.to_dict()}

    click.echo(json.dumps(out, indent=2))
