"""
Theurgy Keygen - Create a local signing key.

Writes PRIVATE_KEY to the settings file (``~/.bebaiosis/.env`` unless
``--env-file`` says otherwise). An existing key is never replaced
without ``--force``.
"""

from __future__ import annotations

import sys

import click

from ..config import Settings
from ..sigil.keys import generate_eoa, load_key, save_private_key


@click.command()
@click.option("--force", is_flag=True, help="Replace an existing key")
@click.pass_obj
def keygen(settings: Settings, force: bool) -> None:
    """Generate a secp256k1 key and store it in the settings file."""
    if not force:
        try:
            existing = load_key(env_path=settings.env_path)
        except ValueError:
            existing = None
        if existing is not None:
            click.secho(
                f"ERROR: A key already exists ({existing.address}). "
                "Use --force to replace it.",
                fg="red",
            )
            sys.exit(1)

    private_key, address = generate_eoa()
    env_path = save_private_key(private_key, settings.env_path)

    click.echo(click.style("  Address: ", dim=True) + click.style(address, fg="bright_white"))
    click.echo(click.style("  Config:  ", dim=True) + click.style(str(env_path), fg="bright_white"))
    click.secho(f"  IMPORTANT: Back up {env_path}. Loss is irreversible.", fg="yellow", bold=True)
