"""
Bebaiosis CLI

Command-line interface for signing legacy Ethereum transactions and
following them to a required confirmation depth.

Commands:
  keygen   - Create a local signing key in ~/.bebaiosis/.env
  whoami   - Show the address of the configured key
  sign     - Sign a transaction offline and print the raw payload
  decode   - Decode a raw transaction (signed or unsigned)
  send     - Fill, sign and submit a transaction, optionally waiting
  watch    - Follow an already-submitted transaction hash
  info     - Show the effective configuration
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

import click

from .config import Settings
from .sigil.keys import load_key


# ============ Constants ============

VERSION = "0.3.0"

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


# ============ Banner ============


def _print_banner(compact: bool = False) -> None:
    """Print the Bebaiosis CLI banner.

    Args:
        compact: If True, print a single-line banner (for subcommands).
    """
    if compact:
        click.echo(
            click.style("  ◆ ", fg="cyan")
            + click.style("B E B A I O S I S", fg="bright_white", bold=True)
            + click.style(f"  v{VERSION}", dim=True)
        )
        click.echo()
        return

    border = click.style("  ◆ ═══════════════════════════════════════ ◆", fg="cyan")
    click.echo()
    click.echo(border)
    click.echo()
    click.echo(
        click.style("      B E B A I O S I S", fg="bright_white", bold=True)
        + click.style(f"      v{VERSION}", dim=True)
    )
    click.secho("      ─── Sign, send, confirm ───", fg="cyan")
    click.echo()
    click.echo(border)
    click.echo()


# ============ Main CLI Group ============


@click.group(invoke_without_command=True)
@click.version_option(version=VERSION, prog_name="bebaiosis")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="WARNING",
    envvar="BEBAIOSIS_LOG_LEVEL",
    help="Logging verbosity (stderr)",
)
@click.option(
    "--env-file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Settings file (default: ~/.bebaiosis/.env)",
)
@click.pass_context
def cli(ctx: click.Context, log_level: str, env_file: Optional[Path]) -> None:
    """Bebaiosis: legacy transaction signing and confirmation tracking."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    try:
        ctx.obj = Settings.from_env(env_file)
    except ValueError as exc:
        click.secho(f"ERROR: {exc}", fg="red", err=True)
        sys.exit(1)

    if ctx.invoked_subcommand is None:
        _print_banner()
        click.echo(ctx.get_help())


# ============ Top-level Commands ============

from .theurgy.keygen import keygen
from .theurgy.sign import sign
from .theurgy.decode import decode
from .theurgy.send import send
from .theurgy.watch import watch

cli.add_command(keygen)
cli.add_command(sign)
cli.add_command(decode)
cli.add_command(send)
cli.add_command(watch)


# ============ Identity ============


@cli.command()
@click.pass_obj
def whoami(settings: Settings) -> None:
    """Show current signing address."""
    try:
        key = load_key(env_path=settings.env_path)
    except ValueError:
        click.echo("No key found.")
        click.echo("Run 'bebaiosis keygen' to create one.")
        sys.exit(1)
    click.echo(f"Address: {key.address}")


# ============ Info ============


@cli.command()
@click.pass_obj
def info(settings: Settings) -> None:
    """Show effective configuration."""
    _print_banner()

    click.secho("  Settings ───────────────────────────────", fg="cyan")
    click.echo()

    try:
        address = click.style(load_key(env_path=settings.env_path).address, fg="bright_white")
    except ValueError:
        address = (
            click.style("not initialized", fg="yellow")
            + click.style("  (run: bebaiosis keygen)", dim=True)
        )

    chain = (
        click.style(str(settings.chain_id), fg="bright_white")
        if settings.chain_id is not None
        else click.style("unset (legacy, any chain)", fg="yellow")
    )
    rows = [
        ("Address:      ", address),
        ("RPC:          ", click.style(settings.rpc_url, fg="bright_white")),
        ("WebSocket:    ", click.style(settings.ws_url or "unset (polling)", fg="bright_white")),
        ("Chain ID:     ", chain),
        ("Confirmations:", click.style(f" {settings.confirmations}", fg="bright_white")),
        ("Poll interval:", click.style(f" {settings.poll_interval}s", fg="bright_white")),
        ("Config:       ", click.style(str(settings.env_path), fg="bright_white")),
    ]
    for label, value in rows:
        click.echo(click.style(f"  {label} ", dim=True) + value)

    click.echo()


# ============ Entry Points ============


def main() -> None:
    """Bebaiosis CLI entry point."""
    # Ensure UTF-8 output on Windows (for Unicode box-drawing / symbols)
    if sys.platform == "win32":
        try:
            sys.stdout.reconfigure(encoding="utf-8")  # type: ignore[union-attr]
            sys.stderr.reconfigure(encoding="utf-8")  # type: ignore[union-attr]
        except (AttributeError, OSError):
            pass  # Fallback: old Python or non-tty
    cli()


if __name__ == "__main__":
    main()
