"""
Runtime settings.

Values come from an optional ``.env`` file (default
``~/.bebaiosis/.env``) and the process environment, the environment
taking precedence. The resulting ``Settings`` object is passed around
explicitly; nothing is read lazily from globals afterwards.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

from dotenv import dotenv_values

from .pneuma.transport import HttpxTransport, Transport, WebSocketTransport
from .sigil.keys import BEBAIOSIS_ENV

DEFAULT_RPC_URL = "http://localhost:8545"
DEFAULT_CONFIRMATIONS = 1
DEFAULT_POLL_INTERVAL = 1.0


def _optional_int(values: Mapping[str, Optional[str]], key: str) -> Optional[int]:
    raw = values.get(key)
    if raw is None or raw == "":
        return None
    try:
        return int(raw, 0)
    except ValueError as exc:
        raise ValueError(f"{key} must be an integer, got {raw!r}") from exc


@dataclass(frozen=True)
class Settings:
    """
    Attributes:
        rpc_url: HTTP JSON-RPC endpoint (BEBAIOSIS_RPC_URL)
        ws_url: WebSocket endpoint for subscriptions (BEBAIOSIS_WS_URL)
        chain_id: EIP-155 chain id (CHAIN_ID). None signs legacy
            transactions that are valid on any chain.
        confirmations: Default confirmation depth (CONFIRMATIONS)
        poll_interval: Seconds between polls (POLL_INTERVAL)
        max_attempts: Consecutive RPC failures before giving up
            (MAX_ATTEMPTS). None retries forever.
        env_path: The .env file the settings were read from
    """

    rpc_url: str = DEFAULT_RPC_URL
    ws_url: Optional[str] = None
    chain_id: Optional[int] = None
    confirmations: int = DEFAULT_CONFIRMATIONS
    poll_interval: float = DEFAULT_POLL_INTERVAL
    max_attempts: Optional[int] = None
    env_path: Path = BEBAIOSIS_ENV

    @classmethod
    def from_env(
        cls,
        env_path: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "Settings":
        env_path = env_path or BEBAIOSIS_ENV
        values: dict[str, Optional[str]] = {}
        if env_path.exists():
            values.update(dotenv_values(env_path))
        values.update(os.environ if environ is None else environ)

        confirmations = _optional_int(values, "CONFIRMATIONS")
        poll_interval = values.get("POLL_INTERVAL")
        settings = cls(
            rpc_url=values.get("BEBAIOSIS_RPC_URL") or DEFAULT_RPC_URL,
            ws_url=values.get("BEBAIOSIS_WS_URL") or None,
            chain_id=_optional_int(values, "CHAIN_ID"),
            confirmations=DEFAULT_CONFIRMATIONS if confirmations is None else confirmations,
            poll_interval=float(poll_interval) if poll_interval else DEFAULT_POLL_INTERVAL,
            max_attempts=_optional_int(values, "MAX_ATTEMPTS"),
            env_path=env_path,
        )
        if settings.confirmations < 0:
            raise ValueError("CONFIRMATIONS must be >= 0")
        if settings.poll_interval <= 0:
            raise ValueError("POLL_INTERVAL must be > 0")
        return settings

    def transport(self) -> Transport:
        """WebSocket transport when BEBAIOSIS_WS_URL is set, HTTP otherwise."""
        if self.ws_url:
            return WebSocketTransport(self.ws_url)
        return HttpxTransport(self.rpc_url)

    def tracker_options(self) -> dict[str, Any]:
        """Keyword options for ConfirmationTracker derived from these settings."""
        return {
            "poll_interval": self.poll_interval,
            "max_attempts": self.max_attempts,
        }
