"""`personal` namespace: accounts managed by the node itself."""

from __future__ import annotations

from typing import Optional

from .requests import TransactionRequest
from .transport import Transport


async def list_accounts(transport: Transport) -> list[str]:
    """Addresses of the accounts the node holds keys for."""
    return await transport.execute("personal_listAccounts", [])


async def new_account(transport: Transport, password: str) -> str:
    """Create a password-protected account on the node; returns its address."""
    return await transport.execute("personal_newAccount", [password])


async def unlock_account(
    transport: Transport,
    address: str,
    password: str,
    duration: Optional[int] = None,
) -> bool:
    """Unlock ``address`` for ``duration`` seconds (None: single transaction)."""
    return await transport.execute("personal_unlockAccount", [address, password, duration])


async def send_transaction(
    transport: Transport,
    request: TransactionRequest,
    password: str,
) -> str:
    """Sign with a locked node account and send; returns the tx hash."""
    return await transport.execute("personal_sendTransaction", [request.to_json(), password])
