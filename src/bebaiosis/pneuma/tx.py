"""
Transaction Builder - fill, sign, send and confirm legacy transactions.

Uses the local signer for signing and the JSON-RPC transport for
sending. The chain id is never filled in implicitly: leaving it unset
produces a legacy, chain-agnostic transaction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional, Union

from ..sigil.keys import LocalKey
from ..sigil.signer import sign_with_key
from ..sigil.transaction import RawTransaction, SignedTransaction
from . import rpc
from .confirm import ConfirmationState, wait_for_confirmations
from .requests import CallRequest
from .transport import Transport

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SendResult:
    """Outcome of sign_and_send.

    Attributes:
        signed: The transaction that was submitted.
        tx_hash: Hash reported by the node.
        confirmation: Final tracker state, or None when not waited for.
    """

    signed: SignedTransaction
    tx_hash: str
    confirmation: Optional[ConfirmationState] = None


async def fill_transaction(
    transport: Transport,
    tx: RawTransaction,
    sender: str,
) -> RawTransaction:
    """
    Fill in nonce, gas price and gas limit left unset on ``tx``.

    Args:
        transport: JSON-RPC transport
        tx: Unsigned transaction
        sender: 0x-prefixed address the transaction will be signed by

    Returns:
        A new RawTransaction; ``tx`` itself is unchanged
    """
    changes: dict[str, Any] = {}
    if tx.nonce is None:
        changes["nonce"] = await rpc.get_nonce(transport, sender)
    if tx.gas_price is None:
        changes["gas_price"] = await rpc.get_gas_price(transport)
    if tx.gas_limit is None:
        changes["gas_limit"] = await rpc.estimate_gas(
            transport,
            CallRequest(
                to=tx.to,
                sender=sender,
                gas_price=changes.get("gas_price", tx.gas_price),
                value=tx.value,
                data=tx.data or None,
            ),
        )
    if not changes:
        return tx
    logger.debug("Filled %s for %s", sorted(changes), sender)
    return tx.replace(**changes)


async def sign_and_send(
    transport: Transport,
    tx: RawTransaction,
    key: LocalKey,
    *,
    confirmations: Optional[int] = None,
    require_replay_protection: bool = False,
    **tracker_options: Any,
) -> SendResult:
    """
    Fill, sign and send a transaction, optionally waiting for confirmations.

    Args:
        transport: JSON-RPC transport
        tx: Unsigned transaction; unset nonce / gas fields come from the node
        key: Signing key
        confirmations: Depth to wait for. None returns right after sending.
        require_replay_protection: Refuse to sign without a chain id
        **tracker_options: Passed to ConfirmationTracker

    Returns:
        SendResult with the signed transaction, hash and final state

    Raises:
        SigningError: If signing is refused
        TransportError: If filling or sending fails (not retried)
    """
    prepared = await fill_transaction(transport, tx, key.address)
    signed = sign_with_key(prepared, key, require_replay_protection=require_replay_protection)

    tx_hash = await rpc.send_raw_transaction(transport, signed)
    if tx_hash.lower() != signed.hash_hex:
        logger.warning("Node reported hash %s, expected %s", tx_hash, signed.hash_hex)
    logger.info("Sent %s (nonce %s)", tx_hash, prepared.nonce)

    if confirmations is None:
        return SendResult(signed=signed, tx_hash=tx_hash)

    state = await wait_for_confirmations(
        transport, tx_hash, confirmations=confirmations, **tracker_options
    )
    return SendResult(signed=signed, tx_hash=tx_hash, confirmation=state)


async def send_raw_transaction_with_confirmation(
    transport: Transport,
    raw_tx: Union[SignedTransaction, bytes, str],
    confirmations: int = 1,
    **tracker_options: Any,
) -> ConfirmationState:
    """Submit an already-signed transaction and wait for ``confirmations``."""
    tx_hash = await rpc.send_raw_transaction(transport, raw_tx)
    return await wait_for_confirmations(
        transport, tx_hash, confirmations=confirmations, **tracker_options
    )
