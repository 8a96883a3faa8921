"""
JSON-RPC helpers for the ``eth`` namespace.

Thin typed wrappers over ``Transport.execute``: each one builds the
params list, calls the node and converts hex quantities. Transport
errors propagate to the caller unchanged.
"""

from __future__ import annotations

from typing import Any, Optional, Union

from ..errors import MalformedResponse
from ..sigil.transaction import SignedTransaction
from ..utils import hex_to_int, to_hex
from .requests import CallRequest, TransactionRequest
from .transport import Transport

ETH_BLOCK_NUMBER = "eth_blockNumber"
ETH_CHAIN_ID = "eth_chainId"
ETH_GAS_PRICE = "eth_gasPrice"
ETH_ESTIMATE_GAS = "eth_estimateGas"
ETH_GET_TRANSACTION_COUNT = "eth_getTransactionCount"
ETH_GET_TRANSACTION_RECEIPT = "eth_getTransactionReceipt"
ETH_GET_BALANCE = "eth_getBalance"
ETH_SEND_RAW_TRANSACTION = "eth_sendRawTransaction"
ETH_SEND_TRANSACTION = "eth_sendTransaction"
ETH_CALL = "eth_call"


def quantity(method: str, value: Any) -> int:
    """Decode a hex quantity from a node result, as ``MalformedResponse`` if it is not one."""
    try:
        return hex_to_int(value)
    except (TypeError, ValueError) as exc:
        raise MalformedResponse(f"{method} returned a non-quantity: {value!r}") from exc


async def block_number(transport: Transport) -> int:
    """Latest block number."""
    result = await transport.execute(ETH_BLOCK_NUMBER, [])
    return quantity(ETH_BLOCK_NUMBER, result)


async def chain_id(transport: Transport) -> int:
    result = await transport.execute(ETH_CHAIN_ID, [])
    return quantity(ETH_CHAIN_ID, result)


async def get_gas_price(transport: Transport) -> int:
    """
    Get current gas price.

    Returns:
        Gas price in wei
    """
    result = await transport.execute(ETH_GAS_PRICE, [])
    return quantity(ETH_GAS_PRICE, result)


async def get_nonce(transport: Transport, address: str, block: str = "pending") -> int:
    """
    Get transaction nonce for an address.

    Args:
        transport: JSON-RPC transport
        address: 0x-prefixed address
        block: Block tag. "pending" counts transactions still in the pool.

    Returns:
        Next nonce to use
    """
    result = await transport.execute(ETH_GET_TRANSACTION_COUNT, [address, block])
    return quantity(ETH_GET_TRANSACTION_COUNT, result)


async def get_balance(transport: Transport, address: str, block: str = "latest") -> int:
    """
    Get ETH balance for an address.

    Returns:
        Balance in wei
    """
    result = await transport.execute(ETH_GET_BALANCE, [address, block])
    return quantity(ETH_GET_BALANCE, result)


async def estimate_gas(transport: Transport, request: CallRequest) -> int:
    result = await transport.execute(ETH_ESTIMATE_GAS, [request.to_json()])
    return quantity(ETH_ESTIMATE_GAS, result)


async def call(transport: Transport, request: CallRequest, block: str = "latest") -> str:
    """eth_call; returns the raw 0x-prefixed return data."""
    return await transport.execute(ETH_CALL, [request.to_json(), block])


async def get_transaction_receipt(transport: Transport, tx_hash: str) -> Optional[dict[str, Any]]:
    """
    Fetch a transaction receipt.

    Returns:
        Receipt dict, or None while the transaction is not mined (or was
        dropped from the canonical chain).

    Raises:
        MalformedResponse: If the result is not a dict or its
            ``blockNumber`` is not a quantity.
    """
    result = await transport.execute(ETH_GET_TRANSACTION_RECEIPT, [tx_hash])
    if result is None:
        return None
    if not isinstance(result, dict):
        raise MalformedResponse(f"{ETH_GET_TRANSACTION_RECEIPT} returned {result!r}")
    if result.get("blockNumber") is not None:
        quantity(ETH_GET_TRANSACTION_RECEIPT, result["blockNumber"])
    return result


async def send_raw_transaction(
    transport: Transport,
    raw_tx: Union[SignedTransaction, bytes, str],
) -> str:
    """
    Send a signed raw transaction.

    Args:
        raw_tx: SignedTransaction, its serialized bytes, or 0x-prefixed hex

    Returns:
        Transaction hash (0x-prefixed hex)
    """
    if isinstance(raw_tx, SignedTransaction):
        payload = raw_tx.to_hex()
    elif isinstance(raw_tx, (bytes, bytearray)):
        payload = to_hex(bytes(raw_tx))
    else:
        payload = raw_tx if raw_tx.startswith("0x") else "0x" + raw_tx
    return await transport.execute(ETH_SEND_RAW_TRANSACTION, [payload])


async def send_transaction(transport: Transport, request: TransactionRequest) -> str:
    """Ask the node to sign and send from one of its unlocked accounts."""
    return await transport.execute(ETH_SEND_TRANSACTION, [request.to_json()])
