"""
Request objects for node-signed calls (eth_call, eth_sendTransaction,
personal_sendTransaction).

Serialization follows the node's JSON conventions: absent optional
fields are omitted, quantities are 0x-prefixed hex without leading
zeros, addresses and data are 0x-prefixed lowercase hex.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Union

from eth_utils import to_canonical_address

from ..sigil.transaction import InclusionCondition, RawTransaction
from ..utils import hex_to_bytes, int_to_hex, to_hex

AddressLike = Union[str, bytes]


def _address(value: AddressLike) -> str:
    if isinstance(value, (bytes, bytearray)):
        return to_hex(bytes(value))
    return to_hex(to_canonical_address(value))


def _data(value: Union[bytes, str]) -> str:
    if isinstance(value, str):
        value = hex_to_bytes(value)
    return to_hex(bytes(value))


def _put(out: dict[str, Any], key: str, value: Any, encode) -> None:
    if value is not None:
        out[key] = encode(value)


@dataclass(frozen=True)
class CallRequest:
    """Parameters for eth_call / eth_estimateGas.

    ``to`` may be omitted only when estimating a contract creation.
    """

    to: Optional[AddressLike] = None
    sender: Optional[AddressLike] = None
    gas: Optional[int] = None
    gas_price: Optional[int] = None
    value: Optional[int] = None
    data: Optional[Union[bytes, str]] = None

    def to_json(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        _put(out, "from", self.sender, _address)
        _put(out, "to", self.to, _address)
        _put(out, "gas", self.gas, int_to_hex)
        _put(out, "gasPrice", self.gas_price, int_to_hex)
        _put(out, "value", self.value, int_to_hex)
        _put(out, "data", self.data, _data)
        return out


@dataclass(frozen=True)
class TransactionRequest:
    """Parameters for eth_sendTransaction / personal_sendTransaction.

    The node fills in whatever is omitted (gas, price, nonce) and signs
    with the ``sender`` account.
    """

    sender: AddressLike
    to: Optional[AddressLike] = None
    gas: Optional[int] = None
    gas_price: Optional[int] = None
    value: Optional[int] = None
    data: Optional[Union[bytes, str]] = None
    nonce: Optional[int] = None
    condition: Optional[InclusionCondition] = None

    @classmethod
    def from_raw(cls, tx: RawTransaction, sender: AddressLike) -> "TransactionRequest":
        return cls(
            sender=sender,
            to=tx.to,
            gas=tx.gas_limit,
            gas_price=tx.gas_price,
            value=tx.value,
            data=tx.data or None,
            nonce=tx.nonce,
            condition=tx.condition,
        )

    def to_json(self) -> dict[str, Any]:
        out: dict[str, Any] = {"from": _address(self.sender)}
        _put(out, "to", self.to, _address)
        _put(out, "gas", self.gas, int_to_hex)
        _put(out, "gasPrice", self.gas_price, int_to_hex)
        _put(out, "value", self.value, int_to_hex)
        _put(out, "data", self.data, _data)
        _put(out, "nonce", self.nonce, int_to_hex)
        _put(out, "condition", self.condition, InclusionCondition.to_json)
        return out
