"""
Field Codec - canonical RLP wire forms of legacy transactions.

Three list shapes share the same first six fields
(nonce, gasPrice, gasLimit, to, value, data):

- 6 elements: unprotected signing payload.
- 9 elements ending in (chainId, 0, 0): EIP-155 signing payload.
- 9 elements ending in (v, r, s): signed submission form.

The two 9-element shapes are structurally identical on the wire. The
unsigned and signed encoders are kept as separate functions so the
signing payload can never pick up a signature (or vice versa).

Integers encode as minimal big-endian byte strings (zero is the empty
string), addresses as 20 raw bytes, and absent optionals as the empty
string.
"""

from __future__ import annotations

from typing import Union

import rlp
from rlp.exceptions import DecodingError, DeserializationError
from rlp.sedes import big_endian_int

from ..errors import MalformedTransaction
from ..utils import hex_to_bytes
from .transaction import (
    ADDRESS_LENGTH,
    EIP155_V_OFFSET,
    LEGACY_V_OFFSET,
    RawTransaction,
    SignedTransaction,
    chain_id_from_placeholder,
    chain_id_from_v,
)

UNSIGNED_FIELD_COUNT = 6
SIGNED_FIELD_COUNT = 9


def encode_unsigned(tx: RawTransaction) -> bytes:
    """Encode the signing payload of ``tx``.

    Appends ``(chainId, 0, 0)`` when the transaction carries a chain id.
    """
    fields: list = [
        tx.nonce or 0,
        tx.gas_price or 0,
        tx.gas_limit or 0,
        tx.to or b"",
        tx.value or 0,
        tx.data,
    ]
    if tx.chain_id is not None:
        fields.extend([tx.chain_id, 0, 0])
    return rlp.encode(fields)


def serialize_signed(signed: SignedTransaction) -> bytes:
    """Encode the 9-element submission form ``(…, v, r, s)``.

    The shape does not depend on whether a chain id was used; legacy
    transactions simply carry ``v`` of 27 or 28.
    """
    tx = signed.raw
    return rlp.encode([
        tx.nonce or 0,
        tx.gas_price or 0,
        tx.gas_limit or 0,
        tx.to or b"",
        tx.value or 0,
        tx.data,
        signed.v,
        signed.r,
        signed.s,
    ])


# =====================================================================
# Decoding
# =====================================================================


def _decode_items(raw: Union[bytes, str]) -> list[bytes]:
    if isinstance(raw, str):
        try:
            raw = hex_to_bytes(raw)
        except ValueError as exc:
            raise MalformedTransaction(f"Invalid hex payload: {exc}") from exc
    try:
        items = rlp.decode(bytes(raw))
    except DecodingError as exc:
        raise MalformedTransaction(f"Invalid RLP: {exc}") from exc
    if not isinstance(items, list):
        raise MalformedTransaction("Transaction payload is not an RLP list")
    for index, item in enumerate(items):
        if not isinstance(item, bytes):
            raise MalformedTransaction(f"Field {index} is a nested list")
    return items


def _int_field(name: str, item: bytes) -> int:
    try:
        return big_endian_int.deserialize(item)
    except DeserializationError as exc:
        raise MalformedTransaction(f"Non-canonical integer in {name}") from exc


def _address_field(item: bytes) -> bytes | None:
    if len(item) == 0:
        return None
    if len(item) != ADDRESS_LENGTH:
        raise MalformedTransaction(
            f"Address must be {ADDRESS_LENGTH} bytes, got {len(item)}"
        )
    return item


def _base_transaction(items: list[bytes], chain_id: int | None) -> RawTransaction:
    return RawTransaction(
        nonce=_int_field("nonce", items[0]),
        gas_price=_int_field("gasPrice", items[1]),
        gas_limit=_int_field("gasLimit", items[2]),
        to=_address_field(items[3]),
        value=_int_field("value", items[4]),
        data=items[5],
        chain_id=chain_id,
    )


def _trailer(items: list[bytes]) -> tuple[int, int, int]:
    return (
        _int_field("v", items[6]),
        _int_field("r", items[7]),
        _int_field("s", items[8]),
    )


def _is_placeholder(r: int, s: int) -> bool:
    return r == 0 and s == 0


def _signed_from_items(items: list[bytes], v: int, r: int, s: int) -> SignedTransaction:
    if v not in (LEGACY_V_OFFSET, LEGACY_V_OFFSET + 1) and v < EIP155_V_OFFSET:
        raise MalformedTransaction(f"Invalid v value: {v}")
    return SignedTransaction(
        raw=_base_transaction(items, chain_id_from_v(v)),
        v=v,
        r=r,
        s=s,
    )


def decode(raw: Union[bytes, str]) -> RawTransaction | SignedTransaction:
    """Decode any of the three wire shapes.

    A 9-element list whose ``r`` and ``s`` are both zero is the EIP-155
    signing payload and decodes to a ``RawTransaction`` whose chain id is
    the seventh element, read through ``chain_id_from_placeholder`` (which
    logs a warning). Real signatures never have a zero ``r`` or ``s``,
    so every other 9-element list decodes to a ``SignedTransaction``.

    Raises:
        MalformedTransaction: On undecodable input or any element count
            other than 6 or 9.
    """
    items = _decode_items(raw)
    if len(items) == UNSIGNED_FIELD_COUNT:
        return _base_transaction(items, None)
    if len(items) == SIGNED_FIELD_COUNT:
        v, r, s = _trailer(items)
        if _is_placeholder(r, s):
            return _base_transaction(items, chain_id_from_placeholder(v, r, s))
        return _signed_from_items(items, v, r, s)
    raise MalformedTransaction(
        f"Expected {UNSIGNED_FIELD_COUNT} or {SIGNED_FIELD_COUNT} fields, got {len(items)}"
    )


def decode_unsigned(raw: Union[bytes, str]) -> RawTransaction:
    """Decode a signing payload, rejecting signed transactions."""
    decoded = decode(raw)
    if isinstance(decoded, SignedTransaction):
        raise MalformedTransaction("Expected an unsigned transaction, got a signed one")
    return decoded


def decode_signed(raw: Union[bytes, str]) -> SignedTransaction:
    """Decode a submission payload, rejecting signing payloads."""
    decoded = decode(raw)
    if not isinstance(decoded, SignedTransaction):
        raise MalformedTransaction("Expected a signed transaction, got an unsigned one")
    return decoded
