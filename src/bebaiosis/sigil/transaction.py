"""
Transaction models: unsigned fields, signatures and signed transactions.

A ``RawTransaction`` is the mutable-by-replacement description of what to
send. Once signed it is moved into a ``SignedTransaction`` which can no
longer change: both are frozen dataclasses, and the signed form memoizes
its hash.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, replace
from functools import cached_property
from typing import Any, Literal, Optional, Union

from eth_utils import to_canonical_address, to_checksum_address

from ..errors import MalformedTransaction
from ..utils import hex_to_bytes, keccak256, to_hex

logger = logging.getLogger(__name__)

ADDRESS_LENGTH = 20

ConditionKind = Literal["block", "time"]

# EIP-155: v = recovery_bit + 35 + 2 * chain_id; legacy v = recovery_bit + 27.
LEGACY_V_OFFSET = 27
EIP155_V_OFFSET = 35


def protect_v(recovery_bit: int, chain_id: Optional[int]) -> int:
    """Apply replay protection to a recovery bit."""
    if chain_id is None:
        return recovery_bit + LEGACY_V_OFFSET
    return recovery_bit + EIP155_V_OFFSET + 2 * chain_id


def chain_id_from_v(v: int) -> Optional[int]:
    """Chain id carried by a signed ``v``, or None for pre-EIP-155 values."""
    if v >= EIP155_V_OFFSET:
        return (v - EIP155_V_OFFSET) // 2
    return None


def chain_id_from_placeholder(v: int, r: int, s: int) -> int:
    """Read the chain id out of an unsigned ``(chainId, 0, 0)`` trailer.

    Only meaningful for template/sentinel transactions where the
    signature slots still hold the EIP-155 placeholder. The caller is
    reinterpreting ``v`` as a chain id, which is ambiguous, so this is
    logged.

    Raises:
        ValueError: If r or s is non-zero.
    """
    if r != 0 or s != 0:
        raise ValueError("chain_id_from_placeholder requires r == s == 0")
    logger.warning("Interpreting v=%d of an unsigned placeholder as a chain id", v)
    return v


@dataclass(frozen=True)
class InclusionCondition:
    """Minimum block number or unix time before the node may include a tx.

    Interpreted by the receiving node only; never enforced locally.
    """

    kind: ConditionKind
    value: int

    def __post_init__(self) -> None:
        if self.kind not in ("block", "time"):
            raise ValueError(f"Unknown condition kind: {self.kind!r}")
        if not isinstance(self.value, int) or self.value < 0:
            raise ValueError(f"Condition value must be a non-negative int, got {self.value!r}")

    @classmethod
    def block(cls, number: int) -> "InclusionCondition":
        return cls("block", number)

    @classmethod
    def timestamp(cls, unix_time: int) -> "InclusionCondition":
        return cls("time", unix_time)

    @classmethod
    def from_json(cls, payload: dict[str, Any]) -> "InclusionCondition":
        if not isinstance(payload, dict) or len(payload) != 1:
            raise ValueError(f"Condition must have exactly one key, got {payload!r}")
        ((kind, value),) = payload.items()
        return cls(kind, value)

    def to_json(self) -> dict[str, int]:
        return {self.kind: self.value}


def _normalize_address(value: Union[bytes, bytearray, str, None]) -> Optional[bytes]:
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray)):
        if len(value) == 0:
            return None
        if len(value) != ADDRESS_LENGTH:
            raise MalformedTransaction(
                f"Address must be {ADDRESS_LENGTH} bytes, got {len(value)}"
            )
        return bytes(value)
    if isinstance(value, str):
        try:
            return to_canonical_address(value)
        except ValueError as exc:
            raise MalformedTransaction(f"Invalid address: {value!r}") from exc
    raise MalformedTransaction(f"Unsupported address type: {type(value).__name__}")


def _check_quantity(name: str, value: Optional[int]) -> None:
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, int):
        raise MalformedTransaction(f"{name} must be an int, got {type(value).__name__}")
    if value < 0:
        raise MalformedTransaction(f"{name} must be non-negative, got {value}")


@dataclass(frozen=True)
class RawTransaction:
    """Unsigned legacy transaction.

    Attributes:
        nonce: Sender nonce. None means "next available" and is filled
            from the node before signing (encodes as zero if left unset).
        gas_price: Gas price in wei.
        gas_limit: Gas limit.
        to: 20-byte recipient. None means contract creation.
        value: Transferred value in wei.
        data: Call data or init code.
        chain_id: EIP-155 chain id. Its presence selects replay-protected
            signing; absence produces a legacy transaction valid on any chain.
        condition: Advisory inclusion condition, forwarded to the node.
    """

    nonce: Optional[int] = None
    gas_price: Optional[int] = None
    gas_limit: Optional[int] = None
    to: Optional[bytes] = None
    value: Optional[int] = None
    data: bytes = b""
    chain_id: Optional[int] = None
    condition: Optional[InclusionCondition] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "to", _normalize_address(self.to))
        data = self.data
        if isinstance(data, str):
            data = hex_to_bytes(data)
        if data is None:
            data = b""
        if not isinstance(data, (bytes, bytearray)):
            raise MalformedTransaction(f"data must be bytes, got {type(data).__name__}")
        object.__setattr__(self, "data", bytes(data))
        for name in ("nonce", "gas_price", "gas_limit", "value", "chain_id"):
            _check_quantity(name, getattr(self, name))

    @property
    def is_contract_creation(self) -> bool:
        return self.to is None

    @property
    def is_replay_protected(self) -> bool:
        return self.chain_id is not None

    def replace(self, **changes: Any) -> "RawTransaction":
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly view (addresses checksummed, bytes hex-encoded)."""
        out = asdict(self)
        out["to"] = to_checksum_address(self.to) if self.to is not None else None
        out["data"] = to_hex(self.data)
        out["condition"] = self.condition.to_json() if self.condition else None
        return out


@dataclass(frozen=True)
class Signature:
    """Raw secp256k1 signature; ``v`` is the recovery bit (0 or 1)."""

    r: int
    s: int
    v: int

    @classmethod
    def from_vrs(cls, v: int, r: int, s: int) -> "Signature":
        """Build from a signer that reports ``v`` as 27/28."""
        if v in (27, 28):
            v -= 27
        return cls(r=r, s=s, v=v)


@dataclass(frozen=True)
class SignedTransaction:
    """A transaction with its replay-protected signature.

    ``v`` is the final on-wire value (``bit + 27`` or
    ``bit + 35 + 2 * chain_id``).
    """

    raw: RawTransaction
    v: int
    r: int
    s: int

    @property
    def chain_id(self) -> Optional[int]:
        return chain_id_from_v(self.v)

    @property
    def recovery_bit(self) -> int:
        if self.v in (LEGACY_V_OFFSET, LEGACY_V_OFFSET + 1):
            return self.v - LEGACY_V_OFFSET
        return (self.v - EIP155_V_OFFSET) % 2

    @property
    def signature(self) -> Signature:
        return Signature(r=self.r, s=self.s, v=self.recovery_bit)

    @cached_property
    def raw_bytes(self) -> bytes:
        from .codec import serialize_signed

        return serialize_signed(self)

    @cached_property
    def hash(self) -> bytes:
        return keccak256(self.raw_bytes)

    @property
    def hash_hex(self) -> str:
        return to_hex(self.hash)

    def to_hex(self) -> str:
        """0x-prefixed wire form for ``eth_sendRawTransaction``."""
        return to_hex(self.raw_bytes)

    @property
    def sender(self) -> str:
        from .signer import recover_sender

        return recover_sender(self)

    def to_dict(self) -> dict[str, Any]:
        out = self.raw.to_dict()
        out["chain_id"] = self.chain_id
        out.update({"v": self.v, "r": self.r, "s": self.s, "hash": self.hash_hex})
        return out
