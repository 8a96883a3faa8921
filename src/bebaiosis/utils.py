from __future__ import annotations

from typing import Union

from eth_hash.auto import keccak


def keccak256(data: bytes) -> bytes:
    # NOTE: Keccak-256 != SHA3-256 (NIST). Never use hashlib.sha3_256 here.
    return keccak(data)


def strip_0x(value: str) -> str:
    return value[2:] if value[:2] in ("0x", "0X") else value


def hex_to_bytes(value: str) -> bytes:
    stripped = strip_0x(value.strip())
    if len(stripped) % 2:
        stripped = "0" + stripped
    return bytes.fromhex(stripped)


def to_hex(data: bytes) -> str:
    return "0x" + data.hex()


def hex_to_int(value: Union[str, int]) -> int:
    if isinstance(value, int):
        return value
    if not isinstance(value, str):
        raise TypeError(f"expected hex-str or int, got {type(value)}")
    return int(value, 16)


def int_to_hex(value: int) -> str:
    """JSON-RPC quantity encoding: 0x-prefixed, no leading zeros."""
    if not isinstance(value, int) or value < 0:
        raise ValueError(f"quantity must be a non-negative int, got {value!r}")
    return hex(value)
