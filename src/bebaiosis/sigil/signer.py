"""
Transaction Signer - signing hash, replay protection and assembly.

The signer never produces a signature itself: it hashes the signing
payload, hands the digest to external key material, validates what
comes back and assembles the ``SignedTransaction``.

Replay protection (EIP-155):
    v = recovery_bit + 35 + 2 * chain_id    when chain_id is set
    v = recovery_bit + 27                   otherwise (legacy, any chain)
"""

from __future__ import annotations

from typing import Optional

from eth_keys import keys
from eth_keys.exceptions import BadSignature
from eth_utils import ValidationError

from ..errors import SigningError
from ..utils import keccak256
from .codec import encode_unsigned
from .keys import LocalKey
from .transaction import (
    RawTransaction,
    Signature,
    SignedTransaction,
    chain_id_from_placeholder,
    chain_id_from_v,
    protect_v,
)

# Order of the secp256k1 group.
SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141


def signing_hash(tx: RawTransaction) -> bytes:
    """Keccak-256 of the unsigned payload (6 fields, or 9 with chain id)."""
    return keccak256(encode_unsigned(tx))


def _check_signature(signature: Signature) -> None:
    if not 1 <= signature.r < SECP256K1_N:
        raise SigningError("Signature r is out of range")
    if not 1 <= signature.s < SECP256K1_N:
        raise SigningError("Signature s is out of range")
    if signature.v not in (0, 1):
        raise SigningError(f"Recovery bit must be 0 or 1, got {signature.v}")


def sign(
    tx: RawTransaction,
    signature: Signature,
    *,
    require_replay_protection: bool = False,
) -> SignedTransaction:
    """Assemble a signed transaction from ``tx`` and a raw signature.

    Args:
        tx: The transaction whose ``signing_hash`` was signed.
        signature: Signature with ``v`` as the recovery bit.
        require_replay_protection: Refuse to build a legacy (chain
            agnostic) transaction when ``tx.chain_id`` is absent.

    Raises:
        SigningError: If r/s are outside the scalar range, v is not a
            recovery bit, or replay protection is required but missing.
    """
    _check_signature(signature)
    if tx.chain_id is None and require_replay_protection:
        raise SigningError("Replay protection required but transaction has no chain id")
    return SignedTransaction(
        raw=tx,
        v=protect_v(signature.v, tx.chain_id),
        r=signature.r,
        s=signature.s,
    )


def sign_with_key(
    tx: RawTransaction,
    key: LocalKey,
    *,
    require_replay_protection: bool = False,
) -> SignedTransaction:
    """Hash, sign with ``key`` and assemble in one step.

    Raises:
        SigningError: If nonce, gas price or gas limit is still unset.
            Fill them first (``pneuma.tx.fill_transaction``).
    """
    missing = [
        name for name in ("nonce", "gas_price", "gas_limit")
        if getattr(tx, name) is None
    ]
    if missing:
        raise SigningError(f"Cannot sign with unset {', '.join(missing)}")
    signature = key.sign_hash(signing_hash(tx))
    return sign(tx, signature, require_replay_protection=require_replay_protection)


def recover_chain_id(v: int, r: int, s: int) -> Optional[int]:
    """Chain id from a (v, r, s) trailer.

    - r == s == 0: placeholder; v is the chain id itself.
    - v >= 35: (v - 35) // 2.
    - otherwise: no chain id (pre-EIP-155).
    """
    if r == 0 and s == 0:
        return chain_id_from_placeholder(v, r, s)
    return chain_id_from_v(v)


def recover_sender(signed: SignedTransaction) -> str:
    """Checksummed address of the key that signed ``signed``.

    Raises:
        SigningError: If the signature does not recover to a public key.
    """
    message_hash = signing_hash(signed.raw)
    try:
        sig = keys.Signature(vrs=(signed.recovery_bit, signed.r, signed.s))
        public_key = sig.recover_public_key_from_msg_hash(message_hash)
    except (BadSignature, ValidationError, ValueError) as exc:
        raise SigningError("Cannot recover sender from signature") from exc
    return public_key.to_checksum_address()
