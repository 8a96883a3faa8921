"""
ECDSA / secp256k1 key material for transaction signing.

Keys are plain values handed to the signer explicitly. They can come
from a hex string, from ``~/.bebaiosis/.env`` (``PRIVATE_KEY``), or from
an encrypted JSON keystore file. Nothing here is cached at module level.

Dependencies: eth-account for keystore decryption and address
derivation, eth-keys for raw hash signing.
"""

from __future__ import annotations

import json
import os
import secrets
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from dotenv import dotenv_values
from eth_account import Account
from eth_account.signers.local import LocalAccount
from eth_keys import keys
from eth_utils import ValidationError

from ..errors import SigningError
from ..utils import hex_to_bytes
from .transaction import Signature

# Default config directory
BEBAIOSIS_DIR = Path.home() / ".bebaiosis"
BEBAIOSIS_ENV = BEBAIOSIS_DIR / ".env"


@dataclass(frozen=True)
class LocalKey:
    """A secp256k1 private key held in memory."""

    private_key: keys.PrivateKey = field(repr=False)

    @classmethod
    def from_hex(cls, private_key: str) -> "LocalKey":
        try:
            raw = hex_to_bytes(private_key)
            return cls(keys.PrivateKey(raw))
        except (ValidationError, ValueError) as exc:
            raise SigningError("Invalid private key") from exc

    @property
    def address(self) -> str:
        """0x-prefixed checksummed Ethereum address."""
        return self.private_key.public_key.to_checksum_address()

    def to_hex(self) -> str:
        return self.private_key.to_hex()

    def account(self) -> LocalAccount:
        return Account.from_key(self.private_key.to_bytes())

    def sign_hash(self, message_hash: bytes) -> Signature:
        """Sign a 32-byte digest. The returned ``v`` is the recovery bit."""
        if len(message_hash) != 32:
            raise SigningError(f"Message hash must be 32 bytes, got {len(message_hash)}")
        sig = self.private_key.sign_msg_hash(message_hash)
        return Signature(r=sig.r, s=sig.s, v=sig.v)


def generate_eoa() -> tuple[str, str]:
    """
    Generate a new ECDSA/secp256k1 keypair (EOA).

    Returns:
        Tuple of (private_key_hex, address)
        - private_key_hex: 0x-prefixed hex private key (66 chars)
        - address: 0x-prefixed checksummed Ethereum address (42 chars)
    """
    private_key = "0x" + secrets.token_hex(32)
    account = Account.from_key(private_key)
    return private_key, account.address


def save_private_key(private_key: str, env_path: Optional[Path] = None) -> Path:
    """
    Save private key to .env file.

    Args:
        private_key: 0x-prefixed hex private key
        env_path: Path to .env file (default: ~/.bebaiosis/.env)

    Returns:
        Path to the saved .env file
    """
    env_path = env_path or BEBAIOSIS_ENV
    env_path.parent.mkdir(parents=True, exist_ok=True)

    # Read existing .env content or start fresh
    existing: dict[str, str] = {}
    if env_path.exists():
        existing = {k: v for k, v in dotenv_values(env_path).items() if v is not None}

    existing["PRIVATE_KEY"] = private_key

    # Write back

    lines = [f"{k}={v}" for k, v in existing.items()]
    env_path.write_text("\n".join(lines) + "\n", encoding="utf-8")

    # Set secure permissions on Unix
    if os.name != "nt":
        env_path.chmod(0o600)

    return env_path


def load_private_key(env_path: Optional[Path] = None) -> str:
    """
    Load private key from a .env file, falling back to the environment.

    The process environment is read but never modified.

    Args:
        env_path: Path to .env file (default: ~/.bebaiosis/.env)

    Returns:
        0x-prefixed hex private key

    Raises:
        ValueError: If PRIVATE_KEY is found in neither place
    """
    env_path = env_path or BEBAIOSIS_ENV

    private_key = None
    if env_path.exists():
        private_key = dotenv_values(env_path).get("PRIVATE_KEY")
    private_key = private_key or os.environ.get("PRIVATE_KEY")
    if not private_key:
        raise ValueError(
            f"PRIVATE_KEY not found. Run 'bebaiosis keygen' or set "
            f"PRIVATE_KEY in {env_path}"
        )

    if not private_key.startswith("0x"):
        private_key = "0x" + private_key

    return private_key


def load_key(private_key: Optional[str] = None, env_path: Optional[Path] = None) -> LocalKey:
    """
    Get a LocalKey from a hex private key, or from the .env file.

    Args:
        private_key: 0x-prefixed hex private key.
                     If None, loads from .env.
        env_path: .env location used when private_key is None.
    """
    if private_key is None:
        private_key = load_private_key(env_path)
    return LocalKey.from_hex(private_key)


def load_keyfile(path: Union[str, Path], password: str) -> LocalKey:
    """
    Decrypt an encrypted JSON keystore (V3) file.

    Raises:
        FileNotFoundError: If the keyfile does not exist
        SigningError: If the password is wrong or the file is not a keystore
    """
    path = Path(path)
    with path.open("r", encoding="utf-8") as f:
        keyfile = json.load(f)
    try:
        raw = Account.decrypt(keyfile, password)
    except (ValueError, KeyError) as exc:
        raise SigningError(f"Cannot decrypt keyfile {path.name}") from exc
    return LocalKey(keys.PrivateKey(bytes(raw)))


def list_keyfiles(keyfile_dir: Union[str, Path]) -> list[Path]:
    """Keystore files in a directory, sorted by name.

    A missing directory yields an empty list.
    """
    directory = Path(keyfile_dir)
    if not directory.is_dir():
        return []
    found = []
    for candidate in sorted(directory.iterdir()):
        if not candidate.is_file():
            continue
        try:
            payload = json.loads(candidate.read_text(encoding="utf-8"))
        except (ValueError, UnicodeDecodeError):
            continue
        if isinstance(payload, dict) and ("crypto" in payload or "Crypto" in payload):
            found.append(candidate)
    return found
