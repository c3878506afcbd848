"""Ed25519 keys in the Aptos account format."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Final

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
)

from upilink.domain.model import normalize_address
from upilink.domain.ports import GeneratedKeyPair, KeyPairGenerator

if TYPE_CHECKING:
    from upilink.domain.model import Address

# single-signer Ed25519 authentication scheme byte
_ED25519_SCHEME: Final[bytes] = b"\x00"
# AIP-80 prefix accepted on imported private keys
_PRIVATE_KEY_PREFIX: Final[str] = "ed25519-priv-"


class InvalidPrivateKeyError(ValueError):
    """Raised when a configured private key is not a 32-byte Ed25519 seed."""


def account_address(public_key: bytes) -> Address:
    """Derive the account address authenticated by ``public_key``."""

    return normalize_address("0x" + hashlib.sha3_256(public_key + _ED25519_SCHEME).hexdigest())


def _private_bytes(key: Ed25519PrivateKey) -> bytes:
    return key.private_bytes(Encoding.Raw, PrivateFormat.Raw, NoEncryption())


def _public_bytes(key: Ed25519PrivateKey) -> bytes:
    return key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)


def load_private_key(value: str) -> Ed25519PrivateKey:
    text = value.strip()
    text = text.removeprefix(_PRIVATE_KEY_PREFIX)
    text = text.removeprefix("0x")
    try:
        seed = bytes.fromhex(text)
    except ValueError as exc:
        raise InvalidPrivateKeyError("Private key is not hex encoded") from exc
    if len(seed) != 32:
        raise InvalidPrivateKeyError(f"Private key must be 32 bytes, got {len(seed)}")
    return Ed25519PrivateKey.from_private_bytes(seed)


@dataclass(frozen=True, slots=True)
class Ed25519Signer:
    """Signs registry transactions for one account."""

    private_key: Ed25519PrivateKey = field(repr=False)
    address: Address = field(init=False)
    public_key_hex: str = field(init=False)

    def __post_init__(self) -> None:
        public = _public_bytes(self.private_key)
        object.__setattr__(self, "public_key_hex", "0x" + public.hex())
        object.__setattr__(self, "address", account_address(public))

    @classmethod
    def from_hex(cls, value: str) -> Ed25519Signer:
        return cls(private_key=load_private_key(value))

    def sign(self, message: bytes) -> str:
        return "0x" + self.private_key.sign(message).hex()


class Ed25519KeyPairGenerator:
    """Generate escrow keypairs locally; only the address is ever published."""

    def __call__(self) -> GeneratedKeyPair:
        key = Ed25519PrivateKey.generate()
        return GeneratedKeyPair(
            address=account_address(_public_bytes(key)),
            key_material="0x" + _private_bytes(key).hex(),
        )


if TYPE_CHECKING:
    _generator_check: KeyPairGenerator = Ed25519KeyPairGenerator()
