from __future__ import annotations

import hashlib

import pytest
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey

from upilink.adapters.keys import (
    Ed25519KeyPairGenerator,
    Ed25519Signer,
    InvalidPrivateKeyError,
    account_address,
    load_private_key,
)

SEED_HEX = "11" * 32


def test_account_address_hashes_key_with_scheme_byte() -> None:
    public_key = bytes(range(32))

    expected = "0x" + hashlib.sha3_256(public_key + b"\x00").hexdigest()

    assert account_address(public_key) == expected


@pytest.mark.parametrize(
    "value",
    [SEED_HEX, "0x" + SEED_HEX, "ed25519-priv-0x" + SEED_HEX, f"  0x{SEED_HEX}\n"],
)
def test_load_private_key_accepts_known_encodings(value: str) -> None:
    key = load_private_key(value)

    expected = Ed25519PrivateKey.from_private_bytes(bytes.fromhex(SEED_HEX))
    assert key.public_key().public_bytes_raw() == expected.public_key().public_bytes_raw()


@pytest.mark.parametrize("value", ["", "0x1234", "zz" * 32, "0x" + "11" * 33])
def test_load_private_key_rejects_malformed_keys(value: str) -> None:
    with pytest.raises(InvalidPrivateKeyError):
        load_private_key(value)


def test_signer_signatures_verify() -> None:
    signer = Ed25519Signer.from_hex(SEED_HEX)
    message = b"registry transaction"

    signature = signer.sign(message)

    public_key = Ed25519PublicKey.from_public_bytes(bytes.fromhex(signer.public_key_hex[2:]))
    public_key.verify(bytes.fromhex(signature[2:]), message)
    assert signer.address == account_address(bytes.fromhex(signer.public_key_hex[2:]))
    assert SEED_HEX not in repr(signer)


def test_generator_produces_distinct_matching_pairs() -> None:
    generate = Ed25519KeyPairGenerator()

    first = generate()
    second = generate()

    assert first.address != second.address
    assert Ed25519Signer.from_hex(first.key_material).address == first.address
    assert len(first.key_material) == 66
