"""
Identity normalization.

Payer and payee identities are committed as 20-byte addresses: the
keccak-derived hash of a secp256k1 public key. Callers may supply either
the address or the public key itself; both normalize to the address.
"""

from __future__ import annotations

import re

from eth_keys import keys
from eth_utils import to_checksum_address

_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")
_HEX_RE = re.compile(r"^[a-fA-F0-9]+$")

ADDRESS_SIZE = 20


def normalize_address(address: str) -> str:
    """Normalize addresses to lower-case 0x-prefixed hex."""
    candidate = address.strip()
    if candidate.startswith(("0X", "0x")):
        candidate = "0x" + candidate[2:]
    if not _ADDRESS_RE.match(candidate):
        raise ValueError(f"Invalid address: {address}")
    return "0x" + candidate[2:].lower()


def address_from_public_key(public_key: str | bytes) -> str:
    """Derive the normalized address committed to by a public key.

    Accepts compressed (33 bytes), uncompressed (65 bytes, 0x04 prefix) or
    raw (64 bytes) encodings.
    """
    raw = _public_key_bytes(public_key)
    if len(raw) == 33:
        pub = keys.PublicKey.from_compressed_bytes(raw)
    elif len(raw) == 65 and raw[0] == 0x04:
        pub = keys.PublicKey(raw[1:])
    elif len(raw) == 64:
        pub = keys.PublicKey(raw)
    else:
        raise ValueError(f"Unsupported public key length: {len(raw)} bytes")
    return normalize_address(pub.to_address())


def normalize_identity(value: str) -> str:
    """Return the address for an address-or-public-key identity string."""
    candidate = value.strip()
    body = candidate[2:] if candidate.lower().startswith("0x") else candidate
    if len(body) == 2 * ADDRESS_SIZE:
        return normalize_address("0x" + body)
    return address_from_public_key(candidate)


def address_bytes(address: str) -> bytes:
    return bytes.fromhex(normalize_address(address)[2:])


def address_from_bytes(raw: bytes) -> str:
    if len(raw) != ADDRESS_SIZE:
        raise ValueError(f"Address must be {ADDRESS_SIZE} bytes, got {len(raw)}")
    return "0x" + raw.hex()


def display_address(address: str) -> str:
    """Checksummed form for human-facing output."""
    return to_checksum_address(normalize_address(address))


def normalize_private_key(value: str | bytes) -> str:
    """Return a secp256k1 private key as 0x-prefixed 32-byte hex."""
    if isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    else:
        candidate = value.strip()
        if candidate.lower().startswith("0x"):
            candidate = candidate[2:]
        if len(candidate) != 64 or not _HEX_RE.match(candidate):
            raise ValueError("Private key must be a 32-byte hex string")
        raw = bytes.fromhex(candidate)
    if len(raw) != 32:
        raise ValueError(f"Private key must be 32 bytes, got {len(raw)}")
    return "0x" + raw.hex()


def _public_key_bytes(public_key: str | bytes) -> bytes:
    if isinstance(public_key, (bytes, bytearray)):
        return bytes(public_key)
    candidate = public_key.strip()
    if candidate.lower().startswith("0x"):
        candidate = candidate[2:]
    if not candidate or len(candidate) % 2 or not _HEX_RE.match(candidate):
        raise ValueError("Public key must be a hex string")
    return bytes.fromhex(candidate)
