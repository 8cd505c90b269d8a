"""Cryptographic helpers — Keccak-256 hashing."""

from __future__ import annotations

from Crypto.Hash import keccak


def keccak256(data: bytes) -> bytes:
    """Keccak-256 hash (the pre-standard SHA-3 variant used by Ethereum)."""
    h = keccak.new(digest_bits=256)
    h.update(data)
    return h.digest()


def function_selector(signature: str) -> bytes:
    """First four bytes of the Keccak-256 hash of a function signature."""
    return keccak256(signature.encode("ascii"))[:4]
