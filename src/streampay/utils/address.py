"""Address utilities — EVM address validation and EIP-55 checksums."""

from __future__ import annotations

import re

from streampay.utils.crypto import keccak256

_ADDRESS_RE = re.compile(r"^(0x)?[0-9a-fA-F]{40}$")


def to_checksum_address(address: str) -> str:
    """Return the EIP-55 mixed-case checksum form of *address*.

    Raises:
        ValueError: If *address* is not 40 hex characters (optionally 0x-prefixed).
    """
    if not _ADDRESS_RE.match(address):
        msg = f"Invalid address: {address!r}"
        raise ValueError(msg)
    body = address[2:].lower() if address[:2].lower() == "0x" else address.lower()
    digest = keccak256(body.encode("ascii")).hex()
    chars = [c.upper() if int(digest[i], 16) >= 8 else c for i, c in enumerate(body)]
    return "0x" + "".join(chars)


def validate_address(address: str) -> bool:
    """Check if *address* is a valid EVM address.

    All-lowercase and all-uppercase hex bodies are accepted as-is; mixed
    case must match the EIP-55 checksum.
    """
    if not isinstance(address, str) or not _ADDRESS_RE.match(address):
        return False
    body = address[-40:]
    if body == body.lower() or body == body.upper():
        return True
    return to_checksum_address(address)[2:] == body


def same_address(a: str, b: str) -> bool:
    """Case-insensitive address comparison."""
    return bool(a) and bool(b) and a.lower() == b.lower()
