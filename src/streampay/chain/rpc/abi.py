"""Minimal ABI encoding for the calls the engine makes.

Only static types are needed: ``address`` and ``uint256``, each encoded as
one 32-byte big-endian word.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from streampay.utils.address import validate_address
from streampay.utils.crypto import function_selector

if TYPE_CHECKING:
    from streampay.engine.models.params import CreateStreamParams

CREATE_STREAM_SIGNATURE = "createStream(address,address,address,uint256,uint256,uint256,uint256)"
DECIMALS_SIGNATURE = "decimals()"
BALANCE_OF_SIGNATURE = "balanceOf(address)"
ALLOWANCE_SIGNATURE = "allowance(address,address)"

_WORD = 32
_UINT256_MAX = 2**256 - 1


def encode_address(address: str) -> bytes:
    """Left-pad a 20-byte address to one word.

    Raises:
        ValueError: If *address* is not a valid address.
    """
    if not validate_address(address):
        msg = f"Invalid address: {address!r}"
        raise ValueError(msg)
    return bytes.fromhex(address[-40:]).rjust(_WORD, b"\x00")


def encode_uint(value: int) -> bytes:
    """Encode an unsigned integer as one big-endian word.

    Raises:
        ValueError: If *value* does not fit in uint256.
    """
    if value < 0 or value > _UINT256_MAX:
        msg = f"Value out of uint256 range: {value}"
        raise ValueError(msg)
    return value.to_bytes(_WORD, "big")


def encode_call(signature: str, *words: bytes) -> str:
    """Selector plus encoded arguments as a 0x-prefixed hex string."""
    return "0x" + (function_selector(signature) + b"".join(words)).hex()


def encode_create_stream(params: CreateStreamParams) -> str:
    """Call data for ``createStream(sender, recipient, token, start, stop, payment, interval)``."""
    sender, recipient, token, start_block, stop_block, payment, interval = params.to_call_args()
    return encode_call(
        CREATE_STREAM_SIGNATURE,
        encode_address(sender),
        encode_address(recipient),
        encode_address(token),
        encode_uint(start_block),
        encode_uint(stop_block),
        encode_uint(payment),
        encode_uint(interval),
    )


def decode_uint(data: str) -> int:
    """Decode a hex quantity or a single returned word ("0x" means 0)."""
    body = data[2:] if data.startswith("0x") else data
    return int(body, 16) if body else 0
