"""Tests for the minimal ABI encoder."""

from __future__ import annotations

import pytest

from streampay.chain.rpc.abi import (
    CREATE_STREAM_SIGNATURE,
    decode_uint,
    encode_address,
    encode_call,
    encode_create_stream,
    encode_uint,
)
from streampay.engine.models.params import CreateStreamParams
from streampay.utils.crypto import function_selector

ACCOUNT = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"
RECIPIENT = "0xfB6916095ca1df60bB79Ce92cE3Ea74c37c5d359"
DAI = "0x6B175474E89094C44Da98b954EedeAC495271d0F"


class TestEncodeWords:
    def test_uint(self) -> None:
        word = encode_uint(1)
        assert len(word) == 32
        assert word[-1] == 1
        assert word[:31] == bytes(31)

    def test_uint_max(self) -> None:
        assert encode_uint(2**256 - 1) == b"\xff" * 32

    @pytest.mark.parametrize("value", [-1, 2**256])
    def test_uint_out_of_range(self, value: int) -> None:
        with pytest.raises(ValueError, match="uint256"):
            encode_uint(value)

    def test_address(self) -> None:
        word = encode_address(ACCOUNT)
        assert word[:12] == bytes(12)
        assert word[12:] == bytes.fromhex(ACCOUNT[2:])

    def test_invalid_address(self) -> None:
        with pytest.raises(ValueError, match="Invalid address"):
            encode_address("0x1234")


class TestEncodeCall:
    def test_no_arguments(self) -> None:
        assert encode_call("decimals()") == "0x313ce567"

    def test_create_stream_layout(self) -> None:
        params = CreateStreamParams(
            sender=ACCOUNT,
            recipient=RECIPIENT,
            token=DAI,
            start_block=6398,
            stop_block=92798,
            payment=70 * 10**18,
            interval_in_blocks=43200,
            deposit=140 * 10**18,
        )
        data = encode_create_stream(params)
        body = data[10:]
        words = [body[i : i + 64] for i in range(0, len(body), 64)]

        assert data[:10] == "0x" + function_selector(CREATE_STREAM_SIGNATURE).hex()
        assert len(words) == 7
        assert words[0].endswith(ACCOUNT[2:].lower())
        assert words[1].endswith(RECIPIENT[2:].lower())
        assert words[2].endswith(DAI[2:].lower())
        assert [int(w, 16) for w in words[3:]] == [6398, 92798, 70 * 10**18, 43200]


class TestDecode:
    @pytest.mark.parametrize(
        ("data", "value"),
        [("0x", 0), ("0x0", 0), ("0x1f", 31), ("0x" + "00" * 31 + "12", 18), ("ff", 255)],
    )
    def test_decode_uint(self, data: str, value: int) -> None:
        assert decode_uint(data) == value
