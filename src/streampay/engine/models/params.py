"""CreateStreamParams — the exact argument tuple of the on-chain createStream call."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class CreateStreamParams:
    """Arguments of ``createStream`` in call order.

    Attributes:
        sender: Paying account.
        recipient: Receiving account.
        token: Token contract address.
        start_block: Block at which the stream starts.
        stop_block: Block at which the stream stops.
        payment: Payment per interval in the token's smallest units.
        interval_in_blocks: Interval length in blocks.
        deposit: Total deposit in smallest units (informational, not a call argument).
    """

    sender: str
    recipient: str
    token: str
    start_block: int
    stop_block: int
    payment: int
    interval_in_blocks: int
    deposit: int = 0

    def to_call_args(self) -> tuple[str, str, str, int, int, int, int]:
        """Positional arguments for ``createStream``."""
        return (
            self.sender,
            self.recipient,
            self.token,
            self.start_block,
            self.stop_block,
            self.payment,
            self.interval_in_blocks,
        )
