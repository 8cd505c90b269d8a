"""Chain service — JSON-RPC node + stream indexer integration."""

from streampay.chain.service import ChainService

__all__ = ["ChainService"]
