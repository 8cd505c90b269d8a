"""Ethereum JSON-RPC client."""
