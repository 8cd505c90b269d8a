"""HTTP surface for the stream draft (FastAPI)."""
