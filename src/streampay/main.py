"""Application entry point for the streampay server."""

from __future__ import annotations

import os

import uvicorn

from streampay.config.settings import AppConfig


def main() -> None:
    """Start the streampay server."""
    config = AppConfig()
    reload = os.getenv("STREAMPAY_RELOAD", "false").lower() in ("1", "true", "yes")
    uvicorn.run(
        "streampay.api.app:create_app",
        factory=True,
        host=config.server.host,
        port=config.server.port,
        reload=reload,
        log_level="debug" if config.debug else "info",
    )


if __name__ == "__main__":
    main()
