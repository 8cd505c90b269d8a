"""FastAPI dependency injection helpers.

Usage in a route::

    @router.get("/draft")
    async def get_draft(
        engine: Annotated[StreamEngine, Depends(get_engine)],
    ) -> ...:
        ...
"""

from __future__ import annotations

from fastapi import Request

from streampay.engine.client import StreamEngine  # noqa: TC001
from streampay.errors.definitions import ErrEngineNotInitialized


def get_engine(request: Request) -> StreamEngine:
    """Retrieve the engine from ``app.state``.

    The engine is stored on ``app.state.engine`` during lifespan startup.

    Raises:
        ErrEngineNotInitialized: If the engine is missing or not initialized.
    """
    engine: StreamEngine | None = getattr(request.app.state, "engine", None)
    if engine is None or not engine.is_initialized:
        raise ErrEngineNotInitialized
    return engine
