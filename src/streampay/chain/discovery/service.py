"""Stream discovery — find a newly created stream in the GraphQL indexer.

The indexer is polled for the sender's newest stream created at or after a
reference block. ``subscribe`` returns a ``DiscoverySubscription`` handle
whose task keeps polling until the stream appears, an error occurs, the
timeout passes, or the handle is cancelled.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import httpx

from streampay.errors.chain_errors import DiscoveryError

if TYPE_CHECKING:
    from streampay.config.settings import DiscoveryConfig

logger = logging.getLogger(__name__)

LAST_RAW_STREAM_QUERY = """
query LastRawStream($blockNumber: BigInt!, $sender: String!) {
  rawStreams(
    first: 1
    orderBy: blockNumber
    orderDirection: desc
    where: { sender: $sender, blockNumber_gte: $blockNumber }
  ) {
    id
  }
}
"""


class DiscoverySubscription:
    """Cancellable handle around a polling task."""

    def __init__(self, task: asyncio.Task[None]) -> None:
        self._task = task

    @property
    def active(self) -> bool:
        return not self._task.done()

    def cancel(self) -> None:
        self._task.cancel()

    async def wait(self) -> None:
        """Wait for the polling task to end (cancellation included)."""
        await asyncio.gather(self._task, return_exceptions=True)


class StreamDiscoveryService:
    """Async GraphQL client for the stream indexer.

    Usage::

        discovery = StreamDiscoveryService(config)
        await discovery.connect()
        handle = discovery.subscribe(block, sender, on_stream, on_error)
        ...
        handle.cancel()
        await discovery.close()
    """

    def __init__(self, config: DiscoveryConfig) -> None:
        self._config = config
        self._client: httpx.AsyncClient | None = None

    async def connect(self) -> None:  # noqa: ASYNC910
        """Create the underlying HTTP client."""
        self._client = httpx.AsyncClient(
            base_url=self._config.url,
            headers={"Content-Type": "application/json"},
            timeout=30.0,
        )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def is_connected(self) -> bool:
        """Check if the HTTP client is active."""
        return self._client is not None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def find_stream(self, block_number: int, sender: str) -> str | None:
        """Return the id of the sender's newest stream since *block_number*, if indexed.

        Raises:
            DiscoveryError: On HTTP or GraphQL errors.
        """
        data = await self._query(
            LAST_RAW_STREAM_QUERY,
            {"blockNumber": block_number, "sender": sender.lower()},
        )
        streams = (data or {}).get("rawStreams") or []
        if not streams:
            return None
        return str(streams[0]["id"])

    def subscribe(
        self,
        block_number: int,
        sender: str,
        on_stream: Callable[[str], None],
        on_error: Callable[[Exception], None],
    ) -> DiscoverySubscription:
        """Poll in the background until the stream is indexed.

        Exactly one of *on_stream* / *on_error* is called unless the
        subscription is cancelled first.
        """
        task = asyncio.create_task(self._poll(block_number, sender, on_stream, on_error))
        return DiscoverySubscription(task)

    async def healthcheck(self) -> bool:
        """Check that the indexer answers a trivial query."""
        try:
            await self._query("{ __typename }", {})
        except DiscoveryError:
            return False
        return True

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _poll(
        self,
        block_number: int,
        sender: str,
        on_stream: Callable[[str], None],
        on_error: Callable[[Exception], None],
    ) -> None:
        try:
            async with asyncio.timeout(self._config.timeout):
                while True:
                    stream_id = await self.find_stream(block_number, sender)
                    if stream_id is not None:
                        break
                    await asyncio.sleep(self._config.poll_interval)
        except TimeoutError:
            logger.warning("Stream discovery for %s timed out", sender)
            on_error(DiscoveryError("stream discovery timed out", status_code=504))
            return
        except DiscoveryError as exc:
            logger.warning("Stream discovery for %s failed: %s", sender, exc.message)
            on_error(exc)
            return
        on_stream(stream_id)

    def _ensure_connected(self) -> httpx.AsyncClient:
        """Return the HTTP client, raising if not connected."""
        if self._client is None:
            msg = "Discovery service not connected. Call connect() first."
            raise DiscoveryError(msg, status_code=500)
        return self._client

    async def _query(self, query: str, variables: dict[str, Any]) -> dict[str, Any] | None:
        client = self._ensure_connected()
        try:
            response = await client.post("", json={"query": query, "variables": variables})
        except httpx.HTTPError as exc:
            raise DiscoveryError(f"indexer query failed: {exc}") from exc

        if response.status_code != 200:
            raise DiscoveryError(
                f"indexer query failed ({response.status_code}): {response.text}",
                status_code=response.status_code,
            )

        payload = response.json()
        errors = payload.get("errors")
        if errors:
            first = errors[0] if isinstance(errors, list) else errors
            detail = first.get("message", first) if isinstance(first, dict) else first
            raise DiscoveryError(f"indexer error: {detail}")
        return payload.get("data")
