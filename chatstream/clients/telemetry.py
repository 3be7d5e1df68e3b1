"""Best-effort telemetry client."""

import asyncio
from typing import Any

import httpx

from chatstream.config import ChatConfig
from chatstream.utils.logging import get_logger

logger = get_logger(__name__)


class TelemetryClient:
    """Fire-and-forget POSTs of ``{event, ...fields}`` records.

    Failures are logged and dropped; nothing here ever blocks or retries the chat path.
    """

    def __init__(self, config: ChatConfig | None = None, client: httpx.AsyncClient | None = None):
        """Initialize telemetry client.

        Args:
            config: Engine configuration (telemetry URL and enabled flag)
            client: Preconfigured httpx client, mainly for tests
        """
        self.config = config or ChatConfig()
        self.enabled = self.config.telemetry_enabled
        self.client = client or httpx.AsyncClient(timeout=5.0)
        self._pending: set[asyncio.Task[None]] = set()

    def emit(self, event: str, **fields: Any) -> None:
        """Schedule a telemetry record for delivery."""
        if not self.enabled:
            return

        payload = {"event": event, **fields}
        logger.debug(f"telemetry: {payload}")

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"No running event loop, dropping telemetry event {event}")
            return

        task = loop.create_task(self._post(payload))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _post(self, payload: dict[str, Any]) -> None:
        try:
            response = await self.client.post(self.config.telemetry_url, json=payload)
            if response.is_error:
                logger.debug(f"Telemetry sink returned {response.status_code}")
        except Exception as e:
            logger.debug(f"Telemetry delivery failed: {e}")

    async def aclose(self) -> None:
        """Wait for in-flight records, then close the HTTP client."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        await self.client.aclose()
