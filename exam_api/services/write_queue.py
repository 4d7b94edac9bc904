"""Fire-and-forget answer writes with per-question serialization."""
import asyncio
import logging
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

Writer = Callable[[str, Any], Awaitable[bool]]


class AnswerWriteQueue:
    """
    Runs answer writes in the background.

    Writes for different questions run independently. Writes for the same
    question never overlap: while one is in flight, newer values replace each
    other and only the latest is written once the in-flight write returns.
    """

    def __init__(self, writer: Writer) -> None:
        self._writer = writer
        self._pending: dict[str, Any] = {}
        self._running: dict[str, asyncio.Task] = {}
        self.failed_keys: set[str] = set()

    def submit(self, key: str, value: Any) -> None:
        """Queue a write and return immediately. Needs a running event loop."""
        self._pending[key] = value
        if key not in self._running:
            loop = asyncio.get_running_loop()
            self._running[key] = loop.create_task(self._drain(key))

    @property
    def busy_keys(self) -> set[str]:
        return set(self._running)

    async def flush(self) -> None:
        """Wait until no write is in flight or pending."""
        while self._running:
            await asyncio.gather(*list(self._running.values()), return_exceptions=True)

    async def _drain(self, key: str) -> None:
        try:
            while key in self._pending:
                value = self._pending.pop(key)
                try:
                    stored = await self._writer(key, value)
                except Exception as e:
                    logger.error("Answer write for %s raised: %s", key, e)
                    stored = False
                if stored:
                    self.failed_keys.discard(key)
                else:
                    self.failed_keys.add(key)
        finally:
            self._running.pop(key, None)
