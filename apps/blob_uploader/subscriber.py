from __future__ import annotations

import asyncio
import contextlib
from typing import Any

import structlog

from core.bus import BusProto
from uploader.saver import BlobSaver


class BusSubscriber:
    """Feeds every payload published on ``channel`` into the saver."""

    def __init__(
        self,
        bus: BusProto,
        saver: BlobSaver,
        channel: str,
        logger: Any | None = None,
    ) -> None:
        self.bus = bus
        self.saver = saver
        self.channel = channel
        self._task: asyncio.Task[None] | None = None
        self._log = logger or structlog.get_logger("uploader.subscriber")
        self.received = 0

    def start(self) -> None:
        self.saver.start()
        if self._task is not None:
            return
        self._task = asyncio.get_running_loop().create_task(
            self._consume(), name=f"subscriber:{self.channel}"
        )
        self._log.info("subscriber.start", channel=self.channel)

    async def stop(self) -> None:
        """Stop intake first, then drain everything already buffered."""
        task = self._task
        self._task = None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
            self._log.info("subscriber.stop", channel=self.channel, received=self.received)
        await self.saver.stop()

    async def _consume(self) -> None:
        async for payload in self.bus.subscribe(self.channel):
            await self.process_message(payload)

    async def process_message(self, payload: bytes) -> None:
        try:
            await self.saver.enqueue(payload)
            self.received += 1
        except Exception:
            self._log.exception("subscriber.process_message_failed", channel=self.channel)
