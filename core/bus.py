from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any, Protocol, cast

from redis.asyncio import Redis


class BusProto(Protocol):
    """Bus protocol for raw pub/sub payloads.

    Components depend on this interface instead of the concrete Bus so tests
    can swap in an in-memory bus.
    """

    async def publish(self, topic: str, payload: bytes) -> None: ...

    def subscribe(self, topic: str) -> AsyncIterator[bytes]:
        """Subscribe to topic, yield payloads as received.

        Note:
            This is a SYNC method returning AsyncIterator (not async def).
            Usage: async for data in bus.subscribe(topic)  # No await!
        """
        ...


class Bus:
    """Async publish/subscribe helper backed by Redis, payloads passed through as bytes."""

    def __init__(self, url: str) -> None:
        self._url = url
        self._client: Redis | None = None

    async def _get_client(self) -> Redis:
        if self._client is None:
            self._client = Redis.from_url(self._url)
        return self._client

    async def publish(self, topic: str, payload: bytes) -> None:
        client = await self._get_client()
        await client.publish(topic, payload)

    def subscribe(self, topic: str) -> AsyncIterator[bytes]:
        async def stream() -> AsyncIterator[bytes]:
            client = await self._get_client()
            pubsub = cast(Any, client.pubsub())
            await pubsub.subscribe(topic)
            try:
                async for message in pubsub.listen():
                    if message.get("type") != "message":
                        continue
                    data = message.get("data")
                    if isinstance(data, str):
                        data = data.encode("utf-8")
                    yield data
            finally:
                await pubsub.unsubscribe(topic)
                await pubsub.aclose()

        return stream()

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
