from __future__ import annotations

import asyncio
from collections import defaultdict
from collections.abc import AsyncIterator, Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any, cast

from core.config import Config
from storage.base import StorageError


class InMemoryBus:
    def __init__(self) -> None:
        self._queues: dict[str, asyncio.Queue[bytes]] = defaultdict(asyncio.Queue)
        self.published: dict[str, list[bytes]] = defaultdict(list)

    async def publish(self, topic: str, payload: bytes) -> None:
        self.published[topic].append(payload)
        await self._queues[topic].put(payload)

    def subscribe(self, topic: str) -> AsyncIterator[bytes]:
        queue = self._queues[topic]

        async def generator() -> AsyncIterator[bytes]:
            while True:
                item = await queue.get()
                yield item

        return generator()

    async def close(self) -> None:
        return None


class InMemoryAppendStore:
    """AppendStore double that records every call and can inject failures."""

    def __init__(self) -> None:
        self.objects: dict[str, bytearray] = {}
        self.metadata: dict[str, dict[str, str]] = {}
        self.appends: list[tuple[str, bytes]] = []
        self.containers: dict[str, bool] = {}
        self.fail_appends = 0
        self.fail_creates = 0
        self.on_append: Callable[[str, bytes], None] | None = None
        self.closed = False

    async def ensure_container(self, public: bool = False) -> bool:
        if "default" in self.containers:
            return False
        self.containers["default"] = public
        return True

    async def exists(self, key: str) -> bool:
        return key in self.objects

    async def create_if_absent(self, key: str, content_type: str, content_encoding: str) -> bool:
        if self.fail_creates > 0:
            self.fail_creates -= 1
            raise StorageError(f"injected create failure for {key}")
        if key in self.objects:
            return False
        self.objects[key] = bytearray()
        self.metadata[key] = {"content_type": content_type, "content_encoding": content_encoding}
        return True

    async def append(self, key: str, data: bytes) -> None:
        if self.fail_appends > 0:
            self.fail_appends -= 1
            raise StorageError(f"injected append failure for {key}")
        if self.on_append is not None:
            self.on_append(key, data)
        self.objects[key].extend(data)
        self.appends.append((key, data))

    def location(self, key: str) -> str:
        return f"memory:{key}"

    async def close(self) -> None:
        self.closed = True

    def lines(self, key: str) -> list[bytes]:
        return bytes(self.objects[key]).splitlines()


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 3, 10, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: Any) -> None:
        self.now = self.now + timedelta(**kwargs)

    def set(self, value: datetime) -> None:
        self.now = value


async def wait_for(
    condition: Callable[[], bool], *, timeout: float = 2.0, interval: float = 0.01
) -> None:
    loop = asyncio.get_running_loop()
    end = loop.time() + timeout
    while loop.time() < end:
        if condition():
            return
        await asyncio.sleep(interval)
    raise AssertionError("condition not met before timeout")


def build_test_config(base_dir: Path, backend: str = "filesystem") -> Config:
    cfg_dict = {
        "app": {"name": "test", "env": "test"},
        "logging": {"level": "INFO", "log_dir": str(base_dir / "logs")},
        "redis": {"url": "redis://localhost:6379/0", "channel": "test.records"},
        "storage": {
            "backend": backend,
            "connection": str(base_dir / "blobs"),
            "container": "Test.Records",
            "public_container": False,
        },
        "batching": {
            "min_batch_count": 1,
            "max_batch_count": 100,
            "poll_interval_ms": 10,
            "drain_poll_interval_seconds": 0.01,
        },
    }
    return cast(Config, Config.model_validate(cfg_dict))
