"""Time-window partitioning and lazy resolution of append targets."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

import structlog

from core.contracts import PartitionTarget
from storage.base import AppendStore

DEFAULT_CONTENT_TYPE = "text/plain"
DEFAULT_CONTENT_ENCODING = "utf-8"


class PartitionPolicy(Enum):
    DAILY = "%Y-%m-%d"
    HOURLY = "%Y-%m-%d-%H"

    @classmethod
    def from_hourly(cls, use_hourly: bool) -> PartitionPolicy:
        return cls.HOURLY if use_hourly else cls.DAILY

    def key_for(self, ts: datetime) -> str:
        return ts.strftime(self.value)

    def same_window(self, a: datetime, b: datetime) -> bool:
        return self.key_for(a) == self.key_for(b)


class PartitionResolver:
    """Holds the current append target and recreates it on demand."""

    def __init__(
        self,
        store: AppendStore,
        *,
        content_type: str = DEFAULT_CONTENT_TYPE,
        content_encoding: str = DEFAULT_CONTENT_ENCODING,
        logger: Any | None = None,
    ) -> None:
        self._store = store
        self._content_type = content_type
        self._content_encoding = content_encoding
        self._current: PartitionTarget | None = None
        self._log = logger or structlog.get_logger("uploader.partition")

    @property
    def current(self) -> PartitionTarget | None:
        return self._current

    async def resolve(self, key: str) -> PartitionTarget:
        """Return the target for ``key``, creating the remote object if needed.

        An object that already exists is reused as-is and new data lands after
        its existing content. Raises ``StorageError`` when the backend fails.
        """
        if self._current is not None and self._current.key == key:
            return self._current

        self._current = None
        if await self._store.exists(key):
            created = False
        else:
            created = await self._store.create_if_absent(
                key, self._content_type, self._content_encoding
            )
        target = PartitionTarget(key=key, location=self._store.location(key))
        self._current = target
        self._log.info(
            "partition.resolved", key=key, location=target.location, created=created
        )
        return target

    def invalidate(self) -> None:
        self._current = None
