"""Synchronized FIFO buffer of records awaiting persistence."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime

from core.contracts import Record


def utc_now() -> datetime:
    return datetime.now(UTC)


class RecordQueue:
    """Ordered record buffer guarded by an asyncio lock.

    Only prefixes are ever removed, so the flush path can read the head of the
    queue with ``peek`` while producers keep appending to the tail.
    """

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._records: list[Record] = []
        self._lock = asyncio.Lock()
        self._clock = clock or utc_now

    def __len__(self) -> int:
        return len(self._records)

    async def enqueue(self, payload: bytes) -> int:
        """Append a record stamped with the current time; return the new length."""
        async with self._lock:
            self._records.append(Record(enqueued_at=self._clock(), payload=payload))
            return len(self._records)

    def peek(self, n: int) -> list[Record]:
        return self._records[: max(n, 0)]

    async def remove_prefix(self, n: int) -> None:
        async with self._lock:
            del self._records[:n]

    async def try_remove_prefix(self, n: int, timeout: float) -> bool:
        """Remove the first ``n`` records, waiting at most ``timeout`` for the lock.

        Returns False when the lock could not be acquired in time; the prefix is
        then removed without holding it.
        """
        try:
            await asyncio.wait_for(self._lock.acquire(), timeout=timeout)
        except TimeoutError:
            del self._records[:n]
            return False
        try:
            del self._records[:n]
        finally:
            self._lock.release()
        return True
