"""Size-bounded serialization and append of one batch."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import structlog

from core.contracts import Record, WriteOutcome, WriteResult
from storage.base import AppendStore, StorageError
from uploader.partition import PartitionResolver
from uploader.queue import RecordQueue

MAX_BLOCK_SIZE = 4 * 1024 * 1024  # 4 MiB per append
DELIMITER = b"\n"


def fitting_prefix(records: Sequence[Record], max_bytes: int, overhead: int) -> int:
    """Length of the longest prefix whose serialized size stays within ``max_bytes``."""
    total = 0
    for i, record in enumerate(records):
        total += record.size + overhead
        if total > max_bytes:
            return i
    return len(records)


def serialize(records: Sequence[Record], delimiter: bytes = DELIMITER) -> bytes:
    return b"".join(record.payload + delimiter for record in records)


class BatchWriter:
    def __init__(
        self,
        queue: RecordQueue,
        store: AppendStore,
        resolver: PartitionResolver,
        *,
        max_block_size: int = MAX_BLOCK_SIZE,
        delimiter: bytes = DELIMITER,
        lock_timeout: float = 1.0,
        warning_queue_count: int = 1000,
        logger: Any | None = None,
    ) -> None:
        self._queue = queue
        self._store = store
        self._resolver = resolver
        self.max_block_size = max_block_size
        self.delimiter = delimiter
        self.lock_timeout = lock_timeout
        self.warning_queue_count = warning_queue_count
        self._log = logger or structlog.get_logger("uploader.writer")

    async def write(self, count: int, partition_key: str) -> WriteResult:
        """Append up to ``count`` records from the head of the queue to ``partition_key``.

        Records leave the queue only after the append succeeded. A head record
        that alone exceeds ``max_block_size`` is dropped.
        """
        records = self._queue.peek(count)
        n = fitting_prefix(records, self.max_block_size, len(self.delimiter))

        if n == 0:
            size = records[0].size
            self._log.error(
                "writer.record_too_large",
                size=size,
                max_block_size=self.max_block_size,
                error="Could not append new block. Item is too large!",
            )
            await self._queue.remove_prefix(1)
            return WriteResult(WriteOutcome.OVERSIZED)

        batch = records[:n]
        payload = serialize(batch, self.delimiter)
        try:
            target = await self._resolver.resolve(partition_key)
            await self._store.append(target.key, payload)
        except StorageError as exc:
            self._log.error(
                "writer.append_failed", key=partition_key, count=n, error=str(exc)
            )
            self._resolver.invalidate()
            return WriteResult(WriteOutcome.STORAGE_ERROR)
        except Exception:
            self._log.exception("writer.append_error", key=partition_key, count=n)
            return WriteResult(WriteOutcome.FAILED)

        if not await self._queue.try_remove_prefix(n, self.lock_timeout):
            self._log.warning("writer.unsafe_queue_clearing", count=n)

        if len(self._queue) > self.warning_queue_count:
            self._log.info(
                "writer.batch_saved", count=n, bytes=len(payload), location=target.location
            )
        else:
            self._log.debug(
                "writer.batch_saved", count=n, bytes=len(payload), location=target.location
            )
        return WriteResult(WriteOutcome.WRITTEN, written=n, payload_bytes=len(payload))
