"""Background flush engine that persists buffered records to append targets.

Producers push payloads with ``enqueue``; a single worker task plans batches,
resolves the partition target and appends, in strict enqueue order. ``stop``
waits until every buffered record has been written.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable
from datetime import datetime, timedelta
from types import TracebackType
from typing import Any

import structlog

from core.config import BatchingCfg
from core.contracts import LifecycleState, PartitionTarget, WriteResult
from storage.base import AppendStore
from uploader.partition import PartitionPolicy, PartitionResolver
from uploader.planner import DEFAULT_MAX_BATCH_AGE, BatchPlanner
from uploader.queue import RecordQueue, utc_now
from uploader.writer import DELIMITER, MAX_BLOCK_SIZE, BatchWriter

WARNING_QUEUE_COUNT = 1000
WARNING_INTERVAL = timedelta(minutes=1)
POLL_INTERVAL_S = 0.5
DRAIN_POLL_INTERVAL_S = 1.0


class BlobSaver:
    def __init__(
        self,
        store: AppendStore,
        *,
        use_hourly_partitioning: bool = False,
        min_batch_count: int = 10,
        max_batch_count: int = 1000,
        warning_queue_count: int = WARNING_QUEUE_COUNT,
        poll_interval: float = POLL_INTERVAL_S,
        drain_poll_interval: float = DRAIN_POLL_INTERVAL_S,
        max_batch_age: timedelta = DEFAULT_MAX_BATCH_AGE,
        max_block_size: int = MAX_BLOCK_SIZE,
        delimiter: bytes = DELIMITER,
        lock_timeout: float = 1.0,
        clock: Callable[[], datetime] | None = None,
        logger: Any | None = None,
    ) -> None:
        self._log = logger or structlog.get_logger("uploader.saver")
        self._clock = clock or utc_now
        self.warning_queue_count = warning_queue_count
        self.poll_interval = poll_interval
        self.drain_poll_interval = drain_poll_interval

        self._queue = RecordQueue(clock=self._clock)
        self._resolver = PartitionResolver(store, logger=self._log)
        self._planner = BatchPlanner(
            PartitionPolicy.from_hourly(use_hourly_partitioning),
            min_batch_count=min_batch_count,
            max_batch_count=max_batch_count,
            max_batch_age=max_batch_age,
            clock=self._clock,
        )
        self._writer = BatchWriter(
            self._queue,
            store,
            self._resolver,
            max_block_size=max_block_size,
            delimiter=delimiter,
            lock_timeout=lock_timeout,
            warning_queue_count=warning_queue_count,
            logger=self._log,
        )

        self._state = LifecycleState.STOPPED
        self._task: asyncio.Task[None] | None = None
        self._cancel: asyncio.Event | None = None
        self._last_warning: datetime | None = None

    @classmethod
    def from_config(
        cls, store: AppendStore, cfg: BatchingCfg, logger: Any | None = None
    ) -> BlobSaver:
        return cls(
            store,
            use_hourly_partitioning=cfg.use_hourly_partitioning,
            min_batch_count=cfg.min_batch_count,
            max_batch_count=cfg.max_batch_count,
            warning_queue_count=cfg.warning_queue_count,
            poll_interval=cfg.poll_interval_ms / 1000.0,
            drain_poll_interval=cfg.drain_poll_interval_seconds,
            max_batch_age=timedelta(seconds=cfg.max_batch_age_seconds),
            lock_timeout=cfg.lock_timeout_seconds,
            logger=logger,
        )

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def pending(self) -> int:
        return len(self._queue)

    @property
    def current_target(self) -> PartitionTarget | None:
        return self._resolver.current

    @property
    def planner(self) -> BatchPlanner:
        return self._planner

    def worker_status(self) -> str:
        if self._task is None:
            return "missing"
        return "done" if self._task.done() else "running"

    async def enqueue(self, payload: bytes) -> int:
        """Buffer one record; never waits on storage."""
        count = await self._queue.enqueue(payload)
        if count <= self.warning_queue_count:
            return count

        now = self._clock()
        if self._last_warning is None or now - self._last_warning >= WARNING_INTERVAL:
            self._last_warning = now
            self._log.warning(
                "saver.backlog",
                count=count,
                threshold=self.warning_queue_count,
                state=self._state.value,
                worker=self.worker_status(),
            )
        return count

    def start(self) -> None:
        if self._state is LifecycleState.RUNNING:
            return
        if self._state is LifecycleState.DRAINING:
            raise RuntimeError("saver is draining; wait for stop() to finish")

        self._cancel = asyncio.Event()
        self._task = asyncio.get_running_loop().create_task(
            self._process_data(), name="blob-saver"
        )
        self._state = LifecycleState.RUNNING
        self._log.info("saver.start", pending=len(self._queue))

    async def stop(self) -> None:
        """Stop the worker after every buffered record has been written."""
        if self._state is LifecycleState.STOPPED:
            return
        task = self._task
        cancel = self._cancel
        if task is None or cancel is None:
            self._state = LifecycleState.STOPPED
            return

        # a cancelled stop() leaves DRAINING behind; resume the same drain
        resumed = self._state is LifecycleState.DRAINING
        self._state = LifecycleState.DRAINING
        cancel.set()
        self._log.info("saver.draining", pending=len(self._queue), resumed=resumed)

        while len(self._queue) > 0:
            if task.done():
                self._log.error("saver.worker_exited", pending=len(self._queue))
                break
            await asyncio.sleep(self.drain_poll_interval)

        with contextlib.suppress(asyncio.CancelledError):
            await task

        self._task = None
        self._cancel = None
        self._state = LifecycleState.STOPPED
        self._log.info("saver.stopped")

    async def __aenter__(self) -> BlobSaver:
        self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.stop()

    def _cancelled(self) -> bool:
        return self._cancel is not None and self._cancel.is_set()

    async def _process_data(self) -> None:
        while not (self._cancelled() and len(self._queue) == 0):
            try:
                progressed = await self.process_queue()
            except Exception:
                self._log.exception("saver.cycle_failed")
                progressed = False
            if not progressed:
                await self._sleep()

    async def _sleep(self) -> None:
        cancel = self._cancel
        if cancel is None or cancel.is_set():
            # draining: keep retrying at the poll interval without early wakeups
            await asyncio.sleep(self.poll_interval)
            return
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(cancel.wait(), timeout=self.poll_interval)

    async def process_queue(self) -> bool:
        """Run one plan/write cycle. Returns True when the queue shrank."""
        pending = len(self._queue)
        if pending > self.warning_queue_count:
            self._log.info("saver.queue_size", count=pending)

        plan = self._planner.plan(self._queue, shutting_down=self._cancelled())
        if plan.boundary_reset:
            self._resolver.invalidate()
        if plan.is_idle or plan.partition_key is None:
            return False

        result: WriteResult = await self._writer.write(plan.count, plan.partition_key)
        return result.made_progress
