"""Per-cycle selection of the next write-eligible run of queued records."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta

from core.contracts import BatchPlan
from uploader.partition import PartitionPolicy
from uploader.queue import RecordQueue, utc_now

DEFAULT_MIN_BATCH_COUNT = 10
DEFAULT_MAX_BATCH_COUNT = 1000
DEFAULT_MAX_BATCH_AGE = timedelta(hours=1)


class BatchPlanner:
    """Decides how many records from the head of the queue form the next batch.

    A batch never spans two partition windows. Small backlogs are held back
    until ``min_batch_count`` records are queued, the current window has been
    open for ``max_batch_age``, or a shutdown is in progress.
    """

    def __init__(
        self,
        policy: PartitionPolicy = PartitionPolicy.DAILY,
        *,
        min_batch_count: int = DEFAULT_MIN_BATCH_COUNT,
        max_batch_count: int = DEFAULT_MAX_BATCH_COUNT,
        max_batch_age: timedelta = DEFAULT_MAX_BATCH_AGE,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.policy = policy
        self.min_batch_count = min_batch_count if min_batch_count > 0 else DEFAULT_MIN_BATCH_COUNT
        self.max_batch_count = max_batch_count if max_batch_count > 0 else DEFAULT_MAX_BATCH_COUNT
        self.max_batch_age = max_batch_age
        self._clock = clock or utc_now
        self.boundary: datetime | None = None

    def should_wait(self, pending: int, shutting_down: bool) -> bool:
        if pending == 0:
            return True
        if shutting_down or self.boundary is None:
            return False
        return (
            pending < self.min_batch_count
            and self._clock() - self.boundary < self.max_batch_age
        )

    def plan(self, queue: RecordQueue, shutting_down: bool = False) -> BatchPlan:
        if self.should_wait(len(queue), shutting_down):
            return BatchPlan(count=0)

        count = 0
        boundary_reset = False
        boundary = self.boundary
        for record in queue.peek(self.max_batch_count):
            if boundary is None:
                boundary = record.enqueued_at
            if not self.policy.same_window(record.enqueued_at, boundary):
                if count > 0:
                    break
                # head of the queue opened a new window
                boundary = record.enqueued_at
                boundary_reset = True
            count += 1
        self.boundary = boundary

        if count == 0 or boundary is None:
            return BatchPlan(count=0, boundary_reset=boundary_reset)
        return BatchPlan(
            count=count,
            partition_key=self.policy.key_for(boundary),
            boundary_reset=boundary_reset,
        )
