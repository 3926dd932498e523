from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


@dataclass(frozen=True)
class Record:
    enqueued_at: datetime
    payload: bytes

    @property
    def size(self) -> int:
        return len(self.payload)


@dataclass(frozen=True)
class PartitionTarget:
    key: str
    location: str


@dataclass(frozen=True)
class BatchPlan:
    count: int
    partition_key: str | None = None
    boundary_reset: bool = False

    @property
    def is_idle(self) -> bool:
        return self.count == 0


class WriteOutcome(Enum):
    WRITTEN = "written"
    OVERSIZED = "oversized"
    STORAGE_ERROR = "storage_error"
    FAILED = "failed"


@dataclass(frozen=True)
class WriteResult:
    outcome: WriteOutcome
    written: int = 0
    payload_bytes: int = 0

    @property
    def made_progress(self) -> bool:
        """True when the queue shrank during this write."""
        return self.outcome in (WriteOutcome.WRITTEN, WriteOutcome.OVERSIZED)


class LifecycleState(Enum):
    STOPPED = "stopped"
    RUNNING = "running"
    DRAINING = "draining"
