"""Background job orchestration.

- RecurringJob / JobStatus: per-job lifecycle state machine.
- BatchDispatcher: sequential batches with inter-item and inter-batch delays.
- TargetSelector: priority-ordered, deduplicated, capped target selection.

Concrete jobs and the registry factory live in their own modules so that
services can import the selector types without pulling the jobs in.
"""

from .base import (
    JobConfig,
    JobError,
    JobStatus,
    RecurringJob,
    RunNowResult,
    RunStats,
    UnsupportedOperationError,
)
from .dispatcher import BatchDispatcher, BatchOutcome, DispatchResult, ItemOutcome
from .targets import SEGMENT_ORDER, PriorityPolicy, SegmentProvider, TargetEntity, TargetSelector

__all__ = [
    "BatchDispatcher",
    "BatchOutcome",
    "DispatchResult",
    "ItemOutcome",
    "JobConfig",
    "JobError",
    "JobStatus",
    "PriorityPolicy",
    "RecurringJob",
    "RunNowResult",
    "RunStats",
    "SEGMENT_ORDER",
    "SegmentProvider",
    "TargetEntity",
    "TargetSelector",
    "UnsupportedOperationError",
]
