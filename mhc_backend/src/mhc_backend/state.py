"""Shared runtime state for the MHC backend.

Exposes the job registry and the scheduler so that request handlers
can reach them without importing `app` directly, avoiding circular
dependencies during startup.
"""

from __future__ import annotations

from typing import Optional

from .jobs.registry import JobRegistry
from .scheduling.scheduler import SchedulerPort

_registry: Optional[JobRegistry] = None
_scheduler: Optional[SchedulerPort] = None


def get_registry() -> Optional[JobRegistry]:
    """Return the active job registry, if available."""

    return _registry


def set_registry(instance: Optional[JobRegistry]) -> None:
    global _registry
    _registry = instance


def get_scheduler() -> Optional[SchedulerPort]:
    return _scheduler


def set_scheduler(instance: Optional[SchedulerPort]) -> None:
    global _scheduler
    _scheduler = instance


__all__ = ["get_registry", "set_registry", "get_scheduler", "set_scheduler"]
