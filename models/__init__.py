"""
Models package initialization.
"""

from .enums import TaskStatus, Stage, RunStatus, DataSource
from .schema import (
    Location,
    SearchTask,
    JobRun,
    BaseRecord,
    EnrichmentRecord,
    MergedContact,
    TaskResult,
)

__all__ = [
    "TaskStatus",
    "Stage",
    "RunStatus",
    "DataSource",
    "Location",
    "SearchTask",
    "JobRun",
    "BaseRecord",
    "EnrichmentRecord",
    "MergedContact",
    "TaskResult",
]
