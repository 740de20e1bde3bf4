"""
Enumerations for task, stage and run state.
"""

from enum import Enum


class TaskStatus(str, Enum):
    """Lifecycle of a search task."""
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    PARTIAL = "partial"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self not in (TaskStatus.PENDING, TaskStatus.RUNNING)


class Stage(str, Enum):
    """The two sequential extraction phases."""
    DIRECTORY_SEARCH = "directory_search"
    CONTACT_EXTRACTION = "contact_extraction"


class RunStatus(str, Enum):
    """Status of one run on the job-execution service."""
    SUBMITTED = "submitted"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.SUCCEEDED, RunStatus.FAILED, RunStatus.TIMED_OUT)


class DataSource(str, Enum):
    """Where the fields of a merged contact came from."""
    DIRECTORY_WITH_ENRICHMENT = "directory_with_enrichment"
    DIRECTORY_ONLY = "directory_only"
