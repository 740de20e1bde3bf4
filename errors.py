"""
Error taxonomy for the harvesting pipeline.

Stage-1 failures are fatal to a task, stage-2 failures degrade it to a
partial result. Only InvalidInputError escapes the orchestrator.
"""

from __future__ import annotations

from typing import Optional


class PipelineError(Exception):
    """Base class for all pipeline errors."""


class InvalidInputError(PipelineError):
    """Malformed task input. Never retried."""


class SubmissionError(PipelineError):
    """The job service rejected a request (4xx). Never retried."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ServiceUnavailableError(PipelineError):
    """Transient network or 5xx failure. Retried with backoff."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class StageTimeoutError(PipelineError, TimeoutError):
    """A stage exceeded its time budget."""


class PreconditionError(PipelineError):
    """A component was called in a state it does not support."""


class StageFailed(PipelineError):
    """A stage ended without a usable result."""

    def __init__(self, stage, message: str, run=None):
        super().__init__(f"{getattr(stage, 'value', stage)}: {message}")
        self.stage = stage
        self.run = run
        self.reason = message


class PersistenceError(PipelineError):
    """Saving results failed after the allowed retry."""
