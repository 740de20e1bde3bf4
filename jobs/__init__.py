"""
Job-execution service access: submit, poll, fetch.
"""

from .client import (
    ApifyJobClient,
    ItemPage,
    JobClient,
    RunSnapshot,
    build_contact_extraction_input,
    build_directory_search_input,
    get_job_client,
)
from .fetcher import ResultFetcher
from .poller import RunPoller
from .rate_limit import SubmissionGate, get_submission_gate, reset_submission_gate
from .retry import RetryPolicy

__all__ = [
    "ApifyJobClient",
    "ItemPage",
    "JobClient",
    "RunSnapshot",
    "build_contact_extraction_input",
    "build_directory_search_input",
    "get_job_client",
    "ResultFetcher",
    "RunPoller",
    "SubmissionGate",
    "get_submission_gate",
    "reset_submission_gate",
    "RetryPolicy",
]
