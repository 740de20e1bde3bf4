"""
Pipeline configuration.

All knobs the orchestrator needs are enumerated here and passed in
explicitly; nothing reads the environment after `PipelineConfig.from_env()`.

Usage:
    config = PipelineConfig.from_env()
    orchestrator = SearchOrchestrator(config)
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from errors import InvalidInputError


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise InvalidInputError(f"{name} must be an integer, got {raw!r}")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise InvalidInputError(f"{name} must be a number, got {raw!r}")


@dataclass
class PipelineConfig:
    """Orchestrator configuration."""

    # Job-execution service
    apify_base_url: str = "https://api.apify.com/v2"
    apify_token: Optional[str] = None
    directory_actor: str = "compass~crawler-google-places"
    contact_actor: str = "apify~web-scraper"
    request_timeout: float = 30.0

    # Stage budgets (seconds)
    directory_timeout: float = 600.0
    contact_timeout: float = 1800.0
    poll_interval: float = 5.0

    # Retry policy
    max_retries: int = 3
    retry_backoff_base: float = 2.0
    retry_backoff_max: float = 30.0

    # Submission quota (shared by every task in the process)
    submissions_per_minute: int = 30
    max_concurrent_submissions: int = 2

    # Fetching
    page_size: int = 250
    max_items: int = 10000

    # Filtering
    max_relevance_drop: float = 0.5

    # Persistence
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None

    # Background worker
    max_concurrent_tasks: int = 2
    worker_poll_interval: float = 5.0

    @classmethod
    def from_env(cls) -> PipelineConfig:
        """Load configuration from environment variables (and .env)."""
        load_dotenv()
        config = cls(
            apify_base_url=os.getenv("APIFY_BASE_URL", cls.apify_base_url),
            apify_token=os.getenv("APIFY_API_TOKEN") or None,
            directory_actor=os.getenv("APIFY_DIRECTORY_ACTOR", cls.directory_actor),
            contact_actor=os.getenv("APIFY_CONTACT_ACTOR", cls.contact_actor),
            request_timeout=_env_float("APIFY_REQUEST_TIMEOUT", cls.request_timeout),
            directory_timeout=_env_float("STAGE1_TIMEOUT_SECONDS", cls.directory_timeout),
            contact_timeout=_env_float("STAGE2_TIMEOUT_SECONDS", cls.contact_timeout),
            poll_interval=_env_float("POLL_INTERVAL_SECONDS", cls.poll_interval),
            max_retries=_env_int("MAX_RETRIES", cls.max_retries),
            retry_backoff_base=_env_float("RETRY_BACKOFF_BASE", cls.retry_backoff_base),
            submissions_per_minute=_env_int(
                "APIFY_SUBMISSIONS_PER_MINUTE", cls.submissions_per_minute
            ),
            max_concurrent_submissions=_env_int(
                "APIFY_MAX_CONCURRENT_SUBMISSIONS", cls.max_concurrent_submissions
            ),
            page_size=_env_int("RESULT_PAGE_SIZE", cls.page_size),
            max_relevance_drop=_env_float("MAX_RELEVANCE_DROP", cls.max_relevance_drop),
            supabase_url=os.getenv("SUPABASE_URL") or None,
            supabase_key=(
                os.getenv("SUPABASE_SERVICE_ROLE_KEY")
                or os.getenv("SUPABASE_ANON_KEY")
                or None
            ),
            max_concurrent_tasks=_env_int("MAX_CONCURRENT_TASKS", cls.max_concurrent_tasks),
            worker_poll_interval=_env_float(
                "WORKER_POLL_INTERVAL_SECONDS", cls.worker_poll_interval
            ),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Reject values the pipeline cannot run with."""
        positive = {
            "directory_timeout": self.directory_timeout,
            "contact_timeout": self.contact_timeout,
            "poll_interval": self.poll_interval,
            "request_timeout": self.request_timeout,
            "submissions_per_minute": self.submissions_per_minute,
            "max_concurrent_submissions": self.max_concurrent_submissions,
            "page_size": self.page_size,
            "max_items": self.max_items,
            "max_concurrent_tasks": self.max_concurrent_tasks,
            "worker_poll_interval": self.worker_poll_interval,
        }
        for name, value in positive.items():
            if value <= 0:
                raise InvalidInputError(f"{name} must be positive, got {value}")
        if self.max_retries < 1:
            raise InvalidInputError(f"max_retries must be >= 1, got {self.max_retries}")
        if not 0.0 <= self.max_relevance_drop <= 1.0:
            raise InvalidInputError(
                f"max_relevance_drop must be within [0, 1], got {self.max_relevance_drop}"
            )

    @property
    def has_supabase(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)
