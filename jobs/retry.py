"""
Retry with exponential backoff for transient job-service failures.

Only ServiceUnavailableError is retried. SubmissionError and every other
error propagate on the first attempt.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, TypeVar

from errors import ServiceUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryPolicy:
    """Attempt budget and backoff schedule."""

    max_retries: int = 3
    backoff_base: float = 2.0
    backoff_max: float = 30.0
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    @classmethod
    def from_config(cls, config, sleep: Callable[[float], None] = time.sleep) -> RetryPolicy:
        return cls(
            max_retries=config.max_retries,
            backoff_base=config.retry_backoff_base,
            backoff_max=config.retry_backoff_max,
            sleep=sleep,
        )

    def delay(self, attempt: int) -> float:
        """Seconds to wait after the given (0-based) failed attempt."""
        return min(self.backoff_base ** attempt, self.backoff_max)

    def call(
        self,
        fn: Callable[..., T],
        *args,
        description: str = "request",
        cancel: Optional[threading.Event] = None,
        **kwargs,
    ) -> T:
        """
        Run `fn`, retrying ServiceUnavailableError up to `max_retries` attempts.

        The last ServiceUnavailableError is re-raised once attempts run out,
        or as soon as `cancel` is set after a failed attempt.
        """
        attempts = max(1, self.max_retries)
        last_error: Optional[ServiceUnavailableError] = None
        for attempt in range(attempts):
            if last_error is not None and cancel is not None and cancel.is_set():
                logger.warning("%s abandoned: abort requested", description)
                raise last_error
            try:
                return fn(*args, **kwargs)
            except ServiceUnavailableError as e:
                last_error = e
                if attempt == attempts - 1:
                    logger.error("%s failed after %d attempts: %s", description, attempts, e)
                    raise
                wait_time = self.delay(attempt)
                logger.warning(
                    "%s failed (attempt %d/%d): %s; retrying in %.1fs",
                    description, attempt + 1, attempts, e, wait_time,
                )
                self.sleep(wait_time)

        raise ServiceUnavailableError(f"{description} failed after {attempts} attempts")
