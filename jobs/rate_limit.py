"""
Process-wide submission gate for the job-execution service.

Every task in the process shares one gate, so concurrent tasks together
stay inside the service quota: at most `per_minute` submissions in any
sliding window of `period` seconds, and at most `max_concurrent`
submissions in flight.
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Optional

logger = logging.getLogger(__name__)


class SubmissionGate:
    """Sliding-window quota plus a concurrency cap. Thread-safe."""

    def __init__(
        self,
        per_minute: int = 30,
        max_concurrent: int = 2,
        period: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.per_minute = per_minute
        self.max_concurrent = max_concurrent
        self.period = period
        self._clock = clock
        self._sleep = sleep
        self._usage: List[float] = []
        self._lock = threading.Lock()
        self._slots = threading.BoundedSemaphore(max_concurrent)

    def _reserve(self) -> None:
        """Block until the window has room, then record one submission."""
        while True:
            with self._lock:
                now = self._clock()
                self._usage = [t for t in self._usage if t > now - self.period]
                if len(self._usage) < self.per_minute:
                    self._usage.append(now)
                    return
                wait_time = self._usage[0] + self.period - now + 0.1
            logger.debug("Submission quota reached, waiting %.1fs", wait_time)
            self._sleep(min(wait_time, 5))

    @contextmanager
    def slot(self) -> Iterator[None]:
        """Hold one submission slot for the duration of the block."""
        self._slots.acquire()
        try:
            self._reserve()
            yield
        finally:
            self._slots.release()

    def get_usage(self) -> Dict[str, float]:
        """Return current usage stats."""
        with self._lock:
            now = self._clock()
            recent = [t for t in self._usage if t > now - self.period]
        return {
            "used": len(recent),
            "limit": self.per_minute,
            "period": self.period,
        }


_gate: Optional[SubmissionGate] = None
_gate_lock = threading.Lock()


def get_submission_gate(per_minute: int = 30, max_concurrent: int = 2) -> SubmissionGate:
    """Return the process-wide gate, creating it on first use."""
    global _gate
    with _gate_lock:
        if _gate is None:
            _gate = SubmissionGate(per_minute=per_minute, max_concurrent=max_concurrent)
        return _gate


def reset_submission_gate() -> None:
    """Drop the process-wide gate (tests, reconfiguration)."""
    global _gate
    with _gate_lock:
        _gate = None
