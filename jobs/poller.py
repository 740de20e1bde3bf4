"""
Run Poller: waits for a submitted run to reach a terminal state.

Polling is a blocking loop. It stops on a terminal status, on the stage
time budget, or on the abort signal, whichever comes first. A timed-out
or aborted run is left alone on the remote side.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import replace
from typing import Callable, Optional

from errors import PipelineError, ServiceUnavailableError
from models.enums import RunStatus
from models.schema import JobRun
from .client import JobClient
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

ABORTED_MESSAGE = "aborted"


class RunPoller:
    """Drives a JobRun to a terminal status."""

    def __init__(
        self,
        client: JobClient,
        poll_interval: float = 5.0,
        retry: Optional[RetryPolicy] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.client = client
        self.poll_interval = poll_interval
        self.retry = retry or RetryPolicy()
        self._clock = clock
        self._sleep = sleep

    def await_completion(
        self,
        run: JobRun,
        stage_timeout: float,
        cancel: Optional[threading.Event] = None,
    ) -> JobRun:
        """
        Poll until `run` is terminal.

        Args:
            run: Run created on submission
            stage_timeout: Seconds before the run is marked timed_out
            cancel: Abort signal; when set, the run is marked failed ("aborted")

        Returns:
            The same run, now terminal
        """
        deadline = self._clock() + stage_timeout
        label = f"{run.stage.value} run {run.external_run_id}"

        def backoff(seconds: float) -> None:
            # Retry waits stop at the deadline and wake on abort
            self._wait(max(0.0, min(seconds, deadline - self._clock())), cancel, self.retry.sleep)

        retry = replace(self.retry, sleep=backoff)

        while not run.is_terminal:
            if cancel is not None and cancel.is_set():
                run.advance(RunStatus.FAILED, message=ABORTED_MESSAGE)
                logger.warning("%s aborted", label)
                break

            if self._clock() >= deadline:
                run.advance(
                    RunStatus.TIMED_OUT,
                    message=f"no terminal status within {stage_timeout:.0f}s",
                )
                logger.error("%s timed out after %.0fs", label, stage_timeout)
                break

            try:
                snapshot = retry.call(
                    self.client.get_run, run.external_run_id,
                    description=f"poll {label}", cancel=cancel,
                )
            except PipelineError as e:
                if cancel is not None and cancel.is_set():
                    run.advance(RunStatus.FAILED, message=ABORTED_MESSAGE)
                    logger.warning("%s aborted", label)
                elif isinstance(e, ServiceUnavailableError):
                    run.advance(RunStatus.FAILED, message=f"status unavailable: {e}")
                    logger.error("%s failed: status unavailable", label)
                else:
                    run.advance(RunStatus.FAILED, message=f"status request rejected: {e}")
                    logger.error("%s failed: %s", label, e)
                break
            run.polls += 1

            if snapshot.status == RunStatus.SUCCEEDED and not snapshot.result_ref:
                run.advance(RunStatus.FAILED, message="succeeded without a result reference")
            elif snapshot.status != run.status or snapshot.status.is_terminal:
                logger.info("%s: %s -> %s", label, run.status.value, snapshot.status.value)
                run.advance(snapshot.status, snapshot.result_ref, snapshot.status_message)

            if run.is_terminal:
                if run.status == RunStatus.FAILED:
                    logger.error("%s failed: %s", label, run.status_message)
                break

            remaining = deadline - self._clock()
            self._wait(max(0.0, min(self.poll_interval, remaining)), cancel)

        return run

    def _wait(
        self,
        delay: float,
        cancel: Optional[threading.Event],
        fallback: Callable[[float], None] = time.sleep,
    ) -> None:
        if self._sleep is not None:
            self._sleep(delay)
        elif cancel is not None:
            # Returns early when the abort signal is set
            cancel.wait(delay)
        else:
            fallback(delay)
