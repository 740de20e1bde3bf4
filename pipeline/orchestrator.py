"""
Search Orchestrator.

Ties together QueryPlanner, JobClient, RunPoller, ResultFetcher,
UrlExtractor, MergeEngine, the contact/relevance filters and the
ContactRepository into a single workflow that:

  1. Runs the directory search (stage 1) and fetches base records
  2. Sends their websites to contact extraction (stage 2)
  3. Merges, deduplicates and filters the contacts
  4. Saves them and produces a TaskResult with counters + warnings

Stage-1 failure fails the task. Stage-2 failure degrades it to a partial
result built from base records only. Nothing but InvalidInputError from
planning escapes `run`/`plan_and_run`.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, List, Optional

from config import PipelineConfig
from errors import PersistenceError, PipelineError, StageFailed
from jobs.client import JobClient, get_job_client
from jobs.fetcher import ResultFetcher
from jobs.poller import ABORTED_MESSAGE, RunPoller
from jobs.retry import RetryPolicy
from models.enums import Stage, TaskStatus
from models.schema import BaseRecord, EnrichmentRecord, JobRun, SearchTask, TaskResult, utcnow
from validators.rules import ContactValidator

from .filters import dedupe_contacts, filter_contacts
from .merge import MergeEngine
from .planner import QueryPlanner
from .relevance import RelevanceFilter
from .url_extractor import UrlExtractor

logger = logging.getLogger(__name__)

StatusCallback = Callable[[str], None]

PERSIST_ATTEMPTS = 2


class SearchOrchestrator:
    """
    Main orchestrator: one task at a time per call, safe to share across threads.

    Usage:
        orchestrator = SearchOrchestrator(PipelineConfig.from_env())
        result = orchestrator.plan_and_run(["dental clinic"], location="AE")
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        client: Optional[JobClient] = None,
        repository=None,
        sleep: Optional[Callable[[float], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or PipelineConfig()
        self._client = client or get_job_client(self.config)
        self._repository = repository

        self._retry = RetryPolicy.from_config(self.config, sleep=sleep or time.sleep)
        self._poller = RunPoller(
            self._client,
            poll_interval=self.config.poll_interval,
            retry=self._retry,
            clock=clock,
            sleep=sleep,
        )
        self._fetcher = ResultFetcher(
            self._client,
            page_size=self.config.page_size,
            max_items=self.config.max_items,
            retry=self._retry,
        )
        self._planner = QueryPlanner()
        self._urls = UrlExtractor()
        self._merge = MergeEngine()
        self._relevance = RelevanceFilter(max_drop_fraction=self.config.max_relevance_drop)
        self._contact_validator = ContactValidator()

    def plan_and_run(
        self,
        queries,
        cancel: Optional[threading.Event] = None,
        on_status: Optional[StatusCallback] = None,
        **plan_kwargs,
    ) -> TaskResult:
        """Plan a task from raw input and run it. Raises InvalidInputError on bad input."""
        task = self._planner.plan(queries, **plan_kwargs)
        return self.run(task, cancel=cancel, on_status=on_status)

    def run(
        self,
        task: SearchTask,
        cancel: Optional[threading.Event] = None,
        on_status: Optional[StatusCallback] = None,  # callback(str) for progress
    ) -> TaskResult:
        """
        Execute the full two-stage pipeline for `task`.
        """
        result = TaskResult(task_id=task.id, status=TaskStatus.RUNNING)
        task.status = TaskStatus.RUNNING
        started = time.monotonic()

        try:
            self._execute(task, result, cancel, on_status)
        except Exception as e:
            logger.exception("Task %s crashed", task.id)
            result.status = TaskStatus.FAILED
            result.error = f"unexpected error: {e}"
            result.contacts = []

        task.status = result.status
        result.completed_at = utcnow()
        logger.info(
            "Task %s finished: %s, %d contacts in %.1fs",
            task.id, result.status.value, result.final_count, time.monotonic() - started,
        )
        return result

    # ------------------------------------------------------------------
    # Workflow
    # ------------------------------------------------------------------

    def _execute(
        self,
        task: SearchTask,
        result: TaskResult,
        cancel: Optional[threading.Event],
        on_status: Optional[StatusCallback],
    ) -> None:
        # ----------------------------------------------------------
        # Stage 1: directory search
        # ----------------------------------------------------------
        if on_status:
            where = "" if task.location.is_empty else f" in {task.location.describe()}"
            on_status(f"Stage 1: searching directory for {', '.join(task.queries)}{where}…")

        payload = {
            "queries": list(task.queries),
            "location": task.location.model_dump(),
            "maxResults": task.max_results,
            "language": task.language,
        }
        try:
            run = self._run_stage(Stage.DIRECTORY_SEARCH, payload, self.config.directory_timeout, result, cancel)
            base = self._fetch(run, result)
        except StageFailed as e:
            aborted = cancel is not None and cancel.is_set()
            result.status = TaskStatus.CANCELLED if aborted else TaskStatus.FAILED
            result.error = str(e)
            logger.error("Task %s stage 1 failed: %s", task.id, e)
            return

        base_records: List[BaseRecord] = [r for r in base if isinstance(r, BaseRecord)]
        result.base_count = len(base_records)
        if on_status:
            on_status(f"Stage 1 done: {len(base_records)} organizations found")

        if not base_records:
            result.warnings.append("Directory search returned no organizations")
            result.status = TaskStatus.SUCCEEDED
            return

        # ----------------------------------------------------------
        # Stage 2: contact extraction
        # ----------------------------------------------------------
        urls, excluded = self._urls.partition(base_records)
        if excluded:
            result.warnings.append(f"{len(excluded)} websites excluded from extraction")

        status = TaskStatus.SUCCEEDED
        if not urls:
            result.warnings.append("No scrapeable websites; contact extraction skipped")
            contacts = self._merge.merge(base_records, [])
        else:
            if on_status:
                on_status(f"Stage 2: extracting contacts from {len(urls)} websites…")
            try:
                run = self._run_stage(
                    Stage.CONTACT_EXTRACTION, {"urls": urls}, self.config.contact_timeout, result, cancel
                )
                enrichment: List[EnrichmentRecord] = [
                    r for r in self._fetch(run, result) if isinstance(r, EnrichmentRecord)
                ]
                contacts = self._merge.merge(base_records, enrichment)
            except StageFailed as e:
                logger.warning("Task %s stage 2 failed, using directory data only: %s", task.id, e)
                result.warnings.append(f"Contact extraction failed: {e.reason}")
                contacts = self._merge.fallback(base_records, e.reason)
                status = TaskStatus.PARTIAL

        # ----------------------------------------------------------
        # Merge, dedup, filters
        # ----------------------------------------------------------
        if on_status:
            on_status("Merging and filtering contacts…")

        result.merged_count = len(contacts)
        contacts = dedupe_contacts(contacts)
        result.dropped_duplicates = result.merged_count - len(contacts)

        report = self._contact_validator.validate_contacts(contacts, base_count=result.base_count)
        for issue in report.errors:
            logger.error("Contact invariant violated (%s): %s", issue.identity_key, issue.message)
            result.warnings.append(issue.message)

        # A partial result keeps every stage-1 record: no filter drops, no cap
        partial = status == TaskStatus.PARTIAL
        outcome = filter_contacts(
            contacts,
            include_contactless=task.include_contactless or partial,
        )
        result.dropped_contactless = len(outcome.dropped)

        relevance = self._relevance.apply(
            outcome.kept,
            task.queries,
            limit=None if partial else task.max_results,
            drop=not partial,
        )
        result.dropped_irrelevant = len(relevance.dropped)
        result.needs_review = relevance.needs_review
        if relevance.needs_review:
            result.warnings.append("Relevance check flagged results for manual review")

        result.contacts = relevance.kept
        result.status = status

        # ----------------------------------------------------------
        # Persist
        # ----------------------------------------------------------
        if self._repository is not None and result.contacts:
            if on_status:
                on_status(f"Saving {len(result.contacts)} contacts…")
            self._persist(task, result)

    def _run_stage(
        self,
        stage: Stage,
        payload: dict,
        timeout: float,
        result: TaskResult,
        cancel: Optional[threading.Event],
    ) -> JobRun:
        """Submit one stage and wait for it. Raises StageFailed."""
        if cancel is not None and cancel.is_set():
            raise StageFailed(stage, ABORTED_MESSAGE)

        try:
            run_id = self._retry.call(
                self._client.submit, stage, payload,
                description=f"submit {stage.value}", cancel=cancel,
            )
        except PipelineError as e:
            raise StageFailed(stage, f"submission failed: {e}") from e

        run = JobRun(stage=stage, external_run_id=run_id)
        result.runs.append(run)
        self._poller.await_completion(run, timeout, cancel)

        if not run.succeeded:
            raise StageFailed(stage, run.status_message or run.status.value, run=run)
        return run

    def _fetch(self, run: JobRun, result: TaskResult) -> list:
        try:
            records, report = self._fetcher.fetch_with_report(run)
        except PipelineError as e:
            raise StageFailed(run.stage, f"fetching results failed: {e}", run=run) from e
        if report.errors:
            result.warnings.append(
                f"{len(report.errors)} {run.stage.value} items rejected as malformed"
            )
        return records

    def _persist(self, task: SearchTask, result: TaskResult) -> None:
        """Save contacts with one retry; a final failure is recorded, not raised."""
        last_error: Optional[PersistenceError] = None
        for attempt in range(PERSIST_ATTEMPTS):
            try:
                result.saved_count = self._repository.upsert(task.id, result.contacts)
                return
            except PersistenceError as e:
                last_error = e
                logger.warning(
                    "Saving task %s failed (attempt %d/%d): %s",
                    task.id, attempt + 1, PERSIST_ATTEMPTS, e,
                )
        logger.error("Task %s results not saved: %s", task.id, last_error)
        result.persistence_error = str(last_error)
