"""
Background worker: runs pending tasks from `parsing_tasks`.

Polls the task table every `worker_poll_interval` seconds and runs up to
`max_concurrent_tasks` tasks at once, each on its own thread with its
own abort signal. Tasks cancelled in the table are aborted on the next
poll.

Usage:
    worker = TaskWorker(PipelineConfig.from_env())
    worker.run_forever()
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional

from config import PipelineConfig
from database.repository import ContactRepository, TaskRepository
from database.supabase_client import get_supabase_client
from errors import PersistenceError
from jobs.rate_limit import get_submission_gate
from models.enums import TaskStatus
from models.schema import SearchTask, TaskResult
from pipeline.orchestrator import SearchOrchestrator

logger = logging.getLogger(__name__)


class TaskWorker:
    """Bounded-concurrency runner for persisted search tasks."""

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        orchestrator: Optional[SearchOrchestrator] = None,
        tasks: Optional[TaskRepository] = None,
    ):
        self.config = config or PipelineConfig()
        client = None
        if tasks is None or orchestrator is None:
            if not self.config.has_supabase:
                logger.warning("Supabase credentials not configured; falling back to environment")
            client = get_supabase_client(self.config.supabase_url, self.config.supabase_key)
        self.tasks = tasks or TaskRepository(client)
        self.orchestrator = orchestrator or SearchOrchestrator(
            self.config, repository=ContactRepository(client)
        )
        self._executor = ThreadPoolExecutor(
            max_workers=self.config.max_concurrent_tasks,
            thread_name_prefix="task-worker",
        )
        self._active: Dict[str, threading.Event] = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    @property
    def running_task_ids(self) -> List[str]:
        with self._lock:
            return list(self._active)

    def available_slots(self) -> int:
        with self._lock:
            return self.config.max_concurrent_tasks - len(self._active)

    def poll_once(self) -> List[str]:
        """Start as many pending tasks as there are free slots. Returns started ids."""
        self._check_cancellations()

        slots = self.available_slots()
        if slots <= 0:
            return []

        try:
            pending = self.tasks.list_pending(limit=slots)
        except PersistenceError as e:
            logger.error("Could not list pending tasks: %s", e)
            return []

        started: List[str] = []
        for task in pending:
            if self.start(task):
                started.append(task.id)
        return started

    def start(self, task: SearchTask) -> bool:
        """Run `task` in the pool unless it is already running or the pool is full."""
        with self._lock:
            if task.id in self._active or len(self._active) >= self.config.max_concurrent_tasks:
                return False
            cancel = threading.Event()
            self._active[task.id] = cancel
            running = len(self._active)
        self._executor.submit(self._run_task, task, cancel)
        logger.info("Task started: %s (%d/%d running)", task.id, running, self.config.max_concurrent_tasks)
        return True

    def cancel(self, task_id: str) -> bool:
        """Raise the abort signal of a running task."""
        with self._lock:
            cancel = self._active.get(task_id)
        if cancel is None:
            return False
        logger.info("Cancelling task %s", task_id)
        cancel.set()
        return True

    def _check_cancellations(self) -> None:
        for task_id in self.running_task_ids:
            try:
                if self.tasks.is_cancelled(task_id):
                    self.cancel(task_id)
            except PersistenceError as e:
                logger.warning("Could not check cancellation of %s: %s", task_id, e)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _run_task(self, task: SearchTask, cancel: threading.Event) -> Optional[TaskResult]:
        try:
            self.tasks.mark_running(task.id)

            def on_status(message: str) -> None:
                try:
                    self.tasks.update_progress(task.id, message)
                except PersistenceError as e:
                    logger.warning("Progress update for %s failed: %s", task.id, e)

            result = self.orchestrator.run(task, cancel=cancel, on_status=on_status)
            if result.status == TaskStatus.CANCELLED:
                self.tasks.mark_cancelled(task.id)
            else:
                self.tasks.mark_finished(task.id, result)
            return result
        except PersistenceError as e:
            logger.error("Task %s bookkeeping failed: %s", task.id, e)
            return None
        except Exception as e:
            # Nothing reads the pool's futures, so log here or lose it
            logger.exception("Task %s crashed", task.id)
            try:
                self.tasks.mark_failed(task.id, f"worker error: {e}")
            except PersistenceError as pe:
                logger.error("Could not mark task %s failed: %s", task.id, pe)
            return None
        finally:
            with self._lock:
                self._active.pop(task.id, None)
            logger.info("Task completed: %s", task.id)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run_forever(self) -> None:
        """Poll until `stop()` is called."""
        logger.info(
            "Worker started (poll every %.0fs, max %d tasks)",
            self.config.worker_poll_interval, self.config.max_concurrent_tasks,
        )
        while not self._stop.is_set():
            self.poll_once()
            self._stop.wait(self.config.worker_poll_interval)

    def stop(self, wait: bool = True, cancel_running: bool = False) -> None:
        self._stop.set()
        if cancel_running:
            for task_id in self.running_task_ids:
                self.cancel(task_id)
        self._executor.shutdown(wait=wait)
        logger.info("Worker stopped")

    def status(self) -> Dict[str, object]:
        gate = get_submission_gate(
            self.config.submissions_per_minute, self.config.max_concurrent_submissions
        )
        return {
            "running": not self._stop.is_set(),
            "running_tasks": len(self.running_task_ids),
            "submissions": gate.get_usage(),
            "max_concurrent_tasks": self.config.max_concurrent_tasks,
            "poll_interval": self.config.worker_poll_interval,
            "running_task_ids": self.running_task_ids,
        }
