"""
Repositories for the Supabase tables of the harvesting pipeline.

  parsing_tasks    one row per SearchTask, with lifecycle status and progress
  parsing_results  one row per MergedContact, unique on (task_id, identity_key)
"""

import logging
from typing import List, Optional, Dict, Any
from supabase import Client

from errors import PersistenceError
from models.db_schema import ParsingTaskRow, ParsingResultRow
from models.enums import TaskStatus
from models.schema import MergedContact, SearchTask, TaskResult, utcnow
from database.supabase_client import get_supabase_client

logger = logging.getLogger(__name__)

TASKS_TABLE = "parsing_tasks"
RESULTS_TABLE = "parsing_results"
DEFAULT_BATCH_SIZE = 500


class ContactRepository:
    """Batched upserts of merged contacts."""

    def __init__(self, client: Optional[Client] = None, batch_size: int = DEFAULT_BATCH_SIZE):
        self.supabase: Optional[Client] = client or get_supabase_client()
        self.batch_size = batch_size

    def upsert(self, task_id: str, contacts: List[MergedContact]) -> int:
        """
        Upsert contacts for a task. Returns the number of rows saved.

        Re-saving the same contacts updates rows in place thanks to the
        unique constraint on (task_id, identity_key).
        """
        if not self.supabase:
            raise PersistenceError("Supabase not connected. Cannot save results.")

        rows = [
            ParsingResultRow.from_contact(task_id, c).model_dump(mode="json")
            for c in contacts
        ]
        saved = 0
        for start in range(0, len(rows), self.batch_size):
            batch = rows[start:start + self.batch_size]
            try:
                response = (
                    self.supabase.table(RESULTS_TABLE)
                    .upsert(batch, on_conflict="task_id,identity_key")
                    .execute()
                )
            except Exception as e:
                raise PersistenceError(f"Saving results for task {task_id} failed: {e}") from e
            saved += len(response.data) if response.data is not None else len(batch)

        logger.info("Saved %d contacts for task %s", saved, task_id)
        return saved

    def list_for_task(self, task_id: str) -> List[ParsingResultRow]:
        if not self.supabase:
            return []
        try:
            response = self.supabase.table(RESULTS_TABLE).select("*").eq("task_id", task_id).execute()
        except Exception as e:
            raise PersistenceError(f"Reading results for task {task_id} failed: {e}") from e
        return [ParsingResultRow(**row) for row in response.data or []]


class TaskRepository:
    """Lifecycle rows of search tasks."""

    def __init__(self, client: Optional[Client] = None):
        self.supabase: Optional[Client] = client or get_supabase_client()

    def _require(self) -> Client:
        if not self.supabase:
            raise PersistenceError("Supabase not connected.")
        return self.supabase

    def _update(self, task_id: str, fields: Dict[str, Any]) -> None:
        fields["updated_at"] = utcnow().isoformat()
        try:
            self._require().table(TASKS_TABLE).update(fields).eq("id", task_id).execute()
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Updating task {task_id} failed: {e}") from e

    def create(self, task: SearchTask) -> SearchTask:
        row = ParsingTaskRow.from_task(task).model_dump(mode="json", exclude_none=True)
        try:
            self._require().table(TASKS_TABLE).insert(row).execute()
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Creating task {task.id} failed: {e}") from e
        return task

    def get(self, task_id: str) -> Optional[SearchTask]:
        try:
            response = self._require().table(TASKS_TABLE).select("*").eq("id", task_id).execute()
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Reading task {task_id} failed: {e}") from e
        if not response.data:
            return None
        return ParsingTaskRow(**response.data[0]).to_task()

    def list_pending(self, limit: int = 10) -> List[SearchTask]:
        """Oldest pending tasks first."""
        try:
            response = (
                self._require().table(TASKS_TABLE)
                .select("*")
                .eq("status", TaskStatus.PENDING.value)
                .order("created_at")
                .limit(limit)
                .execute()
            )
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Listing pending tasks failed: {e}") from e

        tasks: List[SearchTask] = []
        for row in response.data or []:
            try:
                tasks.append(ParsingTaskRow(**row).to_task())
            except ValueError as e:
                # pydantic's ValidationError is a ValueError
                logger.warning("Skipping malformed task row %s: %s", row.get("id"), e)
        return tasks

    def is_cancelled(self, task_id: str) -> bool:
        task = self.get(task_id)
        return task is not None and task.status == TaskStatus.CANCELLED

    def mark_running(self, task_id: str) -> None:
        self._update(task_id, {"status": TaskStatus.RUNNING.value, "error_message": None})

    def update_progress(
        self,
        task_id: str,
        message: str,
        stage: Optional[str] = None,
        **counts: int,
    ) -> None:
        progress: Dict[str, Any] = {"message": message, **counts}
        fields: Dict[str, Any] = {"progress": progress}
        if stage:
            fields["current_stage"] = stage
        self._update(task_id, fields)

    def mark_finished(self, task_id: str, result: TaskResult) -> None:
        self._update(task_id, {
            "status": result.status.value,
            "summary": result.summary(),
            "error_message": result.error or result.persistence_error,
            "current_stage": None,
            "completed_at": result.completed_at.isoformat(),
        })

    def mark_failed(self, task_id: str, error: str) -> None:
        self._update(task_id, {
            "status": TaskStatus.FAILED.value,
            "error_message": error,
            "completed_at": utcnow().isoformat(),
        })

    def mark_cancelled(self, task_id: str) -> None:
        self._update(task_id, {
            "status": TaskStatus.CANCELLED.value,
            "completed_at": utcnow().isoformat(),
        })
