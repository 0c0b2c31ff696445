"""
Task record store.
The transcription_tasks table is the only shared state between pipeline stages;
every status change is a single conditional row update guarded by the state machine.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from supabase import Client

from meetingflow.core.errors import (
    InvalidTransitionError,
    TaskNotFoundError,
    TaskStoreError,
)
from meetingflow.core.models import ALLOWED_SOURCES, Task, TaskCreate, TaskStatus

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _run_fence(run_id: Optional[str]) -> Optional[Dict[str, Optional[str]]]:
    return {"run_id": run_id} if run_id else None


class TaskStore:
    """Database operations on pipeline tasks."""

    def __init__(self, supabase_client: Client, table_name: str = "transcription_tasks"):
        """
        Initialize task store.

        Args:
            supabase_client: Supabase client instance
            table_name: Name of the task table
        """
        self.client = supabase_client
        self.table_name = table_name

    def _table(self):
        return self.client.table(self.table_name)

    async def create_task(self, task: TaskCreate) -> Task:
        """
        Insert a new task in `upload_pending`.

        Args:
            task: Fields captured at ingress

        Returns:
            The stored task
        """
        task_id = str(uuid.uuid4())
        record = {
            "id": task_id,
            "status": TaskStatus.UPLOAD_PENDING.value,
            **task.model_dump(),
        }

        try:
            result = self._table().insert(record).execute()
        except Exception as e:
            logger.error(f"Error inserting task for {task.original_file_name}: {e}")
            raise TaskStoreError(f"Failed to create task: {e}") from e

        if not result.data:
            raise TaskStoreError("Task insert returned no data")

        logger.info(f"Created task {task_id} for {task.original_file_name}")
        return Task.model_validate(result.data[0])

    async def get_task(self, task_id: str) -> Optional[Task]:
        """
        Fetch a task by id.

        Returns:
            The task if found, None otherwise
        """
        try:
            result = self._table().select("*").eq("id", task_id).limit(1).execute()
        except Exception as e:
            logger.error(f"Error fetching task {task_id}: {e}")
            raise TaskStoreError(f"Failed to fetch task {task_id}: {e}") from e

        if not result.data:
            logger.warning(f"Task {task_id} not found")
            return None
        return Task.model_validate(result.data[0])

    async def find_by_slack_file(self, slack_file_id: str) -> Optional[Task]:
        """Task already created for a Slack file, if any."""
        try:
            result = (
                self._table()
                .select("*")
                .eq("slack_file_id", slack_file_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error(f"Error looking up task for Slack file {slack_file_id}: {e}")
            raise TaskStoreError(f"Failed to look up Slack file {slack_file_id}: {e}") from e

        if not result.data:
            return None
        return Task.model_validate(result.data[0])

    async def transition(
        self,
        task_id: str,
        target: TaskStatus,
        fields: Optional[Dict[str, Any]] = None,
        require_null: Iterable[str] = (),
        expected: Optional[Dict[str, Optional[str]]] = None,
    ) -> Task:
        """
        Move a task to `target`, writing `fields` in the same row update.

        The update only matches while the task is in one of the statuses the
        state machine allows as a source for `target`, while every column
        in `require_null` is still empty, and while every column in `expected`
        still holds the given value (None meaning NULL).

        Raises:
            TaskNotFoundError: no such task
            InvalidTransitionError: the guard rejected the update
            TaskStoreError: the database call failed
        """
        update_data = {"status": target.value, "updated_at": _now()}
        if fields:
            update_data.update(fields)

        sources = sorted(status.value for status in ALLOWED_SOURCES[target])

        try:
            query = (
                self._table()
                .update(update_data)
                .eq("id", task_id)
                .in_("status", sources)
            )
            for column in require_null:
                query = query.is_(column, "null")
            for column, value in (expected or {}).items():
                query = query.is_(column, "null") if value is None else query.eq(column, value)
            result = query.execute()
        except Exception as e:
            logger.error(f"Error updating task {task_id} to {target.value}: {e}")
            raise TaskStoreError(f"Failed to update task {task_id}: {e}") from e

        if result.data:
            logger.info(f"Task {task_id} status updated to {target.value}")
            return Task.model_validate(result.data[0])

        current = await self.get_task(task_id)
        if current is None:
            raise TaskNotFoundError(task_id)
        raise InvalidTransitionError(task_id, target.value, current.status.value)

    async def mark_uploaded(self, task_id: str, storage_path: str) -> Task:
        """Record a finished transfer. `storage_path` can only be written once."""
        return await self.transition(
            task_id,
            TaskStatus.UPLOADED,
            {"storage_path": storage_path, "error_message": None},
            require_null=("storage_path",),
        )

    async def mark_upload_failed(self, task_id: str, error_message: str) -> bool:
        """
        Record a failed transfer.

        Returns:
            True if the task was updated, False otherwise
        """
        try:
            await self.transition(
                task_id, TaskStatus.UPLOAD_FAILED, {"error_message": error_message}
            )
            return True
        except Exception as e:
            logger.error(f"Failed to record upload failure for task {task_id}: {e}")
            return False

    async def begin_run(
        self, task_id: str, checkpoint: TaskStatus, previous_run_id: Optional[str] = None
    ) -> Task:
        """
        Claim a processing run at `checkpoint`, clearing any earlier failure.

        A fresh `run_id` is written only while the row still carries
        `previous_run_id`, so of two runs started from the same snapshot only
        one gets through. The run's later writes are fenced on the returned
        task's `run_id`.
        """
        return await self.transition(
            task_id,
            checkpoint,
            {"error_message": None, "run_id": str(uuid.uuid4())},
            expected={"run_id": previous_run_id},
        )

    async def save_transcript(self, task_id: str, transcript: str, run_id: Optional[str] = None) -> Task:
        return await self.transition(
            task_id,
            TaskStatus.TRANSCRIBED,
            {"transcription_result": transcript},
            expected=_run_fence(run_id),
        )

    async def save_summary(self, task_id: str, summary_json: str, run_id: Optional[str] = None) -> Task:
        return await self.transition(
            task_id,
            TaskStatus.SUMMARIZED,
            {"summary_result": summary_json},
            expected=_run_fence(run_id),
        )

    async def complete(
        self,
        task_id: str,
        notion_page_ids: List[str],
        publish_errors: Optional[List[str]] = None,
        run_id: Optional[str] = None,
    ) -> Task:
        """
        Record terminal success.

        Publish errors do not fail the task; they select
        `completed_with_publish_errors` and are kept in `error_message`.
        """
        target = (
            TaskStatus.COMPLETED_WITH_PUBLISH_ERRORS if publish_errors else TaskStatus.COMPLETED
        )
        return await self.transition(
            task_id,
            target,
            {
                "notion_page_id": ",".join(notion_page_ids) or None,
                "error_message": "; ".join(publish_errors) if publish_errors else None,
                "processed_at": _now(),
            },
            expected=_run_fence(run_id),
        )

    async def record_failure(self, task_id: str, error_message: str, run_id: Optional[str] = None) -> bool:
        """
        Mark a processing run as failed.

        With `run_id`, the update only applies while that run still owns the task.

        Returns:
            True if the task was updated, False otherwise
        """
        try:
            await self.transition(
                task_id,
                TaskStatus.FAILED,
                {"error_message": error_message},
                expected=_run_fence(run_id),
            )
            return True
        except Exception as e:
            logger.error(f"Failed to record failure for task {task_id}: {e}")
            return False

    async def get_status_counts(self) -> Dict[str, Any]:
        """
        Count tasks per status.

        Returns:
            Dictionary with one `<status>_count` entry per status
        """
        try:
            stats = {}
            for status in TaskStatus:
                result = (
                    self._table()
                    .select("id", count="exact")
                    .eq("status", status.value)
                    .execute()
                )
                stats[f"{status.value}_count"] = result.count or 0

            logger.debug(f"Task stats: {stats}")
            return stats

        except Exception as e:
            logger.error(f"Error fetching task stats: {e}")
            return {"error": str(e)}
