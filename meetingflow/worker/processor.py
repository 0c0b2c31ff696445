"""
Processing orchestrator.
Takes an uploaded task through transcription, summarization, publishing and
notification, persisting each artifact before the next step starts.
"""

import logging
import posixpath
from typing import Optional

from pydantic import ValidationError

from meetingflow.core.errors import (
    InvalidTransitionError,
    StorageError,
    SummaryParseError,
    TaskNotFoundError,
    TaskNotReadyError,
)
from meetingflow.core.models import (
    NotificationPayload,
    ProcessingResult,
    ProcessRequest,
    StructuredSummary,
    Task,
    TaskStatus,
)
from meetingflow.core.parsing import normalize_date
from meetingflow.service.gemini import GeminiModel
from meetingflow.service.notifier import SlackNotifier
from meetingflow.service.notion import NotionPublisher
from meetingflow.service.whisper import WhisperTranscriber
from meetingflow.worker.database import TaskStore
from meetingflow.worker.storage import MediaStorage

logger = logging.getLogger(__name__)

NOT_READY = frozenset({TaskStatus.UPLOAD_PENDING, TaskStatus.UPLOAD_FAILED})
IN_FLIGHT = frozenset({TaskStatus.PROCESSING, TaskStatus.TRANSCRIBED, TaskStatus.SUMMARIZED})

STAGE_LABELS = {
    "load": "Task load failed",
    "start": "Could not start processing",
    "download": "Media download failed",
    "transcribe": "Transcription failed",
    "summarize": "Summarization failed",
    "publish": "Publishing failed",
}


def checkpoint_for(task: Task) -> TaskStatus:
    """Status a run re-enters at, given the artifacts the task already holds."""
    if not task.transcription_result:
        return TaskStatus.PROCESSING
    if not task.summary_result:
        return TaskStatus.TRANSCRIBED
    return TaskStatus.SUMMARIZED


class TaskProcessor:
    """Runs (or resumes) the processing pipeline for a single task."""

    def __init__(
        self,
        store: TaskStore,
        storage: MediaStorage,
        transcriber: WhisperTranscriber,
        summarizer: GeminiModel,
        publisher: NotionPublisher,
        notifier: SlackNotifier,
    ):
        self.store = store
        self.storage = storage
        self.transcriber = transcriber
        self.summarizer = summarizer
        self.publisher = publisher
        self.notifier = notifier

    async def process(self, request: ProcessRequest) -> ProcessingResult:
        """
        Entry point for the processing trigger.

        A task another run is already working on is left alone, so a
        redelivered trigger never starts a second run.
        """
        return await self.resume(
            request.task_id, storage_path_hint=request.storage_path, take_over=False
        )

    async def resume(
        self,
        task_id: str,
        storage_path_hint: Optional[str] = None,
        take_over: bool = True,
    ) -> ProcessingResult:
        """
        Run the pipeline for a task from its first missing artifact.

        A task without a transcript starts from the media download, one with a
        transcript but no summary starts at summarization, one with both
        starts at publishing. Completed tasks are left untouched.

        Args:
            task_id: Task to process
            storage_path_hint: Storage path carried by the trigger, used only
                when the task row has none
            take_over: Claim a task stuck in an in-flight status. The run that
                held it stops quietly at its next write.

        Returns:
            Outcome of the run. Stage failures are recorded on the task,
            notified once and returned, not raised.

        Raises:
            TaskNotReadyError: the media has not been transferred yet
        """
        task: Optional[Task] = None
        run_id: Optional[str] = None
        stage = "load"

        try:
            task = await self.store.get_task(task_id)
            if task is None:
                raise TaskNotFoundError(task_id)

            if task.is_terminal_success:
                logger.info(f"Task {task_id} already {task.status.value}, nothing to do")
                return self._skipped(task)

            if task.status in NOT_READY:
                raise TaskNotReadyError(task_id, task.status.value)

            if task.status in IN_FLIGHT and not take_over:
                logger.info(f"Task {task_id} is already being processed ({task.status.value}), ignoring trigger")
                return self._skipped(task)

            meeting_date = normalize_date(task.meeting_date)

            stage = "start"
            checkpoint = checkpoint_for(task)
            logger.info(f"Starting processing for task {task_id} at {checkpoint.value} (was {task.status.value})")
            try:
                task = await self.store.begin_run(task_id, checkpoint, previous_run_id=task.run_id)
            except InvalidTransitionError as e:
                logger.warning(f"⚠️ Task {task_id} was claimed by another run, leaving it alone: {e}")
                return ProcessingResult(
                    task_id=task_id, status=e.context.get("current") or task.status, skipped=True
                )
            run_id = task.run_id

            transcript = task.transcription_result
            if not transcript:
                stage = "download"
                storage_path = task.storage_path or storage_path_hint
                if not storage_path:
                    raise StorageError(f"Task {task_id} has no storage path")
                media = await self.storage.download(storage_path)

                stage = "transcribe"
                transcript = await self.transcriber.transcribe(
                    media, posixpath.basename(storage_path), task.mimetype
                )
                task = await self.store.save_transcript(task_id, transcript, run_id=run_id)

            stage = "summarize"
            if task.summary_result:
                summary = self._load_summary(task)
            else:
                summary = await self.summarizer.summarize(transcript)
                task = await self.store.save_summary(task_id, summary.to_json(), run_id=run_id)

            stage = "publish"
            outcomes = await self.publisher.publish(
                summary,
                meeting_date=meeting_date,
                consultant_name=task.consultant_name,
                client_name=task.client_name,
            )
            page_ids = [outcome.page_id for outcome in outcomes if outcome.succeeded]
            page_urls = [outcome.page_url for outcome in outcomes if outcome.succeeded and outcome.page_url]
            publish_errors = [
                f"Notion DB {outcome.database_id}: {outcome.error}"
                for outcome in outcomes
                if not outcome.succeeded
            ]

            task = await self.store.complete(task_id, page_ids, publish_errors, run_id=run_id)

        except TaskNotReadyError:
            raise
        except Exception as e:
            return await self._fail(task_id, task, stage, e, run_id)

        logger.info(f"✅ Task {task_id} finished as {task.status.value} ({len(page_ids)} Notion pages)")
        await self.notifier.notify(
            NotificationPayload(
                task_id=task_id,
                status=task.status.value,
                original_file_name=task.original_file_name or "N/A",
                summary_text=summary.to_text(),
                notion_page_url="\n".join(page_urls) or None,
                error_message=task.error_message,
            )
        )

        return ProcessingResult(
            task_id=task_id,
            status=task.status,
            notion_page_ids=page_ids,
            publish_errors=publish_errors,
            error_message=task.error_message,
        )

    @staticmethod
    def _skipped(task: Task) -> ProcessingResult:
        return ProcessingResult(
            task_id=task.id,
            status=task.status,
            notion_page_ids=task.notion_page_ids,
            error_message=task.error_message,
            skipped=True,
        )

    @staticmethod
    def _load_summary(task: Task) -> StructuredSummary:
        try:
            return StructuredSummary.from_json(task.summary_result)
        except ValidationError as e:
            raise SummaryParseError(f"Stored summary for task {task.id} is not a valid summary: {e}") from e

    async def _superseding_task(self, task_id: str, run_id: Optional[str]) -> Optional[Task]:
        """The task as left by another run, if this run no longer owns it."""
        try:
            current = await self.store.get_task(task_id)
        except Exception as e:
            logger.error(f"Could not re-read task {task_id} after a failed run: {e}")
            return None
        if current is None:
            return None
        if current.is_terminal_success or (run_id and current.run_id != run_id):
            return current
        return None

    async def _fail(
        self,
        task_id: str,
        task: Optional[Task],
        stage: str,
        error: Exception,
        run_id: Optional[str] = None,
    ) -> ProcessingResult:
        error_message = f"{STAGE_LABELS.get(stage, 'Processing failed')}: {error}"

        recorded = await self.store.record_failure(task_id, error_message, run_id=run_id)
        if not recorded:
            current = await self._superseding_task(task_id, run_id)
            if current is not None:
                logger.warning(
                    f"⚠️ Run of task {task_id} was superseded ({current.status.value}), "
                    f"dropping its {stage} error: {error}"
                )
                return self._skipped(current)

        logger.error(f"❌ Task {task_id} failed during {stage}: {error}", exc_info=True)
        await self.notifier.notify(
            NotificationPayload(
                task_id=task_id,
                status=TaskStatus.FAILED.value,
                original_file_name=(task.original_file_name if task else None) or "N/A",
                error_message=error_message,
            )
        )

        return ProcessingResult(
            task_id=task_id, status=TaskStatus.FAILED, error_message=error_message
        )
