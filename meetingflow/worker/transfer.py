"""
Transfer stage: moves a shared file from Slack into object storage.
"""

import logging
from typing import AsyncIterator, Optional

import httpx

from meetingflow.core.errors import InvalidTransitionError, StorageError, TaskNotFoundError
from meetingflow.core.models import ProcessRequest, TaskStatus, TransferRequest, TransferResult
from meetingflow.core.parsing import derive_extension
from meetingflow.service.slack import SlackClient
from meetingflow.worker.database import TaskStore
from meetingflow.worker.storage import MediaStorage
from meetingflow.worker.triggers import TriggerDispatcher

logger = logging.getLogger(__name__)


class SlackDownloadError(Exception):
    """The origin answered, but not with the file."""


def _check_download(response: httpx.Response) -> Optional[str]:
    """Reason the download response cannot be streamed, or None if it can."""
    if not response.is_success:
        return f"{response.status_code}"
    # An expired or unauthorized private URL answers 200 with the Slack login page
    content_type = response.headers.get("content-type", "")
    if content_type.startswith("text/html"):
        return f"{response.status_code} (unexpected content type {content_type})"
    if response.headers.get("content-length") == "0":
        return f"{response.status_code} (empty body)"
    return None


async def _prepend(first: bytes, rest: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
    yield first
    async for chunk in rest:
        yield chunk


class TransferStage:
    """Streams the origin file into storage and records the result on the task."""

    def __init__(
        self,
        store: TaskStore,
        storage: MediaStorage,
        slack: SlackClient,
        processing_trigger: Optional[TriggerDispatcher] = None,
    ):
        self.store = store
        self.storage = storage
        self.slack = slack
        self.processing_trigger = processing_trigger

    async def run(self, request: TransferRequest, trigger_next: bool = True) -> TransferResult:
        """
        Transfer one file.

        Args:
            request: Transfer payload produced at ingress
            trigger_next: Dispatch the processing stage after a successful upload

        Returns:
            Outcome of the transfer. Failures are recorded on the task and
            returned, not raised.

        Raises:
            TaskNotFoundError: the task does not exist
        """
        task_id = request.task_id
        task = await self.store.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)

        if task.storage_path:
            logger.info(f"Task {task_id} already transferred to {task.storage_path}, skipping")
            return TransferResult(
                task_id=task_id, status=task.status, storage_path=task.storage_path, skipped=True
            )

        extension = derive_extension(request.mimetype, request.filetype)
        storage_path = MediaStorage.build_storage_path(task_id, extension)
        logger.info(f"Transferring {request.original_file_name} for task {task_id} to {storage_path}")

        try:
            async with self.slack.stream_download(request.slack_download_url) as response:
                problem = _check_download(response)
                if problem:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise SlackDownloadError(f"Slack download failed: {problem} - {body[:200]}")

                chunks = response.aiter_bytes()
                try:
                    first_chunk = await chunks.__anext__()
                except StopAsyncIteration:
                    raise SlackDownloadError(
                        f"Slack download failed: {response.status_code} - empty body"
                    )

                await self.storage.upload_stream(
                    storage_path, _prepend(first_chunk, chunks), content_type=request.mimetype
                )
        except SlackDownloadError as e:
            return await self._fail(task_id, str(e))
        except StorageError as e:
            return await self._fail(task_id, f"Storage upload failed: {e}")
        except Exception as e:
            logger.error(f"Unexpected transfer error for task {task_id}: {e}", exc_info=True)
            return await self._fail(task_id, f"Transfer failed: {e}")

        try:
            task = await self.store.mark_uploaded(task_id, storage_path)
        except InvalidTransitionError as e:
            # Another transfer recorded its path first; leave its result alone.
            logger.warning(f"⚠️ Upload of task {task_id} not recorded: {e}")
            return TransferResult(
                task_id=task_id, status=e.context.get("current"), skipped=True
            )
        except Exception as e:
            return await self._fail(task_id, f"Recording upload failed: {e}")
        logger.info(f"✅ Task {task_id} uploaded to {storage_path}")

        if trigger_next:
            await self.trigger_processing(task_id, storage_path)

        return TransferResult(task_id=task_id, status=task.status, storage_path=storage_path)

    async def trigger_processing(self, task_id: str, storage_path: str) -> bool:
        """Hand the uploaded task to the processing stage."""
        if self.processing_trigger is None:
            logger.warning(f"⚠️ No processing trigger configured, task {task_id} waits for a manual run")
            return False
        return await self.processing_trigger.dispatch(
            ProcessRequest(task_id=task_id, storage_path=storage_path)
        )

    async def _fail(self, task_id: str, error_message: str) -> TransferResult:
        logger.error(f"❌ Transfer failed for task {task_id}: {error_message}")
        await self.store.mark_upload_failed(task_id, error_message)
        return TransferResult(
            task_id=task_id, status=TaskStatus.UPLOAD_FAILED, error_message=error_message
        )
