from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
import logging

from meetingflow.core.errors import MeetingFlowError, TaskNotFoundError
from meetingflow.core.models import ProcessRequest, TransferRequest
from meetingflow.worker.manager import PipelineComponents, get_pipeline

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/tasks/transfer")
async def transfer_task(
    request: TransferRequest,
    background_tasks: BackgroundTasks,
    pipeline: PipelineComponents = Depends(get_pipeline),
):
    """Stream a task's file from Slack into storage, then trigger processing."""
    try:
        result = await pipeline.transfer.run(request, trigger_next=False)
    except MeetingFlowError as e:
        logger.error(f"Transfer rejected for task {request.task_id}: {e}")
        raise HTTPException(status_code=e.status_code, detail=str(e))

    if result.error_message:
        raise HTTPException(status_code=500, detail=result.error_message)

    if not result.skipped:
        background_tasks.add_task(
            pipeline.transfer.trigger_processing, result.task_id, result.storage_path
        )

    return {
        "taskId": result.task_id,
        "storagePath": result.storage_path,
        "status": result.status.value,
        "skipped": result.skipped,
    }


@router.post("/process-task")
async def process_task(
    request: ProcessRequest,
    pipeline: PipelineComponents = Depends(get_pipeline),
):
    """Run the processing pipeline for an uploaded task."""
    try:
        result = await pipeline.processor.process(request)
    except MeetingFlowError as e:
        logger.error(f"Processing rejected for task {request.task_id}: {e}")
        raise HTTPException(status_code=e.status_code, detail=str(e))

    if not result.succeeded and not result.skipped:
        raise HTTPException(status_code=500, detail=result.error_message)

    return result.model_dump(mode="json")


@router.get("/tasks/stats")
async def task_stats(pipeline: PipelineComponents = Depends(get_pipeline)):
    """Task counts per status."""
    return await pipeline.store.get_status_counts()


@router.post("/tasks/{task_id}/resume")
async def resume_task(
    task_id: str,
    pipeline: PipelineComponents = Depends(get_pipeline),
):
    """Manually re-run a failed or interrupted task from its last checkpoint."""
    try:
        result = await pipeline.processor.resume(task_id)
    except MeetingFlowError as e:
        logger.error(f"Resume rejected for task {task_id}: {e}")
        raise HTTPException(status_code=e.status_code, detail=str(e))

    if not result.succeeded and not result.skipped:
        raise HTTPException(status_code=500, detail=result.error_message)

    return result.model_dump(mode="json")


@router.get("/tasks/{task_id}")
async def get_task(
    task_id: str,
    pipeline: PipelineComponents = Depends(get_pipeline),
):
    """Get the current state of a task."""
    try:
        task = await pipeline.store.get_task(task_id)
    except MeetingFlowError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

    if task is None:
        raise HTTPException(status_code=404, detail=str(TaskNotFoundError(task_id)))

    return task.model_dump(mode="json")
