from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
import logging

from meetingflow.core.errors import MeetingFlowError
from meetingflow.core.models import NotificationPayload
from meetingflow.worker.manager import PipelineComponents, get_pipeline

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/slack/events")
async def slack_events(
    request: Request,
    background_tasks: BackgroundTasks,
    pipeline: PipelineComponents = Depends(get_pipeline),
):
    """
    Slack Events API endpoint.
    Creates a task for each newly shared file and schedules its transfer.
    """
    body = await request.body()

    try:
        result = await pipeline.ingress.handle_event(body, request.headers)
    except MeetingFlowError as e:
        logger.error(f"Slack event rejected ({e.error_code}): {e}")
        raise HTTPException(status_code=e.status_code, detail=str(e))

    if result.transfer_request is not None:
        background_tasks.add_task(pipeline.transfer_trigger.dispatch, result.transfer_request)

    return JSONResponse(status_code=result.status_code, content=result.body)


@router.post("/slack/notify")
async def slack_notify(
    payload: NotificationPayload,
    pipeline: PipelineComponents = Depends(get_pipeline),
):
    """Post a processing outcome to the notification channel."""
    if not payload.task_id:
        raise HTTPException(status_code=400, detail="task_id is required")

    sent = await pipeline.notifier.notify(payload)
    return {"taskId": payload.task_id, "notified": sent}
