"""
Ingress adapter for the Slack Events API.
Authenticates the request, registers a task for every newly shared file and
hands back the transfer payload for the caller to schedule.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from pydantic import ValidationError

from meetingflow.core.config import Config
from meetingflow.core.errors import PayloadValidationError
from meetingflow.core.models import EventCallback, TaskCreate, TransferRequest, UrlVerification
from meetingflow.core.parsing import derive_extension, parse_message_text
from meetingflow.core.security import verify_slack_signature
from meetingflow.service.slack import SlackClient
from meetingflow.worker.database import TaskStore

logger = logging.getLogger(__name__)


@dataclass
class IngressResponse:
    """What the route answers, plus the transfer to schedule if a task was created."""
    status_code: int
    body: Dict[str, Any]
    transfer_request: Optional[TransferRequest] = None


class SlackIngress:
    """Turns Slack `file_shared` events into tasks."""

    def __init__(self, store: TaskStore, slack: SlackClient, config: Config):
        self.store = store
        self.slack = slack
        self.config = config

    async def handle_event(self, body: bytes, headers: Mapping[str, str]) -> IngressResponse:
        """
        Handle one Events API delivery.

        Args:
            body: Raw request body, exactly as received
            headers: Request headers (case-insensitive mapping or lowercase keys)

        Returns:
            Response to send back to Slack

        Raises:
            SignatureVerificationError: the request is not from Slack
            PayloadValidationError: the body or the resolved file is unusable
            SlackAPIError: file metadata could not be resolved
            TaskStoreError: the task could not be inserted
        """
        verify_slack_signature(
            self.config.slack_signing_secret,
            headers.get("x-slack-request-timestamp"),
            headers.get("x-slack-signature"),
            body,
            max_age_seconds=self.config.slack_signature_max_age,
        )

        try:
            payload = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise PayloadValidationError(f"Request body is not valid JSON: {e}") from e
        if not isinstance(payload, dict):
            raise PayloadValidationError("Request body is not a JSON object")

        if payload.get("type") == "url_verification":
            try:
                verification = UrlVerification.model_validate(payload)
            except ValidationError as e:
                raise PayloadValidationError("url_verification without challenge") from e
            logger.info("Responding to Slack URL verification challenge")
            return IngressResponse(200, {"challenge": verification.challenge})

        if payload.get("type") != "event_callback" or not isinstance(payload.get("event"), dict):
            logger.info(f"Ignoring Slack payload of type {payload.get('type')}")
            return IngressResponse(200, {"message": "Event received but not processed"})

        try:
            envelope = EventCallback.model_validate(payload)
        except ValidationError as e:
            raise PayloadValidationError(f"Malformed event envelope: {e}") from e

        event = envelope.event
        if event.type != "file_shared":
            logger.info(f"Ignoring Slack event of type {event.type}")
            return IngressResponse(200, {"message": "Event received but not processed"})

        if not event.file_id:
            raise PayloadValidationError("file_shared event without file_id")

        retry_num = headers.get("x-slack-retry-num")
        if retry_num:
            # Deduped by the file lookup below
            logger.info(
                f"Slack redelivery #{retry_num} for file {event.file_id} "
                f"({headers.get('x-slack-retry-reason', 'unknown reason')})"
            )

        return await self._ingest_file(event.file_id, event.channel_id)

    async def _ingest_file(self, file_id: str, channel_id: Optional[str]) -> IngressResponse:
        existing = await self.store.find_by_slack_file(file_id)
        if existing is not None:
            logger.info(f"File {file_id} already ingested as task {existing.id}, skipping")
            return IngressResponse(200, {"taskId": existing.id, "duplicate": True})

        file_info = await self.slack.get_file_info(file_id)

        download_url = file_info.get("url_private_download")
        if not download_url:
            raise PayloadValidationError(
                f"File {file_id} has no private download URL", file_id=file_id
            )

        comment = (file_info.get("initial_comment") or {}).get("comment", "")
        parsed = parse_message_text(comment)
        logger.info(
            f"Parsed message for {file_id}: date={parsed.meeting_date}, "
            f"consultant={parsed.consultant_name}, client={parsed.client_name}"
        )

        file_name = file_info.get("name") or f"{file_id}"
        mimetype = file_info.get("mimetype") or "application/octet-stream"
        filetype = derive_extension(mimetype, file_info.get("filetype"))

        task = await self.store.create_task(
            TaskCreate(
                original_file_name=file_name,
                mimetype=mimetype,
                filetype=filetype,
                slack_file_id=file_id,
                slack_channel_id=channel_id,
                meeting_date=parsed.meeting_date,
                consultant_name=parsed.consultant_name,
                client_name=parsed.client_name,
            )
        )

        transfer = TransferRequest(
            task_id=task.id,
            slack_download_url=download_url,
            original_file_name=file_name,
            mimetype=mimetype,
            filetype=filetype,
        )
        logger.info(f"✅ Task {task.id} created for {file_name}, transfer scheduled")
        return IngressResponse(202, {"taskId": task.id}, transfer_request=transfer)
