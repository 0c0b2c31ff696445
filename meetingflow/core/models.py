"""
Task model, task state machine and the payload schemas crossing every boundary.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TaskStatus(str, Enum):
    UPLOAD_PENDING = "upload_pending"
    UPLOADED = "uploaded"
    UPLOAD_FAILED = "upload_failed"
    PROCESSING = "processing"
    TRANSCRIBED = "transcribed"
    SUMMARIZED = "summarized"
    COMPLETED = "completed"
    COMPLETED_WITH_PUBLISH_ERRORS = "completed_with_publish_errors"
    FAILED = "failed"


TERMINAL_SUCCESS: FrozenSet[TaskStatus] = frozenset(
    {TaskStatus.COMPLETED, TaskStatus.COMPLETED_WITH_PUBLISH_ERRORS}
)

# Target status -> statuses a task may be in when moving to it.
# Self-loops and the edges out of failure states are the external retry paths.
ALLOWED_SOURCES: Dict[TaskStatus, FrozenSet[TaskStatus]] = {
    TaskStatus.UPLOADED: frozenset({TaskStatus.UPLOAD_PENDING, TaskStatus.UPLOAD_FAILED}),
    TaskStatus.UPLOAD_FAILED: frozenset(
        {TaskStatus.UPLOAD_PENDING, TaskStatus.UPLOADED, TaskStatus.UPLOAD_FAILED}
    ),
    TaskStatus.PROCESSING: frozenset(
        {TaskStatus.UPLOADED, TaskStatus.PROCESSING, TaskStatus.FAILED}
    ),
    TaskStatus.TRANSCRIBED: frozenset(
        {TaskStatus.PROCESSING, TaskStatus.TRANSCRIBED, TaskStatus.FAILED}
    ),
    TaskStatus.SUMMARIZED: frozenset(
        {TaskStatus.TRANSCRIBED, TaskStatus.SUMMARIZED, TaskStatus.FAILED}
    ),
    TaskStatus.COMPLETED: frozenset({TaskStatus.SUMMARIZED}),
    TaskStatus.COMPLETED_WITH_PUBLISH_ERRORS: frozenset({TaskStatus.SUMMARIZED}),
    TaskStatus.FAILED: frozenset(
        {
            TaskStatus.PROCESSING,
            TaskStatus.TRANSCRIBED,
            TaskStatus.SUMMARIZED,
            TaskStatus.FAILED,
        }
    ),
}


def can_transition(current: TaskStatus, target: TaskStatus) -> bool:
    """Whether the state machine allows `current -> target`."""
    return current in ALLOWED_SOURCES.get(target, frozenset())


class Task(BaseModel):
    """One row of the transcription_tasks table."""
    model_config = ConfigDict(extra="ignore")

    id: str
    status: TaskStatus
    storage_path: Optional[str] = None
    original_file_name: Optional[str] = None
    mimetype: Optional[str] = None
    filetype: Optional[str] = None
    slack_file_id: Optional[str] = None
    slack_channel_id: Optional[str] = None
    meeting_date: Optional[str] = None
    consultant_name: Optional[str] = None
    client_name: Optional[str] = None
    transcription_result: Optional[str] = None
    summary_result: Optional[str] = None
    notion_page_id: Optional[str] = None
    error_message: Optional[str] = None
    run_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None

    @property
    def is_terminal_success(self) -> bool:
        return self.status in TERMINAL_SUCCESS

    @property
    def notion_page_ids(self) -> List[str]:
        if not self.notion_page_id:
            return []
        return [page_id for page_id in self.notion_page_id.split(",") if page_id]


class TaskCreate(BaseModel):
    """Fields captured by the ingress adapter when a file is shared."""
    original_file_name: str
    mimetype: str
    filetype: str
    slack_file_id: Optional[str] = None
    slack_channel_id: Optional[str] = None
    meeting_date: Optional[str] = None
    consultant_name: Optional[str] = None
    client_name: Optional[str] = None


# Field name -> label used in Notion properties and human-readable renderings.
SUMMARY_FIELD_LABELS: Dict[str, str] = {
    "meeting_title": "会議名",
    "meeting_basics": "会議の基本情報",
    "meeting_objective_agenda": "会議の目的とアジェンダ",
    "discussions_decisions": "会議の内容(議論と決定事項)",
    "next_schedule": "今後のスケジュール",
    "other_notes": "その他特記事項",
}


class StructuredSummary(BaseModel):
    """The six-field summary the summarization step must produce."""
    model_config = ConfigDict(extra="ignore")

    meeting_title: str
    meeting_basics: str
    meeting_objective_agenda: str
    discussions_decisions: str
    next_schedule: str
    other_notes: str

    @field_validator("*", mode="before")
    @classmethod
    def _join_bullet_lists(cls, value: Any) -> Any:
        # Models sometimes answer bullet points as a JSON array of strings.
        if isinstance(value, list) and all(isinstance(item, str) for item in value):
            return "\n".join(f"- {item}" for item in value)
        return value

    def to_json(self) -> str:
        return json.dumps(self.model_dump(), ensure_ascii=False)

    @classmethod
    def from_json(cls, raw: str) -> "StructuredSummary":
        return cls.model_validate_json(raw)

    def to_text(self) -> str:
        """Plain-text rendering, title first, one section per field."""
        lines = [self.meeting_title]
        for field, label in SUMMARY_FIELD_LABELS.items():
            if field == "meeting_title":
                continue
            value = getattr(self, field)
            if value:
                lines.append(f"【{label}】\n{value}")
        return "\n\n".join(lines)


# ---------------------------------------------------------------------------
# Slack Events API envelopes
# ---------------------------------------------------------------------------

class UrlVerification(BaseModel):
    type: str = "url_verification"
    challenge: str


class SlackEvent(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str
    file_id: Optional[str] = None
    channel_id: Optional[str] = None


class EventCallback(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str = "event_callback"
    event_id: Optional[str] = None
    event: SlackEvent


# ---------------------------------------------------------------------------
# Trigger and notification payloads
# ---------------------------------------------------------------------------

class TransferRequest(BaseModel):
    """Payload that fires the transfer stage."""
    model_config = ConfigDict(populate_by_name=True)

    task_id: str = Field(alias="taskId")
    slack_download_url: str
    original_file_name: str
    mimetype: str
    filetype: str


class ProcessRequest(BaseModel):
    """Payload that fires the processing orchestrator."""
    model_config = ConfigDict(populate_by_name=True)

    task_id: str = Field(alias="taskId")
    storage_path: Optional[str] = Field(default=None, alias="storagePath")


class NotificationPayload(BaseModel):
    task_id: Optional[str] = None
    status: str
    original_file_name: Optional[str] = "N/A"
    summary_text: Optional[str] = None
    storage_summary_path: Optional[str] = None
    storage_transcript_path: Optional[str] = None
    notion_page_url: Optional[str] = None
    error_message: Optional[str] = None


class TransferResult(BaseModel):
    task_id: str
    status: TaskStatus
    storage_path: Optional[str] = None
    error_message: Optional[str] = None
    skipped: bool = False

    @property
    def succeeded(self) -> bool:
        return self.status == TaskStatus.UPLOADED


class PublishOutcome(BaseModel):
    database_id: str
    page_id: Optional[str] = None
    page_url: Optional[str] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.page_id is not None


class ProcessingResult(BaseModel):
    task_id: str
    status: TaskStatus
    notion_page_ids: List[str] = Field(default_factory=list)
    publish_errors: List[str] = Field(default_factory=list)
    error_message: Optional[str] = None
    skipped: bool = False

    @property
    def succeeded(self) -> bool:
        return self.status in TERMINAL_SUCCESS
