"""Exception hierarchy for the meeting pipeline."""

from typing import Any


class MeetingFlowError(Exception):
    """Base exception for all pipeline errors.

    Attributes:
        status_code: HTTP status code to return when this error reaches a route.
        error_code: Machine-readable error identifier.
        context: Extra key-value pairs describing the failure.
    """

    status_code: int = 500

    def __init__(self, message: str, error_code: str = "INTERNAL_ERROR", **context: Any) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.context = context


class SignatureVerificationError(MeetingFlowError):
    """Inbound request failed origin authentication."""

    status_code: int = 403

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message, error_code="SIGNATURE_INVALID", **context)


class PayloadValidationError(MeetingFlowError):
    """Inbound payload or resolved metadata is missing required fields."""

    status_code: int = 400

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message, error_code="PAYLOAD_INVALID", **context)


class SlackAPIError(MeetingFlowError):
    """Slack Web API call failed."""

    status_code: int = 502

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message, error_code="SLACK_API_ERROR", **context)


class StorageError(MeetingFlowError):
    """Object storage read or write failed."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message, error_code="STORAGE_ERROR", **context)


class TranscriptionError(MeetingFlowError):
    """Speech-to-text call failed."""

    status_code: int = 502

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message, error_code="TRANSCRIPTION_ERROR", **context)


class SummarizationError(MeetingFlowError):
    """Generative summarization call failed."""

    status_code: int = 502

    def __init__(self, message: str, error_code: str = "SUMMARIZATION_ERROR", **context: Any) -> None:
        super().__init__(message, error_code=error_code, **context)


class SummaryParseError(SummarizationError):
    """Model answered, but not with the structured summary object."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message, error_code="SUMMARY_PARSE_ERROR", **context)


class NotionAPIError(MeetingFlowError):
    """Notion page creation failed."""

    status_code: int = 502

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message, error_code="NOTION_API_ERROR", **context)


class TaskStoreError(MeetingFlowError):
    """The task table could not be read or written."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message, error_code="TASK_STORE_ERROR", **context)


class TaskNotFoundError(TaskStoreError):
    status_code: int = 404

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task {task_id} not found", task_id=task_id)
        self.error_code = "TASK_NOT_FOUND"


class InvalidTransitionError(TaskStoreError):
    """A status update was rejected by the state machine guard."""

    status_code: int = 409

    def __init__(self, task_id: str, target: str, current: Any = None) -> None:
        super().__init__(
            f"Task {task_id} cannot move to {target} (current status: {current or 'unknown'})",
            task_id=task_id,
            target=target,
            current=current,
        )
        self.error_code = "INVALID_TRANSITION"


class TaskNotReadyError(TaskStoreError):
    """Processing was requested for a task whose media is not in storage yet."""

    status_code: int = 409

    def __init__(self, task_id: str, current: Any = None) -> None:
        super().__init__(
            f"Task {task_id} is not ready for processing (current status: {current or 'unknown'})",
            task_id=task_id,
            current=current,
        )
        self.error_code = "TASK_NOT_READY"
