"""Tests for the task state machine and payload models."""

import json

import pytest
from pydantic import ValidationError

from meetingflow.core.models import (
    ALLOWED_SOURCES,
    ProcessRequest,
    StructuredSummary,
    Task,
    TaskStatus,
    TransferRequest,
    can_transition,
)

S = TaskStatus


class TestStateMachine:

    @pytest.mark.parametrize(
        "current,target",
        [
            (S.UPLOAD_PENDING, S.UPLOADED),
            (S.UPLOAD_PENDING, S.UPLOAD_FAILED),
            (S.UPLOADED, S.PROCESSING),
            (S.PROCESSING, S.TRANSCRIBED),
            (S.TRANSCRIBED, S.SUMMARIZED),
            (S.SUMMARIZED, S.COMPLETED),
            (S.SUMMARIZED, S.COMPLETED_WITH_PUBLISH_ERRORS),
            (S.PROCESSING, S.FAILED),
            (S.TRANSCRIBED, S.FAILED),
            (S.SUMMARIZED, S.FAILED),
            (S.UPLOAD_FAILED, S.UPLOADED),
            (S.FAILED, S.PROCESSING),
            (S.FAILED, S.TRANSCRIBED),
            (S.FAILED, S.SUMMARIZED),
        ],
    )
    def test_allowed(self, current, target):
        assert can_transition(current, target)

    @pytest.mark.parametrize(
        "current,target",
        [
            (S.COMPLETED, S.PROCESSING),
            (S.COMPLETED, S.FAILED),
            (S.COMPLETED_WITH_PUBLISH_ERRORS, S.SUMMARIZED),
            (S.SUMMARIZED, S.TRANSCRIBED),
            (S.TRANSCRIBED, S.PROCESSING),
            (S.UPLOAD_PENDING, S.PROCESSING),
            (S.UPLOAD_FAILED, S.PROCESSING),
            (S.PROCESSING, S.COMPLETED),
            (S.UPLOADED, S.UPLOAD_PENDING),
        ],
    )
    def test_rejected(self, current, target):
        assert not can_transition(current, target)

    def test_nothing_leaves_terminal_success(self):
        for sources in ALLOWED_SOURCES.values():
            assert S.COMPLETED not in sources
            assert S.COMPLETED_WITH_PUBLISH_ERRORS not in sources

    def test_upload_pending_is_only_an_initial_state(self):
        assert S.UPLOAD_PENDING not in ALLOWED_SOURCES


class TestTask:

    def test_notion_page_ids_split(self):
        task = Task(id="t1", status="completed", notion_page_id="p1,p2")

        assert task.notion_page_ids == ["p1", "p2"]
        assert task.is_terminal_success

    def test_empty_page_ids(self):
        assert Task(id="t1", status="failed").notion_page_ids == []

    def test_unknown_status_rejected(self):
        with pytest.raises(ValidationError):
            Task(id="t1", status="pending")


class TestPayloads:

    def test_transfer_request_accepts_camel_case_task_id(self):
        request = TransferRequest.model_validate(
            {
                "taskId": "t1",
                "slack_download_url": "https://files.slack.com/x",
                "original_file_name": "a.mov",
                "mimetype": "video/quicktime",
                "filetype": "mov",
            }
        )

        assert request.task_id == "t1"
        assert request.model_dump(by_alias=True)["taskId"] == "t1"

    def test_process_request_aliases(self):
        request = ProcessRequest(task_id="t1", storage_path="uploads/t1.mov")

        assert request.model_dump(by_alias=True) == {"taskId": "t1", "storagePath": "uploads/t1.mov"}

    def test_transfer_request_requires_download_url(self):
        with pytest.raises(ValidationError):
            TransferRequest.model_validate({"taskId": "t1", "original_file_name": "a", "mimetype": "m", "filetype": "f"})


class TestStructuredSummary:

    def test_json_round_trip_keeps_japanese(self, summary):
        raw = summary.to_json()

        assert "株式会社サンプル様" in raw
        assert StructuredSummary.from_json(raw) == summary

    def test_list_fields_become_bullets(self, summary):
        data = json.loads(summary.to_json())
        data["next_schedule"] = ["6/1 キックオフ", "6/8 レビュー"]

        parsed = StructuredSummary.model_validate(data)

        assert parsed.next_schedule == "- 6/1 キックオフ\n- 6/8 レビュー"

    def test_to_text_starts_with_title(self, summary):
        text = summary.to_text()

        assert text.startswith(summary.meeting_title)
        assert "【会議の目的とアジェンダ】" in text
