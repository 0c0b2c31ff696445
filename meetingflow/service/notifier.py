"""
Completion and failure notifications posted to the Slack channel.
"""

import logging
from typing import Optional

from meetingflow.core.models import NotificationPayload, TaskStatus
from meetingflow.core.parsing import truncate
from meetingflow.service.slack import SlackClient

logger = logging.getLogger(__name__)


def build_message(payload: NotificationPayload, preview_chars: int = 300) -> str:
    """
    Render the Slack message for a processing outcome.

    Args:
        payload: Outcome of a processing run
        preview_chars: Length of the summary preview before it is cut

    Returns:
        Message text
    """
    name = payload.original_file_name or "N/A"
    task_ref = f"(タスクID: {payload.task_id})" if payload.task_id else ""
    status = payload.status

    if status in (TaskStatus.COMPLETED.value, TaskStatus.COMPLETED_WITH_PUBLISH_ERRORS.value):
        lines = [f"✅ 動画「{name}」の処理が完了しました {task_ref}".rstrip()]
        if payload.summary_text:
            lines.append(f"📝 要約:\n{truncate(payload.summary_text, preview_chars)}")
        if payload.storage_summary_path:
            lines.append(f"🗂 要約ファイル: {payload.storage_summary_path}")
        if payload.storage_transcript_path:
            lines.append(f"🗂 文字起こしファイル: {payload.storage_transcript_path}")
        if payload.notion_page_url:
            lines.append(f"📄 Notionページ: {payload.notion_page_url}")
        if status == TaskStatus.COMPLETED_WITH_PUBLISH_ERRORS.value:
            lines.append(f"⚠️ 一部のNotionページ作成に失敗しました: {payload.error_message or '詳細不明'}")
        return "\n".join(lines)

    if status == TaskStatus.FAILED.value:
        return (
            f"❌ 動画「{name}」の処理中にエラーが発生しました {task_ref}".rstrip()
            + f"\nエラー: {payload.error_message or '不明なエラー'}"
        )

    return f"⚠️ 動画「{name}」の処理状況が不明です {task_ref}".rstrip() + f"\n不明なステータス: {status}"


class SlackNotifier:
    """Posts pipeline outcomes to the configured channel."""

    def __init__(self, slack_client: Optional[SlackClient], channel_id: str, preview_chars: int = 300):
        self.slack = slack_client
        self.channel_id = channel_id
        self.preview_chars = preview_chars

    @property
    def enabled(self) -> bool:
        return bool(self.slack is not None and self.slack.bot_token and self.channel_id)

    async def notify(self, payload: NotificationPayload) -> bool:
        """
        Post a notification for `payload`.

        A missing token or channel, or a failed post, is logged and never
        propagated: notifications must not change a task's outcome.

        Returns:
            True if the message was posted
        """
        message = build_message(payload, self.preview_chars)

        if not self.enabled:
            logger.warning(f"⚠️ Slack notifications not configured, message for task {payload.task_id} logged only")
            logger.info(message)
            return False

        try:
            await self.slack.post_message(self.channel_id, message)
            logger.info(f"✅ Notification sent for task {payload.task_id} ({payload.status})")
            return True
        except Exception as e:
            logger.error(f"❌ Failed to send Slack notification for task {payload.task_id}: {e}")
            return False
