"""
HTTP client for publishing meeting summaries as Notion database pages.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

from meetingflow.core.config import NotionDestination
from meetingflow.core.errors import NotionAPIError
from meetingflow.core.models import SUMMARY_FIELD_LABELS, PublishOutcome, StructuredSummary

logger = logging.getLogger(__name__)

# Notion rejects text objects longer than this
RICH_TEXT_LIMIT = 2000

DATE_PROPERTY = "日付"
CONSULTANT_PROPERTY = "コンサルタント名"
CLIENT_PROPERTY = "クライアント名"


def rich_text(value: Optional[str]) -> List[Dict[str, Any]]:
    """Split `value` into as many text objects as needed. Nothing is dropped."""
    if not value:
        return []
    return [
        {"type": "text", "text": {"content": value[start:start + RICH_TEXT_LIMIT]}}
        for start in range(0, len(value), RICH_TEXT_LIMIT)
    ]


def page_title(summary: StructuredSummary, meeting_date: Optional[str], client_name: Optional[str]) -> str:
    if summary.meeting_title:
        return summary.meeting_title
    return f"{client_name or 'N/A'}様 {meeting_date or '日付不明'}"


def build_properties(
    destination: NotionDestination,
    summary: StructuredSummary,
    meeting_date: Optional[str] = None,
    consultant_name: Optional[str] = None,
    client_name: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Page properties for one destination database.

    Each destination only carries the consultant and client columns its
    audience should see. Optional values that are absent are left out
    entirely rather than written empty.
    """
    properties: Dict[str, Any] = {
        SUMMARY_FIELD_LABELS["meeting_title"]: {
            "title": rich_text(page_title(summary, meeting_date, client_name))
        },
    }
    if meeting_date:
        properties[DATE_PROPERTY] = {"date": {"start": meeting_date}}
    if destination.include_consultant and consultant_name:
        properties[CONSULTANT_PROPERTY] = {"rich_text": rich_text(consultant_name)}
    if destination.include_client and client_name:
        properties[CLIENT_PROPERTY] = {"rich_text": rich_text(client_name)}

    for field, label in SUMMARY_FIELD_LABELS.items():
        if field == "meeting_title":
            continue
        properties[label] = {"rich_text": rich_text(getattr(summary, field))}

    return properties


class NotionPublisher:
    """Creates one page per configured destination database."""

    API_BASE = "https://api.notion.com/v1"
    NOTION_VERSION = "2022-06-28"

    def __init__(
        self,
        api_key: str,
        destinations: Sequence[NotionDestination],
        http_client: httpx.AsyncClient,
    ):
        self.api_key = api_key
        self.destinations = list(destinations)
        self.client = http_client

    @property
    def enabled(self) -> bool:
        return bool(self.api_key and self.destinations)

    async def create_page(self, database_id: str, properties: Dict[str, Any]) -> Tuple[str, Optional[str]]:
        """
        Create a page in a database.

        Returns:
            (page id, page url)
        """
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Notion-Version": self.NOTION_VERSION,
            "Content-Type": "application/json",
        }
        body = {"parent": {"database_id": database_id}, "properties": properties}

        try:
            response = await self.client.post(f"{self.API_BASE}/pages", json=body, headers=headers)
        except httpx.RequestError as e:
            raise NotionAPIError(f"Notion request failed: {e}", database_id=database_id) from e

        if not response.is_success:
            code, message = "unknown", response.text[:300]
            try:
                error_body = response.json()
                code = error_body.get("code", code)
                message = error_body.get("message", message)
            except ValueError:
                pass
            raise NotionAPIError(
                f"Notion API error {response.status_code} ({code}): {message}",
                database_id=database_id,
                status=response.status_code,
                code=code,
            )

        page = response.json()
        return page["id"], page.get("url")

    async def publish(
        self,
        summary: StructuredSummary,
        meeting_date: Optional[str] = None,
        consultant_name: Optional[str] = None,
        client_name: Optional[str] = None,
    ) -> List[PublishOutcome]:
        """
        Publish the summary to every destination.

        Each destination is attempted independently; a failure is logged and
        reported in its outcome, never raised.
        """
        if not self.enabled:
            logger.info("Notion publishing disabled (no API key or database ids), skipping")
            return []

        outcomes = []
        for destination in self.destinations:
            database_id = destination.database_id
            logger.info(f"Creating Notion page in DB: {database_id}")
            try:
                properties = build_properties(
                    destination, summary, meeting_date, consultant_name, client_name
                )
                page_id, page_url = await self.create_page(database_id, properties)
                logger.info(f"✅ Notion page created in DB {database_id}: {page_id}")
                outcomes.append(PublishOutcome(database_id=database_id, page_id=page_id, page_url=page_url))
            except Exception as e:
                logger.error(f"❌ Error creating Notion page in DB {database_id}: {e}")
                outcomes.append(PublishOutcome(database_id=database_id, error=str(e)))

        return outcomes
