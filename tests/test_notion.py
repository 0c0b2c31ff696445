"""Tests for Notion page properties and publishing."""

import json

import httpx
import pytest

from meetingflow.core.config import Config, NotionDestination
from meetingflow.service.notion import RICH_TEXT_LIMIT, NotionPublisher, build_properties, rich_text

ALL = NotionDestination("db-all", True, True)
CLIENT_ONLY = NotionDestination("db-client", False, True)


def joined(property_value, kind="rich_text"):
    return "".join(part["text"]["content"] for part in property_value[kind])


def test_long_fields_are_split_not_truncated(summary):
    long_text = "議論" * 3000
    summary = summary.model_copy(update={"discussions_decisions": long_text})

    properties = build_properties(ALL, summary, "2024-05-17", "山田", "サンプル社")

    segments = properties["会議の内容(議論と決定事項)"]["rich_text"]
    assert len(segments) == 3
    assert all(len(segment["text"]["content"]) <= RICH_TEXT_LIMIT for segment in segments)
    assert joined(properties["会議の内容(議論と決定事項)"]) == long_text


def test_every_field_is_published_verbatim(summary):
    properties = build_properties(ALL, summary, "2024-05-17", "山田", "サンプル社")

    assert joined(properties["会議名"], "title") == summary.meeting_title
    assert joined(properties["会議の基本情報"]) == summary.meeting_basics
    assert joined(properties["今後のスケジュール"]) == summary.next_schedule
    assert joined(properties["その他特記事項"]) == summary.other_notes
    assert joined(properties["コンサルタント名"]) == "山田"
    assert joined(properties["クライアント名"]) == "サンプル社"
    assert properties["日付"] == {"date": {"start": "2024-05-17"}}


def test_client_only_destination_hides_consultant(summary):
    properties = build_properties(CLIENT_ONLY, summary, None, "山田", "サンプル社")

    assert "コンサルタント名" not in properties
    assert "クライアント名" in properties
    assert "日付" not in properties


def test_title_falls_back_to_client_and_date(summary):
    summary = summary.model_copy(update={"meeting_title": ""})

    properties = build_properties(ALL, summary, "2024-05-17", None, "サンプル社")

    assert joined(properties["会議名"], "title") == "サンプル社様 2024-05-17"


def test_rich_text_empty():
    assert rich_text("") == []
    assert rich_text(None) == []


async def test_publish_reports_each_destination(summary):
    requests = []

    def handler(request):
        requests.append(request)
        database_id = json.loads(request.content)["parent"]["database_id"]
        if database_id == "db-client":
            return httpx.Response(500, text="upstream error")
        return httpx.Response(200, json={"id": "page-1", "url": "https://notion.so/page-1"})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    publisher = NotionPublisher("secret", [ALL, CLIENT_ONLY], client)

    outcomes = await publisher.publish(summary, "2024-05-17", "山田", "サンプル社")

    assert [outcome.succeeded for outcome in outcomes] == [True, False]
    assert outcomes[0].page_url == "https://notion.so/page-1"
    assert "500" in outcomes[1].error
    assert requests[0].headers["notion-version"] == "2022-06-28"
    assert requests[0].headers["authorization"] == "Bearer secret"


async def test_network_error_does_not_raise(summary):
    def handler(request):
        raise httpx.ConnectTimeout("timed out")

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    publisher = NotionPublisher("secret", [ALL], client)

    outcomes = await publisher.publish(summary)

    assert not outcomes[0].succeeded
    assert "timed out" in outcomes[0].error


async def test_disabled_without_key(summary):
    publisher = NotionPublisher("", [ALL], httpx.AsyncClient())

    assert not publisher.enabled
    assert await publisher.publish(summary) == []


@pytest.mark.parametrize(
    "env,expected",
    [
        ({"NOTION_API_KEY": "k", "NOTION_DB_ID_1": "a", "NOTION_DB_ID_2": "b", "NOTION_DB_ID_3": "c"},
         [("a", True, True), ("b", False, True), ("c", True, False)]),
        ({"NOTION_API_KEY": "k", "NOTION_DB_ID_2": "b"}, [("b", False, True)]),
        ({"NOTION_DB_ID_1": "a"}, []),
    ],
)
def test_destinations_from_config(env, expected):
    destinations = Config(env).notion_destinations

    assert [(d.database_id, d.include_consultant, d.include_client) for d in destinations] == expected
