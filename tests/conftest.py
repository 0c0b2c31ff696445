"""Shared test configuration and fixtures for all tests."""

import copy
import json
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple, Union
from urllib.parse import unquote

import httpx
import pytest

from meetingflow.core.config import Config
from meetingflow.core.models import StructuredSummary, TaskStatus
from meetingflow.core.security import compute_slack_signature
from meetingflow.service.gemini import parse_summary_response

SIGNING_SECRET = "test-signing-secret"
SUPABASE_URL = "https://supabase.test"
DOWNLOAD_URL = "https://files.slack.com/files-pri/T1-F123/download/meeting.mov"

TEST_ENV = {
    "SUPABASE_URL": SUPABASE_URL,
    "SUPABASE_SERVICE_ROLE_KEY": "service-role-key",
    "SLACK_SIGNING_SECRET": SIGNING_SECRET,
    "SLACK_BOT_TOKEN": "xoxb-test",
    "SLACK_CHANNEL_ID": "C-NOTIFY",
    "OPENAI_API_KEY": "sk-test",
    "GEMINI_API_KEY": "gemini-test",
    "NOTION_API_KEY": "secret_notion",
    "NOTION_DB_ID_1": "db-all",
    "NOTION_DB_ID_2": "db-client",
    "NOTION_DB_ID_3": "db-consultant",
}

SUMMARY_FIELDS = {
    "meeting_title": "株式会社サンプル様 定例会議",
    "meeting_basics": "参加者: 山田, 佐藤",
    "meeting_objective_agenda": "新サービスの導入検討",
    "discussions_decisions": "- 導入は来月開始で合意",
    "next_schedule": "- 6月1日 キックオフ",
    "other_notes": "特になし",
}


# ---------------------------------------------------------------------------
# Supabase fake
# ---------------------------------------------------------------------------

class FakeResult:
    def __init__(self, data: List[Dict[str, Any]], count: Optional[int] = None):
        self.data = data
        self.count = count


class FakeQuery:
    """Chainable query over a FakeTable, mirroring the postgrest builder calls the store uses."""

    def __init__(self, table: "FakeTable", operation: str, payload: Any = None, count: Optional[str] = None):
        self.table = table
        self.operation = operation
        self.payload = payload
        self.count_mode = count
        self.filters: List[Callable[[Dict[str, Any]], bool]] = []
        self.row_limit: Optional[int] = None

    def eq(self, column: str, value: Any) -> "FakeQuery":
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def in_(self, column: str, values: List[Any]) -> "FakeQuery":
        allowed = list(values)
        self.filters.append(lambda row: row.get(column) in allowed)
        return self

    def is_(self, column: str, value: str) -> "FakeQuery":
        assert value == "null"
        self.filters.append(lambda row: row.get(column) is None)
        return self

    def limit(self, count: int) -> "FakeQuery":
        self.row_limit = count
        return self

    def execute(self) -> FakeResult:
        if self.table.error is not None:
            raise self.table.error
        self.table.operations.append(self.operation)

        if self.operation == "insert":
            row = {"created_at": _now(), "updated_at": _now(), **copy.deepcopy(self.payload)}
            self.table.rows.append(row)
            return FakeResult([copy.deepcopy(row)])

        matched = [row for row in self.table.rows if all(match(row) for match in self.filters)]

        if self.operation == "update":
            for row in matched:
                row.update(copy.deepcopy(self.payload))
            return FakeResult([copy.deepcopy(row) for row in matched])

        if self.row_limit is not None:
            matched = matched[: self.row_limit]
        count = len(matched) if self.count_mode == "exact" else None
        return FakeResult([copy.deepcopy(row) for row in matched], count)


class FakeTable:
    def __init__(self):
        self.rows: List[Dict[str, Any]] = []
        self.operations: List[str] = []
        self.error: Optional[Exception] = None

    def select(self, columns: str = "*", count: Optional[str] = None) -> FakeQuery:
        return FakeQuery(self, "select", count=count)

    def insert(self, record: Dict[str, Any]) -> FakeQuery:
        return FakeQuery(self, "insert", record)

    def update(self, data: Dict[str, Any]) -> FakeQuery:
        return FakeQuery(self, "update", data)


class FakeBucket:
    def __init__(self, objects: Dict[str, bytes]):
        self.objects = objects

    def download(self, path: str) -> bytes:
        if path not in self.objects:
            raise RuntimeError(f"Object not found: {path}")
        return self.objects[path]


class FakeStorage:
    def __init__(self):
        self.buckets: Dict[str, Dict[str, bytes]] = {}

    def from_(self, bucket: str) -> FakeBucket:
        return FakeBucket(self.buckets.setdefault(bucket, {}))


class FakeSupabase:
    """In-memory stand-in for `supabase.Client`."""

    def __init__(self):
        self.tables: Dict[str, FakeTable] = {}
        self.storage = FakeStorage()

    def table(self, name: str) -> FakeTable:
        return self.tables.setdefault(name, FakeTable())

    @property
    def tasks(self) -> FakeTable:
        return self.table("transcription_tasks")

    def seed_task(self, **fields: Any) -> str:
        row = {
            "id": fields.pop("id", f"task-{len(self.tasks.rows) + 1}"),
            "status": TaskStatus.UPLOADED.value,
            "storage_path": None,
            "original_file_name": "meeting.mov",
            "mimetype": "video/quicktime",
            "filetype": "mov",
            "created_at": _now(),
            "updated_at": _now(),
        }
        row.update({k: (v.value if isinstance(v, TaskStatus) else v) for k, v in fields.items()})
        self.tasks.rows.append(row)
        return row["id"]

    def row(self, task_id: str) -> Dict[str, Any]:
        return next(row for row in self.tasks.rows if row["id"] == task_id)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# HTTP mocking
# ---------------------------------------------------------------------------

Responder = Union[httpx.Response, Callable[[httpx.Request], httpx.Response]]


class HttpRecorder:
    """MockTransport handler that routes by method and URL prefix and records every request."""

    def __init__(self):
        self.routes: List[Tuple[str, str, Responder]] = []
        self.requests: List[httpx.Request] = []

    def add(self, method: str, url_prefix: str, responder: Responder) -> None:
        self.routes.append((method, url_prefix, responder))

    def calls(self, url_prefix: str, method: Optional[str] = None) -> List[httpx.Request]:
        return [
            request for request in self.requests
            if str(request.url).startswith(url_prefix) and (method is None or request.method == method)
        ]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for method, prefix, responder in reversed(self.routes):
            if request.method == method and str(request.url).startswith(prefix):
                return responder(request) if callable(responder) else responder
        return httpx.Response(404, json={"error": f"no route for {request.method} {request.url}"})

    # Common routes -------------------------------------------------------

    def slack_file_info(self, file_info: Dict[str, Any]) -> None:
        self.add("GET", "https://slack.com/api/files.info", httpx.Response(200, json={"ok": True, "file": file_info}))

    def slack_post_message(self, ok: bool = True) -> None:
        body = {"ok": True, "ts": "1.0"} if ok else {"ok": False, "error": "channel_not_found"}
        self.add("POST", "https://slack.com/api/chat.postMessage", httpx.Response(200, json=body))

    def slack_download(self, content: bytes = b"video-bytes", status: int = 200, content_type: str = "video/quicktime") -> None:
        self.add("GET", DOWNLOAD_URL, httpx.Response(status, content=content, headers={"content-type": content_type}))

    def storage_upload(self, status: int = 200, storage: Optional["FakeStorage"] = None) -> None:
        """Answer uploads; with `storage`, successful uploads land in its buckets for later downloads."""
        prefix = f"{SUPABASE_URL}/storage/v1/object/"

        def respond(request: httpx.Request) -> httpx.Response:
            if status >= 400:
                return httpx.Response(status, json={"error": "Bucket not found"})
            bucket, _, key = unquote(str(request.url)[len(prefix):]).partition("/")
            if storage is not None:
                storage.from_(bucket).objects[key] = request.content
            return httpx.Response(status, json={"Key": f"{bucket}/{key}"})

        self.add("POST", prefix, respond)

    def notion_pages(self, failing: Tuple[str, ...] = ()) -> None:
        def respond(request: httpx.Request) -> httpx.Response:
            database_id = json.loads(request.content)["parent"]["database_id"]
            if database_id in failing:
                return httpx.Response(400, json={"object": "error", "code": "validation_error", "message": "bad property"})
            return httpx.Response(
                200, json={"id": f"page-{database_id}", "url": f"https://notion.so/page-{database_id}"}
            )

        self.add("POST", "https://api.notion.com/v1/pages", respond)

    def posted_messages(self) -> List[str]:
        return [
            json.loads(request.content)["text"]
            for request in self.calls("https://slack.com/api/chat.postMessage", "POST")
        ]


# ---------------------------------------------------------------------------
# Model service fakes
# ---------------------------------------------------------------------------

class FakeTranscriber:
    def __init__(self, text: str = "本日の会議では新サービスの導入について議論しました。", error: Optional[Exception] = None):
        self.text = text
        self.error = error
        self.calls: List[Tuple[str, int, Optional[str]]] = []

    async def transcribe(self, media: bytes, file_name: str, mimetype: Optional[str] = None) -> str:
        self.calls.append((file_name, len(media), mimetype))
        if self.error is not None:
            raise self.error
        return self.text


class FakeSummarizer:
    """Runs the real response parser over a canned model answer."""

    def __init__(self, raw: Optional[str] = None, error: Optional[Exception] = None):
        self.raw = raw if raw is not None else json.dumps(SUMMARY_FIELDS, ensure_ascii=False)
        self.error = error
        self.calls: List[str] = []

    async def summarize(self, transcript: str) -> StructuredSummary:
        self.calls.append(transcript)
        if self.error is not None:
            raise self.error
        return parse_summary_response(self.raw)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

def signed_headers(body: bytes, timestamp: Optional[int] = None, secret: str = SIGNING_SECRET) -> Dict[str, str]:
    ts = str(int(time.time()) if timestamp is None else timestamp)
    return {
        "Content-Type": "application/json",
        "X-Slack-Request-Timestamp": ts,
        "X-Slack-Signature": compute_slack_signature(secret, ts, body),
    }


@pytest.fixture
def env() -> Dict[str, str]:
    return dict(TEST_ENV)


@pytest.fixture
def config(env: Dict[str, str]) -> Config:
    return Config(env)


@pytest.fixture
def supabase() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def http() -> HttpRecorder:
    return HttpRecorder()


@pytest.fixture
def http_client(http: HttpRecorder) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(http))


@pytest.fixture
def summary() -> StructuredSummary:
    return StructuredSummary(**SUMMARY_FIELDS)
