"""Tests for stage-to-stage trigger dispatch."""

import json

import httpx

from meetingflow.core.models import ProcessRequest
from meetingflow.worker.triggers import TriggerDispatcher

PAYLOAD = ProcessRequest(task_id="t1", storage_path="uploads/t1.mov")


async def test_webhook_receives_camel_case_payload():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(202)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    dispatcher = TriggerDispatcher("processing", "https://worker.test/api/process-task", client)

    assert await dispatcher.dispatch(PAYLOAD) is True
    assert str(requests[0].url) == "https://worker.test/api/process-task"
    assert json.loads(requests[0].content) == {"taskId": "t1", "storagePath": "uploads/t1.mov"}


async def test_webhook_failure_is_reported_not_raised():
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(503, text="down")))
    dispatcher = TriggerDispatcher("processing", "https://worker.test/hook", client)

    assert await dispatcher.dispatch(PAYLOAD) is False


async def test_local_handler_used_without_webhook():
    received = []

    async def handler(payload):
        received.append(payload)

    dispatcher = TriggerDispatcher("processing", "", local_handler=handler)

    assert await dispatcher.dispatch(PAYLOAD) is True
    assert received == [PAYLOAD]


async def test_local_handler_error_is_contained():
    async def handler(payload):
        raise RuntimeError("boom")

    dispatcher = TriggerDispatcher("processing", None, local_handler=handler)

    assert await dispatcher.dispatch(PAYLOAD) is False


async def test_nothing_configured():
    assert await TriggerDispatcher("processing", None).dispatch(PAYLOAD) is False
