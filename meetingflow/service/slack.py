"""
HTTP client for the Slack Web API.
Handles file metadata lookup, authenticated private downloads and channel messages.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict

import httpx

from meetingflow.core.errors import SlackAPIError

logger = logging.getLogger(__name__)


class SlackClient:
    """Client for the parts of the Slack Web API the pipeline uses."""

    API_BASE = "https://slack.com/api"

    def __init__(self, bot_token: str, http_client: httpx.AsyncClient):
        """
        Initialize the Slack client.

        Args:
            bot_token: Bot token (xoxb-...) with files:read and chat:write scopes
            http_client: Shared HTTP client
        """
        self.bot_token = bot_token
        self.client = http_client

    @property
    def _auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.bot_token}"}

    async def _call(self, method: str, http_method: str = "GET", **kwargs: Any) -> Dict[str, Any]:
        if not self.bot_token:
            raise SlackAPIError("Slack bot token not configured", method=method)

        url = f"{self.API_BASE}/{method}"
        try:
            response = await self.client.request(
                http_method, url, headers=self._auth_headers, **kwargs
            )
        except httpx.RequestError as e:
            logger.error(f"❌ Slack {method} request error: {e}")
            raise SlackAPIError(f"Slack {method} request failed: {e}", method=method) from e

        if response.status_code != 200:
            logger.error(f"❌ Slack {method} failed: {response.status_code} - {response.text[:200]}")
            raise SlackAPIError(
                f"Slack {method} returned HTTP {response.status_code}",
                method=method,
                status=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise SlackAPIError(f"Slack {method} returned invalid JSON", method=method) from e

        if not payload.get("ok"):
            error = payload.get("error", "unknown_error")
            logger.error(f"❌ Slack {method} error: {error}")
            raise SlackAPIError(f"Slack {method} error: {error}", method=method, error=error)

        return payload

    async def get_file_info(self, file_id: str) -> Dict[str, Any]:
        """
        Resolve a shared file to its metadata.

        Returns:
            The `file` object from files.info
        """
        payload = await self._call("files.info", params={"file": file_id})
        file_data = payload.get("file")
        if not file_data:
            raise SlackAPIError("files.info returned no file object", method="files.info")

        logger.info(f"Retrieved file info for {file_id}: {file_data.get('name')} ({file_data.get('mimetype')})")
        return file_data

    @asynccontextmanager
    async def stream_download(self, url: str) -> AsyncIterator[httpx.Response]:
        """
        Open a streaming download of a private Slack file.

        The body is not read; the caller iterates `response.aiter_bytes()`.
        """
        logger.info(f"Starting file download from Slack: {url}")
        async with self.client.stream(
            "GET", url, headers=self._auth_headers, follow_redirects=True
        ) as response:
            yield response

    async def post_message(self, channel: str, text: str) -> None:
        """Post a plain-text message to a channel."""
        await self._call("chat.postMessage", "POST", json={"channel": channel, "text": text})
        logger.info(f"✅ Slack message posted to {channel}")
