"""
Fire-and-forget handoff between pipeline stages.
"""

import logging
from typing import Awaitable, Callable, Optional

import httpx
from pydantic import BaseModel

logger = logging.getLogger(__name__)

LocalHandler = Callable[[BaseModel], Awaitable[object]]


class TriggerDispatcher:
    """
    Starts the next stage with a payload.

    With a webhook URL the payload is POSTed there; otherwise the local
    handler is awaited in this process. A failed dispatch is logged and
    reported, never raised: the current stage's state is already recorded.
    """

    def __init__(
        self,
        name: str,
        webhook_url: Optional[str],
        http_client: Optional[httpx.AsyncClient] = None,
        local_handler: Optional[LocalHandler] = None,
    ):
        self.name = name
        self.webhook_url = webhook_url
        self.client = http_client
        self.local_handler = local_handler

    async def dispatch(self, payload: BaseModel) -> bool:
        """
        Hand `payload` to the next stage.

        Returns:
            True if the next stage accepted it
        """
        body = payload.model_dump(by_alias=True)

        if self.webhook_url and self.client is not None:
            try:
                response = await self.client.post(self.webhook_url, json=body)
            except httpx.RequestError as e:
                logger.error(f"❌ {self.name} trigger request failed: {e}")
                return False
            if not response.is_success:
                logger.error(f"❌ {self.name} trigger returned {response.status_code} - {response.text[:200]}")
                return False
            logger.info(f"✅ {self.name} triggered via webhook")
            return True

        if self.local_handler is not None:
            try:
                await self.local_handler(payload)
                return True
            except Exception as e:
                logger.error(f"❌ {self.name} local handler failed: {e}")
                return False

        logger.warning(f"⚠️ No {self.name} trigger configured, payload dropped: {body}")
        return False
