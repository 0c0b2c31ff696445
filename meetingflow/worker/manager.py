"""
Pipeline component management.
Builds every stage from the configuration once at startup and releases the
shared HTTP client at shutdown.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx
from fastapi import HTTPException, Request
from supabase import Client

from meetingflow.core.config import Config
from meetingflow.service.gemini import GeminiModel
from meetingflow.service.notifier import SlackNotifier
from meetingflow.service.notion import NotionPublisher
from meetingflow.service.slack import SlackClient
from meetingflow.service.whisper import WhisperTranscriber
from meetingflow.worker.database import TaskStore
from meetingflow.worker.ingress import SlackIngress
from meetingflow.worker.processor import TaskProcessor
from meetingflow.worker.storage import MediaStorage
from meetingflow.worker.transfer import TransferStage
from meetingflow.worker.triggers import TriggerDispatcher

logger = logging.getLogger(__name__)


@dataclass
class PipelineComponents:
    """Everything the routes need, wired together."""
    config: Config
    http_client: httpx.AsyncClient
    store: TaskStore
    ingress: SlackIngress
    transfer: TransferStage
    processor: TaskProcessor
    notifier: SlackNotifier
    transfer_trigger: TriggerDispatcher
    processing_trigger: TriggerDispatcher

    async def close(self) -> None:
        await self.http_client.aclose()
        logger.info("✅ Pipeline HTTP client closed")


def build_pipeline(
    config: Config,
    supabase_client: Optional[Client] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    transcriber: Optional[WhisperTranscriber] = None,
    summarizer: Optional[GeminiModel] = None,
) -> PipelineComponents:
    """
    Wire the pipeline from configuration.

    Clients may be passed in to replace the ones built from `config`.

    Args:
        config: Process configuration
        supabase_client: Supabase client for the task table and storage
        http_client: Shared HTTP client for Slack, Notion, storage uploads and webhooks
        transcriber: Speech-to-text service
        summarizer: Summarization model

    Returns:
        Wired components
    """
    missing = config.missing_required()
    if missing:
        logger.warning(f"⚠️ Missing configuration: {', '.join(missing)}")

    supabase_client = supabase_client or config.get_supabase_client()
    http_client = http_client or httpx.AsyncClient(timeout=config.http_timeout_seconds)

    store = TaskStore(supabase_client, config.tasks_table)
    storage = MediaStorage(
        supabase_client,
        http_client,
        config.supabase_url,
        config.supabase_key,
        config.storage_bucket,
    )
    slack = SlackClient(config.slack_bot_token, http_client)
    notifier = SlackNotifier(slack, config.slack_channel_id, config.summary_preview_chars)
    publisher = NotionPublisher(config.notion_api_key, config.notion_destinations, http_client)

    processor = TaskProcessor(
        store=store,
        storage=storage,
        transcriber=transcriber or WhisperTranscriber(config.openai_api_key, config.whisper_model),
        summarizer=summarizer or GeminiModel(config.gemini_model, config.gemini_api_key),
        publisher=publisher,
        notifier=notifier,
    )
    processing_trigger = TriggerDispatcher(
        "processing", config.processing_webhook_url, http_client, local_handler=processor.process
    )

    transfer = TransferStage(store, storage, slack, processing_trigger)
    transfer_trigger = TriggerDispatcher(
        "transfer", config.transfer_webhook_url, http_client, local_handler=transfer.run
    )

    logger.info(f"✅ Pipeline components initialized: {config.summary()}")
    return PipelineComponents(
        config=config,
        http_client=http_client,
        store=store,
        ingress=SlackIngress(store, slack, config),
        transfer=transfer,
        processor=processor,
        notifier=notifier,
        transfer_trigger=transfer_trigger,
        processing_trigger=processing_trigger,
    )


def get_pipeline(request: Request) -> PipelineComponents:
    """Components attached to the running app."""
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        raise HTTPException(status_code=503, detail="Pipeline not initialized")
    return pipeline
