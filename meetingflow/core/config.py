import os
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional
from supabase import create_client, Client
from dotenv import load_dotenv
import logging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotionDestination:
    """A Notion database that receives a copy of every summary."""
    database_id: str
    include_consultant: bool
    include_client: bool


class Config:
    """Configuration for the meeting pipeline.

    Built once at process start and handed to every component, so tests can
    pass a plain dict instead of touching the process environment.
    """

    REQUIRED = (
        "SUPABASE_URL",
        "SUPABASE_SERVICE_ROLE_KEY",
        "SLACK_SIGNING_SECRET",
        "SLACK_BOT_TOKEN",
        "OPENAI_API_KEY",
        "GEMINI_API_KEY",
    )

    def __init__(self, env: Optional[Mapping[str, str]] = None):
        env = dict(os.environ if env is None else env)
        self._env = env

        # Supabase configuration
        self.supabase_url = env.get("SUPABASE_URL", "")
        self.supabase_key = env.get("SUPABASE_SERVICE_ROLE_KEY", "")
        self.storage_bucket = env.get("STORAGE_BUCKET", "videos")
        self.tasks_table = env.get("TASKS_TABLE", "transcription_tasks")

        # Slack configuration
        self.slack_signing_secret = env.get("SLACK_SIGNING_SECRET", "")
        self.slack_bot_token = env.get("SLACK_BOT_TOKEN", "")
        self.slack_channel_id = env.get("SLACK_CHANNEL_ID", "")
        self.slack_signature_max_age = int(env.get("SLACK_SIGNATURE_MAX_AGE", "300"))

        # Model configuration
        self.openai_api_key = env.get("OPENAI_API_KEY", "")
        self.whisper_model = env.get("WHISPER_MODEL", "whisper-1")
        self.gemini_api_key = env.get("GEMINI_API_KEY", "")
        self.gemini_model = env.get("GEMINI_MODEL", "gemini-1.5-flash")

        # Notion configuration
        self.notion_api_key = env.get("NOTION_API_KEY", "")

        # Trigger chain: empty means "run the next stage in this process"
        self.transfer_webhook_url = env.get("TRANSFER_WEBHOOK_URL", "")
        self.processing_webhook_url = env.get("PROCESSING_WEBHOOK_URL", "")

        self.summary_preview_chars = int(env.get("SUMMARY_PREVIEW_CHARS", "300"))
        self.http_timeout_seconds = float(env.get("HTTP_TIMEOUT_SECONDS", "300"))
        self.log_level = env.get("LOG_LEVEL", "INFO").upper()
        self.cors_allowed_origins = [
            origin.strip() for origin in env.get("CORS_ALLOWED_ORIGINS", "").split(",") if origin.strip()
        ]

    @classmethod
    def from_env(cls) -> "Config":
        """Load `.env` (if present) and build the configuration from the environment."""
        load_dotenv()
        return cls(os.environ)

    @property
    def notion_destinations(self) -> List[NotionDestination]:
        """
        Notion databases to publish into.

        DB 1 serves the whole team (consultant and client), DB 2 is client-facing
        (no consultant), DB 3 is the consultant's own log (no client).
        """
        if not self.notion_api_key:
            return []

        layout = (
            ("NOTION_DB_ID_1", True, True),
            ("NOTION_DB_ID_2", False, True),
            ("NOTION_DB_ID_3", True, False),
        )
        destinations = []
        for key, include_consultant, include_client in layout:
            database_id = self._env.get(key, "")
            if database_id:
                destinations.append(
                    NotionDestination(database_id, include_consultant, include_client)
                )
        return destinations

    @property
    def slack_notifications_enabled(self) -> bool:
        return bool(self.slack_bot_token and self.slack_channel_id)

    def missing_required(self) -> List[str]:
        """Names of mandatory settings that are not set."""
        return [key for key in self.REQUIRED if not self._env.get(key)]

    def get_supabase_client(self) -> Client:
        """Create a Supabase client for the service role."""
        return create_client(self.supabase_url, self.supabase_key)

    def summary(self) -> Dict[str, object]:
        """Non-secret view of the configuration, for startup logs."""
        return {
            "supabase_url": self.supabase_url,
            "storage_bucket": self.storage_bucket,
            "tasks_table": self.tasks_table,
            "slack_notifications": self.slack_notifications_enabled,
            "whisper_model": self.whisper_model,
            "gemini_model": self.gemini_model,
            "notion_destinations": len(self.notion_destinations),
            "transfer_webhook": bool(self.transfer_webhook_url),
            "processing_webhook": bool(self.processing_webhook_url),
        }
