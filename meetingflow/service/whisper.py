"""
Speech-to-text through the OpenAI Whisper API.
"""

import logging
from typing import Optional

import openai
from openai import AsyncOpenAI

from meetingflow.core.errors import TranscriptionError

logger = logging.getLogger(__name__)


class WhisperTranscriber:
    """Wrapper around the OpenAI transcription endpoint."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_name: str = "whisper-1",
        client: Optional[AsyncOpenAI] = None,
    ):
        self.model_name = model_name
        self.client = client or AsyncOpenAI(api_key=api_key)

    async def transcribe(self, media: bytes, file_name: str, mimetype: Optional[str] = None) -> str:
        """
        Transcribe an audio or video file.

        Args:
            media: File content
            file_name: Name sent to the API; its extension selects the decoder
            mimetype: Content type of the file

        Returns:
            Full transcript text
        """
        logger.info(f"Transcribing {file_name} ({len(media)} bytes, {mimetype or 'unknown type'}) with {self.model_name}")

        try:
            transcription = await self.client.audio.transcriptions.create(
                model=self.model_name,
                file=(file_name, media, mimetype or "application/octet-stream"),
            )
        except openai.APIStatusError as e:
            detail = (
                f"status={e.status_code} code={getattr(e, 'code', None)} "
                f"type={getattr(e, 'type', None)}: {e.message}"
            )
            logger.error(f"❌ Whisper API error for {file_name}: {detail}")
            raise TranscriptionError(
                f"Whisper API request failed for {file_name}: {detail}",
                status=e.status_code,
                code=getattr(e, "code", None),
            ) from e
        except openai.APIError as e:
            logger.error(f"❌ Whisper API error for {file_name}: {e}")
            raise TranscriptionError(f"Whisper API request failed for {file_name}: {e}") from e

        text = transcription.text or ""
        logger.info(f"✅ Whisper transcription successful for {file_name} ({len(text)} characters)")
        return text
