"""
Gemini model service for meeting summarization.
"""

import json
import logging
import re
from typing import Any, Optional

import google.generativeai as genai
from google.generativeai.types import HarmBlockThreshold, HarmCategory
from pydantic import ValidationError

from meetingflow.core.errors import SummarizationError, SummaryParseError
from meetingflow.core.models import StructuredSummary
from meetingflow.prompts.summary import meeting_summary_prompt

logger = logging.getLogger(__name__)

_FENCE = re.compile(r"^\s*```[a-zA-Z]*\s*\n?|\n?\s*```\s*$")

SAFETY_SETTINGS = {
    HarmCategory.HARM_CATEGORY_HARASSMENT: HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE,
    HarmCategory.HARM_CATEGORY_HATE_SPEECH: HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE,
    HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT: HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE,
    HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT: HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE,
}


def strip_code_fences(text: str) -> str:
    """Remove a surrounding ```json ... ``` fence if the model emitted one."""
    return _FENCE.sub("", text).strip()


def parse_summary_response(text: str) -> StructuredSummary:
    """
    Parse the model's answer into a StructuredSummary.

    Anything other than a JSON object carrying every summary field is a
    failure; nothing is filled in or guessed.

    Raises:
        SummaryParseError: the answer is not the structured summary object
    """
    cleaned = strip_code_fences(text or "")
    if not cleaned:
        raise SummaryParseError("Empty response from summarization model")

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse Gemini response as JSON: {e}")
        raise SummaryParseError(f"Summarization response is not valid JSON: {e}", snippet=cleaned[:200]) from e

    if not isinstance(data, dict):
        raise SummaryParseError(
            f"Summarization response is a JSON {type(data).__name__}, expected an object"
        )

    try:
        return StructuredSummary.model_validate(data)
    except ValidationError as e:
        missing = [".".join(str(part) for part in err["loc"]) for err in e.errors()]
        raise SummaryParseError(
            f"Summarization response is missing or has invalid fields: {', '.join(missing)}"
        ) from e


class GeminiModel:
    """Wrapper for Google Gemini AI model."""

    def __init__(self, model_name: str = "gemini-1.5-flash", api_key: Optional[str] = None):
        """
        Initialize Gemini model.

        Args:
            model_name: Model name to use
            api_key: Gemini API key
        """
        if not api_key:
            raise ValueError("Gemini API key not found in configuration")

        self.model_name = model_name
        genai.configure(api_key=api_key)
        self.model = genai.GenerativeModel(self.model_name)

        logger.info(f"✅ Gemini model initialized: {self.model_name}")

    async def get_response(self, prompt: str, temperature: float = 0.1) -> Any:
        """
        Get a JSON-mode response from the Gemini model.

        Args:
            prompt: Text prompt to send to the model
            temperature: Creativity level (0.0 to 1.0)

        Returns:
            Model response object
        """
        try:
            return await self.model.generate_content_async(
                prompt,
                generation_config=genai.types.GenerationConfig(
                    temperature=temperature,
                    max_output_tokens=8192,
                    response_mime_type="application/json",
                ),
                safety_settings=SAFETY_SETTINGS,
            )
        except Exception as e:
            logger.error(f"Error getting Gemini response: {e}")
            raise SummarizationError(f"Gemini API request failed: {e}") from e

    async def summarize(self, transcript: str) -> StructuredSummary:
        """
        Generate the structured summary of a transcript.

        Args:
            transcript: Full meeting transcript

        Returns:
            Parsed structured summary
        """
        logger.info(f"Generating structured summary with {self.model_name} ({len(transcript)} characters)")
        response = await self.get_response(meeting_summary_prompt(transcript))

        try:
            text = response.text
        except ValueError as e:
            # Raised when the candidate was blocked or carries no text parts
            raise SummarizationError(f"Gemini returned no text: {e}") from e

        logger.debug(f"Raw Gemini response: {text}")
        summary = parse_summary_response(text)
        logger.info(f"✅ Gemini structured summary successful: {summary.meeting_title}")
        return summary
