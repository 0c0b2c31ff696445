"""
Lightweight text helpers used at ingress and by the orchestrator:
free-text message parsing, date normalization and file extension derivation.
"""

import logging
import re
from dataclasses import dataclass
from datetime import date
from typing import Optional, Sequence

logger = logging.getLogger(__name__)

_DATE_BODY = r"(?<!\d)(\d{4})\s*[/\-.年]\s*(\d{1,2})\s*[/\-.月]\s*(\d{1,2})(?!\d)\s*日?"
_LABELLED_DATE = re.compile(r"(?:日付|date)[:：\s]*" + _DATE_BODY, re.IGNORECASE)
_BARE_DATE = re.compile(_DATE_BODY)

CONSULTANT_KEYWORDS = (
    "コンサルタント名",
    "コンサルタント",
    "担当者",
    "担当",
    "consultant name",
    "consultant",
)
CLIENT_KEYWORDS = (
    "クライアント名",
    "クライアント",
    "顧客名",
    "会社名",
    "顧客",
    "client name",
    "client",
    "customer",
)

# MIME subtypes whose name is not the usual file extension
_SUBTYPE_EXTENSIONS = {
    "quicktime": "mov",
    "x-matroska": "mkv",
    "x-msvideo": "avi",
    "x-m4a": "m4a",
    "x-wav": "wav",
}


@dataclass
class ParsedMessage:
    """Fields extracted from the comment that accompanied a shared file."""
    full_text: str = ""
    meeting_date: Optional[str] = None
    consultant_name: Optional[str] = None
    client_name: Optional[str] = None


def _to_iso(year: str, month: str, day: str) -> Optional[str]:
    try:
        return date(int(year), int(month), int(day)).isoformat()
    except ValueError:
        logger.warning(f"Dropping invalid calendar date {year}-{month}-{day}")
        return None


def normalize_date(value: Optional[str]) -> Optional[str]:
    """
    Normalize a date string to YYYY-MM-DD.

    Accepts `YYYY/MM/DD`, `YYYY-MM-DD`, `YYYY.MM.DD` and `YYYY年MM月DD日`
    (single-digit month and day allowed). Anything else, including dates that
    do not exist on the calendar, yields None.
    """
    if not value:
        return None
    match = _BARE_DATE.search(str(value))
    if not match:
        logger.warning(f"Could not parse date string: {value!r}")
        return None
    return _to_iso(*match.groups())


def _find_date(text: str) -> Optional[str]:
    for pattern in (_LABELLED_DATE, _BARE_DATE):
        for match in pattern.finditer(text):
            iso = _to_iso(*match.groups())
            if iso:
                return iso
    return None


def _find_labelled_value(text: str, keywords: Sequence[str]) -> Optional[str]:
    for keyword in keywords:
        match = re.search(re.escape(keyword) + r"[:：\s]*([^\s]+)", text, re.IGNORECASE)
        if match and match.group(1).strip():
            return match.group(1).strip()
    return None


def parse_message_text(text: Optional[str]) -> ParsedMessage:
    """
    Best-effort extraction of meeting date, consultant and client from a message.

    Never raises: anything that cannot be found is left as None.
    """
    result = ParsedMessage(full_text=text or "")
    if not text:
        return result

    try:
        result.meeting_date = _find_date(text)
        result.consultant_name = _find_labelled_value(text, CONSULTANT_KEYWORDS)
        result.client_name = _find_labelled_value(text, CLIENT_KEYWORDS)
    except Exception as e:
        logger.warning(f"Message text parsing failed, continuing without fields: {e}")
    return result


def derive_extension(mimetype: Optional[str], filetype: Optional[str] = None) -> str:
    """
    File extension for a shared file.

    The MIME type wins for audio and video (`video/quicktime` -> `mov`,
    `audio/mpeg` -> `mp3`), then the platform's own type tag, then `dat`.
    """
    extension = (filetype or "").strip().lower()
    major, _, subtype = (mimetype or "").strip().lower().partition("/")

    if major in ("video", "audio") and subtype:
        if major == "audio" and subtype == "mpeg":
            extension = "mp3"
        else:
            extension = _SUBTYPE_EXTENSIONS.get(subtype, subtype)

    extension = _SUBTYPE_EXTENSIONS.get(extension, extension)
    extension = re.sub(r"[^a-z0-9]", "", extension)
    return extension or "dat"


def truncate(text: str, limit: int, marker: str = "...") -> str:
    """Cut `text` to `limit` characters, appending `marker` when something was cut."""
    if len(text) <= limit:
        return text
    return text[:limit] + marker
