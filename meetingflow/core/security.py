"""
Slack request signature verification.
"""

import hashlib
import hmac
import logging
import time
from typing import Optional

from meetingflow.core.errors import SignatureVerificationError

logger = logging.getLogger(__name__)

SIGNATURE_VERSION = "v0"


def compute_slack_signature(signing_secret: str, timestamp: str, body: bytes) -> str:
    """Signature Slack would send for `body` at `timestamp`."""
    basestring = f"{SIGNATURE_VERSION}:{timestamp}:".encode("utf-8") + body
    digest = hmac.new(signing_secret.encode("utf-8"), basestring, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_VERSION}={digest}"


def verify_slack_signature(
    signing_secret: str,
    timestamp: Optional[str],
    signature: Optional[str],
    body: bytes,
    max_age_seconds: int = 300,
    now: Optional[float] = None,
) -> None:
    """
    Authenticate a Slack request over its raw body.

    Raises:
        SignatureVerificationError: secret not configured, headers missing,
            timestamp outside the replay window, or signature mismatch.
    """
    if not signing_secret:
        logger.error("Slack signing secret is not configured, rejecting request")
        raise SignatureVerificationError("Slack signing secret not configured")

    if not signature or not timestamp:
        raise SignatureVerificationError("Missing Slack signature or timestamp headers")

    try:
        request_time = int(timestamp)
    except ValueError:
        raise SignatureVerificationError("Malformed Slack request timestamp", timestamp=timestamp)

    current_time = time.time() if now is None else now
    if abs(current_time - request_time) > max_age_seconds:
        logger.warning(f"⚠️ Stale Slack request (timestamp {timestamp}), possible replay")
        raise SignatureVerificationError("Slack request timestamp is too old", timestamp=timestamp)

    expected = compute_slack_signature(signing_secret, timestamp, body)
    if not hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8")):
        raise SignatureVerificationError("Slack signature mismatch")
