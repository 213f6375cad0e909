from __future__ import annotations

import hashlib
import re
from typing import Any, Dict

EMAIL_RE = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")
# Phone-like numbers: optional country code, separators, at least 9 digits overall.
# Never starts inside a longer token, and never on an ISO date such as 2026-11-01.
PHONE_RE = re.compile(r"(?<![\w-])(?!\d{4}-\d{2}-\d{2})\+?\d[\d\s().-]{8,}\d")
GOV_ID_RE = re.compile(r"\b\d{3}-\d{2}-\d{4}\b")
DATA_URL_RE = re.compile(r"data:[\w/+.-]+;base64,[A-Za-z0-9+/=]+")

# Values under these keys are replaced outright.
SECRET_FIELDS = {
    "password",
    "new_password",
    "confirm_password",
    "token",
    "access_token",
    "authorization",
    "api_key",
}

# Values under these keys are summarized instead of logged.
SENSITIVE_FIELDS = {
    "content",
    "messages",
    "question",
    "prompt",
    "response",
    "knowledge",
    "description",
    "signature",
    "signature_data_url",
    "image",
    "receipt",
    "government_id",
    "account_number",
}

MAX_VALUE_LENGTH = 300


def _hash_token(text: str) -> str:
    digest = hashlib.sha256(text.encode("utf-8")).hexdigest()[:12]
    return f"[HASH:{digest}]"


def scrub_text(text: str) -> str:
    """Hash emails, phone numbers, government IDs and inline data URLs in free text."""
    if not text:
        return text

    def _replace(match: re.Match, label: str) -> str:
        return f"[{label}_{_hash_token(match.group(0))}]"

    scrubbed = DATA_URL_RE.sub("[DATA_URL]", text)
    scrubbed = EMAIL_RE.sub(lambda m: _replace(m, "EMAIL"), scrubbed)
    scrubbed = GOV_ID_RE.sub(lambda m: _replace(m, "ID"), scrubbed)
    scrubbed = PHONE_RE.sub(lambda m: _replace(m, "PHONE"), scrubbed)
    return scrubbed


def _summarize(value: Any) -> Dict[str, Any]:
    length = len(value) if hasattr(value, "__len__") else None
    return {"redacted": True, "length": length}


def scrub_value(value: Any) -> Any:
    if isinstance(value, str):
        cleaned = scrub_text(value)
        if len(cleaned) > MAX_VALUE_LENGTH:
            return _hash_token(cleaned)
        return cleaned
    if isinstance(value, dict):
        return sanitize_log_payload(value)
    if isinstance(value, (list, tuple)):
        return [scrub_value(item) for item in value]
    return value


def sanitize_log_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Drop secrets and summarize free-text fields before a payload is logged."""
    if not isinstance(payload, dict):
        return {}

    cleaned: Dict[str, Any] = {}
    for key, value in payload.items():
        lowered = str(key).lower()
        if value is None:
            cleaned[key] = None
        elif lowered in SECRET_FIELDS:
            cleaned[key] = "[REDACTED]"
        elif lowered in SENSITIVE_FIELDS:
            cleaned[key] = _summarize(value)
        else:
            cleaned[key] = scrub_value(value)
    return cleaned
