from __future__ import annotations

import base64
import binascii
import re
import threading
import time
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from management.errors import NotFoundError, PermissionDeniedError, ValidationError

EMAIL_LIKE_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w/+.-]+);base64,(?P<data>.+)$", re.DOTALL)
_NUM_CHUNK_RE = re.compile(r"(\d+)")
_EXTENSION_RE = re.compile(r"^[a-z0-9]{1,8}$")

_clock_lock = threading.Lock()
_last_now: Optional[datetime] = None


def now_iso() -> str:
    """Current UTC time as ISO-8601; never repeats within a process."""
    global _last_now
    with _clock_lock:
        now = datetime.now(timezone.utc)
        if _last_now is not None and now <= _last_now:
            now = _last_now + timedelta(microseconds=1)
        _last_now = now
        return now.isoformat()


def timestamp_ms() -> int:
    return int(time.time() * 1000)


def today() -> date:
    return datetime.now(timezone.utc).date()


def parse_date(value: Any, field: str) -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a date (YYYY-MM-DD)")


def parse_amount(value: Any, field: str) -> float:
    """Coerce a money value from a form or JSON body."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    try:
        amount = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number")
    if amount != amount or amount in (float("inf"), float("-inf")):
        raise ValidationError(f"{field} must be a number")
    return amount


def natural_key(value: Any) -> List[Any]:
    """Sort key that orders "2" before "10"."""
    parts = _NUM_CHUNK_RE.split(str(value or ""))
    return [(0, int(p), "") if p.isdigit() else (1, 0, p.lower()) for p in parts if p]


def decode_data_url(data_url: str) -> Tuple[str, bytes]:
    """Split a ``data:<mime>;base64,<payload>`` string into (mime, bytes)."""
    match = DATA_URL_RE.match((data_url or "").strip())
    if not match:
        raise ValidationError("Expected a base64 data URL")
    try:
        payload = base64.b64decode(match.group("data"), validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("Data URL payload is not valid base64")
    return match.group("mime"), payload


def extension_for(filename: Optional[str], content_type: Optional[str]) -> str:
    """File extension safe to embed in a storage key."""
    candidates = []
    if filename and "." in filename:
        candidates.append(filename.rsplit(".", 1)[1])
    if content_type and "/" in content_type:
        candidates.append(content_type.split("/", 1)[1].split("+")[0])
    for candidate in candidates:
        ext = candidate.strip().lower()
        if _EXTENSION_RE.match(ext):
            return ext
    return "bin"


def require_text(payload: Dict[str, Any], *fields: str) -> Dict[str, str]:
    """Strip the named string fields; raise when any is missing or blank."""
    cleaned: Dict[str, str] = {}
    missing = []
    for name in fields:
        value = payload.get(name)
        text = value.strip() if isinstance(value, str) else ""
        if not text:
            missing.append(name)
        cleaned[name] = text
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")
    return cleaned


def get_or_404(store, table: str, row_id: str, label: str) -> Dict[str, Any]:
    row = store.select_one(table, {"id": row_id})
    if not row:
        raise NotFoundError(f"{label} not found")
    return row


def owned_property(store, landlord: Dict[str, Any], property_id: str) -> Dict[str, Any]:
    prop = get_or_404(store, "properties", property_id, "Property")
    if prop.get("landlord_id") != landlord["id"]:
        raise PermissionDeniedError("You do not manage this property")
    return prop


def index_by_id(rows: List[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    return {row["id"]: row for row in rows}


class FileBlob:
    """An uploaded file detached from the web framework."""

    def __init__(self, filename: Optional[str], content_type: Optional[str], data: bytes) -> None:
        self.filename = filename or "upload"
        self.content_type = content_type or "application/octet-stream"
        self.data = data

    @property
    def extension(self) -> str:
        return extension_for(self.filename, self.content_type)

    def __repr__(self) -> str:
        return f"FileBlob({self.filename!r}, {self.content_type!r}, {len(self.data)} bytes)"


def upload_blob(store, bucket: str, path: str, blob: FileBlob) -> str:
    """Store the blob and return its public URL."""
    store.upload(bucket, path, blob.data, blob.content_type)
    return store.public_url(bucket, path)
