"""Traktr Jobs - Document normalization.

Every field read from a store is treated as unknown and decoded with a safe
default. Nothing in here raises on malformed input:

- strings default to ""
- isDone defaults to False
- costing fields accept only finite numbers, else 0
- createdAt accepts an ISO string, a datetime, a provider time object with a
  to-datetime accessor, a {seconds, nanoseconds} mapping, or an epoch in
  milliseconds; anything unparseable becomes "now"
- assignedToUids becomes a de-duplicated list, assignedToUid an optional str
- remote photo locators never carry inline image data
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Callable

from traktr.modules.jobs.schemas import JobRecord

_TIME_ACCESSORS = ("to_datetime", "ToDatetime", "toDate", "to_date")
_INLINE_IMAGE_PREFIX = "data:"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(dt: datetime) -> str:
    """Canonical form: UTC, millisecond precision, 'Z' suffix."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _from_epoch_ms(value: float) -> datetime:
    return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)


def _parse_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z") or text.endswith("z"):
            text = text[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            return None

    if isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        return _from_epoch_ms(value)

    if isinstance(value, dict):
        seconds = value.get("seconds", value.get("_seconds"))
        if isinstance(seconds, (int, float)) and not isinstance(seconds, bool):
            nanos = value.get("nanoseconds", value.get("_nanoseconds", 0))
            if not isinstance(nanos, (int, float)) or isinstance(nanos, bool):
                nanos = 0
            return datetime.fromtimestamp(seconds + nanos / 1e9, tz=timezone.utc)
        return None

    for accessor in _TIME_ACCESSORS:
        method = getattr(value, accessor, None)
        if callable(method):
            converted = method()
            return converted if isinstance(converted, datetime) else None

    return None


def normalize_created_at(value: Any, now: Callable[[], datetime] = utc_now) -> str:
    """Normalize any stored createdAt encoding to ISO-8601, falling back to now."""
    try:
        parsed = _parse_datetime(value)
        if parsed is not None:
            return to_iso(parsed)
    except Exception:
        # Provider accessors may raise anything; a bad date never fails a job.
        pass
    return to_iso(now())


def coerce_str(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)) and math.isfinite(value):
        return str(value)
    return ""


def coerce_optional_str(value: Any) -> str | None:
    text = coerce_str(value).strip()
    return text or None


def coerce_number(value: Any) -> float:
    """Only finite stored numbers survive; everything else is 0."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    if not math.isfinite(value):
        return 0
    return value


def coerce_bool(value: Any) -> bool:
    return value if isinstance(value, bool) else False


def normalize_uid_set(value: Any) -> list[str]:
    """De-duplicate while keeping first-seen order; drops blanks and non-strings."""
    if not isinstance(value, (list, tuple, set)):
        return []
    seen: dict[str, None] = {}
    for item in value:
        if isinstance(item, str) and item.strip():
            seen.setdefault(item.strip(), None)
    return list(seen)


def normalize_photo_locators(value: Any) -> list[str]:
    if not isinstance(value, (list, tuple)):
        return []
    return [
        item
        for item in value
        if isinstance(item, str) and item and not item.startswith(_INLINE_IMAGE_PREFIX)
    ]


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, (list, tuple)):
        return []
    return [item for item in value if isinstance(item, str) and item]


def _common_fields(data: dict[str, Any], now: Callable[[], datetime]) -> dict[str, Any]:
    return {
        "title": coerce_str(data.get("title")),
        "address": coerce_str(data.get("address")),
        "description": coerce_str(data.get("description")),
        "created_at": normalize_created_at(data.get("createdAt"), now=now),
        "is_done": coerce_bool(data.get("isDone")),
        "client_name": coerce_str(data.get("clientName")),
        "client_phone": coerce_str(data.get("clientPhone")),
        "client_notes": coerce_str(data.get("clientNotes")),
        "photo_uris": normalize_photo_locators(data.get("photoUris")),
        "labor_hours": coerce_number(data.get("laborHours")),
        "hourly_rate": coerce_number(data.get("hourlyRate")),
        "material_cost": coerce_number(data.get("materialCost")),
        "assigned_to_uid": coerce_optional_str(data.get("assignedToUid")),
        "assigned_to_uids": normalize_uid_set(data.get("assignedToUids")),
        "owner_uid": coerce_optional_str(data.get("ownerUid")),
        "created_by_uid": coerce_optional_str(data.get("createdByUid")),
    }


def normalize_job_document(
    doc_id: str,
    data: Any,
    now: Callable[[], datetime] = utc_now,
) -> JobRecord:
    """Normalize a remote job document. Inline image data is never read back."""
    if not isinstance(data, dict):
        data = {}
    return JobRecord(id=str(doc_id), **_common_fields(data, now))


def normalize_local_job(raw: Any, now: Callable[[], datetime] = utc_now) -> JobRecord | None:
    """Normalize one entry of the local job blob; entries without an id are dropped."""
    if not isinstance(raw, dict):
        return None
    job_id = coerce_optional_str(raw.get("id"))
    if job_id is None:
        return None

    fields = _common_fields(raw, now)
    # Local mode may keep data URIs and the base64 payloads next to them.
    fields["photo_uris"] = _string_list(raw.get("photoUris"))
    return JobRecord(id=job_id, photo_base64s=_string_list(raw.get("photoBase64s")), **fields)
