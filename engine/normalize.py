"""
Normalization of language-model output into the strict result contract.

The model's reply is a single parse-or-fail boundary: it either parses as a
JSON object or the request fails with StructuringInvalidJSON. After parsing,
every task and the reminder go through the same closed date fallback chain:

    1. explicit ISO field present and valid ISO-8601 → kept unchanged
    2. free-text field parses under the accepted formats → UTC ISO, natural cleared
    3. otherwise → trimmed natural text kept, ISO null

Accepted free-text formats (locale-independent):
    ISO-8601   "2024-03-11T18:00", "2024-03-11 18:00:00-04:00", "2024-03-11"
    RFC 2822   "Mon, 11 Mar 2024 18:00:00 -0400"

Naive ISO values are read in the caller's timezone.
"""

import json
import logging
import re
from datetime import datetime, timezone as dt_timezone, tzinfo
from email.utils import parsedate_to_datetime
from typing import Any, Optional

from dateutil import parser as dateutil_parser

from .errors import StructuringInvalidJSON
from .models import (
    CaptureMode,
    PRIORITIES,
    ProductivityResult,
    ReflectionResult,
    ReminderDraft,
    StructuredResult,
    TaskDraft,
)
from .temporal import to_utc_iso

logger = logging.getLogger(__name__)


# ============================================================================
# PARSE GATE
# ============================================================================

def parse_model_json(raw: Optional[str]) -> dict[str, Any]:
    """Parse the model's reply as one JSON object. No recovery is attempted."""
    if raw is None:
        raise StructuringInvalidJSON("Empty AI response")
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as e:
        logger.error(f"AI output is not valid JSON: {e} | head={raw[:120]!r}")
        raise StructuringInvalidJSON(f"Failed to parse AI JSON: {e}") from e
    if not isinstance(data, dict):
        raise StructuringInvalidJSON(
            f"AI JSON must be an object, got {type(data).__name__}"
        )
    return data


# ============================================================================
# FIELD COERCION
# ============================================================================

def clean_text(value: Any) -> Optional[str]:
    """Trimmed string, or None for non-strings and blank strings."""
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def coerce_priority(value: Any) -> Optional[str]:
    text = clean_text(value)
    if text and text.lower() in PRIORITIES:
        return text.lower()
    return None


# isoparse also takes reduced forms ("2030", "2024-03"); a date needs all three parts
_FULL_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}")


def _parse_iso(text: str) -> Optional[datetime]:
    if not _FULL_DATE.match(text):
        return None
    try:
        return dateutil_parser.isoparse(text)
    except (ValueError, OverflowError):
        return None


def _is_iso8601(text: str) -> bool:
    return _parse_iso(text) is not None


def parse_free_text_date(text: str, zone: tzinfo) -> Optional[str]:
    """Parse `text` under the accepted format set and return UTC ISO, else None."""
    moment = _parse_iso(text)
    if moment is not None:
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=zone)
    else:
        try:
            moment = parsedate_to_datetime(text)
        except (TypeError, ValueError, IndexError):
            moment = None
        if moment is not None and moment.tzinfo is None:
            # RFC 2822 "-0000": UTC with unknown local offset
            moment = moment.replace(tzinfo=dt_timezone.utc)

    if moment is None:
        return None
    return to_utc_iso(moment)


def resolve_date_pair(
    iso_value: Any,
    natural_value: Any,
    zone: tzinfo,
    legacy_value: Any = None,
) -> tuple[Optional[str], Optional[str]]:
    """Apply the date fallback chain.

    Args:
        iso_value: The model's explicit ISO field (due_iso / time_iso).
        natural_value: The model's natural-language field (due_natural / time_natural).
        zone: Caller's timezone, used for naive ISO timestamps.
        legacy_value: Older free-text field (due / time), used when natural is absent.

    Returns:
        Tuple of (natural, iso).
    """
    natural = clean_text(natural_value) or clean_text(legacy_value)

    iso = clean_text(iso_value)
    if iso:
        if _is_iso8601(iso):
            return natural, iso
        logger.debug(f"Discarding malformed ISO value: {iso!r}")

    if natural:
        parsed = parse_free_text_date(natural, zone)
        if parsed:
            return None, parsed

    return natural, None


def _coerce_task(item: Any, zone: tzinfo) -> Optional[TaskDraft]:
    if isinstance(item, str):
        item = {"title": item}
    if not isinstance(item, dict):
        return None

    title = clean_text(item.get("title"))
    if not title:
        return None

    due_natural, due_iso = resolve_date_pair(
        item.get("due_iso"), item.get("due_natural"), zone, legacy_value=item.get("due"),
    )
    return TaskDraft(
        title=title,
        due_natural=due_natural,
        due_iso=due_iso,
        priority=coerce_priority(item.get("priority")),
    )


def _coerce_tasks(value: Any, zone: tzinfo) -> tuple[TaskDraft, ...]:
    if not isinstance(value, list):
        return ()
    tasks = (_coerce_task(item, zone) for item in value)
    return tuple(t for t in tasks if t is not None)


def _coerce_reminder(value: Any, zone: tzinfo) -> Optional[ReminderDraft]:
    if not isinstance(value, dict):
        return None
    time_natural, time_iso = resolve_date_pair(
        value.get("time_iso"), value.get("time_natural"), zone, legacy_value=value.get("time"),
    )
    return ReminderDraft(
        time_natural=time_natural,
        time_iso=time_iso,
        reason=clean_text(value.get("reason")),
    )


def _coerce_actions(value: Any) -> tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    actions = (clean_text(a) for a in value)
    return tuple(a for a in actions if a)


# ============================================================================
# SCHEMA VALIDATORS (one per arm of the mode union)
# ============================================================================

def _productivity_from_payload(data: dict, zone: tzinfo) -> ProductivityResult:
    return ProductivityResult(
        note=clean_text(data.get("note")),
        note_category=clean_text(data.get("note_category")),
        actions=_coerce_actions(data.get("actions")),
        tasks=_coerce_tasks(data.get("tasks"), zone),
        reminder=_coerce_reminder(data.get("reminder"), zone),
        summary=clean_text(data.get("summary")),
    )


def _reflection_from_payload(data: dict, zone: tzinfo) -> ReflectionResult:
    return ReflectionResult(
        reflection=clean_text(data.get("reflection")),
        emotional_state=clean_text(data.get("emotional_state")),
        grounding=clean_text(data.get("grounding")),
        note=clean_text(data.get("note")),
        tasks=_coerce_tasks(data.get("tasks"), zone),
        summary=clean_text(data.get("summary")),
    )


_SCHEMA_VALIDATORS = {
    ProductivityResult: _productivity_from_payload,
    ReflectionResult: _reflection_from_payload,
}

_unvalidated = {m.schema for m in CaptureMode} - set(_SCHEMA_VALIDATORS)
if _unvalidated:
    raise RuntimeError(f"No schema validator for: {sorted(s.__name__ for s in _unvalidated)}")


def normalize_structured(data: dict, mode: CaptureMode, zone: tzinfo) -> StructuredResult:
    """Repair a parsed model payload into the schema of `mode`.

    Keys outside the mode's schema are dropped.
    """
    schema = mode.schema
    dropped = sorted(set(data) - set(schema.FIELDS))
    if dropped:
        logger.debug(f"Dropping keys outside {mode.value} schema: {dropped}")
    return _SCHEMA_VALIDATORS[schema](data, zone)


def normalize_model_output(raw: Optional[str], mode: CaptureMode, zone: tzinfo) -> StructuredResult:
    """Parse gate followed by schema normalization."""
    return normalize_structured(parse_model_json(raw), mode, zone)
