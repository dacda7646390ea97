"""
Timezone-anchored "now" for grounding relative dates.

"today", "tomorrow" and "tonight" must resolve against the speaker's
calendar day, never the processing host's.
"""

from datetime import datetime, timezone as dt_timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .errors import InvalidTimezone
from .models import TemporalContext


def to_utc_iso(moment: datetime) -> str:
    """Render an aware datetime as UTC ISO-8601 with millisecond precision and Z suffix."""
    utc = moment.astimezone(dt_timezone.utc)
    return utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def resolve_zone(name: str) -> ZoneInfo:
    """Look up an IANA zone, raising InvalidTimezone for unknown names."""
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, OSError) as e:
        raise InvalidTimezone(f"Unknown IANA timezone: {name!r}") from e


def build_temporal_context(tz_name: str, now: Optional[datetime] = None) -> TemporalContext:
    """Compute the TemporalContext for a caller in `tz_name`.

    Args:
        tz_name: IANA timezone of the caller, e.g. "America/New_York".
        now: Override for the current instant (must be timezone-aware).
             Defaults to the current UTC time.

    Returns:
        TemporalContext whose today_local_ymd is the caller's local day.
    """
    zone = resolve_zone(tz_name)
    instant = now or datetime.now(dt_timezone.utc)
    if instant.tzinfo is None:
        raise ValueError("now must be timezone-aware")

    local = instant.astimezone(zone)
    display = f"{local:%A}, {local:%B} {local.day}, {local:%Y} {local:%H:%M} ({tz_name})"

    return TemporalContext(
        timezone=tz_name,
        now_utc_iso=to_utc_iso(instant),
        now_local_display=display,
        today_local_ymd=local.strftime("%Y-%m-%d"),
    )
