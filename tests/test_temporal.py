from datetime import datetime, timezone

import pytest

from engine.errors import InvalidTimezone
from engine.temporal import build_temporal_context, resolve_zone, to_utc_iso


def test_local_day_differs_from_utc_day():
    # 02:30 UTC on the 11th is still the evening of the 10th in New York
    now = datetime(2024, 3, 11, 2, 30, tzinfo=timezone.utc)
    ctx = build_temporal_context("America/New_York", now=now)

    assert ctx.today_local_ymd == "2024-03-10"
    assert ctx.now_utc_iso == "2024-03-11T02:30:00.000Z"
    assert ctx.timezone == "America/New_York"
    assert ctx.now_local_display == "Sunday, March 10, 2024 22:30 (America/New_York)"


def test_east_of_utc_runs_ahead():
    now = datetime(2024, 3, 10, 23, 0, tzinfo=timezone.utc)
    ctx = build_temporal_context("Europe/Athens", now=now)
    assert ctx.today_local_ymd == "2024-03-11"


def test_unknown_zone_is_rejected():
    with pytest.raises(InvalidTimezone):
        build_temporal_context("Mars/Olympus_Mons")
    with pytest.raises(InvalidTimezone):
        resolve_zone("")


def test_naive_now_is_rejected():
    with pytest.raises(ValueError):
        build_temporal_context("UTC", now=datetime(2024, 3, 10, 12, 0))


def test_utc_iso_has_milliseconds_and_z():
    moment = datetime(2024, 3, 11, 18, 0, tzinfo=resolve_zone("America/New_York"))
    assert to_utc_iso(moment) == "2024-03-11T22:00:00.000Z"


def test_default_now_is_current_instant():
    ctx = build_temporal_context("UTC")
    assert ctx.now_utc_iso.endswith("Z")
    assert ctx.today_local_ymd == ctx.now_utc_iso[:10]
