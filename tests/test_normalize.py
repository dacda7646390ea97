import json

import pytest

from engine.errors import StructuringInvalidJSON
from engine.models import CaptureMode, ProductivityResult, ReflectionResult
from engine.normalize import (
    _SCHEMA_VALIDATORS,
    coerce_priority,
    normalize_model_output,
    parse_free_text_date,
    resolve_date_pair,
)
from engine.temporal import resolve_zone

NY = resolve_zone("America/New_York")


def _normalize(payload, mode=CaptureMode.REVIEW):
    return normalize_model_output(json.dumps(payload), mode, NY)


class TestParseGate:
    @pytest.mark.parametrize("raw", [None, "", "not json", "```json\n{}\n```", "[1, 2]", '"text"'])
    def test_rejects_anything_but_a_json_object(self, raw):
        with pytest.raises(StructuringInvalidJSON) as exc:
            normalize_model_output(raw, CaptureMode.REVIEW, NY)
        assert exc.value.code == "StructuringInvalidJSON"
        assert exc.value.status_code == 500

    def test_empty_object_gives_empty_productivity_result(self):
        result = _normalize({})
        assert result == ProductivityResult()
        assert result.to_dict() == {
            "note": None,
            "note_category": None,
            "actions": [],
            "tasks": [],
            "reminder": None,
            "summary": None,
        }


class TestDateFallbackChain:
    def test_valid_iso_is_kept_unchanged(self):
        natural, iso = resolve_date_pair("2024-03-11T22:00:00Z", " tomorrow at 6pm ", NY)
        assert iso == "2024-03-11T22:00:00Z"
        assert natural == "tomorrow at 6pm"

    def test_malformed_iso_falls_through_to_natural(self):
        natural, iso = resolve_date_pair("tomorrow-ish", "2024-03-11T18:00", NY)
        assert (natural, iso) == (None, "2024-03-11T22:00:00.000Z")

    def test_unparseable_natural_is_kept_trimmed(self):
        assert resolve_date_pair(None, "  next week sometime ", NY) == ("next week sometime", None)

    def test_nothing_given(self):
        assert resolve_date_pair(None, None, NY) == (None, None)
        assert resolve_date_pair("", "   ", NY) == (None, None)

    def test_rfc2822_is_accepted(self):
        assert parse_free_text_date("Mon, 11 Mar 2024 18:00:00 -0400", NY) == "2024-03-11T22:00:00.000Z"

    def test_locale_prose_is_not_guessed(self):
        assert parse_free_text_date("tomorrow at 6pm", NY) is None
        assert parse_free_text_date("11/03/2024", NY) is None

    def test_legacy_key_used_when_natural_missing(self):
        result = _normalize({"tasks": [{"title": "Pay rent", "due": "2024-04-01"}]})
        assert result.tasks[0].due_iso == "2024-04-01T04:00:00.000Z"
        assert result.tasks[0].due_natural is None


class TestProductivity:
    def test_example_payload(self):
        result = _normalize({
            "note": " Report draft is done. ",
            "note_category": "Work",
            "actions": ["Call mom", "  ", 3],
            "tasks": [
                {"title": "Call mom", "due_natural": "tomorrow at 6pm", "due_iso": None, "priority": "High"},
                {"title": "   ", "due_natural": "today"},
                "Buy milk",
                42,
            ],
            "reminder": {"time_natural": "tonight", "time_iso": "bogus", "reason": "call"},
            "summary": "Call mom; report done.",
        })

        assert isinstance(result, ProductivityResult)
        assert result.note == "Report draft is done."
        assert result.actions == ("Call mom",)
        assert [t.title for t in result.tasks] == ["Call mom", "Buy milk"]
        assert result.tasks[0].due_natural == "tomorrow at 6pm"
        assert result.tasks[0].due_iso is None
        assert result.tasks[0].priority == "high"
        assert result.reminder.time_iso is None
        assert result.reminder.time_natural == "tonight"

    def test_unknown_keys_are_dropped(self):
        result = _normalize({"note": "x", "reflection": "nope", "score": 9})
        data = result.to_dict()
        assert set(data) == set(ProductivityResult.FIELDS)

    def test_non_object_reminder_becomes_null(self):
        assert _normalize({"reminder": "later"}).reminder is None

    def test_every_iso_is_valid_or_null(self):
        result = _normalize({
            "tasks": [
                {"title": "a", "due_iso": "2024-13-45"},
                {"title": "b", "due_iso": "2024-03-11T10:00:00+02:00"},
                {"title": "c", "due_natural": "2024-03-12 09:30"},
            ],
        })
        assert result.tasks[0].due_iso is None
        assert result.tasks[1].due_iso == "2024-03-11T10:00:00+02:00"
        assert result.tasks[2].due_iso == "2024-03-12T13:30:00.000Z"


class TestReflection:
    def test_psych_mode_uses_reflection_schema(self):
        result = _normalize(
            {
                "reflection": "It sounds like a heavy week.",
                "emotional_state": "tired",
                "grounding": "Take three slow breaths.",
                "note": "Long week",
                "tasks": [{"title": "Go for a walk", "priority": "urgent"}],
                "summary": "A tiring week.",
                "reminder": {"time_natural": "tonight"},
            },
            mode=CaptureMode.PSYCH,
        )
        assert isinstance(result, ReflectionResult)
        assert result.tasks[0].priority is None
        assert "reminder" not in result.to_dict()
        assert set(result.to_dict()) == set(ReflectionResult.FIELDS)


@pytest.mark.parametrize("value,expected", [
    ("low", "low"), ("MEDIUM", "medium"), (" high ", "high"), ("urgent", None), (None, None), (1, None),
])
def test_priority_is_closed_set(value, expected):
    assert coerce_priority(value) == expected


@pytest.mark.parametrize("spoken", ["1800", "2030", "2024-03"])
def test_reduced_precision_iso_is_not_a_date(spoken):
    assert parse_free_text_date(spoken, NY) is None
    assert resolve_date_pair(None, spoken, NY) == (spoken, None)


def test_reduced_precision_explicit_iso_is_discarded():
    assert resolve_date_pair("2030", "at 1800", NY) == ("at 1800", None)


def test_every_mode_has_a_schema_validator():
    assert {m.schema for m in CaptureMode} <= set(_SCHEMA_VALIDATORS)
