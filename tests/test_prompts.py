from datetime import datetime, timezone

import pytest

from engine.models import CaptureMode
from engine.prompts import get_structuring_prompt, get_transcription_prompt
from engine.temporal import build_temporal_context


@pytest.fixture
def ctx():
    return build_temporal_context("America/New_York", now=datetime(2024, 3, 11, 2, 30, tzinfo=timezone.utc))


@pytest.mark.parametrize("mode", list(CaptureMode))
def test_temporal_context_is_embedded(mode, ctx):
    prompt = get_structuring_prompt(mode, ctx)
    assert "2024-03-11T02:30:00.000Z" in prompt
    assert "Speaker's local date (today): 2024-03-10" in prompt
    assert "America/New_York" in prompt
    assert "{" + "temporal_block}" not in prompt
    assert "{" + "today_local_ymd}" not in prompt


def test_productivity_and_reflection_templates_differ(ctx):
    review = get_structuring_prompt(CaptureMode.REVIEW, ctx)
    autosave = get_structuring_prompt(CaptureMode.AUTOSAVE, ctx)
    psych = get_structuring_prompt(CaptureMode.PSYCH, ctx)

    assert review == autosave
    assert '"reminder"' in review
    assert '"reflection"' in psych
    assert '"reminder"' not in psych


def test_reflection_template_is_non_diagnostic_with_safety_hint(ctx):
    psych = get_structuring_prompt(CaptureMode.PSYCH, ctx)
    assert "Never diagnose" in psych
    assert "local emergency services" in psych


def test_language_contract_keeps_keys_in_english(ctx):
    prompt = get_structuring_prompt(CaptureMode.REVIEW, ctx)
    assert "JSON KEYS are fixed" in prompt


def test_transcription_prompt_forbids_translation():
    assert "DO NOT translate" in get_transcription_prompt()
