"""
Data models for the capture pipeline.
No external dependencies — pure Python dataclasses.

The capture mode is a closed tagged union: each arm names the result
schema it produces, and each schema owns its own field whitelist.
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Optional, Literal, Any

Priority = Literal["low", "medium", "high"]
PRIORITIES: frozenset = frozenset({"low", "medium", "high"})


@dataclass(frozen=True)
class TemporalContext:
    """The caller's "now", anchored in their IANA timezone."""
    timezone: str
    now_utc_iso: str
    now_local_display: str
    today_local_ymd: str


@dataclass(frozen=True)
class TaskDraft:
    """A task suggested from the utterance."""
    title: str
    due_natural: Optional[str] = None
    due_iso: Optional[str] = None      # Always UTC ISO-8601 when set
    priority: Optional[Priority] = None


@dataclass(frozen=True)
class ReminderDraft:
    """A reminder suggestion; same date resolution rule as TaskDraft."""
    time_natural: Optional[str] = None
    time_iso: Optional[str] = None
    reason: Optional[str] = None


@dataclass(frozen=True)
class ProductivityResult:
    """Output schema for the review and autosave modes."""
    note: Optional[str] = None
    note_category: Optional[str] = None
    actions: tuple[str, ...] = ()
    tasks: tuple[TaskDraft, ...] = ()
    reminder: Optional[ReminderDraft] = None
    summary: Optional[str] = None

    FIELDS = ("note", "note_category", "actions", "tasks", "reminder", "summary")

    def to_dict(self) -> dict[str, Any]:
        return {
            "note": self.note,
            "note_category": self.note_category,
            "actions": list(self.actions),
            "tasks": [asdict(t) for t in self.tasks],
            "reminder": asdict(self.reminder) if self.reminder else None,
            "summary": self.summary,
        }


@dataclass(frozen=True)
class ReflectionResult:
    """Output schema for the psych (reflection companion) mode."""
    reflection: Optional[str] = None
    emotional_state: Optional[str] = None
    grounding: Optional[str] = None
    note: Optional[str] = None
    tasks: tuple[TaskDraft, ...] = ()
    summary: Optional[str] = None

    FIELDS = ("reflection", "emotional_state", "grounding", "note", "tasks", "summary")

    def to_dict(self) -> dict[str, Any]:
        return {
            "reflection": self.reflection,
            "emotional_state": self.emotional_state,
            "grounding": self.grounding,
            "note": self.note,
            "tasks": [asdict(t) for t in self.tasks],
            "summary": self.summary,
        }


StructuredResult = ProductivityResult | ReflectionResult


class CaptureMode(str, Enum):
    """Session intent: selects both the prompt template and the output schema."""
    REVIEW = "review"
    AUTOSAVE = "autosave"
    PSYCH = "psych"

    @property
    def schema(self) -> type:
        """Result class produced by this mode."""
        return _MODE_SCHEMAS[self]

    @property
    def persists_note(self) -> bool:
        return self is CaptureMode.AUTOSAVE

    @classmethod
    def parse(cls, value: Optional[str]) -> "CaptureMode":
        """Parse a raw form value; unknown or missing values fall back to review."""
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.REVIEW


_MODE_SCHEMAS = {
    CaptureMode.REVIEW: ProductivityResult,
    CaptureMode.AUTOSAVE: ProductivityResult,
    CaptureMode.PSYCH: ReflectionResult,
}


@dataclass
class CaptureResult:
    """Complete result of one capture request."""
    raw_text: str
    structured: StructuredResult
    mode: CaptureMode
    temporal: TemporalContext
    note_id: Optional[str] = None
    timings: dict[str, float] = field(default_factory=dict)

    def to_response(self) -> dict[str, Any]:
        """Success body of the capture endpoint."""
        return {
            "ok": True,
            "rawText": self.raw_text,
            "structured": self.structured.to_dict(),
            "noteId": self.note_id,
            "mode": self.mode.value,
            "timezone": self.temporal.timezone,
            "nowUtcIso": self.temporal.now_utc_iso,
            "todayLocalYmd": self.temporal.today_local_ymd,
        }
