"""Domain models for schedule profiling and optimization suggestions."""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Optional


_NON_ALPHANUMERIC = re.compile(r"[^a-z0-9]")
DEFAULT_CLASS_CAPACITY = 20


def normalize_name(value: Optional[str]) -> str:
    """Lowercase and strip non-alphanumerics; the join key for trainers."""
    return _NON_ALPHANUMERIC.sub("", (value or "").strip().lower())


def truncate_time(value: Optional[str]) -> str:
    """Clock time truncated to ``HH:MM``."""
    text = (value or "").strip()
    return text[:5] if text else "00:00"


class SuggestionType(str, Enum):
    REPLACE_CLASS = "replace_class"
    REPLACE_TRAINER = "replace_trainer"
    ADD_CLASS = "add_class"
    REMOVE_CLASS = "remove_class"
    SWAP_TIME = "swap_time"
    DUPLICATE_CLASS = "duplicate_class"


class SuggestionPriority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    SuggestionPriority.HIGH: 0,
    SuggestionPriority.MEDIUM: 1,
    SuggestionPriority.LOW: 2,
}


@dataclass(frozen=True)
class HistoricalSession:
    """One delivered class session as supplied by the data loader."""

    trainer: str
    format_name: str
    location: str
    day: str
    time: str
    session_date: date
    capacity: int = 0
    checked_in: int = 0
    booked: int = 0
    late_cancelled: int = 0
    revenue: float = 0.0

    @property
    def time_key(self) -> str:
        return truncate_time(self.time)

    @property
    def fill_rate(self) -> float:
        capacity = self.capacity or 0
        if not capacity:
            return 0.0
        return float(self.checked_in or 0) * 100.0 / float(capacity)


@dataclass(frozen=True)
class ScheduledClass:
    """A class in the live weekly schedule owned by the caller."""

    class_id: str
    day: str
    time: str
    format_name: str
    trainer: str
    location: str
    capacity: int = 0
    fill_rate: float = 0.0
    avg_check_ins: float = 0.0
    session_count: int = 0

    @property
    def time_key(self) -> str:
        return truncate_time(self.time)

    @property
    def trainer_key(self) -> str:
        return normalize_name(self.trainer)

    @property
    def effective_capacity(self) -> int:
        return self.capacity or DEFAULT_CLASS_CAPACITY


@dataclass(frozen=True)
class ClassSnapshot:
    """State of a scheduled class before a suggestion; blank for additions."""

    class_id: Optional[str] = None
    format_name: str = ""
    trainer: str = ""
    day: str = ""
    time: str = ""
    location: str = ""
    current_fill_rate: float = 0.0
    current_check_ins: float = 0.0

    @classmethod
    def of(cls, scheduled: ScheduledClass) -> "ClassSnapshot":
        return cls(
            class_id=scheduled.class_id,
            format_name=scheduled.format_name,
            trainer=scheduled.trainer,
            day=scheduled.day,
            time=scheduled.time,
            location=scheduled.location,
            current_fill_rate=scheduled.fill_rate,
            current_check_ins=scheduled.avg_check_ins,
        )


@dataclass(frozen=True)
class SuggestedClass:
    format_name: str
    trainer: str
    day: str
    time: str
    location: str
    projected_fill_rate: float = 0.0
    projected_check_ins: float = 0.0


@dataclass(frozen=True)
class Suggestion:
    """A proposed, unapplied schedule change with its supporting evidence."""

    suggestion_id: str
    suggestion_type: SuggestionType
    priority: SuggestionPriority
    confidence: float
    original: ClassSnapshot
    suggested: SuggestedClass
    reason: str
    impact: str
    data_points: tuple[str, ...] = ()

    @property
    def sort_key(self) -> tuple[int, float]:
        return (self.priority.rank, -self.confidence)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.suggestion_id,
            "type": self.suggestion_type.value,
            "priority": self.priority.value,
            "confidence": self.confidence,
            "original": asdict(self.original),
            "suggested": asdict(self.suggested),
            "reason": self.reason,
            "impact": self.impact,
            "data_points": list(self.data_points),
        }


@dataclass(frozen=True)
class TrainerHoursSummary:
    current: int
    optimized: int
    target: int


@dataclass(frozen=True)
class FormatMixImpact:
    before: dict[str, int] = field(default_factory=dict)
    after: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class ProjectedImpact:
    total_check_ins_increase: int = 0
    avg_fill_rate_increase: int = 0
    trainer_utilization_increase: int = 0


@dataclass(frozen=True)
class OptimizationResult:
    suggestions: list[Suggestion]
    trainer_hours_summary: dict[str, TrainerHoursSummary]
    format_mix_impact: FormatMixImpact
    projected_impact: ProjectedImpact
    insights: list[str]

    def to_dict(self) -> dict[str, Any]:
        return {
            "suggestions": [suggestion.to_dict() for suggestion in self.suggestions],
            "trainer_hours_summary": {
                name: asdict(summary)
                for name, summary in self.trainer_hours_summary.items()
            },
            "format_mix_impact": {
                "before": dict(self.format_mix_impact.before),
                "after": dict(self.format_mix_impact.after),
            },
            "projected_impact": asdict(self.projected_impact),
            "insights": list(self.insights),
        }
