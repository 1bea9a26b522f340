"""Aggregated performance profiles built from historical sessions."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Trend(str, Enum):
    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"


class FormatDifficulty(str, Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class FormatCategory(str, Enum):
    YOGA = "yoga"
    PILATES = "pilates"
    HIIT = "hiit"
    CYCLE = "cycle"
    STRENGTH = "strength"
    BARRE = "barre"
    BOXING = "boxing"
    DANCE = "dance"
    CARDIO = "cardio"
    FUNCTIONAL = "functional"
    OTHER = "other"


@dataclass(frozen=True)
class SlotPerformance:
    sessions: int
    avg_fill_rate: float
    avg_check_ins: float


@dataclass(frozen=True)
class TrainerFormatPerformance:
    sessions: int
    avg_fill_rate: float
    avg_check_ins: float
    revenue: float
    best_time: str
    best_day: str


@dataclass(frozen=True)
class TrainerLocationPerformance:
    sessions: int
    avg_fill_rate: float
    top_formats: tuple[str, ...] = ()


@dataclass(frozen=True)
class LocationPerformance:
    sessions: int
    avg_fill_rate: float


@dataclass(frozen=True)
class BestCombination:
    format_name: str
    day: str
    time: str
    location: str
    avg_fill_rate: float
    avg_check_ins: float
    sessions: int


@dataclass(frozen=True)
class RankedTrainer:
    name: str
    normalized_name: str
    avg_fill_rate: float
    sessions: int


@dataclass(frozen=True)
class RankedFormat:
    name: str
    avg_fill_rate: float
    sessions: int


@dataclass(frozen=True)
class RankedSlot:
    day: str
    time: str
    avg_fill_rate: float
    sessions: int


@dataclass(frozen=True)
class TrainerProfile:
    name: str
    normalized_name: str
    total_sessions: int
    avg_fill_rate: float
    avg_check_ins: float
    consistency: float
    trend: Trend
    format_performance: dict[str, TrainerFormatPerformance] = field(default_factory=dict)
    time_slot_performance: dict[tuple[str, str], SlotPerformance] = field(default_factory=dict)
    location_performance: dict[str, TrainerLocationPerformance] = field(default_factory=dict)
    best_combinations: tuple[BestCombination, ...] = ()
    typical_work_days: tuple[str, ...] = ()
    typical_time_slots: tuple[str, ...] = ()


@dataclass(frozen=True)
class FormatProfile:
    name: str
    normalized_name: str
    total_sessions: int
    avg_fill_rate: float
    avg_check_ins: float
    avg_revenue: float
    trend: Trend
    difficulty: FormatDifficulty
    category: FormatCategory
    top_trainers: tuple[RankedTrainer, ...] = ()
    best_time_slots: tuple[RankedSlot, ...] = ()
    location_performance: dict[str, LocationPerformance] = field(default_factory=dict)


@dataclass(frozen=True)
class TimeSlotProfile:
    day: str
    time: str
    total_sessions: int
    avg_fill_rate: float
    avg_check_ins: float
    is_peak_time: bool
    top_formats: tuple[RankedFormat, ...] = ()
    worst_formats: tuple[RankedFormat, ...] = ()


@dataclass(frozen=True)
class LocationProfile:
    name: str
    total_sessions: int
    avg_fill_rate: float
    avg_capacity: float
    format_mix: dict[str, int] = field(default_factory=dict)
    trainer_hours: dict[str, int] = field(default_factory=dict)
    peak_hours: tuple[str, ...] = ()
    off_peak_hours: tuple[str, ...] = ()


@dataclass(frozen=True)
class ProfileSet:
    """The four profile families for one date window."""

    trainers: dict[str, TrainerProfile] = field(default_factory=dict)
    formats: dict[str, FormatProfile] = field(default_factory=dict)
    time_slots: dict[tuple[str, str], TimeSlotProfile] = field(default_factory=dict)
    locations: dict[str, LocationProfile] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not (self.trainers or self.formats or self.time_slots or self.locations)
