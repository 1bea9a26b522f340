"""Domain-level scheduling rules applied by the optimizer."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Optional

from schedule_engine.domain.models import normalize_name


WEEKDAYS = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)
DAYS_PER_WEEK = len(WEEKDAYS)
_CLOCK_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


@dataclass(frozen=True)
class LocationRule:
    max_parallel_classes: Optional[int] = None
    required_formats: tuple[str, ...] = ()
    min_classes: int = 0
    priority_trainers: tuple[str, ...] = ()


@dataclass(frozen=True)
class TrainerLeave:
    trainer_name: str
    start_date: date
    end_date: date
    reason: Optional[str] = None

    def covers(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date


@dataclass(frozen=True)
class OptimizationConfig:
    target_trainer_hours: int = 15
    max_trainer_hours: int = 20
    min_days_off: int = 2
    avoid_multi_location_days: bool = False
    priority_trainers: tuple[str, ...] = ()
    blocked_trainers: tuple[str, ...] = ()
    excluded_formats: tuple[str, ...] = ()
    location_constraints: dict[str, LocationRule] = field(default_factory=dict)
    trainer_leaves: tuple[TrainerLeave, ...] = ()
    no_classes_before: Optional[str] = None
    no_classes_after: Optional[str] = None
    week_start: Optional[date] = None
    max_suggestions: int = 20

    def is_blocked(self, trainer_key: str) -> bool:
        return _matches_any(trainer_key, self.blocked_trainers)

    def is_prioritized(self, trainer_key: str) -> bool:
        return _matches_any(trainer_key, self.priority_trainers)

    def is_excluded_format(self, format_name: str) -> bool:
        lower = (format_name or "").lower()
        return any(
            excluded.strip() and excluded.strip().lower() in lower
            for excluded in self.excluded_formats
        )

    def location_rule(self, location: str) -> LocationRule:
        return self.location_constraints.get(location) or LocationRule()

    def within_time_window(self, time_key: str) -> bool:
        if self.no_classes_before and time_key < self.no_classes_before:
            return False
        if self.no_classes_after and time_key > self.no_classes_after:
            return False
        return True

    def date_of(self, day: str) -> Optional[date]:
        if self.week_start is None or day not in WEEKDAYS:
            return None
        return self.week_start + timedelta(days=WEEKDAYS.index(day))

    def is_on_leave(self, trainer_key: str, day: str) -> bool:
        """True when a configured leave covers the calendar date of ``day``."""
        calendar_day = self.date_of(day)
        if calendar_day is None:
            return False
        return any(
            normalize_name(leave.trainer_name) == trainer_key and leave.covers(calendar_day)
            for leave in self.trainer_leaves
        )


def _matches_any(trainer_key: str, names: tuple[str, ...]) -> bool:
    for name in names:
        candidate = normalize_name(name)
        if candidate and candidate in trainer_key:
            return True
    return False


def validate_optimization_config(config: OptimizationConfig) -> None:
    if config.target_trainer_hours < 0:
        raise ValueError("target_trainer_hours must be >= 0")
    if config.max_trainer_hours < 0:
        raise ValueError("max_trainer_hours must be >= 0")
    if config.max_trainer_hours < config.target_trainer_hours:
        raise ValueError("max_trainer_hours must be >= target_trainer_hours")
    if not 0 <= config.min_days_off <= DAYS_PER_WEEK:
        raise ValueError("min_days_off must be between 0 and 7")
    if config.max_suggestions <= 0:
        raise ValueError("max_suggestions must be > 0")
    for label, value in (
        ("no_classes_before", config.no_classes_before),
        ("no_classes_after", config.no_classes_after),
    ):
        if value is not None and _CLOCK_PATTERN.fullmatch(value) is None:
            raise ValueError(f"{label} must follow HH:MM format")
    if (
        config.no_classes_before
        and config.no_classes_after
        and config.no_classes_before > config.no_classes_after
    ):
        raise ValueError("no_classes_before must not be later than no_classes_after")
    if config.week_start is not None and config.week_start.weekday() != 0:
        raise ValueError("week_start must be a Monday")
    for leave in config.trainer_leaves:
        if leave.end_date < leave.start_date:
            raise ValueError(
                f"leave for '{leave.trainer_name}' ends before it starts"
            )
    for location, rule in config.location_constraints.items():
        if rule.max_parallel_classes is not None and rule.max_parallel_classes < 0:
            raise ValueError(f"max_parallel_classes for '{location}' must be >= 0")
        if rule.min_classes < 0:
            raise ValueError(f"min_classes for '{location}' must be >= 0")
