"""Schedule optimization orchestration: profile the window, then generate suggestions."""

from __future__ import annotations

from dataclasses import replace
from datetime import date
from typing import Optional, Sequence

from schedule_engine.domain.constraints import OptimizationConfig, validate_optimization_config
from schedule_engine.domain.models import HistoricalSession, OptimizationResult, ScheduledClass
from schedule_engine.domain.profiles import ProfileSet
from schedule_engine.services.profiling_service import build_profiles
from schedule_engine.services.suggestion_service import (
    current_trainer_hours,
    generate_optimizations,
)
from schedule_engine.utils.config import Settings, get_settings
from schedule_engine.utils.logger import get_logger


logger = get_logger(__name__)


class ScheduleValidationError(Exception):
    """Raised when the optimization window or constraint set is invalid."""


class ScheduleOptimizationService:
    """Business logic orchestration for profile building and suggestion ranking."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()

    def default_config(self) -> OptimizationConfig:
        return OptimizationConfig(
            target_trainer_hours=self._settings.schedule_target_trainer_hours,
            max_trainer_hours=self._settings.schedule_max_trainer_hours,
            min_days_off=self._settings.schedule_min_days_off,
            max_suggestions=self._settings.schedule_max_suggestions,
        )

    def resolve_config(self, config: Optional[OptimizationConfig] = None) -> OptimizationConfig:
        """Fill in defaults, cap the suggestion count and validate."""
        resolved = config if config is not None else self.default_config()
        if resolved.max_suggestions > self._settings.schedule_max_suggestions:
            resolved = replace(resolved, max_suggestions=self._settings.schedule_max_suggestions)
        try:
            validate_optimization_config(resolved)
        except ValueError as exc:
            raise ScheduleValidationError(str(exc)) from exc
        return resolved

    def build_profiles(
        self,
        *,
        sessions: Sequence[HistoricalSession],
        date_from: date,
        date_to: date,
    ) -> ProfileSet:
        if date_from > date_to:
            raise ScheduleValidationError("date_from must not be later than date_to")
        return build_profiles(sessions, date_from, date_to)

    def optimize_schedule(
        self,
        *,
        sessions: Sequence[HistoricalSession],
        schedule: Sequence[ScheduledClass],
        date_from: date,
        date_to: date,
        config: Optional[OptimizationConfig] = None,
    ) -> OptimizationResult:
        if date_from > date_to:
            raise ScheduleValidationError("date_from must not be later than date_to")
        resolved = self.resolve_config(config)

        profiles = build_profiles(sessions, date_from, date_to)
        if profiles.is_empty:
            logger.info(
                "Optimization running without history | date_from=%s | date_to=%s | classes=%s",
                date_from,
                date_to,
                len(schedule),
            )

        hours = current_trainer_hours(schedule)
        result = generate_optimizations(schedule, resolved, profiles, trainer_hours=hours)
        logger.info(
            (
                "Schedule optimization completed | suggestions=%s | trainers=%s | "
                "avg_fill_rate_increase=%s | check_ins_increase=%s"
            ),
            len(result.suggestions),
            len(result.trainer_hours_summary),
            result.projected_impact.avg_fill_rate_increase,
            result.projected_impact.total_check_ins_increase,
        )
        return result
