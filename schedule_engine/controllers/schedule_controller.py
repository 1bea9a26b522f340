"""HTTP controller layer for schedule optimization and the AI advisor."""

from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field, field_validator

from schedule_engine.controllers.dependencies import (
    get_optimization_service,
    get_schedule_advisor,
)
from schedule_engine.domain.constraints import (
    WEEKDAYS,
    LocationRule,
    OptimizationConfig,
    TrainerLeave,
)
from schedule_engine.domain.models import HistoricalSession, ScheduledClass
from schedule_engine.services.advisor_service import (
    AdvisorResult,
    ScheduleAdvisor,
    ScheduleContext,
)
from schedule_engine.services.optimization_service import (
    ScheduleOptimizationService,
    ScheduleValidationError,
)
from schedule_engine.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["schedule"])

TIME_PATTERN = r"^\d{2}:\d{2}(:\d{2})?$"


class SessionPayload(BaseModel):
    trainer: str
    format_name: str
    location: str
    day: str
    time: str = Field(pattern=TIME_PATTERN)
    session_date: date
    capacity: int = Field(default=0, ge=0)
    checked_in: int = Field(default=0, ge=0)
    booked: int = Field(default=0, ge=0)
    late_cancelled: int = Field(default=0, ge=0)
    revenue: float = 0.0


class ScheduledClassPayload(BaseModel):
    class_id: str = Field(min_length=1)
    day: str
    time: str = Field(pattern=TIME_PATTERN)
    format_name: str
    trainer: str
    location: str
    capacity: int = Field(default=0, ge=0)
    fill_rate: float = Field(default=0.0, ge=0.0)
    avg_check_ins: float = Field(default=0.0, ge=0.0)
    session_count: int = Field(default=0, ge=0)

    @field_validator("day")
    @classmethod
    def validate_day(cls, value: str) -> str:
        if value not in WEEKDAYS:
            raise ValueError(f"day must be one of {', '.join(WEEKDAYS)}")
        return value


class LocationRulePayload(BaseModel):
    max_parallel_classes: int | None = Field(default=None, ge=0)
    required_formats: list[str] = Field(default_factory=list)
    min_classes: int = Field(default=0, ge=0)
    priority_trainers: list[str] = Field(default_factory=list)


class TrainerLeavePayload(BaseModel):
    trainer_name: str = Field(min_length=1)
    start_date: date
    end_date: date
    reason: str | None = None


class OptimizationConfigPayload(BaseModel):
    """Overrides applied on top of the service defaults."""

    target_trainer_hours: int | None = Field(default=None, ge=0)
    max_trainer_hours: int | None = Field(default=None, ge=0)
    min_days_off: int | None = Field(default=None, ge=0, le=7)
    avoid_multi_location_days: bool | None = None
    priority_trainers: list[str] | None = None
    blocked_trainers: list[str] | None = None
    excluded_formats: list[str] | None = None
    location_constraints: dict[str, LocationRulePayload] | None = None
    trainer_leaves: list[TrainerLeavePayload] | None = None
    no_classes_before: str | None = None
    no_classes_after: str | None = None
    week_start: date | None = None
    max_suggestions: int | None = Field(default=None, gt=0)


class OptimizeScheduleRequest(BaseModel):
    sessions: list[SessionPayload] = Field(default_factory=list)
    schedule: list[ScheduledClassPayload] = Field(default_factory=list)
    date_from: date
    date_to: date
    config: OptimizationConfigPayload | None = None


class AdviseScheduleRequest(OptimizeScheduleRequest):
    day: str | None = None
    location: str | None = None


class ClassSnapshotResponse(BaseModel):
    class_id: str | None = None
    format_name: str
    trainer: str
    day: str
    time: str
    location: str
    current_fill_rate: float
    current_check_ins: float


class SuggestedClassResponse(BaseModel):
    format_name: str
    trainer: str
    day: str
    time: str
    location: str
    projected_fill_rate: float
    projected_check_ins: float


class SuggestionResponse(BaseModel):
    id: str
    type: str
    priority: str
    confidence: float = Field(ge=0.0, le=100.0)
    original: ClassSnapshotResponse
    suggested: SuggestedClassResponse
    reason: str
    impact: str
    data_points: list[str]


class TrainerHoursResponse(BaseModel):
    current: int
    optimized: int
    target: int


class FormatMixResponse(BaseModel):
    before: dict[str, int]
    after: dict[str, int]


class ProjectedImpactResponse(BaseModel):
    total_check_ins_increase: int
    avg_fill_rate_increase: int
    trainer_utilization_increase: int


class OptimizationResultResponse(BaseModel):
    suggestions: list[SuggestionResponse]
    trainer_hours_summary: dict[str, TrainerHoursResponse]
    format_mix_impact: FormatMixResponse
    projected_impact: ProjectedImpactResponse
    insights: list[str]


class AdvisorErrorResponse(BaseModel):
    code: str
    message: str
    timestamp: datetime


class AdvisorResponse(BaseModel):
    success: bool
    suggestions: list[SuggestionResponse]
    insights: list[str]
    projected_fill_rate_change: float
    projected_attendance_change: float
    error: AdvisorErrorResponse | None = None


class HealthResponse(BaseModel):
    status: str
    advisor_available: bool


def _to_sessions(payload: OptimizeScheduleRequest) -> list[HistoricalSession]:
    return [HistoricalSession(**item.model_dump()) for item in payload.sessions]


def _to_schedule(payload: OptimizeScheduleRequest) -> list[ScheduledClass]:
    return [ScheduledClass(**item.model_dump()) for item in payload.schedule]


def _to_config(
    overrides: OptimizationConfigPayload | None,
    defaults: OptimizationConfig,
) -> OptimizationConfig:
    if overrides is None:
        return defaults
    changes = overrides.model_dump(
        exclude_none=True,
        exclude={"location_constraints", "trainer_leaves"},
    )
    for name in ("priority_trainers", "blocked_trainers", "excluded_formats"):
        if name in changes:
            changes[name] = tuple(changes[name])
    if overrides.location_constraints is not None:
        changes["location_constraints"] = {
            location: LocationRule(
                max_parallel_classes=rule.max_parallel_classes,
                required_formats=tuple(rule.required_formats),
                min_classes=rule.min_classes,
                priority_trainers=tuple(rule.priority_trainers),
            )
            for location, rule in overrides.location_constraints.items()
        }
    if overrides.trainer_leaves is not None:
        changes["trainer_leaves"] = tuple(
            TrainerLeave(**leave.model_dump()) for leave in overrides.trainer_leaves
        )
    return replace(defaults, **changes)


def _advisor_response(result: AdvisorResult) -> AdvisorResponse:
    error = None
    if result.error is not None:
        error = AdvisorErrorResponse(
            code=result.error.code.value,
            message=result.error.message,
            timestamp=result.error.timestamp,
        )
    return AdvisorResponse(
        success=result.success,
        suggestions=[
            SuggestionResponse.model_validate(suggestion.to_dict())
            for suggestion in result.suggestions
        ],
        insights=result.insights,
        projected_fill_rate_change=result.projected_fill_rate_change,
        projected_attendance_change=result.projected_attendance_change,
        error=error,
    )


@router.get("/health", response_model=HealthResponse, status_code=status.HTTP_200_OK)
async def health(
    advisor: ScheduleAdvisor = Depends(get_schedule_advisor),
) -> HealthResponse:
    return HealthResponse(status="ok", advisor_available=advisor.available)


@router.post(
    "/optimize_schedule",
    response_model=OptimizationResultResponse,
    status_code=status.HTTP_200_OK,
)
async def optimize_schedule(
    payload: OptimizeScheduleRequest,
    service: ScheduleOptimizationService = Depends(get_optimization_service),
) -> OptimizationResultResponse:
    """Profile the history window and rank rule-based schedule suggestions."""
    try:
        result = service.optimize_schedule(
            sessions=_to_sessions(payload),
            schedule=_to_schedule(payload),
            date_from=payload.date_from,
            date_to=payload.date_to,
            config=_to_config(payload.config, service.default_config()),
        )
        return OptimizationResultResponse.model_validate(result.to_dict())
    except ScheduleValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected schedule optimization failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to optimize schedule",
        ) from exc


@router.post(
    "/advise_schedule",
    response_model=AdvisorResponse,
    status_code=status.HTTP_200_OK,
)
async def advise_schedule(
    payload: AdviseScheduleRequest,
    service: ScheduleOptimizationService = Depends(get_optimization_service),
    advisor: ScheduleAdvisor = Depends(get_schedule_advisor),
) -> AdvisorResponse:
    """Ask the AI advisor for suggestions; advisor failures are reported in the body."""
    try:
        config = service.resolve_config(_to_config(payload.config, service.default_config()))
        profiles = service.build_profiles(
            sessions=_to_sessions(payload),
            date_from=payload.date_from,
            date_to=payload.date_to,
        )
        result = await advisor.advise(
            ScheduleContext(
                schedule=_to_schedule(payload),
                profiles=profiles,
                config=config,
                day=payload.day,
                location=payload.location,
            )
        )
        return _advisor_response(result)
    except ScheduleValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected advisor failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to run schedule advisor",
        ) from exc
