"""Optional AI schedule advisor backed by a remote text-generation model.

The advisor is a collaborator of the rule-based optimizer, never a
requirement. Every failure (missing credentials, timeouts, rate limits,
unusable replies) comes back as an ``AdvisorResult`` carrying an
``AdvisorError`` instead of an exception, so callers can always fall back
to the rule-based suggestions.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Protocol, Sequence
from uuid import uuid4

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from schedule_engine.domain.constraints import OptimizationConfig
from schedule_engine.domain.models import (
    ClassSnapshot,
    ScheduledClass,
    SuggestedClass,
    Suggestion,
    SuggestionPriority,
    SuggestionType,
    normalize_name,
    truncate_time,
)
from schedule_engine.domain.profiles import ProfileSet, TrainerProfile
from schedule_engine.services.suggestion_service import current_trainer_hours
from schedule_engine.utils.config import Settings, get_settings
from schedule_engine.utils.logger import get_logger


logger = get_logger(__name__)

DAY_UNDERPERFORMING_FILL = 60
WEEK_UNDERPERFORMING_FILL = 55.0
WEEK_TOP_COMBO_FILL = 75.0
MAX_PROMPT_TRAINERS = 10
MAX_PROMPT_FORMATS = 15
MAX_PROMPT_UNDERPERFORMING = 20
MAX_PROMPT_COMBOS = 15
DEFAULT_REPLY_CONFIDENCE = 70.0

_REPLY_TYPE_ALIASES = {"adjust_time": SuggestionType.SWAP_TIME}


class AdvisorErrorCode(str, Enum):
    API_UNAVAILABLE = "API_UNAVAILABLE"
    RATE_LIMITED = "RATE_LIMITED"
    INVALID_RESPONSE = "INVALID_RESPONSE"
    TIMEOUT = "TIMEOUT"
    UNKNOWN = "UNKNOWN"


class AdvisorTransportError(Exception):
    """Raised when the text-generation endpoint is unreachable or rejects a call."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class AdvisorError:
    code: AdvisorErrorCode
    message: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class AdvisorResult:
    suggestions: list[Suggestion] = field(default_factory=list)
    insights: list[str] = field(default_factory=list)
    projected_fill_rate_change: float = 0.0
    projected_attendance_change: float = 0.0
    error: Optional[AdvisorError] = None

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class ScheduleContext:
    """Inputs for one advisor call; ``day`` plus ``location`` selects single-day mode."""

    schedule: Sequence[ScheduledClass]
    profiles: ProfileSet
    config: OptimizationConfig
    day: Optional[str] = None
    location: Optional[str] = None

    @property
    def is_single_day(self) -> bool:
        return bool(self.day and self.location)


class TextGenerationClient(Protocol):
    async def generate(self, prompt: str) -> str:
        ...


class GeminiTextClient:
    """Generative Language ``generateContent`` client over ``httpx``.

    The API key travels in the ``x-goog-api-key`` header, never in the URL.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._base_url = base_url.rstrip("/")
        self._http_client = http_client

    def _payload(self, prompt: str) -> dict[str, Any]:
        return {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": 0.2,
                "topK": 40,
                "topP": 0.95,
                "maxOutputTokens": 4096,
            },
        }

    async def _post(self, client: httpx.AsyncClient, prompt: str) -> httpx.Response:
        return await client.post(
            f"{self._base_url}/models/{self._model}:generateContent",
            headers={"x-goog-api-key": self._api_key},
            json=self._payload(prompt),
        )

    async def generate(self, prompt: str) -> str:
        try:
            if self._http_client is not None:
                response = await self._post(self._http_client, prompt)
            else:
                # No client timeout; cancellation at the caller's deadline closes the connection.
                async with httpx.AsyncClient(timeout=None) as client:
                    response = await self._post(client, prompt)
        except httpx.HTTPError as exc:
            # Only the exception type is kept; transport messages can echo request details.
            raise AdvisorTransportError(f"advisor request failed: {type(exc).__name__}") from exc

        if response.status_code >= 400:
            raise AdvisorTransportError(
                f"advisor endpoint returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError:
            logger.warning(
                "Advisor endpoint returned a non-JSON body | status_code=%s",
                response.status_code,
            )
            return ""
        candidates = body.get("candidates") or []
        if not candidates:
            return ""
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(str(part.get("text", "")) for part in parts)


def build_text_client(settings: Optional[Settings] = None) -> Optional[GeminiTextClient]:
    """Return a live client, or ``None`` when the advisor is off or unkeyed."""
    resolved = settings or get_settings()
    api_key = (resolved.advisor_api_key or "").strip()
    if not resolved.advisor_enabled:
        return None
    if len(api_key) < resolved.advisor_min_api_key_length:
        logger.info(
            "Advisor disabled, API key missing or too short | key_length=%s",
            len(api_key),
        )
        return None
    return GeminiTextClient(
        api_key=api_key,
        model=resolved.advisor_model,
        base_url=resolved.advisor_base_url,
    )


class _ReplySuggestion(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: Optional[str] = None
    original_class: Optional[str] = Field(default=None, alias="originalClass")
    original_trainer: Optional[str] = Field(default=None, alias="originalTrainer")
    original_time: Optional[str] = Field(default=None, alias="originalTime")
    suggested_class: Optional[str] = Field(default=None, alias="suggestedClass")
    suggested_trainer: Optional[str] = Field(default=None, alias="suggestedTrainer")
    suggested_time: Optional[str] = Field(default=None, alias="suggestedTime")
    reason: Optional[str] = None
    confidence: Optional[float] = None
    data_points: list[str] = Field(default_factory=list, alias="dataPoints")


class _ReplyImpact(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    fill_rate_change: float = Field(default=0.0, alias="fillRateChange")
    attendance_change: float = Field(default=0.0, alias="attendanceChange")


class _AdvisorReply(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    suggestions: list[_ReplySuggestion] = Field(default_factory=list)
    insights: list[str] = Field(default_factory=list)
    projected_impact: _ReplyImpact = Field(default_factory=_ReplyImpact, alias="projectedImpact")


def strip_code_fences(text: str) -> str:
    cleaned = (text or "").strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


def priority_from_confidence(confidence: float) -> SuggestionPriority:
    if confidence >= 80:
        return SuggestionPriority.HIGH
    if confidence >= 60:
        return SuggestionPriority.MEDIUM
    return SuggestionPriority.LOW


def _failure(code: AdvisorErrorCode, message: str) -> AdvisorResult:
    return AdvisorResult(error=AdvisorError(code=code, message=message))


def resolve_scheduled_class(
    schedule: Sequence[ScheduledClass],
    format_name: Optional[str],
    trainer: Optional[str],
    time_value: Optional[str] = None,
    day: Optional[str] = None,
    location: Optional[str] = None,
) -> Optional[ScheduledClass]:
    """Find the live class a textual (format, trainer) reference points at."""
    format_key = normalize_name(format_name)
    trainer_key = normalize_name(trainer)
    if not format_key or not trainer_key:
        return None
    matches = [
        scheduled
        for scheduled in schedule
        if normalize_name(scheduled.format_name) == format_key
        and scheduled.trainer_key == trainer_key
    ]
    if not matches:
        return None
    time_key = truncate_time(time_value) if time_value else None

    def _score(scheduled: ScheduledClass) -> tuple[int, int]:
        same_time = 1 if time_key and scheduled.time_key == time_key else 0
        same_place = 1 if scheduled.day == day and scheduled.location == location else 0
        return (same_time, same_place)

    return max(matches, key=_score)


def _reply_type(raw: Optional[str]) -> Optional[SuggestionType]:
    value = (raw or SuggestionType.REPLACE_TRAINER.value).strip().lower()
    if value in _REPLY_TYPE_ALIASES:
        return _REPLY_TYPE_ALIASES[value]
    try:
        return SuggestionType(value)
    except ValueError:
        return None


def parse_advisor_reply(text: str, context: ScheduleContext) -> AdvisorResult:
    """Map a fenced or bare JSON reply onto ``Suggestion`` values."""
    try:
        reply = _AdvisorReply.model_validate_json(strip_code_fences(text))
    except ValidationError as exc:
        logger.warning("Advisor reply rejected | errors=%s", exc.error_count())
        return _failure(
            AdvisorErrorCode.INVALID_RESPONSE,
            "AI response could not be parsed. Please try again.",
        )

    batch = uuid4().hex[:8]
    suggestions: list[Suggestion] = []
    for index, item in enumerate(reply.suggestions):
        suggestion_type = _reply_type(item.type)
        if suggestion_type is None:
            logger.warning("Advisor suggestion skipped | index=%s | type=%s", index, item.type)
            continue

        match = resolve_scheduled_class(
            context.schedule,
            item.original_class,
            item.original_trainer,
            item.original_time,
            context.day,
            context.location,
        )
        if match is not None:
            original = ClassSnapshot.of(match)
        else:
            original = ClassSnapshot(
                format_name=item.original_class or "",
                trainer=item.original_trainer or "",
                day=context.day or "",
                time=item.original_time or "",
                location=context.location or "",
            )

        confidence = max(0.0, min(100.0, item.confidence or DEFAULT_REPLY_CONFIDENCE))
        suggestions.append(
            Suggestion(
                suggestion_id=f"ai-{batch}-{index}",
                suggestion_type=suggestion_type,
                priority=priority_from_confidence(confidence),
                confidence=confidence,
                original=original,
                suggested=SuggestedClass(
                    format_name=item.suggested_class or item.original_class or "",
                    trainer=item.suggested_trainer or "",
                    day=original.day,
                    time=item.suggested_time or item.original_time or original.time,
                    location=original.location,
                ),
                reason=item.reason or "AI recommendation",
                impact=f"Advisor confidence {round(confidence)}%",
                data_points=tuple(item.data_points),
            )
        )

    return AdvisorResult(
        suggestions=suggestions,
        insights=list(reply.insights),
        projected_fill_rate_change=reply.projected_impact.fill_rate_change,
        projected_attendance_change=reply.projected_impact.attendance_change,
    )


def _percent(value: float) -> str:
    return f"{value:.0f}%"


def _best_formats(profile: TrainerProfile, limit: int = 3) -> list[str]:
    ranked = sorted(
        profile.format_performance.items(),
        key=lambda item: item[1].avg_fill_rate,
        reverse=True,
    )
    return [name for name, _ in ranked[:limit]]


def _rules_block(config: OptimizationConfig) -> str:
    return "\n".join(
        [
            f"- Target trainer hours: {config.target_trainer_hours}hrs/week",
            f"- Max trainer hours: {config.max_trainer_hours}hrs/week",
            f"- Min days off per trainer: {config.min_days_off}",
            f"- No classes before: {config.no_classes_before or 'none'}",
            f"- No classes after: {config.no_classes_after or 'none'}",
            f"- Blocked trainers: {', '.join(config.blocked_trainers) or 'none'}",
            f"- Excluded formats: {', '.join(config.excluded_formats) or 'none'}",
        ]
    )


_REPLY_FORMAT = """{
  "suggestions": [
    {
      "type": "replace_trainer|replace_class|adjust_time|add_class|remove_class",
      "originalClass": "class name",
      "originalTrainer": "trainer name",
      "originalTime": "HH:MM",
      "suggestedClass": "class name",
      "suggestedTrainer": "trainer name",
      "suggestedTime": "HH:MM",
      "reason": "Specific reason with data support",
      "confidence": 75,
      "dataPoints": ["point 1", "point 2"]
    }
  ],
  "insights": ["Key insight about the schedule"],
  "projectedImpact": {"fillRateChange": 5.2, "attendanceChange": 12}
}"""


def build_day_prompt(context: ScheduleContext) -> str:
    day, location = context.day, context.location
    hours = current_trainer_hours(context.schedule)

    classes = sorted(
        (c for c in context.schedule if c.day == day and c.location == location),
        key=lambda c: c.time_key,
    )
    class_context = []
    for scheduled in classes:
        trainer_profile = context.profiles.trainers.get(scheduled.trainer_key)
        class_context.append(
            {
                "time": scheduled.time_key,
                "class": scheduled.format_name,
                "trainer": scheduled.trainer,
                "fillRate": round(scheduled.fill_rate, 1),
                "checkIns": round(scheduled.avg_check_ins, 1),
                "trend": trainer_profile.trend.value if trainer_profile else "unknown",
                "sessions": scheduled.session_count,
            }
        )

    trainer_context = [
        {
            "name": profile.name,
            "avgFill": _percent(profile.avg_fill_rate),
            "bestFormats": ", ".join(_best_formats(profile)),
            "hoursToTarget": context.config.target_trainer_hours - hours.get(key, 0),
            "bestDays": ", ".join(profile.typical_work_days[:3]),
        }
        for key, profile in context.profiles.trainers.items()
        if location in profile.location_performance and not context.config.is_blocked(key)
    ][:MAX_PROMPT_TRAINERS]

    format_rows = []
    for profile in context.profiles.formats.values():
        at_location = profile.location_performance.get(location or "")
        if at_location is None:
            continue
        format_rows.append(
            (
                at_location.avg_fill_rate,
                {
                    "format": profile.name,
                    "avgFill": _percent(at_location.avg_fill_rate),
                    "bestTimes": ", ".join(slot.time for slot in profile.best_time_slots[:3]),
                },
            )
        )
    format_rows.sort(key=lambda row: row[0], reverse=True)
    format_context = [row for _, row in format_rows[:MAX_PROMPT_FORMATS]]

    return f"""You are an expert fitness studio schedule optimizer. Analyze this schedule for {day} at {location} and provide SPECIFIC, ACTIONABLE recommendations.

## CURRENT SCHEDULE ({day}, {location})
{json.dumps(class_context, indent=2)}

## AVAILABLE TRAINERS (work at this location)
{json.dumps(trainer_context, indent=2)}

## FORMAT PERFORMANCE DATA (at this location)
{json.dumps(format_context, indent=2)}

## OPTIMIZATION RULES TO FOLLOW
{_rules_block(context.config)}

## YOUR TASK
1. Identify underperforming classes (<{DAY_UNDERPERFORMING_FILL}% fill rate or declining trend)
2. Recommend SPECIFIC changes (trainer swaps, class replacements, time adjustments)
3. Ensure format diversity throughout the day
4. Balance trainer hours toward targets
5. Maximize overall attendance

## RESPONSE FORMAT (JSON only, no markdown)
{_REPLY_FORMAT}

Provide 3-5 high-impact suggestions. Be specific and reference actual data."""


def build_week_prompt(context: ScheduleContext) -> str:
    hours = current_trainer_hours(context.schedule)

    underperforming = [
        {
            "day": c.day,
            "time": c.time_key,
            "class": c.format_name,
            "trainer": c.trainer,
            "location": c.location,
        }
        for c in context.schedule
        if c.session_count == 0 or c.fill_rate < WEEK_UNDERPERFORMING_FILL
    ][:MAX_PROMPT_UNDERPERFORMING]

    needing_hours = []
    for key, profile in context.profiles.trainers.items():
        if context.config.is_blocked(key):
            continue
        gap = context.config.target_trainer_hours - hours.get(key, 0)
        if gap > 2:
            needing_hours.append((gap, profile))
    needing_hours.sort(key=lambda item: item[0], reverse=True)
    trainers_context = [
        {
            "name": profile.name,
            "hoursNeeded": gap,
            "bestFormats": _best_formats(profile),
            "avgFill": _percent(profile.avg_fill_rate),
        }
        for gap, profile in needing_hours[:MAX_PROMPT_TRAINERS]
    ]

    combos = [
        (profile.name, combo)
        for profile in context.profiles.trainers.values()
        for combo in profile.best_combinations
        if combo.avg_fill_rate >= WEEK_TOP_COMBO_FILL
    ]
    combos.sort(key=lambda item: item[1].avg_fill_rate, reverse=True)
    combo_context = [
        {
            "class": combo.format_name,
            "trainer": trainer,
            "fillRate": _percent(combo.avg_fill_rate),
            "day": combo.day,
            "time": combo.time,
        }
        for trainer, combo in combos[:MAX_PROMPT_COMBOS]
    ]

    return f"""You are an expert fitness studio schedule optimizer. Analyze this full weekly schedule and provide strategic recommendations.

## UNDERPERFORMING CLASSES (need optimization)
{json.dumps(underperforming, indent=2)}

## TRAINERS NEEDING MORE HOURS
{json.dumps(trainers_context, indent=2)}

## TOP PERFORMING COMBINATIONS (proven success)
{json.dumps(combo_context, indent=2)}

## RULES
{_rules_block(context.config)}

## TASK
1. Replace underperforming classes with proven successful combinations
2. Use trainers who need hours and have proven track records
3. Maintain format diversity
4. Maximize overall fill rates

## RESPONSE FORMAT (JSON only)
{_REPLY_FORMAT}

Provide 5-10 high-impact suggestions prioritized by potential improvement."""


class ScheduleAdvisor:
    """Runs one advisor call under a hard timeout and maps every failure to a code."""

    def __init__(
        self,
        client: Optional[TextGenerationClient],
        settings: Optional[Settings] = None,
    ) -> None:
        self._client = client
        self._settings = settings or get_settings()

    @property
    def available(self) -> bool:
        return self._client is not None

    async def advise(self, context: ScheduleContext) -> AdvisorResult:
        mode = "day" if context.is_single_day else "week"
        if self._client is None:
            logger.info(
                "Advisor skipped | mode=%s | code=%s",
                mode,
                AdvisorErrorCode.API_UNAVAILABLE.value,
            )
            return _failure(
                AdvisorErrorCode.API_UNAVAILABLE,
                "AI service is not available. Please check your API key configuration.",
            )

        if context.is_single_day:
            prompt = build_day_prompt(context)
            timeout = self._settings.advisor_day_timeout_seconds
            timeout_message = "AI request timed out. Please try again."
        else:
            prompt = build_week_prompt(context)
            timeout = self._settings.advisor_week_timeout_seconds
            timeout_message = "AI request timed out. Try optimizing individual days instead."

        try:
            text = await asyncio.wait_for(self._client.generate(prompt), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("Advisor timed out | mode=%s | timeout_seconds=%s", mode, timeout)
            return _failure(AdvisorErrorCode.TIMEOUT, timeout_message)
        except AdvisorTransportError as exc:
            if exc.status_code == 429:
                logger.warning("Advisor rate limited | mode=%s", mode)
                return _failure(
                    AdvisorErrorCode.RATE_LIMITED,
                    "AI service rate limited. Please wait a moment and try again.",
                )
            logger.warning(
                "Advisor unavailable | mode=%s | status_code=%s | error=%s",
                mode,
                exc.status_code,
                exc,
            )
            return _failure(
                AdvisorErrorCode.API_UNAVAILABLE,
                "AI service temporarily unavailable.",
            )
        except Exception:
            logger.exception("Advisor request failed unexpectedly | mode=%s", mode)
            return _failure(AdvisorErrorCode.UNKNOWN, "An unexpected error occurred")

        result = parse_advisor_reply(text, context)
        logger.info(
            "Advisor request completed | mode=%s | success=%s | suggestions=%s",
            mode,
            result.success,
            len(result.suggestions),
        )
        return result
