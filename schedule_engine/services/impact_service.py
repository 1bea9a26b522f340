"""Projected impact, format mix, trainer hours and insight summaries."""

from __future__ import annotations

from collections import Counter
from typing import Mapping, Sequence

from schedule_engine.domain.classification import format_category
from schedule_engine.domain.constraints import OptimizationConfig
from schedule_engine.domain.models import (
    FormatMixImpact,
    ProjectedImpact,
    ScheduledClass,
    Suggestion,
    SuggestionPriority,
    SuggestionType,
    TrainerHoursSummary,
    normalize_name,
)
from schedule_engine.domain.profiles import ProfileSet, TrainerProfile
from schedule_engine.services.metrics import average


LOW_FILL_INSIGHT_THRESHOLD = 60.0
UNDERUTILIZED_HOURS_GAP = 3
UNDERUTILIZED_MIN_FILL = 70.0

_ADDITIONS = (SuggestionType.ADD_CLASS, SuggestionType.DUPLICATE_CLASS)
_REPLACEMENTS = (
    SuggestionType.REPLACE_CLASS,
    SuggestionType.REPLACE_TRAINER,
    SuggestionType.SWAP_TIME,
)


def _replay_hours(
    suggestions: Sequence[Suggestion],
    hours: Mapping[str, int],
) -> dict[str, int]:
    """Apply each suggestion's trainer-slot delta to a copy of ``hours``."""
    replayed = Counter(hours)
    for suggestion in suggestions:
        original_key = normalize_name(suggestion.original.trainer)
        suggested_key = normalize_name(suggestion.suggested.trainer)
        if suggestion.suggestion_type in _ADDITIONS:
            replayed[suggested_key] += 1
        elif suggestion.suggestion_type == SuggestionType.REMOVE_CLASS:
            replayed[original_key] -= 1
        elif original_key != suggested_key:
            replayed[suggested_key] += 1
            replayed[original_key] -= 1
    return dict(replayed)


def build_trainer_hours_summary(
    trainers: Sequence[TrainerProfile],
    hours: Mapping[str, int],
    suggestions: Sequence[Suggestion],
    target: int,
) -> dict[str, TrainerHoursSummary]:
    optimized = _replay_hours(suggestions, hours)
    return {
        profile.name: TrainerHoursSummary(
            current=hours.get(profile.normalized_name, 0),
            optimized=max(0, optimized.get(profile.normalized_name, 0)),
            target=target,
        )
        for profile in trainers
    }


def calculate_format_mix_impact(
    suggestions: Sequence[Suggestion],
    schedule: Sequence[ScheduledClass],
) -> FormatMixImpact:
    """Class counts per format category before and after the suggestions."""
    before = Counter(format_category(scheduled.format_name).value for scheduled in schedule)
    after = Counter(before)
    for suggestion in suggestions:
        original = format_category(suggestion.original.format_name).value
        suggested = format_category(suggestion.suggested.format_name).value
        if suggestion.suggestion_type in _ADDITIONS:
            after[suggested] += 1
        elif suggestion.suggestion_type == SuggestionType.REMOVE_CLASS:
            after[original] -= 1
        elif suggestion.suggestion_type == SuggestionType.REPLACE_CLASS and original != suggested:
            after[original] -= 1
            after[suggested] += 1
    return FormatMixImpact(
        before=dict(before),
        after={category: count for category, count in after.items() if count > 0},
    )


def calculate_projected_impact(
    suggestions: Sequence[Suggestion],
    trainers: Sequence[TrainerProfile],
    hours: Mapping[str, int],
    target: int,
) -> ProjectedImpact:
    replacements = [s for s in suggestions if s.suggestion_type in _REPLACEMENTS]
    check_in_gain = sum(
        s.suggested.projected_check_ins - s.original.current_check_ins for s in replacements
    )
    fill_gain = average(
        [s.suggested.projected_fill_rate - s.original.current_fill_rate for s in replacements]
    )

    utilization = 0
    combined_target = target * len(trainers)
    if combined_target > 0:
        optimized = _replay_hours(suggestions, hours)
        keys = [profile.normalized_name for profile in trainers]
        net = sum(max(0, optimized.get(key, 0)) for key in keys) - sum(
            hours.get(key, 0) for key in keys
        )
        utilization = int(round(net / combined_target * 100))

    return ProjectedImpact(
        total_check_ins_increase=int(round(check_in_gain)),
        avg_fill_rate_increase=int(round(fill_gain)),
        trainer_utilization_increase=utilization,
    )


def generate_insights(
    schedule: Sequence[ScheduledClass],
    suggestions: Sequence[Suggestion],
    profiles: ProfileSet,
    hours: Mapping[str, int],
    config: OptimizationConfig,
) -> list[str]:
    insights: list[str] = []

    low_fill = [s for s in schedule if s.fill_rate < LOW_FILL_INSIGHT_THRESHOLD]
    if low_fill:
        insights.append(
            f"{len(low_fill)} classes are below {int(LOW_FILL_INSIGHT_THRESHOLD)}% fill rate "
            "and have optimization opportunities"
        )

    high_priority = [s for s in suggestions if s.priority == SuggestionPriority.HIGH]
    if high_priority:
        insights.append(f"{len(high_priority)} high-impact optimizations identified")

    underutilized = [
        profile
        for key, profile in profiles.trainers.items()
        if hours.get(key, 0) < config.target_trainer_hours - UNDERUTILIZED_HOURS_GAP
        and profile.avg_fill_rate >= UNDERUTILIZED_MIN_FILL
    ]
    if underutilized:
        insights.append(
            f"{len(underutilized)} high-performing trainers could take on more classes"
        )

    if profiles.trainers:
        top = max(profiles.trainers.values(), key=lambda profile: profile.avg_fill_rate)
        insights.append(
            f"{top.name} leads with {round(top.avg_fill_rate)}% avg fill rate "
            "- consider expanding their schedule"
        )
    return insights
