"""Rule-based suggestion generator over profiles, live schedule and constraints."""

from __future__ import annotations

from collections import Counter, defaultdict
from dataclasses import dataclass, field
from typing import Mapping, Optional, Sequence

from schedule_engine.domain.classification import format_category
from schedule_engine.domain.constraints import DAYS_PER_WEEK, LocationRule, OptimizationConfig
from schedule_engine.domain.models import (
    ClassSnapshot,
    OptimizationResult,
    ScheduledClass,
    SuggestedClass,
    Suggestion,
    SuggestionPriority,
    SuggestionType,
    normalize_name,
    truncate_time,
)
from schedule_engine.domain.profiles import (
    BestCombination,
    FormatProfile,
    ProfileSet,
    RankedTrainer,
    TrainerProfile,
)
from schedule_engine.services.impact_service import (
    build_trainer_hours_summary,
    calculate_format_mix_impact,
    calculate_projected_impact,
    generate_insights,
)
from schedule_engine.services.metrics import average, group_by
from schedule_engine.utils.logger import get_logger


logger = get_logger(__name__)

UNDERPERFORMING_FLOOR = 60.0
UNDERPERFORMING_LOCATION_RATIO = 0.9
MIN_EVIDENCE_SESSIONS = 3
MIN_IMPROVEMENT = 10.0
MIN_LOCATION_SESSIONS = 2
PROJECTED_FILL_CAP = 95.0
HOUR_BALANCE_GAP = 2
HOUR_BALANCE_MIN_FILL = 65.0
HEALTHY_SLOT_FILL = 70.0
MAX_ADDS_PER_TRAINER = 2
SWAP_MAX_CURRENT_FILL = 75.0
SWAP_MIN_LOCATION_FILL = 60.0
REDUNDANT_MAX_FILL = 50.0
REDUNDANT_CONFIDENCE = 70.0
REQUIRED_FORMAT_CONFIDENCE = 85.0


@dataclass
class _ScheduleIndex:
    """Lookups over the live schedule, built once per optimization call."""

    occupied: dict[str, dict[tuple[str, str], list[str]]] = field(
        default_factory=lambda: defaultdict(lambda: defaultdict(list))
    )
    work_days: dict[str, set[str]] = field(default_factory=lambda: defaultdict(set))
    day_locations: dict[tuple[str, str], set[str]] = field(default_factory=lambda: defaultdict(set))
    slot_classes: dict[tuple[str, str, str], list[ScheduledClass]] = field(
        default_factory=lambda: defaultdict(list)
    )

    @classmethod
    def build(cls, schedule: Sequence[ScheduledClass]) -> "_ScheduleIndex":
        index = cls()
        for scheduled in schedule:
            trainer_key = scheduled.trainer_key
            slot = (scheduled.day, scheduled.time_key)
            if trainer_key:
                index.occupied[trainer_key][slot].append(scheduled.class_id)
                index.work_days[trainer_key].add(scheduled.day)
                index.day_locations[(trainer_key, scheduled.day)].add(scheduled.location)
            index.slot_classes[(scheduled.day, scheduled.time_key, scheduled.location)].append(scheduled)
        return index

    def is_busy(
        self,
        trainer_key: str,
        day: str,
        time_key: str,
        ignore_class_id: Optional[str] = None,
    ) -> bool:
        class_ids = self.occupied.get(trainer_key, {}).get((day, time_key), [])
        return any(class_id != ignore_class_id for class_id in class_ids)

    def classes_at(self, day: str, time_key: str, location: str) -> list[ScheduledClass]:
        return list(self.slot_classes.get((day, time_key, location), []))


@dataclass(frozen=True)
class _OptimizationContext:
    schedule: Sequence[ScheduledClass]
    config: OptimizationConfig
    profiles: ProfileSet
    trainer_hours: Mapping[str, int]
    index: _ScheduleIndex
    claimed_slots: dict[str, set[tuple[str, str]]] = field(
        default_factory=lambda: defaultdict(set)
    )

    def committed_hours(self, trainer_key: str, slot: Optional[tuple[str, str]] = None) -> int:
        """Live hours plus slots promised to the trainer by earlier suggestions in this run."""
        claimed = self.claimed_slots.get(trainer_key, set())
        return self.trainer_hours.get(trainer_key, 0) + len(claimed - {slot})

    def claim(self, suggestion: Suggestion) -> Suggestion:
        incoming = normalize_name(suggestion.suggested.trainer)
        if incoming and incoming != normalize_name(suggestion.original.trainer):
            self.claimed_slots[incoming].add(
                (suggestion.suggested.day, truncate_time(suggestion.suggested.time))
            )
        return suggestion


@dataclass(frozen=True)
class _Candidate:
    format_name: str
    trainer: str
    trainer_key: str
    projected_fill_rate: float
    projected_check_ins: int
    confidence: float
    data_points: tuple[str, ...]
    prioritized: bool = False


def current_trainer_hours(schedule: Sequence[ScheduledClass]) -> dict[str, int]:
    """Distinct (day, time) slots per normalized trainer in the live schedule."""
    slots: dict[str, set[tuple[str, str]]] = defaultdict(set)
    for scheduled in schedule:
        if scheduled.trainer_key:
            slots[scheduled.trainer_key].add((scheduled.day, scheduled.time_key))
    return {trainer_key: len(trainer_slots) for trainer_key, trainer_slots in slots.items()}


def _projected_check_ins(projected_fill_rate: float, capacity: int) -> int:
    return int(round(projected_fill_rate / 100.0 * capacity))


def _replacement_priority(current_fill_rate: float) -> SuggestionPriority:
    if current_fill_rate < 40:
        return SuggestionPriority.HIGH
    if current_fill_rate < 55:
        return SuggestionPriority.MEDIUM
    return SuggestionPriority.LOW


def _incumbent_baseline(ctx: _OptimizationContext, scheduled: ScheduledClass) -> float:
    incumbent = ctx.profiles.trainers.get(scheduled.trainer_key)
    if incumbent is not None:
        format_stats = incumbent.format_performance.get(scheduled.format_name)
        if format_stats is not None:
            return format_stats.avg_fill_rate
    return scheduled.fill_rate


def _trainer_available(
    ctx: _OptimizationContext,
    trainer_key: str,
    day: str,
    time_key: str,
    replacing: Optional[ScheduledClass] = None,
    extra_hours: int = 1,
) -> bool:
    """Blocked, leave, double-booking and weekly hour cap checks for one slot."""
    if not trainer_key or trainer_key not in ctx.profiles.trainers:
        return False
    if ctx.config.is_blocked(trainer_key):
        return False
    if ctx.config.is_on_leave(trainer_key, day):
        return False
    ignore_class_id = replacing.class_id if replacing is not None else None
    if ctx.index.is_busy(trainer_key, day, time_key, ignore_class_id):
        return False
    if replacing is not None and replacing.trainer_key == trainer_key:
        return True
    committed = ctx.committed_hours(trainer_key, (day, time_key))
    return committed + extra_hours <= ctx.config.max_trainer_hours


def _location_track_record(
    ctx: _OptimizationContext,
    trainer_key: str,
    location: str,
    min_fill_rate: float = 0.0,
) -> bool:
    profile = ctx.profiles.trainers.get(trainer_key)
    if profile is None:
        return False
    location_stats = profile.location_performance.get(location)
    return (
        location_stats is not None
        and location_stats.sessions >= MIN_LOCATION_SESSIONS
        and location_stats.avg_fill_rate >= min_fill_rate
    )


def _is_location_priority(ctx: _OptimizationContext, trainer_key: str, location: str) -> bool:
    rule = ctx.config.location_rule(location)
    return any(
        normalize_name(name) and normalize_name(name) in trainer_key
        for name in rule.priority_trainers
    )


def _beats(candidate: _Candidate, best: Optional[_Candidate]) -> bool:
    if best is None:
        return True
    if candidate.projected_fill_rate != best.projected_fill_rate:
        return candidate.projected_fill_rate > best.projected_fill_rate
    return candidate.prioritized and not best.prioritized


def _format_swap_candidate(
    ctx: _OptimizationContext,
    scheduled: ScheduledClass,
) -> Optional[_Candidate]:
    slot_profile = ctx.profiles.time_slots.get((scheduled.day, scheduled.time_key))
    if slot_profile is None:
        return None

    best: Optional[_Candidate] = None
    for top_format in slot_profile.top_formats:
        if top_format.name == scheduled.format_name:
            continue
        if ctx.config.is_excluded_format(top_format.name):
            continue
        format_profile = ctx.profiles.formats.get(top_format.name)
        if format_profile is None:
            continue

        for ranked in format_profile.top_trainers:
            trainer_key = ranked.normalized_name
            if not _trainer_available(
                ctx, trainer_key, scheduled.day, scheduled.time_key, replacing=scheduled
            ):
                continue
            if not _location_track_record(ctx, trainer_key, scheduled.location):
                continue

            projected = min(
                PROJECTED_FILL_CAP,
                (ranked.avg_fill_rate + top_format.avg_fill_rate) / 2.0,
            )
            candidate = _Candidate(
                format_name=top_format.name,
                trainer=ranked.name,
                trainer_key=trainer_key,
                projected_fill_rate=projected,
                projected_check_ins=_projected_check_ins(projected, scheduled.effective_capacity),
                confidence=float(min(90, 50 + ranked.sessions * 5)),
                data_points=(
                    f"{ranked.name} achieves {round(ranked.avg_fill_rate)}% fill rate "
                    f"for {top_format.name}",
                    f"{top_format.name} averages {round(top_format.avg_fill_rate)}% "
                    f"at this time slot",
                    f"Based on {ranked.sessions} sessions from this trainer",
                ),
                prioritized=_is_location_priority(ctx, trainer_key, scheduled.location),
            )
            if _beats(candidate, best):
                best = candidate
    return best


def _trainer_swap_candidate(
    ctx: _OptimizationContext,
    scheduled: ScheduledClass,
) -> Optional[_Candidate]:
    format_profile = ctx.profiles.formats.get(scheduled.format_name)
    if format_profile is None:
        return None

    baseline = _incumbent_baseline(ctx, scheduled)
    best: Optional[_Candidate] = None
    for ranked in format_profile.top_trainers:
        trainer_key = ranked.normalized_name
        if trainer_key == scheduled.trainer_key:
            continue
        improvement = ranked.avg_fill_rate - baseline
        if improvement < MIN_IMPROVEMENT:
            continue
        if not _trainer_available(
            ctx, trainer_key, scheduled.day, scheduled.time_key, replacing=scheduled
        ):
            continue

        candidate = _Candidate(
            format_name=scheduled.format_name,
            trainer=ranked.name,
            trainer_key=trainer_key,
            projected_fill_rate=ranked.avg_fill_rate,
            projected_check_ins=_projected_check_ins(
                ranked.avg_fill_rate, scheduled.effective_capacity
            ),
            confidence=float(min(88, 55 + ranked.sessions * 4)),
            data_points=(
                f"{ranked.name} averages {round(ranked.avg_fill_rate)}% "
                f"for {scheduled.format_name}",
                f"+{round(improvement)}% improvement expected",
                f"Based on {ranked.sessions} historical sessions",
            ),
            prioritized=_is_location_priority(ctx, trainer_key, scheduled.location),
        )
        if _beats(candidate, best):
            best = candidate
    return best


def _replacement_suggestion(
    suggestion_id: str,
    scheduled: ScheduledClass,
    candidate: _Candidate,
) -> Suggestion:
    same_format = candidate.format_name == scheduled.format_name
    gain = candidate.projected_fill_rate - scheduled.fill_rate
    if same_format:
        reason = (
            f"Replace {scheduled.trainer} with {candidate.trainer} - "
            f"better performer for {scheduled.format_name}"
        )
    else:
        reason = (
            f"Replace {scheduled.format_name} with {candidate.format_name} "
            f"taught by {candidate.trainer}"
        )
    return Suggestion(
        suggestion_id=suggestion_id,
        suggestion_type=(
            SuggestionType.REPLACE_TRAINER if same_format else SuggestionType.REPLACE_CLASS
        ),
        priority=_replacement_priority(scheduled.fill_rate),
        confidence=candidate.confidence,
        original=ClassSnapshot.of(scheduled),
        suggested=SuggestedClass(
            format_name=candidate.format_name,
            trainer=candidate.trainer,
            day=scheduled.day,
            time=scheduled.time,
            location=scheduled.location,
            projected_fill_rate=candidate.projected_fill_rate,
            projected_check_ins=candidate.projected_check_ins,
        ),
        reason=reason,
        impact=f"+{round(gain)}% fill rate improvement expected",
        data_points=candidate.data_points,
    )


def find_underperforming_replacements(ctx: _OptimizationContext) -> list[Suggestion]:
    location_averages = {
        location: average([scheduled.fill_rate for scheduled in classes])
        for location, classes in group_by(ctx.schedule, lambda c: c.location).items()
    }

    suggestions: list[Suggestion] = []
    for scheduled in ctx.schedule:
        location_avg = location_averages.get(scheduled.location, UNDERPERFORMING_FLOOR)
        threshold = min(UNDERPERFORMING_FLOOR, location_avg * UNDERPERFORMING_LOCATION_RATIO)
        if scheduled.fill_rate >= threshold:
            continue
        if scheduled.session_count < MIN_EVIDENCE_SESSIONS:
            continue

        best: Optional[_Candidate] = None
        for candidate in (
            _format_swap_candidate(ctx, scheduled),
            _trainer_swap_candidate(ctx, scheduled),
        ):
            if candidate is not None and _beats(candidate, best):
                best = candidate
        if best is None or best.projected_fill_rate < scheduled.fill_rate + MIN_IMPROVEMENT:
            continue
        suggestions.append(
            ctx.claim(_replacement_suggestion(f"replace-{scheduled.class_id}", scheduled, best))
        )
    return suggestions


def _hour_balancing_trainers(ctx: _OptimizationContext) -> list[TrainerProfile]:
    eligible: list[TrainerProfile] = []
    for trainer_key, profile in ctx.profiles.trainers.items():
        if ctx.config.is_blocked(trainer_key):
            continue
        if ctx.config.priority_trainers and not ctx.config.is_prioritized(trainer_key):
            continue
        eligible.append(profile)
    return eligible


def _leaves_enough_days_off(work_days: set[str], day: str, min_days_off: int) -> bool:
    days_after = len(work_days | {day})
    return DAYS_PER_WEEK - days_after >= min_days_off


def _add_suggestion(
    ctx: _OptimizationContext,
    profile: TrainerProfile,
    combo: BestCombination,
    hours: int,
) -> Suggestion:
    target = ctx.config.target_trainer_hours
    return Suggestion(
        suggestion_id=(
            f"add-{profile.normalized_name}-{combo.day}-{combo.time}-{combo.location}"
        ),
        suggestion_type=SuggestionType.ADD_CLASS,
        priority=(
            SuggestionPriority.HIGH if combo.avg_fill_rate > 80 else SuggestionPriority.MEDIUM
        ),
        confidence=float(min(80, 40 + combo.sessions * 10)),
        original=ClassSnapshot(day=combo.day, time=combo.time, location=combo.location),
        suggested=SuggestedClass(
            format_name=combo.format_name,
            trainer=profile.name,
            day=combo.day,
            time=combo.time,
            location=combo.location,
            projected_fill_rate=combo.avg_fill_rate,
            projected_check_ins=combo.avg_check_ins,
        ),
        reason=(
            f"Add {combo.format_name} with {profile.name} - strong historical performance"
        ),
        impact=f"{profile.name} needs more hours ({hours}/{target})",
        data_points=(
            f"{round(combo.avg_fill_rate)}% fill rate in {combo.sessions} sessions",
            f"{profile.name} excels at {combo.format_name}",
            f"Trainer at {hours} hours, target is {target}",
        ),
    )


def _rebalance_suggestion(
    profile: TrainerProfile,
    combo: BestCombination,
    incumbent: ScheduledClass,
) -> Suggestion:
    candidate = _Candidate(
        format_name=combo.format_name,
        trainer=profile.name,
        trainer_key=profile.normalized_name,
        projected_fill_rate=combo.avg_fill_rate,
        projected_check_ins=_projected_check_ins(
            combo.avg_fill_rate, incumbent.effective_capacity
        ),
        confidence=float(min(80, 40 + combo.sessions * 10)),
        data_points=(
            f"{profile.name} averages {round(combo.avg_fill_rate)}% for "
            f"{combo.format_name} in this slot over {combo.sessions} sessions",
            f"Current class at {round(incumbent.fill_rate)}% fill rate",
            f"{profile.name} is below the weekly hour target",
        ),
    )
    return _replacement_suggestion(
        f"rebalance-{incumbent.class_id}-{profile.normalized_name}",
        incumbent,
        candidate,
    )


def find_hour_balancing_additions(ctx: _OptimizationContext) -> list[Suggestion]:
    suggestions: list[Suggestion] = []
    target = ctx.config.target_trainer_hours
    for profile in _hour_balancing_trainers(ctx):
        trainer_key = profile.normalized_name
        hours = ctx.trainer_hours.get(trainer_key, 0)
        if hours >= target - HOUR_BALANCE_GAP or profile.avg_fill_rate < HOUR_BALANCE_MIN_FILL:
            continue

        work_days = set(ctx.index.work_days.get(trainer_key, set()))
        claimed: set[tuple[str, str]] = set()
        trainer_suggestions: list[Suggestion] = []
        for combo in profile.best_combinations:
            if len(trainer_suggestions) >= MAX_ADDS_PER_TRAINER:
                break
            if ctx.committed_hours(trainer_key) + 1 > ctx.config.max_trainer_hours:
                break
            slot = (combo.day, combo.time)
            if slot in claimed or ctx.index.is_busy(trainer_key, combo.day, combo.time):
                continue
            if ctx.config.is_on_leave(trainer_key, combo.day):
                continue
            if not ctx.config.within_time_window(combo.time):
                continue
            if ctx.config.is_excluded_format(combo.format_name):
                continue
            if not _leaves_enough_days_off(work_days, combo.day, ctx.config.min_days_off):
                continue
            if ctx.config.avoid_multi_location_days:
                other_locations = ctx.index.day_locations.get((trainer_key, combo.day), set()) - {
                    combo.location
                }
                if other_locations:
                    continue

            existing = ctx.index.classes_at(combo.day, combo.time, combo.location)
            if not existing:
                rule = ctx.config.location_rule(combo.location)
                if rule.max_parallel_classes is not None and rule.max_parallel_classes <= 0:
                    continue
                trainer_suggestions.append(ctx.claim(_add_suggestion(ctx, profile, combo, hours)))
            else:
                weakest = min(existing, key=lambda scheduled: scheduled.fill_rate)
                if weakest.fill_rate >= HEALTHY_SLOT_FILL:
                    continue
                if combo.avg_fill_rate < weakest.fill_rate + MIN_IMPROVEMENT:
                    continue
                trainer_suggestions.append(ctx.claim(_rebalance_suggestion(profile, combo, weakest)))

            claimed.add(slot)
            work_days.add(combo.day)
        suggestions.extend(trainer_suggestions)
    return suggestions


def _swap_priority(improvement: float) -> SuggestionPriority:
    if improvement > 20:
        return SuggestionPriority.HIGH
    if improvement > 10:
        return SuggestionPriority.MEDIUM
    return SuggestionPriority.LOW


def _better_trainer_suggestion(
    ctx: _OptimizationContext,
    scheduled: ScheduledClass,
) -> Optional[Suggestion]:
    if scheduled.fill_rate >= SWAP_MAX_CURRENT_FILL:
        return None
    format_profile = ctx.profiles.formats.get(scheduled.format_name)
    if format_profile is None:
        return None

    baseline = _incumbent_baseline(ctx, scheduled)
    chosen: Optional[RankedTrainer] = None
    for ranked in format_profile.top_trainers:
        trainer_key = ranked.normalized_name
        if trainer_key == scheduled.trainer_key:
            continue
        if ranked.avg_fill_rate <= baseline + MIN_IMPROVEMENT:
            continue
        if not _trainer_available(
            ctx, trainer_key, scheduled.day, scheduled.time_key, replacing=scheduled
        ):
            continue
        if not _location_track_record(
            ctx, trainer_key, scheduled.location, min_fill_rate=SWAP_MIN_LOCATION_FILL
        ):
            continue
        chosen = ranked
        break

    if chosen is None:
        return None

    improvement = chosen.avg_fill_rate - scheduled.fill_rate
    return Suggestion(
        suggestion_id=f"swap-trainer-{scheduled.class_id}",
        suggestion_type=SuggestionType.REPLACE_TRAINER,
        priority=_swap_priority(improvement),
        confidence=float(min(85, 50 + chosen.sessions * 5)),
        original=ClassSnapshot.of(scheduled),
        suggested=SuggestedClass(
            format_name=scheduled.format_name,
            trainer=chosen.name,
            day=scheduled.day,
            time=scheduled.time,
            location=scheduled.location,
            projected_fill_rate=chosen.avg_fill_rate,
            projected_check_ins=_projected_check_ins(
                chosen.avg_fill_rate, scheduled.effective_capacity
            ),
        ),
        reason=(
            f"{chosen.name} is a top performer for {scheduled.format_name} "
            f"with {round(chosen.avg_fill_rate)}% fill rate"
        ),
        impact=f"+{round(improvement)}% fill rate improvement expected",
        data_points=(
            f"{chosen.name}: {round(chosen.avg_fill_rate)}% avg fill rate",
            f"Current: {scheduled.trainer} at {round(scheduled.fill_rate)}%",
            f"{chosen.sessions} sessions analyzed",
        ),
    )


def find_trainer_swaps(ctx: _OptimizationContext) -> list[Suggestion]:
    suggestions: list[Suggestion] = []
    for scheduled in ctx.schedule:
        suggestion = _better_trainer_suggestion(ctx, scheduled)
        if suggestion is not None:
            suggestions.append(ctx.claim(suggestion))
    return suggestions


def find_redundant_classes(ctx: _OptimizationContext) -> list[Suggestion]:
    suggestions: list[Suggestion] = []
    remaining = Counter(scheduled.location for scheduled in ctx.schedule)
    slot_groups = group_by(ctx.schedule, lambda c: (c.day, c.time_key, c.location))
    for (day, time_key, location), classes in slot_groups.items():
        if len(classes) < 2:
            continue
        for category, same_category in group_by(
            classes, lambda c: format_category(c.format_name)
        ).items():
            if len(same_category) < 2:
                continue
            weakest = min(same_category, key=lambda scheduled: scheduled.fill_rate)
            if weakest.fill_rate >= REDUNDANT_MAX_FILL:
                continue
            rule = ctx.config.location_constraints.get(location)
            if rule is not None and remaining[location] - 1 < rule.min_classes:
                continue
            remaining[location] -= 1
            competitors = [
                f"{scheduled.format_name} with {scheduled.trainer} "
                f"({round(scheduled.fill_rate)}%)"
                for scheduled in same_category
                if scheduled.class_id != weakest.class_id
            ]
            suggestions.append(
                Suggestion(
                    suggestion_id=f"remove-{weakest.class_id}",
                    suggestion_type=SuggestionType.REMOVE_CLASS,
                    priority=SuggestionPriority.MEDIUM,
                    confidence=REDUNDANT_CONFIDENCE,
                    original=ClassSnapshot.of(weakest),
                    suggested=SuggestedClass(
                        format_name="",
                        trainer="",
                        day=weakest.day,
                        time=weakest.time,
                        location=weakest.location,
                    ),
                    reason=(
                        f"Remove redundant {weakest.format_name} - similar "
                        f"{category.value} format already running at same time"
                    ),
                    impact=f"Free up trainer {weakest.trainer} for higher-performing slots",
                    data_points=(
                        f"Only {round(weakest.fill_rate)}% fill rate",
                        f"{len(classes)} classes running at {day} {time_key} in {location}",
                        "Competing with " + ", ".join(competitors),
                    ),
                )
            )
    return suggestions


def _lookup_format(ctx: _OptimizationContext, format_name: str) -> Optional[FormatProfile]:
    profile = ctx.profiles.formats.get(format_name)
    if profile is not None:
        return profile
    wanted = format_name.strip().lower()
    for name, candidate in ctx.profiles.formats.items():
        if name.strip().lower() == wanted:
            return candidate
    return None


def find_missing_required_formats(ctx: _OptimizationContext) -> list[Suggestion]:
    suggestions: list[Suggestion] = []
    for location, rule in ctx.config.location_constraints.items():
        if not rule.required_formats:
            continue
        present = {
            scheduled.format_name.strip().lower()
            for scheduled in ctx.schedule
            if scheduled.location == location
        }
        location_profile = ctx.profiles.locations.get(location)
        capacity = int(round(location_profile.avg_capacity)) if location_profile else 0
        capacity = capacity or 20

        for required in rule.required_formats:
            if required.strip().lower() in present:
                continue
            format_profile = _lookup_format(ctx, required)
            if format_profile is None:
                continue
            suggestion = _required_format_addition(ctx, location, capacity, format_profile, rule)
            if suggestion is not None:
                suggestions.append(ctx.claim(suggestion))
    return suggestions


def _required_format_addition(
    ctx: _OptimizationContext,
    location: str,
    capacity: int,
    format_profile: FormatProfile,
    rule: LocationRule,
) -> Optional[Suggestion]:
    for slot in format_profile.best_time_slots:
        if not ctx.config.within_time_window(slot.time):
            continue
        occupying = ctx.index.classes_at(slot.day, slot.time, location)
        if rule.max_parallel_classes is not None and len(occupying) >= rule.max_parallel_classes:
            continue
        for ranked in format_profile.top_trainers:
            if not _trainer_available(ctx, ranked.normalized_name, slot.day, slot.time):
                continue
            if not _location_track_record(ctx, ranked.normalized_name, location):
                continue
            return Suggestion(
                suggestion_id=f"require-{normalize_name(location)}-{format_profile.normalized_name}",
                suggestion_type=SuggestionType.ADD_CLASS,
                priority=SuggestionPriority.MEDIUM,
                confidence=REQUIRED_FORMAT_CONFIDENCE,
                original=ClassSnapshot(day=slot.day, time=slot.time, location=location),
                suggested=SuggestedClass(
                    format_name=format_profile.name,
                    trainer=ranked.name,
                    day=slot.day,
                    time=slot.time,
                    location=location,
                    projected_fill_rate=slot.avg_fill_rate,
                    projected_check_ins=_projected_check_ins(slot.avg_fill_rate, capacity),
                ),
                reason=f"{format_profile.name} is a required format for {location}",
                impact=f"Restores required {format_profile.category.value} coverage",
                data_points=(
                    f"No {format_profile.name} currently scheduled at {location}",
                    f"{format_profile.name} averages {round(slot.avg_fill_rate)}% "
                    f"on {slot.day} at {slot.time}",
                    f"{ranked.name} averages {round(ranked.avg_fill_rate)}% "
                    f"for {format_profile.name}",
                ),
            )
    return None


def rank_suggestions(suggestions: Sequence[Suggestion], limit: int) -> list[Suggestion]:
    """Sort by (priority, confidence desc), merge same-target duplicates, truncate."""
    ranked = sorted(suggestions, key=lambda suggestion: suggestion.sort_key)
    seen: set[tuple[str, str, str]] = set()
    merged: list[Suggestion] = []
    for suggestion in ranked:
        if suggestion.original.class_id:
            target = (
                suggestion.original.class_id,
                suggestion.suggested.format_name,
                normalize_name(suggestion.suggested.trainer),
            )
            if target in seen:
                continue
            seen.add(target)
        merged.append(suggestion)
    return merged[: max(limit, 0)]


def generate_optimizations(
    current_schedule: Sequence[ScheduledClass],
    config: OptimizationConfig,
    profiles: ProfileSet,
    trainer_hours: Optional[Mapping[str, int]] = None,
) -> OptimizationResult:
    """Run every suggestion stage and aggregate the ranked result.

    ``trainer_hours`` defaults to the live schedule's slot counts and is
    never written back onto the profiles.
    """
    hours = dict(trainer_hours) if trainer_hours is not None else current_trainer_hours(
        current_schedule
    )
    ctx = _OptimizationContext(
        schedule=tuple(current_schedule),
        config=config,
        profiles=profiles,
        trainer_hours=hours,
        index=_ScheduleIndex.build(current_schedule),
    )

    suggestions: list[Suggestion] = []
    suggestions.extend(find_underperforming_replacements(ctx))
    suggestions.extend(find_hour_balancing_additions(ctx))
    suggestions.extend(find_trainer_swaps(ctx))
    suggestions.extend(find_redundant_classes(ctx))
    suggestions.extend(find_missing_required_formats(ctx))

    ranked = rank_suggestions(suggestions, config.max_suggestions)
    summarized = _hour_balancing_trainers(ctx)
    result = OptimizationResult(
        suggestions=ranked,
        trainer_hours_summary=build_trainer_hours_summary(
            summarized,
            hours,
            ranked,
            config.target_trainer_hours,
        ),
        format_mix_impact=calculate_format_mix_impact(ranked, current_schedule),
        projected_impact=calculate_projected_impact(
            ranked,
            summarized,
            hours,
            config.target_trainer_hours,
        ),
        insights=generate_insights(current_schedule, ranked, profiles, hours, config),
    )
    logger.debug(
        "Suggestions generated | candidates=%s | returned=%s | schedule_classes=%s",
        len(suggestions),
        len(ranked),
        len(current_schedule),
    )
    return result
