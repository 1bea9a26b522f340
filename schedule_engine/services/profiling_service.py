"""Historical profiler: turns raw sessions into trainer/format/slot/location profiles."""

from __future__ import annotations

from collections import Counter
from datetime import date
from typing import Iterable, Sequence

from schedule_engine.domain.classification import (
    format_category,
    format_difficulty,
    is_peak_hour,
)
from schedule_engine.domain.models import HistoricalSession, normalize_name
from schedule_engine.domain.profiles import (
    BestCombination,
    FormatProfile,
    LocationPerformance,
    LocationProfile,
    ProfileSet,
    RankedFormat,
    RankedSlot,
    RankedTrainer,
    SlotPerformance,
    TimeSlotProfile,
    TrainerFormatPerformance,
    TrainerLocationPerformance,
    TrainerProfile,
    Trend,
)
from schedule_engine.services.metrics import average, clamp, group_by, standard_deviation
from schedule_engine.utils.logger import get_logger


logger = get_logger(__name__)

MIN_TRAINER_SESSIONS = 3
MIN_FORMAT_SESSIONS = 3
MIN_TIME_SLOT_SESSIONS = 2
MIN_COMBINATION_SESSIONS = 2
MIN_RANKED_SESSIONS = 2
TREND_THRESHOLD = 5.0
PEAK_FILL_RATE = 70.0
MAX_BEST_COMBINATIONS = 10
MAX_TYPICAL_DAYS = 5
MAX_TYPICAL_TIMES = 6
MAX_TOP_TRAINERS = 5
MAX_BEST_TIME_SLOTS = 5
MAX_SLOT_FORMATS = 3
MAX_LOCATION_TOP_FORMATS = 3
UNKNOWN = "Unknown"


def _fill_rates(sessions: Iterable[HistoricalSession]) -> list[float]:
    return [session.fill_rate for session in sessions]


def _check_ins(sessions: Iterable[HistoricalSession]) -> list[float]:
    return [float(session.checked_in or 0) for session in sessions]


def _format_of(session: HistoricalSession) -> str:
    return session.format_name or UNKNOWN


def _location_of(session: HistoricalSession) -> str:
    return session.location or UNKNOWN


def compute_trend(sessions: Sequence[HistoricalSession]) -> Trend:
    """Compare first-half vs second-half fill rate of a date-ordered group.

    ``sorted`` is stable, so sessions sharing a date keep their input order.
    """
    ordered = sorted(sessions, key=lambda session: session.session_date)
    fill_rates = _fill_rates(ordered)
    half_point = len(fill_rates) // 2
    first_half_avg = average(fill_rates[:half_point])
    second_half_avg = average(fill_rates[half_point:])
    # Rounded so float noise cannot push an exact threshold move over the line.
    delta = round(second_half_avg - first_half_avg, 6)
    if delta > TREND_THRESHOLD:
        return Trend.IMPROVING
    if delta < -TREND_THRESHOLD:
        return Trend.DECLINING
    return Trend.STABLE


def _best_key_by_fill(groups: dict[str, list[HistoricalSession]]) -> str:
    best_key = ""
    best_avg = 0.0
    for key, group in groups.items():
        group_avg = average(_fill_rates(group))
        if group_avg > best_avg:
            best_avg = group_avg
            best_key = key
    return best_key


def _top_by_frequency(values: Iterable[str], limit: int) -> tuple[str, ...]:
    return tuple(value for value, _ in Counter(values).most_common(limit))


def _build_trainer_profile(
    trainer_key: str,
    sessions: list[HistoricalSession],
) -> TrainerProfile:
    fill_rates = _fill_rates(sessions)

    format_performance: dict[str, TrainerFormatPerformance] = {}
    for format_name, format_sessions in group_by(sessions, _format_of).items():
        format_performance[format_name] = TrainerFormatPerformance(
            sessions=len(format_sessions),
            avg_fill_rate=average(_fill_rates(format_sessions)),
            avg_check_ins=average(_check_ins(format_sessions)),
            revenue=float(sum(session.revenue or 0.0 for session in format_sessions)),
            best_time=_best_key_by_fill(group_by(format_sessions, lambda s: s.time_key)),
            best_day=_best_key_by_fill(group_by(format_sessions, lambda s: s.day or UNKNOWN)),
        )

    time_slot_performance = {
        slot: SlotPerformance(
            sessions=len(slot_sessions),
            avg_fill_rate=average(_fill_rates(slot_sessions)),
            avg_check_ins=average(_check_ins(slot_sessions)),
        )
        for slot, slot_sessions in group_by(sessions, lambda s: (s.day, s.time_key)).items()
    }

    location_performance: dict[str, TrainerLocationPerformance] = {}
    for location, location_sessions in group_by(sessions, _location_of).items():
        ranked_formats = sorted(
            (
                (format_name, average(_fill_rates(format_sessions)))
                for format_name, format_sessions in group_by(location_sessions, _format_of).items()
            ),
            key=lambda item: item[1],
            reverse=True,
        )
        location_performance[location] = TrainerLocationPerformance(
            sessions=len(location_sessions),
            avg_fill_rate=average(_fill_rates(location_sessions)),
            top_formats=tuple(name for name, _ in ranked_formats[:MAX_LOCATION_TOP_FORMATS]),
        )

    combinations = [
        BestCombination(
            format_name=format_name,
            day=day,
            time=time_key,
            location=location,
            avg_fill_rate=average(_fill_rates(combo_sessions)),
            avg_check_ins=average(_check_ins(combo_sessions)),
            sessions=len(combo_sessions),
        )
        for (format_name, day, time_key, location), combo_sessions in group_by(
            sessions,
            lambda s: (_format_of(s), s.day, s.time_key, _location_of(s)),
        ).items()
        if len(combo_sessions) >= MIN_COMBINATION_SESSIONS
    ]
    combinations.sort(key=lambda combo: combo.avg_fill_rate, reverse=True)

    return TrainerProfile(
        name=sessions[0].trainer or trainer_key,
        normalized_name=trainer_key,
        total_sessions=len(sessions),
        avg_fill_rate=average(fill_rates),
        avg_check_ins=average(_check_ins(sessions)),
        consistency=clamp(100.0 - standard_deviation(fill_rates), 0.0, 100.0),
        trend=compute_trend(sessions),
        format_performance=format_performance,
        time_slot_performance=time_slot_performance,
        location_performance=location_performance,
        best_combinations=tuple(combinations[:MAX_BEST_COMBINATIONS]),
        typical_work_days=_top_by_frequency((s.day or "" for s in sessions), MAX_TYPICAL_DAYS),
        typical_time_slots=_top_by_frequency((s.time_key for s in sessions), MAX_TYPICAL_TIMES),
    )


def _build_format_profile(format_name: str, sessions: list[HistoricalSession]) -> FormatProfile:
    top_trainers = [
        RankedTrainer(
            name=trainer_sessions[0].trainer or trainer_key,
            normalized_name=trainer_key,
            avg_fill_rate=average(_fill_rates(trainer_sessions)),
            sessions=len(trainer_sessions),
        )
        for trainer_key, trainer_sessions in group_by(
            sessions,
            lambda s: normalize_name(s.trainer),
        ).items()
        if trainer_key and len(trainer_sessions) >= MIN_RANKED_SESSIONS
    ]
    top_trainers.sort(key=lambda ranked: ranked.avg_fill_rate, reverse=True)

    best_time_slots = [
        RankedSlot(
            day=day,
            time=time_key,
            avg_fill_rate=average(_fill_rates(slot_sessions)),
            sessions=len(slot_sessions),
        )
        for (day, time_key), slot_sessions in group_by(
            sessions,
            lambda s: (s.day, s.time_key),
        ).items()
        if len(slot_sessions) >= MIN_RANKED_SESSIONS
    ]
    best_time_slots.sort(key=lambda ranked: ranked.avg_fill_rate, reverse=True)

    return FormatProfile(
        name=format_name,
        normalized_name=normalize_name(format_name),
        total_sessions=len(sessions),
        avg_fill_rate=average(_fill_rates(sessions)),
        avg_check_ins=average(_check_ins(sessions)),
        avg_revenue=average([float(session.revenue or 0.0) for session in sessions]),
        trend=compute_trend(sessions),
        difficulty=format_difficulty(format_name),
        category=format_category(format_name),
        top_trainers=tuple(top_trainers[:MAX_TOP_TRAINERS]),
        best_time_slots=tuple(best_time_slots[:MAX_BEST_TIME_SLOTS]),
        location_performance={
            location: LocationPerformance(
                sessions=len(location_sessions),
                avg_fill_rate=average(_fill_rates(location_sessions)),
            )
            for location, location_sessions in group_by(sessions, _location_of).items()
        },
    )


def _build_time_slot_profile(
    day: str,
    time_key: str,
    sessions: list[HistoricalSession],
) -> TimeSlotProfile:
    ranked = [
        RankedFormat(
            name=format_name,
            avg_fill_rate=average(_fill_rates(format_sessions)),
            sessions=len(format_sessions),
        )
        for format_name, format_sessions in group_by(sessions, _format_of).items()
        if len(format_sessions) >= MIN_RANKED_SESSIONS
    ]
    top_formats = sorted(ranked, key=lambda item: item.avg_fill_rate, reverse=True)
    worst_formats = sorted(ranked, key=lambda item: item.avg_fill_rate)
    return TimeSlotProfile(
        day=day,
        time=time_key,
        total_sessions=len(sessions),
        avg_fill_rate=average(_fill_rates(sessions)),
        avg_check_ins=average(_check_ins(sessions)),
        is_peak_time=is_peak_hour(time_key),
        top_formats=tuple(top_formats[:MAX_SLOT_FORMATS]),
        worst_formats=tuple(worst_formats[:MAX_SLOT_FORMATS]),
    )


def _build_location_profile(location: str, sessions: list[HistoricalSession]) -> LocationProfile:
    format_mix = {
        category.value: len(category_sessions)
        for category, category_sessions in group_by(
            sessions,
            lambda s: format_category(s.format_name),
        ).items()
    }
    trainer_hours = {
        trainer_key: len(trainer_sessions)
        for trainer_key, trainer_sessions in group_by(
            sessions,
            lambda s: normalize_name(s.trainer),
        ).items()
        if trainer_key
    }
    peak_hours: list[str] = []
    off_peak_hours: list[str] = []
    for hour, hour_sessions in group_by(sessions, lambda s: s.time_key[:2]).items():
        if average(_fill_rates(hour_sessions)) >= PEAK_FILL_RATE:
            peak_hours.append(hour)
        else:
            off_peak_hours.append(hour)

    return LocationProfile(
        name=location,
        total_sessions=len(sessions),
        avg_fill_rate=average(_fill_rates(sessions)),
        avg_capacity=average([float(session.capacity or 0) for session in sessions]),
        format_mix=format_mix,
        trainer_hours=trainer_hours,
        peak_hours=tuple(sorted(peak_hours)),
        off_peak_hours=tuple(sorted(off_peak_hours)),
    )


def build_profiles(
    sessions: Sequence[HistoricalSession],
    date_from: date,
    date_to: date,
) -> ProfileSet:
    """Build all four profile families from sessions inside ``[date_from, date_to]``.

    Every call produces a fresh ``ProfileSet``. Groups below the minimum
    sample size are skipped; an empty window yields four empty collections.
    """
    window = [
        session
        for session in sessions
        if session.session_date is not None and date_from <= session.session_date <= date_to
    ]
    if not window:
        logger.debug(
            "Profile build skipped, no sessions in window | date_from=%s | date_to=%s",
            date_from,
            date_to,
        )
        return ProfileSet()

    trainer_groups = {
        key: group
        for key, group in group_by(window, lambda s: normalize_name(s.trainer)).items()
        if key
    }
    trainers = {
        key: _build_trainer_profile(key, group)
        for key, group in trainer_groups.items()
        if len(group) >= MIN_TRAINER_SESSIONS
    }
    formats = {
        name: _build_format_profile(name, group)
        for name, group in group_by(window, _format_of).items()
        if len(group) >= MIN_FORMAT_SESSIONS
    }
    time_slots = {
        (day, time_key): _build_time_slot_profile(day, time_key, group)
        for (day, time_key), group in group_by(window, lambda s: (s.day, s.time_key)).items()
        if len(group) >= MIN_TIME_SLOT_SESSIONS
    }
    locations = {
        name: _build_location_profile(name, group)
        for name, group in group_by(window, _location_of).items()
    }

    logger.debug(
        (
            "Profiles built | sessions=%s | trainers=%s | formats=%s | "
            "time_slots=%s | locations=%s"
        ),
        len(window),
        len(trainers),
        len(formats),
        len(time_slots),
        len(locations),
    )
    return ProfileSet(
        trainers=trainers,
        formats=formats,
        time_slots=time_slots,
        locations=locations,
    )
