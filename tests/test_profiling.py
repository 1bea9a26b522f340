from __future__ import annotations

from datetime import date, timedelta

import pytest

from schedule_engine.domain.models import HistoricalSession
from schedule_engine.domain.profiles import FormatCategory, Trend
from schedule_engine.services.profiling_service import build_profiles, compute_trend


WINDOW_START = date(2024, 1, 1)
WINDOW_END = date(2024, 3, 31)


def _session(
    trainer: str = "Avery Stone",
    format_name: str = "HIIT Blast",
    location: str = "Downtown",
    day: str = "Monday",
    time: str = "07:00",
    session_date: date = WINDOW_START,
    capacity: int = 20,
    checked_in: int = 10,
) -> HistoricalSession:
    return HistoricalSession(
        trainer=trainer,
        format_name=format_name,
        location=location,
        day=day,
        time=time,
        session_date=session_date,
        capacity=capacity,
        checked_in=checked_in,
    )


def _weekly(count: int, **kwargs) -> list[HistoricalSession]:
    return [
        _session(session_date=WINDOW_START + timedelta(weeks=week), **kwargs)
        for week in range(count)
    ]


def test_empty_sessions_yield_four_empty_collections() -> None:
    profiles = build_profiles([], WINDOW_START, WINDOW_END)

    assert profiles.trainers == {}
    assert profiles.formats == {}
    assert profiles.time_slots == {}
    assert profiles.locations == {}
    assert profiles.is_empty


def test_trainer_profile_emitted_exactly_at_minimum() -> None:
    at_minimum = build_profiles(_weekly(3), WINDOW_START, WINDOW_END)
    below_minimum = build_profiles(_weekly(2), WINDOW_START, WINDOW_END)

    assert "averystone" in at_minimum.trainers
    assert "averystone" not in below_minimum.trainers
    assert "HIIT Blast" in at_minimum.formats
    assert "HIIT Blast" not in below_minimum.formats


def test_time_slot_profile_needs_two_sessions() -> None:
    one = build_profiles(_weekly(1), WINDOW_START, WINDOW_END)
    two = build_profiles(_weekly(2), WINDOW_START, WINDOW_END)

    assert ("Monday", "07:00") not in one.time_slots
    assert ("Monday", "07:00") in two.time_slots


def test_sessions_outside_window_are_ignored() -> None:
    sessions = _weekly(3) + [_session(trainer="Late Trainer", session_date=date(2024, 5, 1))]
    profiles = build_profiles(sessions, WINDOW_START, WINDOW_END)

    assert "latetrainer" not in profiles.trainers
    assert profiles.locations["Downtown"].total_sessions == 3


def test_window_bounds_are_inclusive() -> None:
    sessions = [
        _session(session_date=WINDOW_START),
        _session(session_date=WINDOW_END),
        _session(session_date=WINDOW_END),
    ]
    profiles = build_profiles(sessions, WINDOW_START, WINDOW_END)

    assert profiles.trainers["averystone"].total_sessions == 3


def test_trainer_profile_aggregates() -> None:
    sessions = _weekly(4, checked_in=18)
    profile = build_profiles(sessions, WINDOW_START, WINDOW_END).trainers["averystone"]

    assert profile.name == "Avery Stone"
    assert profile.avg_fill_rate == pytest.approx(90.0)
    assert profile.avg_check_ins == pytest.approx(18.0)
    assert profile.consistency == 100.0
    assert profile.typical_work_days == ("Monday",)
    assert profile.location_performance["Downtown"].sessions == 4
    assert profile.format_performance["HIIT Blast"].best_day == "Monday"
    assert profile.best_combinations[0].format_name == "HIIT Blast"
    assert profile.best_combinations[0].sessions == 4


def test_consistency_is_clamped_for_pathological_fill_rates() -> None:
    sessions = [
        _session(session_date=WINDOW_START, capacity=1, checked_in=0),
        _session(session_date=WINDOW_START + timedelta(days=1), capacity=1, checked_in=500),
        _session(session_date=WINDOW_START + timedelta(days=2), capacity=0, checked_in=5),
    ]
    profile = build_profiles(sessions, WINDOW_START, WINDOW_END).trainers["averystone"]

    assert 0.0 <= profile.consistency <= 100.0
    assert profile.consistency == 0.0


def test_zero_capacity_sessions_have_zero_fill_rate() -> None:
    assert _session(capacity=0, checked_in=5).fill_rate == 0.0


def test_trend_sorts_by_date_before_splitting() -> None:
    early = [_session(session_date=WINDOW_START + timedelta(days=i), checked_in=6) for i in range(3)]
    late = [_session(session_date=WINDOW_START + timedelta(days=30 + i), checked_in=18) for i in range(3)]

    assert compute_trend(late + early) == Trend.IMPROVING
    assert compute_trend(list(reversed(early + late))) == Trend.IMPROVING
    assert compute_trend(late[:1] + early[:1]) == Trend.IMPROVING


def test_trend_within_threshold_is_stable() -> None:
    sessions = [
        _session(session_date=WINDOW_START, checked_in=10),
        _session(session_date=WINDOW_START + timedelta(days=7), checked_in=10),
        _session(session_date=WINDOW_START + timedelta(days=14), checked_in=11),
        _session(session_date=WINDOW_START + timedelta(days=21), checked_in=11),
    ]
    assert compute_trend(sessions) == Trend.STABLE


def test_format_profile_ranks_trainers_by_fill_rate() -> None:
    sessions = _weekly(3, trainer="Avery Stone", checked_in=18) + _weekly(
        3, trainer="Blake Rivers", checked_in=8
    )
    profile = build_profiles(sessions, WINDOW_START, WINDOW_END).formats["HIIT Blast"]

    assert [ranked.normalized_name for ranked in profile.top_trainers] == [
        "averystone",
        "blakerivers",
    ]
    assert profile.category == FormatCategory.HIIT
    assert profile.location_performance["Downtown"].sessions == 6


def test_time_slot_profile_marks_peak_and_ranks_formats() -> None:
    sessions = _weekly(2, format_name="HIIT Blast", checked_in=18) + _weekly(
        2, format_name="Yoga Flow", checked_in=6
    )
    slot = build_profiles(sessions, WINDOW_START, WINDOW_END).time_slots[("Monday", "07:00")]

    assert slot.is_peak_time
    assert slot.top_formats[0].name == "HIIT Blast"
    assert slot.worst_formats[0].name == "Yoga Flow"


def test_location_profile_counts_category_mix() -> None:
    sessions = _weekly(2, format_name="HIIT Blast") + _weekly(1, format_name="Rhythm Ride")
    location = build_profiles(sessions, WINDOW_START, WINDOW_END).locations["Downtown"]

    assert location.format_mix == {"hiit": 2, "cycle": 1}
    assert location.avg_capacity == 20.0


def test_blank_location_and_format_group_under_unknown() -> None:
    sessions = _weekly(3, location="", format_name="")
    profiles = build_profiles(sessions, WINDOW_START, WINDOW_END)

    assert "Unknown" in profiles.locations
    assert "Unknown" in profiles.formats


def test_exact_threshold_fill_rates_are_exact() -> None:
    assert _session(capacity=20, checked_in=11).fill_rate == 55.0
    assert _session(capacity=3, checked_in=1).fill_rate == pytest.approx(33.333333)


def test_null_counts_are_treated_as_zero() -> None:
    sessions = _weekly(3, checked_in=None) + _weekly(3, trainer="Blake Rivers", capacity=None)
    profiles = build_profiles(sessions, WINDOW_START, WINDOW_END)

    assert profiles.trainers["averystone"].avg_fill_rate == 0.0
    assert profiles.trainers["averystone"].avg_check_ins == 0.0
    assert profiles.trainers["blakerivers"].avg_fill_rate == 0.0
    assert profiles.locations["Downtown"].total_sessions == 6
