from __future__ import annotations

from datetime import date

import pandas as pd

from schedule_engine.services.session_loader import sessions_from_frame, sessions_from_records


def _row(**overrides) -> dict:
    row = {
        "Trainer": " Avery Stone ",
        "Class": "HIIT Blast",
        "Location": "Downtown",
        "Day": "Monday",
        "Time": "07:00:00",
        "Date": "2024-01-01",
        "Capacity": 20,
        "CheckedIn": 18,
        "Booked": 19,
        "LateCancelled": 1,
        "Revenue": 240.5,
    }
    row.update(overrides)
    return row


def test_records_are_converted_to_sessions() -> None:
    sessions = sessions_from_records([_row()])

    assert len(sessions) == 1
    session = sessions[0]
    assert session.trainer == "Avery Stone"
    assert session.session_date == date(2024, 1, 1)
    assert session.time_key == "07:00"
    assert session.capacity == 20
    assert session.checked_in == 18
    assert session.revenue == 240.5
    assert session.fill_rate == 90.0


def test_unparseable_dates_are_dropped() -> None:
    sessions = sessions_from_records([_row(), _row(Date="not a date"), _row(Date=None)])
    assert len(sessions) == 1


def test_missing_counts_become_zero() -> None:
    frame = pd.DataFrame(
        [
            {
                "Trainer": "Blake Rivers",
                "Class": "Power Cycle",
                "Location": "Uptown",
                "Day": "Tuesday",
                "Time": "18:00",
                "Date": "2024-01-02",
                "CheckedIn": "n/a",
            }
        ]
    )
    session = sessions_from_frame(frame)[0]

    assert session.capacity == 0
    assert session.checked_in == 0
    assert session.booked == 0
    assert session.revenue == 0.0
    assert session.fill_rate == 0.0


def test_missing_day_is_derived_from_date() -> None:
    sessions = sessions_from_records([_row(Day="", Date="2024-01-03"), _row(Day=None, Date="2024-01-06")])
    assert [session.day for session in sessions] == ["Wednesday", "Saturday"]


def test_empty_input_yields_no_sessions() -> None:
    assert sessions_from_records([]) == []
    assert sessions_from_frame(pd.DataFrame()) == []
