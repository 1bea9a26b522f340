"""Adapters from loader rows / DataFrames to ``HistoricalSession`` values."""

from __future__ import annotations

from typing import Any, Iterable, Mapping

import pandas as pd

from schedule_engine.domain.models import HistoricalSession
from schedule_engine.utils.logger import get_logger


logger = get_logger(__name__)

TEXT_COLUMNS = {
    "trainer": "Trainer",
    "format_name": "Class",
    "location": "Location",
    "day": "Day",
    "time": "Time",
}
COUNT_COLUMNS = {
    "capacity": "Capacity",
    "checked_in": "CheckedIn",
    "booked": "Booked",
    "late_cancelled": "LateCancelled",
}
REVENUE_COLUMN = "Revenue"
DATE_COLUMN = "Date"


def sessions_from_records(rows: Iterable[Mapping[str, Any]]) -> list[HistoricalSession]:
    """Convert loader rows keyed by the export column names."""
    return sessions_from_frame(pd.DataFrame(list(rows)))


def sessions_from_frame(frame: pd.DataFrame) -> list[HistoricalSession]:
    """Convert a session export frame; rows with unparseable dates are dropped.

    Missing or non-numeric counts and revenue become 0. A missing ``Day``
    is derived from the session date.
    """
    if frame.empty:
        return []

    frame = frame.copy()
    frame["_date"] = pd.to_datetime(
        frame.get(DATE_COLUMN, pd.Series(index=frame.index, dtype=object)),
        errors="coerce",
    )
    dropped = int(frame["_date"].isna().sum())
    if dropped:
        logger.warning("Session rows dropped, unparseable date | rows=%s", dropped)
    frame = frame.dropna(subset=["_date"])
    if frame.empty:
        return []

    for column in TEXT_COLUMNS.values():
        if column not in frame.columns:
            frame[column] = ""
        frame[column] = frame[column].fillna("").astype(str).str.strip()
    derived_days = frame["_date"].dt.day_name()
    frame[TEXT_COLUMNS["day"]] = frame[TEXT_COLUMNS["day"]].where(
        frame[TEXT_COLUMNS["day"]] != "",
        derived_days,
    )

    for column in [*COUNT_COLUMNS.values(), REVENUE_COLUMN]:
        if column not in frame.columns:
            frame[column] = 0
        frame[column] = pd.to_numeric(frame[column], errors="coerce").fillna(0)

    sessions = [
        HistoricalSession(
            trainer=row[TEXT_COLUMNS["trainer"]],
            format_name=row[TEXT_COLUMNS["format_name"]],
            location=row[TEXT_COLUMNS["location"]],
            day=row[TEXT_COLUMNS["day"]],
            time=row[TEXT_COLUMNS["time"]],
            session_date=row["_date"].date(),
            capacity=int(row[COUNT_COLUMNS["capacity"]]),
            checked_in=int(row[COUNT_COLUMNS["checked_in"]]),
            booked=int(row[COUNT_COLUMNS["booked"]]),
            late_cancelled=int(row[COUNT_COLUMNS["late_cancelled"]]),
            revenue=float(row[REVENUE_COLUMN]),
        )
        for _, row in frame.iterrows()
    ]
    logger.debug("Sessions loaded | rows=%s | dropped=%s", len(sessions), dropped)
    return sessions
