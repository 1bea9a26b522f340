"""Keyword rules that tag class formats and clock times."""

from __future__ import annotations

from schedule_engine.domain.profiles import FormatCategory, FormatDifficulty


# Ordered: the first rule whose keyword is a substring of the format wins.
CATEGORY_RULES: tuple[tuple[FormatCategory, tuple[str, ...]], ...] = (
    (FormatCategory.CYCLE, ("cycle", "spin", "ride")),
    (FormatCategory.YOGA, ("yoga",)),
    (FormatCategory.PILATES, ("pilates", "mat", "reformer")),
    (FormatCategory.HIIT, ("hiit", "tabata", "bootcamp")),
    (FormatCategory.STRENGTH, ("strength", "sculpt", "lift", "weights")),
    (FormatCategory.BARRE, ("barre",)),
    (FormatCategory.BOXING, ("box",)),
    (FormatCategory.DANCE, ("dance", "zumba")),
    (FormatCategory.CARDIO, ("cardio", "aerobic")),
    (FormatCategory.FUNCTIONAL, ("functional", "fit", "trx", "circuit")),
)

DIFFICULTY_RULES: tuple[tuple[FormatDifficulty, tuple[str, ...]], ...] = (
    (FormatDifficulty.BEGINNER, ("basic", "essentials", "intro", "beginner", "gentle")),
    (FormatDifficulty.ADVANCED, ("advanced", "amped", "intense", "power", "pro")),
)

MORNING_PEAK_HOURS = range(6, 10)
EVENING_PEAK_HOURS = range(17, 21)


def format_category(format_name: str) -> FormatCategory:
    lower = (format_name or "").lower()
    for category, keywords in CATEGORY_RULES:
        if any(keyword in lower for keyword in keywords):
            return category
    return FormatCategory.OTHER


def format_difficulty(format_name: str) -> FormatDifficulty:
    lower = (format_name or "").lower()
    for difficulty, keywords in DIFFICULTY_RULES:
        if any(keyword in lower for keyword in keywords):
            return difficulty
    return FormatDifficulty.INTERMEDIATE


def hour_of(time_value: str) -> int:
    """Hour component of ``HH:MM``; unparseable values map to 0."""
    head = (time_value or "").split(":", 1)[0].strip()
    return int(head) if head.isdigit() else 0


def is_peak_hour(time_value: str) -> bool:
    hour = hour_of(time_value)
    return hour in MORNING_PEAK_HOURS or hour in EVENING_PEAK_HOURS
