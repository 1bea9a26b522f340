#!/usr/bin/env python3
"""Validate local schedule engine environment readiness."""

from __future__ import annotations

import importlib
import sys
from datetime import date, timedelta
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from schedule_engine.domain.models import HistoricalSession, ScheduledClass
from schedule_engine.services.advisor_service import build_text_client
from schedule_engine.services.optimization_service import ScheduleOptimizationService
from schedule_engine.services.profiling_service import build_profiles
from schedule_engine.utils.config import get_settings

SEPARATOR_LINE = "=" * 44
WINDOW_START = date(2024, 1, 1)


def _print_result(name: str, success: bool, detail: str = "") -> tuple[bool, str]:
    if success:
        return True, f"[PASS] {name}{detail}"
    return False, f"[FAIL] {name}: {detail}"


def _synthetic_sessions() -> list[HistoricalSession]:
    sessions: list[HistoricalSession] = []
    for week in range(6):
        monday = WINDOW_START + timedelta(weeks=week)
        sessions.append(
            HistoricalSession(
                trainer="Avery Stone",
                format_name="HIIT Blast",
                location="Downtown",
                day="Monday",
                time="07:00",
                session_date=monday,
                capacity=20,
                checked_in=18,
            )
        )
        sessions.append(
            HistoricalSession(
                trainer="Blake Rivers",
                format_name="HIIT Blast",
                location="Downtown",
                day="Monday",
                time="07:00",
                session_date=monday + timedelta(days=7 * 6),
                capacity=20,
                checked_in=6,
            )
        )
    return sessions


def main() -> int:
    results: list[str] = []
    all_passed = True
    settings = get_settings()

    # CHECK 1: Python version >= 3.11
    if sys.version_info >= (3, 11):
        ok, line = _print_result("Python " + sys.version.split()[0], True)
    else:
        ok, line = _print_result(
            "Python version >= 3.11",
            False,
            f"found {sys.version.split()[0]}",
        )
    results.append(line)
    all_passed = all_passed and ok

    # CHECK 2: Required packages importable
    package_specs = [
        ("fastapi", "fastapi"),
        ("uvicorn", "uvicorn"),
        ("pydantic", "pydantic"),
        ("numpy", "numpy"),
        ("pandas", "pandas"),
        ("httpx", "httpx"),
        ("pytest", "pytest"),
    ]
    from importlib.metadata import version

    import_errors: list[str] = []
    for module_name, dist_name in package_specs:
        try:
            importlib.import_module(module_name)
            version(dist_name)
        except Exception as exc:  # pragma: no cover - runtime guard
            import_errors.append(f"{module_name} ({exc})")
    if import_errors:
        ok, line = _print_result(
            "Required packages",
            False,
            "missing/unimportable -> " + "; ".join(import_errors),
        )
    else:
        ok, line = _print_result("Required packages: all importable", True)
    results.append(line)
    all_passed = all_passed and ok

    sessions = _synthetic_sessions()
    window_end = WINDOW_START + timedelta(weeks=12)

    # CHECK 3: Profile build
    try:
        profiles = build_profiles(sessions, WINDOW_START, window_end)
        if len(profiles.trainers) != 2:
            raise RuntimeError(f"expected 2 trainer profiles, got {len(profiles.trainers)}")
        ok, line = _print_result(
            "Profile build",
            True,
            f": trainers={len(profiles.trainers)} formats={len(profiles.formats)}",
        )
    except Exception as exc:
        ok, line = _print_result("Profile build", False, str(exc))
    results.append(line)
    all_passed = all_passed and ok

    # CHECK 4: Optimization run
    try:
        service = ScheduleOptimizationService(settings=settings)
        result = service.optimize_schedule(
            sessions=sessions,
            schedule=[
                ScheduledClass(
                    class_id="validation-1",
                    day="Monday",
                    time="07:00",
                    format_name="HIIT Blast",
                    trainer="Blake Rivers",
                    location="Downtown",
                    capacity=20,
                    fill_rate=30.0,
                    avg_check_ins=6.0,
                    session_count=6,
                )
            ],
            date_from=WINDOW_START,
            date_to=window_end,
        )
        if not result.suggestions:
            raise RuntimeError("expected at least one suggestion")
        ok, line = _print_result(
            "Optimization run",
            True,
            f": suggestions={len(result.suggestions)}",
        )
    except Exception as exc:
        ok, line = _print_result("Optimization run", False, str(exc))
    results.append(line)
    all_passed = all_passed and ok

    # CHECK 5: Advisor configuration (informational)
    client = build_text_client(settings)
    results.append(
        "[INFO] AI advisor: "
        + ("configured" if client is not None else "disabled (rule-based only)")
    )

    print(SEPARATOR_LINE)
    print(" Schedule Engine Environment Validation")
    print(SEPARATOR_LINE)
    for line in results:
        print(f" {line}")
    print(SEPARATOR_LINE)
    if all_passed:
        print(" All checks passed. Environment is ready.")
        print(SEPARATOR_LINE)
        return 0
    print(" One or more checks failed.")
    print(SEPARATOR_LINE)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
