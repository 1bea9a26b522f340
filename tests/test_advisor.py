from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import replace
from datetime import date, timedelta

import httpx
import pytest

from schedule_engine.domain.constraints import OptimizationConfig
from schedule_engine.domain.models import (
    HistoricalSession,
    ScheduledClass,
    SuggestionPriority,
    SuggestionType,
)
from schedule_engine.services.advisor_service import (
    AdvisorErrorCode,
    AdvisorTransportError,
    GeminiTextClient,
    ScheduleAdvisor,
    ScheduleContext,
    build_text_client,
    strip_code_fences,
)
from schedule_engine.services.profiling_service import build_profiles
from schedule_engine.utils.config import get_settings


WINDOW_START = date(2024, 1, 1)
VALID_KEY = "k" * 32


class _FakeClient:
    def __init__(self, reply: str = "", error: Exception | None = None, delay: float = 0.0):
        self.reply = reply
        self.error = error
        self.delay = delay
        self.prompts: list[str] = []

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.reply


def _build_test_settings(**overrides):
    get_settings.cache_clear()
    defaults = {
        "advisor_enabled": True,
        "advisor_api_key": None,
        "advisor_day_timeout_seconds": 0.05,
        "advisor_week_timeout_seconds": 0.05,
    }
    defaults.update(overrides)
    return replace(get_settings(), **defaults)


def _context(day: str | None = "Monday", location: str | None = "Downtown") -> ScheduleContext:
    sessions = [
        HistoricalSession(
            trainer=trainer,
            format_name="HIIT Blast",
            location="Downtown",
            day="Monday",
            time="07:00",
            session_date=WINDOW_START + timedelta(weeks=week),
            capacity=20,
            checked_in=checked_in,
        )
        for trainer, checked_in in (("Avery Stone", 18), ("Blake Rivers", 6))
        for week in range(4)
    ]
    schedule = [
        ScheduledClass(
            class_id="c1",
            day="Monday",
            time="07:00",
            format_name="HIIT Blast",
            trainer="Blake Rivers",
            location="Downtown",
            capacity=20,
            fill_rate=30.0,
            avg_check_ins=6.0,
            session_count=4,
        ),
        ScheduledClass(
            class_id="c2",
            day="Monday",
            time="18:00",
            format_name="HIIT Blast",
            trainer="Blake Rivers",
            location="Downtown",
            capacity=20,
            fill_rate=50.0,
            avg_check_ins=10.0,
            session_count=4,
        ),
    ]
    return ScheduleContext(
        schedule=schedule,
        profiles=build_profiles(sessions, WINDOW_START, date(2024, 3, 31)),
        config=OptimizationConfig(),
        day=day,
        location=location,
    )


def _advise(client, context: ScheduleContext | None = None, **settings_overrides):
    advisor = ScheduleAdvisor(client, settings=_build_test_settings(**settings_overrides))
    return asyncio.run(advisor.advise(context or _context()))


REPLY = {
    "suggestions": [
        {
            "type": "replace_trainer",
            "originalClass": "hiit blast",
            "originalTrainer": "BLAKE RIVERS",
            "originalTime": "18:00",
            "suggestedClass": "HIIT Blast",
            "suggestedTrainer": "Avery Stone",
            "reason": "Avery fills HIIT at 90%",
            "confidence": 85,
            "dataPoints": ["90% over 4 sessions"],
        },
        {
            "type": "adjust_time",
            "originalClass": "Unlisted Class",
            "originalTrainer": "Nobody",
            "originalTime": "10:00",
            "suggestedTime": "09:00",
            "confidence": 55,
        },
    ],
    "insights": ["Morning HIIT is underfilled"],
    "projectedImpact": {"fillRateChange": 5.5, "attendanceChange": 12},
}


# --- availability ---

def test_missing_client_reports_api_unavailable() -> None:
    result = _advise(None)

    assert not result.success
    assert result.error.code == AdvisorErrorCode.API_UNAVAILABLE
    assert result.suggestions == []


@pytest.mark.parametrize(
    "overrides",
    [
        {"advisor_api_key": None},
        {"advisor_api_key": "short-key"},
        {"advisor_api_key": VALID_KEY, "advisor_enabled": False},
    ],
)
def test_build_text_client_returns_none_when_unconfigured(overrides) -> None:
    assert build_text_client(_build_test_settings(**overrides)) is None


def test_build_text_client_with_valid_key() -> None:
    client = build_text_client(_build_test_settings(advisor_api_key=VALID_KEY))
    assert isinstance(client, GeminiTextClient)


# --- reply parsing ---

def test_fenced_reply_is_parsed_and_resolved() -> None:
    client = _FakeClient(reply="```json\n" + json.dumps(REPLY) + "\n```")
    result = _advise(client)

    assert result.success
    assert result.insights == ["Morning HIIT is underfilled"]
    assert result.projected_fill_rate_change == 5.5
    assert result.projected_attendance_change == 12

    swap, adjust = result.suggestions
    assert swap.suggestion_type == SuggestionType.REPLACE_TRAINER
    assert swap.original.class_id == "c2"
    assert swap.original.current_fill_rate == 50.0
    assert swap.suggested.trainer == "Avery Stone"
    assert swap.suggested.time == "18:00"
    assert swap.priority == SuggestionPriority.HIGH

    assert adjust.suggestion_type == SuggestionType.SWAP_TIME
    assert adjust.original.class_id is None
    assert adjust.suggested.time == "09:00"
    assert adjust.priority == SuggestionPriority.LOW


def test_bare_reply_is_parsed() -> None:
    result = _advise(_FakeClient(reply=json.dumps({"suggestions": [], "insights": ["ok"]})))

    assert result.success
    assert result.insights == ["ok"]


def test_unknown_suggestion_type_is_skipped() -> None:
    reply = {"suggestions": [{"type": "teleport_class", "originalClass": "HIIT Blast"}]}
    result = _advise(_FakeClient(reply=json.dumps(reply)))

    assert result.success
    assert result.suggestions == []


@pytest.mark.parametrize("reply", ["not json at all", "[1, 2, 3]", "", '{"suggestions": "x"}'])
def test_malformed_reply_is_invalid_response(reply: str) -> None:
    result = _advise(_FakeClient(reply=reply))

    assert not result.success
    assert result.error.code == AdvisorErrorCode.INVALID_RESPONSE


def test_strip_code_fences_variants() -> None:
    assert strip_code_fences("```json\n{}\n```") == "{}"
    assert strip_code_fences("```\n{}\n```") == "{}"
    assert strip_code_fences("  {}  ") == "{}"


# --- failure mapping ---

def test_slow_client_times_out() -> None:
    result = _advise(_FakeClient(reply="{}", delay=1.0))

    assert result.error.code == AdvisorErrorCode.TIMEOUT


def test_rate_limit_is_reported() -> None:
    result = _advise(_FakeClient(error=AdvisorTransportError("slow down", status_code=429)))
    assert result.error.code == AdvisorErrorCode.RATE_LIMITED


def test_transport_failure_is_api_unavailable() -> None:
    result = _advise(_FakeClient(error=AdvisorTransportError("down", status_code=503)))
    assert result.error.code == AdvisorErrorCode.API_UNAVAILABLE


def test_unexpected_failure_is_unknown() -> None:
    result = _advise(_FakeClient(error=RuntimeError("boom")))
    assert result.error.code == AdvisorErrorCode.UNKNOWN


# --- prompts ---

def test_day_mode_prompt_covers_day_and_location() -> None:
    client = _FakeClient(reply="{}")
    _advise(client)

    prompt = client.prompts[0]
    assert "Analyze this schedule for Monday at Downtown" in prompt
    assert '"trainer": "Blake Rivers"' in prompt
    assert '"name": "Avery Stone"' in prompt


def test_week_mode_prompt_without_day() -> None:
    client = _FakeClient(reply="{}")
    _advise(client, _context(day=None, location=None))

    prompt = client.prompts[0]
    assert "full weekly schedule" in prompt
    assert "TRAINERS NEEDING MORE HOURS" in prompt


# --- HTTP client ---

def _run_with_transport(handler, prompt: str = "prompt") -> str:
    async def _call() -> str:
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
            client = GeminiTextClient(
                api_key=VALID_KEY,
                model="gemini-test",
                base_url="https://example.test/v1beta/",
                http_client=http_client,
            )
            return await client.generate(prompt)

    return asyncio.run(_call())


def test_gemini_client_extracts_candidate_text() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={"candidates": [{"content": {"parts": [{"text": '{"insights": []}'}]}}]},
        )

    assert _run_with_transport(handler) == '{"insights": []}'
    request = seen[0]
    assert request.url.path == "/v1beta/models/gemini-test:generateContent"
    assert request.headers["x-goog-api-key"] == VALID_KEY
    assert VALID_KEY not in str(request.url)
    body = json.loads(request.content)
    assert body["generationConfig"]["temperature"] == 0.2
    assert body["contents"][0]["parts"][0]["text"] == "prompt"


def test_gemini_client_non_json_body_yields_empty_text() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"<html>gateway</html>")

    assert _run_with_transport(handler) == ""


def test_gemini_client_raises_on_rate_limit() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, json={"error": "quota"})

    with pytest.raises(AdvisorTransportError) as exc_info:
        _run_with_transport(handler)
    assert exc_info.value.status_code == 429


def test_transport_failure_never_logs_api_key(caplog) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError(f"refused {request.url} {dict(request.headers)}", request=request)

    async def _call():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
            client = GeminiTextClient(VALID_KEY, "gemini-test", "https://example.test", http_client)
            advisor = ScheduleAdvisor(client, settings=_build_test_settings())
            return await advisor.advise(_context())

    caplog.set_level(logging.DEBUG)
    result = asyncio.run(_call())

    assert result.error.code == AdvisorErrorCode.API_UNAVAILABLE
    assert "ConnectError" in caplog.text
    assert VALID_KEY not in caplog.text
    assert VALID_KEY not in result.error.message


def test_timed_out_request_is_cancelled() -> None:
    cancelled: list[bool] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        try:
            await asyncio.sleep(1.5)
        except asyncio.CancelledError:
            cancelled.append(True)
            raise
        return httpx.Response(200, json={})

    async def _call():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
            client = GeminiTextClient(VALID_KEY, "gemini-test", "https://example.test", http_client)
            settings = _build_test_settings(advisor_week_timeout_seconds=0.2)
            return await ScheduleAdvisor(client, settings=settings).advise(
                _context(day=None, location=None)
            )

    started = time.monotonic()
    result = asyncio.run(_call())

    assert result.error.code == AdvisorErrorCode.TIMEOUT
    assert time.monotonic() - started < 1.0
    assert cancelled == [True]
