from __future__ import annotations

import json
from dataclasses import replace
from datetime import date, timedelta

from fastapi.testclient import TestClient

from app import create_app
from schedule_engine.utils.config import get_settings


WINDOW_START = date(2024, 1, 1)


class _FakeClient:
    def __init__(self, reply: str) -> None:
        self.reply = reply
        self.prompts: list[str] = []

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        return self.reply


def _build_test_settings():
    get_settings.cache_clear()
    return replace(get_settings(), advisor_api_key=None, advisor_enabled=True)


def _build_test_client(text_client=None) -> TestClient:
    return TestClient(create_app(settings=_build_test_settings(), text_client=text_client))


def _sessions(trainer: str, weeks: int, checked_in: int) -> list[dict]:
    return [
        {
            "trainer": trainer,
            "format_name": "HIIT Blast",
            "location": "Downtown",
            "day": "Monday",
            "time": "07:00",
            "session_date": (WINDOW_START + timedelta(weeks=week)).isoformat(),
            "capacity": 20,
            "checked_in": checked_in,
        }
        for week in range(weeks)
    ]


def _payload(**extra) -> dict:
    payload = {
        "sessions": _sessions("Avery Stone", 10, 18) + _sessions("Blake Rivers", 5, 6),
        "schedule": [
            {
                "class_id": "c1",
                "day": "Monday",
                "time": "07:00",
                "format_name": "HIIT Blast",
                "trainer": "Blake Rivers",
                "location": "Downtown",
                "capacity": 20,
                "fill_rate": 30.0,
                "avg_check_ins": 6.0,
                "session_count": 5,
            }
        ],
        "date_from": "2024-01-01",
        "date_to": "2024-03-31",
    }
    payload.update(extra)
    return payload


def test_health_reports_advisor_state() -> None:
    with _build_test_client() as client:
        response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "advisor_available": False}


def test_optimize_schedule_returns_ranked_suggestions() -> None:
    with _build_test_client() as client:
        response = client.post("/optimize_schedule", json=_payload())

    assert response.status_code == 200
    body = response.json()
    assert len(body["suggestions"]) == 1
    suggestion = body["suggestions"][0]
    assert suggestion["type"] == "replace_trainer"
    assert suggestion["priority"] == "high"
    assert suggestion["original"]["class_id"] == "c1"
    assert suggestion["suggested"]["trainer"] == "Avery Stone"
    assert body["trainer_hours_summary"]["Avery Stone"]["optimized"] == 1
    assert body["projected_impact"]["total_check_ins_increase"] == 12
    assert set(body["format_mix_impact"]) == {"before", "after"}


def test_optimize_schedule_applies_config_overrides() -> None:
    with _build_test_client() as client:
        response = client.post(
            "/optimize_schedule",
            json=_payload(config={"blocked_trainers": ["avery"]}),
        )

    assert response.status_code == 200
    assert all(
        item["suggested"]["trainer"] != "Avery Stone"
        for item in response.json()["suggestions"]
    )


def test_optimize_schedule_rejects_inverted_window() -> None:
    with _build_test_client() as client:
        response = client.post(
            "/optimize_schedule",
            json=_payload(date_from="2024-03-31", date_to="2024-01-01"),
        )

    assert response.status_code == 400
    assert "date_from" in response.json()["detail"]


def test_optimize_schedule_rejects_invalid_config() -> None:
    with _build_test_client() as client:
        response = client.post(
            "/optimize_schedule",
            json=_payload(config={"target_trainer_hours": 30, "max_trainer_hours": 20}),
        )

    assert response.status_code == 400


def test_optimize_schedule_rejects_bad_day_name() -> None:
    payload = _payload()
    payload["schedule"][0]["day"] = "Funday"
    with _build_test_client() as client:
        response = client.post("/optimize_schedule", json=payload)

    assert response.status_code == 422


def test_advise_schedule_without_key_reports_unavailable() -> None:
    with _build_test_client() as client:
        response = client.post("/advise_schedule", json=_payload(day="Monday", location="Downtown"))

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is False
    assert body["suggestions"] == []
    assert body["error"]["code"] == "API_UNAVAILABLE"


def test_advise_schedule_with_client_returns_suggestions() -> None:
    reply = {
        "suggestions": [
            {
                "type": "replace_trainer",
                "originalClass": "HIIT Blast",
                "originalTrainer": "Blake Rivers",
                "originalTime": "07:00",
                "suggestedTrainer": "Avery Stone",
                "confidence": 90,
            }
        ],
        "insights": ["Avery is the strongest HIIT trainer"],
    }
    fake = _FakeClient(json.dumps(reply))
    with _build_test_client(text_client=fake) as client:
        response = client.post("/advise_schedule", json=_payload(day="Monday", location="Downtown"))

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["error"] is None
    assert body["suggestions"][0]["original"]["class_id"] == "c1"
    assert body["suggestions"][0]["priority"] == "high"
    assert body["insights"] == ["Avery is the strongest HIIT trainer"]
    assert len(fake.prompts) == 1
