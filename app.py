"""
app.py: FastAPI application factory and startup lifecycle.

This is the ASGI application object imported by uvicorn.
It wires the optimization service and the optional AI advisor, and
registers the schedule router.

Usage (via launcher):
    python main.py

Usage (direct uvicorn):
    uvicorn app:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from schedule_engine.controllers.schedule_controller import router as schedule_router
from schedule_engine.services.advisor_service import (
    ScheduleAdvisor,
    TextGenerationClient,
    build_text_client,
)
from schedule_engine.services.optimization_service import ScheduleOptimizationService
from schedule_engine.utils.config import Settings, get_settings
from schedule_engine.utils.logger import get_logger


logger = get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    text_client: Optional[TextGenerationClient] = None,
) -> FastAPI:
    """
    Build and wire the FastAPI application.

    Services are attached to app.state; the advisor receives its text
    client here, so tests can pass a fake one.
    """
    settings = settings or get_settings()

    optimization_service = ScheduleOptimizationService(settings=settings)
    schedule_advisor = ScheduleAdvisor(
        client=text_client if text_client is not None else build_text_client(settings),
        settings=settings,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Log the effective configuration before accepting requests."""
        _startup(app)
        yield

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )

    app.include_router(schedule_router)

    app.state.settings = settings
    app.state.optimization_service = optimization_service
    app.state.schedule_advisor = schedule_advisor

    return app


def _startup(app: FastAPI) -> None:
    settings: Settings = app.state.settings
    advisor: ScheduleAdvisor = app.state.schedule_advisor
    logger.info(
        (
            "Startup complete | target_hours=%s | max_hours=%s | min_days_off=%s | "
            "advisor_available=%s"
        ),
        settings.schedule_target_trainer_hours,
        settings.schedule_max_trainer_hours,
        settings.schedule_min_days_off,
        advisor.available,
    )


# Module-level app object for uvicorn
app = create_app()
