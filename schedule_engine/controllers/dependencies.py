"""Shared FastAPI dependency providers for controller layer."""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from schedule_engine.services.advisor_service import ScheduleAdvisor
from schedule_engine.services.optimization_service import ScheduleOptimizationService


def get_optimization_service(request: Request) -> ScheduleOptimizationService:
    service = getattr(request.app.state, "optimization_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Optimization service is not initialized",
        )
    return service


def get_schedule_advisor(request: Request) -> ScheduleAdvisor:
    advisor = getattr(request.app.state, "schedule_advisor", None)
    if advisor is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Schedule advisor is not initialized",
        )
    return advisor
