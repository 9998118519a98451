"""Health check endpoint — no auth required."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from config.settings import Settings
from keygate.api.deps import get_app_settings
from keygate.api.models.schemas import HealthResponse
from keygate.core.constants import API_VERSION

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(settings: Settings = Depends(get_app_settings)) -> HealthResponse:
    return HealthResponse(
        status="ok",
        version=API_VERSION,
        environment=settings.keygate_env,
    )
