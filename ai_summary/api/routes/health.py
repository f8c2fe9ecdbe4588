"""Health check endpoints."""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from ai_summary.core.config import Settings, get_settings
from ai_summary.core.logging import get_logger
from ai_summary.models.providers import ProviderHealth, ProviderTestResponse
from ai_summary.services.providers import ProviderClient, ProviderError, ProviderNotConfiguredError

logger = get_logger(__name__)
router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    timestamp: datetime
    service: str
    version: str


def get_provider_client(request: Request) -> ProviderClient:
    """Fetch the initialized provider client from app state."""
    client = getattr(request.app.state, "provider_client", None)
    if client is None:
        raise HTTPException(status_code=500, detail="Provider client is not initialized")
    return client


@router.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check(settings: Settings = Depends(get_settings)) -> HealthResponse:
    """
    Health check endpoint.

    Returns the current status of the service.
    """
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(UTC),
        service=settings.app_name,
        version=settings.version,
    )


@router.get("/health/provider", response_model=ProviderHealth, tags=["System"])
async def provider_health(
    provider_client: ProviderClient = Depends(get_provider_client),
) -> ProviderHealth:
    """Provider readiness based on configuration."""
    return provider_client.check_health()


@router.post("/health/provider/test", response_model=ProviderTestResponse, tags=["System"])
async def test_provider(
    provider_client: ProviderClient = Depends(get_provider_client),
) -> ProviderTestResponse:
    """Send a tiny live request to verify the endpoint and credentials."""
    try:
        reply = await provider_client.ping()
    except ProviderNotConfiguredError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except ProviderError as exc:
        logger.warning("Provider connection test failed", extra={"error": str(exc)})
        raise HTTPException(status_code=502, detail=str(exc)) from exc

    return ProviderTestResponse(
        provider=provider_client.config.provider,
        model=provider_client.model,
        reply=reply,
    )
