"""Health check endpoints for Kubernetes probes."""

from datetime import UTC, datetime

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel

from noterag.api.deps import RAG
from noterag.core.config import get_settings

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    timestamp: str
    version: str
    checks: dict | None = None


# Startup state
_startup_complete = False


def set_startup_complete():
    """Mark startup as complete."""
    global _startup_complete
    _startup_complete = True


@router.get("/health/live", response_model=HealthResponse)
async def liveness():
    """Kubernetes liveness probe.

    Returns 200 if the process is alive.
    """
    settings = get_settings()

    return HealthResponse(
        status="alive", timestamp=datetime.now(UTC).isoformat(), version=settings.app_version
    )


@router.get("/health/ready", response_model=HealthResponse)
async def readiness(rag: RAG):
    """Kubernetes readiness probe.

    Returns 200 once startup has finished. Reports how many per-user
    vector stores are resident.
    """
    settings = get_settings()

    if not _startup_complete:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"status": "starting", "message": "Initialization in progress"},
        )

    return HealthResponse(
        status="ready",
        timestamp=datetime.now(UTC).isoformat(),
        version=settings.app_version,
        checks={
            "cached_stores": len(rag.cache),
            "embedding_backend": settings.embedding_backend,
            "generation_backend": settings.generation_backend,
        },
    )
