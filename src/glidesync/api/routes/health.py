"""Health check endpoint."""

from fastapi import APIRouter

from glidesync import __version__
from glidesync.api.schemas import HealthResponse

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Report service status and version."""
    return HealthResponse(status="healthy", version=__version__)
