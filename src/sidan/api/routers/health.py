"""Health endpoint.

Public liveness check. No authentication required.
"""

from fastapi import APIRouter
from pydantic import BaseModel, Field

from sidan.version import __version__

router = APIRouter(tags=["Health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(description="Health status")
    version: str = Field(description="Application version")


@router.get("/health")
async def health() -> HealthResponse:
    """Health check endpoint.

    Returns:
        HealthResponse with status and version
    """
    return HealthResponse(status="ok", version=__version__)
