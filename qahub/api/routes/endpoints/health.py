"""
Health check endpoint.
"""

from datetime import datetime, timezone

from fastapi import APIRouter

from common.schemas import HealthResponse

router = APIRouter()


@router.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"]
)
async def health_check():
    """
    Liveness check.

    Returns:
        HealthResponse: Fixed OK status and the server time
    """
    return HealthResponse(
        status="OK",
        timestamp=datetime.now(timezone.utc)
    )
