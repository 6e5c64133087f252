"""
API router aggregation.
"""

from fastapi import APIRouter

from .endpoints import admin, approved, health, submissions

api_router = APIRouter()

# Include all endpoint routers
api_router.include_router(health.router, prefix="", tags=["Health"])
api_router.include_router(submissions.router, prefix="", tags=["Submissions"])
api_router.include_router(approved.router, prefix="", tags=["Approved"])
api_router.include_router(admin.router, prefix="/admin", tags=["Admin"])
