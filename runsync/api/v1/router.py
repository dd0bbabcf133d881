"""
API Router v1

Combines all route modules.
"""

from fastapi import APIRouter

from runsync.api.v1.routes import integrations

api_router = APIRouter()

api_router.include_router(
    integrations.router,
    prefix="/integrations/strava",
    tags=["Strava"],
)
