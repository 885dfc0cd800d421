"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from eventreg.api.routes import registrations

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(registrations.router)
