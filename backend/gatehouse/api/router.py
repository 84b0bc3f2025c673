"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from gatehouse.api.routes import amenities, bookings, passes, audit

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(amenities.router)
api_router.include_router(bookings.router)
api_router.include_router(passes.router)
api_router.include_router(audit.router)
