"""
API Router
Combines all endpoint routers
"""
from fastapi import APIRouter

from outreach.api.v1.endpoints import (
    cadences,
    campaigns,
    consent,
    health,
    webhooks,
)

api_router = APIRouter()

api_router.include_router(health.router)
api_router.include_router(webhooks.router)
api_router.include_router(consent.router)
api_router.include_router(campaigns.router)
api_router.include_router(cadences.router)
