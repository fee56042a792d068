"""
API Router Module - Aggregates all endpoint routers
"""
from fastapi import APIRouter

from resource_api.api.endpoints import health
from resource_api.examples import library

# Create the main API router
api_router = APIRouter()

api_router.include_router(health.router, prefix="/health", tags=["Health"])
api_router.include_router(library.router)
