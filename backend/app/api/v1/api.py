"""
Main API router aggregator
"""
from fastapi import APIRouter

from app.api.v1.endpoints import health, judgment_sync

api_router = APIRouter()

api_router.include_router(health.router, prefix="/health", tags=["Health"])
api_router.include_router(judgment_sync.router, prefix="/judgment-sync", tags=["Judgment Sync"])
