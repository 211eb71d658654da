from fastapi import APIRouter

from app.api.v1.endpoints import feature_flags, health

api_router = APIRouter()
api_router.include_router(feature_flags.router, prefix="/feature-flags", tags=["feature-flags"])
api_router.include_router(health.router, prefix="/health", tags=["health-monitoring"])
