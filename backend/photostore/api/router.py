"""
API router aggregator.
Includes all route modules.
"""
from fastapi import APIRouter
from photostore.api import health, presign, uploads

api_router = APIRouter()

# Include route modules
api_router.include_router(health.router, prefix="/health", tags=["health"])
api_router.include_router(uploads.router, prefix="/uploads", tags=["uploads"])
api_router.include_router(presign.router, prefix="/presign", tags=["presign"])
