"""
API v1 module initialization
"""

from fastapi import APIRouter
from .comments import router as comments_router

# Create v1 API router
v1_router = APIRouter(prefix="/v1")

# Include all sub-routers
v1_router.include_router(comments_router, prefix="/comments", tags=["Comments"])
