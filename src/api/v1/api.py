from fastapi import APIRouter

from .health import router as health_router
from .outlines import router as outlines_router
from .presentations import router as presentations_router


api_router = APIRouter()

api_router.include_router(health_router, tags=["health"])
api_router.include_router(presentations_router)
api_router.include_router(outlines_router)
