from fastapi import APIRouter

from app.routers import connection_profile

api_router = APIRouter()
api_router.include_router(connection_profile.router)

__all__ = ["api_router"]
