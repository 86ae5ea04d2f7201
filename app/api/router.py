"""Central router that includes all sub-routers."""

from fastapi import APIRouter

from app.api.auth import router as auth_router
from app.api.jobs import router as jobs_router
from app.api.websocket import router as websocket_router

api_router = APIRouter()
api_router.include_router(auth_router)
api_router.include_router(jobs_router)
api_router.include_router(websocket_router)
