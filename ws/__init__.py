"""WebSocket endpoints for live case updates."""

from fastapi import APIRouter

from ws.global_ws import router as case_ws_router

ws_router = APIRouter()
ws_router.include_router(case_ws_router)

__all__ = ["ws_router"]
