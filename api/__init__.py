"""FastAPI router aggregation."""

from fastapi import APIRouter

from api.auth import router as auth_router
from api.catalog import router as catalog_router
from api.cases import router as cases_router
from api.chat import router as chat_router
from api.database import router as database_router
from api.fields import router as fields_router
from api.mcp import router as mcp_router
from api.views import router as views_router

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(auth_router, prefix="/auth", tags=["auth"])
api_router.include_router(catalog_router, prefix="/catalog", tags=["catalog"])
api_router.include_router(cases_router, prefix="/cases", tags=["cases"])
api_router.include_router(chat_router, tags=["chat"])
api_router.include_router(fields_router, prefix="/fields", tags=["fields"])
api_router.include_router(views_router, prefix="/views", tags=["views"])
api_router.include_router(mcp_router, prefix="/mcp", tags=["mcp"])
api_router.include_router(database_router, prefix="/database", tags=["database"])
