"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import api_router
from config import settings
from database import init_db
from ws import ws_router

__version__ = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Configure unified logging before anything else
    from logging_config import setup_logging
    setup_logging("Server")

    logger = logging.getLogger(__name__)

    # Create tables if they don't exist (dev convenience; use alembic in prod)
    init_db()
    logger.info(
        "Case designer API started (LLM provider=%s, model=%s, tool mode=%s)",
        settings.LLM_PROVIDER, settings.LLM_MODEL, settings.LLM_TOOL_MODE,
    )
    yield


app = FastAPI(title="Case Designer API", version=__version__, lifespan=lifespan)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.CORS_ALLOW_ALL_ORIGINS else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)
app.include_router(ws_router)


@app.get("/health")
def health():
    return {"status": "ok", "version": __version__}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True, log_config=None)
