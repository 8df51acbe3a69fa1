"""
FastAPI application: REST + WebSocket adapter for the desk assistant.

Usage:
    python run_api.py

Or directly:
    uvicorn adapters.rest.app:app --host 0.0.0.0 --port 8000 --reload
"""

from __future__ import annotations

import sys
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Ensure src/ is on sys.path when invoked via uvicorn directly
_src_dir = Path(__file__).resolve().parent.parent.parent
if str(_src_dir) not in sys.path:
    sys.path.insert(0, str(_src_dir))

from infrastructure.config import Settings
from factory import ServiceFactory
from adapters.rest.dependencies import set_factory
from adapters.rest.routers import agents, assistant, memories, notifications_ws


def create_app(factory: ServiceFactory | None = None) -> FastAPI:
    """Build the app; tests pass a factory wired with fakes."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Initialize ServiceFactory on startup, drain background work on shutdown."""
        active = factory
        if active is None:
            config = Settings.from_env(project_root=_src_dir.parent)
            active = ServiceFactory(config)
        await active.initialize()
        set_factory(active)
        yield
        await active.shutdown()
        set_factory(None)

    app = FastAPI(
        title="Desk Assistant Core",
        version="0.1.0",
        description="Intent routing, staged memory search and agent orchestration.",
        lifespan=lifespan,
    )

    # CORS is permissive for development; tighten allow_origins in production
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(assistant.router)
    app.include_router(agents.router)
    app.include_router(memories.router)
    app.include_router(notifications_ws.router)

    @app.get("/health", tags=["health"])
    async def health():
        return {"status": "ok", "version": "0.1.0"}

    return app


app = create_app()
