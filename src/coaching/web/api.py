"""FastAPI application factory for the sandbox backend (F5).

Serves the coaching REST contract from memory, for local development
(`coach serve`) and as the remote end in tests.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from coaching.web.routes import (
    auth_router,
    diagnostic_router,
    health_router,
    onboarding_router,
)
from coaching.web.store import SandboxStore

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Lifespan context manager for startup/shutdown events."""
    logger.info("sandbox_startup", parents=len(app.state.store.parents))
    yield


def create_app(store: SandboxStore | None = None) -> FastAPI:
    """Create and configure the sandbox app.

    Args:
        store: Pre-populated state; a fresh empty store when omitted

    Returns:
        Configured FastAPI app instance
    """
    app = FastAPI(
        title="Exam Coach Sandbox API",
        description="In-memory implementation of the coaching backend contract",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.store = store if store is not None else SandboxStore()

    # CORS middleware for browser clients
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(onboarding_router)
    app.include_router(diagnostic_router)

    return app
