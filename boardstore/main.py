"""Boardstore FastAPI application entry point."""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from boardstore import __version__
from boardstore.config import Settings, get_settings
from boardstore.errors import BoardstoreError
from boardstore.services.http import http_client_manager
from boardstore.services.session_mode import SessionModeResolver

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    settings = app.state.settings
    logger.info(
        "boardstore.startup",
        version=__version__,
        remote_configured=settings.remote.is_configured,
        backend=settings.remote.backend,
    )

    # Shared pool for every RestBackend
    await http_client_manager.startup()

    yield

    logger.info("boardstore.shutdown")
    await app.state.resolver.close()
    await http_client_manager.shutdown()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure FastAPI application."""
    settings = settings or get_settings()

    app = FastAPI(
        title="Boardstore",
        description="Ordered boards, lists and cards with an archive lifecycle",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.resolver = SessionModeResolver(settings)

    # Request ID middleware
    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        """Add request ID to all requests."""
        request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-Id"] = request_id
        return response

    # Error handler
    @app.exception_handler(BoardstoreError)
    async def boardstore_error_handler(request: Request, exc: BoardstoreError):
        request_id = getattr(request.state, "request_id", None)
        logger.info(
            "api.error",
            code=exc.code,
            path=request.url.path,
            request_id=request_id,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_dict(request_id),
        )

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "version": __version__}

    from boardstore.api.v1 import router as v1_router

    app.include_router(v1_router, prefix="/v1")

    return app


# Create default app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "boardstore.main:app",
        host=settings.server.host,
        port=settings.server.port,
    )
