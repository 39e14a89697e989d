"""
FastAPI app wiring for MemGraph.
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

import memgraph.config as config
from memgraph.db import dispose_db, init_db
from memgraph.errors import (
    DimensionMismatch,
    KeyValidationError,
    NotFoundError,
    ProviderError,
    QuotaExceeded,
    ValidationIssue,
)
from memgraph.services.embeddings import close_embedding_provider
from memgraph.services.llm import close_llm_provider
from app.middleware import configure_middleware
from app.routes.account import router as account_router
from app.routes.extract import router as extract_router
from app.routes.graph import router as graph_router
from app.routes.health import router as health_router
from app.routes.memories import router as memories_router
from app.routes.root import router as root_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize on startup, cleanup on shutdown."""
    init_db()
    try:
        yield
    finally:
        close_embedding_provider()
        close_llm_provider()
        dispose_db()


def _error_body(error_type: str, message: str, **extra) -> dict:
    body = {"error": error_type, "message": message}
    body.update({key: value for key, value in extra.items() if value is not None})
    return body


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ValidationIssue)
    async def _validation_issue(request: Request, exc: ValidationIssue):
        return JSONResponse(
            status_code=400,
            content=_error_body(exc.error_type, str(exc), field=exc.field),
        )

    @app.exception_handler(DimensionMismatch)
    async def _dimension_mismatch(request: Request, exc: DimensionMismatch):
        return JSONResponse(status_code=400, content=_error_body("dimension_mismatch", str(exc)))

    @app.exception_handler(KeyValidationError)
    async def _key_validation(request: Request, exc: KeyValidationError):
        return JSONResponse(status_code=401, content=_error_body(exc.error_code, str(exc)))

    @app.exception_handler(QuotaExceeded)
    async def _quota_exceeded(request: Request, exc: QuotaExceeded):
        return JSONResponse(status_code=429, content=_error_body("quota_exceeded", exc.reason))

    @app.exception_handler(NotFoundError)
    async def _not_found(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content=_error_body("not_found", str(exc)))

    @app.exception_handler(ProviderError)
    async def _provider_error(request: Request, exc: ProviderError):
        config.logger.warning("provider_error", extra={"path": request.url.path, "error": str(exc)})
        return JSONResponse(status_code=503, content=_error_body("provider_unavailable", str(exc)))


def create_app(use_lifespan: bool = True) -> FastAPI:
    app = FastAPI(
        title="MemGraph",
        version="0.1.0",
        redirect_slashes=False,
        lifespan=lifespan if use_lifespan else None,
    )
    configure_middleware(app)
    register_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(root_router)
    app.include_router(memories_router)
    app.include_router(graph_router)
    app.include_router(extract_router)
    app.include_router(account_router)
    return app


app = create_app()
