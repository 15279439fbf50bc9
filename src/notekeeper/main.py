"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. Lifespan manages startup/shutdown. Middleware, CORS, routers,
and the error boundary are all registered here.

Error boundary:
- NotekeeperError → its own status + `{"detail", "kind", ...}`
- request validation → 422 with kind ValidationError
- anything else → 500 ServerError; the message never includes internals
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from notekeeper import __version__
from notekeeper.api import api_router
from notekeeper.config import settings
from notekeeper.errors import NotAuthenticated, NotekeeperError

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    logger.info(
        "notekeeper.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
        google_enabled=settings.google_enabled,
    )

    yield

    logger.info("notekeeper.shutdown")
    from notekeeper.db.engine import engine
    await engine.dispose()


async def handle_notekeeper_error(request: Request, exc: NotekeeperError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning("request.dependency_failed", kind=exc.kind, path=request.url.path)
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, NotAuthenticated) else None
    return JSONResponse(exc.to_dict(), status_code=exc.status_code, headers=headers)


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"loc": list(e.get("loc", ())), "msg": e.get("msg", ""), "type": e.get("type", "")}
        for e in exc.errors()
    ]
    return JSONResponse(
        {"detail": "Validation failed", "kind": "ValidationError", "errors": errors},
        status_code=422,
    )


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("request.unhandled_error", path=request.url.path)
    return JSONResponse(
        {"detail": "Internal server error", "kind": "ServerError"},
        status_code=500,
    )


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    app = FastAPI(
        title="Notekeeper",
        description="Accounts, email verification and sessions for Notekeeper",
        version=__version__,
        lifespan=lifespan,
    )

    # ── Middleware stack ──────────────────────────────────────
    # Note: Starlette middleware executes in reverse order of registration.
    # Request flow: RequestId → Security → CORS → handler

    from notekeeper.middleware.request_id import RequestIdMiddleware
    from notekeeper.middleware.security import SecurityHeadersMiddleware

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestIdMiddleware)

    app.add_exception_handler(NotekeeperError, handle_notekeeper_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)

    app.include_router(api_router)

    return app


# Default app instance (used by uvicorn: notekeeper.main:app)
app = create_app()
