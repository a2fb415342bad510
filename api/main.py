"""
api/main.py -- FastAPI application factory for jwt-users.

Run with:      python main.py serve
               uvicorn asgi:app --reload

create_app() wires a user collection and a secret store into the users
router. Both are optional: by default the collection is a SqlUserCollection
on Settings.users_db_url and the secret store is a FileSecretStore under
Settings.secrets_dir.

Middleware stack (outermost to innermost):
  1. log_requests          -- one access log line per request with latency
  2. TrustedHostMiddleware -- rejects requests with unexpected Host headers

Lifespan resolves the collection (which may be an awaitable or a factory)
before the first request is served, so the resource guard always knows its
namespace. If resolution fails, startup fails.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse

from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.users import router as users_router
from auth.collection import resolve_collection
from auth.dependencies import require_resource_owner
from auth.errors import JWTUsersError
from auth.secrets_store import FileSecretStore, SecretStore
from auth.store import SqlUserCollection
from core.config import Settings, get_settings

__version__ = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("jwtusers.api")


def _error(status_code: int, code: str, message: str, detail: Optional[str] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(),
    )


def create_app(
    collection: Any = None,
    secret_store: Optional[SecretStore] = None,
    settings: Optional[Settings] = None,
    resource_routers: Sequence[APIRouter] = (),
) -> FastAPI:
    """Build the application.

    Args:
        collection:       A UserCollection, an awaitable resolving to one, or
                          a zero-argument factory returning either. None means
                          a SqlUserCollection built from settings (and closed
                          on shutdown).
        secret_store:     SecretStore for signing keys. None means a
                          FileSecretStore under settings.secrets_dir.
        settings:         Defaults to get_settings().
        resource_routers: Extra routers mounted under {users_prefix}/{user}
                          behind the resource guard.
    """
    settings = settings or get_settings()
    if settings.debug:
        logging.getLogger("jwtusers").setLevel(logging.DEBUG)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Resolve the collection and secret store before serving requests.

        Everything before yield runs on startup; everything after yield runs
        on shutdown. An exception here aborts startup -- a server whose
        namespace is unknown cannot verify any token.
        """
        logger.info("jwt-users API starting up")
        owned: Optional[SqlUserCollection] = None
        if collection is None:
            owned = SqlUserCollection(
                settings.users_db_url,
                name=settings.collection_name,
                bcrypt_rounds=settings.bcrypt_rounds,
            )
            resolved = owned
        else:
            resolved = await resolve_collection(collection)
        app.state.collection = resolved
        app.state.namespace = resolved.name
        if secret_store is None:
            app.state.secret_store = FileSecretStore(settings.secrets_dir, settings.secret_bytes)
        else:
            app.state.secret_store = secret_store
        logger.info("User collection ready (namespace=%s)", resolved.name)

        yield

        app.state.collection = None
        app.state.namespace = None
        if owned is not None:
            owned.close()
        logger.info("jwt-users API shutdown complete")

    app = FastAPI(
        title="jwt-users API",
        description="Username/password registration and JWT bearer tokens scoped to a user collection.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings

    # -----------------------------------------------------------------------
    # Middleware stack
    # -----------------------------------------------------------------------

    app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.allowed_hosts)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        ms = (time.perf_counter() - start) * 1000
        logger.info(
            "%s %s %d %.1fms %s",
            request.method,
            request.url.path,
            response.status_code,
            ms,
            request.client.host if request.client else "unknown",
        )
        return response

    # -----------------------------------------------------------------------
    # Router registration
    # -----------------------------------------------------------------------

    app.include_router(users_router, prefix=settings.users_prefix, tags=["Users"])
    for extra in resource_routers:
        app.include_router(
            extra,
            prefix=f"{settings.users_prefix}/{{user}}",
            dependencies=[Depends(require_resource_owner)],
        )

    # -----------------------------------------------------------------------
    # Exception handlers
    #
    # Every error body is {"error": {"code", "message", "detail"}}; clients
    # branch on code, the message is the stable human text.
    # -----------------------------------------------------------------------

    @app.exception_handler(JWTUsersError)
    async def jwtusers_error_handler(request: Request, exc: JWTUsersError) -> JSONResponse:
        """Translate auth-core errors to their status code and stable message."""
        logger.debug("%s %s -> %d %s", request.method, request.url.path, exc.status_code, exc.code)
        return _error(exc.status_code, exc.code, exc.message, exc.detail)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Return 422 when the body is not parseable JSON or a path/query param is malformed."""
        return _error(422, "validation_error", "Request validation failed.", str(exc.errors()))

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        """Wrap the 503 not_ready / 404 not_found raised by users routes in the envelope.

        Those routes pass detail as {"code", "message"}; anything else gets an
        http_<status> code.
        """
        if isinstance(exc.detail, dict):
            return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)
        return _error(exc.status_code, f"http_{exc.status_code}", str(exc.detail))

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """500 for bugs in this package or a secret store failure.

        Collection errors never get here; auth.service turns them into 400/403.
        The traceback is logged, the client only sees internal_error.
        """
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return _error(500, "internal_error", "An unexpected error occurred.")

    # -----------------------------------------------------------------------
    # Health endpoint
    # -----------------------------------------------------------------------

    @app.get("/health", tags=["Health"])
    async def health(request: Request) -> HealthResponse:
        """Return liveness, version, and the active namespace."""
        return HealthResponse(version=__version__, namespace=getattr(request.app.state, "namespace", None))

    return app
