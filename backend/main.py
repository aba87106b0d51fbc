import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import Settings, settings as default_settings
from app.routers import crews, events
from app.schemas.responses import ErrorResponse
from app.services.dispatch_service import DispatchService
from app.services.errors import (
    DispatchError,
    IllegalTransitionError,
    InvalidGeometryError,
    NotFoundError,
    StoreConflictError,
    StoreUnavailableError,
)
from app.services.store_service import CrewStore, build_store

logger = logging.getLogger("gridcrew")

# Most specific first; the first isinstance match wins.
_ERROR_STATUS = [
    (NotFoundError, 404),
    (InvalidGeometryError, 422),
    (IllegalTransitionError, 409),
    (StoreConflictError, 409),
    (StoreUnavailableError, 502),
]


def _error(
    status_code: int,
    detail: str,
    error_code: str,
    context: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    body = ErrorResponse(detail=detail, error_code=error_code, context=context)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


def _error_context(exc: DispatchError) -> Optional[Dict[str, Any]]:
    if isinstance(exc, NotFoundError):
        return {"kind": exc.kind, "id": exc.ident}
    if isinstance(exc, IllegalTransitionError) and exc.current:
        return {"current": exc.current, "requested": exc.requested}
    return None


def create_app(
    config: Optional[Settings] = None,
    store: Optional[CrewStore] = None,
    now_fn: Optional[Callable[[], datetime]] = None,
) -> FastAPI:
    config = config or default_settings
    logging.getLogger("gridcrew").setLevel(config.log_level.upper())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Crew dispatch ready (store=%s, tz=%s)",
            type(app.state.dispatch.store).__name__, config.operations_timezone,
        )
        yield

    app = FastAPI(
        title=config.app_name,
        version=config.app_version,
        description="Crew availability and dispatch for outage response",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.dispatch = DispatchService(
        store if store is not None else build_store(config),
        now_fn=now_fn or (lambda: datetime.now(timezone.utc)),
        config=config,
    )

    app.include_router(crews.router)
    app.include_router(events.router)

    @app.exception_handler(DispatchError)
    async def dispatch_error_handler(request: Request, exc: DispatchError) -> JSONResponse:
        status_code = next((code for cls, code in _ERROR_STATUS if isinstance(exc, cls)), 400)
        return _error(status_code, str(exc), exc.error_code, _error_context(exc))

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        return _error(422, str(exc), "VALIDATION_ERROR")

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error(500, "An unexpected error occurred.", "INTERNAL_SERVER_ERROR")

    @app.get("/health", tags=["health"])
    async def health_check() -> Dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()
