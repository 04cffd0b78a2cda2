from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from time import perf_counter
from typing import Annotated
from uuid import uuid4

from fastapi import Depends, FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from structlog.contextvars import bind_contextvars, reset_contextvars

from lecture_tracker.api.routes import router
from lecture_tracker.dependencies import (
    get_library_sessions,
    get_rate_limiter,
    get_settings,
    get_telemetry,
    get_video_api_client,
)
from lecture_tracker.logging_config import configure_application_logging
from lecture_tracker.models.playlist_contracts import HealthResponse
from lecture_tracker.repositories.common import utc_now_iso
from lecture_tracker.services.import_errors import PlaylistImportError, RateLimitedError
from lecture_tracker.services.library_store import LibraryValidationError
from lecture_tracker.services.video_api import GoogleVideoApiClient

LOGGER = logging.getLogger("lecture_tracker.http")


def health_check(
    client: Annotated[GoogleVideoApiClient, Depends(get_video_api_client)],
) -> HealthResponse:
    return HealthResponse(has_api_key=client.configured, timestamp=utc_now_iso())


@asynccontextmanager
async def app_lifespan(_: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    log_file = configure_application_logging(settings)
    LOGGER.info(
        "lecture tracker starting has_api_key=%s log_file=%s",
        get_video_api_client().configured,
        log_file,
    )
    try:
        yield
    finally:
        if get_library_sessions.cache_info().currsize:
            get_library_sessions().close_all()


def _error_response(error: PlaylistImportError) -> JSONResponse:
    headers: dict[str, str] = {}
    if isinstance(error, RateLimitedError):
        headers["Retry-After"] = str(error.retry_after_seconds)
    return JSONResponse(
        status_code=error.status_code,
        content=error.to_payload(),
        headers=headers or None,
    )


async def playlist_import_error_handler(_: Request, exc: Exception) -> Response:
    if not isinstance(exc, PlaylistImportError):
        raise exc
    return _error_response(exc)


async def library_validation_error_handler(_: Request, exc: Exception) -> Response:
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid library request", "message": str(exc)},
    )


async def request_validation_error_handler(_: Request, exc: Exception) -> Response:
    message = "The request body or parameters are not valid."
    if isinstance(exc, RequestValidationError) and exc.errors():
        first_error = exc.errors()[0]
        location = ".".join(str(part) for part in first_error.get("loc", ()))
        message = f"{location}: {first_error.get('msg', 'invalid value')}"
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request", "message": message},
    )


def create_app() -> FastAPI:
    app = FastAPI(title="Lecture Tracker API", version="0.1.0", lifespan=app_lifespan)

    async def rate_limit_middleware(
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        client_key = request.client.host if request.client is not None else "unknown"
        decision = get_rate_limiter().take(client_key)
        if not decision.allowed:
            get_telemetry().emit(
                "http.rate_limited",
                path=request.url.path,
                retry_after_seconds=decision.retry_after_seconds,
            )
            LOGGER.warning(
                "http rate_limited path=%s retry_after_seconds=%s",
                request.url.path,
                decision.retry_after_seconds,
            )
            return _error_response(
                RateLimitedError(
                    decision.retry_after_seconds,
                    title="Rate limit exceeded",
                )
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(decision.limit)
        response.headers["X-RateLimit-Remaining"] = str(decision.remaining)
        return response

    async def request_context_middleware(
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        telemetry = get_telemetry()
        incoming_request_id = request.headers.get("X-Request-ID")
        request_id = (
            incoming_request_id.strip()
            if isinstance(incoming_request_id, str) and incoming_request_id.strip()
            else str(uuid4())
        )
        context_tokens = bind_contextvars(
            http_request_id=request_id,
            http_method=request.method,
            http_path=request.url.path,
        )
        started_at = perf_counter()
        telemetry.emit(
            "http.request.start",
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )
        try:
            response = await call_next(request)
        except Exception as exc:
            telemetry.emit(
                "http.request.error",
                request_id=request_id,
                method=request.method,
                path=request.url.path,
                duration_ms=int((perf_counter() - started_at) * 1000),
                error_type=type(exc).__name__,
            )
            raise
        else:
            response.headers["X-Request-ID"] = request_id
            telemetry.emit(
                "http.request.finish",
                request_id=request_id,
                method=request.method,
                path=request.url.path,
                duration_ms=int((perf_counter() - started_at) * 1000),
                status_code=response.status_code,
            )
            return response
        finally:
            reset_contextvars(**context_tokens)

    app.middleware("http")(rate_limit_middleware)
    app.middleware("http")(request_context_middleware)
    app.add_exception_handler(PlaylistImportError, playlist_import_error_handler)
    app.add_exception_handler(LibraryValidationError, library_validation_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.include_router(router)
    app.add_api_route(
        "/health",
        health_check,
        methods=["GET"],
        response_model=HealthResponse,
        tags=["system"],
        operation_id="health_check",
    )

    return app


app = create_app()
