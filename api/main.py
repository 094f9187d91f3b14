from __future__ import annotations

import logging
from typing import Callable

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.observability import (
    RequestIdFilter,
    monotonic_ms,
    new_request_id,
    request_log_fields,
    reset_request_id,
    set_request_id,
)
from api.routes import router
from core.config import get_settings
from core.errors import DataIntegrityError, ForbiddenError, GenerationError, NotFoundError, PatchValidationError
from core.logging_config import setup_logging

logger = logging.getLogger(__name__)

_STATUS_FOR_ERROR: dict[type[GenerationError], int] = {
    NotFoundError: 404,
    ForbiddenError: 403,
    PatchValidationError: 422,
    DataIntegrityError: 500,
}


def error_status(exc: GenerationError) -> int:
    for error_type, status_code in _STATUS_FOR_ERROR.items():
        if isinstance(exc, error_type):
            return status_code
    return 500


async def generation_error_handler(request: Request, exc: GenerationError) -> JSONResponse:
    status_code = error_status(exc)
    log = logger.error if status_code >= 500 else logger.warning
    log(
        "generation_error",
        extra={"ctx_code": exc.code, "ctx_path": request.url.path, "ctx_error_context": exc.context},
    )
    return JSONResponse(status_code=status_code, content={"detail": {"code": exc.code, "message": exc.message}})


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging(settings.log_level, filters=[RequestIdFilter()])

    app = FastAPI(title="Lift Plan Session API", version="1.0.0")
    app.add_exception_handler(GenerationError, generation_error_handler)
    app.include_router(router)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_context_and_logging(request: Request, call_next: Callable) -> Response:
        header_name = settings.request_id_header_name or "X-Request-ID"
        request_id = (request.headers.get(header_name) or "").strip() or new_request_id()
        token = set_request_id(request_id)
        started_ms = monotonic_ms()
        client_ip = getattr(request.client, "host", None)
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "http_request_error",
                extra=request_log_fields(
                    method=request.method,
                    path=request.url.path,
                    status_code=500,
                    duration_ms=monotonic_ms() - started_ms,
                    client_ip=client_ip,
                ),
            )
            raise
        else:
            response.headers[header_name] = request_id
            logger.info(
                "http_request",
                extra=request_log_fields(
                    method=request.method,
                    path=request.url.path,
                    status_code=response.status_code,
                    duration_ms=monotonic_ms() - started_ms,
                    client_ip=client_ip,
                ),
            )
            return response
        finally:
            reset_request_id(token)

    return app
