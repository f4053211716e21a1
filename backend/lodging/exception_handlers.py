from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from lodging.domain.edit_session_state_machine import EditSessionTransitionError
from lodging.domain.overlap import InvalidStayRange
from lodging.errors import AppError, ErrorCode, error_response
from lodging.services.pricing import PricingError

logger = logging.getLogger(__name__)


def _with_correlation_id(request: Request, details: Any) -> Any:
    cid = getattr(request.state, "correlation_id", None)
    if cid and isinstance(details, dict) and "correlation_id" not in details:
        details["correlation_id"] = cid
    return details


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:  # type: ignore[override]
        content = exc.to_dict()
        content["error"]["details"] = _with_correlation_id(request, dict(content["error"]["details"]))
        return JSONResponse(status_code=exc.status_code, content=content)

    @app.exception_handler(InvalidStayRange)
    async def invalid_range_handler(request: Request, exc: InvalidStayRange) -> JSONResponse:  # type: ignore[override]
        details = {"check_in": exc.check_in.isoformat(), "check_out": exc.check_out.isoformat()}
        return JSONResponse(
            status_code=422,
            content=error_response(
                ErrorCode.INVALID_STAY_RANGE.value,
                str(exc),
                _with_correlation_id(request, details),
            ),
        )

    @app.exception_handler(PricingError)
    async def pricing_error_handler(request: Request, exc: PricingError) -> JSONResponse:  # type: ignore[override]
        details = {"errors": [i.model_dump() for i in exc.issues]}
        return JSONResponse(
            status_code=422,
            content=error_response(
                ErrorCode.VALIDATION_ERROR.value,
                str(exc),
                _with_correlation_id(request, details),
            ),
        )

    @app.exception_handler(EditSessionTransitionError)
    async def transition_error_handler(request: Request, exc: EditSessionTransitionError) -> JSONResponse:  # type: ignore[override]
        details = {"current": exc.current, "target": exc.target}
        return JSONResponse(
            status_code=409,
            content=error_response("invalid_state_transition", str(exc), _with_correlation_id(request, details)),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:  # type: ignore[override]
        details: Any = {"errors": exc.errors()}
        return JSONResponse(
            status_code=422,
            content=error_response(
                ErrorCode.VALIDATION_ERROR.value,
                "Request validation failed",
                _with_correlation_id(request, details),
            ),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:  # type: ignore[override]
        code = "not_found" if exc.status_code == 404 else "http_error"
        detail: Any = exc.detail
        if isinstance(detail, str):
            message = detail
            details: Any = {}
        elif isinstance(detail, dict):
            message = detail.get("message", "HTTP error")
            details = detail
        else:
            message = "HTTP error"
            details = {}
        return JSONResponse(
            status_code=exc.status_code,
            content=error_response(code, message, _with_correlation_id(request, details)),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:  # type: ignore[override]
        logger.exception("unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content=error_response("internal_error", "Unexpected server error", _with_correlation_id(request, {})),
        )
