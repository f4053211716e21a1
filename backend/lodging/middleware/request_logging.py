"""Correlation id and access log middleware.

Every request gets an ``X-Correlation-Id`` (the caller's, or a fresh uuid),
stored on ``request.state`` for error bodies and echoed on the response.
One JSON line per request goes to the ``lodging.access`` logger:

{
  correlation_id,
  path,
  method,
  status_code,
  latency_ms
}
"""
from __future__ import annotations

import json
import logging
import time
import uuid

from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from lodging.errors import error_response

logger = logging.getLogger("lodging.access")

# Requests slower than this are logged at WARNING
SLOW_REQUEST_MS = 1000


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        incoming = request.headers.get("X-Correlation-Id")
        if incoming and incoming.strip():
            cid = incoming.strip()
        else:
            cid = str(uuid.uuid4())
        request.state.correlation_id = cid

        start = time.monotonic()
        try:
            response: Response = await call_next(request)
        except Exception:
            logger.exception("unhandled error, correlation_id=%s", cid)
            response = JSONResponse(
                status_code=500,
                content=error_response("internal_error", "Unexpected server error", {"correlation_id": cid}),
            )

        latency_ms = round((time.monotonic() - start) * 1000, 2)
        log_entry = {
            "correlation_id": cid,
            "path": request.url.path,
            "method": request.method,
            "status_code": response.status_code,
            "latency_ms": latency_ms,
        }
        if latency_ms > SLOW_REQUEST_MS:
            logger.warning(json.dumps(log_entry))
        else:
            logger.info(json.dumps(log_entry))

        response.headers["X-Correlation-Id"] = cid
        return response
