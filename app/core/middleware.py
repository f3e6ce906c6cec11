"""HTTP middleware for request ID propagation and correlation.

The middleware:
- Accepts the incoming request id header or generates a UUID
- Stores request_id in contextvars so limiter and handler logs carry it
- Echoes request_id and the request duration in response headers
- Clears context after request completion to prevent context leaks

Usage:
    app.middleware("http")(request_id_middleware)
"""

from __future__ import annotations

import time
import uuid

from fastapi import Request, Response

from app.core.logging import clear_request_id, set_request_id


async def request_id_middleware(request: Request, call_next) -> Response:
    """Propagate a correlation id through the request and back to the client.

    The header name comes from the settings bound to the application
    (``LOG_REQUEST_ID_HEADER``, default ``X-Request-ID``).
    """

    header_name = request.app.state.settings.log.request_id_header
    request_id = request.headers.get(header_name) or str(uuid.uuid4())
    set_request_id(request_id)
    start = time.perf_counter()
    try:
        response: Response = await call_next(request)
    finally:
        clear_request_id()

    duration_ms = (time.perf_counter() - start) * 1000
    response.headers[header_name] = request_id
    response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    return response
