"""HTTP middleware for request ID propagation and correlation.

Every request/response pair carries a request ID so that admission decisions,
rejections and downstream handler logs can be correlated.

The middleware:
- Accepts the incoming request ID header or generates a UUID
- Stores request_id in contextvars for the request lifecycle
- Echoes request_id and total duration in the response headers
- Clears context after completion to prevent leaks between requests

Usage:
    app.middleware("http")(request_id_middleware)

Register it after the admission filter so it wraps it and rejected responses
are tagged too.
"""

from __future__ import annotations

import time
import uuid

from fastapi import Request, Response

from admission.core.config import settings
from admission.core.logging import clear_request_id, set_request_id


async def request_id_middleware(request: Request, call_next) -> Response:
    """Attach a correlation ID and duration header to every response.

    Args:
        request: The incoming HTTP request object.
        call_next: The next middleware/route handler in the stack.

    Returns:
        Response: The response from the next handler with request_id and
            duration headers added.
    """

    header_name = settings.log.request_id_header
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
