"""Correlation ID middleware."""

import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

CORRELATION_HEADER = "x-correlation-id"


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """Carry one correlation ID through request state, logs and response."""

    async def dispatch(self, request: Request, call_next):
        """Process request with correlation ID."""
        correlation_id = request.headers.get(CORRELATION_HEADER) or uuid.uuid4().hex
        request.state.correlation_id = correlation_id

        response: Response = await call_next(request)
        response.headers[CORRELATION_HEADER] = correlation_id
        return response
