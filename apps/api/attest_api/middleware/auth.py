"""Authentication middleware to extract the principal forwarded by the gateway."""

import hmac
import logging
from typing import Optional

from fastapi import Request, status
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from attest_api.auth.principal import Principal
from attest_api.settings import get_settings

logger = logging.getLogger(__name__)

PUBLIC_PATHS = ("/health", "/ready", "/metrics", "/docs", "/openapi.json", "/")


def _positive_int(value: Optional[str]) -> Optional[int]:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def parse_capabilities(header: Optional[str]) -> frozenset:
    """Comma-separated capability header to a set."""
    if not header:
        return frozenset()
    return frozenset(part.strip() for part in header.split(",") if part.strip())


class AuthMiddleware(BaseHTTPMiddleware):
    """Build a Principal from trusted gateway headers."""

    async def dispatch(self, request: Request, call_next):
        """Process request with principal extraction."""
        # Skip auth for health checks, docs, and metrics
        if request.url.path in PUBLIC_PATHS or request.url.path.startswith("/metrics"):
            return await call_next(request)

        settings = get_settings()
        if settings.gateway_key:
            presented = request.headers.get("x-gateway-key", "")
            if not hmac.compare_digest(presented.encode(), settings.gateway_key.encode()):
                return JSONResponse(
                    status_code=status.HTTP_401_UNAUTHORIZED,
                    content={"detail": "Invalid or missing gateway key."},
                )

        tenant_id = _positive_int(request.headers.get("x-tenant-id"))
        user_id = _positive_int(request.headers.get("x-user-id"))
        username = (request.headers.get("x-username") or "").strip()
        if tenant_id is None or user_id is None or not username:
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={
                    "detail": "Missing principal. Provide x-tenant-id, x-user-id and x-username headers."
                },
            )

        principal = Principal(
            tenant_id=tenant_id,
            user_id=user_id,
            username=username,
            capabilities=parse_capabilities(request.headers.get("x-capabilities")),
        )
        request.state.principal = principal
        request.state.tenant_id = tenant_id

        # Structured logging
        correlation_id = getattr(request.state, "correlation_id", None)
        logger.info(
            "Authenticated request",
            extra={
                "tenant_id": tenant_id,
                "user_id": user_id,
                "correlation_id": correlation_id,
                "path": request.url.path,
            },
        )

        return await call_next(request)
