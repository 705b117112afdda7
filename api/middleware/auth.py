"""Caller identity middleware.

Authentication happens at the upstream gateway, which forwards the caller
as trusted headers. This middleware only turns those headers into
``request.state.user``.
"""

import re
from typing import Optional

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from api.config.settings import settings
from api.middleware.error_handler import UnauthorizedError, error_response

logger = structlog.get_logger()

USER_ID_HEADER = "X-User-Id"
COMPANY_ID_HEADER = "X-Company-Id"
ROLES_HEADER = "X-User-Roles"

# Paths that don't require a caller
SKIP_AUTH_PATHS = [
    r"^/health",
    r"^/api/v1/health",
    r"^/api/docs",
    r"^/api/openapi\.json",
    r"^/api/redoc",
]

SKIP_AUTH_PATTERNS = [re.compile(p) for p in SKIP_AUTH_PATHS]

LOCAL_ADMIN = {
    "sub": "local-admin",
    "company_id": None,
    "roles": ["admin"],
}


def should_skip_auth(path: str) -> bool:
    """Check if path should skip authentication."""
    return any(pattern.match(path) for pattern in SKIP_AUTH_PATTERNS)


def get_user_from_headers(request: Request) -> Optional[dict]:
    """Build the caller from gateway headers, or None if absent."""
    user_id = request.headers.get(USER_ID_HEADER)
    if not user_id:
        return None

    roles = [
        role.strip()
        for role in request.headers.get(ROLES_HEADER, "").split(",")
        if role.strip()
    ]
    return {
        "sub": user_id,
        "company_id": request.headers.get(COMPANY_ID_HEADER) or None,
        "roles": roles,
    }


class AuthMiddleware(BaseHTTPMiddleware):
    """Middleware that attaches the caller identity to protected routes."""

    async def dispatch(self, request: Request, call_next) -> Response:
        """Resolve the caller before the handler runs."""
        if should_skip_auth(request.url.path):
            return await call_next(request)

        if not settings.AUTH_ENABLED:
            user = dict(LOCAL_ADMIN)
        else:
            user = get_user_from_headers(request)
            if not user:
                logger.warning("Request without caller identity", path=request.url.path)
                return error_response(UnauthorizedError())

        request.state.user = user
        request.state.user_id = user["sub"]
        request.state.user_roles = user["roles"]

        return await call_next(request)
