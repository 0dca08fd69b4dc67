"""Authentication middleware and utilities."""

import hmac
import logging
from typing import Callable, Iterable

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from secrets_mcp.config.loader import Settings
from secrets_mcp.mcp.errors import AUTHENTICATION_ERROR, make_error_response

logger = logging.getLogger(__name__)


def verify_auth_token(token: str | None, expected: str) -> bool:
    """
    Verify an authentication token.

    Returns True if:
    - Auth is disabled (``expected`` is empty)
    - Token matches ``expected`` (constant-time comparison)
    """
    if not expected:
        return True

    if token is None:
        return False

    return hmac.compare_digest(token.encode("utf-8"), expected.encode("utf-8"))


def extract_bearer_token(authorization: str | None) -> str | None:
    """Extract token from Authorization header."""
    if authorization is None:
        return None

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None

    return parts[1]


class AuthMiddleware(BaseHTTPMiddleware):
    """Require a bearer token on the MCP endpoints when MCP_AUTH_TOKEN is set."""

    def __init__(self, app: ASGIApp, settings: Settings, protected_paths: Iterable[str]):
        super().__init__(app)
        self.settings = settings
        self.protected_paths = frozenset(protected_paths)

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Response]
    ) -> Response:
        # Skip auth if not enabled
        if not self.settings.auth_enabled:
            return await call_next(request)

        # Preflight requests never carry credentials
        if request.method == "OPTIONS":
            return await call_next(request)

        path = request.url.path
        if path in self.protected_paths:
            token = extract_bearer_token(request.headers.get("Authorization"))
            if not verify_auth_token(token, self.settings.mcp_auth_token):
                logger.warning(f"Unauthorized access attempt to {path}")
                return JSONResponse(
                    status_code=401,
                    content=make_error_response(AUTHENTICATION_ERROR),
                    headers={"WWW-Authenticate": "Bearer"},
                )

        return await call_next(request)
