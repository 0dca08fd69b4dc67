"""Security modules: authentication."""

from secrets_mcp.security.auth import AuthMiddleware, verify_auth_token

__all__ = ["AuthMiddleware", "verify_auth_token"]
