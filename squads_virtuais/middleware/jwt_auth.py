"""
JWT Auth Middleware — Bearer session token → g.current_user_id.

Every /api/v1/ route requires ``Authorization: Bearer <token>`` except the
public login endpoints, the GitHub integration callback and the health
check. Absent or invalid tokens are
rejected with 401 before the view runs.

Requests that do not match a route (404) or use the wrong method (405)
are left alone so the router's own error surfaces.
"""

import logging

from flask import g, request

from squads_virtuais.core.exceptions import AuthenticationError, InvalidSession
from squads_virtuais.services.session_service import verify_token
from squads_virtuais.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/auth/google",
    "/api/v1/auth/github",
    "/api/v1/health",
    "/api/v1/integrations/github/callback",
)


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.current_user_id = None
        g.session_claims = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return None
        if request.method == "OPTIONS":
            return None
        if request.routing_exception is not None:
            return None
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return None

        token = _bearer_token()
        if token is None:
            return api_error(E.UNAUTHORIZED, "Token de autenticação ausente")

        try:
            claims = verify_token(token)
        except AuthenticationError as exc:
            logger.info("Rejected session token: %s", exc.message,
                        extra={"path": path, "event_type": "auth.session_rejected"})
            return api_error(E.UNAUTHORIZED, exc.message)

        g.current_user_id = claims["userId"]
        g.session_claims = claims
        return None


def current_user_id() -> int:
    """Authenticated user id for the running request."""
    user_id = getattr(g, "current_user_id", None)
    if user_id is None:
        raise InvalidSession("Token de autenticação ausente")
    return user_id
