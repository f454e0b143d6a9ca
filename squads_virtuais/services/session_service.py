"""
Session Service — signed session token issue & verification.

Token lifetime: JWT_EXPIRES_IN seconds (default 7 days)
Algorithm:      HS256, secret JWT_SECRET

Token payload:
{
    "sub": "<user_id>",
    "userId": <user_id>,
    "email": "<email>",
    "name": "<display name>",
    "iat": <issued_at>,
    "exp": <expires_at>
}

Stateless: there is no revocation store, logout is client-side.
"""

from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app

from squads_virtuais.config import DEFAULT_JWT_EXPIRES_IN
from squads_virtuais.core.exceptions import InvalidSession

ALGORITHM = "HS256"


def _get_secret() -> str:
    return current_app.config["JWT_SECRET"]


def _get_expires() -> int:
    return current_app.config.get("JWT_EXPIRES_IN", DEFAULT_JWT_EXPIRES_IN)


def issue_token(user_id: int, email: str | None, name: str | None) -> str:
    """Sign a session token for ``user_id``."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "userId": user_id,
        "email": email,
        "name": name,
        "iat": now,
        "exp": now + timedelta(seconds=_get_expires()),
    }
    return jwt.encode(payload, _get_secret(), algorithm=ALGORITHM)


def verify_token(token: str) -> dict:
    """
    Verify signature and expiry, return the claims.

    Raises:
        InvalidSession: bad signature, expired, malformed, or no userId claim.
    """
    try:
        claims = jwt.decode(
            token,
            _get_secret(),
            algorithms=[ALGORITHM],
            options={"require": ["exp", "iat"]},
        )
    except jwt.ExpiredSignatureError:
        raise InvalidSession("Sessão expirada")
    except jwt.InvalidTokenError:
        raise InvalidSession()

    user_id = claims.get("userId")
    if isinstance(user_id, bool) or not isinstance(user_id, int):
        raise InvalidSession()
    return claims
