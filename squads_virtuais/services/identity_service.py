"""
Identity Service — external credential → canonical provider profile → User.

Google:
    The frontend obtains an ID token; we verify its RS256 signature against
    Google's JWKS, audience (GOOGLE_CLIENT_ID), issuer and expiry.

GitHub:
    Redirect flow. ``build_github_authorize_url`` issues a single-use state
    row; the callback consumes it, exchanges the code for an access token,
    then reads /user (and /user/emails when the profile email is private).
    The same helpers serve the repository integration (github_repo_service),
    which runs the flow with a wider scope and its own callback.

Both paths end in ``upsert_identity``: one transaction that inserts or
refreshes the (provider, provider_user_id) identity, links it to the User
owning the same email (or a new one) and advances last_login_at.
"""

import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from functools import lru_cache

import httpx
import jwt
from authlib.integrations.requests_client import OAuth2Session
from email_validator import EmailNotValidError, validate_email
from flask import current_app, url_for
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from squads_virtuais.core.exceptions import (
    AuthenticationFailed,
    EmailUnavailable,
    IdentityConfigurationError,
    InvalidCredential,
    InvalidSession,
    InvalidState,
    OAuthExchangeFailed,
    UserFetchFailed,
)
from squads_virtuais.models import db
from squads_virtuais.models.auth import OAuthState, User, UserIdentity
from squads_virtuais.services.helpers.transaction import atomic
from squads_virtuais.services.session_service import issue_token

logger = logging.getLogger(__name__)


# ─── Provider endpoints ──────────────────────────────────────
GOOGLE_JWKS_URL = "https://www.googleapis.com/oauth2/v3/certs"
GOOGLE_ISSUERS = ("accounts.google.com", "https://accounts.google.com")

GITHUB_AUTHORIZE_URL = "https://github.com/login/oauth/authorize"
GITHUB_TOKEN_URL = "https://github.com/login/oauth/access_token"
GITHUB_API_URL = "https://api.github.com"
GITHUB_SCOPE = "read:user user:email"

HTTP_TIMEOUT = 10  # seconds


@dataclass
class ProviderProfile:
    """Canonical profile produced by every provider path."""

    provider: str
    provider_user_id: str
    email: str | None
    name: str | None = None
    avatar_url: str | None = None
    raw: dict = field(default_factory=dict)


def normalize_email(email: str | None) -> str | None:
    """Syntax-check and normalise an address; None when unusable."""
    if not email:
        return None
    try:
        result = validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        logger.warning("Provider returned an invalid email address")
        return None
    return result.normalized.lower()


# ═══════════════════════════════════════════════════════════════
# Google
# ═══════════════════════════════════════════════════════════════
@lru_cache(maxsize=1)
def _google_jwks_client() -> jwt.PyJWKClient:
    return jwt.PyJWKClient(GOOGLE_JWKS_URL, cache_keys=True, lifespan=300)


def verify_google_id_token(id_token: str) -> ProviderProfile:
    """
    Verify a Google ID token and return the caller's profile.

    Raises:
        IdentityConfigurationError: GOOGLE_CLIENT_ID unset.
        InvalidCredential: malformed, bad signature, wrong aud/iss, expired.
        EmailUnavailable: token carries no (verified) email.
    """
    client_id = current_app.config.get("GOOGLE_CLIENT_ID")
    if not client_id:
        raise IdentityConfigurationError()

    try:
        signing_key = _google_jwks_client().get_signing_key_from_jwt(id_token)
        claims = jwt.decode(
            id_token,
            signing_key.key,
            algorithms=["RS256"],
            audience=client_id,
            options={"require": ["sub", "aud", "iss", "exp", "iat"]},
        )
    except jwt.ExpiredSignatureError:
        raise InvalidCredential("Token do Google expirado")
    except (jwt.InvalidTokenError, jwt.PyJWKClientError) as exc:
        logger.warning("Google ID token rejected: %s", exc,
                       extra={"provider": "google", "event_type": "auth.credential_rejected"})
        raise InvalidCredential("Token do Google inválido")

    if claims.get("iss") not in GOOGLE_ISSUERS:
        logger.warning("Google ID token with unexpected issuer %r", claims.get("iss"),
                       extra={"provider": "google", "event_type": "auth.credential_rejected"})
        raise InvalidCredential("Token do Google inválido")

    if claims.get("email_verified") is False:
        raise EmailUnavailable("Email da conta Google não verificado")
    email = normalize_email(claims.get("email"))
    if not email:
        raise EmailUnavailable()

    return ProviderProfile(
        provider="google",
        provider_user_id=str(claims["sub"]),
        email=email,
        name=claims.get("name") or email,
        avatar_url=claims.get("picture"),
        raw={k: v for k, v in claims.items() if k not in ("aud", "iat", "exp", "nbf")},
    )


# ═══════════════════════════════════════════════════════════════
# GitHub
# ═══════════════════════════════════════════════════════════════
def _github_credentials() -> tuple[str, str]:
    client_id = current_app.config.get("GITHUB_CLIENT_ID")
    client_secret = current_app.config.get("GITHUB_CLIENT_SECRET")
    if not client_id or not client_secret:
        raise IdentityConfigurationError()
    return client_id, client_secret


def _github_redirect_uri() -> str:
    return current_app.config.get("GITHUB_REDIRECT_URI") or url_for(
        "auth.github_callback", _external=True,
    )


def issue_oauth_state(provider: str, workspace_id: int | None = None,
                      user_id: int | None = None) -> str:
    """Persist a fresh single-use state and return its value."""
    now = datetime.now(timezone.utc)
    ttl = current_app.config.get("OAUTH_STATE_TTL", 600)
    state = secrets.token_urlsafe(32)

    with atomic():
        # Housekeeping: expired states are useless
        db.session.execute(delete(OAuthState).where(OAuthState.expires_at < now))
        db.session.add(OAuthState(
            state=state,
            provider=provider,
            workspace_id=workspace_id,
            user_id=user_id,
            expires_at=now + timedelta(seconds=ttl),
        ))
    return state


def github_authorize_url(state: str, scope: str = GITHUB_SCOPE, redirect_uri: str | None = None) -> str:
    client_id, client_secret = _github_credentials()
    client = OAuth2Session(
        client_id, client_secret,
        scope=scope,
        redirect_uri=redirect_uri or _github_redirect_uri(),
    )
    url, _ = client.create_authorization_url(GITHUB_AUTHORIZE_URL, state=state)
    return url


def build_github_authorize_url() -> str:
    """Issue a single-use state and return the GitHub login authorize URL."""
    _github_credentials()
    return github_authorize_url(issue_oauth_state("github"))


def consume_oauth_state(state: str | None, provider: str = "github") -> OAuthState:
    """
    Mark ``state`` consumed and return its row. Single use and time bound.

    The conditional UPDATE makes two concurrent callbacks with the same
    state race on one row: exactly one of them sees rowcount == 1.

    Raises:
        InvalidState: unknown, expired or already consumed.
    """
    if not state:
        raise InvalidState()

    now = datetime.now(timezone.utc)
    with atomic():
        result = db.session.execute(
            update(OAuthState)
            .where(
                OAuthState.state == state,
                OAuthState.provider == provider,
                OAuthState.consumed_at.is_(None),
                OAuthState.expires_at > now,
            )
            .values(consumed_at=now)
            .execution_options(synchronize_session=False)
        )
    if result.rowcount != 1:
        logger.warning("OAuth state rejected (unknown, expired or replayed)",
                       extra={"provider": provider, "event_type": "auth.invalid_state"})
        raise InvalidState()
    return db.session.execute(select(OAuthState).where(OAuthState.state == state)).scalar_one()


def exchange_github_code(code: str, redirect_uri: str | None = None) -> str:
    """Exchange an authorization code for an access token."""
    client_id, client_secret = _github_credentials()
    try:
        resp = httpx.post(
            GITHUB_TOKEN_URL,
            json={
                "client_id": client_id,
                "client_secret": client_secret,
                "code": code,
                "redirect_uri": redirect_uri or _github_redirect_uri(),
            },
            headers={"Accept": "application/json"},
            timeout=HTTP_TIMEOUT,
        )
        resp.raise_for_status()
        data = resp.json()
    except (httpx.HTTPError, ValueError) as exc:
        logger.error("GitHub token exchange failed: %s", exc,
                     extra={"provider": "github", "event_type": "auth.exchange_failed"})
        raise OAuthExchangeFailed()

    access_token = data.get("access_token") if isinstance(data, dict) else None
    if not access_token:
        logger.warning("GitHub token exchange returned no access_token (error=%s)",
                       data.get("error") if isinstance(data, dict) else None,
                       extra={"provider": "github", "event_type": "auth.exchange_failed"})
        raise OAuthExchangeFailed()
    return access_token


def github_api_get(path: str, access_token: str, params: dict | None = None) -> httpx.Response:
    """GET against the GitHub REST API. Status handling is left to the caller."""
    return httpx.get(
        f"{GITHUB_API_URL}{path}",
        params=params,
        headers={
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/vnd.github+json",
        },
        timeout=HTTP_TIMEOUT,
    )


def _github_get(path: str, access_token: str):
    try:
        resp = github_api_get(path, access_token)
        resp.raise_for_status()
        return resp.json()
    except (httpx.HTTPError, ValueError) as exc:
        logger.error("GitHub API call %s failed: %s", path, exc,
                     extra={"provider": "github", "event_type": "auth.user_fetch_failed"})
        raise UserFetchFailed()


def _pick_github_email(emails) -> str | None:
    """Primary verified address, else first verified, else first listed."""
    if not isinstance(emails, list):
        return None
    entries = [e for e in emails if isinstance(e, dict) and e.get("email")]
    for predicate in (
        lambda e: e.get("primary") and e.get("verified"),
        lambda e: e.get("verified"),
        lambda e: True,
    ):
        for entry in entries:
            if predicate(entry):
                return entry["email"]
    return None


def fetch_github_account(access_token: str) -> dict:
    """Raw /user payload of the token owner."""
    user = _github_get("/user", access_token)
    if not isinstance(user, dict) or user.get("id") is None:
        raise UserFetchFailed()
    return user


def fetch_github_profile(access_token: str) -> ProviderProfile:
    user = fetch_github_account(access_token)

    email = normalize_email(user.get("email"))
    if not email:
        email = normalize_email(_pick_github_email(_github_get("/user/emails", access_token)))
    if not email:
        raise EmailUnavailable()

    return ProviderProfile(
        provider="github",
        provider_user_id=str(user["id"]),
        email=email,
        name=user.get("name") or user.get("login") or email,
        avatar_url=user.get("avatar_url"),
        raw=user,
    )


# ═══════════════════════════════════════════════════════════════
# Upsert
# ═══════════════════════════════════════════════════════════════
def _upsert_once(profile: ProviderProfile) -> User:
    now = datetime.now(timezone.utc)
    with atomic():
        identity = db.session.execute(
            select(UserIdentity).where(
                UserIdentity.provider == profile.provider,
                UserIdentity.provider_user_id == profile.provider_user_id,
            )
        ).scalar_one_or_none()

        if identity is None:
            user = None
            if profile.email:
                user = db.session.execute(
                    select(User).where(User.email == profile.email)
                ).scalar_one_or_none()
            if user is None:
                user = User(name=profile.name, email=profile.email, avatar_url=profile.avatar_url)
                db.session.add(user)
                db.session.flush()
                logger.info("Created user %s from %s login", user.id, profile.provider,
                            extra={"user_id": user.id, "provider": profile.provider,
                                   "event_type": "auth.user_created"})
            identity = UserIdentity(
                user_id=user.id,
                provider=profile.provider,
                provider_user_id=profile.provider_user_id,
            )
            db.session.add(identity)
        else:
            user = identity.user

        # Coalesce: an absent incoming value never erases a stored one
        identity.provider_email = profile.email or identity.provider_email
        identity.name = profile.name or identity.name
        identity.avatar_url = profile.avatar_url or identity.avatar_url
        identity.raw_profile = profile.raw or identity.raw_profile
        identity.last_login_at = now

        user.name = profile.name or user.name
        user.avatar_url = profile.avatar_url or user.avatar_url
        if not user.email and profile.email:
            taken = db.session.execute(
                select(User.id).where(User.email == profile.email, User.id != user.id)
            ).first()
            if taken is None:
                user.email = profile.email
        user.last_login_at = now

    return user


def upsert_identity(profile: ProviderProfile) -> User:
    """
    Insert or refresh the identity and its user in one transaction.

    A concurrent first login for the same identity loses the unique-key race
    with an IntegrityError; the retry then finds the winner's row.

    Raises:
        AuthenticationFailed: persistence failed (detail only in logs).
    """
    for attempt in (1, 2):
        try:
            return _upsert_once(profile)
        except IntegrityError as exc:
            if attempt == 1:
                logger.info("Identity upsert raced, retrying: %s", exc.orig,
                            extra={"provider": profile.provider})
                continue
            logger.error("Identity upsert failed: %s", exc,
                         extra={"provider": profile.provider, "event_type": "auth.upsert_failed"})
            raise AuthenticationFailed() from exc
        except SQLAlchemyError as exc:
            logger.error("Identity upsert failed: %s", exc,
                         extra={"provider": profile.provider, "event_type": "auth.upsert_failed"})
            raise AuthenticationFailed() from exc
    raise AuthenticationFailed()


# ═══════════════════════════════════════════════════════════════
# Login flows
# ═══════════════════════════════════════════════════════════════
def _session_for(user: User, provider: str) -> str:
    logger.info("Login succeeded via %s", provider,
                extra={"user_id": user.id, "provider": provider, "event_type": "auth.login"})
    return issue_token(user.id, user.email, user.name)


def login_with_google(id_token: str) -> tuple[str, User]:
    profile = verify_google_id_token(id_token)
    user = upsert_identity(profile)
    return _session_for(user, "google"), user


def login_with_github(code: str, state: str | None) -> tuple[str, User]:
    consume_oauth_state(state)
    access_token = exchange_github_code(code)
    profile = fetch_github_profile(access_token)
    user = upsert_identity(profile)
    return _session_for(user, "github"), user


def get_user(user_id: int) -> User:
    """User behind a session; a token for a deleted user is an invalid session."""
    user = db.session.get(User, user_id)
    if user is None:
        raise InvalidSession()
    return user
