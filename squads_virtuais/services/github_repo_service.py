"""
GitHub Repository Service — connect a workspace to GitHub and link repositories.

Flow:
    1. ``start_connection``    member asks to connect → authorize URL with the
                               ``repo`` scope and a state bound to (workspace, user)
    2. ``complete_connection`` callback consumes the state, exchanges the code,
                               reads /user and upserts the GithubConnection with
                               the access token encrypted (Fernet) at rest
    3. ``list_repositories``   repositories visible to the workspace's most
                               recent connection
    4. ``connect_repository``  verifies ``owner/repo`` on GitHub and upserts a
                               RepoConnection with its permission level

GitHub answers are mapped to application errors:
    401 → GithubReconnectRequired (409)
    404 → NotFoundError("Repository") on repository lookups
    anything else / transport failure → GithubApiFailed (502)
"""

import logging
import re
from datetime import datetime, timezone

import httpx
from flask import current_app, url_for
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError

from squads_virtuais.core.exceptions import (
    AuthenticationFailed,
    GithubApiFailed,
    GithubReconnectRequired,
    InvalidState,
    NotFoundError,
    ValidationError,
)
from squads_virtuais.models import db
from squads_virtuais.models.github import GithubConnection, RepoConnection
from squads_virtuais.models.workspace import Workspace
from squads_virtuais.services import identity_service
from squads_virtuais.services.access import (
    get_scoped_or_404,
    get_workspace_for_member,
    require_workspace_member,
)
from squads_virtuais.services.helpers.transaction import atomic
from squads_virtuais.utils.crypto import InvalidToken, decrypt_secret, encrypt_secret
from squads_virtuais.utils.helpers import require_fields, require_text

logger = logging.getLogger(__name__)

STATE_PROVIDER = "github_repo"
REPO_SCOPE = "read:user user:email repo"
REPO_LIST_PARAMS = {"visibility": "all", "sort": "updated", "per_page": 100}
_REPO_NAME_RE = re.compile(r"^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+$")


def _connect_redirect_uri() -> str:
    return current_app.config.get("GITHUB_CONNECT_REDIRECT_URI") or url_for(
        "github.github_callback", _external=True,
    )


# ═══════════════════════════════════════════════════════════════
# Account connection
# ═══════════════════════════════════════════════════════════════
def start_connection(workspace_id: int, user_id: int) -> str:
    get_workspace_for_member(workspace_id, user_id)
    state = identity_service.issue_oauth_state(STATE_PROVIDER, workspace_id=workspace_id, user_id=user_id)
    return identity_service.github_authorize_url(
        state, scope=REPO_SCOPE, redirect_uri=_connect_redirect_uri(),
    )


def complete_connection(code: str, state: str | None) -> GithubConnection:
    """
    Finish the redirect flow started by ``start_connection``.

    The user who started it must still be a member of the workspace.

    Raises:
        InvalidState: unknown, expired, replayed or workspace gone.
        AuthorizationError: the initiating user left the workspace.
        OAuthExchangeFailed / UserFetchFailed: GitHub side failures.
        AuthenticationFailed: the connection could not be stored.
    """
    row = identity_service.consume_oauth_state(state, provider=STATE_PROVIDER)
    workspace_id, user_id = row.workspace_id, row.user_id
    if workspace_id is None or user_id is None or db.session.get(Workspace, workspace_id) is None:
        raise InvalidState()
    require_workspace_member(workspace_id, user_id)

    access_token = identity_service.exchange_github_code(code, redirect_uri=_connect_redirect_uri())
    account = identity_service.fetch_github_account(access_token)
    provider_user_id = str(account["id"])

    try:
        with atomic():
            connection = db.session.execute(
                select(GithubConnection).where(
                    GithubConnection.workspace_id == workspace_id,
                    GithubConnection.provider_user_id == provider_user_id,
                )
            ).scalar_one_or_none()
            if connection is None:
                connection = GithubConnection(workspace_id=workspace_id, provider_user_id=provider_user_id)
                db.session.add(connection)
            connection.login = account.get("login")
            connection.avatar_url = account.get("avatar_url")
            connection.access_token_encrypted = encrypt_secret(access_token)
            connection.connected_by_user_id = user_id
            connection.connected_at = datetime.now(timezone.utc)
    except IntegrityError as exc:
        logger.error("GitHub connection upsert failed: %s", exc,
                     extra={"workspace_id": workspace_id, "provider": "github",
                            "event_type": "github.connect_failed"})
        raise AuthenticationFailed("Falha ao salvar a conexão GitHub") from exc

    logger.info("Workspace %s connected to GitHub account %s", workspace_id, connection.login,
                extra={"workspace_id": workspace_id, "user_id": user_id, "provider": "github",
                       "event_type": "github.connected"})
    return connection


def _latest_connection(workspace_id: int) -> GithubConnection | None:
    return db.session.execute(
        select(GithubConnection)
        .where(GithubConnection.workspace_id == workspace_id)
        .order_by(GithubConnection.connected_at.desc(), GithubConnection.id.desc())
        .limit(1)
    ).scalar_one_or_none()


def _require_connection(workspace_id: int) -> GithubConnection:
    connection = _latest_connection(workspace_id)
    if connection is None:
        raise NotFoundError("GithubConnection", workspace_id)
    return connection


def get_connection(workspace_id: int, user_id: int) -> dict:
    get_workspace_for_member(workspace_id, user_id)
    connection = _latest_connection(workspace_id)
    return {
        "workspace_id": workspace_id,
        "connected": connection is not None,
        "connection": connection.to_dict() if connection else None,
    }


def disconnect(workspace_id: int, user_id: int) -> int:
    """Forget every GitHub account of the workspace. Linked repositories stay listed."""
    get_workspace_for_member(workspace_id, user_id)
    with atomic():
        removed = db.session.execute(
            delete(GithubConnection).where(GithubConnection.workspace_id == workspace_id)
        ).rowcount
    logger.info("Workspace %s disconnected from GitHub", workspace_id,
                extra={"workspace_id": workspace_id, "user_id": user_id,
                       "event_type": "github.disconnected"})
    return removed


# ═══════════════════════════════════════════════════════════════
# GitHub API
# ═══════════════════════════════════════════════════════════════
def _access_token(connection: GithubConnection) -> str:
    try:
        return decrypt_secret(connection.access_token_encrypted)
    except InvalidToken:
        # Encrypted under a previous ENCRYPTION_KEY
        logger.warning("Stored GitHub token for workspace %s cannot be decrypted", connection.workspace_id,
                       extra={"workspace_id": connection.workspace_id, "event_type": "github.token_unreadable"})
        raise GithubReconnectRequired()


def _github_json(connection: GithubConnection, path: str, params: dict | None = None,
                 missing: str | None = None):
    extra = {"workspace_id": connection.workspace_id, "provider": "github"}
    try:
        resp = identity_service.github_api_get(path, _access_token(connection), params=params)
    except httpx.HTTPError as exc:
        logger.error("GitHub API call %s failed: %s", path, exc, extra=extra)
        raise GithubApiFailed() from exc

    if resp.status_code == 401:
        logger.info("GitHub token rejected for %s", path, extra=extra)
        raise GithubReconnectRequired()
    if resp.status_code == 404 and missing:
        raise NotFoundError(missing, path)
    if resp.status_code >= 400:
        logger.error("GitHub API call %s returned %s", path, resp.status_code, extra=extra)
        raise GithubApiFailed()
    try:
        return resp.json()
    except ValueError as exc:
        logger.error("GitHub API call %s returned invalid JSON", path, extra=extra)
        raise GithubApiFailed() from exc


def _repository_summary(repo: dict) -> dict:
    owner = repo.get("owner") or {}
    permissions = repo.get("permissions") or {}
    return {
        "id": repo.get("id"),
        "name": repo.get("name"),
        "full_name": repo.get("full_name"),
        "owner": {"login": owner.get("login"), "avatar_url": owner.get("avatar_url")},
        "private": bool(repo.get("private")),
        "description": repo.get("description") or "",
        "html_url": repo.get("html_url"),
        "default_branch": repo.get("default_branch") or "main",
        "permissions": {
            "admin": bool(permissions.get("admin")),
            "push": bool(permissions.get("push")),
            "pull": bool(permissions.get("pull")),
        },
        "updated_at": repo.get("updated_at"),
        "language": repo.get("language"),
    }


def permission_level(permissions: dict | None) -> str:
    permissions = permissions or {}
    if permissions.get("admin"):
        return "admin"
    if permissions.get("push"):
        return "write"
    return "read"


def list_repositories(workspace_id: int, user_id: int) -> dict:
    """Repositories visible to the workspace's GitHub account, most recently updated first."""
    get_workspace_for_member(workspace_id, user_id)
    connection = _require_connection(workspace_id)
    payload = _github_json(connection, "/user/repos", params=REPO_LIST_PARAMS)
    if not isinstance(payload, list):
        raise GithubApiFailed()
    repositories = [_repository_summary(r) for r in payload if isinstance(r, dict)]
    return {
        "workspace_id": workspace_id,
        "github_login": connection.login,
        "repositories": repositories,
        "total": len(repositories),
    }


# ═══════════════════════════════════════════════════════════════
# Repository links
# ═══════════════════════════════════════════════════════════════
def connect_repository(workspace_id: int, user_id: int, data: dict) -> tuple[RepoConnection, bool]:
    """
    Link ``owner/repo`` to the workspace. Returns (row, created).

    Linking an already linked repository refreshes its branch and
    permission level instead of failing.
    """
    get_workspace_for_member(workspace_id, user_id)
    require_fields(data, "repo_full_name")
    require_text(data, "repo_full_name")
    full_name = data["repo_full_name"].strip()
    if not _REPO_NAME_RE.match(full_name):
        raise ValidationError(
            "repo_full_name deve estar no formato 'owner/repo'",
            details={"repo_full_name": "format"},
        )

    connection = _require_connection(workspace_id)
    repo = _github_json(connection, f"/repos/{full_name}", missing="Repository")
    if not isinstance(repo, dict):
        raise GithubApiFailed()
    canonical_name = repo.get("full_name") or full_name

    with atomic():
        link = db.session.execute(
            select(RepoConnection).where(
                RepoConnection.workspace_id == workspace_id,
                RepoConnection.repo_full_name == canonical_name,
            )
        ).scalar_one_or_none()
        created = link is None
        if created:
            link = RepoConnection(workspace_id=workspace_id, repo_full_name=canonical_name)
            db.session.add(link)
        link.default_branch = repo.get("default_branch") or "main"
        link.permissions_level = permission_level(repo.get("permissions"))
        link.connected_by_user_id = user_id
        link.connected_at = datetime.now(timezone.utc)

    logger.info("Repository %s linked to workspace %s", canonical_name, workspace_id,
                extra={"workspace_id": workspace_id, "user_id": user_id,
                       "event_type": "github.repo_connected"})
    return link, created


def list_repo_connections(workspace_id: int, user_id: int) -> list[RepoConnection]:
    get_workspace_for_member(workspace_id, user_id)
    stmt = (
        select(RepoConnection)
        .where(RepoConnection.workspace_id == workspace_id)
        .order_by(RepoConnection.repo_full_name)
    )
    return list(db.session.execute(stmt).scalars().all())


def disconnect_repository(repo_connection_id: int, user_id: int) -> None:
    link = get_scoped_or_404(RepoConnection, repo_connection_id, user_id)
    workspace_id, full_name = link.workspace_id, link.repo_full_name
    with atomic():
        db.session.delete(link)
    logger.info("Repository %s unlinked from workspace %s", full_name, workspace_id,
                extra={"workspace_id": workspace_id, "user_id": user_id,
                       "event_type": "github.repo_disconnected"})
