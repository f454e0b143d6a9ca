"""
GitHub Integration Blueprint — workspace GitHub account and linked repositories.

Endpoints:
    POST   /api/v1/workspaces/<id>/github/connect            — authorize URL (repo scope)
    GET    /api/v1/integrations/github/callback              — code + state → redirect to frontend
    GET    /api/v1/workspaces/<id>/github                    — connection status
    DELETE /api/v1/workspaces/<id>/github                    — forget the GitHub account
    GET    /api/v1/workspaces/<id>/github/repositories       — repositories visible to the account
    POST   /api/v1/workspaces/<id>/github/repositories       — link owner/repo
    GET    /api/v1/workspaces/<id>/github/repo-connections   — linked repositories
    DELETE /api/v1/repo-connections/<id>                     — unlink

The callback is public and, like the login callback, always redirects to
FRONTEND_URL: ``github_connected=true&workspace_id=<id>`` or ``error=<code>``.
"""

import logging
from urllib.parse import urlencode

from flask import Blueprint, current_app, jsonify, redirect, request

from squads_virtuais.core.exceptions import AppError
from squads_virtuais.middleware.jwt_auth import current_user_id
from squads_virtuais.services import github_repo_service
from squads_virtuais.utils.helpers import get_json_body

logger = logging.getLogger(__name__)

github_bp = Blueprint("github", __name__, url_prefix="/api/v1")

GITHUB_OAUTH_ERROR = "github_oauth_error"
GITHUB_CODE_MISSING = "github_code_missing"
GITHUB_INTERNAL_ERROR = "github_internal_error"


def _frontend_redirect(**params):
    frontend = current_app.config.get("FRONTEND_URL", "").rstrip("/")
    return redirect(f"{frontend}?{urlencode(params)}")


# ── Account ──────────────────────────────────────────────────────────────────


@github_bp.route("/workspaces/<int:workspace_id>/github/connect", methods=["POST"])
def start_connection(workspace_id: int):
    url = github_repo_service.start_connection(workspace_id, current_user_id())
    return jsonify({"authorization_url": url}), 200


@github_bp.route("/integrations/github/callback", methods=["GET"])
def github_callback():
    provider_error = request.args.get("error")
    if provider_error:
        logger.info("GitHub denied repository authorization: %s", provider_error,
                    extra={"provider": "github", "event_type": "github.connect_failed"})
        return _frontend_redirect(error=GITHUB_OAUTH_ERROR)

    code = request.args.get("code")
    if not code:
        return _frontend_redirect(error=GITHUB_CODE_MISSING)

    try:
        connection = github_repo_service.complete_connection(code, request.args.get("state"))
    except AppError as exc:
        redirect_code = getattr(exc, "redirect_code", None) or GITHUB_INTERNAL_ERROR
        logger.info("GitHub connection failed (%s): %s", redirect_code, exc.message,
                    extra={"provider": "github", "event_type": "github.connect_failed"})
        return _frontend_redirect(error=redirect_code)
    except Exception:
        logger.exception("Unexpected GitHub connection failure",
                         extra={"provider": "github", "event_type": "github.connect_failed"})
        return _frontend_redirect(error=GITHUB_INTERNAL_ERROR)
    return _frontend_redirect(github_connected="true", workspace_id=connection.workspace_id)


@github_bp.route("/workspaces/<int:workspace_id>/github", methods=["GET"])
def get_connection(workspace_id: int):
    return jsonify(github_repo_service.get_connection(workspace_id, current_user_id())), 200


@github_bp.route("/workspaces/<int:workspace_id>/github", methods=["DELETE"])
def disconnect(workspace_id: int):
    github_repo_service.disconnect(workspace_id, current_user_id())
    return jsonify({"message": "Conexão GitHub removida"}), 200


# ── Repositories ─────────────────────────────────────────────────────────────


@github_bp.route("/workspaces/<int:workspace_id>/github/repositories", methods=["GET"])
def list_repositories(workspace_id: int):
    return jsonify(github_repo_service.list_repositories(workspace_id, current_user_id())), 200


@github_bp.route("/workspaces/<int:workspace_id>/github/repositories", methods=["POST"])
def connect_repository(workspace_id: int):
    data = get_json_body()
    link, created = github_repo_service.connect_repository(workspace_id, current_user_id(), data)
    return jsonify(link.to_dict()), 201 if created else 200


@github_bp.route("/workspaces/<int:workspace_id>/github/repo-connections", methods=["GET"])
def list_repo_connections(workspace_id: int):
    links = github_repo_service.list_repo_connections(workspace_id, current_user_id())
    return jsonify([link.to_dict() for link in links]), 200


@github_bp.route("/repo-connections/<int:repo_connection_id>", methods=["DELETE"])
def disconnect_repository(repo_connection_id: int):
    github_repo_service.disconnect_repository(repo_connection_id, current_user_id())
    return jsonify({"message": "Repositório desconectado"}), 200
