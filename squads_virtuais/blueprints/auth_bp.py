"""
Auth Blueprint — external login and the current session user.

Endpoints:
    POST /api/v1/auth/google            — Google ID token → {token, user}
    GET  /api/v1/auth/github            — redirect to GitHub authorize URL
    GET  /api/v1/auth/github/callback   — code + state → redirect to frontend with token
    GET  /api/v1/auth/me                — current user with linked identities

The GitHub endpoints never answer with JSON: every outcome is a redirect to
FRONTEND_URL carrying either ``token`` or one of the fixed ``error`` codes.
"""

import logging
from urllib.parse import urlencode

from flask import Blueprint, current_app, jsonify, redirect, request

from squads_virtuais.core.exceptions import AppError
from squads_virtuais.middleware.jwt_auth import current_user_id
from squads_virtuais.services import identity_service
from squads_virtuais.utils.helpers import get_json_body, require_fields, require_text

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/api/v1/auth")

GITHUB_AUTH_FAILED = "github_auth_failed"
GITHUB_INTERNAL_ERROR = "github_internal_error"


def _frontend_redirect(**params):
    frontend = current_app.config.get("FRONTEND_URL", "").rstrip("/")
    return redirect(f"{frontend}?{urlencode(params)}")


# ═══════════════════════════════════════════════════════════════
# Google
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/google", methods=["POST"])
def google_login():
    data = get_json_body()
    require_fields(data, "id_token")
    require_text(data, "id_token")
    token, user = identity_service.login_with_google(data["id_token"])
    return jsonify({"token": token, "user": user.to_dict()}), 200


# ═══════════════════════════════════════════════════════════════
# GitHub
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/github", methods=["GET"])
def github_login():
    try:
        url = identity_service.build_github_authorize_url()
    except AppError as exc:
        logger.warning("GitHub login unavailable: %s", exc.message,
                       extra={"provider": "github", "event_type": "auth.github_unavailable"})
        return _frontend_redirect(error=getattr(exc, "redirect_code", GITHUB_INTERNAL_ERROR))
    return redirect(url)


@auth_bp.route("/github/callback", methods=["GET"])
def github_callback():
    provider_error = request.args.get("error")
    if provider_error:
        logger.info("GitHub denied authorization: %s", provider_error,
                    extra={"provider": "github", "event_type": "auth.login_failed"})
        return _frontend_redirect(error=GITHUB_AUTH_FAILED)

    code = request.args.get("code")
    if not code:
        return _frontend_redirect(error=GITHUB_AUTH_FAILED)

    try:
        token, _user = identity_service.login_with_github(code, request.args.get("state"))
    except AppError as exc:
        redirect_code = getattr(exc, "redirect_code", None) or GITHUB_INTERNAL_ERROR
        logger.info("GitHub login failed (%s): %s", redirect_code, exc.message,
                    extra={"provider": "github", "event_type": "auth.login_failed"})
        return _frontend_redirect(error=redirect_code)
    except Exception:
        logger.exception("Unexpected GitHub login failure",
                         extra={"provider": "github", "event_type": "auth.login_failed"})
        return _frontend_redirect(error=GITHUB_INTERNAL_ERROR)
    return _frontend_redirect(token=token)


# ═══════════════════════════════════════════════════════════════
# Session
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/me", methods=["GET"])
def me():
    user = identity_service.get_user(current_user_id())
    return jsonify(user.to_dict(include_identities=True)), 200
