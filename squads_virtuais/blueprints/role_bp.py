"""
Role Blueprint — global role catalog, workspace roles and squad roles.

Endpoints:
    GET    /api/v1/roles[?workspace_id=&include_inactive=]   — global + workspace catalog
    GET    /api/v1/roles/<id>                                — global role
    PATCH|PUT|DELETE /api/v1/roles/<id>                      — 403 (global roles are read-only)
    POST   /api/v1/roles/<id>/duplicate                      — copy into a workspace
    POST   /api/v1/workspace-roles                           — create workspace role
    GET    /api/v1/workspace-roles/<id>                      — get
    PATCH  /api/v1/workspace-roles/<id>                      — partial update (code immutable)
    DELETE /api/v1/workspace-roles/<id>                      — soft delete (active=false)
    GET    /api/v1/squads/<id>/roles                         — roles linked to a squad
    POST   /api/v1/squads/<id>/roles                         — activate (idempotent)
    PATCH  /api/v1/squad-roles/<id>                          — active / name / description
    DELETE /api/v1/squad-roles/<id>                          — remove link
    POST   /api/v1/squad-roles/<id>/customize                — duplicate global role and relink
"""

import logging

from flask import Blueprint, jsonify, request

from squads_virtuais.middleware.jwt_auth import current_user_id
from squads_virtuais.services import role_service
from squads_virtuais.utils.helpers import get_json_body, optional_int, require_fields

logger = logging.getLogger(__name__)

role_bp = Blueprint("roles", __name__, url_prefix="/api/v1")

_TRUTHY = frozenset({"1", "true", "yes"})


def _role_reference(data: dict) -> dict:
    """Body with role_id / workspace_role_id coerced to int."""
    data = dict(data)
    for key in ("role_id", "workspace_role_id"):
        if key in data:
            data[key] = optional_int(data[key], key)
    return data


# ── Catalog ───────────────────────────────────────────────────────────────────


@role_bp.route("/roles", methods=["GET"])
def list_roles():
    """Query params:
        workspace_id (int, optional): include that workspace's roles.
        include_inactive (bool, optional): include soft-deleted workspace roles.
    """
    workspace_id = optional_int(request.args.get("workspace_id"), "workspace_id")
    include_inactive = (request.args.get("include_inactive") or "").lower() in _TRUTHY
    roles = role_service.list_roles(current_user_id(), workspace_id, include_inactive)
    return jsonify(roles), 200


@role_bp.route("/roles/<int:role_id>", methods=["GET"])
def get_role(role_id: int):
    return jsonify(role_service.get_global_role(role_id).to_dict()), 200


@role_bp.route("/roles/<int:role_id>", methods=["PATCH", "PUT", "DELETE"])
def write_global_role(role_id: int):
    role_service.ensure_global_role_readonly(role_id)


@role_bp.route("/roles/<int:role_id>/duplicate", methods=["POST"])
def duplicate_role(role_id: int):
    data = get_json_body()
    require_fields(data, "workspace_id")
    copy = role_service.duplicate_global_role(
        role_id, current_user_id(), optional_int(data["workspace_id"], "workspace_id"),
    )
    return jsonify(copy.to_dict()), 201


# ── Workspace roles ───────────────────────────────────────────────────────────


@role_bp.route("/workspace-roles", methods=["POST"])
def create_workspace_role():
    data = get_json_body()
    if "workspace_id" in data:
        data["workspace_id"] = optional_int(data["workspace_id"], "workspace_id")
    role = role_service.create_workspace_role(current_user_id(), data)
    return jsonify(role.to_dict()), 201


@role_bp.route("/workspace-roles/<int:role_id>", methods=["GET"])
def get_workspace_role(role_id: int):
    return jsonify(role_service.get_workspace_role(role_id, current_user_id()).to_dict()), 200


@role_bp.route("/workspace-roles/<int:role_id>", methods=["PATCH"])
def update_workspace_role(role_id: int):
    data = get_json_body()
    role = role_service.update_workspace_role(role_id, current_user_id(), data)
    return jsonify(role.to_dict()), 200


@role_bp.route("/workspace-roles/<int:role_id>", methods=["DELETE"])
def delete_workspace_role(role_id: int):
    role = role_service.deactivate_workspace_role(role_id, current_user_id())
    return jsonify(role.to_dict()), 200


# ── Squad roles ───────────────────────────────────────────────────────────────


@role_bp.route("/squads/<int:squad_id>/roles", methods=["GET"])
def list_squad_roles(squad_id: int):
    rows = role_service.list_squad_roles(squad_id, current_user_id())
    return jsonify([r.to_dict() for r in rows]), 200


@role_bp.route("/squads/<int:squad_id>/roles", methods=["POST"])
def activate_squad_role(squad_id: int):
    data = _role_reference(get_json_body())
    row, created = role_service.activate_squad_role(squad_id, current_user_id(), data)
    if not created:
        return jsonify({"already_active": True, "squad_role": row.to_dict()}), 200
    return jsonify(row.to_dict()), 201


@role_bp.route("/squad-roles/<int:squad_role_id>", methods=["PATCH"])
def update_squad_role(squad_role_id: int):
    data = get_json_body()
    row = role_service.update_squad_role(squad_role_id, current_user_id(), data)
    return jsonify(row.to_dict()), 200


@role_bp.route("/squad-roles/<int:squad_role_id>", methods=["DELETE"])
def remove_squad_role(squad_role_id: int):
    role_service.remove_squad_role(squad_role_id, current_user_id())
    return jsonify({"message": "Papel removido da squad"}), 200


@role_bp.route("/squad-roles/<int:squad_role_id>/customize", methods=["POST"])
def customize_squad_role(squad_role_id: int):
    row = role_service.customize_squad_role(squad_role_id, current_user_id())
    return jsonify(row.to_dict()), 200
