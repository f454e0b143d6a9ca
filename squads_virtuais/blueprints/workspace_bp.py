"""
Workspace Blueprint.

Endpoints:
    GET    /api/v1/workspaces                    — my workspaces with counts
    POST   /api/v1/workspaces                    — create (creator becomes owner member)
    GET    /api/v1/workspaces/<id>               — get
    PATCH  /api/v1/workspaces/<id>               — partial update
    DELETE /api/v1/workspaces/<id>               — delete (owner only)
    GET    /api/v1/workspaces/<id>/members       — list members
    POST   /api/v1/workspaces/<id>/members       — add an existing user by email

Layer contract:
    - No ORM calls here — all DB work delegated to workspace_service.
    - Membership checks live in the service (403 for non-members).
"""

import logging

from flask import Blueprint, jsonify

from squads_virtuais.middleware.jwt_auth import current_user_id
from squads_virtuais.services import workspace_service
from squads_virtuais.utils.helpers import get_json_body, require_fields

logger = logging.getLogger(__name__)

workspace_bp = Blueprint("workspaces", __name__, url_prefix="/api/v1")


@workspace_bp.route("/workspaces", methods=["GET"])
def list_workspaces():
    return jsonify(workspace_service.list_workspaces(current_user_id())), 200


@workspace_bp.route("/workspaces", methods=["POST"])
def create_workspace():
    data = get_json_body()
    require_fields(data, "name")
    workspace = workspace_service.create_workspace(
        current_user_id(),
        data["name"],
        description=data.get("description"),
        type_=data.get("type"),
    )
    return jsonify(workspace.to_dict()), 201


@workspace_bp.route("/workspaces/<int:workspace_id>", methods=["GET"])
def get_workspace(workspace_id: int):
    workspace = workspace_service.get_workspace(workspace_id, current_user_id())
    return jsonify(workspace.to_dict()), 200


@workspace_bp.route("/workspaces/<int:workspace_id>", methods=["PATCH"])
def update_workspace(workspace_id: int):
    data = get_json_body()
    workspace = workspace_service.update_workspace(workspace_id, current_user_id(), data)
    return jsonify(workspace.to_dict()), 200


@workspace_bp.route("/workspaces/<int:workspace_id>", methods=["DELETE"])
def delete_workspace(workspace_id: int):
    workspace_service.delete_workspace(workspace_id, current_user_id())
    return jsonify({"message": "Workspace excluído"}), 200


# ── Members ───────────────────────────────────────────────────────────────────


@workspace_bp.route("/workspaces/<int:workspace_id>/members", methods=["GET"])
def list_members(workspace_id: int):
    members = workspace_service.list_members(workspace_id, current_user_id())
    return jsonify([m.to_dict() for m in members]), 200


@workspace_bp.route("/workspaces/<int:workspace_id>/members", methods=["POST"])
def add_member(workspace_id: int):
    data = get_json_body()
    require_fields(data, "email")
    member = workspace_service.add_member(workspace_id, current_user_id(), data["email"])
    return jsonify(member.to_dict()), 201
