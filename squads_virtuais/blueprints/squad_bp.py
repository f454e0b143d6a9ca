"""
Squad Blueprint — squads, members, phases, decisions and member roles.

Endpoints:
    GET    /api/v1/workspaces/<wid>/squads                   — list squads of a workspace
    POST   /api/v1/workspaces/<wid>/squads                   — create (status rascunho)
    GET    /api/v1/squads/<id>                               — get
    PATCH  /api/v1/squads/<id>                               — partial update
    DELETE /api/v1/squads/<id>                               — delete (cascades)
    GET    /api/v1/squads/<id>/overview                      — dashboard counts + timeline
    GET    /api/v1/squads/<id>/members                       — active members
    POST   /api/v1/squads/<id>/members                       — add workspace member
    DELETE /api/v1/squad-members/<id>                        — remove member
    GET    /api/v1/squads/<id>/phases                        — phases by order_index
    GET    /api/v1/squads/<id>/decisions[?filter=]           — decision log (newest first)
    POST   /api/v1/squads/<id>/decisions                     — manual decision entry
    GET    /api/v1/squads/<id>/member-roles                  — active role assignments
    POST   /api/v1/squads/<id>/member-roles                  — assign (replaces active one)
    DELETE /api/v1/squads/<id>/member-roles/<squad_member_id> — unassign

Layer contract:
    - No ORM calls here — all DB work delegated to the services.
    - No db.session.commit() here.
"""

import logging

from flask import Blueprint, jsonify, request

from squads_virtuais.middleware.jwt_auth import current_user_id
from squads_virtuais.services import decision_service, member_role_service, squad_service
from squads_virtuais.utils.helpers import get_json_body, optional_int, require_fields

logger = logging.getLogger(__name__)

squad_bp = Blueprint("squads", __name__, url_prefix="/api/v1")


# ── Squads ────────────────────────────────────────────────────────────────────


@squad_bp.route("/workspaces/<int:workspace_id>/squads", methods=["GET"])
def list_squads(workspace_id: int):
    squads = squad_service.list_squads(workspace_id, current_user_id())
    return jsonify([s.to_dict() for s in squads]), 200


@squad_bp.route("/workspaces/<int:workspace_id>/squads", methods=["POST"])
def create_squad(workspace_id: int):
    data = get_json_body()
    squad = squad_service.create_squad(workspace_id, current_user_id(), data)
    return jsonify(squad.to_dict()), 201


@squad_bp.route("/squads/<int:squad_id>", methods=["GET"])
def get_squad(squad_id: int):
    squad = squad_service.get_squad(squad_id, current_user_id())
    return jsonify(squad.to_dict()), 200


@squad_bp.route("/squads/<int:squad_id>", methods=["PATCH"])
def update_squad(squad_id: int):
    data = get_json_body()
    squad = squad_service.update_squad(squad_id, current_user_id(), data)
    return jsonify(squad.to_dict()), 200


@squad_bp.route("/squads/<int:squad_id>", methods=["DELETE"])
def delete_squad(squad_id: int):
    squad_service.delete_squad(squad_id, current_user_id())
    return jsonify({"message": "Squad excluída"}), 200


@squad_bp.route("/squads/<int:squad_id>/overview", methods=["GET"])
def squad_overview(squad_id: int):
    return jsonify(squad_service.get_overview(squad_id, current_user_id())), 200


# ── Members ───────────────────────────────────────────────────────────────────


@squad_bp.route("/squads/<int:squad_id>/members", methods=["GET"])
def list_members(squad_id: int):
    members = squad_service.list_members(squad_id, current_user_id())
    return jsonify([m.to_dict() for m in members]), 200


@squad_bp.route("/squads/<int:squad_id>/members", methods=["POST"])
def add_member(squad_id: int):
    data = get_json_body()
    require_fields(data, "user_id")
    member = squad_service.add_member(
        squad_id, current_user_id(), optional_int(data["user_id"], "user_id"),
    )
    return jsonify(member.to_dict()), 201


@squad_bp.route("/squad-members/<int:squad_member_id>", methods=["DELETE"])
def remove_member(squad_member_id: int):
    squad_service.remove_member(squad_member_id, current_user_id())
    return jsonify({"message": "Membro removido da squad"}), 200


# ── Phases & decisions ────────────────────────────────────────────────────────


@squad_bp.route("/squads/<int:squad_id>/phases", methods=["GET"])
def list_phases(squad_id: int):
    phases = squad_service.list_phases(squad_id, current_user_id())
    return jsonify([p.to_dict() for p in phases]), 200


@squad_bp.route("/squads/<int:squad_id>/decisions", methods=["GET"])
def list_decisions(squad_id: int):
    """Query params:
        filter (str, optional): problem_statement | suggestions
    """
    decisions = decision_service.list_decisions(
        squad_id, current_user_id(), request.args.get("filter"),
    )
    return jsonify([d.to_dict() for d in decisions]), 200


@squad_bp.route("/squads/<int:squad_id>/decisions", methods=["POST"])
def create_decision(squad_id: int):
    data = get_json_body()
    decision = decision_service.create_decision(
        squad_id,
        current_user_id(),
        data.get("title"),
        data.get("decision"),
        created_by_role=data.get("created_by_role"),
    )
    return jsonify(decision.to_dict()), 201


# ── Member roles ──────────────────────────────────────────────────────────────


@squad_bp.route("/squads/<int:squad_id>/member-roles", methods=["GET"])
def list_member_roles(squad_id: int):
    assignments = member_role_service.list_assignments(squad_id, current_user_id())
    return jsonify([a.to_dict() for a in assignments]), 200


@squad_bp.route("/squads/<int:squad_id>/member-roles", methods=["POST"])
def assign_member_role(squad_id: int):
    data = get_json_body()
    assignment = member_role_service.assign_role(squad_id, current_user_id(), data)
    return jsonify(assignment.to_dict()), 201


@squad_bp.route("/squads/<int:squad_id>/member-roles/<int:squad_member_id>", methods=["DELETE"])
def unassign_member_role(squad_id: int, squad_member_id: int):
    assignment = member_role_service.unassign_role(squad_id, current_user_id(), squad_member_id)
    return jsonify(assignment.to_dict()), 200
