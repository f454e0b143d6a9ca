"""
Persona Blueprint — global persona catalog, workspace personas and squad personas.

Endpoints:
    GET    /api/v1/personas[?workspace_id=]                   — global + workspace catalog
    POST   /api/v1/personas                                   — create workspace persona
    GET    /api/v1/personas/<id>                              — persona with its squads
    PATCH  /api/v1/personas/<id>                              — partial update
    GET    /api/v1/global-personas/<id>                       — global persona
    PATCH|PUT|DELETE /api/v1/global-personas/<id>             — 403 (read-only)
    POST   /api/v1/global-personas/<id>/duplicate             — copy into a workspace
    GET    /api/v1/squads/<id>/personas                       — personas linked to a squad
    POST   /api/v1/squads/<id>/personas                       — link (idempotent)
    PATCH  /api/v1/squad-personas/<id>                        — context_description / focus
    DELETE /api/v1/squad-personas/<id>                        — remove link
    POST   /api/v1/squad-personas/<id>/customize              — duplicate-and-replace
"""

import logging

from flask import Blueprint, jsonify, request

from squads_virtuais.middleware.jwt_auth import current_user_id
from squads_virtuais.services import persona_service
from squads_virtuais.utils.helpers import get_json_body, optional_int, require_fields

logger = logging.getLogger(__name__)

persona_bp = Blueprint("personas", __name__, url_prefix="/api/v1")


# ── Catalog ───────────────────────────────────────────────────────────────────


@persona_bp.route("/personas", methods=["GET"])
def list_personas():
    workspace_id = optional_int(request.args.get("workspace_id"), "workspace_id")
    return jsonify(persona_service.list_personas(current_user_id(), workspace_id)), 200


@persona_bp.route("/personas", methods=["POST"])
def create_persona():
    data = get_json_body()
    if "workspace_id" in data:
        data["workspace_id"] = optional_int(data["workspace_id"], "workspace_id")
    persona = persona_service.create_persona(current_user_id(), data)
    return jsonify(persona.to_dict()), 201


@persona_bp.route("/personas/<int:persona_id>", methods=["GET"])
def get_persona(persona_id: int):
    return jsonify(persona_service.get_persona(persona_id, current_user_id())), 200


@persona_bp.route("/personas/<int:persona_id>", methods=["PATCH"])
def update_persona(persona_id: int):
    data = get_json_body()
    persona = persona_service.update_persona(persona_id, current_user_id(), data)
    return jsonify(persona.to_dict()), 200


# ── Global personas ───────────────────────────────────────────────────────────


@persona_bp.route("/global-personas/<int:persona_id>", methods=["GET"])
def get_global_persona(persona_id: int):
    return jsonify(persona_service.get_global_persona(persona_id).to_dict()), 200


@persona_bp.route("/global-personas/<int:persona_id>", methods=["PATCH", "PUT", "DELETE"])
def write_global_persona(persona_id: int):
    persona_service.ensure_global_persona_readonly(persona_id)


@persona_bp.route("/global-personas/<int:persona_id>/duplicate", methods=["POST"])
def duplicate_global_persona(persona_id: int):
    data = get_json_body()
    require_fields(data, "workspace_id")
    copy = persona_service.duplicate_global_persona(
        persona_id, current_user_id(), optional_int(data["workspace_id"], "workspace_id"),
    )
    return jsonify(copy.to_dict()), 201


# ── Squad personas ────────────────────────────────────────────────────────────


@persona_bp.route("/squads/<int:squad_id>/personas", methods=["GET"])
def list_squad_personas(squad_id: int):
    rows = persona_service.list_squad_personas(squad_id, current_user_id())
    return jsonify([r.to_dict() for r in rows]), 200


@persona_bp.route("/squads/<int:squad_id>/personas", methods=["POST"])
def add_squad_persona(squad_id: int):
    data = get_json_body()
    for key in ("global_persona_id", "persona_id"):
        if key in data:
            data[key] = optional_int(data[key], key)
    row, created = persona_service.add_squad_persona(squad_id, current_user_id(), data)
    if not created:
        return jsonify({"already_active": True, "squad_persona": row.to_dict()}), 200
    return jsonify(row.to_dict()), 201


@persona_bp.route("/squad-personas/<int:squad_persona_id>", methods=["PATCH"])
def update_squad_persona(squad_persona_id: int):
    data = get_json_body()
    row = persona_service.update_squad_persona(squad_persona_id, current_user_id(), data)
    return jsonify(row.to_dict()), 200


@persona_bp.route("/squad-personas/<int:squad_persona_id>", methods=["DELETE"])
def remove_squad_persona(squad_persona_id: int):
    persona_service.remove_squad_persona(squad_persona_id, current_user_id())
    return jsonify({"message": "Persona removida da squad"}), 200


@persona_bp.route("/squad-personas/<int:squad_persona_id>/customize", methods=["POST"])
def customize_squad_persona(squad_persona_id: int):
    row = persona_service.customize_squad_persona(squad_persona_id, current_user_id())
    return jsonify(row.to_dict()), 200
