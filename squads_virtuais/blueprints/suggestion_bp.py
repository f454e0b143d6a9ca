"""
Suggestion Blueprint — review queue for proposal suggestions.

Endpoints:
    POST /api/v1/suggestions/breakdown            — {proposal_id} → 201 created | 200 already broken down
    GET  /api/v1/squads/<id>/suggestions[?status=] — pending by default, ordered by display_order
    POST /api/v1/suggestions/<id>/approve         — {edited_payload?, reason?}
    POST /api/v1/suggestions/<id>/reject          — {reason?}

Resolving an already approved/rejected suggestion answers 409.
"""

import logging

from flask import Blueprint, jsonify, request

from squads_virtuais.ai import suggestion_queue
from squads_virtuais.middleware.jwt_auth import current_user_id
from squads_virtuais.utils.helpers import get_json_body, optional_int, require_fields

logger = logging.getLogger(__name__)

suggestion_bp = Blueprint("suggestions", __name__, url_prefix="/api/v1")


@suggestion_bp.route("/suggestions/breakdown", methods=["POST"])
def breakdown():
    data = get_json_body()
    require_fields(data, "proposal_id")
    proposal_id = optional_int(data["proposal_id"], "proposal_id")
    suggestions, created = suggestion_queue.breakdown(proposal_id, current_user_id())
    body = {
        "proposal_id": proposal_id,
        "already_broken_down": not created,
        "suggestions": [s.to_dict() for s in suggestions],
    }
    return jsonify(body), 201 if created else 200


@suggestion_bp.route("/squads/<int:squad_id>/suggestions", methods=["GET"])
def list_suggestions(squad_id: int):
    """Query params:
        status (str, optional): pending (default) | approved | rejected | all
    """
    status = request.args.get("status", "pending")
    if status == "all":
        status = None
    suggestions = suggestion_queue.list_suggestions(squad_id, current_user_id(), status)
    return jsonify([s.to_dict() for s in suggestions]), 200


@suggestion_bp.route("/suggestions/<int:suggestion_id>/approve", methods=["POST"])
def approve(suggestion_id: int):
    data = get_json_body()
    suggestion = suggestion_queue.approve(
        suggestion_id, current_user_id(),
        edited_payload=data.get("edited_payload"),
        reason=data.get("reason"),
    )
    return jsonify(suggestion.to_dict()), 200


@suggestion_bp.route("/suggestions/<int:suggestion_id>/reject", methods=["POST"])
def reject(suggestion_id: int):
    data = get_json_body()
    suggestion = suggestion_queue.reject(suggestion_id, current_user_id(), reason=data.get("reason"))
    return jsonify(suggestion.to_dict()), 200
