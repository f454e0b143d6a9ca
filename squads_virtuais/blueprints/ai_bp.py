"""
Squads Virtuais
AI Blueprint — structure proposals.

Endpoints:
    PROPOSALS  /api/v1/ai/structure-proposals                 POST  {squad_id}
               /api/v1/ai/structure-proposals?squad_id=       GET   latest pending or null
               /api/v1/ai/structure-proposals/<id>/confirm    POST  {edited_proposal?}
               /api/v1/ai/structure-proposals/<id>/discard    POST

Generation is synchronous; provider failures surface as 502.
"""

import logging

from flask import Blueprint, jsonify, request

from squads_virtuais.ai import proposal_generator
from squads_virtuais.middleware.jwt_auth import current_user_id
from squads_virtuais.utils.helpers import get_json_body, optional_int, require_fields

logger = logging.getLogger(__name__)

ai_bp = Blueprint("ai", __name__, url_prefix="/api/v1/ai")


@ai_bp.route("/structure-proposals", methods=["POST"])
def generate_structure_proposal():
    data = get_json_body()
    require_fields(data, "squad_id")
    squad_id = optional_int(data["squad_id"], "squad_id")
    proposal = proposal_generator.generate(squad_id, current_user_id())
    return jsonify(proposal.to_dict()), 201


@ai_bp.route("/structure-proposals", methods=["GET"])
def get_pending_structure_proposal():
    squad_id = optional_int(request.args.get("squad_id"), "squad_id")
    require_fields({"squad_id": squad_id}, "squad_id")
    proposal = proposal_generator.get_latest_pending(squad_id, current_user_id())
    return jsonify({"proposal": proposal.to_dict() if proposal else None}), 200


@ai_bp.route("/structure-proposals/<int:proposal_id>/confirm", methods=["POST"])
def confirm_structure_proposal(proposal_id: int):
    data = get_json_body()
    proposal = proposal_generator.confirm(proposal_id, current_user_id(), data.get("edited_proposal"))
    return jsonify(proposal.to_dict()), 200


@ai_bp.route("/structure-proposals/<int:proposal_id>/discard", methods=["POST"])
def discard_structure_proposal(proposal_id: int):
    proposal = proposal_generator.discard(proposal_id, current_user_id())
    return jsonify(proposal.to_dict()), 200
