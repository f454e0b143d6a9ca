"""
Validation Matrix Blueprint.

Endpoints:
    GET  /api/v1/squads/<id>/validation-matrix[?version=N]   — latest (or given) version + entries
    GET  /api/v1/squads/<id>/validation-matrix/versions      — all versions, newest first
    POST /api/v1/squads/<id>/validation-matrix               — save as a new version

Append-only: POST never updates an existing version.
"""

import logging

from flask import Blueprint, jsonify, request

from squads_virtuais.middleware.jwt_auth import current_user_id
from squads_virtuais.services import validation_matrix_service
from squads_virtuais.utils.helpers import get_json_body, optional_int

logger = logging.getLogger(__name__)

validation_matrix_bp = Blueprint("validation_matrix", __name__, url_prefix="/api/v1")


@validation_matrix_bp.route("/squads/<int:squad_id>/validation-matrix", methods=["GET"])
def get_matrix(squad_id: int):
    version = optional_int(request.args.get("version"), "version")
    return jsonify(validation_matrix_service.get_matrix(squad_id, current_user_id(), version)), 200


@validation_matrix_bp.route("/squads/<int:squad_id>/validation-matrix/versions", methods=["GET"])
def list_versions(squad_id: int):
    versions = validation_matrix_service.list_versions(squad_id, current_user_id())
    return jsonify([v.to_dict() for v in versions]), 200


@validation_matrix_bp.route("/squads/<int:squad_id>/validation-matrix", methods=["POST"])
def save_matrix(squad_id: int):
    data = get_json_body()
    matrix = validation_matrix_service.save_matrix(squad_id, current_user_id(), data)
    return jsonify(matrix.to_dict(include_entries=True)), 201
