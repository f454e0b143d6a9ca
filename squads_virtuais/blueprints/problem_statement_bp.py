"""
Problem Statement Blueprint.

Endpoints:
    GET    /api/v1/workspaces/<wid>/problem-statements[?squad_id=]  — list
    POST   /api/v1/workspaces/<wid>/problem-statements              — create
    GET    /api/v1/problem-statements/<id>                          — get
    PATCH  /api/v1/problem-statements/<id>                          — partial update
    DELETE /api/v1/problem-statements/<id>                          — delete
    GET    /api/v1/squads/<id>/problem-statement                    — current statement of a squad

Every statement in a response carries its ``quality`` assessment.
"""

import logging

from flask import Blueprint, jsonify, request

from squads_virtuais.middleware.jwt_auth import current_user_id
from squads_virtuais.services import problem_statement_service
from squads_virtuais.utils.helpers import get_json_body, optional_int

logger = logging.getLogger(__name__)

problem_statement_bp = Blueprint("problem_statements", __name__, url_prefix="/api/v1")


@problem_statement_bp.route("/workspaces/<int:workspace_id>/problem-statements", methods=["GET"])
def list_problem_statements(workspace_id: int):
    squad_id = optional_int(request.args.get("squad_id"), "squad_id")
    statements = problem_statement_service.list_problem_statements(
        workspace_id, current_user_id(), squad_id=squad_id,
    )
    return jsonify([problem_statement_service.serialize(s) for s in statements]), 200


@problem_statement_bp.route("/workspaces/<int:workspace_id>/problem-statements", methods=["POST"])
def create_problem_statement(workspace_id: int):
    data = get_json_body()
    statement = problem_statement_service.create_problem_statement(workspace_id, current_user_id(), data)
    return jsonify(problem_statement_service.serialize(statement)), 201


@problem_statement_bp.route("/problem-statements/<int:statement_id>", methods=["GET"])
def get_problem_statement(statement_id: int):
    statement = problem_statement_service.get_problem_statement(statement_id, current_user_id())
    return jsonify(problem_statement_service.serialize(statement)), 200


@problem_statement_bp.route("/problem-statements/<int:statement_id>", methods=["PATCH"])
def update_problem_statement(statement_id: int):
    data = get_json_body()
    statement = problem_statement_service.update_problem_statement(statement_id, current_user_id(), data)
    return jsonify(problem_statement_service.serialize(statement)), 200


@problem_statement_bp.route("/problem-statements/<int:statement_id>", methods=["DELETE"])
def delete_problem_statement(statement_id: int):
    problem_statement_service.delete_problem_statement(statement_id, current_user_id())
    return jsonify({"message": "Problem statement excluído"}), 200


@problem_statement_bp.route("/squads/<int:squad_id>/problem-statement", methods=["GET"])
def get_squad_problem_statement(squad_id: int):
    statement = problem_statement_service.get_for_squad(squad_id, current_user_id())
    return jsonify({
        "problem_statement": problem_statement_service.serialize(statement) if statement else None,
    }), 200
