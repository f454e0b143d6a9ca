"""
Problem Statement Service.

A statement belongs to a workspace and optionally to one squad (at most one
statement per squad). Every update of a squad-bound statement appends a
"Problem Statement atualizado" decision with before/after snapshots.

Each serialized statement carries a quality assessment:
    needs_improvement — title < 10 chars, narrative < 280 chars, or no success metrics
    suggestions       — empty constraints / open questions (advice only)
"""

import logging

from sqlalchemy import delete, select

from squads_virtuais.core.exceptions import ConflictError, ValidationError
from squads_virtuais.models import db
from squads_virtuais.models.workspace import ProblemStatement, Squad
from squads_virtuais.services.access import (
    get_scoped_or_404,
    get_squad_for_member,
    get_workspace_for_member,
)
from squads_virtuais.services.decision_service import PROBLEM_STATEMENT_UPDATED_TITLE, record_decision
from squads_virtuais.services.helpers.transaction import atomic
from squads_virtuais.utils.helpers import optional_int, require_text

logger = logging.getLogger(__name__)

TEXT_FIELDS = ("title", "narrative")
LIST_FIELDS = ("success_metrics", "constraints", "assumptions", "open_questions")
UPDATABLE_FIELDS = TEXT_FIELDS + LIST_FIELDS + ("squad_id",)

MIN_TITLE_LENGTH = 10
MIN_NARRATIVE_LENGTH = 280


def assess_quality(statement: ProblemStatement) -> dict:
    """Heuristic maturity check shown next to the statement."""
    issues = []
    suggestions = []
    if len((statement.title or "").strip()) < MIN_TITLE_LENGTH:
        issues.append(f"O título deve ter pelo menos {MIN_TITLE_LENGTH} caracteres.")
    if len((statement.narrative or "").strip()) < MIN_NARRATIVE_LENGTH:
        issues.append(f"A narrativa deve ter pelo menos {MIN_NARRATIVE_LENGTH} caracteres.")
    if not statement.success_metrics:
        issues.append("Defina ao menos uma métrica de sucesso.")
    if not statement.constraints:
        suggestions.append("Considere registrar as restrições conhecidas.")
    if not statement.open_questions:
        suggestions.append("Considere listar as perguntas em aberto.")

    if issues:
        status = "needs_improvement"
        message = "O Problem Statement precisa de mais detalhes."
    else:
        status = "good"
        message = "O Problem Statement está bem estruturado."
    return {"status": status, "message": message, "issues": issues, "suggestions": suggestions}


def serialize(statement: ProblemStatement) -> dict:
    result = statement.to_dict()
    result["quality"] = assess_quality(statement)
    return result


def _clean_list(value, field: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValidationError(f"{field} deve ser uma lista", details={field: "list"})
    return [str(v).strip() for v in value if v is not None and str(v).strip()]


def _resolve_squad(workspace_id: int, squad_id, statement_id: int | None = None) -> int | None:
    """Validate a target squad: same workspace, no other statement bound to it."""
    if squad_id is None:
        return None
    squad = db.session.get(Squad, squad_id)
    if squad is None or squad.workspace_id != workspace_id:
        raise ValidationError("squad_id não pertence ao workspace", details={"squad_id": squad_id})
    stmt = select(ProblemStatement.id).where(ProblemStatement.squad_id == squad_id)
    if statement_id is not None:
        stmt = stmt.where(ProblemStatement.id != statement_id)
    if db.session.execute(stmt).first() is not None:
        raise ConflictError("A squad já possui um Problem Statement")
    return squad.id


def _snapshot(statement: ProblemStatement) -> dict:
    return {key: getattr(statement, key) for key in UPDATABLE_FIELDS}


# ═══════════════════════════════════════════════════════════════
# CRUD
# ═══════════════════════════════════════════════════════════════
def list_problem_statements(workspace_id: int, user_id: int,
                            squad_id: int | None = None) -> list[ProblemStatement]:
    get_workspace_for_member(workspace_id, user_id)
    stmt = select(ProblemStatement).where(ProblemStatement.workspace_id == workspace_id)
    if squad_id is not None:
        stmt = stmt.where(ProblemStatement.squad_id == squad_id)
    stmt = stmt.order_by(ProblemStatement.updated_at.desc(), ProblemStatement.id.desc())
    return list(db.session.execute(stmt).scalars().all())


def get_problem_statement(statement_id: int, user_id: int) -> ProblemStatement:
    return get_scoped_or_404(ProblemStatement, statement_id, user_id)


def get_for_squad(squad_id: int, user_id: int) -> ProblemStatement | None:
    get_squad_for_member(squad_id, user_id)
    return db.session.execute(
        select(ProblemStatement).where(ProblemStatement.squad_id == squad_id)
    ).scalar_one_or_none()


def create_problem_statement(workspace_id: int, user_id: int, data: dict) -> ProblemStatement:
    require_text(data, *TEXT_FIELDS)
    get_workspace_for_member(workspace_id, user_id)
    title = (data.get("title") or "").strip()
    if not title:
        raise ValidationError("title é obrigatório", details={"title": "obrigatório"})
    squad_id = _resolve_squad(workspace_id, optional_int(data.get("squad_id"), "squad_id"))

    with atomic():
        statement = ProblemStatement(
            workspace_id=workspace_id,
            squad_id=squad_id,
            title=title,
            narrative=data.get("narrative"),
            created_by_user_id=user_id,
            **{field: _clean_list(data.get(field), field) for field in LIST_FIELDS},
        )
        db.session.add(statement)

    logger.info("Problem statement %s created", statement.id,
                extra={"user_id": user_id, "workspace_id": workspace_id, "squad_id": squad_id})
    return statement


def update_problem_statement(statement_id: int, user_id: int, data: dict) -> ProblemStatement:
    require_text(data, *TEXT_FIELDS)
    statement = get_scoped_or_404(ProblemStatement, statement_id, user_id)
    if "title" in data and not (data["title"] or "").strip():
        raise ValidationError("title não pode ser vazio", details={"title": "obrigatório"})

    changes = {}
    if "squad_id" in data:
        squad_id = optional_int(data["squad_id"], "squad_id")
        changes["squad_id"] = _resolve_squad(statement.workspace_id, squad_id, statement.id)
    for field in TEXT_FIELDS:
        if field in data:
            value = data[field]
            changes[field] = value.strip() if field == "title" else value
    for field in LIST_FIELDS:
        if field in data:
            changes[field] = _clean_list(data[field], field)

    before = _snapshot(statement)
    with atomic():
        for key, value in changes.items():
            setattr(statement, key, value)
        after = _snapshot(statement)
        history_squad = statement.squad_id or before["squad_id"]
        if history_squad is not None and before != after:
            record_decision(
                history_squad,
                PROBLEM_STATEMENT_UPDATED_TITLE,
                {"problem_statement_id": statement.id, "before": before, "after": after},
                user_id=user_id,
            )
    return statement


def delete_problem_statement(statement_id: int, user_id: int) -> None:
    statement = get_scoped_or_404(ProblemStatement, statement_id, user_id)
    with atomic():
        db.session.execute(delete(ProblemStatement).where(ProblemStatement.id == statement.id))
