"""
Decision Service — append-only squad decision log.

Decisions are never updated or deleted. Writers inside a larger transaction call ``record_decision`` and let the
caller's ``atomic()`` block commit.
"""

import logging

from sqlalchemy import select

from squads_virtuais.core.exceptions import ValidationError
from squads_virtuais.models import db
from squads_virtuais.models.decision import Decision
from squads_virtuais.services.access import get_squad_for_member
from squads_virtuais.services.helpers.transaction import atomic
from squads_virtuais.utils.helpers import require_text

logger = logging.getLogger(__name__)

DECISION_LIST_LIMIT = 50

# created_by_role for decisions written by AI-assisted flows
AI_ASSISTED_ROLE = "Human + AI"
PROBLEM_STATEMENT_UPDATED_TITLE = "Problem Statement atualizado"

DECISION_FILTERS = {"problem_statement", "suggestions"}


def record_decision(
    squad_id: int,
    title: str,
    payload: dict,
    *,
    user_id: int | None = None,
    created_by_role: str | None = None,
) -> Decision:
    """Stage a Decision row in the current transaction (no commit)."""
    decision = Decision(
        squad_id=squad_id,
        title=title,
        decision=payload,
        created_by_user_id=user_id,
        created_by_role=created_by_role,
    )
    db.session.add(decision)
    return decision


def list_decisions(squad_id: int, user_id: int, filter_: str | None = None) -> list[Decision]:
    """Newest first, capped at DECISION_LIST_LIMIT."""
    get_squad_for_member(squad_id, user_id)
    if filter_ and filter_ not in DECISION_FILTERS:
        raise ValidationError(
            f"filter inválido: {filter_}",
            details={"filter": sorted(DECISION_FILTERS)},
        )

    stmt = select(Decision).where(Decision.squad_id == squad_id)
    if filter_ == "problem_statement":
        stmt = stmt.where(Decision.title.ilike("%problem statement%"))
    elif filter_ == "suggestions":
        stmt = stmt.where(Decision.created_by_role == AI_ASSISTED_ROLE)
    stmt = stmt.order_by(Decision.created_at.desc(), Decision.id.desc()).limit(DECISION_LIST_LIMIT)
    return list(db.session.execute(stmt).scalars().all())


def create_decision(squad_id: int, user_id: int, title: str, payload,
                    created_by_role: str | None = None) -> Decision:
    """Manual decision entry from a squad member."""
    require_text({"title": title, "created_by_role": created_by_role}, "title", "created_by_role")
    get_squad_for_member(squad_id, user_id)
    if not title or not title.strip():
        raise ValidationError("title é obrigatório", details={"title": "obrigatório"})
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        payload = {"text": payload}

    with atomic():
        decision = record_decision(
            squad_id, title.strip(), payload,
            user_id=user_id, created_by_role=created_by_role,
        )
    return decision
