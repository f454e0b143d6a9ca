"""
Squads Virtuais
Suggestion Queue Service.

Manages the lifecycle of suggestions decomposed from a structure proposal:
    pending → approved | rejected (terminal, exactly once)

Usage:
    from squads_virtuais.ai import suggestion_queue
    suggestions, created = suggestion_queue.breakdown(proposal_id, user_id)
    suggestion_queue.approve(suggestions[0].id, user_id)
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from squads_virtuais.ai import appliers
from squads_virtuais.ai.appliers import SuggestionType
from squads_virtuais.core.exceptions import AlreadyResolved, ConflictError, ValidationError
from squads_virtuais.models import db
from squads_virtuais.models.ai import (
    SUGGESTION_STATUSES,
    AIStructureProposal,
    Suggestion,
    SuggestionDecision,
)
from squads_virtuais.models.workspace import Squad
from squads_virtuais.services.access import get_scoped_or_404, get_squad_for_member
from squads_virtuais.services.decision_service import AI_ASSISTED_ROLE, record_decision
from squads_virtuais.services.helpers.transaction import atomic

logger = logging.getLogger(__name__)

# Singleton sections of the proposal, in breakdown position.
_SECTIONS_BEFORE_PERSONAS = (SuggestionType.DECISION_CONTEXT, SuggestionType.PROBLEM_MATURITY)
_SECTIONS_AFTER_UNKNOWNS = (
    SuggestionType.EXECUTION_MODEL,
    SuggestionType.VALIDATION_STRATEGY,
    SuggestionType.READINESS_ASSESSMENT,
)


def decompose(payload: dict) -> list[tuple[SuggestionType, object]]:
    """Ordered (type, payload) units of a proposal payload. Absent sections are skipped."""
    payload = payload or {}
    units = []

    def _present(value) -> bool:
        return value is not None and value != {} and value != []

    def _items(value) -> list:
        return value if isinstance(value, list) else []

    for kind in _SECTIONS_BEFORE_PERSONAS:
        if _present(payload.get(kind.value)):
            units.append((kind, payload[kind.value]))
    for persona in _items(payload.get("personas")):
        units.append((SuggestionType.PERSONA, persona))
    if _present(payload.get("governance")):
        units.append((SuggestionType.GOVERNANCE, payload["governance"]))
    for role in _items((payload.get("squad_structure") or {}).get("roles")):
        units.append((SuggestionType.SQUAD_STRUCTURE_ROLE, role))
    for phase in _items((payload.get("recommended_flow") or {}).get("phases")):
        units.append((SuggestionType.PHASE, phase))
    for unknown in _items(payload.get("critical_unknowns")):
        units.append((SuggestionType.CRITICAL_UNKNOWN, unknown))
    for kind in _SECTIONS_AFTER_UNKNOWNS:
        if _present(payload.get(kind.value)):
            units.append((kind, payload[kind.value]))
    return units


def _suggestions_of(proposal_id: int) -> list[Suggestion]:
    return list(db.session.execute(
        select(Suggestion)
        .where(Suggestion.proposal_id == proposal_id)
        .order_by(Suggestion.display_order, Suggestion.id)
    ).scalars().all())


# ── Breakdown ─────────────────────────────────────────────────────────

def breakdown(proposal_id: int, user_id: int) -> tuple[list[Suggestion], bool]:
    """
    Decompose a proposal into pending suggestions.

    Returns (suggestions, created). Idempotent per proposal: the first call
    stamps ``broken_down_at`` and every later call returns the existing rows
    (possibly none) with created=False. Concurrent callers race on the
    conditional stamp; the loser reads the winner's rows.
    """
    proposal = get_scoped_or_404(AIStructureProposal, proposal_id, user_id)
    if proposal.status == "discarded":
        raise ConflictError("A proposta foi descartada")
    if proposal.broken_down_at is not None:
        return _suggestions_of(proposal.id), False

    units = decompose(proposal.proposal_payload)
    try:
        with atomic():
            claimed = db.session.execute(
                update(AIStructureProposal)
                .where(AIStructureProposal.id == proposal.id, AIStructureProposal.broken_down_at.is_(None))
                .values(broken_down_at=datetime.now(timezone.utc))
            ).rowcount == 1
            for order, (kind, payload) in enumerate(units if claimed else ()):
                db.session.add(Suggestion(
                    proposal_id=proposal.id,
                    squad_id=proposal.squad_id,
                    workspace_id=proposal.workspace_id,
                    suggestion_type=kind.value,
                    payload=payload,
                    display_order=order,
                    status="pending",
                ))
    except IntegrityError:
        existing = _suggestions_of(proposal.id)
        if not existing:
            raise
        return existing, False
    if not claimed:
        return _suggestions_of(proposal.id), False

    logger.info("Proposal %s broken down into %d suggestions", proposal.id, len(units),
                extra={"user_id": user_id, "squad_id": proposal.squad_id})
    return _suggestions_of(proposal.id), True


# ── Queries ───────────────────────────────────────────────────────────

def list_suggestions(squad_id: int, user_id: int, status: str | None = "pending") -> list[Suggestion]:
    get_squad_for_member(squad_id, user_id)
    stmt = select(Suggestion).where(Suggestion.squad_id == squad_id)
    if status:
        if status not in SUGGESTION_STATUSES:
            raise ValidationError(f"status inválido: {status}",
                                  details={"status": sorted(SUGGESTION_STATUSES)})
        stmt = stmt.where(Suggestion.status == status)
    stmt = stmt.order_by(Suggestion.display_order, Suggestion.id)
    return list(db.session.execute(stmt).scalars().all())


def list_pending(squad_id: int, user_id: int) -> list[Suggestion]:
    return list_suggestions(squad_id, user_id, "pending")


# ── Review Actions ────────────────────────────────────────────────────

def _claim(suggestion: Suggestion, status: str, user_id: int, **values) -> None:
    """Conditional pending → ``status`` update; exactly one caller can win."""
    result = db.session.execute(
        update(Suggestion)
        .where(Suggestion.id == suggestion.id, Suggestion.status == "pending")
        .values(status=status, decided_at=datetime.now(timezone.utc),
                decided_by_user_id=user_id, **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise AlreadyResolved("Sugestão")


def approve(suggestion_id: int, user_id: int, edited_payload=None,
            reason: str | None = None) -> Suggestion:
    """Claim, apply through the type's applier and record the decision, all in one transaction."""
    suggestion = get_scoped_or_404(Suggestion, suggestion_id, user_id)
    if suggestion.status != "pending":
        raise AlreadyResolved("Sugestão", suggestion.status)
    squad = db.session.get(Squad, suggestion.squad_id)
    was_edited = edited_payload is not None
    payload = edited_payload if was_edited else suggestion.payload
    suggestion_type = suggestion.suggestion_type

    with atomic():
        _claim(suggestion, "approved", user_id,
               edited_payload=edited_payload if was_edited else None)
        appliers.apply(suggestion_type, squad, payload, user_id)
        record_decision(
            squad.id,
            f"Sugestão aprovada: {suggestion_type}",
            {"suggestion_id": suggestion.id, "type": suggestion_type,
             "payload": payload, "was_edited": was_edited},
            user_id=user_id,
            created_by_role=AI_ASSISTED_ROLE,
        )
        db.session.add(SuggestionDecision(
            suggestion_id=suggestion.id,
            action="approved_with_edits" if was_edited else "approved",
            user_id=user_id,
            reason=reason,
            changes_summary={"edited": True} if was_edited else None,
        ))

    db.session.refresh(suggestion)
    logger.info("Suggestion %s approved (%s)", suggestion.id, suggestion_type,
                extra={"user_id": user_id, "squad_id": squad.id, "event_type": "suggestion.approved"})
    return suggestion


def reject(suggestion_id: int, user_id: int, reason: str | None = None) -> Suggestion:
    suggestion = get_scoped_or_404(Suggestion, suggestion_id, user_id)
    if suggestion.status != "pending":
        raise AlreadyResolved("Sugestão", suggestion.status)

    with atomic():
        _claim(suggestion, "rejected", user_id, rejection_reason=reason)
        db.session.add(SuggestionDecision(
            suggestion_id=suggestion.id,
            action="rejected",
            user_id=user_id,
            reason=reason,
        ))

    db.session.refresh(suggestion)
    logger.info("Suggestion %s rejected", suggestion.id,
                extra={"user_id": user_id, "squad_id": suggestion.squad_id,
                       "event_type": "suggestion.rejected"})
    return suggestion
