"""
Squad Service — squads, squad members, phases and the overview dashboard.

Squad status is free within SQUAD_STATUSES (no transition graph).
Deleting a squad is a single DELETE; dependents go through ON DELETE CASCADE.
"""

import logging

from sqlalchemy import delete, func, select

from squads_virtuais.core.exceptions import ConflictError, NotFoundError, ValidationError
from squads_virtuais.models import db
from squads_virtuais.models.ai import AIStructureProposal, Suggestion
from squads_virtuais.models.catalog import SquadPersona, SquadRole
from squads_virtuais.models.decision import Decision
from squads_virtuais.models.workspace import (
    DEFAULT_SQUAD_STATUS,
    SQUAD_STATUSES,
    Phase,
    ProblemStatement,
    Squad,
    SquadMember,
)
from squads_virtuais.services.access import (
    get_scoped_or_404,
    get_squad_for_member,
    get_workspace_for_member,
    is_workspace_member,
)
from squads_virtuais.services.helpers.transaction import atomic
from squads_virtuais.utils.helpers import require_text

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("name", "description", "status")
OVERVIEW_TIMELINE_SIZE = 5


def _validate_status(status) -> None:
    if status not in SQUAD_STATUSES:
        raise ValidationError(
            f"status inválido: {status}",
            details={"status": sorted(SQUAD_STATUSES)},
        )


# ═══════════════════════════════════════════════════════════════
# Squads
# ═══════════════════════════════════════════════════════════════
def list_squads(workspace_id: int, user_id: int) -> list[Squad]:
    get_workspace_for_member(workspace_id, user_id)
    stmt = select(Squad).where(Squad.workspace_id == workspace_id).order_by(Squad.name, Squad.id)
    return list(db.session.execute(stmt).scalars().all())


def create_squad(workspace_id: int, user_id: int, data: dict) -> Squad:
    require_text(data, *UPDATABLE_FIELDS)
    get_workspace_for_member(workspace_id, user_id)
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("name é obrigatório", details={"name": "obrigatório"})
    status = data.get("status") or DEFAULT_SQUAD_STATUS
    _validate_status(status)

    with atomic():
        squad = Squad(
            workspace_id=workspace_id,
            name=name,
            description=data.get("description"),
            status=status,
        )
        db.session.add(squad)

    logger.info("Squad %s created", squad.id,
                extra={"user_id": user_id, "workspace_id": workspace_id, "squad_id": squad.id})
    return squad


def get_squad(squad_id: int, user_id: int) -> Squad:
    return get_squad_for_member(squad_id, user_id)


def update_squad(squad_id: int, user_id: int, data: dict) -> Squad:
    require_text(data, *UPDATABLE_FIELDS)
    squad = get_squad_for_member(squad_id, user_id)
    if "name" in data and not (data["name"] or "").strip():
        raise ValidationError("name não pode ser vazio", details={"name": "obrigatório"})
    if "status" in data:
        _validate_status(data["status"])

    with atomic():
        for key in UPDATABLE_FIELDS:
            if key in data:
                value = data[key]
                setattr(squad, key, value.strip() if key == "name" else value)
    return squad


def delete_squad(squad_id: int, user_id: int) -> None:
    squad = get_squad_for_member(squad_id, user_id)
    with atomic():
        db.session.execute(delete(Squad).where(Squad.id == squad.id))
    logger.info("Squad %s deleted", squad_id,
                extra={"user_id": user_id, "squad_id": squad_id})


def get_overview(squad_id: int, user_id: int) -> dict:
    """Counts and the most recent decisions for the squad dashboard."""
    squad = get_squad_for_member(squad_id, user_id)

    def _count(model, *criteria) -> int:
        stmt = select(func.count(model.id)).where(model.squad_id == squad_id, *criteria)
        return db.session.execute(stmt).scalar_one()

    problem = db.session.execute(
        select(ProblemStatement).where(ProblemStatement.squad_id == squad_id)
    ).scalar_one_or_none()
    pending_proposal = db.session.execute(
        select(AIStructureProposal.id).where(
            AIStructureProposal.squad_id == squad_id,
            AIStructureProposal.status == "pending",
        ).limit(1)
    ).scalar_one_or_none()
    timeline = db.session.execute(
        select(Decision)
        .where(Decision.squad_id == squad_id)
        .order_by(Decision.created_at.desc(), Decision.id.desc())
        .limit(OVERVIEW_TIMELINE_SIZE)
    ).scalars().all()

    return {
        "squad": squad.to_dict(),
        "problem_statement": problem.to_dict() if problem else None,
        "counts": {
            "members": _count(SquadMember, SquadMember.active.is_(True)),
            "roles": _count(SquadRole, SquadRole.active.is_(True)),
            "personas": _count(SquadPersona),
            "phases": _count(Phase),
            "decisions": _count(Decision),
            "pending_suggestions": _count(Suggestion, Suggestion.status == "pending"),
        },
        "pending_proposal_id": pending_proposal,
        "timeline": [d.to_dict() for d in timeline],
    }


# ═══════════════════════════════════════════════════════════════
# Squad members
# ═══════════════════════════════════════════════════════════════
def list_members(squad_id: int, user_id: int) -> list[SquadMember]:
    get_squad_for_member(squad_id, user_id)
    stmt = (
        select(SquadMember)
        .where(SquadMember.squad_id == squad_id, SquadMember.active.is_(True))
        .order_by(SquadMember.joined_at, SquadMember.id)
    )
    return list(db.session.execute(stmt).scalars().all())


def add_member(squad_id: int, user_id: int, member_user_id: int) -> SquadMember:
    """Add a workspace member to the squad. Re-adding a removed member reactivates it."""
    squad = get_squad_for_member(squad_id, user_id)
    if not is_workspace_member(squad.workspace_id, member_user_id):
        raise ValidationError("Usuário não é membro do workspace",
                              details={"user_id": member_user_id})

    existing = db.session.execute(
        select(SquadMember).where(
            SquadMember.squad_id == squad_id,
            SquadMember.user_id == member_user_id,
        )
    ).scalar_one_or_none()
    if existing is not None and existing.active:
        raise ConflictError("Usuário já é membro da squad")

    with atomic():
        if existing is not None:
            existing.active = True
            member = existing
        else:
            member = SquadMember(squad_id=squad_id, user_id=member_user_id)
            db.session.add(member)
    return member


def remove_member(squad_member_id: int, user_id: int) -> None:
    """Deactivate the membership and any active role assignment it holds."""
    from squads_virtuais.services.member_role_service import deactivate_active_assignment

    member = get_scoped_or_404(SquadMember, squad_member_id, user_id)
    if not member.active:
        raise NotFoundError("SquadMember", squad_member_id)
    with atomic():
        deactivate_active_assignment(member.id)
        member.active = False


# ═══════════════════════════════════════════════════════════════
# Phases
# ═══════════════════════════════════════════════════════════════
def list_phases(squad_id: int, user_id: int) -> list[Phase]:
    get_squad_for_member(squad_id, user_id)
    stmt = select(Phase).where(Phase.squad_id == squad_id).order_by(Phase.order_index, Phase.id)
    return list(db.session.execute(stmt).scalars().all())


def add_phases(squad_id: int, phases: list[dict]) -> list[Phase]:
    """
    Stage new phases, skipping names already present (case-insensitive).

    order_index continues after the squad's current maximum. Runs inside the
    caller's transaction.
    """
    existing_names = {
        name.strip().lower()
        for name in db.session.execute(
            select(Phase.name).where(Phase.squad_id == squad_id)
        ).scalars()
    }
    max_order = db.session.execute(
        select(func.max(Phase.order_index)).where(Phase.squad_id == squad_id)
    ).scalar_one()
    next_order = (max_order if max_order is not None else -1) + 1

    inserted = []
    for item in phases:
        if isinstance(item, dict):
            name = str(item.get("name") or "").strip()
            description = item.get("description") or item.get("objective")
        else:
            name, description = str(item or "").strip(), None
        if not name or name.lower() in existing_names:
            continue
        phase = Phase(
            squad_id=squad_id,
            name=name,
            description=description,
            order_index=next_order,
        )
        db.session.add(phase)
        inserted.append(phase)
        existing_names.add(name.lower())
        next_order += 1
    return inserted
