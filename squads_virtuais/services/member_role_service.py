"""
Member Role Service — which squad role each squad member currently holds.

A member holds at most one active SquadMemberRole. Reassignment closes the
current row (active=False, unassigned_at) and inserts a new one within the
same transaction; the partial unique index on active rows rejects any
concurrent second assignment.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from squads_virtuais.core.exceptions import ConflictError, NotFoundError, ValidationError
from squads_virtuais.models import db
from squads_virtuais.models.catalog import SquadMemberRole, SquadRole
from squads_virtuais.models.workspace import SquadMember
from squads_virtuais.services.access import get_squad_for_member
from squads_virtuais.services.helpers.transaction import atomic
from squads_virtuais.utils.helpers import optional_int

logger = logging.getLogger(__name__)


def _active_assignment(squad_member_id: int) -> SquadMemberRole | None:
    return db.session.execute(
        select(SquadMemberRole).where(
            SquadMemberRole.squad_member_id == squad_member_id,
            SquadMemberRole.active.is_(True),
        )
    ).unique().scalar_one_or_none()


def deactivate_active_assignment(squad_member_id: int) -> SquadMemberRole | None:
    """Close the member's active assignment, if any. Runs in the caller's transaction."""
    current = _active_assignment(squad_member_id)
    if current is not None:
        current.active = False
        current.unassigned_at = datetime.now(timezone.utc)
        db.session.flush()
    return current


def list_assignments(squad_id: int, user_id: int) -> list[SquadMemberRole]:
    get_squad_for_member(squad_id, user_id)
    stmt = (
        select(SquadMemberRole)
        .where(SquadMemberRole.squad_id == squad_id, SquadMemberRole.active.is_(True))
        .order_by(SquadMemberRole.assigned_at, SquadMemberRole.id)
    )
    return list(db.session.execute(stmt).unique().scalars().all())


def assign_role(squad_id: int, user_id: int, data: dict) -> SquadMemberRole:
    get_squad_for_member(squad_id, user_id)
    squad_member_id = optional_int(data.get("squad_member_id"), "squad_member_id")
    squad_role_id = optional_int(data.get("squad_role_id"), "squad_role_id")
    missing = {k: "obrigatório" for k, v in
               (("squad_member_id", squad_member_id), ("squad_role_id", squad_role_id)) if v is None}
    if missing:
        raise ValidationError(f"Campos obrigatórios ausentes: {', '.join(missing)}", details=missing)

    member = db.session.get(SquadMember, squad_member_id)
    if member is None or member.squad_id != squad_id or not member.active:
        raise NotFoundError("SquadMember", squad_member_id)
    squad_role = db.session.get(SquadRole, squad_role_id)
    if squad_role is None or squad_role.squad_id != squad_id:
        raise ValidationError("O papel não pertence à squad", details={"squad_role_id": squad_role_id})
    if not squad_role.active:
        raise ValidationError("O papel está inativo na squad", details={"squad_role_id": squad_role_id})

    try:
        with atomic():
            deactivate_active_assignment(member.id)
            assignment = SquadMemberRole(
                squad_id=squad_id,
                squad_member_id=member.id,
                squad_role_id=squad_role.id,
                assigned_by_user_id=user_id,
            )
            db.session.add(assignment)
    except IntegrityError:
        logger.warning("Concurrent role assignment for squad member %s", squad_member_id,
                       extra={"user_id": user_id, "squad_id": squad_id})
        raise ConflictError("O membro recebeu outro papel simultaneamente; tente novamente")

    logger.info("Squad member %s assigned to squad role %s", member.id, squad_role.id,
                extra={"user_id": user_id, "squad_id": squad_id})
    return assignment


def unassign_role(squad_id: int, user_id: int, squad_member_id: int) -> SquadMemberRole:
    get_squad_for_member(squad_id, user_id)
    current = _active_assignment(squad_member_id)
    if current is None or current.squad_id != squad_id:
        raise NotFoundError("SquadMemberRole", squad_member_id)
    with atomic():
        deactivate_active_assignment(squad_member_id)
    return current
