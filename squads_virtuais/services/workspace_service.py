"""
Workspace Service — workspaces and their membership.

The creating user becomes owner and first member. Membership is the only
authorization key in the system: every other service checks it through
``squads_virtuais.services.access``.
"""

import logging

from sqlalchemy import delete, func, select
from sqlalchemy.orm import aliased

from squads_virtuais.core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from squads_virtuais.models import db
from squads_virtuais.models.auth import User
from squads_virtuais.models.workspace import Squad, Workspace, WorkspaceMember
from squads_virtuais.services.access import get_workspace_for_member
from squads_virtuais.services.helpers.transaction import atomic
from squads_virtuais.services.identity_service import normalize_email
from squads_virtuais.utils.helpers import require_text

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("name", "description", "type")


def list_workspaces(user_id: int) -> list[dict]:
    """Workspaces the user belongs to, with member and squad counts."""
    # The outer query also joins workspace_members; the count needs its own alias.
    counted = aliased(WorkspaceMember)
    member_count = (
        select(func.count(counted.id))
        .where(counted.workspace_id == Workspace.id)
        .correlate(Workspace)
        .scalar_subquery()
    )
    squad_count = (
        select(func.count(Squad.id))
        .where(Squad.workspace_id == Workspace.id)
        .correlate(Workspace)
        .scalar_subquery()
    )
    stmt = (
        select(Workspace, member_count, squad_count)
        .join(WorkspaceMember, WorkspaceMember.workspace_id == Workspace.id)
        .where(WorkspaceMember.user_id == user_id)
        .order_by(Workspace.created_at.desc(), Workspace.id.desc())
    )
    result = []
    for workspace, members, squads in db.session.execute(stmt).all():
        item = workspace.to_dict()
        item["member_count"] = members
        item["squad_count"] = squads
        result.append(item)
    return result


def create_workspace(user_id: int, name: str, description: str | None = None,
                     type_: str | None = None) -> Workspace:
    require_text({"name": name, "description": description, "type": type_}, *UPDATABLE_FIELDS)
    if not name or not name.strip():
        raise ValidationError("name é obrigatório", details={"name": "obrigatório"})

    with atomic():
        workspace = Workspace(
            name=name.strip(),
            description=description,
            type=type_,
            owner_user_id=user_id,
        )
        db.session.add(workspace)
        db.session.flush()
        db.session.add(WorkspaceMember(workspace_id=workspace.id, user_id=user_id, role="owner"))

    logger.info("Workspace %s created", workspace.id,
                extra={"user_id": user_id, "workspace_id": workspace.id})
    return workspace


def get_workspace(workspace_id: int, user_id: int) -> Workspace:
    return get_workspace_for_member(workspace_id, user_id)


def update_workspace(workspace_id: int, user_id: int, data: dict) -> Workspace:
    require_text(data, *UPDATABLE_FIELDS)
    workspace = get_workspace_for_member(workspace_id, user_id)
    if "name" in data and not (data["name"] or "").strip():
        raise ValidationError("name não pode ser vazio", details={"name": "obrigatório"})

    with atomic():
        for key in UPDATABLE_FIELDS:
            if key in data:
                value = data[key]
                setattr(workspace, key, value.strip() if key == "name" else value)
    return workspace


def delete_workspace(workspace_id: int, user_id: int) -> None:
    workspace = get_workspace_for_member(workspace_id, user_id)
    if workspace.owner_user_id != user_id:
        raise AuthorizationError("Apenas o dono pode excluir o workspace")

    with atomic():
        db.session.execute(delete(Workspace).where(Workspace.id == workspace.id))
    logger.info("Workspace %s deleted", workspace_id,
                extra={"user_id": user_id, "workspace_id": workspace_id})


def list_members(workspace_id: int, user_id: int) -> list[WorkspaceMember]:
    get_workspace_for_member(workspace_id, user_id)
    stmt = (
        select(WorkspaceMember)
        .where(WorkspaceMember.workspace_id == workspace_id)
        .order_by(WorkspaceMember.joined_at, WorkspaceMember.id)
    )
    return list(db.session.execute(stmt).scalars().all())


def add_member(workspace_id: int, user_id: int, email: str) -> WorkspaceMember:
    """Add an existing user (looked up by email) to the workspace."""
    require_text({"email": email}, "email")
    get_workspace_for_member(workspace_id, user_id)
    normalized = normalize_email(email)
    if not normalized:
        raise ValidationError("email inválido", details={"email": "inválido"})

    target = db.session.execute(select(User).where(User.email == normalized)).scalar_one_or_none()
    if target is None:
        raise NotFoundError("User", normalized)

    existing = db.session.execute(
        select(WorkspaceMember).where(
            WorkspaceMember.workspace_id == workspace_id,
            WorkspaceMember.user_id == target.id,
        )
    ).scalar_one_or_none()
    if existing is not None:
        raise ConflictError("Usuário já é membro do workspace")

    with atomic():
        member = WorkspaceMember(workspace_id=workspace_id, user_id=target.id, role="member")
        db.session.add(member)
    return member
