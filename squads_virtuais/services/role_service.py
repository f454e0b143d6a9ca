"""
Role Service — global catalog, workspace roles and squad role associations.

Business rules:
    - Global roles are read-only seed data.
    - Workspace roles are mutable except ``code``; DELETE is a soft delete.
    - A squad references a role through SquadRole (role_id XOR
      workspace_role_id). Activating an already linked role is a no-op that
      reports ``already_active`` instead of inserting a second row.
    - "Customize" duplicates a global role into the squad's workspace and
      swaps the squad link to the copy, in one transaction.
"""

import logging
import re
import secrets
import time

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError

from squads_virtuais.core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from squads_virtuais.models import db
from squads_virtuais.models.catalog import Role, SquadRole, WorkspaceRole
from squads_virtuais.models.workspace import Squad
from squads_virtuais.services.access import (
    get_scoped_or_404,
    get_squad_for_member,
    get_workspace_for_member,
)
from squads_virtuais.services.helpers.transaction import atomic
from squads_virtuais.utils.helpers import require_bool, require_text

logger = logging.getLogger(__name__)

WORKSPACE_ROLE_FIELDS = ("label", "description", "responsibilities", "active")
SQUAD_ROLE_FIELDS = ("active", "name", "description")

_CODE_STRIP_RE = re.compile(r"[^a-z0-9\s_-]")
_CODE_SEP_RE = re.compile(r"[\s-]+")
_CODE_DUP_RE = re.compile(r"_+")


# ═══════════════════════════════════════════════════════════════
# Codes
# ═══════════════════════════════════════════════════════════════
def generate_code_from_label(label: str) -> str:
    """'Product Owner / PO' → 'product_owner_po'."""
    code = (label or "").lower()
    code = _CODE_STRIP_RE.sub("", code)
    code = _CODE_SEP_RE.sub("_", code)
    code = _CODE_DUP_RE.sub("_", code).strip("_")
    if not code:
        code = f"unknown_role_{int(time.time())}_{secrets.token_hex(3)}"
    return code[:100]


def unique_workspace_role_code(workspace_id: int, base: str) -> str:
    """``base`` or ``base_2``, ``base_3``... whichever is free in the workspace."""
    taken = set(db.session.execute(
        select(WorkspaceRole.code).where(
            WorkspaceRole.workspace_id == workspace_id,
            WorkspaceRole.code.like(f"{base}%"),
        )
    ).scalars())
    if base not in taken:
        return base
    n = 2
    while f"{base}_{n}" in taken:
        n += 1
    return f"{base}_{n}"


# ═══════════════════════════════════════════════════════════════
# Catalog
# ═══════════════════════════════════════════════════════════════
def list_roles(user_id: int, workspace_id: int | None = None,
               include_inactive: bool = False) -> list[dict]:
    """Global roles, followed by the workspace's roles when workspace_id is given."""
    roles = [r.to_dict() for r in db.session.execute(
        select(Role).order_by(Role.label)
    ).scalars()]

    if workspace_id is not None:
        get_workspace_for_member(workspace_id, user_id)
        stmt = select(WorkspaceRole).where(WorkspaceRole.workspace_id == workspace_id)
        if not include_inactive:
            stmt = stmt.where(WorkspaceRole.active.is_(True))
        roles.extend(r.to_dict() for r in db.session.execute(
            stmt.order_by(WorkspaceRole.label)
        ).scalars())
    return roles


def get_global_role(role_id: int) -> Role:
    role = db.session.get(Role, role_id)
    if role is None:
        raise NotFoundError("Role", role_id)
    return role


def get_workspace_role(role_id: int, user_id: int) -> WorkspaceRole:
    return get_scoped_or_404(WorkspaceRole, role_id, user_id)


def create_workspace_role(user_id: int, data: dict) -> WorkspaceRole:
    require_text(data, "code", "label", "description", "responsibilities")
    workspace_id = data.get("workspace_id")
    code = (data.get("code") or "").strip()
    label = (data.get("label") or "").strip()
    missing = {k: "obrigatório" for k, v in
               (("workspace_id", workspace_id), ("code", code), ("label", label)) if not v}
    if missing:
        raise ValidationError(f"Campos obrigatórios ausentes: {', '.join(missing)}", details=missing)
    get_workspace_for_member(workspace_id, user_id)

    exists = db.session.execute(
        select(WorkspaceRole.id).where(
            WorkspaceRole.workspace_id == workspace_id,
            WorkspaceRole.code == code,
        )
    ).first()
    if exists is not None:
        raise ConflictError(f"Já existe um papel com o código '{code}' neste workspace")

    try:
        with atomic():
            role = WorkspaceRole(
                workspace_id=workspace_id,
                code=code,
                label=label,
                description=data.get("description"),
                responsibilities=data.get("responsibilities"),
                created_by_user_id=user_id,
            )
            db.session.add(role)
    except IntegrityError:
        raise ConflictError(f"Já existe um papel com o código '{code}' neste workspace")
    return role


def update_workspace_role(role_id: int, user_id: int, data: dict) -> WorkspaceRole:
    require_text(data, "label", "description", "responsibilities")
    require_bool(data, "active")
    role = get_scoped_or_404(WorkspaceRole, role_id, user_id)
    if "code" in data and data["code"] != role.code:
        raise ValidationError("code não pode ser alterado", details={"code": "imutável"})
    if "label" in data and not (data["label"] or "").strip():
        raise ValidationError("label não pode ser vazio", details={"label": "obrigatório"})

    with atomic():
        for key in WORKSPACE_ROLE_FIELDS:
            if key in data:
                value = data[key]
                if key == "active":
                    value = bool(value)
                elif key == "label":
                    value = value.strip()
                setattr(role, key, value)
    return role


def deactivate_workspace_role(role_id: int, user_id: int) -> WorkspaceRole:
    role = get_scoped_or_404(WorkspaceRole, role_id, user_id)
    with atomic():
        role.active = False
    return role


def duplicate_global_role(role_id: int, user_id: int, workspace_id: int) -> WorkspaceRole:
    """Copy a global role into the workspace so it can be edited there."""
    source = get_global_role(role_id)
    get_workspace_for_member(workspace_id, user_id)
    with atomic():
        copy = _copy_role(source, workspace_id, user_id)
    return copy


def _copy_role(source: Role, workspace_id: int, user_id: int | None) -> WorkspaceRole:
    copy = WorkspaceRole(
        workspace_id=workspace_id,
        code=unique_workspace_role_code(workspace_id, source.code),
        label=source.label,
        description=source.description,
        responsibilities=source.responsibilities,
        source_role_id=source.id,
        created_by_user_id=user_id,
    )
    db.session.add(copy)
    db.session.flush()
    return copy


# ═══════════════════════════════════════════════════════════════
# Squad roles
# ═══════════════════════════════════════════════════════════════
def list_squad_roles(squad_id: int, user_id: int) -> list[SquadRole]:
    get_squad_for_member(squad_id, user_id)
    rows = db.session.execute(
        select(SquadRole).where(SquadRole.squad_id == squad_id)
    ).unique().scalars().all()
    return sorted(rows, key=lambda r: (not r.active, (r.to_dict()["name"] or "").lower(), r.id))


def find_squad_role(squad_id: int, *, role_id: int | None = None,
                    workspace_role_id: int | None = None) -> SquadRole | None:
    stmt = select(SquadRole).where(SquadRole.squad_id == squad_id)
    if role_id is not None:
        stmt = stmt.where(SquadRole.role_id == role_id)
    else:
        stmt = stmt.where(SquadRole.workspace_role_id == workspace_role_id)
    return db.session.execute(stmt).unique().scalar_one_or_none()


def link_role(squad: Squad, *, role_id: int | None = None, workspace_role_id: int | None = None,
              name: str | None = None, description: str | None = None) -> tuple[SquadRole, bool]:
    """
    Stage a squad → role link in the current transaction.

    Returns (row, created). An existing link is returned as-is, reactivated
    when it had been switched off.
    """
    existing = find_squad_role(squad.id, role_id=role_id, workspace_role_id=workspace_role_id)
    if existing is not None:
        if not existing.active:
            existing.active = True
            return existing, True
        return existing, False

    row = SquadRole(
        squad_id=squad.id,
        role_id=role_id,
        workspace_role_id=workspace_role_id,
        name=name,
        description=description,
    )
    db.session.add(row)
    db.session.flush()
    return row, True


def _resolve_role_reference(squad: Squad, data: dict) -> tuple[int | None, int | None]:
    role_id = data.get("role_id")
    workspace_role_id = data.get("workspace_role_id")
    if (role_id is None) == (workspace_role_id is None):
        raise ValidationError(
            "Informe exatamente um entre role_id e workspace_role_id",
            details={"role_id": role_id, "workspace_role_id": workspace_role_id},
        )
    if role_id is not None:
        get_global_role(role_id)
        return role_id, None

    ws_role = db.session.get(WorkspaceRole, workspace_role_id)
    if ws_role is None:
        raise NotFoundError("WorkspaceRole", workspace_role_id)
    if ws_role.workspace_id != squad.workspace_id:
        raise ValidationError("O papel não pertence ao workspace da squad",
                              details={"workspace_role_id": workspace_role_id})
    if not ws_role.active:
        raise ValidationError("O papel do workspace está inativo",
                              details={"workspace_role_id": workspace_role_id})
    return None, workspace_role_id


def activate_squad_role(squad_id: int, user_id: int, data: dict) -> tuple[SquadRole, bool]:
    """
    Link a role to the squad. Returns (row, created).

    Concurrent activations of the same role collide on the unique
    constraint; the loser re-reads and reports the winner's row.
    """
    require_text(data, "name", "description")
    squad = get_squad_for_member(squad_id, user_id)
    role_id, workspace_role_id = _resolve_role_reference(squad, data)

    try:
        with atomic():
            row, created = link_role(
                squad, role_id=role_id, workspace_role_id=workspace_role_id,
                name=data.get("name"), description=data.get("description"),
            )
    except IntegrityError:
        row = find_squad_role(squad.id, role_id=role_id, workspace_role_id=workspace_role_id)
        if row is None:
            raise
        created = False

    if created:
        logger.info("Role linked to squad %s (squad_role=%s)", squad.id, row.id,
                    extra={"user_id": user_id, "squad_id": squad.id})
    return row, created


def update_squad_role(squad_role_id: int, user_id: int, data: dict) -> SquadRole:
    require_text(data, "name", "description")
    require_bool(data, "active")
    row = get_scoped_or_404(SquadRole, squad_role_id, user_id)
    with atomic():
        for key in SQUAD_ROLE_FIELDS:
            if key in data:
                setattr(row, key, bool(data[key]) if key == "active" else data[key])
    return row


def remove_squad_role(squad_role_id: int, user_id: int) -> None:
    """Delete the link only; the referenced role is untouched."""
    row = get_scoped_or_404(SquadRole, squad_role_id, user_id)
    with atomic():
        db.session.delete(row)


def customize_squad_role(squad_role_id: int, user_id: int) -> SquadRole:
    """Duplicate the linked global role into the workspace and relink the squad to the copy."""
    row = get_scoped_or_404(SquadRole, squad_role_id, user_id)
    if row.role_id is None:
        raise ConflictError("O papel já é do workspace")
    squad = db.session.get(Squad, row.squad_id)

    with atomic():
        copy = _copy_role(row.role, squad.workspace_id, user_id)
        row.role_id = None
        row.workspace_role_id = copy.id
    logger.info("Squad role %s customized into workspace role %s", row.id, copy.id,
                extra={"user_id": user_id, "squad_id": squad.id})
    return row


# ═══════════════════════════════════════════════════════════════
# Lookup used by suggestion approval
# ═══════════════════════════════════════════════════════════════
def find_or_create_role_by_label(squad: Squad, label: str, *, description: str | None = None,
                                 responsibilities: str | None = None,
                                 user_id: int | None = None) -> tuple[int | None, int | None]:
    """
    Resolve a free-text role label to (role_id, workspace_role_id).

    Lookup order: global role by label, then workspace role by label (both
    case-insensitive); otherwise a new workspace role is staged.
    """
    key = label.strip().lower()
    global_role = db.session.execute(
        select(Role).where(func.lower(Role.label) == key)
    ).scalars().first()
    if global_role is not None:
        return global_role.id, None

    ws_role = db.session.execute(
        select(WorkspaceRole)
        .where(
            WorkspaceRole.workspace_id == squad.workspace_id,
            or_(func.lower(WorkspaceRole.label) == key,
                WorkspaceRole.code == generate_code_from_label(label)),
        )
        .order_by(WorkspaceRole.active.desc(), WorkspaceRole.id)
    ).scalars().first()
    if ws_role is not None:
        if not ws_role.active:
            ws_role.active = True
        return None, ws_role.id

    ws_role = WorkspaceRole(
        workspace_id=squad.workspace_id,
        code=unique_workspace_role_code(squad.workspace_id, generate_code_from_label(label)),
        label=label.strip(),
        description=description,
        responsibilities=responsibilities,
        created_by_user_id=user_id,
    )
    db.session.add(ws_role)
    db.session.flush()
    return None, ws_role.id


def ensure_global_role_readonly(role_id: int) -> None:
    get_global_role(role_id)
    raise AuthorizationError("Papéis globais são somente leitura")
