"""
Persona Service — global catalog, workspace personas and squad associations.

Business rules:
    - Global personas are read-only seed data.
    - Workspace personas are fully mutable (partial updates).
    - SquadPersona links exactly one of global_persona_id / persona_id and
      is unique per squad; re-adding a linked persona reports
      ``already_active``.
    - "Customize" (duplicate-and-replace) clones the global persona into the
      workspace, drops the old link and links the copy, in one transaction.
"""

import logging

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from squads_virtuais.core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from squads_virtuais.models import db
from squads_virtuais.models.catalog import (
    DEFAULT_PERSONA_TYPE,
    PERSONA_TYPES,
    GlobalPersona,
    Persona,
    SquadPersona,
)
from squads_virtuais.models.workspace import Squad
from squads_virtuais.services.access import (
    get_scoped_or_404,
    get_squad_for_member,
    get_workspace_for_member,
)
from squads_virtuais.services.helpers.transaction import atomic
from squads_virtuais.utils.helpers import require_bool, require_text

logger = logging.getLogger(__name__)

PERSONA_FIELDS = (
    "name", "type", "subtype", "description", "focus",
    "goals", "pain_points", "behaviors", "influence_level",
)
UPDATABLE_FIELDS = PERSONA_FIELDS + ("active",)
SQUAD_PERSONA_FIELDS = ("context_description", "focus")


def _validate_type(persona_type) -> None:
    if persona_type not in PERSONA_TYPES:
        raise ValidationError(
            f"type inválido: {persona_type}",
            details={"type": sorted(PERSONA_TYPES)},
        )


# ═══════════════════════════════════════════════════════════════
# Catalog
# ═══════════════════════════════════════════════════════════════
def list_personas(user_id: int, workspace_id: int | None = None) -> list[dict]:
    """Global personas, then the workspace's personas with their squad_count."""
    result = [p.to_dict() for p in db.session.execute(
        select(GlobalPersona).order_by(GlobalPersona.name)
    ).scalars()]

    if workspace_id is not None:
        get_workspace_for_member(workspace_id, user_id)
        squad_count = (
            select(func.count(SquadPersona.id))
            .where(SquadPersona.persona_id == Persona.id)
            .correlate(Persona)
            .scalar_subquery()
        )
        stmt = (
            select(Persona, squad_count)
            .where(Persona.workspace_id == workspace_id)
            .order_by(Persona.name)
        )
        for persona, count in db.session.execute(stmt).all():
            item = persona.to_dict()
            item["squad_count"] = count
            result.append(item)
    return result


def get_global_persona(persona_id: int) -> GlobalPersona:
    persona = db.session.get(GlobalPersona, persona_id)
    if persona is None:
        raise NotFoundError("GlobalPersona", persona_id)
    return persona


def ensure_global_persona_readonly(persona_id: int) -> None:
    get_global_persona(persona_id)
    raise AuthorizationError("Personas globais são somente leitura")


def get_persona(persona_id: int, user_id: int) -> dict:
    """Workspace persona plus the squads it is linked to."""
    persona = get_scoped_or_404(Persona, persona_id, user_id)
    rows = db.session.execute(
        select(SquadPersona, Squad.name)
        .join(Squad, Squad.id == SquadPersona.squad_id)
        .where(SquadPersona.persona_id == persona.id)
        .order_by(Squad.name)
    ).all()
    result = persona.to_dict()
    result["squads"] = [
        {
            "squad_persona_id": link.id,
            "squad_id": link.squad_id,
            "squad_name": squad_name,
            "context_description": link.context_description,
            "focus": link.focus,
        }
        for link, squad_name in rows
    ]
    return result


def create_persona(user_id: int, data: dict) -> Persona:
    require_text(data, *PERSONA_FIELDS)
    workspace_id = data.get("workspace_id")
    name = (data.get("name") or "").strip()
    missing = {k: "obrigatório" for k, v in (("workspace_id", workspace_id), ("name", name)) if not v}
    if missing:
        raise ValidationError(f"Campos obrigatórios ausentes: {', '.join(missing)}", details=missing)
    persona_type = data.get("type") or DEFAULT_PERSONA_TYPE
    _validate_type(persona_type)
    get_workspace_for_member(workspace_id, user_id)

    with atomic():
        persona = Persona(
            workspace_id=workspace_id,
            created_by_user_id=user_id,
            **{k: data.get(k) for k in PERSONA_FIELDS if k not in ("name", "type")},
        )
        persona.name = name
        persona.type = persona_type
        db.session.add(persona)
    return persona


def update_persona(persona_id: int, user_id: int, data: dict) -> Persona:
    require_text(data, *PERSONA_FIELDS)
    require_bool(data, "active")
    persona = get_scoped_or_404(Persona, persona_id, user_id)
    if "name" in data and not (data["name"] or "").strip():
        raise ValidationError("name não pode ser vazio", details={"name": "obrigatório"})
    if "type" in data:
        _validate_type(data["type"])

    with atomic():
        for key in UPDATABLE_FIELDS:
            if key in data:
                value = data[key]
                if key == "active":
                    value = bool(value)
                elif key == "name":
                    value = value.strip()
                setattr(persona, key, value)
    return persona


def _copy_persona(source: GlobalPersona, workspace_id: int, user_id: int | None) -> Persona:
    copy = Persona(
        workspace_id=workspace_id,
        source_persona_id=source.id,
        created_by_user_id=user_id,
        **{k: getattr(source, k) for k in PERSONA_FIELDS},
    )
    db.session.add(copy)
    db.session.flush()
    return copy


def duplicate_global_persona(persona_id: int, user_id: int, workspace_id: int) -> Persona:
    source = get_global_persona(persona_id)
    get_workspace_for_member(workspace_id, user_id)
    with atomic():
        copy = _copy_persona(source, workspace_id, user_id)
    return copy


# ═══════════════════════════════════════════════════════════════
# Squad personas
# ═══════════════════════════════════════════════════════════════
def list_squad_personas(squad_id: int, user_id: int) -> list[SquadPersona]:
    get_squad_for_member(squad_id, user_id)
    rows = db.session.execute(
        select(SquadPersona).where(SquadPersona.squad_id == squad_id)
    ).unique().scalars().all()
    return sorted(rows, key=lambda r: ((r.target.name if r.target else "").lower(), r.id))


def find_squad_persona(squad_id: int, *, global_persona_id: int | None = None,
                       persona_id: int | None = None) -> SquadPersona | None:
    stmt = select(SquadPersona).where(SquadPersona.squad_id == squad_id)
    if global_persona_id is not None:
        stmt = stmt.where(SquadPersona.global_persona_id == global_persona_id)
    else:
        stmt = stmt.where(SquadPersona.persona_id == persona_id)
    return db.session.execute(stmt).unique().scalar_one_or_none()


def link_persona(squad: Squad, *, global_persona_id: int | None = None, persona_id: int | None = None,
                 context_description: str | None = None,
                 focus: str | None = None) -> tuple[SquadPersona, bool]:
    """Stage a squad → persona link. Returns (row, created); existing links are returned as-is."""
    existing = find_squad_persona(squad.id, global_persona_id=global_persona_id, persona_id=persona_id)
    if existing is not None:
        return existing, False
    row = SquadPersona(
        squad_id=squad.id,
        global_persona_id=global_persona_id,
        persona_id=persona_id,
        context_description=context_description,
        focus=focus,
    )
    db.session.add(row)
    db.session.flush()
    return row, True


def _resolve_persona_reference(squad: Squad, data: dict) -> tuple[int | None, int | None]:
    global_persona_id = data.get("global_persona_id")
    persona_id = data.get("persona_id")
    if (global_persona_id is None) == (persona_id is None):
        raise ValidationError(
            "Informe exatamente um entre global_persona_id e persona_id",
            details={"global_persona_id": global_persona_id, "persona_id": persona_id},
        )
    if global_persona_id is not None:
        get_global_persona(global_persona_id)
        return global_persona_id, None

    persona = db.session.get(Persona, persona_id)
    if persona is None:
        raise NotFoundError("Persona", persona_id)
    if persona.workspace_id != squad.workspace_id:
        raise ValidationError("A persona não pertence ao workspace da squad",
                              details={"persona_id": persona_id})
    return None, persona_id


def add_squad_persona(squad_id: int, user_id: int, data: dict) -> tuple[SquadPersona, bool]:
    require_text(data, *SQUAD_PERSONA_FIELDS)
    squad = get_squad_for_member(squad_id, user_id)
    global_persona_id, persona_id = _resolve_persona_reference(squad, data)

    try:
        with atomic():
            row, created = link_persona(
                squad, global_persona_id=global_persona_id, persona_id=persona_id,
                context_description=data.get("context_description"), focus=data.get("focus"),
            )
    except IntegrityError:
        row = find_squad_persona(squad.id, global_persona_id=global_persona_id, persona_id=persona_id)
        if row is None:
            raise
        created = False
    return row, created


def update_squad_persona(squad_persona_id: int, user_id: int, data: dict) -> SquadPersona:
    require_text(data, *SQUAD_PERSONA_FIELDS)
    row = get_scoped_or_404(SquadPersona, squad_persona_id, user_id)
    with atomic():
        for key in SQUAD_PERSONA_FIELDS:
            if key in data:
                setattr(row, key, data[key])
    return row


def remove_squad_persona(squad_persona_id: int, user_id: int) -> None:
    """Delete the link only; the persona itself is untouched."""
    row = get_scoped_or_404(SquadPersona, squad_persona_id, user_id)
    with atomic():
        db.session.delete(row)


def customize_squad_persona(squad_persona_id: int, user_id: int) -> SquadPersona:
    """
    Duplicate-and-replace.

    Clone the linked global persona into the squad's workspace and repoint
    the existing link at the copy. The link keeps its id and its
    squad-specific context, so saved validation matrices still resolve.
    """
    row = get_scoped_or_404(SquadPersona, squad_persona_id, user_id)
    if row.global_persona_id is None:
        raise ConflictError("A persona já é do workspace")
    squad = db.session.get(Squad, row.squad_id)

    with atomic():
        copy = _copy_persona(row.global_persona, squad.workspace_id, user_id)
        row.global_persona_id = None
        row.persona_id = copy.id

    logger.info("Squad persona %s customized into workspace persona %s", row.id, copy.id,
                extra={"user_id": user_id, "squad_id": squad.id})
    return row


# ═══════════════════════════════════════════════════════════════
# Lookup used by suggestion approval
# ═══════════════════════════════════════════════════════════════
def find_or_create_persona_by_name(squad: Squad, data: dict, user_id: int | None = None) -> Persona:
    """Workspace persona matching ``data['name']`` (trimmed, case-insensitive), created if absent."""
    name = str(data.get("name") or "").strip()
    if not name:
        raise ValidationError("Persona sem nome", details={"name": "obrigatório"})

    persona = db.session.execute(
        select(Persona)
        .where(
            Persona.workspace_id == squad.workspace_id,
            func.lower(func.trim(Persona.name)) == name.lower(),
        )
        .order_by(Persona.active.desc(), Persona.id)
    ).scalars().first()
    if persona is not None:
        return persona

    persona_type = data.get("type") if data.get("type") in PERSONA_TYPES else DEFAULT_PERSONA_TYPE
    persona = Persona(
        workspace_id=squad.workspace_id,
        name=name,
        type=persona_type,
        subtype=_as_text(data.get("subtype")),
        description=_as_text(data.get("description")),
        focus=_as_text(data.get("focus")),
        goals=_as_text(data.get("goals")),
        pain_points=_as_text(data.get("pain_points")),
        behaviors=_as_text(data.get("behaviors")),
        influence_level=_as_text(data.get("influence_level")),
        created_by_user_id=user_id,
    )
    db.session.add(persona)
    db.session.flush()
    return persona


def _as_text(value) -> str | None:
    if value is None:
        return None
    if isinstance(value, list):
        return "\n".join(str(v) for v in value if v is not None)
    return str(value)
