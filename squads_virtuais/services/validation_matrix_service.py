"""
Validation Matrix Service.

The matrix records, per squad, which role must validate which persona at
each checkpoint type. It is append-only: saving always inserts version
``max + 1`` together with its entries, and reading defaults to the latest
version. Entries snapshot the role label/code and persona name.
"""

import logging

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from squads_virtuais.core.exceptions import ConflictError, NotFoundError, ValidationError
from squads_virtuais.models import db
from squads_virtuais.models.catalog import SquadPersona, SquadRole
from squads_virtuais.models.decision import (
    CHECKPOINT_TYPES,
    REQUIREMENT_LEVELS,
    ValidationMatrixEntry,
    ValidationMatrixVersion,
)
from squads_virtuais.services.access import get_squad_for_member
from squads_virtuais.services.helpers.transaction import atomic
from squads_virtuais.utils.helpers import optional_int, require_text

logger = logging.getLogger(__name__)

ENTRY_FIELDS = ("squad_role_id", "squad_persona_id", "checkpoint_type", "requirement_level")


def get_matrix(squad_id: int, user_id: int, version: int | None = None) -> dict:
    """Latest version (or ``version``) with entries; an empty shell when none exists."""
    get_squad_for_member(squad_id, user_id)
    stmt = select(ValidationMatrixVersion).where(ValidationMatrixVersion.squad_id == squad_id)
    if version is not None:
        stmt = stmt.where(ValidationMatrixVersion.version == version)
    else:
        stmt = stmt.order_by(ValidationMatrixVersion.version.desc()).limit(1)
    matrix = db.session.execute(stmt).scalar_one_or_none()

    if matrix is None:
        if version is not None:
            raise NotFoundError("ValidationMatrixVersion", version)
        return {"version": None, "entries": []}
    return {"version": matrix.to_dict(), "entries": [e.to_dict() for e in matrix.entries]}


def list_versions(squad_id: int, user_id: int) -> list[ValidationMatrixVersion]:
    get_squad_for_member(squad_id, user_id)
    stmt = (
        select(ValidationMatrixVersion)
        .where(ValidationMatrixVersion.squad_id == squad_id)
        .order_by(ValidationMatrixVersion.version.desc())
    )
    return list(db.session.execute(stmt).scalars().all())


def _validate_entries(squad_id: int, entries) -> list[dict]:
    if not isinstance(entries, list):
        raise ValidationError("entries deve ser uma lista", details={"entries": "list"})

    roles: dict[int, SquadRole] = {}
    personas: dict[int, SquadPersona] = {}
    seen = set()
    cleaned = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise ValidationError("Entrada inválida", details={"index": index})
        missing = [f for f in ENTRY_FIELDS if entry.get(f) in (None, "")]
        if missing:
            raise ValidationError(
                "Cada entrada deve ter squad_role_id, squad_persona_id, checkpoint_type e requirement_level",
                details={"index": index, "missing": missing},
            )
        require_text(entry, "checkpoint_type", "requirement_level")
        checkpoint_type = entry["checkpoint_type"]
        if checkpoint_type not in CHECKPOINT_TYPES:
            raise ValidationError("checkpoint_type deve ser ISSUE, DECISION, PHASE ou MAP",
                                  details={"index": index, "checkpoint_type": checkpoint_type})
        requirement_level = entry["requirement_level"]
        if requirement_level not in REQUIREMENT_LEVELS:
            raise ValidationError("requirement_level deve ser REQUIRED ou OPTIONAL",
                                  details={"index": index, "requirement_level": requirement_level})

        role_id = optional_int(entry["squad_role_id"], "squad_role_id")
        if role_id not in roles:
            role = db.session.get(SquadRole, role_id)
            if role is None or role.squad_id != squad_id:
                raise ValidationError(f"Papel {role_id} não pertence à squad",
                                      details={"index": index, "squad_role_id": role_id})
            roles[role_id] = role
        persona_id = optional_int(entry["squad_persona_id"], "squad_persona_id")
        if persona_id not in personas:
            persona = db.session.get(SquadPersona, persona_id)
            if persona is None or persona.squad_id != squad_id:
                raise ValidationError(f"Persona {persona_id} não pertence à squad",
                                      details={"index": index, "squad_persona_id": persona_id})
            personas[persona_id] = persona

        key = (role_id, persona_id, checkpoint_type)
        if key in seen:
            raise ConflictError("Entrada duplicada: mesmo papel, persona e checkpoint")
        seen.add(key)

        role = roles[role_id].to_dict()
        cleaned.append({
            "squad_role_id": role_id,
            "squad_persona_id": persona_id,
            "role_label": role["name"],
            "role_code": role["code"],
            "persona_name": personas[persona_id].target.name if personas[persona_id].target else None,
            "checkpoint_type": checkpoint_type,
            "requirement_level": requirement_level,
        })
    return cleaned


def save_matrix(squad_id: int, user_id: int, data: dict) -> ValidationMatrixVersion:
    """Insert the next version and its entries in one transaction."""
    require_text(data, "description")
    get_squad_for_member(squad_id, user_id)
    entries = _validate_entries(squad_id, data.get("entries", []))

    try:
        with atomic():
            current = db.session.execute(
                select(func.max(ValidationMatrixVersion.version))
                .where(ValidationMatrixVersion.squad_id == squad_id)
            ).scalar_one()
            matrix = ValidationMatrixVersion(
                squad_id=squad_id,
                version=(current or 0) + 1,
                description=data.get("description"),
                created_by_user_id=user_id,
            )
            matrix.entries = [ValidationMatrixEntry(**entry) for entry in entries]
            db.session.add(matrix)
    except IntegrityError:
        logger.warning("Validation matrix version race on squad %s", squad_id,
                       extra={"user_id": user_id, "squad_id": squad_id})
        raise ConflictError("Outra versão da matriz foi salva simultaneamente; tente novamente")

    logger.info("Validation matrix v%s saved (%d entries)", matrix.version, len(entries),
                extra={"user_id": user_id, "squad_id": squad_id})
    return matrix
