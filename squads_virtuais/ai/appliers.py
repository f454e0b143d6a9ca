"""
Suggestion appliers.

Each SuggestionType maps to exactly one applier that writes an approved
payload into the entity stores. Appliers only stage changes; the caller
owns the transaction. The registry is checked for exhaustiveness at import.
"""

import enum
import logging

from sqlalchemy import select

from squads_virtuais.core.exceptions import NoProblemStatement, ValidationError
from squads_virtuais.models import db
from squads_virtuais.models.workspace import ProblemStatement, Squad
from squads_virtuais.services import persona_service, role_service, squad_service
from squads_virtuais.services.decision_service import AI_ASSISTED_ROLE, record_decision

logger = logging.getLogger(__name__)


class SuggestionType(str, enum.Enum):
    DECISION_CONTEXT = "decision_context"
    PROBLEM_MATURITY = "problem_maturity"
    PERSONA = "persona"
    GOVERNANCE = "governance"
    SQUAD_STRUCTURE_ROLE = "squad_structure_role"
    PHASE = "phase"
    CRITICAL_UNKNOWN = "critical_unknown"
    EXECUTION_MODEL = "execution_model"
    VALIDATION_STRATEGY = "validation_strategy"
    READINESS_ASSESSMENT = "readiness_assessment"


def _require_object(payload, suggestion_type: SuggestionType) -> dict:
    if not isinstance(payload, dict):
        raise ValidationError(f"Payload inválido para {suggestion_type.value}",
                              details={"payload": "object"})
    return payload


def _ai_decision(squad: Squad, title: str, payload: dict, keys: tuple[str, ...], user_id) -> None:
    record_decision(
        squad.id, title, {k: payload.get(k) for k in keys},
        user_id=user_id, created_by_role=AI_ASSISTED_ROLE,
    )


# ═══════════════════════════════════════════════════════════════
# Appliers
# ═══════════════════════════════════════════════════════════════
def apply_decision_context(squad, payload, user_id=None):
    payload = _require_object(payload, SuggestionType.DECISION_CONTEXT)
    _ai_decision(squad, "Contexto inicial da squad", payload,
                 ("why_now", "what_is_at_risk", "decision_horizon"), user_id)


def apply_problem_maturity(squad, payload, user_id=None):
    payload = _require_object(payload, SuggestionType.PROBLEM_MATURITY)
    statement = db.session.execute(
        select(ProblemStatement).where(ProblemStatement.squad_id == squad.id)
    ).scalar_one_or_none()
    if statement is None:
        raise NoProblemStatement(squad.id)
    statement.current_stage = payload.get("current_stage")
    statement.confidence_level = payload.get("confidence_level")


def apply_persona(squad, payload, user_id=None):
    payload = _require_object(payload, SuggestionType.PERSONA)
    persona = persona_service.find_or_create_persona_by_name(squad, payload, user_id)
    persona_service.link_persona(squad, persona_id=persona.id)


def apply_governance(squad, payload, user_id=None):
    payload = _require_object(payload, SuggestionType.GOVERNANCE)
    _ai_decision(squad, "Governance Rules", payload, ("decision_rules", "non_negotiables"), user_id)


def apply_squad_structure_role(squad, payload, user_id=None):
    payload = _require_object(payload, SuggestionType.SQUAD_STRUCTURE_ROLE)
    label = str(payload.get("role") or payload.get("label") or "").strip()
    if not label:
        raise ValidationError("Papel sem nome", details={"role": "obrigatório"})
    role_id, workspace_role_id = role_service.find_or_create_role_by_label(
        squad, label,
        description=payload.get("description"),
        responsibilities=payload.get("accountability") or payload.get("responsibility"),
        user_id=user_id,
    )
    role_service.link_role(squad, role_id=role_id, workspace_role_id=workspace_role_id)


def apply_phase(squad, payload, user_id=None):
    phases = payload if isinstance(payload, list) else [payload]
    if not all(isinstance(p, (dict, str)) for p in phases):
        raise ValidationError("Payload inválido para phase", details={"payload": "object|list"})
    squad_service.add_phases(squad.id, phases)


def apply_critical_unknown(squad, payload, user_id=None):
    payload = _require_object(payload, SuggestionType.CRITICAL_UNKNOWN)
    _ai_decision(squad, "Incerteza Crítica", payload,
                 ("question", "why_it_matters", "how_to_reduce"), user_id)


def apply_execution_model(squad, payload, user_id=None):
    payload = _require_object(payload, SuggestionType.EXECUTION_MODEL)
    _ai_decision(squad, "Execution Model", payload,
                 ("approach", "constraints", "responsibilities"), user_id)


def apply_validation_strategy(squad, payload, user_id=None):
    payload = _require_object(payload, SuggestionType.VALIDATION_STRATEGY)
    _ai_decision(squad, "Validation Strategy", payload,
                 ("signals_to_stop", "signals_of_confidence"), user_id)


def apply_readiness_assessment(squad, payload, user_id=None):
    payload = _require_object(payload, SuggestionType.READINESS_ASSESSMENT)
    squad.status = "ativa" if payload.get("is_ready_to_build_product") else "rascunho"


APPLIERS = {
    SuggestionType.DECISION_CONTEXT: apply_decision_context,
    SuggestionType.PROBLEM_MATURITY: apply_problem_maturity,
    SuggestionType.PERSONA: apply_persona,
    SuggestionType.GOVERNANCE: apply_governance,
    SuggestionType.SQUAD_STRUCTURE_ROLE: apply_squad_structure_role,
    SuggestionType.PHASE: apply_phase,
    SuggestionType.CRITICAL_UNKNOWN: apply_critical_unknown,
    SuggestionType.EXECUTION_MODEL: apply_execution_model,
    SuggestionType.VALIDATION_STRATEGY: apply_validation_strategy,
    SuggestionType.READINESS_ASSESSMENT: apply_readiness_assessment,
}

_missing = set(SuggestionType) - set(APPLIERS)
if _missing:
    raise RuntimeError(f"Suggestion types without applier: {sorted(t.value for t in _missing)}")


def apply(suggestion_type, squad: Squad, payload, user_id: int | None = None) -> None:
    """Dispatch ``payload`` to the applier of ``suggestion_type``."""
    try:
        kind = SuggestionType(suggestion_type)
    except ValueError:
        raise ValidationError(f"Tipo de sugestão desconhecido: {suggestion_type}")
    APPLIERS[kind](squad, payload, user_id)
    db.session.flush()
    logger.debug("Applied %s to squad %s", kind.value, squad.id)
