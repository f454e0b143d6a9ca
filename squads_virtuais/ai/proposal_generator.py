"""
Squads Virtuais
Structure Proposal Generator.

Flow:
    problem statement + active roles/personas  →  input snapshot
    active prompt version                      →  rendered prompt
    LLM gateway (JSON mode)                    →  {"proposal": {...}}
    AIStructureProposal (pending)              →  confirm | discard

Generation is synchronous and never retried. Any AI failure surfaces as
ProposalGenerationFailed (502).
"""

import json
import logging
import time
from datetime import datetime, timezone

from sqlalchemy import select, update

from squads_virtuais.ai import appliers
from squads_virtuais.ai.gateway import LLMGateway
from squads_virtuais.ai.prompt_registry import (
    STRUCTURE_PROPOSAL_PROMPT,
    get_active_prompt,
    log_execution,
    render_prompt,
)
from squads_virtuais.core.exceptions import (
    AlreadyResolved,
    NoProblemStatement,
    ProposalGenerationFailed,
    ValidationError,
)
from squads_virtuais.models import db
from squads_virtuais.models.ai import AIStructureProposal
from squads_virtuais.models.catalog import SquadPersona, SquadRole
from squads_virtuais.models.workspace import ProblemStatement, Workspace
from squads_virtuais.services.access import get_scoped_or_404, get_squad_for_member
from squads_virtuais.services.decision_service import AI_ASSISTED_ROLE, record_decision
from squads_virtuais.services.helpers.transaction import atomic

logger = logging.getLogger(__name__)

PROPOSAL_CONFIRMED_TITLE = "Proposta de Estrutura da IA confirmada"


# ═══════════════════════════════════════════════════════════════
# Prompt input
# ═══════════════════════════════════════════════════════════════
def _bullet_list(items: list[str]) -> str | None:
    return "\n".join(f"- {item}" for item in items) if items else None


def _join(values, empty: str) -> str:
    return "; ".join(values) if values else empty


def build_input_snapshot(squad, statement: ProblemStatement) -> dict:
    workspace = db.session.get(Workspace, squad.workspace_id)
    roles = db.session.execute(
        select(SquadRole).where(SquadRole.squad_id == squad.id, SquadRole.active.is_(True))
    ).unique().scalars().all()
    personas = db.session.execute(
        select(SquadPersona).where(SquadPersona.squad_id == squad.id)
    ).unique().scalars().all()

    return {
        "squad": {
            "id": squad.id,
            "name": squad.name,
            "description": squad.description,
            "workspace_name": workspace.name if workspace else None,
        },
        "problem_statement": {
            "id": statement.id,
            "title": statement.title,
            "narrative": statement.narrative,
            "success_metrics": statement.success_metrics or [],
            "constraints": statement.constraints or [],
            "assumptions": statement.assumptions or [],
            "open_questions": statement.open_questions or [],
        },
        "existing_roles": [
            {"label": r.to_dict()["name"], "description": r.to_dict()["description"] or ""}
            for r in roles
        ],
        "existing_personas": [
            {"name": p.target.name, "type": p.target.type, "goals": p.target.goals or ""}
            for p in personas if p.target is not None
        ],
        "captured_at": datetime.now(timezone.utc).isoformat(),
    }


def build_prompt_variables(snapshot: dict) -> dict:
    squad = snapshot["squad"]
    problem = snapshot["problem_statement"]
    return {
        "squad_context": (
            f"Squad: {squad['name']}\n"
            f"Workspace: {squad['workspace_name']}\n"
            f"Descrição: {squad['description'] or 'Não definida'}"
        ),
        "problem_statement": (
            f"Título: {problem['title']}\n\n"
            f"Narrativa: {problem['narrative'] or ''}\n\n"
            f"Métricas de Sucesso: {_join(problem['success_metrics'], 'Não definidas')}\n\n"
            f"Restrições: {_join(problem['constraints'], 'Nenhuma')}\n\n"
            f"Premissas: {_join(problem['assumptions'], 'Nenhuma')}\n\n"
            f"Perguntas em Aberto: {_join(problem['open_questions'], 'Nenhuma')}"
        ),
        "existing_roles": _bullet_list(
            [f"{r['label']}: {r['description']}" for r in snapshot["existing_roles"]]
        ),
        "existing_personas": _bullet_list(
            [f"{p['name']} ({p['type']}): {p['goals']}" for p in snapshot["existing_personas"]]
        ),
        "input_snapshot": json.dumps(snapshot, ensure_ascii=False, indent=2),
    }


def _parse_proposal(content) -> dict:
    try:
        parsed = json.loads(content or "")
    except (TypeError, ValueError):
        raise ProposalGenerationFailed("A IA retornou uma resposta inválida. Tente novamente.")
    proposal = parsed.get("proposal") if isinstance(parsed, dict) else None
    if not isinstance(proposal, dict):
        raise ProposalGenerationFailed("A IA não retornou uma proposta válida")
    return proposal


# ═══════════════════════════════════════════════════════════════
# Operations
# ═══════════════════════════════════════════════════════════════
def generate(squad_id: int, user_id: int) -> AIStructureProposal:
    squad = get_squad_for_member(squad_id, user_id)
    statement = db.session.execute(
        select(ProblemStatement).where(ProblemStatement.squad_id == squad.id)
    ).scalar_one_or_none()
    if statement is None:
        raise NoProblemStatement(squad.id)

    snapshot = build_input_snapshot(squad, statement)
    prompt_version = get_active_prompt(STRUCTURE_PROPOSAL_PROMPT)
    messages = []
    if prompt_version.system_instructions:
        messages.append({"role": "system", "content": prompt_version.system_instructions})
    messages.append({"role": "user",
                     "content": render_prompt(prompt_version.prompt_text, build_prompt_variables(snapshot))})

    log_ctx = {"prompt_version_id": prompt_version.id, "workspace_id": squad.workspace_id,
               "squad_id": squad.id, "user_id": user_id}
    start = time.time()
    result = None
    try:
        result = LLMGateway().chat(
            messages,
            model=prompt_version.model_name,
            json_mode=True,
            temperature=prompt_version.temperature,
        )
        proposal_payload = _parse_proposal(result.get("content"))
    except Exception as e:
        logger.error("Structure proposal generation failed for squad %s: %s", squad.id, e,
                     extra={"user_id": user_id, "squad_id": squad.id, "event_type": "ai.proposal_failed"})
        log_execution(
            **log_ctx,
            input_tokens=(result or {}).get("prompt_tokens") or 0,
            output_tokens=(result or {}).get("completion_tokens") or 0,
            total_tokens=(result or {}).get("total_tokens") or 0,
            execution_time_ms=int((time.time() - start) * 1000),
            success=False,
            error_message=str(e),
        )
        if isinstance(e, ProposalGenerationFailed):
            raise
        raise ProposalGenerationFailed("Falha ao gerar a proposta de estrutura")

    uncertainties = proposal_payload.get("uncertainties")
    with atomic():
        proposal = AIStructureProposal(
            squad_id=squad.id,
            workspace_id=squad.workspace_id,
            problem_statement_id=statement.id,
            prompt_version_id=prompt_version.id,
            status="pending",
            source_context="PROBLEM",
            proposal_payload=proposal_payload,
            uncertainties=uncertainties if isinstance(uncertainties, list) else [],
            input_snapshot=snapshot,
            model_name=result.get("model"),
            created_by_user_id=user_id,
        )
        db.session.add(proposal)

    log_execution(
        **log_ctx,
        proposal_id=proposal.id,
        input_tokens=result.get("prompt_tokens") or 0,
        output_tokens=result.get("completion_tokens") or 0,
        total_tokens=result.get("total_tokens") or 0,
        execution_time_ms=result.get("latency_ms") or int((time.time() - start) * 1000),
    )
    logger.info("Structure proposal %s generated", proposal.id,
                extra={"user_id": user_id, "squad_id": squad.id, "event_type": "ai.proposal_generated"})
    return proposal


def get_latest_pending(squad_id: int, user_id: int) -> AIStructureProposal | None:
    get_squad_for_member(squad_id, user_id)
    return db.session.execute(
        select(AIStructureProposal)
        .where(AIStructureProposal.squad_id == squad_id, AIStructureProposal.status == "pending")
        .order_by(AIStructureProposal.created_at.desc(), AIStructureProposal.id.desc())
        .limit(1)
    ).scalar_one_or_none()


def _claim(proposal: AIStructureProposal, status: str) -> None:
    """Move pending → ``status`` with a conditional update; AlreadyResolved if someone else won."""
    now = datetime.now(timezone.utc)
    values = {"status": status}
    values["confirmed_at" if status == "confirmed" else "discarded_at"] = now
    result = db.session.execute(
        update(AIStructureProposal)
        .where(AIStructureProposal.id == proposal.id, AIStructureProposal.status == "pending")
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.session.refresh(proposal)
        raise AlreadyResolved("Proposta", proposal.status)


def confirm(proposal_id: int, user_id: int, edited_payload: dict | None = None) -> AIStructureProposal:
    """
    Apply the (possibly edited) proposal to the squad and mark it confirmed.

    Personas, squad_structure.roles and recommended_flow.phases go through
    the same appliers as suggestion approval.
    """
    proposal = get_scoped_or_404(AIStructureProposal, proposal_id, user_id)
    if proposal.status != "pending":
        raise AlreadyResolved("Proposta", proposal.status)
    if edited_payload is not None and not isinstance(edited_payload, dict):
        raise ValidationError("edited_proposal deve ser um objeto", details={"edited_proposal": "object"})
    payload = edited_payload if edited_payload is not None else (proposal.proposal_payload or {})
    squad = get_squad_for_member(proposal.squad_id, user_id)

    personas = payload.get("personas") or []
    roles = (payload.get("squad_structure") or {}).get("roles") or []
    phases = (payload.get("recommended_flow") or {}).get("phases") or []

    with atomic():
        _claim(proposal, "confirmed")
        for persona in personas:
            appliers.apply(appliers.SuggestionType.PERSONA, squad, persona, user_id)
        for role in roles:
            appliers.apply(appliers.SuggestionType.SQUAD_STRUCTURE_ROLE, squad, role, user_id)
        if phases:
            appliers.apply(appliers.SuggestionType.PHASE, squad, phases, user_id)
        if edited_payload is not None:
            proposal.proposal_payload = edited_payload
        record_decision(
            squad.id,
            PROPOSAL_CONFIRMED_TITLE,
            {
                "proposal_id": proposal.id,
                "edited": edited_payload is not None,
                "personas": len(personas),
                "roles": len(roles),
                "phases": len(phases),
            },
            user_id=user_id,
            created_by_role=AI_ASSISTED_ROLE,
        )

    db.session.refresh(proposal)
    logger.info("Structure proposal %s confirmed", proposal.id,
                extra={"user_id": user_id, "squad_id": squad.id, "event_type": "ai.proposal_confirmed"})
    return proposal


def discard(proposal_id: int, user_id: int) -> AIStructureProposal:
    proposal = get_scoped_or_404(AIStructureProposal, proposal_id, user_id)
    if proposal.status != "pending":
        raise AlreadyResolved("Proposta", proposal.status)
    with atomic():
        _claim(proposal, "discarded")
    db.session.refresh(proposal)
    return proposal
