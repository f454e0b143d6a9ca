"""
Squads Virtuais
Prompt Registry.

Database-backed prompt templates:
    - One active AIPromptVersion per prompt name
    - Built-in default registered on first use (or by ``flask seed-catalog``)
    - {{variable}} substitution and {{#if variable}}...{{/if}} blocks
    - Best-effort execution log

Usage:
    from squads_virtuais.ai.prompt_registry import get_active_prompt, render_prompt
    version = get_active_prompt(STRUCTURE_PROPOSAL_PROMPT)
    text = render_prompt(version.prompt_text, {"squad_context": "..."})
"""

import logging
import re

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from squads_virtuais.models import db
from squads_virtuais.models.ai import AIPrompt, AIPromptExecution, AIPromptVersion

logger = logging.getLogger(__name__)

STRUCTURE_PROPOSAL_PROMPT = "structure-proposal-v1"

_IF_BLOCK_RE = re.compile(r"\{\{#if\s+(\w+)\s*\}\}(.*?)\{\{/if\}\}", re.DOTALL)
_VAR_RE = re.compile(r"\{\{\s*(\w+)\s*\}\}")
_LEFTOVER_RE = re.compile(r"\{\{[^}]+\}\}")


# ═══════════════════════════════════════════════════════════════
# Rendering
# ═══════════════════════════════════════════════════════════════
def _is_present(value) -> bool:
    return value is not None and value != "" and value is not False


def render_prompt(template: str, variables: dict) -> str:
    """
    Render ``template``.

    Conditional blocks are kept only when their variable is present (not
    None, empty or False). Unknown placeholders are logged and removed.
    """
    rendered = _IF_BLOCK_RE.sub(
        lambda m: m.group(2) if _is_present(variables.get(m.group(1))) else "",
        template,
    )

    def replacer(match):
        key = match.group(1)
        if key not in variables:
            return match.group(0)
        value = variables[key]
        return "" if value is None else str(value)

    rendered = _VAR_RE.sub(replacer, rendered)

    leftovers = _LEFTOVER_RE.findall(rendered)
    if leftovers:
        logger.warning("Unresolved prompt variables: %s", ", ".join(leftovers))
        rendered = _LEFTOVER_RE.sub("", rendered)
    return rendered.strip()


# ═══════════════════════════════════════════════════════════════
# Registry
# ═══════════════════════════════════════════════════════════════
def _find_active(name: str) -> AIPromptVersion | None:
    return db.session.execute(
        select(AIPromptVersion)
        .join(AIPrompt, AIPrompt.id == AIPromptVersion.prompt_id)
        .where(AIPrompt.name == name, AIPromptVersion.is_active.is_(True))
        .order_by(AIPromptVersion.version.desc())
        .limit(1)
    ).scalar_one_or_none()


def ensure_default_prompts() -> int:
    """Register missing built-in prompts. Returns how many were created."""
    created = 0
    for default in _DEFAULT_PROMPTS:
        exists = db.session.execute(
            select(AIPrompt.id).where(AIPrompt.name == default["name"])
        ).first()
        if exists is not None:
            continue
        prompt = AIPrompt(name=default["name"], category=default["category"], description=default["description"])
        prompt.versions.append(AIPromptVersion(
            version=1,
            prompt_text=default["prompt_text"],
            system_instructions=default["system_instructions"],
            model_name=default.get("model_name"),
            temperature=default.get("temperature", 0.7),
            is_active=True,
        ))
        db.session.add(prompt)
        created += 1
    if created:
        try:
            db.session.commit()
        except IntegrityError:
            # Another worker registered it first.
            db.session.rollback()
            return 0
        logger.info("Registered %d default prompt(s)", created)
    return created


def get_active_prompt(name: str) -> AIPromptVersion:
    """Active version of ``name``, registering the built-in default when absent."""
    version = _find_active(name)
    if version is None:
        ensure_default_prompts()
        version = _find_active(name)
    if version is None:
        raise LookupError(f"No active prompt version for {name}")
    return version


def log_execution(*, prompt_version_id: int | None, proposal_id: int | None = None,
                  workspace_id: int | None = None, squad_id: int | None = None,
                  input_tokens: int = 0, output_tokens: int = 0, total_tokens: int = 0,
                  execution_time_ms: int = 0, success: bool = True,
                  error_message: str | None = None, user_id: int | None = None) -> None:
    """Persist an AIPromptExecution in its own commit. Failures are logged, never raised."""
    try:
        db.session.add(AIPromptExecution(
            prompt_version_id=prompt_version_id,
            proposal_id=proposal_id,
            workspace_id=workspace_id,
            squad_id=squad_id,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=total_tokens,
            execution_time_ms=execution_time_ms,
            success=success,
            error_message=error_message[:2000] if error_message else None,
            executed_by_user_id=user_id,
        ))
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.warning("Failed to log prompt execution: %s", e)


# ── Built-in Default Prompts ──────────────────────────────────────────────────

_STRUCTURE_SYSTEM = (
    "Você é um especialista em descoberta de produto e desenho de squads multidisciplinares. "
    "A partir do Problem Statement de uma squad, proponha a estrutura inicial de trabalho: "
    "contexto da decisão, maturidade do problema, personas, governança, papéis, fluxo de fases, "
    "incertezas críticas, modelo de execução, estratégia de validação e prontidão para construir.\n\n"
    "Regras:\n"
    "- Responda SOMENTE com JSON válido.\n"
    "- O objeto raiz deve conter a chave \"proposal\".\n"
    "- Não invente fatos; registre lacunas em \"uncertainties\".\n"
    "- Reaproveite papéis e personas existentes quando fizer sentido."
)

_STRUCTURE_TEMPLATE = (
    "Contexto da squad:\n{{squad_context}}\n\n"
    "Problem Statement:\n{{problem_statement}}\n\n"
    "{{#if existing_roles}}Papéis já ativos na squad:\n{{existing_roles}}\n\n{{/if}}"
    "{{#if existing_personas}}Personas já associadas:\n{{existing_personas}}\n\n{{/if}}"
    "Retorne um JSON no formato:\n"
    "{\"proposal\": {\n"
    "  \"decision_context\": {\"why_now\": \"\", \"what_is_at_risk\": \"\", \"decision_horizon\": \"\"},\n"
    "  \"problem_maturity\": {\"current_stage\": \"\", \"confidence_level\": \"\"},\n"
    "  \"personas\": [{\"name\": \"\", \"type\": \"cliente|stakeholder|membro_squad\", "
    "\"description\": \"\", \"goals\": \"\", \"pain_points\": \"\"}],\n"
    "  \"governance\": {\"decision_rules\": [], \"non_negotiables\": []},\n"
    "  \"squad_structure\": {\"roles\": [{\"role\": \"\", \"description\": \"\", \"accountability\": \"\"}]},\n"
    "  \"recommended_flow\": {\"phases\": [{\"name\": \"\", \"objective\": \"\"}]},\n"
    "  \"critical_unknowns\": [{\"question\": \"\", \"why_it_matters\": \"\", \"how_to_reduce\": \"\"}],\n"
    "  \"execution_model\": {\"approach\": \"\", \"constraints\": [], \"responsibilities\": []},\n"
    "  \"validation_strategy\": {\"signals_to_stop\": [], \"signals_of_confidence\": []},\n"
    "  \"readiness_assessment\": {\"is_ready_to_build_product\": false, \"justification\": \"\"},\n"
    "  \"uncertainties\": []\n"
    "}}"
)

_DEFAULT_PROMPTS = [
    {
        "name": STRUCTURE_PROPOSAL_PROMPT,
        "category": "structure",
        "description": "Proposta de estrutura de squad a partir do Problem Statement",
        "system_instructions": _STRUCTURE_SYSTEM,
        "prompt_text": _STRUCTURE_TEMPLATE,
        "temperature": 0.7,
    },
]
