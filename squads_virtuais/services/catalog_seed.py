"""
Catalog seed — global roles and global personas.

Global rows are read-only through the API; this module is the only writer.
Safe to run multiple times: roles are matched by ``code``, personas by
``name``. Called by ``flask seed-catalog``.
"""

import logging

from sqlalchemy import select

from squads_virtuais.models import db
from squads_virtuais.models.catalog import GlobalPersona, Role

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════
# SEED
# ═══════════════════════════════════════════════════════════════════

def seed_global_roles() -> int:
    existing = set(db.session.execute(select(Role.code)).scalars())
    created = 0
    for item in _DEFAULT_ROLES:
        if item["code"] in existing:
            continue
        db.session.add(Role(**item))
        created += 1
    if created:
        db.session.flush()
        logger.info("Seeded %d global roles", created)
    return created


def seed_global_personas() -> int:
    existing = {name.lower() for name in db.session.execute(select(GlobalPersona.name)).scalars()}
    created = 0
    for item in _DEFAULT_PERSONAS:
        if item["name"].lower() in existing:
            continue
        db.session.add(GlobalPersona(**item))
        created += 1
    if created:
        db.session.flush()
        logger.info("Seeded %d global personas", created)
    return created


def seed_catalog() -> dict:
    """Seed both catalogs. The caller commits."""
    return {
        "roles": seed_global_roles(),
        "personas": seed_global_personas(),
    }


# ── Default catalog ───────────────────────────────────────────────────────────

_DEFAULT_ROLES = [
    {
        "code": "product_manager",
        "label": "Product Manager",
        "description": "Conduz a descoberta e responde pelo resultado de negócio da squad.",
        "responsibilities": "Priorizar problemas, definir métricas de sucesso, decidir escopo.",
        "default_active": True,
    },
    {
        "code": "product_designer",
        "label": "Product Designer",
        "description": "Desenha a experiência e conduz testes de usabilidade.",
        "responsibilities": "Protótipos, fluxos, validação com usuários.",
        "default_active": True,
    },
    {
        "code": "tech_lead",
        "label": "Tech Lead",
        "description": "Responde pela viabilidade técnica e pela qualidade da entrega.",
        "responsibilities": "Arquitetura, estimativas, riscos técnicos.",
        "default_active": True,
    },
    {
        "code": "ux_researcher",
        "label": "UX Researcher",
        "description": "Planeja e conduz pesquisas qualitativas e quantitativas.",
        "responsibilities": "Roteiros de entrevista, síntese de evidências.",
        "default_active": False,
    },
    {
        "code": "data_analyst",
        "label": "Data Analyst",
        "description": "Mede o comportamento dos usuários e o impacto das entregas.",
        "responsibilities": "Instrumentação, painéis, análise de experimentos.",
        "default_active": False,
    },
    {
        "code": "business_stakeholder",
        "label": "Business Stakeholder",
        "description": "Representa a área de negócio patrocinadora.",
        "responsibilities": "Validar decisões de escopo e restrições de negócio.",
        "default_active": False,
    },
]

_DEFAULT_PERSONAS = [
    {
        "name": "Cliente Final",
        "type": "cliente",
        "description": "Pessoa que usa o produto no dia a dia.",
        "goals": "Resolver sua necessidade com pouco esforço.",
        "pain_points": "Fluxos longos e informação confusa.",
        "influence_level": "alta",
    },
    {
        "name": "Patrocinador Executivo",
        "type": "stakeholder",
        "description": "Executivo que financia a iniciativa.",
        "goals": "Retorno mensurável no prazo combinado.",
        "pain_points": "Pouca visibilidade do progresso.",
        "influence_level": "alta",
    },
    {
        "name": "Time de Atendimento",
        "type": "stakeholder",
        "description": "Equipe que recebe as dúvidas e reclamações dos clientes.",
        "goals": "Reduzir chamados repetitivos.",
        "pain_points": "Falta de contexto sobre mudanças no produto.",
        "influence_level": "media",
    },
    {
        "name": "Engenheira da Squad",
        "type": "membro_squad",
        "description": "Pessoa desenvolvedora que constrói e opera a solução.",
        "goals": "Entregar com qualidade e previsibilidade.",
        "pain_points": "Requisitos instáveis e retrabalho.",
        "influence_level": "media",
    },
]
