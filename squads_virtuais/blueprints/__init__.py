"""
Squads Virtuais
Blueprint registry.
"""

from squads_virtuais.blueprints.ai_bp import ai_bp
from squads_virtuais.blueprints.auth_bp import auth_bp
from squads_virtuais.blueprints.github_bp import github_bp
from squads_virtuais.blueprints.health_bp import health_bp
from squads_virtuais.blueprints.persona_bp import persona_bp
from squads_virtuais.blueprints.problem_statement_bp import problem_statement_bp
from squads_virtuais.blueprints.role_bp import role_bp
from squads_virtuais.blueprints.squad_bp import squad_bp
from squads_virtuais.blueprints.suggestion_bp import suggestion_bp
from squads_virtuais.blueprints.validation_matrix_bp import validation_matrix_bp
from squads_virtuais.blueprints.workspace_bp import workspace_bp

ALL_BLUEPRINTS = (
    health_bp,
    auth_bp,
    workspace_bp,
    squad_bp,
    problem_statement_bp,
    role_bp,
    persona_bp,
    validation_matrix_bp,
    ai_bp,
    suggestion_bp,
    github_bp,
)
