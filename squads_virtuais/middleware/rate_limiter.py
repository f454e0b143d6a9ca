"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in squads_virtuais/__init__.py with no
default limits; this module applies granular limits per route category.

Usage:
    from squads_virtuais.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

AUTH_LIMIT = "20/minute"
AI_LIMIT = "10/minute"
WRITE_LIMIT = "120/minute"

# Blueprints that mostly mutate entity-store rows
WRITE_BLUEPRINTS = (
    "workspaces", "squads", "problem_statements", "personas",
    "roles", "validation_matrix", "suggestions", "github",
)


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Auth endpoints:   20/minute  (login attempts)
        - AI endpoints:     10/minute  (LLM calls are expensive)
        - Entity endpoints: 120/minute
        - Health check:     exempt

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("auth")
    if bp:
        limiter.limit(AUTH_LIMIT)(bp)

    bp = app.blueprints.get("ai")
    if bp:
        limiter.limit(AI_LIMIT)(bp)

    for bp_name in WRITE_BLUEPRINTS:
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(WRITE_LIMIT)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured — auth: %s, AI: %s, entities: %s",
        AUTH_LIMIT, AI_LIMIT, WRITE_LIMIT,
    )
