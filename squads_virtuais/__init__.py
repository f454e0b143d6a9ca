"""
Squads Virtuais
Flask Application Factory.

Usage:
    from squads_virtuais import create_app
    app = create_app()           # defaults to APP_ENV or "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from werkzeug.exceptions import HTTPException

from squads_virtuais.config import config
from squads_virtuais.core.exceptions import AppError
from squads_virtuais.middleware.jwt_auth import init_jwt_middleware
from squads_virtuais.middleware.logging_config import configure_logging
from squads_virtuais.middleware.rate_limiter import init_rate_limits
from squads_virtuais.middleware.security_headers import init_security_headers
from squads_virtuais.middleware.timing import init_request_timing
from squads_virtuais.models import db
from squads_virtuais.utils.errors import HTTP_STATUS_CODES, E, api_error

logger = logging.getLogger(__name__)

# ── SQLite FK enforcement (global engine event) ─────────────────────────
from sqlalchemy import event as _sa_event, engine as _sa_engine  # noqa: E402


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # per-blueprint limits only
    storage_uri=os.getenv("REDIS_URL", "memory://"),  # Redis in production, memory for dev
)

# Generic messages for werkzeug errors; never echo internal detail
_HTTP_MESSAGES = {
    400: "Requisição inválida",
    401: "Não autenticado",
    403: "Acesso negado",
    404: "Recurso não encontrado",
    405: "Método não permitido",
    413: "Corpo da requisição muito grande",
    415: "Content-Type deve ser application/json",
    429: "Muitas requisições, tente novamente em instantes",
}


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.

    Raises:
        RuntimeError: a required setting is missing (fail fast at startup).
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__)
    app.config.from_object(config[config_name]())

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Security headers (HSTS, X-Frame-Options, etc.) ───────────────────
    init_security_headers(app)

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── JWT auth middleware (Bearer session → g.current_user_id) ─────────
    init_jwt_middleware(app)

    # ── Request guards (input length + Content-Type) ─────────────────────
    app.config.setdefault("MAX_CONTENT_LENGTH", 2 * 1024 * 1024)  # 2 MB

    @app.before_request
    def _guard_request():
        from flask import abort, request as _req
        # Input length cap
        max_len = app.config.get("MAX_CONTENT_LENGTH")
        if max_len and _req.content_length and _req.content_length > max_len:
            abort(413, description="Request body too large")
        # Content-Type validation for mutating methods
        if _req.method in ("POST", "PUT", "PATCH") and _req.path.startswith("/api/"):
            ct = _req.content_type or ""
            if _req.data and "json" not in ct:
                abort(415, description="Content-Type must be application/json")

    # ── Import all models so Alembic can detect them ─────────────────────
    from squads_virtuais.models import ai as _ai_models              # noqa: F401
    from squads_virtuais.models import auth as _auth_models          # noqa: F401
    from squads_virtuais.models import catalog as _catalog_models    # noqa: F401
    from squads_virtuais.models import decision as _decision_models  # noqa: F401
    from squads_virtuais.models import github as _github_models      # noqa: F401
    from squads_virtuais.models import workspace as _workspace_models  # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS; migrations own changes) ─
    if config_name != "testing":
        with app.app_context():
            db.create_all()

    # ── Blueprints ───────────────────────────────────────────────────────
    from squads_virtuais.blueprints import ALL_BLUEPRINTS

    for bp in ALL_BLUEPRINTS:
        app.register_blueprint(bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("seed-catalog")
    def seed_catalog_cmd():
        """Seed global roles, global personas and the default AI prompt."""
        from squads_virtuais.ai.prompt_registry import ensure_default_prompts
        from squads_virtuais.services.catalog_seed import seed_catalog

        counts = seed_catalog()
        db.session.commit()
        counts["prompts"] = ensure_default_prompts()
        logger.info("Catalog seeded: %s", counts)

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(AppError)
    def handle_app_error(exc):
        db.session.rollback()
        if exc.status_code >= 500:
            logger.error("%s: %s", type(exc).__name__, exc.message)
        return api_error(exc.code, exc.message, status=exc.status_code, details=exc.details)

    @app.errorhandler(HTTPException)
    def handle_http_error(exc):
        status = exc.code or 500
        code = HTTP_STATUS_CODES.get(status, E.INTERNAL)
        message = _HTTP_MESSAGES.get(status, exc.name)
        return api_error(code, message, status=status)

    @app.errorhandler(Exception)
    def handle_unexpected_error(exc):
        db.session.rollback()
        logger.exception("Unhandled error: %s", exc)
        return api_error(E.INTERNAL, "Erro interno do servidor", status=500)

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
