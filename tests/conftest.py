"""
Shared pytest fixtures for the Squads Virtuais test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - make_user / auth_headers_for: user + bearer token factories
    - user, auth_headers: the default authenticated user
    - workspace, squad: pre-created via the API
"""

import pytest

from squads_virtuais import create_app
from squads_virtuais.models import db as _db
from squads_virtuais.models.auth import User
from squads_virtuais.services.session_service import issue_token


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Users & tokens ───────────────────────────────────────────────────────


@pytest.fixture()
def make_user():
    """Factory: insert a User directly and return it."""
    def _make(name="Ana Souza", email="ana@squads.com.br"):
        u = User(name=name, email=email)
        _db.session.add(u)
        _db.session.commit()
        return u
    return _make


@pytest.fixture()
def auth_headers_for():
    """Factory: bearer headers for a User."""
    def _headers(u):
        return {"Authorization": f"Bearer {issue_token(u.id, u.email, u.name)}"}
    return _headers


@pytest.fixture()
def user(make_user):
    return make_user()


@pytest.fixture()
def auth_headers(user, auth_headers_for):
    return auth_headers_for(user)


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def workspace(client, auth_headers):
    """Create and return a workspace owned by ``user`` via the API."""
    res = client.post(
        "/api/v1/workspaces",
        json={"name": "Varejo Digital", "description": "Produtos de e-commerce"},
        headers=auth_headers,
    )
    assert res.status_code == 201
    return res.get_json()


@pytest.fixture()
def squad(client, auth_headers, workspace):
    """Create and return a squad in ``workspace`` via the API."""
    res = client.post(
        f"/api/v1/workspaces/{workspace['id']}/squads",
        json={"name": "Squad Busca", "description": "Busca e descoberta de produtos"},
        headers=auth_headers,
    )
    assert res.status_code == 201
    return res.get_json()


@pytest.fixture()
def problem_statement(client, auth_headers, workspace, squad):
    """Problem statement bound to ``squad``."""
    res = client.post(
        f"/api/v1/workspaces/{workspace['id']}/problem-statements",
        json={
            "squad_id": squad["id"],
            "title": "Clientes não encontram produtos na busca",
            "narrative": "Buscas sem resultado cresceram 30% no trimestre.",
            "success_metrics": ["Reduzir buscas sem resultado em 20%"],
            "constraints": ["Sem novo time de dados"],
            "assumptions": ["O catálogo está completo"],
            "open_questions": ["O problema é de ranking?"],
        },
        headers=auth_headers,
    )
    assert res.status_code == 201
    return res.get_json()
