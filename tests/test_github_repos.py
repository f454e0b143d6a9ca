"""
GitHub repository integration tests.

Tests cover:
  - Connect flow: authorize URL with the repo scope, workspace-bound single-use state
  - Callback: encrypted token at rest, reconnect refreshes in place, redirect errors
  - Repository listing mapped from a patched GitHub API
  - Linking owner/repo with permission levels, format and GitHub error mapping
  - Linked repository listing and unlinking
"""

from unittest.mock import MagicMock, patch
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from cryptography.fernet import Fernet
from sqlalchemy import select

from squads_virtuais.models import db as _db
from squads_virtuais.models.auth import OAuthState
from squads_virtuais.models.github import GithubConnection, RepoConnection
from squads_virtuais.utils.crypto import decrypt_secret

IDENTITY = "squads_virtuais.services.identity_service"

GITHUB_ACCOUNT = {
    "id": 7701,
    "login": "varejo-bot",
    "avatar_url": "https://avatars.githubusercontent.com/u/7701",
}

REPO_ADMIN = {
    "id": 1,
    "name": "vitrine",
    "full_name": "varejo/vitrine",
    "owner": {"login": "varejo", "avatar_url": "https://avatars.githubusercontent.com/u/1"},
    "private": True,
    "description": "Frontend da loja",
    "html_url": "https://github.com/varejo/vitrine",
    "default_branch": "develop",
    "permissions": {"admin": True, "push": True, "pull": True},
    "updated_at": "2026-09-30T12:00:00Z",
    "language": "TypeScript",
}

REPO_MINIMAL = {
    "id": 2,
    "name": "docs",
    "full_name": "varejo/docs",
    "owner": {"login": "varejo"},
    "private": False,
    "description": None,
    "html_url": "https://github.com/varejo/docs",
}


def _response(payload, status_code=200):
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = payload
    return resp


def _start(client, headers, workspace_id):
    res = client.post(f"/api/v1/workspaces/{workspace_id}/github/connect", headers=headers)
    assert res.status_code == 200
    return res.get_json()["authorization_url"]


def _state_of(url):
    return parse_qs(urlparse(url).query)["state"][0]


def _callback(client, state, token="gho_repo_1", account=GITHUB_ACCOUNT, code="gh-code-9"):
    with patch(f"{IDENTITY}.httpx.post", return_value=_response({"access_token": token})), \
         patch(f"{IDENTITY}.httpx.get", return_value=_response(account)):
        return client.get(f"/api/v1/integrations/github/callback?code={code}&state={state}")


def _redirect_params(res):
    assert res.status_code == 302
    location = res.headers["Location"]
    assert location.startswith("http://frontend.test")
    return {k: v[0] for k, v in parse_qs(urlparse(location).query).items()}


def _connect(client, headers, workspace_id, token="gho_repo_1"):
    state = _state_of(_start(client, headers, workspace_id))
    return _callback(client, state, token=token)


@pytest.fixture()
def connected(client, auth_headers, workspace):
    params = _redirect_params(_connect(client, auth_headers, workspace["id"]))
    assert params["github_connected"] == "true"
    return workspace


@pytest.fixture()
def outsider(make_user, auth_headers_for):
    u = make_user(name="Bruno Reis", email="bruno@squads.com.br")
    return auth_headers_for(u)


# ═══════════════════════════════════════════════════════════════
# BLOCK 1: Account connection
# ═══════════════════════════════════════════════════════════════

class TestConnectAccount:
    def test_authorize_url_requests_repo_scope(self, client, auth_headers, workspace, user):
        url = _start(client, auth_headers, workspace["id"])
        query = parse_qs(urlparse(url).query)
        assert query["client_id"] == ["test-github-client-id"]
        assert query["redirect_uri"] == ["http://localhost/api/v1/integrations/github/callback"]
        assert query["scope"][0].split() == ["read:user", "user:email", "repo"]

        row = _db.session.execute(select(OAuthState)).scalar_one()
        assert row.state == query["state"][0]
        assert row.provider == "github_repo"
        assert (row.workspace_id, row.user_id) == (workspace["id"], user.id)

    def test_non_member_cannot_start(self, client, workspace, outsider):
        res = client.post(f"/api/v1/workspaces/{workspace['id']}/github/connect", headers=outsider)
        assert res.status_code == 403

    def test_callback_redirects_with_workspace(self, client, auth_headers, workspace):
        params = _redirect_params(_connect(client, auth_headers, workspace["id"]))
        assert params == {"github_connected": "true", "workspace_id": str(workspace["id"])}

    def test_token_encrypted_at_rest(self, client, auth_headers, workspace, user):
        _connect(client, auth_headers, workspace["id"], token="gho_secret_value")
        row = _db.session.execute(select(GithubConnection)).scalar_one()
        assert row.login == "varejo-bot"
        assert row.provider_user_id == "7701"
        assert row.connected_by_user_id == user.id
        assert "gho_secret_value" not in row.access_token_encrypted
        assert decrypt_secret(row.access_token_encrypted) == "gho_secret_value"

    def test_reconnect_refreshes_in_place(self, client, auth_headers, workspace):
        _connect(client, auth_headers, workspace["id"], token="gho_old")
        _connect(client, auth_headers, workspace["id"], token="gho_new")
        rows = _db.session.execute(select(GithubConnection)).scalars().all()
        assert len(rows) == 1
        assert decrypt_secret(rows[0].access_token_encrypted) == "gho_new"

    def test_state_is_single_use(self, client, auth_headers, workspace):
        state = _state_of(_start(client, auth_headers, workspace["id"]))
        assert "github_connected" in _redirect_params(_callback(client, state))
        assert _redirect_params(_callback(client, state)) == {"error": "github_invalid_state"}

    def test_login_state_is_not_accepted(self, client):
        login = client.get("/api/v1/auth/github")
        state = _state_of(login.headers["Location"])
        assert _redirect_params(_callback(client, state)) == {"error": "github_invalid_state"}

    def test_workspace_deleted_before_callback(self, client, auth_headers, workspace):
        state = _state_of(_start(client, auth_headers, workspace["id"]))
        client.delete(f"/api/v1/workspaces/{workspace['id']}", headers=auth_headers)
        assert _redirect_params(_callback(client, state)) == {"error": "github_invalid_state"}

    def test_provider_error(self, client):
        res = client.get("/api/v1/integrations/github/callback?error=access_denied&state=x")
        assert _redirect_params(res) == {"error": "github_oauth_error"}

    def test_missing_code(self, client):
        res = client.get("/api/v1/integrations/github/callback?state=x")
        assert _redirect_params(res) == {"error": "github_code_missing"}

    def test_token_exchange_failure(self, client, auth_headers, workspace):
        state = _state_of(_start(client, auth_headers, workspace["id"]))
        with patch(f"{IDENTITY}.httpx.post", side_effect=httpx.ConnectError("connection refused")):
            res = client.get(f"/api/v1/integrations/github/callback?code=c&state={state}")
        assert _redirect_params(res) == {"error": "github_token_exchange_failed"}
        assert _db.session.execute(select(GithubConnection)).first() is None


class TestConnectionStatus:
    def test_not_connected(self, client, auth_headers, workspace):
        res = client.get(f"/api/v1/workspaces/{workspace['id']}/github", headers=auth_headers)
        assert res.status_code == 200
        assert res.get_json() == {"workspace_id": workspace["id"], "connected": False, "connection": None}

    def test_connected_hides_token(self, client, auth_headers, connected):
        res = client.get(f"/api/v1/workspaces/{connected['id']}/github", headers=auth_headers)
        body = res.get_json()
        assert body["connected"] is True
        assert body["connection"]["login"] == "varejo-bot"
        assert "access_token_encrypted" not in body["connection"]
        assert b"gho_repo_1" not in res.data

    def test_disconnect(self, client, auth_headers, connected):
        url = f"/api/v1/workspaces/{connected['id']}/github"
        assert client.delete(url, headers=auth_headers).status_code == 200
        assert client.get(url, headers=auth_headers).get_json()["connected"] is False

    def test_non_member_is_403(self, client, workspace, outsider):
        res = client.get(f"/api/v1/workspaces/{workspace['id']}/github", headers=outsider)
        assert res.status_code == 403


# ═══════════════════════════════════════════════════════════════
# BLOCK 2: Repositories
# ═══════════════════════════════════════════════════════════════

class TestListRepositories:
    def test_without_connection_is_404(self, client, auth_headers, workspace):
        res = client.get(f"/api/v1/workspaces/{workspace['id']}/github/repositories", headers=auth_headers)
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_lists_mapped_repositories(self, client, auth_headers, connected):
        with patch(f"{IDENTITY}.httpx.get", return_value=_response([REPO_ADMIN, REPO_MINIMAL])) as api:
            res = client.get(f"/api/v1/workspaces/{connected['id']}/github/repositories",
                             headers=auth_headers)
        assert res.status_code == 200
        body = res.get_json()
        assert body["github_login"] == "varejo-bot"
        assert body["total"] == 2

        first, second = body["repositories"]
        assert first["full_name"] == "varejo/vitrine"
        assert first["default_branch"] == "develop"
        assert first["permissions"] == {"admin": True, "push": True, "pull": True}
        assert second["description"] == ""
        assert second["default_branch"] == "main"
        assert second["owner"] == {"login": "varejo", "avatar_url": None}
        assert second["permissions"] == {"admin": False, "push": False, "pull": False}

        args, kwargs = api.call_args
        assert args[0].endswith("/user/repos")
        assert kwargs["params"] == {"visibility": "all", "sort": "updated", "per_page": 100}
        assert kwargs["headers"]["Authorization"] == "Bearer gho_repo_1"

    def test_revoked_token_asks_to_reconnect(self, client, auth_headers, connected):
        with patch(f"{IDENTITY}.httpx.get", return_value=_response({"message": "Bad credentials"}, 401)):
            res = client.get(f"/api/v1/workspaces/{connected['id']}/github/repositories",
                             headers=auth_headers)
        assert res.status_code == 409
        body = res.get_json()
        assert body["code"] == "ERR_CONFLICT_STATE"
        assert "Reconecte" in body["error"]

    def test_github_outage_is_502(self, client, auth_headers, connected):
        with patch(f"{IDENTITY}.httpx.get", return_value=_response({}, 503)):
            res = client.get(f"/api/v1/workspaces/{connected['id']}/github/repositories",
                             headers=auth_headers)
        assert res.status_code == 502

    def test_transport_failure_is_502(self, client, auth_headers, connected):
        with patch(f"{IDENTITY}.httpx.get", side_effect=httpx.ReadTimeout("timeout")):
            res = client.get(f"/api/v1/workspaces/{connected['id']}/github/repositories",
                             headers=auth_headers)
        assert res.status_code == 502

    def test_token_from_rotated_key_asks_to_reconnect(self, app, client, auth_headers, connected, monkeypatch):
        monkeypatch.setitem(app.config, "ENCRYPTION_KEY", Fernet.generate_key().decode())
        res = client.get(f"/api/v1/workspaces/{connected['id']}/github/repositories", headers=auth_headers)
        assert res.status_code == 409


class TestConnectRepository:
    def _post(self, client, headers, workspace_id, payload):
        return client.post(f"/api/v1/workspaces/{workspace_id}/github/repositories",
                           json=payload, headers=headers)

    def test_admin_repository(self, client, auth_headers, connected, user):
        with patch(f"{IDENTITY}.httpx.get", return_value=_response(REPO_ADMIN)) as api:
            res = self._post(client, auth_headers, connected["id"], {"repo_full_name": "varejo/vitrine"})
        assert res.status_code == 201
        body = res.get_json()
        assert body["repo_full_name"] == "varejo/vitrine"
        assert body["default_branch"] == "develop"
        assert body["permissions_level"] == "admin"
        assert body["connected_by_user_id"] == user.id
        assert api.call_args.args[0].endswith("/repos/varejo/vitrine")

    def test_relink_refreshes_permission_level(self, client, auth_headers, connected):
        push_only = {**REPO_ADMIN, "permissions": {"admin": False, "push": True, "pull": True}}
        with patch(f"{IDENTITY}.httpx.get", return_value=_response(REPO_ADMIN)):
            self._post(client, auth_headers, connected["id"], {"repo_full_name": "varejo/vitrine"})
        with patch(f"{IDENTITY}.httpx.get", return_value=_response(push_only)):
            res = self._post(client, auth_headers, connected["id"], {"repo_full_name": "varejo/vitrine"})
        assert res.status_code == 200
        assert res.get_json()["permissions_level"] == "write"
        assert len(_db.session.execute(select(RepoConnection)).scalars().all()) == 1

    def test_read_only_defaults(self, client, auth_headers, connected):
        with patch(f"{IDENTITY}.httpx.get", return_value=_response(REPO_MINIMAL)):
            res = self._post(client, auth_headers, connected["id"], {"repo_full_name": "varejo/docs"})
        assert res.status_code == 201
        assert res.get_json()["permissions_level"] == "read"
        assert res.get_json()["default_branch"] == "main"

    @pytest.mark.parametrize("payload", [
        {},
        {"repo_full_name": "   "},
        {"repo_full_name": 42},
        {"repo_full_name": "sem-barra"},
        {"repo_full_name": "a/b/c"},
        {"repo_full_name": "/vitrine"},
    ])
    def test_invalid_name_is_400(self, client, auth_headers, connected, payload):
        with patch(f"{IDENTITY}.httpx.get") as api:
            res = self._post(client, auth_headers, connected["id"], payload)
        assert res.status_code == 400
        api.assert_not_called()

    def test_unknown_repository_is_404(self, client, auth_headers, connected):
        with patch(f"{IDENTITY}.httpx.get", return_value=_response({"message": "Not Found"}, 404)):
            res = self._post(client, auth_headers, connected["id"], {"repo_full_name": "varejo/sumiu"})
        assert res.status_code == 404
        assert res.get_json()["error"] == "Repositório não encontrado(a)"

    def test_without_connection_is_404(self, client, auth_headers, workspace):
        res = self._post(client, auth_headers, workspace["id"], {"repo_full_name": "varejo/vitrine"})
        assert res.status_code == 404


class TestRepoConnections:
    @pytest.fixture()
    def linked(self, client, auth_headers, connected):
        with patch(f"{IDENTITY}.httpx.get", return_value=_response(REPO_ADMIN)):
            res = client.post(f"/api/v1/workspaces/{connected['id']}/github/repositories",
                              json={"repo_full_name": "varejo/vitrine"}, headers=auth_headers)
        return res.get_json()

    def test_list(self, client, auth_headers, connected, linked):
        res = client.get(f"/api/v1/workspaces/{connected['id']}/github/repo-connections",
                         headers=auth_headers)
        assert res.status_code == 200
        assert [r["id"] for r in res.get_json()] == [linked["id"]]

    def test_unlink(self, client, auth_headers, connected, linked):
        res = client.delete(f"/api/v1/repo-connections/{linked['id']}", headers=auth_headers)
        assert res.status_code == 200
        listed = client.get(f"/api/v1/workspaces/{connected['id']}/github/repo-connections",
                            headers=auth_headers).get_json()
        assert listed == []

    def test_non_member_cannot_unlink(self, client, linked, outsider):
        res = client.delete(f"/api/v1/repo-connections/{linked['id']}", headers=outsider)
        assert res.status_code == 403

    def test_unknown_link_is_404(self, client, auth_headers):
        assert client.delete("/api/v1/repo-connections/999", headers=auth_headers).status_code == 404
