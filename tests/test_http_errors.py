"""
Error envelope, request guards and cross-cutting middleware.

Every failure answers ``{"error": <pt-BR message>, "code": "ERR_*"}`` with
the mapped status; unexpected errors never leak their internal detail.
"""

import json
import logging
from unittest.mock import patch


class TestErrorEnvelope:
    def test_unknown_route_is_404_json(self, client, auth_headers):
        res = client.get("/api/v1/does-not-exist", headers=auth_headers)
        assert res.status_code == 404
        assert res.get_json() == {"error": "Recurso não encontrado", "code": "ERR_NOT_FOUND"}

    def test_unknown_route_without_token_is_still_404(self, client):
        assert client.get("/api/v1/does-not-exist").status_code == 404

    def test_wrong_method_is_405(self, client, auth_headers):
        res = client.delete("/api/v1/workspaces", headers=auth_headers)
        assert res.status_code == 405
        assert res.get_json()["code"] == "ERR_METHOD_NOT_ALLOWED"

    def test_missing_resource_is_404(self, client, auth_headers):
        res = client.get("/api/v1/squads/9999", headers=auth_headers)
        assert res.status_code == 404
        body = res.get_json()
        assert body["code"] == "ERR_NOT_FOUND"
        assert body["error"] == "Squad não encontrado(a)"

    def test_validation_error_carries_details(self, client, auth_headers):
        res = client.post("/api/v1/workspaces", json={}, headers=auth_headers)
        assert res.status_code == 400
        body = res.get_json()
        assert body["code"] == "ERR_VALIDATION_INVALID"
        assert body["details"] == {"name": "obrigatório"}

    def test_malformed_json_is_400(self, client, auth_headers):
        res = client.post(
            "/api/v1/workspaces", data="{not json", content_type="application/json",
            headers=auth_headers,
        )
        assert res.status_code == 400
        assert res.get_json()["error"] == "Body JSON inválido"

    def test_json_array_body_is_400(self, client, auth_headers):
        res = client.post("/api/v1/workspaces", json=["Varejo"], headers=auth_headers)
        assert res.status_code == 400

    def test_unexpected_error_is_generic_500(self, client, auth_headers):
        with patch(
            "squads_virtuais.services.workspace_service.list_workspaces",
            side_effect=RuntimeError("connection string postgres://secret"),
        ):
            res = client.get("/api/v1/workspaces", headers=auth_headers)
        assert res.status_code == 500
        body = res.get_json()
        assert body == {"error": "Erro interno do servidor", "code": "ERR_INTERNAL"}
        assert "secret" not in res.get_data(as_text=True)


class TestRequestGuards:
    def test_non_json_body_is_415(self, client, auth_headers):
        res = client.post(
            "/api/v1/workspaces", data="name=Varejo", content_type="text/plain",
            headers=auth_headers,
        )
        assert res.status_code == 415
        assert res.get_json()["code"] == "ERR_UNSUPPORTED_MEDIA_TYPE"

    def test_bodyless_post_is_accepted(self, client, auth_headers, squad):
        res = client.post(f"/api/v1/squads/{squad['id']}/decisions", headers=auth_headers)
        # Reaches the service: title is required
        assert res.status_code == 400

    def test_oversized_body_is_413(self, client, auth_headers):
        body = json.dumps({"name": "x" * (3 * 1024 * 1024)})
        res = client.post(
            "/api/v1/workspaces", data=body, content_type="application/json",
            headers=auth_headers,
        )
        assert res.status_code == 413
        assert res.get_json()["code"] == "ERR_PAYLOAD_TOO_LARGE"


class TestHealth:
    def test_ready(self, client):
        res = client.get("/api/v1/health")
        assert res.status_code == 200
        assert res.get_json() == {"status": "ok"}

    def test_live_checks_database(self, client):
        res = client.get("/api/v1/health/live")
        assert res.status_code == 200
        body = res.get_json()
        assert body["status"] == "ok"
        assert body["checks"]["database"]["status"] == "ok"
        assert body["checks"]["app"]["ai_provider"] == "local"


class TestResponseHeaders:
    def test_security_headers(self, client):
        res = client.get("/api/v1/health")
        assert res.headers["X-Content-Type-Options"] == "nosniff"
        assert res.headers["X-Frame-Options"] == "DENY"
        assert res.headers["Referrer-Policy"] == "no-referrer"
        assert res.headers["Cache-Control"] == "no-store"

    def test_request_id_is_echoed(self, client):
        res = client.get("/api/v1/health", headers={"X-Request-ID": "req-123"})
        assert res.headers["X-Request-ID"] == "req-123"
        assert "X-Request-Duration-Ms" in res.headers

    def test_request_id_is_generated(self, client):
        res = client.get("/api/v1/health")
        assert len(res.headers["X-Request-ID"]) == 12


class TestLogging:
    def test_json_formatter_includes_context(self):
        from squads_virtuais.middleware.logging_config import JSONFormatter

        record = logging.LogRecord(
            "squads_virtuais.test", logging.INFO, __file__, 10, "Login succeeded via %s",
            ("github",), None,
        )
        record.provider = "github"
        record.user_id = 7
        entry = json.loads(JSONFormatter().format(record))
        assert entry["message"] == "Login succeeded via github"
        assert entry["level"] == "INFO"
        assert entry["provider"] == "github"
        assert entry["user_id"] == 7
        assert "squad_id" not in entry

    def test_console_formatter_appends_context(self):
        from squads_virtuais.middleware.logging_config import ConsoleFormatter

        record = logging.LogRecord(
            "squads_virtuais.test", logging.WARNING, __file__, 10, "Slow request", (), None,
        )
        record.workspace_id = 3
        record.event_type = "github.connected"
        line = ConsoleFormatter().format(record)
        assert "WARNING" in line
        assert line.endswith("squads_virtuais.test: Slow request  workspace_id=3 event_type=github.connected")

    def test_unexpected_error_is_logged(self, client, auth_headers, caplog):
        with patch(
            "squads_virtuais.services.workspace_service.list_workspaces",
            side_effect=RuntimeError("boom"),
        ), caplog.at_level(logging.ERROR, logger="squads_virtuais"):
            client.get("/api/v1/workspaces", headers=auth_headers)
        assert any("Unhandled error" in r.getMessage() for r in caplog.records)
