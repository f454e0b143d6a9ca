"""
Suggestion queue tests.

Tests cover:
  - Breakdown of a proposal into ordered units (idempotent per proposal)
  - Listing by status
  - Approve / reject exactly once, with decision log and audit rows
  - Each applier's effect on the squad
"""

import pytest

from squads_virtuais.ai import appliers
from squads_virtuais.ai.gateway import LocalStubProvider
from squads_virtuais.ai.suggestion_queue import decompose
from squads_virtuais.core.exceptions import ValidationError
from squads_virtuais.models import db as _db
from squads_virtuais.models.ai import AIStructureProposal, SuggestionDecision
from squads_virtuais.models.workspace import Squad

STUB_ORDER = [
    "decision_context",
    "problem_maturity",
    "persona", "persona",
    "governance",
    "squad_structure_role", "squad_structure_role",
    "phase", "phase", "phase",
    "critical_unknown", "critical_unknown",
    "execution_model",
    "validation_strategy",
    "readiness_assessment",
]


@pytest.fixture()
def proposal(client, auth_headers, squad, problem_statement):
    res = client.post("/api/v1/ai/structure-proposals", json={"squad_id": squad["id"]}, headers=auth_headers)
    assert res.status_code == 201
    return res.get_json()


@pytest.fixture()
def suggestions(client, auth_headers, proposal):
    res = client.post("/api/v1/suggestions/breakdown", json={"proposal_id": proposal["id"]},
                      headers=auth_headers)
    assert res.status_code == 201
    return res.get_json()["suggestions"]


def _of_type(suggestions, suggestion_type):
    return [s for s in suggestions if s["suggestion_type"] == suggestion_type]


def _approve(client, headers, suggestion_id, body=None):
    return client.post(f"/api/v1/suggestions/{suggestion_id}/approve", json=body or {}, headers=headers)


def _decision_titles(client, headers, squad_id):
    decisions = client.get(f"/api/v1/squads/{squad_id}/decisions", headers=headers).get_json()
    return [d["title"] for d in decisions]


class TestDecompose:
    def test_stub_payload_order(self):
        units = decompose(LocalStubProvider.stub_proposal()["proposal"])
        assert [kind.value for kind, _ in units] == STUB_ORDER

    def test_absent_sections_skipped(self):
        units = decompose({
            "decision_context": {},
            "personas": [],
            "recommended_flow": {"phases": [{"name": "Piloto"}]},
            "critical_unknowns": "não é lista",
        })
        assert [(kind.value, payload) for kind, payload in units] == [("phase", {"name": "Piloto"})]

    def test_empty_payload(self):
        assert decompose(None) == []


class TestBreakdown:
    def test_breakdown_creates_pending_units(self, suggestions, proposal):
        assert len(suggestions) == 15
        assert [s["suggestion_type"] for s in suggestions] == STUB_ORDER
        assert [s["display_order"] for s in suggestions] == list(range(15))
        assert {s["status"] for s in suggestions} == {"pending"}
        assert {s["proposal_id"] for s in suggestions} == {proposal["id"]}

    def test_second_breakdown_returns_existing(self, client, auth_headers, proposal, suggestions):
        res = client.post("/api/v1/suggestions/breakdown", json={"proposal_id": proposal["id"]},
                          headers=auth_headers)
        assert res.status_code == 200
        body = res.get_json()
        assert body["already_broken_down"] is True
        assert [s["id"] for s in body["suggestions"]] == [s["id"] for s in suggestions]

    def test_empty_breakdown_is_recorded_once(self, client, auth_headers, workspace, squad):
        empty = AIStructureProposal(squad_id=squad["id"], workspace_id=workspace["id"],
                                    proposal_payload={"foo": 1})
        _db.session.add(empty)
        _db.session.commit()

        first = client.post("/api/v1/suggestions/breakdown", json={"proposal_id": empty.id}, headers=auth_headers)
        assert first.status_code == 201
        assert first.get_json()["suggestions"] == []
        _db.session.refresh(empty)
        assert empty.broken_down_at is not None

        again = client.post("/api/v1/suggestions/breakdown", json={"proposal_id": empty.id}, headers=auth_headers)
        assert again.status_code == 200
        assert again.get_json()["already_broken_down"] is True

    def test_discarded_proposal_is_409(self, client, auth_headers, proposal):
        client.post(f"/api/v1/ai/structure-proposals/{proposal['id']}/discard", headers=auth_headers)
        res = client.post("/api/v1/suggestions/breakdown", json={"proposal_id": proposal["id"]},
                          headers=auth_headers)
        assert res.status_code == 409

    def test_unknown_proposal_is_404(self, client, auth_headers):
        res = client.post("/api/v1/suggestions/breakdown", json={"proposal_id": 999}, headers=auth_headers)
        assert res.status_code == 404

    def test_overview_counts_pending(self, client, auth_headers, squad, suggestions):
        body = client.get(f"/api/v1/squads/{squad['id']}/overview", headers=auth_headers).get_json()
        assert body["counts"]["pending_suggestions"] == 15


class TestListing:
    def test_defaults_to_pending(self, client, auth_headers, squad, suggestions):
        _approve(client, auth_headers, suggestions[0]["id"])
        pending = client.get(f"/api/v1/squads/{squad['id']}/suggestions", headers=auth_headers).get_json()
        assert len(pending) == 14
        assert pending[0]["display_order"] == 1

    def test_status_filters(self, client, auth_headers, squad, suggestions):
        _approve(client, auth_headers, suggestions[0]["id"])
        url = f"/api/v1/squads/{squad['id']}/suggestions"
        approved = client.get(f"{url}?status=approved", headers=auth_headers).get_json()
        assert [s["id"] for s in approved] == [suggestions[0]["id"]]
        assert len(client.get(f"{url}?status=all", headers=auth_headers).get_json()) == 15

    def test_invalid_status(self, client, auth_headers, squad):
        res = client.get(f"/api/v1/squads/{squad['id']}/suggestions?status=aberta", headers=auth_headers)
        assert res.status_code == 400


class TestApproveReject:
    def test_approve(self, client, auth_headers, squad, suggestions, user):
        target = suggestions[0]
        res = _approve(client, auth_headers, target["id"], {"reason": "Faz sentido"})
        assert res.status_code == 200
        body = res.get_json()
        assert body["status"] == "approved"
        assert body["was_edited"] is False
        assert body["decided_by_user_id"] == user.id
        assert body["decided_at"] is not None

        audit = _db.session.query(SuggestionDecision).filter_by(suggestion_id=target["id"]).one()
        assert audit.action == "approved"
        assert audit.reason == "Faz sentido"

        decisions = client.get(f"/api/v1/squads/{squad['id']}/decisions?filter=suggestions",
                               headers=auth_headers).get_json()
        titles = [d["title"] for d in decisions]
        assert "Sugestão aprovada: decision_context" in titles
        assert "Contexto inicial da squad" in titles

    def test_approve_with_edits(self, client, auth_headers, squad, suggestions):
        role = _of_type(suggestions, "squad_structure_role")[0]
        res = _approve(client, auth_headers, role["id"], {"edited_payload": {"role": "Engenheira de Busca"}})
        body = res.get_json()
        assert body["was_edited"] is True
        assert body["edited_payload"] == {"role": "Engenheira de Busca"}
        assert body["payload"]["role"] == "Product Manager"

        roles = client.get(f"/api/v1/squads/{squad['id']}/roles", headers=auth_headers).get_json()
        assert [r["label"] for r in roles] == ["Engenheira de Busca"]
        audit = _db.session.query(SuggestionDecision).filter_by(suggestion_id=role["id"]).one()
        assert audit.action == "approved_with_edits"

    def test_reject(self, client, auth_headers, squad, suggestions):
        persona = _of_type(suggestions, "persona")[0]
        res = client.post(f"/api/v1/suggestions/{persona['id']}/reject",
                          json={"reason": "Persona duplicada"}, headers=auth_headers)
        assert res.status_code == 200
        body = res.get_json()
        assert body["status"] == "rejected"
        assert body["rejection_reason"] == "Persona duplicada"
        assert client.get(f"/api/v1/squads/{squad['id']}/personas", headers=auth_headers).get_json() == []
        assert _decision_titles(client, auth_headers, squad["id"]) == []

    @pytest.mark.parametrize("first,second", [
        ("approve", "approve"), ("approve", "reject"), ("reject", "approve"), ("reject", "reject"),
    ])
    def test_resolve_exactly_once(self, client, auth_headers, suggestions, first, second):
        target = suggestions[0]["id"]
        assert client.post(f"/api/v1/suggestions/{target}/{first}", json={}, headers=auth_headers).status_code == 200
        res = client.post(f"/api/v1/suggestions/{target}/{second}", json={}, headers=auth_headers)
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONFLICT_STATE"
        assert _db.session.query(SuggestionDecision).filter_by(suggestion_id=target).count() == 1

    def test_failed_applier_leaves_suggestion_pending(self, client, auth_headers, squad, suggestions):
        role = _of_type(suggestions, "squad_structure_role")[0]
        res = _approve(client, auth_headers, role["id"], {"edited_payload": {"role": "  "}})
        assert res.status_code == 400
        pending = client.get(f"/api/v1/squads/{squad['id']}/suggestions", headers=auth_headers).get_json()
        assert role["id"] in [s["id"] for s in pending]

    def test_non_member_forbidden(self, client, suggestions, make_user, auth_headers_for):
        stranger = make_user(name="Bruno Reis", email="bruno@squads.com.br")
        res = _approve(client, auth_headers_for(stranger), suggestions[0]["id"])
        assert res.status_code == 403


class TestAppliers:
    def test_problem_maturity(self, client, auth_headers, squad, suggestions):
        _approve(client, auth_headers, _of_type(suggestions, "problem_maturity")[0]["id"])
        statement = client.get(f"/api/v1/squads/{squad['id']}/problem-statement",
                               headers=auth_headers).get_json()["problem_statement"]
        assert statement["current_stage"] == "exploracao"
        assert statement["confidence_level"] == "media"

    def test_persona_links_workspace_persona(self, client, auth_headers, squad, suggestions):
        for s in _of_type(suggestions, "persona"):
            _approve(client, auth_headers, s["id"])
        personas = client.get(f"/api/v1/squads/{squad['id']}/personas", headers=auth_headers).get_json()
        assert [(p["name"], p["type"], p["source"]) for p in personas] == [
            ("Compradora Recorrente", "cliente", "workspace"),
            ("Gerente de Categoria", "stakeholder", "workspace"),
        ]

    def test_roles_become_workspace_roles(self, client, auth_headers, workspace, squad, suggestions):
        for s in _of_type(suggestions, "squad_structure_role"):
            _approve(client, auth_headers, s["id"])
        roles = client.get(f"/api/v1/roles?workspace_id={workspace['id']}", headers=auth_headers).get_json()
        assert sorted(r["code"] for r in roles) == ["pesquisador_de_ux", "product_manager"]
        linked = client.get(f"/api/v1/squads/{squad['id']}/roles", headers=auth_headers).get_json()
        assert len(linked) == 2

    def test_phases_appended_in_order(self, client, auth_headers, squad, suggestions):
        for s in reversed(_of_type(suggestions, "phase")):
            _approve(client, auth_headers, s["id"])
        phases = client.get(f"/api/v1/squads/{squad['id']}/phases", headers=auth_headers).get_json()
        assert [p["name"] for p in phases] == ["Validação", "Definição", "Descoberta"]
        assert [p["order_index"] for p in phases] == [0, 1, 2]

    @pytest.mark.parametrize("suggestion_type,title", [
        ("governance", "Governance Rules"),
        ("critical_unknown", "Incerteza Crítica"),
        ("execution_model", "Execution Model"),
        ("validation_strategy", "Validation Strategy"),
    ])
    def test_decision_appliers(self, client, auth_headers, squad, suggestions, suggestion_type, title):
        _approve(client, auth_headers, _of_type(suggestions, suggestion_type)[0]["id"])
        assert title in _decision_titles(client, auth_headers, squad["id"])

    def test_critical_unknown_payload(self, client, auth_headers, squad, suggestions):
        _approve(client, auth_headers, _of_type(suggestions, "critical_unknown")[1]["id"])
        decisions = client.get(f"/api/v1/squads/{squad['id']}/decisions", headers=auth_headers).get_json()
        unknown = next(d for d in decisions if d["title"] == "Incerteza Crítica")
        assert unknown["decision"]["question"] == "O problema é de catálogo ou de ranking?"

    def test_readiness_not_ready_sets_rascunho(self, client, auth_headers, squad, suggestions):
        client.patch(f"/api/v1/squads/{squad['id']}", json={"status": "em_revisao"}, headers=auth_headers)
        _approve(client, auth_headers, _of_type(suggestions, "readiness_assessment")[0]["id"])
        assert client.get(f"/api/v1/squads/{squad['id']}", headers=auth_headers).get_json()["status"] == "rascunho"

    def test_readiness_ready_sets_ativa(self, client, auth_headers, squad, suggestions):
        target = _of_type(suggestions, "readiness_assessment")[0]
        _approve(client, auth_headers, target["id"],
                 {"edited_payload": {"is_ready_to_build_product": True, "justification": "Evidências"}})
        assert client.get(f"/api/v1/squads/{squad['id']}", headers=auth_headers).get_json()["status"] == "ativa"

    def test_every_type_has_an_applier(self):
        assert set(appliers.APPLIERS) == set(appliers.SuggestionType)

    def test_unknown_type_rejected(self, squad):
        s = _db.session.get(Squad, squad["id"])
        with pytest.raises(ValidationError):
            appliers.apply("roadmap", s, {})

    def test_object_payload_required(self, squad):
        s = _db.session.get(Squad, squad["id"])
        with pytest.raises(ValidationError):
            appliers.apply("governance", s, ["regra"])


class TestEndToEnd:
    def test_review_whole_queue(self, client, auth_headers, squad, suggestions):
        """Approve everything but the second persona; the squad ends up structured."""
        rejected = _of_type(suggestions, "persona")[1]["id"]
        for s in suggestions:
            action = "reject" if s["id"] == rejected else "approve"
            res = client.post(f"/api/v1/suggestions/{s['id']}/{action}", json={}, headers=auth_headers)
            assert res.status_code == 200

        overview = client.get(f"/api/v1/squads/{squad['id']}/overview", headers=auth_headers).get_json()
        assert overview["counts"]["pending_suggestions"] == 0
        assert overview["counts"]["personas"] == 1
        assert overview["counts"]["roles"] == 2
        assert overview["counts"]["phases"] == 3
        assert overview["squad"]["status"] == "rascunho"
        assert overview["problem_statement"]["current_stage"] == "exploracao"
