"""
Squad API tests — squads, members, phases, decision log and overview.
"""

import pytest

from squads_virtuais.models import db
from squads_virtuais.services import squad_service


@pytest.fixture()
def teammate(client, auth_headers, workspace, make_user):
    """A second workspace member."""
    u = make_user(name="Carla Dias", email="carla@squads.com.br")
    res = client.post(
        f"/api/v1/workspaces/{workspace['id']}/members", json={"email": u.email}, headers=auth_headers,
    )
    assert res.status_code == 201
    return u


class TestSquadCRUD:
    def test_create_defaults_to_rascunho(self, squad, workspace):
        assert squad["status"] == "rascunho"
        assert squad["workspace_id"] == workspace["id"]
        assert squad["name"] == "Squad Busca"

    def test_create_with_status(self, client, auth_headers, workspace):
        res = client.post(
            f"/api/v1/workspaces/{workspace['id']}/squads",
            json={"name": "Squad Checkout", "status": "ativa"},
            headers=auth_headers,
        )
        assert res.status_code == 201
        assert res.get_json()["status"] == "ativa"

    def test_create_invalid_status(self, client, auth_headers, workspace):
        res = client.post(
            f"/api/v1/workspaces/{workspace['id']}/squads",
            json={"name": "Squad X", "status": "arquivada"},
            headers=auth_headers,
        )
        assert res.status_code == 400
        assert "rascunho" in res.get_json()["details"]["status"]

    def test_create_requires_name(self, client, auth_headers, workspace):
        res = client.post(f"/api/v1/workspaces/{workspace['id']}/squads", json={}, headers=auth_headers)
        assert res.status_code == 400

    def test_list_sorted_by_name(self, client, auth_headers, workspace, squad):
        client.post(f"/api/v1/workspaces/{workspace['id']}/squads",
                    json={"name": "Squad Atendimento"}, headers=auth_headers)
        res = client.get(f"/api/v1/workspaces/{workspace['id']}/squads", headers=auth_headers)
        assert [s["name"] for s in res.get_json()] == ["Squad Atendimento", "Squad Busca"]

    @pytest.mark.parametrize("status", ["ativa", "aguardando_execucao", "em_revisao", "concluida", "pausada"])
    def test_any_status_transition_allowed(self, client, auth_headers, squad, status):
        res = client.patch(f"/api/v1/squads/{squad['id']}", json={"status": status}, headers=auth_headers)
        assert res.status_code == 200
        assert res.get_json()["status"] == status

    def test_patch_invalid_status(self, client, auth_headers, squad):
        res = client.patch(f"/api/v1/squads/{squad['id']}", json={"status": "done"}, headers=auth_headers)
        assert res.status_code == 400

    def test_patch_name(self, client, auth_headers, squad):
        res = client.patch(f"/api/v1/squads/{squad['id']}", json={"name": " Squad Descoberta "},
                           headers=auth_headers)
        assert res.get_json()["name"] == "Squad Descoberta"

    @pytest.mark.parametrize("body", [{"name": 5}, {"description": ["a"]}, {"status": ["ativa"]}])
    def test_patch_non_text_is_400(self, client, auth_headers, squad, body):
        res = client.patch(f"/api/v1/squads/{squad['id']}", json=body, headers=auth_headers)
        assert res.status_code == 400
        assert list(res.get_json()["details"].values()) == ["string"]

    def test_create_non_text_name_is_400(self, client, auth_headers, workspace):
        res = client.post(f"/api/v1/workspaces/{workspace['id']}/squads", json={"name": 7},
                          headers=auth_headers)
        assert res.status_code == 400

    def test_delete(self, client, auth_headers, squad):
        assert client.delete(f"/api/v1/squads/{squad['id']}", headers=auth_headers).status_code == 200
        assert client.get(f"/api/v1/squads/{squad['id']}", headers=auth_headers).status_code == 404

    def test_delete_keeps_problem_statement_unbound(self, client, auth_headers, squad, problem_statement):
        client.delete(f"/api/v1/squads/{squad['id']}", headers=auth_headers)
        res = client.get(f"/api/v1/problem-statements/{problem_statement['id']}", headers=auth_headers)
        assert res.status_code == 200
        assert res.get_json()["squad_id"] is None


class TestSquadMembers:
    def test_add_and_list(self, client, auth_headers, squad, teammate):
        res = client.post(f"/api/v1/squads/{squad['id']}/members",
                          json={"user_id": teammate.id}, headers=auth_headers)
        assert res.status_code == 201
        assert res.get_json()["name"] == "Carla Dias"

        members = client.get(f"/api/v1/squads/{squad['id']}/members", headers=auth_headers).get_json()
        assert [m["user_id"] for m in members] == [teammate.id]

    def test_add_non_workspace_member_rejected(self, client, auth_headers, squad, make_user):
        stranger = make_user(name="Davi", email="davi@squads.com.br")
        res = client.post(f"/api/v1/squads/{squad['id']}/members",
                          json={"user_id": stranger.id}, headers=auth_headers)
        assert res.status_code == 400

    def test_add_twice_is_409(self, client, auth_headers, squad, teammate):
        url = f"/api/v1/squads/{squad['id']}/members"
        client.post(url, json={"user_id": teammate.id}, headers=auth_headers)
        assert client.post(url, json={"user_id": teammate.id}, headers=auth_headers).status_code == 409

    def test_remove_then_readd_reactivates(self, client, auth_headers, squad, teammate):
        url = f"/api/v1/squads/{squad['id']}/members"
        member = client.post(url, json={"user_id": teammate.id}, headers=auth_headers).get_json()
        assert client.delete(f"/api/v1/squad-members/{member['id']}", headers=auth_headers).status_code == 200
        assert client.get(url, headers=auth_headers).get_json() == []

        again = client.post(url, json={"user_id": teammate.id}, headers=auth_headers)
        assert again.status_code == 201
        assert again.get_json()["id"] == member["id"]

    def test_remove_twice_is_404(self, client, auth_headers, squad, teammate):
        member = client.post(f"/api/v1/squads/{squad['id']}/members",
                             json={"user_id": teammate.id}, headers=auth_headers).get_json()
        client.delete(f"/api/v1/squad-members/{member['id']}", headers=auth_headers)
        assert client.delete(f"/api/v1/squad-members/{member['id']}", headers=auth_headers).status_code == 404


class TestPhases:
    def test_add_phases_skips_duplicates(self, app, squad):
        squad_service.add_phases(squad["id"], [{"name": "Descoberta"}, {"name": "Definição"}])
        db.session.commit()
        inserted = squad_service.add_phases(
            squad["id"], [{"name": "descoberta "}, "Validação", {"name": ""}],
        )
        db.session.commit()
        assert [p.name for p in inserted] == ["Validação"]
        assert inserted[0].order_index == 2

    def test_list_in_order(self, client, auth_headers, squad):
        squad_service.add_phases(squad["id"], [
            {"name": "Descoberta", "objective": "Entender"},
            {"name": "Entrega", "description": "Construir"},
        ])
        db.session.commit()
        phases = client.get(f"/api/v1/squads/{squad['id']}/phases", headers=auth_headers).get_json()
        assert [(p["name"], p["order_index"]) for p in phases] == [("Descoberta", 0), ("Entrega", 1)]
        assert phases[0]["description"] == "Entender"


class TestDecisions:
    def test_manual_decision(self, client, auth_headers, squad, user):
        res = client.post(
            f"/api/v1/squads/{squad['id']}/decisions",
            json={"title": "Escopo do MVP", "decision": {"texto": "Somente busca textual"},
                  "created_by_role": "Product Manager"},
            headers=auth_headers,
        )
        assert res.status_code == 201
        body = res.get_json()
        assert body["decision"] == {"texto": "Somente busca textual"}
        assert body["created_by_user_id"] == user.id
        assert body["created_by_role"] == "Product Manager"

    def test_plain_text_decision_is_wrapped(self, client, auth_headers, squad):
        res = client.post(f"/api/v1/squads/{squad['id']}/decisions",
                          json={"title": "Nota", "decision": "Revisar em 30 dias"}, headers=auth_headers)
        assert res.get_json()["decision"] == {"text": "Revisar em 30 dias"}

    def test_newest_first(self, client, auth_headers, squad):
        url = f"/api/v1/squads/{squad['id']}/decisions"
        for title in ("Primeira", "Segunda", "Terceira"):
            client.post(url, json={"title": title}, headers=auth_headers)
        titles = [d["title"] for d in client.get(url, headers=auth_headers).get_json()]
        assert titles == ["Terceira", "Segunda", "Primeira"]

    def test_filter_problem_statement(self, client, auth_headers, squad, problem_statement):
        client.patch(f"/api/v1/problem-statements/{problem_statement['id']}",
                     json={"narrative": "Nova narrativa"}, headers=auth_headers)
        client.post(f"/api/v1/squads/{squad['id']}/decisions", json={"title": "Outra"}, headers=auth_headers)

        res = client.get(f"/api/v1/squads/{squad['id']}/decisions?filter=problem_statement",
                         headers=auth_headers)
        assert [d["title"] for d in res.get_json()] == ["Problem Statement atualizado"]

    def test_filter_suggestions_is_empty_without_ai(self, client, auth_headers, squad):
        client.post(f"/api/v1/squads/{squad['id']}/decisions", json={"title": "Manual"}, headers=auth_headers)
        res = client.get(f"/api/v1/squads/{squad['id']}/decisions?filter=suggestions", headers=auth_headers)
        assert res.get_json() == []

    def test_non_text_title_is_400(self, client, auth_headers, squad):
        res = client.post(f"/api/v1/squads/{squad['id']}/decisions", json={"title": 3},
                          headers=auth_headers)
        assert res.status_code == 400
        assert res.get_json()["details"] == {"title": "string"}

    def test_invalid_filter(self, client, auth_headers, squad):
        res = client.get(f"/api/v1/squads/{squad['id']}/decisions?filter=tudo", headers=auth_headers)
        assert res.status_code == 400

    def test_no_update_or_delete_route(self, client, auth_headers, squad):
        decision = client.post(f"/api/v1/squads/{squad['id']}/decisions",
                               json={"title": "Fixa"}, headers=auth_headers).get_json()
        assert client.delete(f"/api/v1/decisions/{decision['id']}", headers=auth_headers).status_code == 404


class TestOverview:
    def test_empty_squad(self, client, auth_headers, squad):
        res = client.get(f"/api/v1/squads/{squad['id']}/overview", headers=auth_headers)
        assert res.status_code == 200
        body = res.get_json()
        assert body["squad"]["id"] == squad["id"]
        assert body["problem_statement"] is None
        assert body["pending_proposal_id"] is None
        assert body["counts"] == {
            "members": 0, "roles": 0, "personas": 0, "phases": 0,
            "decisions": 0, "pending_suggestions": 0,
        }

    def test_counts_and_timeline(self, client, auth_headers, squad, teammate, problem_statement):
        client.post(f"/api/v1/squads/{squad['id']}/members", json={"user_id": teammate.id}, headers=auth_headers)
        for i in range(7):
            client.post(f"/api/v1/squads/{squad['id']}/decisions", json={"title": f"D{i}"}, headers=auth_headers)

        body = client.get(f"/api/v1/squads/{squad['id']}/overview", headers=auth_headers).get_json()
        assert body["problem_statement"]["id"] == problem_statement["id"]
        assert body["counts"]["members"] == 1
        assert body["counts"]["decisions"] == 7
        assert [d["title"] for d in body["timeline"]] == ["D6", "D5", "D4", "D3", "D2"]
