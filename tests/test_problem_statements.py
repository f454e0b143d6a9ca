"""
Problem Statement API tests.

Tests cover:
  - CRUD scoped by workspace membership
  - One statement per squad (409), squad must share the workspace (400)
  - Quality assessment attached to every response
  - Update history recorded as decisions on squad-bound statements
"""

import pytest

from squads_virtuais.models.workspace import ProblemStatement
from squads_virtuais.services.problem_statement_service import assess_quality

LONG_NARRATIVE = (
    "Clientes do app relatam que a busca não retorna produtos que existem no catálogo. "
    "O volume de buscas sem resultado cresceu 30% no último trimestre e a conversão de "
    "sessões com busca caiu de 4,1% para 3,2%. O time de atendimento recebe dezenas de "
    "chamados por semana sobre itens que não aparecem na busca."
)


def _decisions(client, headers, squad_id, filter_=None):
    url = f"/api/v1/squads/{squad_id}/decisions"
    if filter_:
        url += f"?filter={filter_}"
    return client.get(url, headers=headers).get_json()


class TestProblemStatementCRUD:
    def test_create_bound_to_squad(self, problem_statement, squad, workspace, user):
        assert problem_statement["squad_id"] == squad["id"]
        assert problem_statement["workspace_id"] == workspace["id"]
        assert problem_statement["created_by_user_id"] == user.id
        assert problem_statement["success_metrics"] == ["Reduzir buscas sem resultado em 20%"]

    def test_create_standalone(self, client, auth_headers, workspace):
        res = client.post(
            f"/api/v1/workspaces/{workspace['id']}/problem-statements",
            json={"title": "Churn de assinantes"},
            headers=auth_headers,
        )
        assert res.status_code == 201
        body = res.get_json()
        assert body["squad_id"] is None
        assert body["constraints"] == []

    def test_title_required(self, client, auth_headers, workspace):
        res = client.post(
            f"/api/v1/workspaces/{workspace['id']}/problem-statements",
            json={"narrative": "Sem título"},
            headers=auth_headers,
        )
        assert res.status_code == 400
        assert res.get_json()["details"] == {"title": "obrigatório"}

    def test_list_items_must_be_lists(self, client, auth_headers, workspace):
        res = client.post(
            f"/api/v1/workspaces/{workspace['id']}/problem-statements",
            json={"title": "Churn de assinantes", "constraints": "orçamento"},
            headers=auth_headers,
        )
        assert res.status_code == 400

    @pytest.mark.parametrize("body", [
        {"title": 10},
        {"title": "Churn de assinantes", "narrative": {"texto": "x"}},
        {"title": "Churn de assinantes", "squad_id": "abc"},
    ])
    def test_wrong_types_are_400(self, client, auth_headers, workspace, body):
        res = client.post(f"/api/v1/workspaces/{workspace['id']}/problem-statements",
                          json=body, headers=auth_headers)
        assert res.status_code == 400

    def test_update_non_text_narrative_is_400(self, client, auth_headers, problem_statement):
        res = client.patch(f"/api/v1/problem-statements/{problem_statement['id']}",
                           json={"narrative": ["a"]}, headers=auth_headers)
        assert res.status_code == 400
        assert res.get_json()["details"] == {"narrative": "string"}

    def test_blank_list_items_dropped(self, client, auth_headers, workspace):
        res = client.post(
            f"/api/v1/workspaces/{workspace['id']}/problem-statements",
            json={"title": "Churn de assinantes", "assumptions": [" Preço ", "", None]},
            headers=auth_headers,
        )
        assert res.get_json()["assumptions"] == ["Preço"]

    def test_second_statement_for_squad_is_409(self, client, auth_headers, workspace, squad, problem_statement):
        res = client.post(
            f"/api/v1/workspaces/{workspace['id']}/problem-statements",
            json={"title": "Outro problema da busca", "squad_id": squad["id"]},
            headers=auth_headers,
        )
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONFLICT_DUPLICATE"

    def test_squad_from_other_workspace_is_400(self, client, auth_headers, workspace):
        other_ws = client.post("/api/v1/workspaces", json={"name": "Logística"}, headers=auth_headers).get_json()
        other_squad = client.post(
            f"/api/v1/workspaces/{other_ws['id']}/squads", json={"name": "Squad Frete"}, headers=auth_headers,
        ).get_json()
        res = client.post(
            f"/api/v1/workspaces/{workspace['id']}/problem-statements",
            json={"title": "Frete caro demais", "squad_id": other_squad["id"]},
            headers=auth_headers,
        )
        assert res.status_code == 400

    def test_list_filter_by_squad(self, client, auth_headers, workspace, squad, problem_statement):
        client.post(
            f"/api/v1/workspaces/{workspace['id']}/problem-statements",
            json={"title": "Churn de assinantes"},
            headers=auth_headers,
        )
        url = f"/api/v1/workspaces/{workspace['id']}/problem-statements"
        assert len(client.get(url, headers=auth_headers).get_json()) == 2
        filtered = client.get(f"{url}?squad_id={squad['id']}", headers=auth_headers).get_json()
        assert [s["id"] for s in filtered] == [problem_statement["id"]]

    def test_get_for_squad(self, client, auth_headers, squad, problem_statement):
        res = client.get(f"/api/v1/squads/{squad['id']}/problem-statement", headers=auth_headers)
        assert res.status_code == 200
        assert res.get_json()["problem_statement"]["id"] == problem_statement["id"]

    def test_get_for_squad_without_statement(self, client, auth_headers, squad):
        res = client.get(f"/api/v1/squads/{squad['id']}/problem-statement", headers=auth_headers)
        assert res.status_code == 200
        assert res.get_json() == {"problem_statement": None}

    def test_delete(self, client, auth_headers, squad, problem_statement):
        res = client.delete(f"/api/v1/problem-statements/{problem_statement['id']}", headers=auth_headers)
        assert res.status_code == 200
        assert client.get(
            f"/api/v1/problem-statements/{problem_statement['id']}", headers=auth_headers,
        ).status_code == 404
        # The squad is free to receive a new statement
        body = client.get(f"/api/v1/squads/{squad['id']}/problem-statement", headers=auth_headers).get_json()
        assert body["problem_statement"] is None

    def test_non_member_forbidden(self, client, problem_statement, make_user, auth_headers_for):
        stranger = make_user(name="Bruno Reis", email="bruno@squads.com.br")
        res = client.get(
            f"/api/v1/problem-statements/{problem_statement['id']}", headers=auth_headers_for(stranger),
        )
        assert res.status_code == 403


class TestQuality:
    def test_fixture_statement_needs_improvement(self, problem_statement):
        quality = problem_statement["quality"]
        assert quality["status"] == "needs_improvement"
        assert any("narrativa" in issue for issue in quality["issues"])
        assert quality["suggestions"] == []

    def test_complete_statement_is_good(self, client, auth_headers, workspace):
        res = client.post(
            f"/api/v1/workspaces/{workspace['id']}/problem-statements",
            json={
                "title": "Clientes não encontram produtos na busca",
                "narrative": LONG_NARRATIVE,
                "success_metrics": ["Buscas sem resultado abaixo de 5%"],
                "constraints": ["Sem novo time de dados"],
                "open_questions": ["Sinônimos resolvem?"],
            },
            headers=auth_headers,
        )
        quality = res.get_json()["quality"]
        assert quality["status"] == "good"
        assert quality["issues"] == []

    def test_missing_metrics_and_suggestions(self):
        statement = ProblemStatement(title="Churn alto de assinantes", narrative=LONG_NARRATIVE,
                                     success_metrics=[], constraints=[], open_questions=[])
        quality = assess_quality(statement)
        assert quality["status"] == "needs_improvement"
        assert quality["issues"] == ["Defina ao menos uma métrica de sucesso."]
        assert len(quality["suggestions"]) == 2

    def test_short_title(self):
        statement = ProblemStatement(title="Churn", narrative=LONG_NARRATIVE,
                                     success_metrics=["NPS"], constraints=["x"], open_questions=["y"])
        assert assess_quality(statement)["issues"] == ["O título deve ter pelo menos 10 caracteres."]


class TestUpdateHistory:
    def test_update_records_decision(self, client, auth_headers, squad, problem_statement, user):
        res = client.patch(
            f"/api/v1/problem-statements/{problem_statement['id']}",
            json={"narrative": LONG_NARRATIVE},
            headers=auth_headers,
        )
        assert res.status_code == 200
        assert res.get_json()["narrative"] == LONG_NARRATIVE

        decisions = _decisions(client, auth_headers, squad["id"], "problem_statement")
        assert len(decisions) == 1
        payload = decisions[0]["decision"]
        assert payload["problem_statement_id"] == problem_statement["id"]
        assert payload["before"]["narrative"] == problem_statement["narrative"]
        assert payload["after"]["narrative"] == LONG_NARRATIVE
        assert decisions[0]["created_by_user_id"] == user.id

    def test_noop_update_records_nothing(self, client, auth_headers, squad, problem_statement):
        client.patch(
            f"/api/v1/problem-statements/{problem_statement['id']}",
            json={"title": problem_statement["title"]},
            headers=auth_headers,
        )
        assert _decisions(client, auth_headers, squad["id"]) == []

    def test_standalone_update_records_nothing(self, client, auth_headers, workspace, squad):
        statement = client.post(
            f"/api/v1/workspaces/{workspace['id']}/problem-statements",
            json={"title": "Churn de assinantes"},
            headers=auth_headers,
        ).get_json()
        client.patch(f"/api/v1/problem-statements/{statement['id']}",
                     json={"narrative": "Mais contexto"}, headers=auth_headers)
        assert _decisions(client, auth_headers, squad["id"]) == []

    def test_attach_to_squad(self, client, auth_headers, workspace, squad):
        statement = client.post(
            f"/api/v1/workspaces/{workspace['id']}/problem-statements",
            json={"title": "Churn de assinantes"},
            headers=auth_headers,
        ).get_json()
        res = client.patch(f"/api/v1/problem-statements/{statement['id']}",
                           json={"squad_id": squad["id"]}, headers=auth_headers)
        assert res.status_code == 200
        assert res.get_json()["squad_id"] == squad["id"]

        decisions = _decisions(client, auth_headers, squad["id"])
        assert decisions[0]["decision"]["before"]["squad_id"] is None
        assert decisions[0]["decision"]["after"]["squad_id"] == squad["id"]

    def test_move_to_taken_squad_is_409(self, client, auth_headers, workspace, squad, problem_statement):
        statement = client.post(
            f"/api/v1/workspaces/{workspace['id']}/problem-statements",
            json={"title": "Churn de assinantes"},
            headers=auth_headers,
        ).get_json()
        res = client.patch(f"/api/v1/problem-statements/{statement['id']}",
                           json={"squad_id": squad["id"]}, headers=auth_headers)
        assert res.status_code == 409

    def test_blank_title_rejected(self, client, auth_headers, problem_statement):
        res = client.patch(f"/api/v1/problem-statements/{problem_statement['id']}",
                           json={"title": "  "}, headers=auth_headers)
        assert res.status_code == 400
