"""Testes de agenda, atendimento e histórico"""
from datetime import date, datetime

import pytest

from gestao.erros import NaoEncontrado
from gestao.services import (
    atualiza_status_agendamento,
    cria_agendamento,
    cria_evento_historico,
    historico_diario,
    lista_agenda,
    lista_historico,
    registra_atendimento,
)

QUANDO = datetime(2026, 3, 10, 14, 30)


@pytest.fixture
def agendamento(cliente, consultor, servico):
    return cria_agendamento(cliente["id"], consultor["id"], servico["id"], QUANDO)


class TestAgendamento:
    def test_valor_padrao_e_comissao(self, agendamento):
        assert agendamento["valor_servico"] == 150.0
        assert agendamento["comissao_consultor"] == 15.0
        assert agendamento["status"] == "agendado"

    def test_valor_informado(self, cliente, consultor, servico):
        a = cria_agendamento(cliente["id"], consultor["id"], servico["id"], QUANDO, valor_servico=99.99)
        assert a["valor_servico"] == 99.99
        # 9,999 arredonda para 10,00
        assert a["comissao_consultor"] == 10.0

    def test_referencias_invalidas(self, cliente, servico):
        with pytest.raises(ValueError, match="Consultor inválido"):
            cria_agendamento(cliente["id"], 999, servico["id"], QUANDO)

    def test_valor_negativo(self, cliente, consultor, servico):
        with pytest.raises(ValueError):
            cria_agendamento(cliente["id"], consultor["id"], servico["id"], QUANDO, valor_servico=-1)

    def test_lista_com_nomes_e_filtros(self, agendamento):
        itens = lista_agenda(data_inicio=date(2026, 3, 10), data_fim=date(2026, 3, 10))
        assert len(itens) == 1
        assert itens[0]["cliente_nome"] == "Maria da Silva"
        assert itens[0]["servico_nome"] == "Limpeza de pele"
        assert lista_agenda(data_inicio=date(2026, 3, 11)) == []
        assert lista_agenda(status="cancelado") == []

    def test_status(self, agendamento):
        assert atualiza_status_agendamento(agendamento["id"], "confirmado")["status"] == "confirmado"
        with pytest.raises(ValueError, match="Status de agenda inválido"):
            atualiza_status_agendamento(agendamento["id"], "sumido")
        with pytest.raises(NaoEncontrado):
            atualiza_status_agendamento(999, "confirmado")


class TestAtendimento:
    def test_registra_e_conclui(self, agendamento):
        h = registra_atendimento(agendamento["id"], data_atendimento=QUANDO, procedimentos_realizados="Limpeza")
        assert h["valor_final"] == 150.0
        assert h["comissao_consultor"] == 15.0
        assert h["tipo"] == "atendimento"
        assert lista_agenda()[0]["status"] == "concluido"

    def test_nao_registra_duas_vezes(self, agendamento):
        registra_atendimento(agendamento["id"])
        with pytest.raises(ValueError, match="já registrado"):
            registra_atendimento(agendamento["id"])

    def test_cancelado_nao_atende(self, agendamento):
        atualiza_status_agendamento(agendamento["id"], "cancelado")
        with pytest.raises(ValueError, match="cancelado"):
            registra_atendimento(agendamento["id"])

    def test_historico_diario(self, cliente, consultor, servico):
        a1 = cria_agendamento(cliente["id"], consultor["id"], servico["id"], QUANDO)
        a2 = cria_agendamento(cliente["id"], consultor["id"], servico["id"], QUANDO.replace(hour=16))
        registra_atendimento(a1["id"], data_atendimento=QUANDO, valor_final=120)
        registra_atendimento(a2["id"], data_atendimento=QUANDO.replace(hour=16))
        cria_evento_historico(cliente["id"], "contato", "Ligou para remarcar", data_evento=QUANDO)

        dia = historico_diario(date(2026, 3, 10))
        assert dia["quantidade"] == 2
        assert dia["valor_total"] == 270.0
        assert dia["comissao_total"] == 30.0
        assert len(lista_historico(cliente_id=cliente["id"])) == 3

    def test_evento_exige_tipo(self, cliente):
        with pytest.raises(ValueError):
            cria_evento_historico(cliente["id"], "")


class TestAgendaApi:
    def test_fluxo_completo(self, client, auth_headers, cliente, consultor, servico):
        r = client.post(
            "/api/agenda",
            json={
                "cliente_id": cliente["id"],
                "consultor_id": consultor["id"],
                "servico_id": servico["id"],
                "data_agendamento": "2026-03-10T14:30:00",
            },
            headers=auth_headers,
        )
        assert r.status_code == 201
        aid = r.json()["data"]["id"]

        r = client.patch(f"/api/agenda/{aid}/status", json={"status": "confirmado"}, headers=auth_headers)
        assert r.json()["data"]["status"] == "confirmado"

        r = client.post(f"/api/agenda/{aid}/atendimento", json={"valor_final": 140}, headers=auth_headers)
        assert r.status_code == 201
        assert r.json()["data"]["valor_final"] == 140.0

        r = client.get("/api/historico/diario", params={"dia": "2026-03-10"}, headers=auth_headers)
        # data_atendimento padrão é agora, não o dia do agendamento
        assert r.status_code == 200

        r = client.get("/api/historico", params={"cliente_id": cliente["id"]}, headers=auth_headers)
        assert len(r.json()["data"]) == 1

    def test_payload_invalido(self, client, auth_headers):
        r = client.post("/api/agenda", json={"cliente_id": 1}, headers=auth_headers)
        assert r.status_code == 422
        assert r.json()["success"] is False
