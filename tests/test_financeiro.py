"""Testes de caixa, parcelas, comissões, recibos e empresa"""
from datetime import date, datetime
from decimal import Decimal

import pytest

from gestao.erros import NaoEncontrado
from gestao.financeiro import (
    cria_recibo,
    dashboard_financeiro,
    divide_parcelas,
    extrato_comissao,
    gera_numero_recibo,
    get_configuracao_empresa,
    lista_parcelas,
    lista_recibos,
    lista_tipos_recibo,
    marca_parcela_paga,
    registra_pagamento,
    resumo_caixa,
    salva_configuracao_empresa,
    soma_meses,
)
from gestao.services import atualiza_cliente, lista_cadastro

from conftest import headers_para

DIA = datetime(2026, 1, 31, 10, 0)


@pytest.fixture
def empresa():
    return salva_configuracao_empresa({"nome": "Clínica Bem Estar", "cpf_cnpj": "12.345.678/0001-99", "cidade": "Recife"})


def _forma(nome: str) -> int:
    return next(f["id"] for f in lista_cadastro("formas-pagamento") if f["nome"] == nome)


class TestHelpers:
    def test_divide_parcelas_resto_na_ultima(self):
        assert divide_parcelas(Decimal("100.00"), 3) == [Decimal("33.33"), Decimal("33.33"), Decimal("33.34")]
        assert sum(divide_parcelas(Decimal("10.00"), 7)) == Decimal("10.00")

    def test_soma_meses_fim_do_mes(self):
        assert soma_meses(date(2026, 1, 31), 1) == date(2026, 2, 28)
        assert soma_meses(date(2024, 1, 31), 1) == date(2024, 2, 29)
        assert soma_meses(date(2026, 11, 15), 3) == date(2027, 2, 15)


class TestPagamentos:
    def test_valor_deve_ser_positivo(self):
        with pytest.raises(ValueError, match="maior que zero"):
            registra_pagamento(0)

    def test_tipo_invalido(self):
        with pytest.raises(ValueError, match="Tipo de transação inválido"):
            registra_pagamento(10, tipo_transacao="estorno")

    def test_parcelas_mensais(self, cliente):
        p = registra_pagamento(100, cliente_id=cliente["id"], numero_parcelas=3, data_pagamento=DIA)
        parcelas = lista_parcelas(p["id"])
        assert [x["valor_parcela"] for x in parcelas] == [33.33, 33.33, 33.34]
        assert [x["data_vencimento"] for x in parcelas] == [date(2026, 1, 31), date(2026, 2, 28), date(2026, 3, 31)]
        assert all(x["status"] == "pendente" for x in parcelas)

    def test_pagamento_a_vista_sem_parcelas(self):
        p = registra_pagamento(50, data_pagamento=DIA)
        assert lista_parcelas(p["id"]) == []

    def test_marca_parcela_paga(self):
        p = registra_pagamento(200, numero_parcelas=2, data_pagamento=DIA)
        primeira = lista_parcelas(p["id"])[0]
        paga = marca_parcela_paga(primeira["id"], date(2026, 2, 1))
        assert paga["status"] == "pago"
        assert paga["data_pagamento"] == date(2026, 2, 1)
        with pytest.raises(ValueError, match="já está paga"):
            marca_parcela_paga(primeira["id"])

    def test_parcelas_de_pagamento_inexistente(self):
        with pytest.raises(NaoEncontrado):
            lista_parcelas(999)

    def test_resumo_caixa(self):
        registra_pagamento(100, forma_pagamento_id=_forma("PIX"), data_pagamento=DIA)
        registra_pagamento(50, forma_pagamento_id=_forma("Dinheiro"), data_pagamento=DIA)
        registra_pagamento(30, tipo_transacao="saida", data_pagamento=DIA)
        registra_pagamento(999, status="cancelado", data_pagamento=DIA)
        registra_pagamento(70, data_pagamento=datetime(2026, 2, 5))

        r = resumo_caixa(date(2026, 1, 1), date(2026, 1, 31))
        assert r["total_entradas"] == 150.0
        assert r["total_saidas"] == 30.0
        assert r["saldo"] == 120.0
        assert r["por_forma_pagamento"] == [
            {"forma_pagamento": "Dinheiro", "total": 50.0},
            {"forma_pagamento": "PIX", "total": 100.0},
        ]


class TestComissoes:
    def test_extrato(self, consultor, cliente, servico):
        registra_pagamento(200, consultor_id=consultor["id"], cliente_id=cliente["id"], servico_id=servico["id"], data_pagamento=DIA)
        registra_pagamento(50, consultor_id=consultor["id"], tipo_transacao="saida", data_pagamento=DIA)
        registra_pagamento(80, data_pagamento=DIA)

        e = extrato_comissao(consultor["id"])
        assert len(e["itens"]) == 2
        assert e["total_entradas"] == 20.0
        assert e["total_saidas"] == 5.0
        assert e["saldo"] == 15.0
        assert e["consultor"]["nome"] == "Ana Consultora"

    def test_consultor_inexistente(self):
        with pytest.raises(NaoEncontrado):
            extrato_comissao(999)


class TestEmpresa:
    def test_sem_empresa(self):
        assert get_configuracao_empresa() is None
        with pytest.raises(ValueError, match="Nome da empresa"):
            salva_configuracao_empresa({"cidade": "Recife"})

    def test_upsert_unico(self, empresa):
        atualizada = salva_configuracao_empresa({"telefone": "81 3333-0000", "tipo_pessoa": "fisica"})
        assert atualizada["id"] == empresa["id"]
        assert atualizada["nome"] == "Clínica Bem Estar"
        assert atualizada["tipo_pessoa"] == "fisica"


class TestRecibos:
    def test_exige_empresa(self, cliente):
        with pytest.raises(ValueError, match="Configure uma empresa ativa"):
            cria_recibo(cliente["id"], 100)

    def test_numeracao_sequencial_por_ano(self, empresa, cliente):
        ano = date.today().year
        r1 = cria_recibo(cliente["id"], 100)
        r2 = cria_recibo(cliente["id"], 50)
        assert r1["numero_recibo"] == f"REC-{ano}-000001"
        assert r2["numero_recibo"] == f"REC-{ano}-000002"
        assert gera_numero_recibo(ano + 1) == f"REC-{ano + 1}-000001"

    def test_snapshot_nao_muda(self, empresa, cliente):
        doacao = next(t for t in lista_tipos_recibo() if t["template"] == "doacao")
        r = cria_recibo(cliente["id"], 80, tipo_recibo_id=doacao["id"], descricao="Doação mensal")
        atualiza_cliente(cliente["id"], {"nome": "Maria Alterada"})
        salva_configuracao_empresa({"nome": "Outra Empresa"})

        salvo = lista_recibos(cliente["id"])[0]
        assert salvo["id"] == r["id"]
        assert salvo["dados_cliente"]["nome"] == "Maria da Silva"
        assert salvo["dados_empresa"]["nome"] == "Clínica Bem Estar"
        assert salvo["cliente_nome"] == "Maria Alterada"


class TestDashboard:
    def test_dashboard(self, cliente, consultor, servico):
        from gestao.services import cria_agendamento, registra_atendimento

        a = cria_agendamento(cliente["id"], consultor["id"], servico["id"], DIA)
        registra_atendimento(a["id"], data_atendimento=DIA)
        registra_pagamento(150, data_pagamento=DIA)

        d = dashboard_financeiro(date(2026, 1, 1), date(2026, 1, 31))
        assert d["receita"] == 150.0
        assert d["atendimentos"] == 1
        assert d["por_servico"] == [{"servico": "Limpeza de pele", "atendimentos": 1, "faturamento": 150.0}]


class TestFinanceiroApi:
    def test_pagamento_e_parcelas(self, client, auth_headers):
        r = client.post("/api/pagamentos", json={"valor": 90, "numero_parcelas": 3}, headers=auth_headers)
        assert r.status_code == 201
        pid = r.json()["data"]["id"]

        parcelas = client.get(f"/api/pagamentos/{pid}/parcelas", headers=auth_headers).json()["data"]
        assert [p["valor_parcela"] for p in parcelas] == [30.0, 30.0, 30.0]

        r = client.post(f"/api/parcelas/{parcelas[0]['id']}/pagar", headers=auth_headers)
        assert r.json()["data"]["status"] == "pago"

        r = client.get("/api/pagamentos/resumo", headers=auth_headers)
        assert r.json()["data"]["total_entradas"] == 90.0

    def test_pagamento_exige_permissao(self, client, usuario_factory):
        h = headers_para(usuario_factory("user"))
        assert client.post("/api/pagamentos", json={"valor": 10}, headers=h).status_code == 403

    def test_recibo_api(self, client, auth_headers, cliente):
        r = client.post("/api/recibos", json={"cliente_id": cliente["id"], "valor": 10}, headers=auth_headers)
        assert r.status_code == 400

        r = client.put("/api/configuracao/empresa", json={"nome": "Empresa X"}, headers=auth_headers)
        assert r.json()["data"]["nome"] == "Empresa X"

        r = client.post("/api/recibos", json={"cliente_id": cliente["id"], "valor": 10}, headers=auth_headers)
        assert r.status_code == 201
        rid = r.json()["data"]["id"]
        assert client.get(f"/api/recibos/{rid}", headers=auth_headers).json()["data"]["valor"] == 10.0
