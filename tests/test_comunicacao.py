"""Testes de templates, envio pelos provedores, segmentação e campanhas"""
from datetime import date
from unittest.mock import Mock, patch

import pytest
import requests

from gestao.comunicacao import (
    ResultadoEnvio,
    aniversariantes,
    cria_campanha,
    cria_campanha_automatica,
    cria_configuracao,
    cria_template,
    envia_mensagem,
    executa_campanha,
    executa_campanhas_automaticas,
    lista_campanhas,
    lista_comunicacoes,
    renderiza_template,
    segmenta_clientes,
    testa_configuracao as dispara_teste_configuracao,
)
from gestao.erros import NaoEncontrado
from gestao.models import CanalComunicacao, ConfiguracaoComunicacao
from gestao.services import cria_cadastro, cria_cliente, lista_cadastro


def _config(tipo: CanalComunicacao, provider: str, **kwargs) -> ConfiguracaoComunicacao:
    kwargs.setdefault("configuracoes_extras", {})
    return ConfiguracaoComunicacao(tipo_servico=tipo, provider=provider, ativo=True, **kwargs)


def _resposta(ok: bool = True, json_data: dict | None = None, headers: dict | None = None, text: str = "") -> Mock:
    resp = Mock()
    resp.ok = ok
    resp.json.return_value = json_data or {}
    resp.headers = headers or {}
    resp.text = text
    return resp


class TestTemplates:
    def test_troca_variaveis_conhecidas(self):
        texto = renderiza_template("Olá {{primeiro_nome}}! Cupom: {{ cupom }} {{nada}}", {"primeiro_nome": "Maria", "cupom": "ANIV10", "nada": None})
        assert texto == "Olá Maria! Cupom: ANIV10 {{nada}}"

    def test_sem_placeholders(self):
        assert renderiza_template("Texto fixo", {"nome": "X"}) == "Texto fixo"


class TestProvedores:
    @patch("gestao.comunicacao.requests.post")
    def test_sendgrid(self, mock_post):
        mock_post.return_value = _resposta(headers={"X-Message-Id": "sg-1"})
        config = _config(CanalComunicacao.EMAIL, "SendGrid", api_key="chave", configuracoes_extras={"from_email": "loja@x.com"})

        r = envia_mensagem(config, "cliente@x.com", "Oi", "Mensagem")

        assert r.sucesso and r.external_id == "sg-1"
        args, kwargs = mock_post.call_args
        assert args[0] == "https://api.sendgrid.com/v3/mail/send"
        assert kwargs["headers"]["Authorization"] == "Bearer chave"
        assert kwargs["json"]["from"]["email"] == "loja@x.com"
        assert "timeout" in kwargs

    @patch("gestao.comunicacao.requests.post")
    def test_twilio_sem_credenciais(self, mock_post):
        r = envia_mensagem(_config(CanalComunicacao.SMS, "Twilio"), "+5511999990000", None, "Oi")
        assert not r.sucesso
        assert r.erro == "Credenciais Twilio incompletas"
        mock_post.assert_not_called()

    @patch("gestao.comunicacao.requests.post")
    def test_twilio(self, mock_post):
        mock_post.return_value = _resposta(json_data={"sid": "SM123"})
        config = _config(CanalComunicacao.SMS, "Twilio", api_secret="token", configuracoes_extras={"account_sid": "AC1"})

        r = envia_mensagem(config, "+5511999990000", None, "Oi")

        assert r.external_id == "SM123"
        assert mock_post.call_args.kwargs["auth"] == ("AC1", "token")
        assert "AC1" in mock_post.call_args.args[0]

    @patch("gestao.comunicacao.requests.post")
    def test_whatsapp_erro_da_api(self, mock_post):
        mock_post.return_value = _resposta(ok=False, text="invalid token")
        config = _config(CanalComunicacao.WHATSAPP, "Meta WhatsApp Business", api_key="k", configuracoes_extras={"phone_number_id": "123"})

        r = envia_mensagem(config, "5511999990000", None, "Oi")

        assert not r.sucesso
        assert r.erro == "Meta API Error: invalid token"

    @patch("gestao.comunicacao.requests.post", side_effect=requests.ConnectionError("sem rede"))
    def test_falha_de_rede_vira_resultado(self, mock_post):
        config = _config(CanalComunicacao.EMAIL, "SendGrid", api_key="k")
        r = envia_mensagem(config, "a@b.com", "x", "y")
        assert not r.sucesso
        assert "sem rede" in r.erro

    @patch("gestao.comunicacao.requests.post")
    def test_provedor_simulado(self, mock_post):
        r = envia_mensagem(_config(CanalComunicacao.EMAIL, "Outro"), "a@b.com", "x", "y")
        assert r.sucesso
        assert r.external_id.startswith("email_test_")
        mock_post.assert_not_called()


class TestTesteConfiguracao:
    def test_registra_comunicacao(self):
        c = cria_configuracao({"tipo_servico": "sms", "provider": "Simulado"})
        r = dispara_teste_configuracao(c["id"], "+5511999990000", "Teste")
        assert r.sucesso
        enviados = lista_comunicacoes(tipo="sms")
        assert len(enviados) == 1
        assert enviados[0]["status"] == "entregue"

    def test_inativa_e_inexistente(self):
        c = cria_configuracao({"tipo_servico": "email", "provider": "SendGrid", "ativo": False})
        with pytest.raises(ValueError, match="inativa"):
            dispara_teste_configuracao(c["id"], "a@b.com", "x")
        with pytest.raises(NaoEncontrado):
            dispara_teste_configuracao(999, "a@b.com", "x")

    def test_segredo_nao_sai_no_dict(self):
        c = cria_configuracao({"tipo_servico": "sms", "provider": "Twilio", "api_secret": "s3gr3d0"})
        assert "api_secret" not in c

    def test_campos_obrigatorios(self):
        with pytest.raises(ValueError, match="provider"):
            cria_configuracao({"tipo_servico": "sms"})
        with pytest.raises(ValueError, match="inválido"):
            cria_configuracao({"tipo_servico": "fax", "provider": "X"})


class TestSegmentacao:
    def test_filtros(self):
        vip = next(c for c in lista_cadastro("categorias") if c["nome"] == "VIP")
        cria_cliente({"nome": "Ana", "categoria_id": vip["id"], "data_nascimento": date(1990, 5, 20), "cidade": "Recife"})
        cria_cliente({"nome": "Beto", "data_nascimento": date(2010, 5, 2), "cidade": "Recife"})
        cria_cliente({"nome": "Caio", "data_nascimento": date(1985, 8, 1), "recebe_email": False})
        cria_cliente({"nome": "Inativo", "data_nascimento": date(1990, 5, 1), "ativo": False})

        hoje = date(2026, 6, 1)
        assert segmenta_clientes({"categoria_id": [vip["id"]]}, hoje)[0] == 1
        total, clientes = segmenta_clientes({"aniversario_mes": [5]}, hoje)
        assert [c["nome"] for c in clientes] == ["Ana", "Beto"]
        assert segmenta_clientes({"aniversario_mes": [5], "idade_minima": 18}, hoje)[0] == 1
        assert segmenta_clientes({"cidade": ["Recife"], "idade_maxima": 20}, hoje)[1][0]["nome"] == "Beto"
        assert segmenta_clientes({"recebe_email": True}, hoje)[0] == 2


class TestAniversariantes:
    def test_29_de_fevereiro_em_ano_nao_bissexto(self):
        cria_cliente({"nome": "Bissexto", "data_nascimento": date(2000, 2, 29)})
        cria_cliente({"nome": "Normal", "data_nascimento": date(1999, 2, 28)})

        assert [c["nome"] for c in aniversariantes(referencia=date(2027, 2, 28))] == ["Bissexto", "Normal"]
        assert [c["nome"] for c in aniversariantes(referencia=date(2028, 2, 28))] == ["Normal"]
        assert [c["nome"] for c in aniversariantes(referencia=date(2028, 2, 29))] == ["Bissexto"]

    def test_viradas_de_seculo(self):
        cria_cliente({"nome": "Bissexto", "data_nascimento": date(1996, 2, 29)})
        # 2100 não é bissexto; 2400 é
        assert [c["nome"] for c in aniversariantes(referencia=date(2100, 2, 28))] == ["Bissexto"]
        assert aniversariantes(referencia=date(2400, 2, 28)) == []

    def test_dias_antes(self):
        cria_cliente({"nome": "Amanhã", "data_nascimento": date(1990, 7, 11)})
        assert len(aniversariantes(dias_antes=1, referencia=date(2026, 7, 10))) == 1
        assert aniversariantes(referencia=date(2026, 7, 10)) == []


class TestCampanhas:
    @pytest.fixture
    def template(self):
        return cria_template({"nome": "Promo", "tipo": "email", "assunto": "Oi {{primeiro_nome}}", "conteudo": "Olá {{nome}}, temos novidades!"})

    def test_executa_campanha(self, template):
        cria_configuracao({"tipo_servico": "email", "provider": "Simulado"})
        cria_cliente({"nome": "Ana Lima", "email": "ana@x.com"})
        cria_cliente({"nome": "Sem Optin", "email": "no@x.com", "recebe_email": False})
        cria_cliente({"nome": "Sem Email"})
        camp = cria_campanha({"nome": "Junho", "tipo_comunicacao": "email", "template_id": template["id"], "filtros": {}})

        r = executa_campanha(camp["id"])

        assert r["status"] == "finalizada"
        assert (r["total_destinatarios"], r["total_enviados"], r["total_sucesso"], r["total_erro"]) == (1, 1, 1, 0)
        enviada = lista_comunicacoes()[0]
        assert enviada["conteudo"] == "Olá Ana Lima, temos novidades!"
        assert enviada["assunto"] == "Oi Ana"
        assert enviada["campanha_id"] == camp["id"]

        with pytest.raises(ValueError, match="finalizada"):
            executa_campanha(camp["id"])

    def test_sem_configuracao_ativa(self, template):
        cria_cliente({"nome": "Ana", "email": "ana@x.com"})
        camp = cria_campanha({"nome": "X", "tipo_comunicacao": "email", "template_id": template["id"]})

        r = executa_campanha(camp["id"])

        assert (r["total_destinatarios"], r["total_enviados"], r["total_erro"]) == (1, 0, 1)
        assert lista_comunicacoes(status="erro")[0]["erro_detalhe"] == "Nenhuma configuração ativa para email"

    def test_banco_livre_durante_o_envio(self, template):
        cria_configuracao({"tipo_servico": "email", "provider": "Simulado"})
        cria_cliente({"nome": "Ana Lima", "email": "ana@x.com"})
        camp = cria_campanha({"nome": "Junho", "tipo_comunicacao": "email", "template_id": template["id"]})
        vistos = []

        def _envia(config, destinatario, assunto, mensagem):
            # outra escrita no meio do envio não pode esbarrar em lock
            cria_cadastro("origens", {"nome": "Durante o envio"})
            vistos.append(lista_campanhas()[0]["status"])
            return ResultadoEnvio(True, "ext-1")

        with patch("gestao.comunicacao.envia_mensagem", side_effect=_envia):
            r = executa_campanha(camp["id"])

        assert vistos == ["executando"]
        assert r["status"] == "finalizada"
        assert r["total_sucesso"] == 1
        assert "Durante o envio" in [o["nome"] for o in lista_cadastro("origens")]

    def test_falha_no_envio_restaura_status(self, template):
        cria_configuracao({"tipo_servico": "email", "provider": "Simulado"})
        cria_cliente({"nome": "Ana Lima", "email": "ana@x.com"})
        camp = cria_campanha({"nome": "Junho", "tipo_comunicacao": "email", "template_id": template["id"], "status": "agendada"})

        with patch("gestao.comunicacao.envia_mensagem", side_effect=RuntimeError("provedor caiu")):
            with pytest.raises(RuntimeError):
                executa_campanha(camp["id"])

        assert lista_campanhas()[0]["status"] == "agendada"
        assert lista_comunicacoes() == []

    def test_campanha_sem_template(self):
        camp = cria_campanha({"nome": "X", "tipo_comunicacao": "sms"})
        with pytest.raises(ValueError, match="sem template"):
            executa_campanha(camp["id"])

    def test_automatica_de_aniversario(self):
        t = cria_template({"nome": "Aniversário", "tipo": "whatsapp", "conteudo": "Parabéns, {{primeiro_nome}}!"})
        cria_configuracao({"tipo_servico": "whatsapp", "provider": "Simulado"})
        cria_campanha_automatica({"nome": "Parabéns", "tipo_trigger": "aniversario", "template_id": t["id"]})
        cria_cliente({"nome": "Rita Alves", "telefone": "+5581988887777", "data_nascimento": date(1980, 9, 15)})
        cria_cliente({"nome": "Outro", "telefone": "+5581911112222", "data_nascimento": date(1980, 9, 16)})

        resultados = executa_campanhas_automaticas(date(2026, 9, 15))

        assert resultados[0]["sucesso"] == 1
        assert lista_comunicacoes(tipo="whatsapp")[0]["conteudo"] == "Parabéns, Rita!"


class TestComunicacaoApi:
    def test_segmentacao_e_campanha(self, client, auth_headers, cliente):
        r = client.post("/api/comunicacao/segmentacao", json={"cidade": ["São Paulo"]}, headers=auth_headers)
        assert r.json()["total"] == 1

        t = client.post(
            "/api/comunicacao/templates",
            json={"nome": "T", "tipo": "email", "conteudo": "Oi {{nome}}"},
            headers=auth_headers,
        ).json()["data"]
        client.post("/api/comunicacao/configuracoes", json={"tipo_servico": "email", "provider": "Simulado"}, headers=auth_headers)
        camp = client.post(
            "/api/comunicacao/campanhas",
            json={"nome": "C", "tipo_comunicacao": "email", "template_id": t["id"], "filtros": {"cidade": ["São Paulo"]}},
            headers=auth_headers,
        ).json()["data"]
        assert camp["filtros"] == {"cidade": ["São Paulo"]}

        r = client.post(f"/api/comunicacao/campanhas/{camp['id']}/executar", headers=auth_headers)
        assert r.json()["data"]["total_sucesso"] == 1

        r = client.get("/api/comunicacao/historico", params={"status": "entregue"}, headers=auth_headers)
        assert r.json()["data"][0]["cliente_nome"] == "Maria da Silva"

    def test_testar_configuracao(self, client, auth_headers):
        c = client.post("/api/comunicacao/configuracoes", json={"tipo_servico": "sms", "provider": "Simulado"}, headers=auth_headers).json()["data"]
        r = client.post("/api/comunicacao/testar", json={"config_id": c["id"], "destinatario": "+55", "mensagem": "oi"}, headers=auth_headers)
        assert r.json()["success"] is True
        assert r.json()["data"]["id"].startswith("sms_test_")

    def test_status_de_execucao_nao_e_editavel(self, client, auth_headers):
        camp = client.post("/api/comunicacao/campanhas", json={"nome": "C", "tipo_comunicacao": "sms"}, headers=auth_headers).json()["data"]

        for status_ in ("executando", "finalizada"):
            r = client.put(f"/api/comunicacao/campanhas/{camp['id']}", json={"status": status_}, headers=auth_headers)
            assert r.status_code == 422
        r = client.post("/api/comunicacao/campanhas", json={"nome": "D", "tipo_comunicacao": "sms", "status": "finalizada"}, headers=auth_headers)
        assert r.status_code == 422

        r = client.put(f"/api/comunicacao/campanhas/{camp['id']}", json={"status": "cancelada"}, headers=auth_headers)
        assert r.json()["data"]["status"] == "cancelada"

    def test_nulo_em_campo_obrigatorio(self, client, auth_headers):
        t = client.post("/api/comunicacao/templates", json={"nome": "T", "tipo": "email", "conteudo": "Oi"}, headers=auth_headers).json()["data"]
        camp = client.post("/api/comunicacao/campanhas", json={"nome": "C", "tipo_comunicacao": "email"}, headers=auth_headers).json()["data"]

        r = client.put(f"/api/comunicacao/templates/{t['id']}", json={"conteudo": None}, headers=auth_headers)
        assert r.status_code == 400
        assert r.json() == {"success": False, "error": "conteudo não pode ser nulo"}

        r = client.put(f"/api/comunicacao/campanhas/{camp['id']}", json={"nome": None}, headers=auth_headers)
        assert r.status_code == 400
        assert r.json()["error"] == "nome não pode ser nulo"
        assert client.get("/api/comunicacao/campanhas", headers=auth_headers).json()["data"][0]["nome"] == "C"
