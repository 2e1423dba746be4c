"""Testes da CLI (parser e comandos) e dos endpoints públicos"""
from datetime import date
from unittest.mock import patch

import pytest

from gestao import cli
from gestao.db import verificar_conexao
from gestao.services import lista_clientes


class TestCli:
    def test_parser_book(self):
        args = cli.build_parser().parse_args(
            ["book", "--cliente-id", "1", "--consultor-id", "2", "--servico-id", "3", "--quando", "2026-01-14T10:30"]
        )
        assert args.func is cli.cmd_book
        assert (args.cliente_id, args.consultor_id, args.servico_id) == (1, 2, 3)
        assert args.valor is None

    def test_parser_exige_subcomando(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args([])

    def test_add_client_e_list(self, capsys):
        cli.main(["add-client", "--nome", "Paula", "--nascimento", "1992-04-03"])
        assert "Cliente criado" in capsys.readouterr().out
        assert lista_clientes()[0]["data_nascimento"] == date(1992, 4, 3)

        cli.main(["list", "formas-pagamento"])
        assert "Dinheiro" in capsys.readouterr().out

    def test_pay_e_stats(self, capsys):
        cli.main(["pay", "--valor", "80", "--parcelas", "2"])
        cli.main(["stats"])
        out = capsys.readouterr().out
        assert "Movimento 1 lançado: entrada 80.00" in out
        assert "saldo 80.00" in out

    def test_erro_de_dominio_sai_com_codigo_1(self, capsys):
        with pytest.raises(SystemExit) as exc:
            cli.main(["receipt", "--cliente-id", "1", "--valor", "10"])
        assert exc.value.code == 1
        assert "Configure uma empresa ativa" in capsys.readouterr().err

    def test_run_birthdays_dry_run(self, capsys):
        cli.main(["add-client", "--nome", "Dona Rosa", "--nascimento", "1950-12-25"])
        cli.main(["run-birthdays", "--data", "2026-12-25", "--dry-run"])
        out = capsys.readouterr().out
        assert "Aniversariantes: 1" in out
        assert "Dona Rosa" in out


class TestConexao:
    def test_retenta_com_espera_crescente(self):
        esperas = []
        with patch("gestao.db.banco_disponivel", side_effect=[False, False, True]):
            assert verificar_conexao(retries=5, sleep=esperas.append)
        assert esperas == [2.0, 4.0]

    def test_desiste_apos_retries(self):
        esperas = []
        with patch("gestao.db.banco_disponivel", return_value=False):
            assert not verificar_conexao(retries=7, espera_max=10.0, sleep=esperas.append)
        assert esperas == [2.0, 4.0, 6.0, 8.0, 10.0, 10.0]


class TestPublicos:
    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["database"] == "connected"

    def test_health_sem_banco(self, client):
        with patch("gestao.api_main.banco_disponivel", return_value=False):
            r = client.get("/health")
        assert r.status_code == 503
        assert r.json()["status"] == "ERROR"

    def test_api_test(self, client):
        assert client.get("/api/test").json()["message"] == "API funcionando!"

    def test_rota_inexistente_no_envelope(self, client):
        r = client.get("/api/nao-existe")
        assert r.status_code == 404
        assert r.json()["success"] is False

    def test_startup_cria_master(self):
        from fastapi.testclient import TestClient

        from gestao.api_main import app
        from gestao.auth_service import lista_usuarios

        with TestClient(app) as c:
            # já existe usuário: setup fechado
            assert c.get("/api/setup/check-users").status_code == 401
        usuarios = lista_usuarios()
        assert [u["email"] for u in usuarios] == ["master@sistema.com"]

    def test_reinicio_mantem_senha_do_master(self):
        from fastapi.testclient import TestClient

        from gestao.api_main import app
        from gestao.auth_service import atualiza_usuario, login
        from gestao.config import MASTER_EMAIL, MASTER_PASSWORD

        with TestClient(app):
            pass
        master = login(MASTER_EMAIL, MASTER_PASSWORD)
        atualiza_usuario(master.id, senha="nova-senha-forte")

        with TestClient(app):
            pass

        assert login(MASTER_EMAIL, "nova-senha-forte") is not None
        assert login(MASTER_EMAIL, MASTER_PASSWORD) is None
