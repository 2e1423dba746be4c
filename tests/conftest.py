"""Fixtures comuns: banco SQLite temporário recriado a cada teste."""
import os
import tempfile
from decimal import Decimal
from pathlib import Path

import pytest

# precisa vir antes de qualquer import de gestao (config lê o ambiente no import)
_TMP = Path(tempfile.mkdtemp(prefix="cadastro_facil_"))
os.environ["DATABASE_URL"] = f"sqlite:///{_TMP / 'test.sqlite'}"
os.environ.setdefault("JWT_SECRET", "segredo-de-teste")
os.environ.setdefault("DB_CONNECT_RETRIES", "1")

from fastapi.testclient import TestClient  # noqa: E402

from gestao.api_main import app  # noqa: E402
from gestao.auth_security import create_access_token  # noqa: E402
from gestao.auth_service import cria_usuario, garante_master_admin  # noqa: E402
from gestao.db import Base, engine  # noqa: E402
from gestao.seed import seed_base  # noqa: E402
from gestao.services import cria_cadastro, cria_cliente, init_db  # noqa: E402


@pytest.fixture(autouse=True)
def banco():
    """Schema limpo + dados base (sem master, o hash bcrypt é lento)."""
    Base.metadata.drop_all(bind=engine)
    init_db()
    seed_base(com_master=False)
    yield


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def master():
    return garante_master_admin("master@teste.com", "senha-master", "Master Teste")


def headers_para(usuario: dict) -> dict:
    return {"Authorization": f"Bearer {create_access_token(subject=str(usuario['id']))}"}


@pytest.fixture
def auth_headers(master):
    return headers_para(master)


@pytest.fixture
def usuario_factory():
    def _cria(perfil: str, email: str | None = None) -> dict:
        return cria_usuario(f"Usuário {perfil}", email or f"{perfil}@teste.com", "senha123", perfil)

    return _cria


@pytest.fixture
def consultor():
    return cria_cadastro("consultores", {"nome": "Ana Consultora", "percentual_comissao": Decimal("10")})


@pytest.fixture
def servico():
    return cria_cadastro("servicos", {"nome": "Limpeza de pele", "preco": Decimal("150.00"), "duracao_minutos": 60})


@pytest.fixture
def cliente():
    return cria_cliente({"nome": "Maria da Silva", "email": "maria@exemplo.com", "telefone": "+5511999990000", "cidade": "São Paulo"})
