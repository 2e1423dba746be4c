from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from gestao.auth_models import PerfilUsuario, Usuario
from gestao.auth_security import hash_password, verify_password
from gestao.config import MASTER_EMAIL, MASTER_NOME, MASTER_PASSWORD
from gestao.db import db_session
from gestao.erros import NaoEncontrado, SemPermissao

logger = logging.getLogger(__name__)

# Matriz de permissões por perfil
PERMISSOES: dict[PerfilUsuario, dict[str, bool]] = {
    PerfilUsuario.MASTER: {
        "canManageUsers": True,
        "canManageSettings": True,
        "canViewReports": True,
        "canManagePayments": True,
        "canDeleteRecords": True,
    },
    PerfilUsuario.GERENTE: {
        "canManageUsers": True,
        "canManageSettings": True,
        "canViewReports": True,
        "canManagePayments": True,
        "canDeleteRecords": False,
    },
    PerfilUsuario.SECRETARIA: {
        "canManageUsers": False,
        "canManageSettings": False,
        "canViewReports": True,
        "canManagePayments": True,
        "canDeleteRecords": False,
    },
    PerfilUsuario.USER: {
        "canManageUsers": False,
        "canManageSettings": False,
        "canViewReports": False,
        "canManagePayments": False,
        "canDeleteRecords": False,
    },
}


def tem_permissao(perfil: PerfilUsuario, permissao: str) -> bool:
    return PERMISSOES.get(perfil, {}).get(permissao, False)


def exige_permissao(usuario: Usuario, permissao: str) -> None:
    if not tem_permissao(usuario.perfil, permissao):
        raise SemPermissao(f"Perfil '{usuario.perfil.value}' sem permissão: {permissao}")


def _normaliza_email(email: str) -> str:
    return (email or "").strip().lower()


def _perfil(valor: str | PerfilUsuario) -> PerfilUsuario:
    if isinstance(valor, PerfilUsuario):
        return valor
    try:
        return PerfilUsuario(valor)
    except ValueError:
        raise ValueError(f"Perfil inválido: {valor}") from None


def usuario_publico(u: Usuario) -> dict[str, Any]:
    """Dados do usuário sem o hash da senha."""
    d = u.to_dict()
    d["permissoes"] = PERMISSOES[u.perfil]
    return d


# =========================
# Autenticação
# =========================
def login(email: str, senha: str) -> Usuario | None:
    email = _normaliza_email(email)
    with db_session() as s:
        u = s.execute(select(Usuario).where(Usuario.email == email)).scalar_one_or_none()
        if not u or not u.ativo:
            logger.info("Login recusado (usuário inexistente ou inativo): %s", email)
            return None
        if not verify_password(senha, u.senha):
            logger.info("Login recusado (senha incorreta): %s", email)
            return None
        u.ultimo_login = datetime.utcnow()
        logger.info("Login bem-sucedido: %s", email)
        return u


def get_usuario_ativo(user_id: int) -> Usuario | None:
    with db_session() as s:
        u = s.get(Usuario, user_id)
        if not u or not u.ativo:
            return None
        return u


# =========================
# CRUD usuários
# =========================
def lista_usuarios() -> list[dict[str, Any]]:
    with db_session() as s:
        return [usuario_publico(u) for u in s.scalars(select(Usuario).order_by(Usuario.nome))]


def get_usuario(user_id: int) -> dict[str, Any]:
    with db_session() as s:
        u = s.get(Usuario, user_id)
        if not u:
            raise NaoEncontrado("Usuário não encontrado")
        return usuario_publico(u)


def cria_usuario(nome: str, email: str, senha: str, perfil: str | PerfilUsuario = PerfilUsuario.USER) -> dict[str, Any]:
    email = _normaliza_email(email)
    if not nome or not email or not senha:
        raise ValueError("Nome, email e senha são obrigatórios.")
    p = _perfil(perfil)

    try:
        with db_session() as s:
            u = Usuario(nome=nome.strip(), email=email, senha=hash_password(senha), perfil=p, ativo=True)
            s.add(u)
            s.flush()
            return usuario_publico(u)
    except IntegrityError:
        raise ValueError("Email já está em uso") from None


def atualiza_usuario(
    user_id: int,
    nome: str | None = None,
    email: str | None = None,
    perfil: str | PerfilUsuario | None = None,
    ativo: bool | None = None,
    senha: str | None = None,
) -> dict[str, Any]:
    try:
        with db_session() as s:
            u = s.get(Usuario, user_id)
            if not u:
                raise NaoEncontrado("Usuário não encontrado")
            if nome is not None:
                u.nome = nome.strip()
            if email is not None:
                u.email = _normaliza_email(email)
            if perfil is not None:
                u.perfil = _perfil(perfil)
            if ativo is not None:
                u.ativo = ativo
            # senha só é trocada quando informada
            if senha:
                u.senha = hash_password(senha)
            s.flush()
            return usuario_publico(u)
    except IntegrityError:
        raise ValueError("Email já está em uso") from None


def remove_usuario(user_id: int) -> None:
    try:
        with db_session() as s:
            u = s.get(Usuario, user_id)
            if not u:
                raise NaoEncontrado("Usuário não encontrado")
            s.delete(u)
            s.flush()
    except IntegrityError:
        raise ValueError("Usuário possui registros vinculados: desative em vez de excluir.") from None


def existe_usuario() -> bool:
    with db_session() as s:
        return s.execute(select(Usuario.id).limit(1)).first() is not None


def garante_master_admin(
    email: str = MASTER_EMAIL,
    senha: str = MASTER_PASSWORD,
    nome: str = MASTER_NOME,
    redefine_senha: bool = True,
) -> dict[str, Any]:
    """
    Achou, atualiza; não achou, cria.
    Idempotente: nunca duplica o master.
    Com redefine_senha=False um master existente fica intocado (uso no boot/seed).
    """
    email = _normaliza_email(email)
    with db_session() as s:
        u = s.execute(select(Usuario).where(Usuario.email == email)).scalar_one_or_none()
        if u and not redefine_senha:
            logger.debug("Master admin já existe: %s", email)
        elif u:
            u.nome = nome
            u.senha = hash_password(senha)
            u.perfil = PerfilUsuario.MASTER
            u.ativo = True
            logger.info("Master admin atualizado: %s", email)
        else:
            u = Usuario(nome=nome, email=email, senha=hash_password(senha), perfil=PerfilUsuario.MASTER, ativo=True)
            s.add(u)
            logger.info("Master admin criado: %s", email)
        s.flush()
        return usuario_publico(u)
