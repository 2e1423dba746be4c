from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from gestao.db import Base
from gestao.models import SerializavelMixin, TimestampMixin


class PerfilUsuario(enum.Enum):
    MASTER = "master"
    GERENTE = "gerente"
    SECRETARIA = "secretaria"
    USER = "user"


class Usuario(SerializavelMixin, TimestampMixin, Base):
    """
    Usuário da aplicação.
    - email único (login)
    - senha guardada como hash bcrypt (passlib)
    """
    __tablename__ = "usuarios"
    __ocultos__ = ("senha",)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    nome: Mapped[str] = mapped_column(String(120), nullable=False)
    email: Mapped[str] = mapped_column(String(120), unique=True, nullable=False)
    senha: Mapped[str] = mapped_column(String(255), nullable=False)
    perfil: Mapped[PerfilUsuario] = mapped_column(Enum(PerfilUsuario), default=PerfilUsuario.USER, nullable=False)

    ativo: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    ultimo_login: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
