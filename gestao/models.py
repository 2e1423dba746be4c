from __future__ import annotations

import enum
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base


class StatusAgenda(enum.Enum):
    AGENDADO = "agendado"
    CONFIRMADO = "confirmado"
    CANCELADO = "cancelado"
    REALIZADO = "realizado"
    CONCLUIDO = "concluido"


class TipoTransacao(enum.Enum):
    ENTRADA = "entrada"
    SAIDA = "saida"


class StatusPagamento(enum.Enum):
    PENDENTE = "pendente"
    PAGO = "pago"
    CANCELADO = "cancelado"


class TipoPessoa(enum.Enum):
    FISICA = "fisica"
    JURIDICA = "juridica"


class TemplateRecibo(enum.Enum):
    NORMAL = "normal"
    DOACAO = "doacao"


class CanalComunicacao(enum.Enum):
    SMS = "sms"
    EMAIL = "email"
    WHATSAPP = "whatsapp"


class StatusCampanha(enum.Enum):
    RASCUNHO = "rascunho"
    AGENDADA = "agendada"
    EXECUTANDO = "executando"
    FINALIZADA = "finalizada"
    CANCELADA = "cancelada"


class TriggerCampanha(enum.Enum):
    ANIVERSARIO = "aniversario"
    PRIMEIRA_COMPRA = "primeira_compra"
    SEM_MOVIMENTO = "sem_movimento"


class StatusComunicacao(enum.Enum):
    ENVIANDO = "enviando"
    ENVIADO = "enviado"
    ENTREGUE = "entregue"
    LIDO = "lido"
    ERRO = "erro"


def _valor_serializavel(v: Any) -> Any:
    if isinstance(v, enum.Enum):
        return v.value
    if isinstance(v, Decimal):
        return float(v)
    return v


class SerializavelMixin:
    """to_dict() 'flat' das colunas, sem tocar nos relacionamentos (evita lazy-load)."""

    __ocultos__ = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            c.key: _valor_serializavel(getattr(self, c.key))
            for c in self.__table__.columns  # type: ignore[attr-defined]
            if c.key not in self.__ocultos__
        }


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


# =========================
# Cadastros auxiliares
# =========================
class Categoria(SerializavelMixin, TimestampMixin, Base):
    __tablename__ = "categorias"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    nome: Mapped[str] = mapped_column(String(120), nullable=False, unique=True)
    descricao: Mapped[str | None] = mapped_column(Text, nullable=True)
    ativo: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    clientes: Mapped[list["Cliente"]] = relationship(back_populates="categoria")


class Origem(SerializavelMixin, TimestampMixin, Base):
    __tablename__ = "origens"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    nome: Mapped[str] = mapped_column(String(120), nullable=False, unique=True)
    descricao: Mapped[str | None] = mapped_column(Text, nullable=True)
    ativo: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    clientes: Mapped[list["Cliente"]] = relationship(back_populates="origem")


class Servico(SerializavelMixin, TimestampMixin, Base):
    __tablename__ = "servicos"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    nome: Mapped[str] = mapped_column(String(120), nullable=False)
    descricao: Mapped[str | None] = mapped_column(Text, nullable=True)
    preco: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0, nullable=False)
    duracao_minutos: Mapped[int] = mapped_column(Integer, default=60, nullable=False)
    ativo: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class Consultor(SerializavelMixin, TimestampMixin, Base):
    __tablename__ = "consultores"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    nome: Mapped[str] = mapped_column(String(120), nullable=False)
    cpf: Mapped[str | None] = mapped_column(String(14), nullable=True)
    email: Mapped[str | None] = mapped_column(String(120), nullable=True)
    telefone: Mapped[str | None] = mapped_column(String(30), nullable=True)
    endereco: Mapped[str | None] = mapped_column(String(255), nullable=True)
    cidade: Mapped[str | None] = mapped_column(String(120), nullable=True)
    estado: Mapped[str | None] = mapped_column(String(2), nullable=True)
    percentual_comissao: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=0, nullable=False)
    ativo: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class FormaPagamento(SerializavelMixin, TimestampMixin, Base):
    __tablename__ = "formas_pagamento"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    nome: Mapped[str] = mapped_column(String(80), nullable=False, unique=True)
    descricao: Mapped[str | None] = mapped_column(Text, nullable=True)
    ordem: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    ativo: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


# =========================
# Clientes
# =========================
class Cliente(SerializavelMixin, TimestampMixin, Base):
    __tablename__ = "clientes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    nome: Mapped[str] = mapped_column(String(160), nullable=False)
    cpf: Mapped[str | None] = mapped_column(String(14), nullable=True)
    data_nascimento: Mapped[date | None] = mapped_column(Date, nullable=True)
    email: Mapped[str | None] = mapped_column(String(120), nullable=True)
    telefone: Mapped[str | None] = mapped_column(String(30), nullable=True)
    cep: Mapped[str | None] = mapped_column(String(9), nullable=True)
    endereco: Mapped[str | None] = mapped_column(String(255), nullable=True)
    bairro: Mapped[str | None] = mapped_column(String(120), nullable=True)
    cidade: Mapped[str | None] = mapped_column(String(120), nullable=True)
    estado: Mapped[str | None] = mapped_column(String(2), nullable=True)
    categoria_id: Mapped[int | None] = mapped_column(ForeignKey("categorias.id"), nullable=True)
    origem_id: Mapped[int | None] = mapped_column(ForeignKey("origens.id"), nullable=True)
    observacoes: Mapped[str | None] = mapped_column(Text, nullable=True)

    recebe_email: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    recebe_whatsapp: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    recebe_sms: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    ativo: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    categoria: Mapped["Categoria"] = relationship(back_populates="clientes")
    origem: Mapped["Origem"] = relationship(back_populates="clientes")

    def __repr__(self) -> str:
        return f"Cliente({self.nome})"


# =========================
# Agenda e atendimentos
# =========================
class Agenda(SerializavelMixin, TimestampMixin, Base):
    __tablename__ = "agenda"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cliente_id: Mapped[int] = mapped_column(ForeignKey("clientes.id"), nullable=False)
    consultor_id: Mapped[int] = mapped_column(ForeignKey("consultores.id"), nullable=False)
    servico_id: Mapped[int] = mapped_column(ForeignKey("servicos.id"), nullable=False)
    data_agendamento: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    status: Mapped[StatusAgenda] = mapped_column(Enum(StatusAgenda), default=StatusAgenda.AGENDADO, nullable=False)
    observacoes: Mapped[str | None] = mapped_column(Text, nullable=True)
    valor_servico: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0, nullable=False)
    comissao_consultor: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0, nullable=False)


class Historico(SerializavelMixin, TimestampMixin, Base):
    __tablename__ = "historico"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # agenda_id nulo = evento avulso (anotação, contato, ...)
    agenda_id: Mapped[int | None] = mapped_column(ForeignKey("agenda.id"), nullable=True)
    cliente_id: Mapped[int] = mapped_column(ForeignKey("clientes.id"), nullable=False)
    consultor_id: Mapped[int | None] = mapped_column(ForeignKey("consultores.id"), nullable=True)
    servico_id: Mapped[int | None] = mapped_column(ForeignKey("servicos.id"), nullable=True)
    data_agendamento: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    data_atendimento: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    valor_servico: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0, nullable=False)
    valor_final: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    comissao_consultor: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0, nullable=False)
    forma_pagamento_id: Mapped[int | None] = mapped_column(ForeignKey("formas_pagamento.id"), nullable=True)
    procedimentos_realizados: Mapped[str | None] = mapped_column(Text, nullable=True)
    observacoes_atendimento: Mapped[str | None] = mapped_column(Text, nullable=True)
    tipo: Mapped[str] = mapped_column(String(40), default="atendimento", nullable=False)
    descricao: Mapped[str | None] = mapped_column(Text, nullable=True)
    usuario_id: Mapped[int | None] = mapped_column(ForeignKey("usuarios.id"), nullable=True)


# =========================
# Caixa
# =========================
class Pagamento(SerializavelMixin, TimestampMixin, Base):
    __tablename__ = "pagamentos"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    atendimento_id: Mapped[int | None] = mapped_column(ForeignKey("historico.id"), nullable=True)
    cliente_id: Mapped[int | None] = mapped_column(ForeignKey("clientes.id"), nullable=True)
    consultor_id: Mapped[int | None] = mapped_column(ForeignKey("consultores.id"), nullable=True)
    servico_id: Mapped[int | None] = mapped_column(ForeignKey("servicos.id"), nullable=True)
    forma_pagamento_id: Mapped[int | None] = mapped_column(ForeignKey("formas_pagamento.id"), nullable=True)
    valor: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    tipo_transacao: Mapped[TipoTransacao] = mapped_column(Enum(TipoTransacao), default=TipoTransacao.ENTRADA, nullable=False)
    status: Mapped[StatusPagamento] = mapped_column(Enum(StatusPagamento), default=StatusPagamento.PAGO, nullable=False)
    data_pagamento: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    numero_parcelas: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    observacoes: Mapped[str | None] = mapped_column(Text, nullable=True)

    parcelas: Mapped[list["Parcela"]] = relationship(
        back_populates="pagamento", cascade="all, delete-orphan", order_by="Parcela.numero_parcela"
    )


class Parcela(SerializavelMixin, Base):
    __tablename__ = "parcelas"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    pagamento_id: Mapped[int] = mapped_column(ForeignKey("pagamentos.id"), nullable=False)
    numero_parcela: Mapped[int] = mapped_column(Integer, nullable=False)
    valor_parcela: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    data_vencimento: Mapped[date] = mapped_column(Date, nullable=False)
    data_pagamento: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[StatusPagamento] = mapped_column(Enum(StatusPagamento), default=StatusPagamento.PENDENTE, nullable=False)

    pagamento: Mapped["Pagamento"] = relationship(back_populates="parcelas")


class Comissao(SerializavelMixin, Base):
    __tablename__ = "comissoes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    consultor_id: Mapped[int] = mapped_column(ForeignKey("consultores.id"), nullable=False)
    cliente_id: Mapped[int | None] = mapped_column(ForeignKey("clientes.id"), nullable=True)
    servico_id: Mapped[int | None] = mapped_column(ForeignKey("servicos.id"), nullable=True)
    pagamento_id: Mapped[int | None] = mapped_column(ForeignKey("pagamentos.id"), nullable=True)
    tipo_operacao: Mapped[TipoTransacao] = mapped_column(Enum(TipoTransacao), nullable=False)
    valor_servico: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    percentual_comissao: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    valor_comissao: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    data_operacao: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    observacoes: Mapped[str | None] = mapped_column(Text, nullable=True)


# =========================
# Recibos
# =========================
class ConfiguracaoEmpresa(SerializavelMixin, TimestampMixin, Base):
    __tablename__ = "configuracao_empresa"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    nome: Mapped[str] = mapped_column(String(160), nullable=False)
    tipo_pessoa: Mapped[TipoPessoa] = mapped_column(Enum(TipoPessoa), default=TipoPessoa.JURIDICA, nullable=False)
    cpf_cnpj: Mapped[str | None] = mapped_column(String(18), nullable=True)
    endereco: Mapped[str | None] = mapped_column(String(255), nullable=True)
    cidade: Mapped[str | None] = mapped_column(String(120), nullable=True)
    estado: Mapped[str | None] = mapped_column(String(2), nullable=True)
    cep: Mapped[str | None] = mapped_column(String(9), nullable=True)
    telefone: Mapped[str | None] = mapped_column(String(30), nullable=True)
    email: Mapped[str | None] = mapped_column(String(120), nullable=True)
    logo_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    ativo: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class TipoRecibo(SerializavelMixin, Base):
    __tablename__ = "tipos_recibo"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    nome: Mapped[str] = mapped_column(String(80), nullable=False, unique=True)
    template: Mapped[TemplateRecibo] = mapped_column(Enum(TemplateRecibo), default=TemplateRecibo.NORMAL, nullable=False)
    ativo: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class Recibo(SerializavelMixin, TimestampMixin, Base):
    __tablename__ = "recibos"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    numero_recibo: Mapped[str] = mapped_column(String(30), nullable=False, unique=True)
    tipo_recibo_id: Mapped[int | None] = mapped_column(ForeignKey("tipos_recibo.id"), nullable=True)
    pagamento_id: Mapped[int | None] = mapped_column(ForeignKey("pagamentos.id"), nullable=True)
    cliente_id: Mapped[int] = mapped_column(ForeignKey("clientes.id"), nullable=False)
    servico_id: Mapped[int | None] = mapped_column(ForeignKey("servicos.id"), nullable=True)
    consultor_id: Mapped[int | None] = mapped_column(ForeignKey("consultores.id"), nullable=True)
    valor: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    descricao: Mapped[str | None] = mapped_column(Text, nullable=True)
    observacoes: Mapped[str | None] = mapped_column(Text, nullable=True)
    # snapshot no momento da emissão: alterações posteriores não mudam o recibo
    dados_empresa: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    dados_cliente: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)


# =========================
# Comunicação / marketing
# =========================
class ConfiguracaoComunicacao(SerializavelMixin, TimestampMixin, Base):
    __tablename__ = "configuracoes_comunicacao"
    __ocultos__ = ("api_secret",)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tipo_servico: Mapped[CanalComunicacao] = mapped_column(Enum(CanalComunicacao), nullable=False)
    provider: Mapped[str] = mapped_column(String(80), nullable=False)
    api_key: Mapped[str | None] = mapped_column(String(255), nullable=True)
    api_secret: Mapped[str | None] = mapped_column(String(255), nullable=True)
    webhook_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    configuracoes_extras: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    ativo: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class TemplateComunicacao(SerializavelMixin, TimestampMixin, Base):
    __tablename__ = "templates_comunicacao"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    nome: Mapped[str] = mapped_column(String(120), nullable=False)
    tipo: Mapped[CanalComunicacao] = mapped_column(Enum(CanalComunicacao), nullable=False)
    assunto: Mapped[str | None] = mapped_column(String(255), nullable=True)
    conteudo: Mapped[str] = mapped_column(Text, nullable=False)
    variaveis: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    ativo: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class CampanhaMarketing(SerializavelMixin, TimestampMixin, Base):
    __tablename__ = "campanhas_marketing"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    nome: Mapped[str] = mapped_column(String(160), nullable=False)
    descricao: Mapped[str | None] = mapped_column(Text, nullable=True)
    tipo_comunicacao: Mapped[CanalComunicacao] = mapped_column(Enum(CanalComunicacao), nullable=False)
    template_id: Mapped[int | None] = mapped_column(ForeignKey("templates_comunicacao.id"), nullable=True)
    filtros: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    data_agendamento: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    data_execucao: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    status: Mapped[StatusCampanha] = mapped_column(Enum(StatusCampanha), default=StatusCampanha.RASCUNHO, nullable=False)
    total_destinatarios: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_enviados: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_sucesso: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_erro: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    ativo: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class CampanhaAutomatica(SerializavelMixin, TimestampMixin, Base):
    __tablename__ = "campanhas_automaticas"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    nome: Mapped[str] = mapped_column(String(160), nullable=False)
    tipo_trigger: Mapped[TriggerCampanha] = mapped_column(Enum(TriggerCampanha), nullable=False)
    template_id: Mapped[int] = mapped_column(ForeignKey("templates_comunicacao.id"), nullable=False)
    dias_antes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    dias_depois: Mapped[int | None] = mapped_column(Integer, nullable=True)
    filtros: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    ativo: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class Comunicacao(SerializavelMixin, TimestampMixin, Base):
    __tablename__ = "comunicacoes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # nulo para envios de teste de configuração
    cliente_id: Mapped[int | None] = mapped_column(ForeignKey("clientes.id"), nullable=True)
    campanha_id: Mapped[int | None] = mapped_column(ForeignKey("campanhas_marketing.id"), nullable=True)
    template_id: Mapped[int | None] = mapped_column(ForeignKey("templates_comunicacao.id"), nullable=True)
    tipo: Mapped[CanalComunicacao] = mapped_column(Enum(CanalComunicacao), nullable=False)
    destinatario: Mapped[str] = mapped_column(String(160), nullable=False)
    assunto: Mapped[str | None] = mapped_column(String(255), nullable=True)
    conteudo: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[StatusComunicacao] = mapped_column(Enum(StatusComunicacao), default=StatusComunicacao.ENVIANDO, nullable=False)
    erro_detalhe: Mapped[str | None] = mapped_column(Text, nullable=True)
    external_id: Mapped[str | None] = mapped_column(String(120), nullable=True)
    data_envio: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)


# =========================
# Auditoria
# =========================
class AuditLog(SerializavelMixin, Base):
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    table_name: Mapped[str] = mapped_column(String(80), nullable=False)
    record_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    action: Mapped[str] = mapped_column(String(10), nullable=False)  # INSERT / UPDATE / DELETE
    old_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    new_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    usuario_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)


def json_safe(dados: dict[str, Any] | None) -> dict[str, Any] | None:
    """Converte datas para ISO: colunas JSON (auditoria, snapshots) não aceitam date/datetime."""
    if dados is None:
        return None
    return {k: v.isoformat() if isinstance(v, (date, datetime)) else v for k, v in dados.items()}
