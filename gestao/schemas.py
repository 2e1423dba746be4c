from __future__ import annotations

from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


# Auth

class LoginIn(BaseModel):
    email: str
    senha: str


class UsuarioCreateIn(BaseModel):
    nome: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    senha: str = Field(..., min_length=1)
    perfil: str = "user"


class UsuarioUpdateIn(BaseModel):
    nome: str | None = None
    email: str | None = None
    perfil: str | None = None
    ativo: bool | None = None
    senha: str | None = None


# Cadastros

class CategoriaIn(BaseModel):
    # mesmo formato para categorias e origens
    nome: str | None = None
    descricao: str | None = None
    ativo: bool | None = None


class ServicoIn(BaseModel):
    nome: str | None = None
    descricao: str | None = None
    preco: float | None = Field(None, ge=0)
    duracao_minutos: int | None = Field(None, ge=0)
    ativo: bool | None = None


class ConsultorIn(BaseModel):
    nome: str | None = None
    cpf: str | None = None
    email: str | None = None
    telefone: str | None = None
    endereco: str | None = None
    cidade: str | None = None
    estado: str | None = None
    percentual_comissao: float | None = Field(None, ge=0, le=100)
    ativo: bool | None = None


class FormaPagamentoIn(BaseModel):
    nome: str | None = None
    descricao: str | None = None
    ordem: int | None = None
    ativo: bool | None = None


class ClienteIn(BaseModel):
    nome: str | None = None
    cpf: str | None = None
    data_nascimento: date | None = None
    email: str | None = None
    telefone: str | None = None
    cep: str | None = None
    endereco: str | None = None
    bairro: str | None = None
    cidade: str | None = None
    estado: str | None = None
    categoria_id: int | None = None
    origem_id: int | None = None
    observacoes: str | None = None
    recebe_email: bool | None = None
    recebe_whatsapp: bool | None = None
    recebe_sms: bool | None = None
    ativo: bool | None = None


# Agenda / histórico

class AgendaIn(BaseModel):
    cliente_id: int
    consultor_id: int
    servico_id: int
    data_agendamento: datetime
    observacoes: str | None = None
    status: str | None = None
    valor_servico: float | None = None


class StatusIn(BaseModel):
    status: str


class AtendimentoIn(BaseModel):
    data_atendimento: datetime | None = None
    valor_final: float | None = None
    forma_pagamento_id: int | None = None
    procedimentos_realizados: str | None = None
    observacoes_atendimento: str | None = None


class HistoricoIn(BaseModel):
    cliente_id: int
    tipo: str
    descricao: str | None = None
    data_evento: datetime | None = None


# Caixa / recibos

class PagamentoIn(BaseModel):
    valor: float
    cliente_id: int | None = None
    consultor_id: int | None = None
    servico_id: int | None = None
    forma_pagamento_id: int | None = None
    atendimento_id: int | None = None
    tipo_transacao: str = "entrada"
    status: str = "pago"
    data_pagamento: datetime | None = None
    numero_parcelas: int = Field(1, ge=1, le=120)
    observacoes: str | None = None


class ReciboIn(BaseModel):
    cliente_id: int
    valor: float
    tipo_recibo_id: int | None = None
    pagamento_id: int | None = None
    servico_id: int | None = None
    consultor_id: int | None = None
    descricao: str | None = None
    observacoes: str | None = None


class EmpresaIn(BaseModel):
    nome: str | None = None
    tipo_pessoa: str | None = None
    cpf_cnpj: str | None = None
    endereco: str | None = None
    cidade: str | None = None
    estado: str | None = None
    cep: str | None = None
    telefone: str | None = None
    email: str | None = None
    logo_url: str | None = None


# Comunicação

class ConfiguracaoComunicacaoIn(BaseModel):
    tipo_servico: str | None = None
    provider: str | None = None
    api_key: str | None = None
    api_secret: str | None = None
    webhook_url: str | None = None
    configuracoes_extras: dict[str, Any] | None = None
    ativo: bool | None = None


class TemplateComunicacaoIn(BaseModel):
    nome: str | None = None
    tipo: str | None = None
    assunto: str | None = None
    conteudo: str | None = None
    variaveis: dict[str, Any] | None = None
    ativo: bool | None = None


class FiltroMarketing(BaseModel):
    categoria_id: list[int] | None = None
    origem_id: list[int] | None = None
    cidade: list[str] | None = None
    aniversario_mes: list[int] | None = None
    idade_minima: int | None = None
    idade_maxima: int | None = None
    recebe_sms: bool | None = None
    recebe_email: bool | None = None
    recebe_whatsapp: bool | None = None


class CampanhaIn(BaseModel):
    nome: str | None = None
    descricao: str | None = None
    tipo_comunicacao: str | None = None
    template_id: int | None = None
    filtros: FiltroMarketing | None = None
    data_agendamento: datetime | None = None
    # executando/finalizada só via execução da campanha
    status: Literal["rascunho", "agendada", "cancelada"] | None = None
    ativo: bool | None = None


class CampanhaAutomaticaIn(BaseModel):
    nome: str | None = None
    tipo_trigger: str | None = None
    template_id: int | None = None
    dias_antes: int | None = Field(None, ge=0)
    dias_depois: int | None = Field(None, ge=0)
    filtros: FiltroMarketing | None = None
    ativo: bool | None = None


class TesteConfiguracaoIn(BaseModel):
    config_id: int
    destinatario: str
    mensagem: str
    assunto: str | None = None
