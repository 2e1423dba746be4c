from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import auth_models  # noqa: F401  registra "usuarios" no metadata (FK de historico)
from .db import Base, db_session, engine
from .erros import NaoEncontrado
from .models import (
    Agenda,
    AuditLog,
    Categoria,
    Cliente,
    Consultor,
    FormaPagamento,
    Historico,
    Origem,
    Servico,
    StatusAgenda,
    json_safe,
)

logger = logging.getLogger(__name__)

CENTAVOS = Decimal("0.01")


# =========================
# Bootstrap DB
# =========================
def init_db() -> None:
    """Cria as tabelas se não existem."""
    Base.metadata.create_all(bind=engine)


# =========================
# Helper
# =========================
def dinheiro(valor: Any) -> Decimal:
    return Decimal(str(valor)).quantize(CENTAVOS, rounding=ROUND_HALF_UP)


def inicio_do_dia(d: date) -> datetime:
    return datetime.combine(d, datetime.min.time())


def fim_exclusivo(d: date) -> datetime:
    return inicio_do_dia(d) + timedelta(days=1)


def _colunas_editaveis(modelo: type[Base]) -> set[str]:
    return {c.key for c in modelo.__table__.columns} - {"id", "created_at", "updated_at"}


def _aplica(obj: Base, dados: dict[str, Any]) -> None:
    colunas = type(obj).__table__.columns
    editaveis = _colunas_editaveis(type(obj))
    for campo, valor in dados.items():
        if campo not in editaveis:
            continue
        if valor is None and not colunas[campo].nullable:
            raise ValueError(f"{campo} não pode ser nulo")
        setattr(obj, campo, valor)


def registra_auditoria(
    s: Session,
    tabela: str,
    record_id: int | None,
    acao: str,
    antes: dict[str, Any] | None = None,
    depois: dict[str, Any] | None = None,
    usuario_id: int | None = None,
) -> None:
    s.add(
        AuditLog(
            table_name=tabela,
            record_id=record_id,
            action=acao,
            old_data=json_safe(antes),
            new_data=json_safe(depois),
            usuario_id=usuario_id,
        )
    )


def _get_ou_404(s: Session, modelo: type[Base], obj_id: int, mensagem: str) -> Any:
    obj = s.get(modelo, obj_id)
    if obj is None:
        raise NaoEncontrado(mensagem)
    return obj


def _exige_existente(s: Session, modelo: type[Base], obj_id: int | None, mensagem: str) -> Any:
    """Referência inválida em um payload é erro do cliente (400), não 404."""
    if obj_id is None:
        return None
    obj = s.get(modelo, obj_id)
    if obj is None:
        raise ValueError(mensagem)
    return obj


# =========================
# Cadastros auxiliares
# =========================
# chave da rota -> (modelo, rótulo usado nas mensagens)
CADASTROS: dict[str, tuple[type[Base], str]] = {
    "categorias": (Categoria, "Categoria"),
    "origens": (Origem, "Origem"),
    "servicos": (Servico, "Serviço"),
    "consultores": (Consultor, "Consultor"),
    "formas-pagamento": (FormaPagamento, "Forma de pagamento"),
}


def _cadastro(tipo: str) -> tuple[type[Base], str]:
    try:
        return CADASTROS[tipo]
    except KeyError:
        raise NaoEncontrado(f"Cadastro desconhecido: {tipo}") from None


def _ordem(modelo: type[Base]):
    if modelo is FormaPagamento:
        return (FormaPagamento.ordem, FormaPagamento.nome)
    return (modelo.nome,)


def lista_cadastro(tipo: str, somente_ativos: bool = False) -> list[dict[str, Any]]:
    modelo, _ = _cadastro(tipo)
    q = select(modelo).order_by(*_ordem(modelo))
    if somente_ativos:
        q = q.where(modelo.ativo.is_(True))
    with db_session() as s:
        return [o.to_dict() for o in s.scalars(q)]


def get_cadastro(tipo: str, obj_id: int) -> dict[str, Any]:
    modelo, rotulo = _cadastro(tipo)
    with db_session() as s:
        return _get_ou_404(s, modelo, obj_id, f"{rotulo} não encontrado(a)").to_dict()


def cria_cadastro(tipo: str, dados: dict[str, Any], usuario_id: int | None = None) -> dict[str, Any]:
    modelo, rotulo = _cadastro(tipo)
    if not (dados.get("nome") or "").strip():
        raise ValueError(f"{rotulo}: nome é obrigatório.")

    try:
        with db_session() as s:
            obj = modelo()
            _aplica(obj, {k: v for k, v in dados.items() if v is not None})
            obj.nome = dados["nome"].strip()
            s.add(obj)
            s.flush()
            novo = obj.to_dict()
            registra_auditoria(s, modelo.__tablename__, obj.id, "INSERT", depois=novo, usuario_id=usuario_id)
            return novo
    except IntegrityError:
        raise ValueError(f"{rotulo} já cadastrado(a): {dados['nome']}") from None


def atualiza_cadastro(tipo: str, obj_id: int, dados: dict[str, Any], usuario_id: int | None = None) -> dict[str, Any]:
    modelo, rotulo = _cadastro(tipo)
    try:
        with db_session() as s:
            obj = _get_ou_404(s, modelo, obj_id, f"{rotulo} não encontrado(a)")
            antes = obj.to_dict()
            _aplica(obj, dados)
            obj.updated_at = datetime.utcnow()
            s.flush()
            depois = obj.to_dict()
            registra_auditoria(s, modelo.__tablename__, obj.id, "UPDATE", antes, depois, usuario_id)
            return depois
    except IntegrityError:
        raise ValueError(f"{rotulo}: dados duplicados.") from None


def remove_cadastro(tipo: str, obj_id: int, usuario_id: int | None = None) -> dict[str, Any]:
    modelo, rotulo = _cadastro(tipo)
    try:
        with db_session() as s:
            obj = _get_ou_404(s, modelo, obj_id, f"{rotulo} não encontrado(a)")
            antes = obj.to_dict()
            s.delete(obj)
            s.flush()
            registra_auditoria(s, modelo.__tablename__, obj_id, "DELETE", antes=antes, usuario_id=usuario_id)
            return antes
    except IntegrityError:
        raise ValueError(f"{rotulo} em uso por outros registros.") from None


# =========================
# Clientes
# =========================
ORDENACAO_CLIENTES = {"nome", "email", "created_at", "updated_at"}


def _cliente_flat(c: Cliente, categoria_nome: str | None, origem_nome: str | None) -> dict[str, Any]:
    d = c.to_dict()
    d["categoria_nome"] = categoria_nome
    d["origem_nome"] = origem_nome
    return d


def _select_clientes():
    return (
        select(Cliente, Categoria.nome.label("categoria_nome"), Origem.nome.label("origem_nome"))
        .outerjoin(Categoria, Categoria.id == Cliente.categoria_id)
        .outerjoin(Origem, Origem.id == Cliente.origem_id)
    )


def lista_clientes(
    nome: str | None = None,
    cpf: str | None = None,
    email: str | None = None,
    telefone: str | None = None,
    categoria_id: int | None = None,
    origem_id: int | None = None,
    ativo: bool | None = None,
    order_by: str = "created_at",
    order_direction: str = "desc",
    limit: int = 50,
    offset: int = 0,
) -> list[dict[str, Any]]:
    q = _select_clientes()

    # busca parcial nos campos de texto
    for coluna, termo in ((Cliente.nome, nome), (Cliente.cpf, cpf), (Cliente.email, email), (Cliente.telefone, telefone)):
        if termo:
            q = q.where(coluna.ilike(f"%{termo}%"))
    if categoria_id is not None:
        q = q.where(Cliente.categoria_id == categoria_id)
    if origem_id is not None:
        q = q.where(Cliente.origem_id == origem_id)
    if ativo is not None:
        q = q.where(Cliente.ativo.is_(ativo))

    campo = getattr(Cliente, order_by if order_by in ORDENACAO_CLIENTES else "created_at")
    if order_direction == "asc":
        q = q.order_by(campo.asc(), Cliente.id.asc())
    else:
        q = q.order_by(campo.desc(), Cliente.id.desc())

    q = q.limit(max(0, int(limit))).offset(max(0, int(offset)))

    with db_session() as s:
        return [_cliente_flat(r.Cliente, r.categoria_nome, r.origem_nome) for r in s.execute(q).all()]


def get_cliente(cliente_id: int) -> dict[str, Any]:
    with db_session() as s:
        r = s.execute(_select_clientes().where(Cliente.id == cliente_id)).first()
        if r is None:
            raise NaoEncontrado("Cliente não encontrado")
        return _cliente_flat(r.Cliente, r.categoria_nome, r.origem_nome)


def cria_cliente(dados: dict[str, Any], usuario_id: int | None = None) -> dict[str, Any]:
    if not (dados.get("nome") or "").strip():
        raise ValueError("Nome do cliente é obrigatório.")

    with db_session() as s:
        _exige_existente(s, Categoria, dados.get("categoria_id"), "Categoria inválida")
        _exige_existente(s, Origem, dados.get("origem_id"), "Origem inválida")

        c = Cliente()
        _aplica(c, {k: v for k, v in dados.items() if v is not None})
        c.nome = dados["nome"].strip()
        # ativo = True salvo se explicitamente falso
        c.ativo = dados.get("ativo") is not False
        s.add(c)
        s.flush()
        novo = c.to_dict()
        registra_auditoria(s, "clientes", c.id, "INSERT", depois=novo, usuario_id=usuario_id)
        return novo


def atualiza_cliente(cliente_id: int, dados: dict[str, Any], usuario_id: int | None = None) -> dict[str, Any]:
    with db_session() as s:
        c = _get_ou_404(s, Cliente, cliente_id, "Cliente não encontrado")
        if "categoria_id" in dados:
            _exige_existente(s, Categoria, dados["categoria_id"], "Categoria inválida")
        if "origem_id" in dados:
            _exige_existente(s, Origem, dados["origem_id"], "Origem inválida")
        if "nome" in dados and not (dados["nome"] or "").strip():
            raise ValueError("Nome do cliente é obrigatório.")

        antes = c.to_dict()
        _aplica(c, dados)
        c.updated_at = datetime.utcnow()
        s.flush()
        depois = c.to_dict()
        registra_auditoria(s, "clientes", c.id, "UPDATE", antes, depois, usuario_id)
        return depois


def remove_cliente(cliente_id: int, usuario_id: int | None = None) -> None:
    try:
        with db_session() as s:
            c = _get_ou_404(s, Cliente, cliente_id, "Cliente não encontrado")
            antes = c.to_dict()
            s.delete(c)
            s.flush()
            registra_auditoria(s, "clientes", cliente_id, "DELETE", antes=antes, usuario_id=usuario_id)
    except IntegrityError:
        raise ValueError("Cliente possui agendamentos ou pagamentos: inative em vez de excluir.") from None


# =========================
# Agenda
# =========================
def status_agenda(valor: str | StatusAgenda) -> StatusAgenda:
    if isinstance(valor, StatusAgenda):
        return valor
    try:
        return StatusAgenda(valor)
    except ValueError:
        raise ValueError(f"Status de agenda inválido: {valor}") from None


def calcula_comissao(valor_servico: Decimal, percentual: Decimal) -> Decimal:
    return dinheiro(Decimal(valor_servico) * Decimal(percentual) / Decimal(100))


def _select_agenda():
    return (
        select(
            Agenda,
            Cliente.nome.label("cliente_nome"),
            Consultor.nome.label("consultor_nome"),
            Servico.nome.label("servico_nome"),
        )
        .join(Cliente, Cliente.id == Agenda.cliente_id)
        .join(Consultor, Consultor.id == Agenda.consultor_id)
        .join(Servico, Servico.id == Agenda.servico_id)
    )


def lista_agenda(
    data_inicio: date | None = None,
    data_fim: date | None = None,
    consultor_id: int | None = None,
    status: str | None = None,
) -> list[dict[str, Any]]:
    q = _select_agenda()
    if data_inicio:
        q = q.where(Agenda.data_agendamento >= inicio_do_dia(data_inicio))
    if data_fim:
        q = q.where(Agenda.data_agendamento < fim_exclusivo(data_fim))
    if consultor_id is not None:
        q = q.where(Agenda.consultor_id == consultor_id)
    if status:
        q = q.where(Agenda.status == status_agenda(status))
    q = q.order_by(Agenda.data_agendamento.desc(), Agenda.id.desc())

    with db_session() as s:
        rows = s.execute(q).all()
        return [
            {**r.Agenda.to_dict(), "cliente_nome": r.cliente_nome, "consultor_nome": r.consultor_nome, "servico_nome": r.servico_nome}
            for r in rows
        ]


def cria_agendamento(
    cliente_id: int,
    consultor_id: int,
    servico_id: int,
    data_agendamento: datetime,
    observacoes: str | None = None,
    status: str | None = None,
    valor_servico: Decimal | float | None = None,
    usuario_id: int | None = None,
) -> dict[str, Any]:
    """
    Cria o agendamento.
    - valor do serviço: o informado ou o preço de tabela
    - comissão do consultor calculada pelo percentual dele
    """
    with db_session() as s:
        _exige_existente(s, Cliente, cliente_id, "Cliente inválido")
        consultor = _exige_existente(s, Consultor, consultor_id, "Consultor inválido")
        servico = _exige_existente(s, Servico, servico_id, "Serviço inválido")

        valor = dinheiro(servico.preco if valor_servico is None else valor_servico)
        if valor < 0:
            raise ValueError("Valor do serviço não pode ser negativo.")

        a = Agenda(
            cliente_id=cliente_id,
            consultor_id=consultor_id,
            servico_id=servico_id,
            data_agendamento=data_agendamento,
            observacoes=observacoes,
            status=status_agenda(status or StatusAgenda.AGENDADO),
            valor_servico=valor,
            comissao_consultor=calcula_comissao(valor, consultor.percentual_comissao),
        )
        s.add(a)
        s.flush()
        novo = a.to_dict()
        registra_auditoria(s, "agenda", a.id, "INSERT", depois=novo, usuario_id=usuario_id)
        return novo


def atualiza_status_agendamento(agenda_id: int, status: str, usuario_id: int | None = None) -> dict[str, Any]:
    novo_status = status_agenda(status)
    with db_session() as s:
        a = _get_ou_404(s, Agenda, agenda_id, "Agendamento não encontrado")
        antes = a.to_dict()
        a.status = novo_status
        a.updated_at = datetime.utcnow()
        s.flush()
        depois = a.to_dict()
        registra_auditoria(s, "agenda", a.id, "UPDATE", antes, depois, usuario_id)
        return depois


def registra_atendimento(
    agenda_id: int,
    data_atendimento: datetime | None = None,
    valor_final: Decimal | float | None = None,
    forma_pagamento_id: int | None = None,
    procedimentos_realizados: str | None = None,
    observacoes_atendimento: str | None = None,
    usuario_id: int | None = None,
) -> dict[str, Any]:
    """
    Registra o atendimento de um agendamento:
    - grava o histórico com os valores do agendamento
    - marca o agendamento como concluído
    """
    with db_session() as s:
        a = _get_ou_404(s, Agenda, agenda_id, "Agendamento não encontrado")
        if a.status == StatusAgenda.CONCLUIDO:
            raise ValueError("Atendimento já registrado para este agendamento.")
        if a.status == StatusAgenda.CANCELADO:
            raise ValueError("Agendamento cancelado não pode ser atendido.")
        _exige_existente(s, FormaPagamento, forma_pagamento_id, "Forma de pagamento inválida")

        h = Historico(
            agenda_id=a.id,
            cliente_id=a.cliente_id,
            consultor_id=a.consultor_id,
            servico_id=a.servico_id,
            data_agendamento=a.data_agendamento,
            data_atendimento=data_atendimento or datetime.utcnow(),
            valor_servico=a.valor_servico,
            valor_final=a.valor_servico if valor_final is None else dinheiro(valor_final),
            comissao_consultor=a.comissao_consultor,
            forma_pagamento_id=forma_pagamento_id,
            procedimentos_realizados=procedimentos_realizados,
            observacoes_atendimento=observacoes_atendimento,
            tipo="atendimento",
            usuario_id=usuario_id,
        )
        s.add(h)

        a.status = StatusAgenda.CONCLUIDO
        a.updated_at = datetime.utcnow()
        s.flush()

        novo = h.to_dict()
        registra_auditoria(s, "historico", h.id, "INSERT", depois=novo, usuario_id=usuario_id)
        logger.info("Atendimento %s registrado para agenda %s", h.id, a.id)
        return novo


# =========================
# Histórico
# =========================
def lista_historico(
    cliente_id: int | None = None,
    consultor_id: int | None = None,
    data_inicio: date | None = None,
    data_fim: date | None = None,
) -> list[dict[str, Any]]:
    q = (
        select(
            Historico,
            Cliente.nome.label("cliente_nome"),
            Consultor.nome.label("consultor_nome"),
            Servico.nome.label("servico_nome"),
            FormaPagamento.nome.label("forma_pagamento_nome"),
        )
        .join(Cliente, Cliente.id == Historico.cliente_id)
        .outerjoin(Consultor, Consultor.id == Historico.consultor_id)
        .outerjoin(Servico, Servico.id == Historico.servico_id)
        .outerjoin(FormaPagamento, FormaPagamento.id == Historico.forma_pagamento_id)
    )
    if cliente_id is not None:
        q = q.where(Historico.cliente_id == cliente_id)
    if consultor_id is not None:
        q = q.where(Historico.consultor_id == consultor_id)
    if data_inicio:
        q = q.where(Historico.data_atendimento >= inicio_do_dia(data_inicio))
    if data_fim:
        q = q.where(Historico.data_atendimento < fim_exclusivo(data_fim))
    q = q.order_by(Historico.created_at.desc(), Historico.id.desc())

    with db_session() as s:
        return [
            {
                **r.Historico.to_dict(),
                "cliente_nome": r.cliente_nome,
                "consultor_nome": r.consultor_nome,
                "servico_nome": r.servico_nome,
                "forma_pagamento_nome": r.forma_pagamento_nome,
            }
            for r in s.execute(q).all()
        ]


def cria_evento_historico(
    cliente_id: int,
    tipo: str,
    descricao: str | None = None,
    data_evento: datetime | None = None,
    usuario_id: int | None = None,
) -> dict[str, Any]:
    """Evento avulso no histórico do cliente (contato, observação, ...)."""
    if not tipo:
        raise ValueError("Tipo do evento é obrigatório.")
    with db_session() as s:
        _exige_existente(s, Cliente, cliente_id, "Cliente inválido")
        h = Historico(
            cliente_id=cliente_id,
            tipo=tipo,
            descricao=descricao,
            data_atendimento=data_evento or datetime.utcnow(),
            usuario_id=usuario_id,
        )
        s.add(h)
        s.flush()
        return h.to_dict()


def historico_diario(dia: date) -> dict[str, Any]:
    itens = [h for h in lista_historico(data_inicio=dia, data_fim=dia) if h["tipo"] == "atendimento"]
    itens.sort(key=lambda h: h["data_atendimento"])
    total = sum(dinheiro(h["valor_final"] if h["valor_final"] is not None else h["valor_servico"]) for h in itens)
    comissoes = sum(dinheiro(h["comissao_consultor"]) for h in itens)
    return {
        "dia": dia.isoformat(),
        "atendimentos": itens,
        "quantidade": len(itens),
        "valor_total": float(total),
        "comissao_total": float(comissoes),
    }


# =========================
# Estatísticas (dashboard)
# =========================
def estatisticas() -> dict[str, Any]:
    with db_session() as s:
        total = s.scalar(select(func.count(Cliente.id))) or 0
        ativos = s.scalar(select(func.count(Cliente.id)).where(Cliente.ativo.is_(True))) or 0

        def _por(modelo: type[Base], fk) -> list[dict[str, Any]]:
            total_col = func.count(Cliente.id).label("total")
            rows = s.execute(
                select(modelo.nome, total_col)
                .outerjoin(Cliente, fk == modelo.id)
                .group_by(modelo.id, modelo.nome)
                .order_by(total_col.desc(), modelo.nome)
            ).all()
            return [{"nome": r[0], "total": int(r[1])} for r in rows]

        return {
            "total_clientes": int(total),
            "clientes_ativos": int(ativos),
            "clientes_inativos": int(total - ativos),
            "por_categoria": _por(Categoria, Cliente.categoria_id),
            "por_origem": _por(Origem, Cliente.origem_id),
        }


# =========================
# Auditoria
# =========================
def lista_audit_logs(
    data_inicio: date | None = None,
    data_fim: date | None = None,
    tabela: str | None = None,
    limit: int = 100,
) -> list[dict[str, Any]]:
    q = select(AuditLog)
    if data_inicio:
        q = q.where(AuditLog.created_at >= inicio_do_dia(data_inicio))
    if data_fim:
        q = q.where(AuditLog.created_at < fim_exclusivo(data_fim))
    if tabela:
        q = q.where(AuditLog.table_name == tabela)
    q = q.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit)

    with db_session() as s:
        return [a.to_dict() for a in s.scalars(q)]
