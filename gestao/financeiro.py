"""
Caixa, parcelas, comissões, recibos e configuração da empresa.

Valores monetários circulam como Decimal (2 casas) e saem como float nos dicts.
"""
from __future__ import annotations

import calendar
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import func, select

from .db import db_session
from .erros import NaoEncontrado
from .models import (
    Cliente,
    Comissao,
    ConfiguracaoEmpresa,
    Consultor,
    FormaPagamento,
    Historico,
    Pagamento,
    Parcela,
    Recibo,
    Servico,
    StatusPagamento,
    TipoPessoa,
    TipoRecibo,
    TipoTransacao,
    json_safe,
)
from .services import (
    _aplica,
    _exige_existente,
    _get_ou_404,
    calcula_comissao,
    dinheiro,
    fim_exclusivo,
    inicio_do_dia,
    registra_auditoria,
)

logger = logging.getLogger(__name__)


def _tipo_transacao(valor: str | TipoTransacao) -> TipoTransacao:
    if isinstance(valor, TipoTransacao):
        return valor
    try:
        return TipoTransacao(valor)
    except ValueError:
        raise ValueError(f"Tipo de transação inválido: {valor}") from None


def _status_pagamento(valor: str | StatusPagamento) -> StatusPagamento:
    if isinstance(valor, StatusPagamento):
        return valor
    try:
        return StatusPagamento(valor)
    except ValueError:
        raise ValueError(f"Status de pagamento inválido: {valor}") from None


def soma_meses(d: date, meses: int) -> date:
    """Mesmo dia N meses depois; dia inexistente cai no último dia do mês (31/01 + 1 = 28/02)."""
    indice = d.month - 1 + meses
    ano, mes = d.year + indice // 12, indice % 12 + 1
    return date(ano, mes, min(d.day, calendar.monthrange(ano, mes)[1]))


def divide_parcelas(valor: Decimal, numero: int) -> list[Decimal]:
    """Divide em parcelas iguais (centavos); a diferença do arredondamento vai na última."""
    if numero < 1:
        raise ValueError("Número de parcelas deve ser >= 1.")
    base = dinheiro(valor / numero)
    parcelas = [base] * numero
    parcelas[-1] = dinheiro(valor - base * (numero - 1))
    return parcelas


# =========================
# Caixa / pagamentos
# =========================
def lista_pagamentos(
    data_inicio: date | None = None,
    data_fim: date | None = None,
    tipo_transacao: str | None = None,
) -> list[dict[str, Any]]:
    q = (
        select(
            Pagamento,
            Cliente.nome.label("cliente_nome"),
            Servico.nome.label("servico_nome"),
            Servico.preco.label("valor_original"),
            Consultor.nome.label("consultor_nome"),
            FormaPagamento.nome.label("forma_pagamento_nome"),
        )
        .outerjoin(Cliente, Cliente.id == Pagamento.cliente_id)
        .outerjoin(Servico, Servico.id == Pagamento.servico_id)
        .outerjoin(Consultor, Consultor.id == Pagamento.consultor_id)
        .outerjoin(FormaPagamento, FormaPagamento.id == Pagamento.forma_pagamento_id)
    )
    if data_inicio:
        q = q.where(Pagamento.data_pagamento >= inicio_do_dia(data_inicio))
    if data_fim:
        q = q.where(Pagamento.data_pagamento < fim_exclusivo(data_fim))
    if tipo_transacao:
        q = q.where(Pagamento.tipo_transacao == _tipo_transacao(tipo_transacao))
    q = q.order_by(Pagamento.data_pagamento.desc(), Pagamento.id.desc())

    with db_session() as s:
        return [
            {
                **r.Pagamento.to_dict(),
                "cliente_nome": r.cliente_nome,
                "servico_nome": r.servico_nome,
                "valor_original": float(r.valor_original) if r.valor_original is not None else None,
                "consultor_nome": r.consultor_nome,
                "forma_pagamento_nome": r.forma_pagamento_nome,
            }
            for r in s.execute(q).all()
        ]


def registra_pagamento(
    valor: Decimal | float,
    cliente_id: int | None = None,
    consultor_id: int | None = None,
    servico_id: int | None = None,
    forma_pagamento_id: int | None = None,
    atendimento_id: int | None = None,
    tipo_transacao: str = "entrada",
    status: str = "pago",
    data_pagamento: datetime | None = None,
    numero_parcelas: int = 1,
    observacoes: str | None = None,
    usuario_id: int | None = None,
) -> dict[str, Any]:
    """
    Lança um movimento no caixa.
    - numero_parcelas > 1: gera as parcelas mensais pendentes
    - consultor informado: lança a comissão (crédito na entrada, débito na saída)
    """
    total = dinheiro(valor)
    if total <= 0:
        raise ValueError("Valor deve ser maior que zero.")
    if numero_parcelas < 1:
        raise ValueError("Número de parcelas deve ser >= 1.")
    tipo = _tipo_transacao(tipo_transacao)
    quando = data_pagamento or datetime.utcnow()

    with db_session() as s:
        _exige_existente(s, Cliente, cliente_id, "Cliente inválido")
        consultor = _exige_existente(s, Consultor, consultor_id, "Consultor inválido")
        _exige_existente(s, Servico, servico_id, "Serviço inválido")
        _exige_existente(s, FormaPagamento, forma_pagamento_id, "Forma de pagamento inválida")
        _exige_existente(s, Historico, atendimento_id, "Atendimento inválido")

        p = Pagamento(
            atendimento_id=atendimento_id,
            cliente_id=cliente_id,
            consultor_id=consultor_id,
            servico_id=servico_id,
            forma_pagamento_id=forma_pagamento_id,
            valor=total,
            tipo_transacao=tipo,
            status=_status_pagamento(status),
            data_pagamento=quando,
            numero_parcelas=numero_parcelas,
            observacoes=observacoes,
        )
        s.add(p)
        s.flush()

        if numero_parcelas > 1:
            for n, valor_parcela in enumerate(divide_parcelas(total, numero_parcelas), start=1):
                s.add(
                    Parcela(
                        pagamento_id=p.id,
                        numero_parcela=n,
                        valor_parcela=valor_parcela,
                        data_vencimento=soma_meses(quando.date(), n - 1),
                        status=StatusPagamento.PENDENTE,
                    )
                )

        if consultor is not None:
            s.add(
                Comissao(
                    consultor_id=consultor.id,
                    cliente_id=cliente_id,
                    servico_id=servico_id,
                    pagamento_id=p.id,
                    tipo_operacao=tipo,
                    valor_servico=total,
                    percentual_comissao=consultor.percentual_comissao,
                    valor_comissao=calcula_comissao(total, consultor.percentual_comissao),
                    data_operacao=quando,
                    observacoes=observacoes,
                )
            )

        s.flush()
        novo = p.to_dict()
        registra_auditoria(s, "pagamentos", p.id, "INSERT", depois=novo, usuario_id=usuario_id)
        logger.info("Movimento de caixa %s: %s %s", p.id, tipo.value, total)
        return novo


def lista_parcelas(pagamento_id: int) -> list[dict[str, Any]]:
    with db_session() as s:
        _get_ou_404(s, Pagamento, pagamento_id, "Pagamento não encontrado")
        q = select(Parcela).where(Parcela.pagamento_id == pagamento_id).order_by(Parcela.numero_parcela)
        return [p.to_dict() for p in s.scalars(q)]


def marca_parcela_paga(parcela_id: int, data_pagamento: date | None = None) -> dict[str, Any]:
    with db_session() as s:
        p = _get_ou_404(s, Parcela, parcela_id, "Parcela não encontrada")
        if p.status == StatusPagamento.PAGO:
            raise ValueError("Parcela já está paga.")
        if p.status == StatusPagamento.CANCELADO:
            raise ValueError("Parcela cancelada não pode ser paga.")
        p.status = StatusPagamento.PAGO
        p.data_pagamento = data_pagamento or date.today()
        s.flush()
        return p.to_dict()


def resumo_caixa(data_inicio: date | None = None, data_fim: date | None = None) -> dict[str, Any]:
    """Totais de entradas/saídas do período (movimentos cancelados ficam fora)."""
    entradas = Decimal("0")
    saidas = Decimal("0")
    por_forma: dict[str, Decimal] = {}

    for p in lista_pagamentos(data_inicio, data_fim):
        if p["status"] == StatusPagamento.CANCELADO.value:
            continue
        v = dinheiro(p["valor"])
        if p["tipo_transacao"] == TipoTransacao.ENTRADA.value:
            entradas += v
            forma = p["forma_pagamento_nome"] or "Não informado"
            por_forma[forma] = por_forma.get(forma, Decimal("0")) + v
        else:
            saidas += v

    return {
        "total_entradas": float(entradas),
        "total_saidas": float(saidas),
        "saldo": float(entradas - saidas),
        "por_forma_pagamento": [{"forma_pagamento": k, "total": float(v)} for k, v in sorted(por_forma.items())],
    }


# =========================
# Comissões
# =========================
def lista_comissoes(
    consultor_id: int | None = None,
    data_inicio: date | None = None,
    data_fim: date | None = None,
) -> list[dict[str, Any]]:
    q = (
        select(Comissao, Cliente.nome.label("cliente_nome"), Servico.nome.label("servico_nome"))
        .outerjoin(Cliente, Cliente.id == Comissao.cliente_id)
        .outerjoin(Servico, Servico.id == Comissao.servico_id)
    )
    if consultor_id is not None:
        q = q.where(Comissao.consultor_id == consultor_id)
    if data_inicio:
        q = q.where(Comissao.data_operacao >= inicio_do_dia(data_inicio))
    if data_fim:
        q = q.where(Comissao.data_operacao < fim_exclusivo(data_fim))
    q = q.order_by(Comissao.data_operacao.desc(), Comissao.id.desc())

    with db_session() as s:
        return [
            {**r.Comissao.to_dict(), "cliente_nome": r.cliente_nome, "servico_nome": r.servico_nome}
            for r in s.execute(q).all()
        ]


def extrato_comissao(consultor_id: int, data_inicio: date | None = None, data_fim: date | None = None) -> dict[str, Any]:
    with db_session() as s:
        consultor = _get_ou_404(s, Consultor, consultor_id, "Consultor não encontrado").to_dict()

    itens = lista_comissoes(consultor_id, data_inicio, data_fim)
    entradas = sum((dinheiro(c["valor_comissao"]) for c in itens if c["tipo_operacao"] == "entrada"), Decimal("0"))
    saidas = sum((dinheiro(c["valor_comissao"]) for c in itens if c["tipo_operacao"] == "saida"), Decimal("0"))
    return {
        "consultor": consultor,
        "itens": itens,
        "total_entradas": float(entradas),
        "total_saidas": float(saidas),
        "saldo": float(entradas - saidas),
    }


# =========================
# Configuração da empresa
# =========================
def get_configuracao_empresa() -> dict[str, Any] | None:
    with db_session() as s:
        e = s.scalars(
            select(ConfiguracaoEmpresa).where(ConfiguracaoEmpresa.ativo.is_(True)).order_by(ConfiguracaoEmpresa.id).limit(1)
        ).first()
        return e.to_dict() if e else None


def salva_configuracao_empresa(dados: dict[str, Any], usuario_id: int | None = None) -> dict[str, Any]:
    """Uma única empresa ativa: atualiza se existe, cria se não."""
    if "tipo_pessoa" in dados and dados["tipo_pessoa"] is not None and not isinstance(dados["tipo_pessoa"], TipoPessoa):
        try:
            dados = {**dados, "tipo_pessoa": TipoPessoa(dados["tipo_pessoa"])}
        except ValueError:
            raise ValueError(f"Tipo de pessoa inválido: {dados['tipo_pessoa']}") from None

    with db_session() as s:
        e = s.scalars(
            select(ConfiguracaoEmpresa).where(ConfiguracaoEmpresa.ativo.is_(True)).order_by(ConfiguracaoEmpresa.id).limit(1)
        ).first()
        if e is None:
            if not (dados.get("nome") or "").strip():
                raise ValueError("Nome da empresa é obrigatório.")
            e = ConfiguracaoEmpresa(ativo=True)
            s.add(e)
            antes = None
        else:
            antes = e.to_dict()
        _aplica(e, {k: v for k, v in dados.items() if v is not None})
        e.ativo = True
        e.updated_at = datetime.utcnow()
        s.flush()
        depois = e.to_dict()
        registra_auditoria(s, "configuracao_empresa", e.id, "UPDATE" if antes else "INSERT", antes, depois, usuario_id)
        return depois


# =========================
# Recibos
# =========================
def gera_numero_recibo(ano: int | None = None, s=None) -> str:
    """REC-<ano>-<sequencial de 6 dígitos>, sequência reiniciada a cada ano."""
    ano = ano or date.today().year
    prefixo = f"REC-{ano}-"

    def _proximo(sess) -> str:
        ultimo = sess.scalar(
            select(func.max(Recibo.numero_recibo)).where(Recibo.numero_recibo.like(f"{prefixo}%"))
        )
        seq = int(ultimo.rsplit("-", 1)[1]) + 1 if ultimo else 1
        return f"{prefixo}{seq:06d}"

    if s is not None:
        return _proximo(s)
    with db_session() as sess:
        return _proximo(sess)


def _snapshot_cliente(c: Cliente) -> dict[str, Any]:
    campos = ("id", "nome", "cpf", "email", "telefone", "endereco", "bairro", "cidade", "estado", "cep")
    return {k: getattr(c, k) for k in campos}


def cria_recibo(
    cliente_id: int,
    valor: Decimal | float,
    tipo_recibo_id: int | None = None,
    pagamento_id: int | None = None,
    servico_id: int | None = None,
    consultor_id: int | None = None,
    descricao: str | None = None,
    observacoes: str | None = None,
    usuario_id: int | None = None,
) -> dict[str, Any]:
    """
    Emite um recibo.
    Exige empresa ativa configurada; os dados de empresa e cliente ficam congelados no recibo.
    """
    total = dinheiro(valor)
    if total <= 0:
        raise ValueError("Valor do recibo deve ser maior que zero.")

    with db_session() as s:
        empresa = s.scalars(
            select(ConfiguracaoEmpresa).where(ConfiguracaoEmpresa.ativo.is_(True)).order_by(ConfiguracaoEmpresa.id).limit(1)
        ).first()
        if empresa is None:
            raise ValueError("Configure uma empresa ativa antes de gerar recibos.")

        cliente = _exige_existente(s, Cliente, cliente_id, "Cliente inválido")
        tipo = _exige_existente(s, TipoRecibo, tipo_recibo_id, "Tipo de recibo inválido")
        if tipo is not None and not tipo.ativo:
            raise ValueError("Tipo de recibo inativo.")
        _exige_existente(s, Pagamento, pagamento_id, "Pagamento inválido")
        _exige_existente(s, Servico, servico_id, "Serviço inválido")
        _exige_existente(s, Consultor, consultor_id, "Consultor inválido")

        r = Recibo(
            numero_recibo=gera_numero_recibo(s=s),
            tipo_recibo_id=tipo_recibo_id,
            pagamento_id=pagamento_id,
            cliente_id=cliente_id,
            servico_id=servico_id,
            consultor_id=consultor_id,
            valor=total,
            descricao=descricao,
            observacoes=observacoes,
            dados_empresa=json_safe(empresa.to_dict()),
            dados_cliente=json_safe(_snapshot_cliente(cliente)),
        )
        s.add(r)
        s.flush()
        novo = r.to_dict()
        registra_auditoria(s, "recibos", r.id, "INSERT", depois=novo, usuario_id=usuario_id)
        return novo


def _select_recibos():
    return (
        select(Recibo, Cliente.nome.label("cliente_nome"), Servico.nome.label("servico_nome"))
        .outerjoin(Cliente, Cliente.id == Recibo.cliente_id)
        .outerjoin(Servico, Servico.id == Recibo.servico_id)
    )


def lista_recibos(cliente_id: int | None = None) -> list[dict[str, Any]]:
    q = _select_recibos()
    if cliente_id is not None:
        q = q.where(Recibo.cliente_id == cliente_id)
    q = q.order_by(Recibo.created_at.desc(), Recibo.id.desc())
    with db_session() as s:
        return [{**r.Recibo.to_dict(), "cliente_nome": r.cliente_nome, "servico_nome": r.servico_nome} for r in s.execute(q).all()]


def get_recibo(recibo_id: int) -> dict[str, Any]:
    with db_session() as s:
        r = s.execute(_select_recibos().where(Recibo.id == recibo_id)).first()
        if r is None:
            raise NaoEncontrado("Recibo não encontrado")
        return {**r.Recibo.to_dict(), "cliente_nome": r.cliente_nome, "servico_nome": r.servico_nome}


def lista_tipos_recibo() -> list[dict[str, Any]]:
    with db_session() as s:
        return [t.to_dict() for t in s.scalars(select(TipoRecibo).order_by(TipoRecibo.nome))]


# =========================
# Dashboard financeiro
# =========================
def dashboard_financeiro(data_inicio: date | None = None, data_fim: date | None = None) -> dict[str, Any]:
    resumo = resumo_caixa(data_inicio, data_fim)

    q = (
        select(Servico.nome, func.count(Historico.id), func.coalesce(func.sum(func.coalesce(Historico.valor_final, Historico.valor_servico)), 0))
        .join(Servico, Servico.id == Historico.servico_id)
        .where(Historico.tipo == "atendimento")
        .group_by(Servico.id, Servico.nome)
    )
    q_total = select(func.count(Historico.id)).where(Historico.tipo == "atendimento")
    if data_inicio:
        q = q.where(Historico.data_atendimento >= inicio_do_dia(data_inicio))
        q_total = q_total.where(Historico.data_atendimento >= inicio_do_dia(data_inicio))
    if data_fim:
        q = q.where(Historico.data_atendimento < fim_exclusivo(data_fim))
        q_total = q_total.where(Historico.data_atendimento < fim_exclusivo(data_fim))

    with db_session() as s:
        por_servico = [
            {"servico": nome, "atendimentos": int(qtd), "faturamento": float(dinheiro(total))}
            for nome, qtd, total in s.execute(q).all()
        ]
        atendimentos = int(s.scalar(q_total) or 0)

    por_servico.sort(key=lambda r: (-r["faturamento"], r["servico"]))
    return {
        "receita": resumo["total_entradas"],
        "despesas": resumo["total_saidas"],
        "saldo": resumo["saldo"],
        "atendimentos": atendimentos,
        "por_servico": por_servico,
    }
