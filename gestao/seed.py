from __future__ import annotations

from sqlalchemy import select

from .auth_service import garante_master_admin
from .db import db_session
from .models import Categoria, FormaPagamento, Origem, TemplateRecibo, TipoRecibo


def seed_base(com_master: bool = True) -> None:
    """
    Popula dados mínimos (idempotente):
    - formas de pagamento
    - categorias e origens de cliente
    - tipos de recibo
    - usuário master (só cria; não mexe num master existente)
    """
    with db_session() as s:
        formas = ["Dinheiro", "PIX", "Cartão de Crédito", "Cartão de Débito", "Transferência"]
        for ordem, nome in enumerate(formas, start=1):
            if s.execute(select(FormaPagamento).where(FormaPagamento.nome == nome)).scalar_one_or_none() is None:
                s.add(FormaPagamento(nome=nome, ordem=ordem, ativo=True))

        for nome in ("Particular", "Convênio", "VIP"):
            if s.execute(select(Categoria).where(Categoria.nome == nome)).scalar_one_or_none() is None:
                s.add(Categoria(nome=nome, ativo=True))

        for nome in ("Indicação", "Instagram", "Google", "Site"):
            if s.execute(select(Origem).where(Origem.nome == nome)).scalar_one_or_none() is None:
                s.add(Origem(nome=nome, ativo=True))

        tipos = [("Recibo Normal", TemplateRecibo.NORMAL), ("Recibo de Doação", TemplateRecibo.DOACAO)]
        for nome, template in tipos:
            if s.execute(select(TipoRecibo).where(TipoRecibo.nome == nome)).scalar_one_or_none() is None:
                s.add(TipoRecibo(nome=nome, template=template, ativo=True))

    if com_master:
        garante_master_admin(redefine_senha=False)
