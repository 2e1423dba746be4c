from __future__ import annotations

import argparse
import logging
from datetime import date, datetime

from gestao.auth_service import garante_master_admin
from gestao.comunicacao import aniversariantes, executa_campanhas_automaticas
from gestao.config import LOG_FORMAT, LOG_LEVEL
from gestao.financeiro import cria_recibo, registra_pagamento, resumo_caixa
from gestao.seed import seed_base
from gestao.services import (
    cria_agendamento,
    cria_cliente,
    estatisticas,
    init_db,
    lista_agenda,
    lista_cadastro,
    lista_clientes,
    registra_atendimento,
)


def cmd_init(args: argparse.Namespace) -> None:
    init_db()
    seed_base()
    print("Banco inicializado e dados base carregados.")


def cmd_create_master(args: argparse.Namespace) -> None:
    kwargs = {k: v for k, v in (("email", args.email), ("senha", args.senha)) if v}
    u = garante_master_admin(**kwargs)
    print(f"Master pronto: {u['id']} | {u['email']}")


def cmd_list(args: argparse.Namespace) -> None:
    if args.entity == "clientes":
        for c in lista_clientes(limit=args.limit):
            print(f"{c['id']} | {c['nome']} | {c['telefone'] or '-'} | {c['categoria_nome'] or '-'}")
    elif args.entity == "agenda":
        for a in lista_agenda():
            print(f"{a['id']} | {a['data_agendamento']} | {a['cliente_nome']} | {a['consultor_nome']} | {a['servico_nome']} | {a['status']}")
    elif args.entity == "servicos":
        for sv in lista_cadastro("servicos"):
            print(f"{sv['id']} | {sv['nome']} | R$ {sv['preco']:.2f}")
    elif args.entity == "consultores":
        for co in lista_cadastro("consultores"):
            print(f"{co['id']} | {co['nome']} | {co['percentual_comissao']}%")
    else:
        for item in lista_cadastro(args.entity):
            print(f"{item['id']} | {item['nome']}")


def cmd_add_client(args: argparse.Namespace) -> None:
    dados = {
        "nome": args.nome,
        "cpf": args.cpf,
        "email": args.email,
        "telefone": args.telefone,
        "cidade": args.cidade,
        "data_nascimento": date.fromisoformat(args.nascimento) if args.nascimento else None,
    }
    c = cria_cliente({k: v for k, v in dados.items() if v is not None})
    print(f"Cliente criado: {c['id']}")


def cmd_book(args: argparse.Namespace) -> None:
    a = cria_agendamento(
        cliente_id=args.cliente_id,
        consultor_id=args.consultor_id,
        servico_id=args.servico_id,
        data_agendamento=datetime.fromisoformat(args.quando),  # formato: 2026-01-14T10:30
        observacoes=args.obs,
        valor_servico=args.valor,
    )
    print(f"Agendamento {a['id']} criado | valor {a['valor_servico']:.2f} | comissão {a['comissao_consultor']:.2f}")


def cmd_attend(args: argparse.Namespace) -> None:
    h = registra_atendimento(
        args.agenda_id,
        valor_final=args.valor_final,
        forma_pagamento_id=args.forma_pagamento_id,
        procedimentos_realizados=args.procedimentos,
    )
    print(f"Atendimento registrado: {h['id']}")


def cmd_pay(args: argparse.Namespace) -> None:
    p = registra_pagamento(
        valor=args.valor,
        cliente_id=args.cliente_id,
        consultor_id=args.consultor_id,
        servico_id=args.servico_id,
        forma_pagamento_id=args.forma_pagamento_id,
        tipo_transacao=args.tipo,
        numero_parcelas=args.parcelas,
        observacoes=args.obs,
    )
    print(f"Movimento {p['id']} lançado: {p['tipo_transacao']} {p['valor']:.2f}")


def cmd_receipt(args: argparse.Namespace) -> None:
    r = cria_recibo(
        cliente_id=args.cliente_id,
        valor=args.valor,
        tipo_recibo_id=args.tipo_recibo_id,
        pagamento_id=args.pagamento_id,
        descricao=args.descricao,
    )
    print(f"Recibo emitido: {r['numero_recibo']}")


def cmd_stats(args: argparse.Namespace) -> None:
    e = estatisticas()
    print(f"Clientes: {e['total_clientes']} (ativos {e['clientes_ativos']}, inativos {e['clientes_inativos']})")
    for linha in e["por_categoria"]:
        print(f"  categoria {linha['nome']}: {linha['total']}")
    caixa = resumo_caixa()
    print(f"Caixa: entradas {caixa['total_entradas']:.2f} | saídas {caixa['total_saidas']:.2f} | saldo {caixa['saldo']:.2f}")


def cmd_run_birthdays(args: argparse.Namespace) -> None:
    """
    Rotina diária (cron):
    - lista os aniversariantes do dia
    - dispara as campanhas automáticas de aniversário
    """
    referencia = date.fromisoformat(args.data) if args.data else None
    hoje = aniversariantes(referencia=referencia)
    print(f"Aniversariantes: {len(hoje)}")
    for c in hoje:
        print(f"  {c['id']} | {c['nome']}")

    if args.dry_run:
        return
    for r in executa_campanhas_automaticas(referencia):
        print(f"Campanha {r['campanha_id']} ({r['nome']}): {r['enviados']} enviados, {r['sucesso']} ok, {r['erro']} erro")


def cmd_serve(args: argparse.Namespace) -> None:
    import uvicorn

    uvicorn.run("gestao.api_main:app", host=args.host, port=args.port, reload=args.reload)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="cadastro-facil", description="CLI Cadastro Fácil Gestão")
    sub = p.add_subparsers(required=True)

    p_init = sub.add_parser("init", help="Cria o banco e carrega os dados base")
    p_init.set_defaults(func=cmd_init)

    p_master = sub.add_parser("create-master", help="Cria/atualiza o usuário master")
    p_master.add_argument("--email", default=None)
    p_master.add_argument("--senha", default=None)
    p_master.set_defaults(func=cmd_create_master)

    p_list = sub.add_parser("list", help="Lista entidades")
    p_list.add_argument(
        "entity",
        choices=["clientes", "agenda", "categorias", "origens", "servicos", "consultores", "formas-pagamento"],
    )
    p_list.add_argument("--limit", type=int, default=50)
    p_list.set_defaults(func=cmd_list)

    p_addc = sub.add_parser("add-client", help="Cadastra cliente")
    p_addc.add_argument("--nome", required=True)
    p_addc.add_argument("--cpf", default=None)
    p_addc.add_argument("--email", default=None)
    p_addc.add_argument("--telefone", default=None)
    p_addc.add_argument("--cidade", default=None)
    p_addc.add_argument("--nascimento", default=None, help="ISO date ex: 1990-05-20")
    p_addc.set_defaults(func=cmd_add_client)

    p_book = sub.add_parser("book", help="Cria agendamento")
    p_book.add_argument("--cliente-id", type=int, required=True)
    p_book.add_argument("--consultor-id", type=int, required=True)
    p_book.add_argument("--servico-id", type=int, required=True)
    p_book.add_argument("--quando", required=True, help="ISO datetime ex: 2026-01-14T10:30")
    p_book.add_argument("--valor", type=float, default=None, help="Padrão: preço do serviço")
    p_book.add_argument("--obs", default=None)
    p_book.set_defaults(func=cmd_book)

    p_att = sub.add_parser("attend", help="Registra atendimento de um agendamento")
    p_att.add_argument("--agenda-id", type=int, required=True)
    p_att.add_argument("--valor-final", type=float, default=None)
    p_att.add_argument("--forma-pagamento-id", type=int, default=None)
    p_att.add_argument("--procedimentos", default=None)
    p_att.set_defaults(func=cmd_attend)

    p_pay = sub.add_parser("pay", help="Lança movimento no caixa")
    p_pay.add_argument("--valor", type=float, required=True)
    p_pay.add_argument("--tipo", choices=["entrada", "saida"], default="entrada")
    p_pay.add_argument("--cliente-id", type=int, default=None)
    p_pay.add_argument("--consultor-id", type=int, default=None)
    p_pay.add_argument("--servico-id", type=int, default=None)
    p_pay.add_argument("--forma-pagamento-id", type=int, default=None)
    p_pay.add_argument("--parcelas", type=int, default=1)
    p_pay.add_argument("--obs", default=None)
    p_pay.set_defaults(func=cmd_pay)

    p_rec = sub.add_parser("receipt", help="Emite recibo")
    p_rec.add_argument("--cliente-id", type=int, required=True)
    p_rec.add_argument("--valor", type=float, required=True)
    p_rec.add_argument("--tipo-recibo-id", type=int, default=None)
    p_rec.add_argument("--pagamento-id", type=int, default=None)
    p_rec.add_argument("--descricao", default=None)
    p_rec.set_defaults(func=cmd_receipt)

    p_stats = sub.add_parser("stats", help="Resumo de clientes e caixa")
    p_stats.set_defaults(func=cmd_stats)

    p_bday = sub.add_parser("run-birthdays", help="Aniversariantes do dia e campanhas automáticas")
    p_bday.add_argument("--data", default=None, help="Data de referência ISO (padrão: hoje)")
    p_bday.add_argument("--dry-run", action="store_true", help="Só lista, não envia")
    p_bday.set_defaults(func=cmd_run_birthdays)

    p_serve = sub.add_parser("serve", help="Sobe a API (uvicorn)")
    p_serve.add_argument("--host", default="127.0.0.1")
    p_serve.add_argument("--port", type=int, default=8000)
    p_serve.add_argument("--reload", action="store_true")
    p_serve.set_defaults(func=cmd_serve)

    return p


def main(argv: list[str] | None = None) -> None:
    logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)
    parser = build_parser()
    args = parser.parse_args(argv)
    init_db()  # garante as tabelas
    try:
        args.func(args)
    except (ValueError, LookupError) as e:
        parser.exit(1, f"Erro: {e}\n")


if __name__ == "__main__":
    main()
