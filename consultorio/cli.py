from __future__ import annotations

import argparse
import getpass
import json
import logging
from datetime import date, time

from . import config
from .auth_service import criar_usuario, remover_usuario
from .codigos import CodigoIndisponivelError
from .db import engine
from .relatorios import gerar_dashboard, gerar_relatorio
from .seed import seed_base
from .services import (
    acompanhar_solicitacao,
    aprovar_solicitacao,
    criar_solicitacao,
    init_db,
    lista_consultas_flat,
    lista_pacientes_flat,
    lista_solicitacoes_flat,
    rejeitar_solicitacao,
)


def cmd_init(args: argparse.Namespace) -> None:
    init_db()
    seed_base()
    print(f"Banco inicializado: {engine.url.render_as_string(hide_password=True)}")


def cmd_list(args: argparse.Namespace) -> None:
    if args.entity == "pacientes":
        for p in lista_pacientes_flat(args.search):
            print(f"{p['codigo_prontuario']} | {p['nome']} | {p['setor'] or '-'} | {p['email'] or '-'}")
    elif args.entity == "consultas":
        for c in lista_consultas_flat(args.status, args.search):
            print(f"{c['data']} {c['horario']} | {c['paciente']} | {c['status']} | compareceu: {c['compareceu']}")
    elif args.entity == "solicitacoes":
        for s in lista_solicitacoes_flat(args.status):
            print(f"{s['codigo_rastreamento']} | {s['id']} | {s['nome_funcionario']} | {s['motivo']} | {s['status']}")


def cmd_add_user(args: argparse.Namespace) -> None:
    password = args.password or getpass.getpass("Senha: ")
    try:
        uid = criar_usuario(args.username, password, nome=args.nome)
    except ValueError as e:
        raise SystemExit(str(e))
    print(f"Usuário criado: {uid}")


def cmd_remove_user(args: argparse.Namespace) -> None:
    ok = remover_usuario(args.username)
    print("Removido." if ok else "Usuário não encontrado.")


def cmd_request(args: argparse.Namespace) -> None:
    try:
        sol = criar_solicitacao(
            nome_funcionario=args.nome,
            setor=args.setor,
            motivo=args.motivo,
            descricao=args.descricao,
            genero=args.genero,
            email=args.email,
        )
    except (ValueError, CodigoIndisponivelError) as e:
        raise SystemExit(str(e))
    print(f"Solicitação registrada. Código de rastreamento: {sol['codigo_rastreamento']}")


def cmd_track(args: argparse.Namespace) -> None:
    sol = acompanhar_solicitacao(args.codigo)
    if not sol:
        print("Solicitação não encontrada.")
        return
    print(f"{sol['codigo_rastreamento']} | {sol['nome_funcionario']} | {sol['status']}")
    if sol["observacoes_psicologo"]:
        print(f"Observações: {sol['observacoes_psicologo']}")


def cmd_approve(args: argparse.Namespace) -> None:
    try:
        r = aprovar_solicitacao(
            args.solicitacao_id,
            data=date.fromisoformat(args.data),
            horario=time.fromisoformat(args.horario),
            especialidade=args.especialidade,
            observacoes=args.observacoes,
        )
    except (ValueError, CodigoIndisponivelError) as e:
        raise SystemExit(str(e))
    if r is None:
        raise SystemExit("Solicitação não encontrada.")
    print(f"{r.mensagem} Prontuário {r.codigo_prontuario}, consulta {r.consulta_id}.")
    if r.email_enviado:
        print("E-mail de confirmação enviado.")


def cmd_reject(args: argparse.Namespace) -> None:
    try:
        sol = rejeitar_solicitacao(args.solicitacao_id, args.observacoes)
    except ValueError as e:
        raise SystemExit(str(e))
    print("Rejeitada." if sol else "Solicitação não encontrada.")


def cmd_report(args: argparse.Namespace) -> None:
    dados = {"dashboard": gerar_dashboard(), "relatorio": gerar_relatorio()}
    print(json.dumps(dados, ensure_ascii=False, indent=2))


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="consultorio", description="CLI do Consultório de Psicologia")
    sub = p.add_subparsers(required=True)

    p_init = sub.add_parser("init", help="Cria as tabelas e roda o seed")
    p_init.set_defaults(func=cmd_init)

    p_list = sub.add_parser("list", help="Lista registros")
    p_list.add_argument("entity", choices=["pacientes", "consultas", "solicitacoes"])
    p_list.add_argument("--search", default=None, help="Filtro por nome (pacientes/consultas) ou código")
    p_list.add_argument("--status", default=None)
    p_list.set_defaults(func=cmd_list)

    p_user = sub.add_parser("add-user", help="Cria usuário da equipe (psicóloga)")
    p_user.add_argument("username")
    p_user.add_argument("--nome", default=None)
    p_user.add_argument("--password", default=None, help="Se omitida, é pedida no terminal")
    p_user.set_defaults(func=cmd_add_user)

    p_rm = sub.add_parser("remove-user", help="Remove usuário da equipe")
    p_rm.add_argument("username")
    p_rm.set_defaults(func=cmd_remove_user)

    p_req = sub.add_parser("request", help="Registra uma solicitação de atendimento")
    p_req.add_argument("--nome", required=True)
    p_req.add_argument("--setor", required=True)
    p_req.add_argument("--motivo", required=True)
    p_req.add_argument("--descricao", required=True)
    p_req.add_argument("--genero", choices=["masculino", "feminino", "outro"], default=None)
    p_req.add_argument("--email", default=None)
    p_req.set_defaults(func=cmd_request)

    p_track = sub.add_parser("track", help="Acompanha solicitação pelo código (ex.: S-00001)")
    p_track.add_argument("codigo")
    p_track.set_defaults(func=cmd_track)

    p_ok = sub.add_parser("approve", help="Aprova solicitação e agenda a consulta")
    p_ok.add_argument("solicitacao_id")
    p_ok.add_argument("--data", required=True, help="AAAA-MM-DD")
    p_ok.add_argument("--horario", required=True, help="HH:MM")
    p_ok.add_argument("--especialidade", default=None)
    p_ok.add_argument("--observacoes", default=None)
    p_ok.set_defaults(func=cmd_approve)

    p_no = sub.add_parser("reject", help="Rejeita solicitação")
    p_no.add_argument("solicitacao_id")
    p_no.add_argument("--observacoes", default=None)
    p_no.set_defaults(func=cmd_reject)

    p_rep = sub.add_parser("report", help="Dashboard e relatório em JSON")
    p_rep.set_defaults(func=cmd_report)

    return p


def main(argv: list[str] | None = None) -> None:
    logging.basicConfig(level=config.LOG_LEVEL, format=config.LOG_FORMAT)
    parser = build_parser()
    args = parser.parse_args(argv)
    init_db()  # garante tabelas
    args.func(args)


if __name__ == "__main__":
    main()
