from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import date, time
from typing import Any, TypeVar

from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session

from . import notificacoes
from .codigos import (
    PREFIXO_PRONTUARIO,
    PREFIXO_RASTREAMENTO,
    com_retentativa,
    proximo_codigo,
)
from .db import Base, db_session, engine
from .models import (
    Compareceu,
    Consulta,
    Genero,
    Paciente,
    Solicitacao,
    StatusConsulta,
    StatusSolicitacao,
    utcnow,
)

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=enum.Enum)


# =========================
# Bootstrap DB
# =========================
def init_db() -> None:
    """Cria as tabelas que ainda não existem."""
    from . import auth_models  # noqa: F401  registra a tabela usuarios no metadata

    Base.metadata.create_all(bind=engine)


# =========================
# Erros / DTO
# =========================
class TransicaoInvalidaError(ValueError):
    """Mudança de status não permitida (só pendente -> aprovada/rejeitada)."""


@dataclass(frozen=True)
class ResultadoAprovacao:
    ok: bool
    solicitacao_id: str
    paciente_id: str
    codigo_prontuario: str
    consulta_id: str
    paciente_criado: bool
    email_enviado: bool
    mensagem: str


def _enum(cls: type[E], valor: E | str | None) -> E | None:
    if valor is None or isinstance(valor, cls):
        return valor
    try:
        return cls(valor)
    except ValueError:
        raise ValueError(f"Valor inválido para {cls.__name__}: {valor!r}") from None


def _texto(valor: str | None) -> str | None:
    # strings vazias de formulário viram None
    if valor is None:
        return None
    valor = valor.strip()
    return valor or None


def _obrigatorio(valor: str | None, campo: str) -> str:
    valor = _texto(valor)
    if not valor:
        raise ValueError(f"{campo} é obrigatório.")
    return valor


def _v(e: enum.Enum | None) -> str | None:
    return e.value if e is not None else None


def _termo_like(busca: str) -> str:
    # % e _ digitados na busca valem como texto, não como curinga
    literal = busca.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{literal}%"


# =========================
# Serialização "flat"
# =========================
def _paciente_dict(p: Paciente) -> dict[str, Any]:
    return {
        "id": p.id,
        "codigo_prontuario": p.codigo_prontuario,
        "nome": p.nome,
        "genero": _v(p.genero),
        "setor": p.setor,
        "email": p.email,
        "telefone": p.telefone,
        "created_at": p.created_at.isoformat(),
    }


def _consulta_dict(c: Consulta, p: Paciente) -> dict[str, Any]:
    return {
        "id": c.id,
        "paciente_id": c.paciente_id,
        "paciente": p.nome,
        "codigo_prontuario": p.codigo_prontuario,
        "genero": _v(p.genero),
        "setor": p.setor,
        "solicitacao_id": c.solicitacao_id,
        "data": c.data.isoformat(),
        "horario": c.horario.strftime("%H:%M"),
        "status": c.status.value,
        "compareceu": c.compareceu.value,
        "especialidade": c.especialidade,
        "motivo": c.motivo,
        "observacoes": c.observacoes,
        "created_at": c.created_at.isoformat(),
    }


def _solicitacao_dict(sol: Solicitacao) -> dict[str, Any]:
    return {
        "id": sol.id,
        "codigo_rastreamento": sol.codigo_rastreamento,
        "nome_funcionario": sol.nome_funcionario,
        "genero": _v(sol.genero),
        "setor": sol.setor,
        "motivo": sol.motivo,
        "descricao": sol.descricao,
        "data_preferencial": sol.data_preferencial.isoformat() if sol.data_preferencial else None,
        "horario_preferencial": sol.horario_preferencial,
        "email": sol.email,
        "telefone": sol.telefone,
        "status": sol.status.value,
        "observacoes_psicologo": sol.observacoes_psicologo,
        "created_at": sol.created_at.isoformat(),
        "avaliada_em": sol.avaliada_em.isoformat() if sol.avaliada_em else None,
    }


def _solicitacao_publica_dict(sol: Solicitacao) -> dict[str, Any]:
    """Visão de acompanhamento: sem descrição (confidencial) nem contatos."""
    return {
        "codigo_rastreamento": sol.codigo_rastreamento,
        "nome_funcionario": sol.nome_funcionario,
        "motivo": sol.motivo,
        "status": sol.status.value,
        "observacoes_psicologo": sol.observacoes_psicologo,
        "created_at": sol.created_at.isoformat(),
        "avaliada_em": sol.avaliada_em.isoformat() if sol.avaliada_em else None,
    }


# =========================
# Pacientes
# =========================
def _novo_paciente(
    s: Session,
    nome: str,
    genero: Genero | None = None,
    setor: str | None = None,
    email: str | None = None,
    telefone: str | None = None,
) -> Paciente:
    p = Paciente(
        codigo_prontuario=proximo_codigo(s, Paciente.codigo_prontuario, PREFIXO_PRONTUARIO),
        nome=nome,
        genero=genero,
        setor=_texto(setor),
        email=_texto(email),
        telefone=_texto(telefone),
    )
    s.add(p)
    s.flush()
    return p


def _buscar_paciente_por_nome(s: Session, nome: str) -> Paciente | None:
    q = (
        select(Paciente)
        .where(func.lower(func.trim(Paciente.nome)) == nome.strip().lower())
        .order_by(Paciente.created_at.asc())
        .limit(1)
    )
    return s.scalars(q).first()


def _localizar_ou_criar_paciente(
    s: Session,
    nome: str,
    genero: Genero | None = None,
    setor: str | None = None,
    email: str | None = None,
    telefone: str | None = None,
) -> tuple[Paciente, bool]:
    """Paciente com o mesmo nome (sem diferenciar maiúsculas) ou um novo prontuário."""
    existente = _buscar_paciente_por_nome(s, nome)
    if existente is not None:
        return existente, False
    return _novo_paciente(s, nome.strip(), genero, setor, email, telefone), True


def localizar_ou_criar_paciente(
    nome: str,
    genero: Genero | str | None = None,
    setor: str | None = None,
    email: str | None = None,
    telefone: str | None = None,
) -> dict[str, Any]:
    nome = _obrigatorio(nome, "Nome do paciente")
    genero = _enum(Genero, genero)

    def _op(s: Session) -> dict[str, Any]:
        p, _ = _localizar_ou_criar_paciente(s, nome, genero, setor, email, telefone)
        return _paciente_dict(p)

    return com_retentativa(_op, "paciente")


def criar_paciente(
    nome: str,
    genero: Genero | str | None = None,
    setor: str | None = None,
    email: str | None = None,
    telefone: str | None = None,
) -> dict[str, Any]:
    nome = _obrigatorio(nome, "Nome do paciente")
    genero = _enum(Genero, genero)

    def _op(s: Session) -> dict[str, Any]:
        return _paciente_dict(_novo_paciente(s, nome, genero, setor, email, telefone))

    paciente = com_retentativa(_op, "paciente")
    logger.info("Paciente %s criado", paciente["codigo_prontuario"])
    return paciente


def lista_pacientes_flat(busca: str | None = None) -> list[dict]:
    q = select(Paciente)
    busca = _texto(busca)
    if busca:
        termo = _termo_like(busca)
        q = q.where(
            or_(
                Paciente.nome.ilike(termo, escape="\\"),
                Paciente.codigo_prontuario.ilike(termo, escape="\\"),
            )
        )
    q = q.order_by(Paciente.created_at.desc(), Paciente.codigo_prontuario.desc())

    with db_session() as s:
        return [_paciente_dict(p) for p in s.scalars(q)]


def get_paciente_flat(paciente_id: str) -> dict | None:
    with db_session() as s:
        p = s.get(Paciente, paciente_id)
        return _paciente_dict(p) if p else None


def get_paciente_por_codigo_flat(codigo: str) -> dict | None:
    with db_session() as s:
        p = s.scalars(select(Paciente).where(Paciente.codigo_prontuario == codigo.strip().upper())).first()
        return _paciente_dict(p) if p else None


_CAMPOS_PACIENTE = {"nome", "genero", "setor", "email", "telefone"}


def atualizar_paciente(paciente_id: str, **campos: Any) -> dict | None:
    desconhecidos = set(campos) - _CAMPOS_PACIENTE
    if desconhecidos:
        raise ValueError(f"Campos não editáveis: {', '.join(sorted(desconhecidos))}")

    with db_session() as s:
        p = s.get(Paciente, paciente_id)
        if not p:
            return None

        for campo, valor in campos.items():
            if campo == "nome":
                p.nome = _obrigatorio(valor, "Nome do paciente")
            elif campo == "genero":
                p.genero = _enum(Genero, valor)
            else:
                setattr(p, campo, _texto(valor))

        s.flush()
        return _paciente_dict(p)


def deletar_paciente(paciente_id: str) -> bool:
    """Remove o paciente e, em cascata, todas as suas consultas."""
    with db_session() as s:
        p = s.get(Paciente, paciente_id)
        if not p:
            return False
        s.delete(p)
        logger.info("Paciente %s removido", p.codigo_prontuario)
        return True


# =========================
# Consultas
# =========================
def _consultas_query():
    return select(Consulta, Paciente).join(Paciente, Paciente.id == Consulta.paciente_id)


def lista_consultas_flat(status: StatusConsulta | str | None = None, busca: str | None = None) -> list[dict]:
    q = _consultas_query()
    status = _enum(StatusConsulta, status)
    if status is not None:
        q = q.where(Consulta.status == status)
    busca = _texto(busca)
    if busca:
        q = q.where(Paciente.nome.ilike(_termo_like(busca), escape="\\"))
    q = q.order_by(Consulta.created_at.desc())

    with db_session() as s:
        return [_consulta_dict(c, p) for c, p in s.execute(q).all()]


def consultas_do_paciente_flat(paciente_id: str) -> list[dict] | None:
    """None se o paciente não existe."""
    with db_session() as s:
        if s.get(Paciente, paciente_id) is None:
            return None
        q = _consultas_query().where(Consulta.paciente_id == paciente_id).order_by(Consulta.created_at.desc())
        return [_consulta_dict(c, p) for c, p in s.execute(q).all()]


def get_consulta_flat(consulta_id: str) -> dict | None:
    with db_session() as s:
        c = s.get(Consulta, consulta_id)
        return _consulta_dict(c, c.paciente) if c else None


def criar_consulta(
    data: date,
    horario: time,
    paciente_id: str | None = None,
    paciente: str | None = None,
    genero: Genero | str | None = None,
    setor: str | None = None,
    email: str | None = None,
    telefone: str | None = None,
    status: StatusConsulta | str | None = None,
    compareceu: Compareceu | str | None = None,
    especialidade: str | None = None,
    motivo: str | None = None,
    observacoes: str | None = None,
) -> dict[str, Any]:
    """
    Cadastro direto de consulta.
    - com paciente_id: o paciente precisa existir
    - só com o nome: localiza o paciente pelo nome ou abre um novo prontuário
    """
    nome = _texto(paciente)
    if not paciente_id and not nome:
        raise ValueError("Informe o paciente (paciente_id ou nome).")

    genero = _enum(Genero, genero)
    status = _enum(StatusConsulta, status) or StatusConsulta.AGENDADA
    compareceu = _enum(Compareceu, compareceu) or Compareceu.PENDENTE

    def _op(s: Session) -> dict[str, Any]:
        if paciente_id:
            p = s.get(Paciente, paciente_id)
            if p is None:
                raise ValueError("Paciente não encontrado.")
        else:
            p, _ = _localizar_ou_criar_paciente(s, nome, genero, setor, email, telefone)

        c = Consulta(
            paciente_id=p.id,
            data=data,
            horario=horario,
            status=status,
            compareceu=compareceu,
            especialidade=_texto(especialidade),
            motivo=_texto(motivo),
            observacoes=_texto(observacoes),
        )
        s.add(c)
        s.flush()
        return _consulta_dict(c, p)

    return com_retentativa(_op, "consulta")


_CAMPOS_CONSULTA = {"data", "horario", "status", "compareceu", "especialidade", "motivo", "observacoes"}


def atualizar_consulta(consulta_id: str, **campos: Any) -> dict | None:
    desconhecidos = set(campos) - _CAMPOS_CONSULTA
    if desconhecidos:
        raise ValueError(f"Campos não editáveis: {', '.join(sorted(desconhecidos))}")

    with db_session() as s:
        c = s.get(Consulta, consulta_id)
        if not c:
            return None

        for campo, valor in campos.items():
            if campo in ("data", "horario", "status", "compareceu") and valor is None:
                raise ValueError(f"{campo} é obrigatório.")
            if campo in ("data", "horario"):
                setattr(c, campo, valor)
            elif campo == "status":
                c.status = _enum(StatusConsulta, valor)
            elif campo == "compareceu":
                c.compareceu = _enum(Compareceu, valor)
            else:
                setattr(c, campo, _texto(valor))

        s.flush()
        return _consulta_dict(c, c.paciente)


def deletar_consulta(consulta_id: str) -> bool:
    with db_session() as s:
        c = s.get(Consulta, consulta_id)
        if not c:
            return False
        s.delete(c)
        return True


# =========================
# Solicitações
# =========================
def criar_solicitacao(
    nome_funcionario: str,
    setor: str,
    motivo: str,
    descricao: str,
    genero: Genero | str | None = None,
    data_preferencial: date | None = None,
    horario_preferencial: str | None = None,
    email: str | None = None,
    telefone: str | None = None,
) -> dict[str, Any]:
    """Solicitação do funcionário: nasce pendente, com código de rastreamento."""
    nome_funcionario = _obrigatorio(nome_funcionario, "Nome")
    setor = _obrigatorio(setor, "Setor")
    motivo = _obrigatorio(motivo, "Motivo")
    descricao = _obrigatorio(descricao, "Descrição")
    if len(descricao) < 10:
        raise ValueError("Descrição deve ter no mínimo 10 caracteres.")
    genero = _enum(Genero, genero)

    def _op(s: Session) -> dict[str, Any]:
        sol = Solicitacao(
            codigo_rastreamento=proximo_codigo(s, Solicitacao.codigo_rastreamento, PREFIXO_RASTREAMENTO),
            nome_funcionario=nome_funcionario,
            genero=genero,
            setor=setor,
            motivo=motivo,
            descricao=descricao,
            data_preferencial=data_preferencial,
            horario_preferencial=_texto(horario_preferencial),
            email=_texto(email),
            telefone=_texto(telefone),
            status=StatusSolicitacao.PENDENTE,
        )
        s.add(sol)
        s.flush()
        return _solicitacao_dict(sol)

    sol = com_retentativa(_op, "solicitação")
    logger.info("Solicitação %s registrada", sol["codigo_rastreamento"])
    return sol


def lista_solicitacoes_flat(status: StatusSolicitacao | str | None = None) -> list[dict]:
    q = select(Solicitacao)
    status = _enum(StatusSolicitacao, status)
    if status is not None:
        q = q.where(Solicitacao.status == status)
    q = q.order_by(Solicitacao.created_at.desc(), Solicitacao.codigo_rastreamento.desc())

    with db_session() as s:
        return [_solicitacao_dict(sol) for sol in s.scalars(q)]


def get_solicitacao_flat(solicitacao_id: str) -> dict | None:
    with db_session() as s:
        sol = s.get(Solicitacao, solicitacao_id)
        return _solicitacao_dict(sol) if sol else None


def acompanhar_solicitacao(codigo: str) -> dict | None:
    """Consulta pública pelo código de rastreamento (ex.: ' s-00001 ' -> S-00001)."""
    codigo = (codigo or "").strip().upper()
    if not codigo:
        return None
    with db_session() as s:
        sol = s.scalars(select(Solicitacao).where(Solicitacao.codigo_rastreamento == codigo)).first()
        return _solicitacao_publica_dict(sol) if sol else None


_CAMPOS_SOLICITACAO = {"observacoes_psicologo"}


def atualizar_solicitacao(solicitacao_id: str, **campos: Any) -> dict | None:
    """Só as observações são editáveis; o status muda por aprovar/rejeitar."""
    desconhecidos = set(campos) - _CAMPOS_SOLICITACAO
    if desconhecidos:
        raise ValueError(f"Campos não editáveis: {', '.join(sorted(desconhecidos))}")

    with db_session() as s:
        sol = s.get(Solicitacao, solicitacao_id)
        if not sol:
            return None
        if "observacoes_psicologo" in campos:
            sol.observacoes_psicologo = _texto(campos["observacoes_psicologo"])
        s.flush()
        return _solicitacao_dict(sol)


def deletar_solicitacao(solicitacao_id: str) -> bool:
    with db_session() as s:
        sol = s.get(Solicitacao, solicitacao_id)
        if not sol:
            return False
        # consultas geradas continuam, só perdem o vínculo
        for c in sol.consultas:
            c.solicitacao_id = None
        s.delete(sol)
        return True


def _transicao_negada(sol: Solicitacao, destino: StatusSolicitacao) -> TransicaoInvalidaError:
    return TransicaoInvalidaError(
        f"Solicitação {sol.codigo_rastreamento} já está {sol.status.value}; "
        f"não pode passar para {destino.value}."
    )


def _verifica_transicao(sol: Solicitacao, destino: StatusSolicitacao) -> None:
    if sol.status != StatusSolicitacao.PENDENTE:
        raise _transicao_negada(sol, destino)


def _avaliar(s: Session, sol: Solicitacao, destino: StatusSolicitacao, observacoes: str | None) -> None:
    """
    pendente -> destino com UPDATE condicional: se outra avaliação gravou
    antes (mesmo depois da leitura), nenhuma linha muda e a transição é negada.
    """
    _verifica_transicao(sol, destino)
    r = s.execute(
        update(Solicitacao)
        .where(Solicitacao.id == sol.id, Solicitacao.status == StatusSolicitacao.PENDENTE)
        .values(status=destino, observacoes_psicologo=observacoes, avaliada_em=utcnow())
        .execution_options(synchronize_session=False)
    )
    s.refresh(sol)
    if r.rowcount != 1:
        raise _transicao_negada(sol, destino)


def aprovar_solicitacao(
    solicitacao_id: str,
    data: date,
    horario: time,
    especialidade: str | None = None,
    observacoes: str | None = None,
) -> ResultadoAprovacao | None:
    """
    Caso de uso: aprovar solicitação (uma transação só).
    - localiza ou cadastra o paciente a partir dos dados do funcionário
    - marca a solicitação como aprovada
    - agenda a consulta vinculada
    Depois do commit, envia o e-mail de confirmação (se houver e-mail).
    """
    obs = _texto(observacoes)

    def _op(s: Session) -> dict[str, Any] | None:
        sol = s.get(Solicitacao, solicitacao_id)
        if sol is None:
            return None
        _avaliar(s, sol, StatusSolicitacao.APROVADA, obs)

        p, criado = _localizar_ou_criar_paciente(
            s,
            sol.nome_funcionario,
            genero=sol.genero,
            setor=sol.setor,
            email=sol.email,
            telefone=sol.telefone,
        )

        c = Consulta(
            paciente_id=p.id,
            solicitacao_id=sol.id,
            data=data,
            horario=horario,
            status=StatusConsulta.AGENDADA,
            compareceu=Compareceu.PENDENTE,
            especialidade=_texto(especialidade),
            motivo=sol.motivo,
            observacoes=f"Solicitação aprovada. {obs or ''}".strip(),
        )
        s.add(c)
        s.flush()

        return {
            "codigo": sol.codigo_rastreamento,
            "email": sol.email,
            "nome": sol.nome_funcionario,
            "paciente_id": p.id,
            "codigo_prontuario": p.codigo_prontuario,
            "paciente_criado": criado,
            "consulta_id": c.id,
        }

    r = com_retentativa(_op, "aprovação de solicitação")
    if r is None:
        return None

    logger.info("Solicitação %s aprovada (consulta %s)", r["codigo"], r["consulta_id"])

    email_enviado = False
    if r["email"]:
        email_enviado = notificacoes.enviar_email_confirmacao(
            para=r["email"],
            nome=r["nome"],
            data=data,
            horario=horario.strftime("%H:%M"),
        )

    return ResultadoAprovacao(
        ok=True,
        solicitacao_id=solicitacao_id,
        paciente_id=r["paciente_id"],
        codigo_prontuario=r["codigo_prontuario"],
        consulta_id=r["consulta_id"],
        paciente_criado=r["paciente_criado"],
        email_enviado=email_enviado,
        mensagem="Solicitação aprovada e consulta agendada.",
    )


def rejeitar_solicitacao(solicitacao_id: str, observacoes: str | None = None) -> dict | None:
    with db_session() as s:
        sol = s.get(Solicitacao, solicitacao_id)
        if not sol:
            return None
        _avaliar(s, sol, StatusSolicitacao.REJEITADA, _texto(observacoes))

        logger.info("Solicitação %s rejeitada", sol.codigo_rastreamento)
        return _solicitacao_dict(sol)
