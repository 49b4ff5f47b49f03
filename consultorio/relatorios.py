from __future__ import annotations

from collections import Counter
from datetime import date, time
from typing import Any, Iterable

from sqlalchemy import func, select

from .db import db_session
from .models import Compareceu, Consulta, Solicitacao, StatusConsulta, StatusSolicitacao

MESES_ABREV = ["jan", "fev", "mar", "abr", "mai", "jun", "jul", "ago", "set", "out", "nov", "dez"]


def periodo_do_horario(horario: time) -> str:
    if 6 <= horario.hour < 12:
        return "Manhã"
    if 12 <= horario.hour < 18:
        return "Tarde"
    return "Noite"


def percentual(parte: int, total: int) -> float:
    return round(parte / total * 100, 1) if total else 0.0


def _distribuicao(contagem: Counter, total: int) -> list[dict[str, Any]]:
    return [
        {"nome": nome, "total": n, "percentual": percentual(n, total)}
        for nome, n in contagem.most_common()
    ]


def calcular_relatorio(consultas: Iterable[Any]) -> dict[str, Any]:
    """
    Agrega uma sequência de consultas (objetos com data, horario,
    compareceu, especialidade, motivo).
    compareceu nulo conta como pendente.
    """
    consultas = list(consultas)
    total = len(consultas)

    comparecimento = Counter({"sim": 0, "nao": 0, "pendente": 0})
    por_periodo: Counter = Counter()
    por_especialidade: Counter = Counter()
    por_motivo: Counter = Counter()
    por_mes: Counter = Counter()

    for c in consultas:
        flag = c.compareceu.value if c.compareceu is not None else Compareceu.PENDENTE.value
        comparecimento[flag] += 1

        por_periodo[periodo_do_horario(c.horario)] += 1
        if c.especialidade:
            por_especialidade[c.especialidade] += 1
        if c.motivo:
            por_motivo[c.motivo] += 1
        por_mes[(c.data.year, c.data.month)] += 1

    return {
        "total": total,
        "comparecimento": {
            k: {"total": comparecimento[k], "percentual": percentual(comparecimento[k], total)}
            for k in ("sim", "nao", "pendente")
        },
        "por_periodo": _distribuicao(por_periodo, total),
        "por_especialidade": _distribuicao(por_especialidade, total),
        "por_motivo": _distribuicao(por_motivo, total),
        "evolucao_mensal": [
            {
                "mes": f"{ano:04d}-{mes:02d}",
                "rotulo": f"{MESES_ABREV[mes - 1]}/{ano}",
                "consultas": n,
            }
            for (ano, mes), n in sorted(por_mes.items())
        ],
    }


def gerar_relatorio() -> dict[str, Any]:
    with db_session() as s:
        rows = s.execute(
            select(
                Consulta.data,
                Consulta.horario,
                Consulta.compareceu,
                Consulta.especialidade,
                Consulta.motivo,
            )
        ).all()
        return calcular_relatorio(rows)


def gerar_dashboard(hoje: date | None = None) -> dict[str, Any]:
    hoje = hoje or date.today()

    with db_session() as s:
        consultas_hoje = s.scalar(select(func.count(Consulta.id)).where(Consulta.data == hoje))
        agendadas = s.scalar(select(func.count(Consulta.id)).where(Consulta.status == StatusConsulta.AGENDADA))
        pacientes_unicos = s.scalar(select(func.count(func.distinct(Consulta.paciente_id))))

        por_status = dict(
            s.execute(select(Solicitacao.status, func.count(Solicitacao.id)).group_by(Solicitacao.status)).all()
        )

    return {
        "data": hoje.isoformat(),
        "consultas_hoje": consultas_hoje or 0,
        "consultas_agendadas": agendadas or 0,
        "pacientes_unicos": pacientes_unicos or 0,
        "solicitacoes": {st.value: por_status.get(st, 0) for st in StatusSolicitacao},
    }
