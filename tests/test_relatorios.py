from __future__ import annotations

from datetime import date, time
from types import SimpleNamespace

from consultorio import services
from consultorio.models import Compareceu
from consultorio.relatorios import (
    calcular_relatorio,
    gerar_dashboard,
    gerar_relatorio,
    percentual,
    periodo_do_horario,
)


def _c(d, h, compareceu=None, especialidade=None, motivo=None):
    return SimpleNamespace(data=d, horario=h, compareceu=compareceu, especialidade=especialidade, motivo=motivo)


def test_periodo_do_horario():
    assert periodo_do_horario(time(6, 0)) == "Manhã"
    assert periodo_do_horario(time(11, 59)) == "Manhã"
    assert periodo_do_horario(time(12, 0)) == "Tarde"
    assert periodo_do_horario(time(17, 59)) == "Tarde"
    assert periodo_do_horario(time(18, 0)) == "Noite"
    assert periodo_do_horario(time(5, 30)) == "Noite"


def test_percentual():
    assert percentual(1, 3) == 33.3
    assert percentual(0, 0) == 0.0


def test_relatorio_vazio():
    r = calcular_relatorio([])
    assert r["total"] == 0
    assert r["comparecimento"]["sim"] == {"total": 0, "percentual": 0.0}
    assert r["por_periodo"] == []
    assert r["evolucao_mensal"] == []


def test_calcular_relatorio():
    consultas = [
        _c(date(2026, 1, 5), time(9, 0), Compareceu.SIM, "Psicologia Clínica", "Ansiedade"),
        _c(date(2026, 1, 12), time(14, 0), Compareceu.NAO, "Psicologia Clínica", "Estresse no Trabalho"),
        _c(date(2026, 2, 2), time(10, 0), Compareceu.SIM, "Psicanálise", "Ansiedade"),
        _c(date(2025, 12, 20), time(19, 0), None),
    ]
    r = calcular_relatorio(consultas)

    assert r["total"] == 4
    assert r["comparecimento"] == {
        "sim": {"total": 2, "percentual": 50.0},
        "nao": {"total": 1, "percentual": 25.0},
        "pendente": {"total": 1, "percentual": 25.0},
    }
    assert r["por_periodo"][0] == {"nome": "Manhã", "total": 2, "percentual": 50.0}
    assert {p["nome"] for p in r["por_periodo"]} == {"Manhã", "Tarde", "Noite"}
    assert r["por_especialidade"][0]["nome"] == "Psicologia Clínica"
    assert r["por_motivo"][0] == {"nome": "Ansiedade", "total": 2, "percentual": 50.0}
    assert r["evolucao_mensal"] == [
        {"mes": "2025-12", "rotulo": "dez/2025", "consultas": 1},
        {"mes": "2026-01", "rotulo": "jan/2026", "consultas": 2},
        {"mes": "2026-02", "rotulo": "fev/2026", "consultas": 1},
    ]


def test_gerar_relatorio_do_banco():
    services.criar_consulta(date(2026, 3, 2), time(8, 30), paciente="Ana", compareceu="sim", motivo="Luto")
    services.criar_consulta(date(2026, 3, 9), time(13, 0), paciente="Ana", compareceu="nao")

    r = gerar_relatorio()
    assert r["total"] == 2
    assert r["comparecimento"]["sim"]["total"] == 1
    assert r["comparecimento"]["nao"]["total"] == 1
    assert r["por_motivo"] == [{"nome": "Luto", "total": 1, "percentual": 50.0}]
    assert r["evolucao_mensal"] == [{"mes": "2026-03", "rotulo": "mar/2026", "consultas": 2}]


def test_dashboard():
    hoje = date(2026, 3, 2)
    services.criar_consulta(hoje, time(8, 30), paciente="Ana")
    services.criar_consulta(hoje, time(10, 0), paciente="Bruno", status="realizada")
    services.criar_consulta(date(2026, 3, 9), time(10, 0), paciente="Ana")
    services.criar_solicitacao("Carla", "TI", "Luto", "Perdi um familiar recentemente.")

    d = gerar_dashboard(hoje)
    assert d["data"] == "2026-03-02"
    assert d["consultas_hoje"] == 2
    assert d["consultas_agendadas"] == 2
    assert d["pacientes_unicos"] == 2
    assert d["solicitacoes"] == {"pendente": 1, "aprovada": 0, "rejeitada": 0}
