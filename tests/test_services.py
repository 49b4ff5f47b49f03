from __future__ import annotations

import threading
from datetime import date, time

import pytest

from consultorio import notificacoes, services
from consultorio.services import TransicaoInvalidaError


def _solicitacao(**campos):
    dados = {
        "nome_funcionario": "Maria Souza",
        "setor": "RH",
        "motivo": "Ansiedade",
        "descricao": "Tenho tido dificuldade para dormir antes das reuniões.",
        "genero": "feminino",
        "email": "maria@empresa.com",
    }
    dados.update(campos)
    return services.criar_solicitacao(**dados)


# Solicitações

def test_criar_solicitacao_nasce_pendente_com_codigo():
    sol = _solicitacao()
    assert sol["codigo_rastreamento"] == "S-00001"
    assert sol["status"] == "pendente"
    assert sol["avaliada_em"] is None
    assert _solicitacao(nome_funcionario="João")["codigo_rastreamento"] == "S-00002"


@pytest.mark.parametrize(
    "campos, mensagem",
    [
        ({"nome_funcionario": "  "}, "Nome"),
        ({"setor": ""}, "Setor"),
        ({"descricao": "curta"}, "10 caracteres"),
        ({"genero": "desconhecido"}, "Valor inválido"),
    ],
)
def test_criar_solicitacao_invalida(campos, mensagem):
    with pytest.raises(ValueError, match=mensagem):
        _solicitacao(**campos)
    assert services.lista_solicitacoes_flat() == []


def test_acompanhar_solicitacao_normaliza_codigo_e_oculta_dados():
    _solicitacao(telefone="11 99999-0000")
    pub = services.acompanhar_solicitacao("  s-00001 ")
    assert pub["codigo_rastreamento"] == "S-00001"
    assert pub["status"] == "pendente"
    assert "descricao" not in pub
    assert "email" not in pub
    assert "telefone" not in pub
    assert services.acompanhar_solicitacao("S-99999") is None
    assert services.acompanhar_solicitacao("") is None


def test_lista_solicitacoes_filtra_por_status():
    a = _solicitacao()
    _solicitacao(nome_funcionario="João")
    services.rejeitar_solicitacao(a["id"], "Encaminhada ao RH")

    assert [s["nome_funcionario"] for s in services.lista_solicitacoes_flat("pendente")] == ["João"]
    assert [s["id"] for s in services.lista_solicitacoes_flat("rejeitada")] == [a["id"]]
    assert len(services.lista_solicitacoes_flat()) == 2


# Aprovação

def test_aprovar_cria_paciente_e_consulta():
    sol = _solicitacao()
    r = services.aprovar_solicitacao(sol["id"], date(2026, 3, 5), time(14, 30), "Psicologia Clínica", "Primeira sessão")

    assert r.ok and r.paciente_criado
    assert r.codigo_prontuario == "P-00001"
    assert r.email_enviado is False  # sem token do Gmail

    aprovada = services.get_solicitacao_flat(sol["id"])
    assert aprovada["status"] == "aprovada"
    assert aprovada["observacoes_psicologo"] == "Primeira sessão"
    assert aprovada["avaliada_em"] is not None

    consulta = services.get_consulta_flat(r.consulta_id)
    assert consulta["paciente_id"] == r.paciente_id
    assert consulta["solicitacao_id"] == sol["id"]
    assert consulta["data"] == "2026-03-05"
    assert consulta["horario"] == "14:30"
    assert consulta["status"] == "agendada"
    assert consulta["compareceu"] == "pendente"
    assert consulta["motivo"] == "Ansiedade"
    assert consulta["especialidade"] == "Psicologia Clínica"
    assert consulta["observacoes"] == "Solicitação aprovada. Primeira sessão"

    paciente = services.get_paciente_flat(r.paciente_id)
    assert paciente["nome"] == "Maria Souza"
    assert paciente["genero"] == "feminino"
    assert paciente["setor"] == "RH"
    assert paciente["email"] == "maria@empresa.com"


def test_aprovar_reaproveita_paciente_com_mesmo_nome():
    existente = services.criar_paciente("maria souza", setor="Financeiro")
    sol = _solicitacao(nome_funcionario="  Maria Souza ")

    r = services.aprovar_solicitacao(sol["id"], date(2026, 3, 5), time(9, 0))

    assert r.paciente_criado is False
    assert r.paciente_id == existente["id"]
    assert r.codigo_prontuario == "P-00001"
    assert len(services.lista_pacientes_flat()) == 1
    assert services.get_consulta_flat(r.consulta_id)["observacoes"] == "Solicitação aprovada."


def test_aprovar_envia_email_depois_do_commit(monkeypatch):
    enviados = []

    def fake_envio(para, nome, data, horario):
        # a solicitação já precisa estar gravada como aprovada
        assert services.lista_solicitacoes_flat("aprovada")
        enviados.append((para, nome, data, horario))
        return True

    monkeypatch.setattr(notificacoes, "enviar_email_confirmacao", fake_envio)
    sol = _solicitacao()

    r = services.aprovar_solicitacao(sol["id"], date(2026, 3, 5), time(8, 5))

    assert r.email_enviado is True
    assert enviados == [("maria@empresa.com", "Maria Souza", date(2026, 3, 5), "08:05")]


def test_aprovar_sem_email_nao_tenta_enviar(monkeypatch):
    monkeypatch.setattr(
        notificacoes, "enviar_email_confirmacao", lambda **_: pytest.fail("sem e-mail não deve enviar")
    )
    sol = _solicitacao(email=None)
    r = services.aprovar_solicitacao(sol["id"], date(2026, 3, 5), time(8, 0))
    assert r.email_enviado is False


def test_aprovar_inexistente():
    assert services.aprovar_solicitacao("nao-existe", date(2026, 3, 5), time(8, 0)) is None


def test_transicoes_so_a_partir_de_pendente():
    sol = _solicitacao()
    services.aprovar_solicitacao(sol["id"], date(2026, 3, 5), time(10, 0))

    with pytest.raises(TransicaoInvalidaError):
        services.aprovar_solicitacao(sol["id"], date(2026, 3, 6), time(10, 0))
    with pytest.raises(TransicaoInvalidaError):
        services.rejeitar_solicitacao(sol["id"], "tarde demais")

    # nenhuma consulta extra foi criada
    assert len(services.lista_consultas_flat()) == 1


@pytest.mark.parametrize("segunda", ["aprovar", "rejeitar"])
def test_avaliacoes_simultaneas_so_uma_vence(monkeypatch, segunda):
    sol = _solicitacao()
    barreira = threading.Barrier(2, timeout=5)
    original = services._verifica_transicao

    def lado_a_lado(*args):
        # as duas threads leem a solicitação pendente antes de qualquer gravação
        original(*args)
        barreira.wait()

    monkeypatch.setattr(services, "_verifica_transicao", lado_a_lado)

    operacoes = {
        "aprovar": lambda: services.aprovar_solicitacao(sol["id"], date(2026, 3, 5), time(10, 0)),
        "rejeitar": lambda: services.rejeitar_solicitacao(sol["id"], "sem agenda"),
    }
    sucessos, erros = [], []

    def rodar(op):
        try:
            sucessos.append(op())
        except Exception as e:
            erros.append(e)

    threads = [threading.Thread(target=rodar, args=(operacoes[nome],)) for nome in ("aprovar", segunda)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=15)

    assert len(sucessos) == 1
    assert len(erros) == 1 and isinstance(erros[0], TransicaoInvalidaError)

    final = services.get_solicitacao_flat(sol["id"])
    consultas = services.lista_consultas_flat()
    if final["status"] == "aprovada":
        assert len(consultas) == 1
    else:
        assert final["status"] == "rejeitada"
        assert consultas == []


def test_rejeitar():
    sol = _solicitacao()
    rej = services.rejeitar_solicitacao(sol["id"], "  Fora do escopo  ")
    assert rej["status"] == "rejeitada"
    assert rej["observacoes_psicologo"] == "Fora do escopo"
    assert rej["avaliada_em"] is not None
    assert services.lista_pacientes_flat() == []
    assert services.rejeitar_solicitacao("nao-existe") is None


def test_atualizar_solicitacao_so_mexe_no_que_veio():
    sol = _solicitacao()
    assert services.atualizar_solicitacao(sol["id"], observacoes_psicologo=" Ligar antes ")["observacoes_psicologo"] == "Ligar antes"

    # sem campos nada muda
    assert services.atualizar_solicitacao(sol["id"])["observacoes_psicologo"] == "Ligar antes"
    assert services.atualizar_solicitacao(sol["id"], observacoes_psicologo=None)["observacoes_psicologo"] is None

    with pytest.raises(ValueError, match="status"):
        services.atualizar_solicitacao(sol["id"], status="aprovada")
    assert services.atualizar_solicitacao("nao-existe") is None


def test_deletar_solicitacao_mantem_consulta():
    sol = _solicitacao()
    r = services.aprovar_solicitacao(sol["id"], date(2026, 3, 5), time(10, 0))

    assert services.deletar_solicitacao(sol["id"]) is True
    assert services.get_solicitacao_flat(sol["id"]) is None
    assert services.get_consulta_flat(r.consulta_id)["solicitacao_id"] is None
    assert services.deletar_solicitacao(sol["id"]) is False


# Pacientes

def test_busca_de_pacientes_por_nome_ou_codigo():
    services.criar_paciente("Ana Lima")
    services.criar_paciente("Bruno Alves")

    assert [p["nome"] for p in services.lista_pacientes_flat("ana")] == ["Ana Lima"]
    assert [p["nome"] for p in services.lista_pacientes_flat("p-00002")] == ["Bruno Alves"]
    assert [p["nome"] for p in services.lista_pacientes_flat()] == ["Bruno Alves", "Ana Lima"]
    assert services.get_paciente_por_codigo_flat(" p-00001 ")["nome"] == "Ana Lima"


def test_busca_trata_curingas_como_texto():
    services.criar_paciente("Ana_Lima")
    services.criar_paciente("Bruno Alves")
    services.criar_consulta(date(2026, 2, 1), time(10, 0), paciente="Ana_Lima")
    services.criar_consulta(date(2026, 2, 1), time(11, 0), paciente="Bruno Alves")

    assert [p["nome"] for p in services.lista_pacientes_flat("_")] == ["Ana_Lima"]
    assert services.lista_pacientes_flat("%") == []
    assert [c["paciente"] for c in services.lista_consultas_flat(busca="_")] == ["Ana_Lima"]
    assert services.lista_consultas_flat(busca="%") == []


def test_localizar_ou_criar_paciente():
    a = services.localizar_ou_criar_paciente("Ana Lima", genero="feminino")
    b = services.localizar_ou_criar_paciente(" ana lima ")
    c = services.localizar_ou_criar_paciente("Ana Lima Souza")

    assert a["id"] == b["id"]
    assert b["genero"] == "feminino"
    assert c["codigo_prontuario"] == "P-00002"
    with pytest.raises(ValueError):
        services.localizar_ou_criar_paciente("")


def test_atualizar_paciente():
    p = services.criar_paciente("Ana Lima")
    atualizado = services.atualizar_paciente(p["id"], setor="TI", email="", genero="outro")
    assert atualizado["setor"] == "TI"
    assert atualizado["email"] is None
    assert atualizado["genero"] == "outro"
    assert atualizado["codigo_prontuario"] == p["codigo_prontuario"]

    with pytest.raises(ValueError):
        services.atualizar_paciente(p["id"], codigo_prontuario="P-99999")
    with pytest.raises(ValueError):
        services.atualizar_paciente(p["id"], nome=" ")
    assert services.atualizar_paciente("nao-existe", setor="TI") is None


def test_deletar_paciente_remove_consultas():
    c = services.criar_consulta(date(2026, 1, 10), time(9, 0), paciente="Ana Lima")
    services.criar_consulta(date(2026, 1, 17), time(9, 0), paciente_id=c["paciente_id"])

    assert len(services.consultas_do_paciente_flat(c["paciente_id"])) == 2
    assert services.deletar_paciente(c["paciente_id"]) is True
    assert services.lista_consultas_flat() == []
    assert services.consultas_do_paciente_flat(c["paciente_id"]) is None
    assert services.deletar_paciente(c["paciente_id"]) is False


# Consultas

def test_criar_consulta_por_nome_localiza_ou_cria():
    a = services.criar_consulta(date(2026, 2, 1), time(10, 0), paciente="Carlos Dias", genero="masculino")
    b = services.criar_consulta(date(2026, 2, 8), time(10, 0), paciente="CARLOS DIAS")

    assert a["paciente_id"] == b["paciente_id"]
    assert a["codigo_prontuario"] == "P-00001"
    assert a["genero"] == "masculino"
    assert a["status"] == "agendada"
    assert a["compareceu"] == "pendente"
    assert a["solicitacao_id"] is None


def test_criar_consulta_sem_paciente():
    with pytest.raises(ValueError, match="Informe o paciente"):
        services.criar_consulta(date(2026, 2, 1), time(10, 0), paciente="  ")
    with pytest.raises(ValueError, match="Paciente não encontrado"):
        services.criar_consulta(date(2026, 2, 1), time(10, 0), paciente_id="nao-existe")


def test_lista_consultas_filtra_status_e_nome():
    c = services.criar_consulta(date(2026, 2, 1), time(10, 0), paciente="Carlos Dias")
    services.criar_consulta(date(2026, 2, 2), time(15, 0), paciente="Daniela Rocha", status="realizada")

    assert [x["paciente"] for x in services.lista_consultas_flat(status="realizada")] == ["Daniela Rocha"]
    assert [x["id"] for x in services.lista_consultas_flat(busca="carlos")] == [c["id"]]
    with pytest.raises(ValueError):
        services.lista_consultas_flat(status="remarcada")


def test_atualizar_consulta():
    c = services.criar_consulta(date(2026, 2, 1), time(10, 0), paciente="Carlos Dias")
    atualizada = services.atualizar_consulta(
        c["id"], status="realizada", compareceu="sim", horario=time(11, 15), observacoes="ok"
    )
    assert atualizada["status"] == "realizada"
    assert atualizada["compareceu"] == "sim"
    assert atualizada["horario"] == "11:15"
    assert atualizada["observacoes"] == "ok"

    with pytest.raises(ValueError):
        services.atualizar_consulta(c["id"], paciente_id="outro")
    with pytest.raises(ValueError):
        services.atualizar_consulta(c["id"], data=None)
    with pytest.raises(ValueError, match="status"):
        services.atualizar_consulta(c["id"], status=None)
    with pytest.raises(ValueError, match="compareceu"):
        services.atualizar_consulta(c["id"], compareceu=None)
    # nada foi alterado pelas tentativas recusadas
    assert services.get_consulta_flat(c["id"])["compareceu"] == "sim"
    assert services.atualizar_consulta("nao-existe", status="cancelada") is None


def test_deletar_consulta():
    c = services.criar_consulta(date(2026, 2, 1), time(10, 0), paciente="Carlos Dias")
    assert services.deletar_consulta(c["id"]) is True
    assert services.deletar_consulta(c["id"]) is False
    # o paciente continua
    assert services.get_paciente_flat(c["paciente_id"]) is not None
