from __future__ import annotations

import base64
import json
import os
from datetime import date, datetime, time, timezone

import pandas as pd
import requests
import streamlit as st

st.set_page_config(page_title="Consultório de Psicologia", layout="wide")

API_BASE = os.getenv("API_BASE", "http://127.0.0.1:8000")

MOTIVOS = [
    "Ansiedade",
    "Depressão",
    "Estresse no Trabalho",
    "Relacionamentos",
    "Autoestima",
    "Luto",
    "Transtornos de Ansiedade",
    "Desenvolvimento Pessoal",
    "Outro",
]
ESPECIALIDADES = [
    "Psicologia Clínica",
    "Psicologia Organizacional",
    "Terapia Cognitivo-Comportamental",
    "Psicanálise",
    "Orientação Vocacional",
    "Avaliação Psicológica",
]
GENEROS = ["", "masculino", "feminino", "outro"]
PERIODOS = ["", "Manhã (8h-12h)", "Tarde (13h-17h)", "Sem preferência"]



# JWT helpers (só para a UI, sem verificar assinatura)

def _b64url_decode(data: str) -> bytes:
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


def jwt_payload(token: str) -> dict:
    try:
        parts = token.split(".")
        if len(parts) != 3:
            return {}
        payload = json.loads(_b64url_decode(parts[1]).decode("utf-8"))
        return payload if isinstance(payload, dict) else {}
    except (ValueError, UnicodeDecodeError):
        return {}


def jwt_is_expired(token: str) -> bool:
    exp = jwt_payload(token).get("exp")
    try:
        exp_int = int(exp)
    except (TypeError, ValueError):
        return False

    now = int(datetime.now(tz=timezone.utc).timestamp())
    return now >= (exp_int - 5)


def jwt_username(token: str) -> str:
    p = jwt_payload(token)
    return str(p.get("username") or p.get("sub") or "usuário")



# HTTP client (com JWT)

def _headers(token: str | None) -> dict:
    return {"Authorization": f"Bearer {token}"} if token else {}


def _check(r: requests.Response) -> None:
    if r.status_code == 401:
        raise PermissionError("401 Unauthorized (token inválido/expirado ou backend reiniciado).")
    if r.status_code >= 400:
        try:
            detail = r.json().get("detail")
        except ValueError:
            detail = r.text
        raise RuntimeError(f"Erro {r.status_code}: {detail}")


def api_get(path: str, token: str | None = None, params: dict | None = None) -> dict | list:
    r = requests.get(f"{API_BASE}{path}", headers=_headers(token), params=params, timeout=10)
    _check(r)
    return r.json()


def api_post(path: str, payload: dict, token: str | None = None) -> dict:
    r = requests.post(f"{API_BASE}{path}", headers=_headers(token), json=payload, timeout=10)
    _check(r)
    return r.json()


def api_patch(path: str, payload: dict, token: str) -> dict:
    r = requests.patch(f"{API_BASE}{path}", headers=_headers(token), json=payload, timeout=10)
    _check(r)
    return r.json()


def api_delete(path: str, token: str) -> None:
    r = requests.delete(f"{API_BASE}{path}", headers=_headers(token), timeout=10)
    _check(r)


def api_login(username: str, password: str) -> str:
    # OAuth2PasswordRequestForm => x-www-form-urlencoded
    r = requests.post(
        f"{API_BASE}/api/auth/login",
        data={"username": username, "password": password},
        timeout=10,
    )
    r.raise_for_status()
    return r.json()["access_token"]


def is_logged_in() -> bool:
    token = st.session_state.get("token")
    return bool(token) and isinstance(token, str)


def do_logout() -> None:
    st.session_state.pop("token", None)
    st.session_state.pop("auth_error", None)
    st.rerun()


def require_auth() -> str | None:
    token = st.session_state.get("token")
    if not token:
        st.warning("Área restrita à psicóloga. Faça login pela barra lateral.")
        return None

    if jwt_is_expired(token):
        st.error("Sessão expirada. Faça logout pela barra lateral e entre novamente.")
        return None

    return token


def sessao_invalida(e: PermissionError) -> None:
    st.session_state["auth_error"] = str(e)
    st.error("Sessão inválida. Faça logout e entre novamente.")


def fmt_data(iso: str | None) -> str:
    return date.fromisoformat(iso).strftime("%d/%m/%Y") if iso else "-"


# mensagens que precisam sobreviver ao st.rerun()

def avisar(tipo: str, msg: str) -> None:
    st.session_state.setdefault("avisos", []).append((tipo, msg))


def mostrar_avisos() -> None:
    for tipo, msg in st.session_state.pop("avisos", []):
        getattr(st, tipo)(msg)


def _indice(opcoes: list[str], valor: str | None) -> int:
    return opcoes.index(valor) if valor in opcoes else 0


def form_editar_consulta(c: dict, token: str, chave: str) -> None:
    """Status, comparecimento, data/horário e observações de uma consulta."""
    with st.form(f"editar_consulta_{chave}_{c['id']}"):
        c1, c2 = st.columns(2)
        status_opcoes = ["agendada", "realizada", "cancelada"]
        comp_opcoes = ["pendente", "sim", "nao"]
        status_e = c1.selectbox(
            "Status", status_opcoes, index=_indice(status_opcoes, c["status"]), key=f"{chave}_status_{c['id']}"
        )
        comp_e = c2.selectbox(
            "Compareceu", comp_opcoes, index=_indice(comp_opcoes, c["compareceu"]), key=f"{chave}_comp_{c['id']}"
        )
        c3, c4 = st.columns(2)
        data_e = c3.date_input("Data", value=date.fromisoformat(c["data"]), key=f"{chave}_data_{c['id']}")
        hora_e = c4.time_input("Horário", value=time.fromisoformat(c["horario"]), key=f"{chave}_hora_{c['id']}")
        esp_opcoes = [""] + ESPECIALIDADES
        esp_e = st.selectbox(
            "Especialidade", esp_opcoes, index=_indice(esp_opcoes, c["especialidade"]), key=f"{chave}_esp_{c['id']}"
        )
        obs_e = st.text_area("Observações", value=c["observacoes"] or "", key=f"{chave}_obs_{c['id']}")

        if st.form_submit_button("Salvar alterações"):
            api_patch(
                f"/api/consultas/{c['id']}",
                {
                    "status": status_e,
                    "compareceu": comp_e,
                    "data": data_e.isoformat(),
                    "horario": hora_e.strftime("%H:%M"),
                    "especialidade": esp_e or None,
                    "observacoes": obs_e or None,
                },
                token=token,
            )
            avisar("success", f"Consulta de {c['paciente']} atualizada.")
            st.rerun()



# Sidebar login

with st.sidebar:
    st.header("Acesso da psicóloga")

    token = st.session_state.get("token")

    if not is_logged_in():
        u = st.text_input("Usuário", key="login_user")
        p = st.text_input("Senha", type="password", key="login_pass")

        if st.button("Entrar", key="login_btn"):
            try:
                st.session_state["token"] = api_login(u.strip().lower(), p)
                st.session_state.pop("auth_error", None)
                st.rerun()
            except requests.HTTPError:
                st.error("Credenciais inválidas.")
            except requests.RequestException as e:
                st.error(f"API indisponível: {e}")
    else:
        st.write(f"Usuário: **{jwt_username(token)}**")

        if st.session_state.get("auth_error"):
            st.error(st.session_state["auth_error"])

        if st.button("Sair", key="logout_btn"):
            do_logout()

    st.divider()
    st.caption(f"API: {API_BASE}")



# UI

st.title("Atendimento Psicológico")
mostrar_avisos()

(
    tab_solicitar,
    tab_acompanhar,
    tab_dashboard,
    tab_solicitacoes,
    tab_pacientes,
    tab_consulta,
    tab_relatorios,
) = st.tabs(
    [
        "Solicitar atendimento",
        "Acompanhar solicitação",
        "Dashboard",
        "Solicitações",
        "Pacientes",
        "Nova consulta",
        "Relatórios",
    ]
)



# TAB - Solicitar atendimento (público)

with tab_solicitar:
    st.subheader("Formulário de solicitação")
    st.caption("Sua solicitação será analisada pela psicóloga responsável.")

    with st.form("form_solicitacao", clear_on_submit=True):
        nome = st.text_input("Seu nome *")
        c1, c2 = st.columns(2)
        genero = c1.selectbox("Gênero", GENEROS, format_func=lambda g: g.capitalize() or "-")
        setor = c2.text_input("Setor *", placeholder="Ex: Administrativo, RH, TI...")
        motivo = st.selectbox("Motivo principal *", MOTIVOS)
        descricao = st.text_area("Descrição *", help="Mínimo de 10 caracteres. Essa informação é confidencial.")
        c3, c4 = st.columns(2)
        usar_data = c3.checkbox("Tenho data preferencial")
        data_pref = c3.date_input("Data preferencial", value=date.today())
        horario_pref = c4.selectbox("Horário preferencial", PERIODOS, format_func=lambda h: h or "-")
        c5, c6 = st.columns(2)
        email = c5.text_input("Email (opcional)", help="Receba confirmação quando a consulta for aprovada")
        telefone = c6.text_input("Telefone (opcional)")

        enviado = st.form_submit_button("Enviar solicitação")

    if enviado:
        payload = {
            "nome_funcionario": nome,
            "genero": genero or None,
            "setor": setor,
            "motivo": motivo,
            "descricao": descricao,
            "data_preferencial": data_pref.isoformat() if usar_data else None,
            "horario_preferencial": horario_pref or None,
            "email": email or None,
            "telefone": telefone or None,
        }
        try:
            res = api_post("/api/solicitacoes", payload)
            st.success("Solicitação enviada com sucesso! Guarde o código para acompanhar o status.")
            st.code(res["codigo_rastreamento"])
        except RuntimeError as e:
            st.error(str(e))
        except requests.RequestException as e:
            st.error(f"API indisponível: {e}")



# TAB - Acompanhar solicitação (público)

with tab_acompanhar:
    st.subheader("Acompanhar solicitação")

    codigo = st.text_input("Código de rastreamento", placeholder="Ex: S-00001", key="codigo_busca")
    if st.button("Buscar", key="buscar_codigo") and codigo.strip():
        try:
            sol = api_get(f"/api/solicitacoes/codigo/{codigo.strip().upper()}")
            st.write(f"**{sol['codigo_rastreamento']}** | {sol['nome_funcionario']} | {sol['motivo']}")
            if sol["status"] == "pendente":
                st.info("Aguardando análise: sua solicitação está sendo analisada pela psicóloga.")
            elif sol["status"] == "aprovada":
                st.success("Solicitação aprovada! Sua consulta foi agendada.")
            else:
                st.error("Solicitação não aprovada.")
            if sol.get("observacoes_psicologo"):
                st.write(f"Observações: {sol['observacoes_psicologo']}")
        except RuntimeError:
            st.error("Solicitação não encontrada. Verifique se o código foi digitado corretamente.")
        except requests.RequestException as e:
            st.error(f"API indisponível: {e}")



# TAB - Dashboard (protegido)

with tab_dashboard:
    st.subheader("Dashboard")

    token = require_auth()
    if token:
        try:
            dash = api_get("/api/dashboard", token=token)
            m1, m2, m3, m4 = st.columns(4)
            m1.metric("Consultas hoje", dash["consultas_hoje"])
            m2.metric("Pacientes", dash["pacientes_unicos"])
            m3.metric("Agendadas", dash["consultas_agendadas"])
            m4.metric("Solicitações pendentes", dash["solicitacoes"]["pendente"])

            c1, c2 = st.columns([3, 1])
            busca = c1.text_input("Buscar por paciente", key="dash_busca")
            status_f = c2.selectbox("Status", ["", "agendada", "realizada", "cancelada"], key="dash_status")
            consultas = api_get(
                "/api/consultas",
                token=token,
                params={k: v for k, v in {"search": busca, "status": status_f}.items() if v},
            )
            if not consultas:
                st.info("Nenhuma consulta encontrada.")
            else:
                st.dataframe(
                    pd.DataFrame(consultas)[["paciente", "data", "horario", "status", "compareceu", "observacoes"]],
                    use_container_width=True,
                )

                por_id = {c["id"]: c for c in consultas}
                escolhida = st.selectbox(
                    "Editar consulta",
                    [""] + list(por_id),
                    format_func=lambda cid: (
                        f"{por_id[cid]['paciente']} | {fmt_data(por_id[cid]['data'])} {por_id[cid]['horario']}"
                        if cid else "-"
                    ),
                    key="dash_editar",
                )
                if escolhida:
                    form_editar_consulta(por_id[escolhida], token, "dash")
        except PermissionError as e:
            sessao_invalida(e)
        except (RuntimeError, requests.RequestException) as e:
            st.error(f"Erro ao carregar dashboard: {e}")



# TAB - Gerenciar solicitações (protegido)

with tab_solicitacoes:
    st.subheader("Gerenciar solicitações")

    token = require_auth()
    if token:
        try:
            filtro = st.radio("Status", ["pendente", "aprovada", "rejeitada"], horizontal=True, key="sol_filtro")
            solicitacoes = api_get("/api/solicitacoes", token=token, params={"status": filtro})

            if not solicitacoes:
                st.info(f"Nenhuma solicitação {filtro}.")

            for sol in solicitacoes:
                with st.expander(f"{sol['codigo_rastreamento']} | {sol['nome_funcionario']} | {sol['setor']}"):
                    st.write(f"**Motivo:** {sol['motivo']}")
                    st.write(f"**Descrição:** {sol['descricao']}")
                    if sol["data_preferencial"]:
                        st.write(f"**Preferência:** {fmt_data(sol['data_preferencial'])} {sol['horario_preferencial'] or ''}")
                    if sol["observacoes_psicologo"]:
                        st.write(f"**Observações da psicóloga:** {sol['observacoes_psicologo']}")

                    if sol["status"] != "pendente":
                        continue

                    sid = sol["id"]
                    c1, c2, c3 = st.columns(3)
                    data_c = c1.date_input(
                        "Data da consulta",
                        value=date.fromisoformat(sol["data_preferencial"]) if sol["data_preferencial"] else date.today(),
                        key=f"data_{sid}",
                    )
                    hora_c = c2.time_input("Horário", value=time(9, 0), key=f"hora_{sid}")
                    esp = c3.selectbox("Especialidade", ESPECIALIDADES, key=f"esp_{sid}")
                    obs = st.text_area("Observações", key=f"obs_{sid}")

                    b1, b2 = st.columns(2)
                    if b1.button("Aprovar", key=f"aprovar_{sid}"):
                        res = api_post(
                            f"/api/solicitacoes/{sid}/aprovar",
                            {
                                "data": data_c.isoformat(),
                                "horario": hora_c.strftime("%H:%M"),
                                "especialidade": esp,
                                "observacoes": obs or None,
                            },
                            token=token,
                        )
                        avisar("success", f"{sol['codigo_rastreamento']} aprovada. Prontuário {res['codigo_prontuario']}.")
                        if res["email_enviado"]:
                            avisar("info", f"E-mail de confirmação enviado para {sol['email']}.")
                        elif sol["email"]:
                            avisar("warning", "Não foi possível enviar o e-mail de confirmação.")
                        st.rerun()
                    if b2.button("Rejeitar", key=f"rejeitar_{sid}"):
                        api_post(f"/api/solicitacoes/{sid}/rejeitar", {"observacoes": obs or None}, token=token)
                        avisar("info", f"{sol['codigo_rastreamento']} rejeitada.")
                        st.rerun()
        except PermissionError as e:
            sessao_invalida(e)
        except (RuntimeError, requests.RequestException) as e:
            st.error(str(e))



# TAB - Pacientes (protegido)

with tab_pacientes:
    st.subheader("Pacientes")

    token = require_auth()
    if token:
        try:
            busca = st.text_input("Nome ou código do paciente", key="pac_busca")
            pacientes = api_get("/api/pacientes", token=token, params={"search": busca} if busca else None)
            if not pacientes:
                st.info("Nenhum paciente encontrado.")

            for p in pacientes:
                with st.expander(f"{p['codigo_prontuario']} | {p['nome']}"):
                    st.write(
                        f"Gênero: {p['genero'] or '-'} | Setor: {p['setor'] or '-'} | "
                        f"Email: {p['email'] or '-'} | Telefone: {p['telefone'] or '-'}"
                    )

                    if st.checkbox("Editar dados do paciente", key=f"editar_pac_{p['id']}"):
                        with st.form(f"form_pac_{p['id']}"):
                            nome_e = st.text_input("Nome", value=p["nome"], key=f"pac_nome_{p['id']}")
                            genero_e = st.selectbox(
                                "Gênero", GENEROS, index=_indice(GENEROS, p["genero"]),
                                format_func=lambda g: g.capitalize() or "-", key=f"pac_genero_{p['id']}",
                            )
                            setor_e = st.text_input("Setor", value=p["setor"] or "", key=f"pac_setor_{p['id']}")
                            email_e = st.text_input("Email", value=p["email"] or "", key=f"pac_email_{p['id']}")
                            tel_e = st.text_input("Telefone", value=p["telefone"] or "", key=f"pac_tel_{p['id']}")
                            if st.form_submit_button("Salvar paciente"):
                                api_patch(
                                    f"/api/pacientes/{p['id']}",
                                    {
                                        "nome": nome_e,
                                        "genero": genero_e or None,
                                        "setor": setor_e or None,
                                        "email": email_e or None,
                                        "telefone": tel_e or None,
                                    },
                                    token=token,
                                )
                                avisar("success", f"Paciente {p['codigo_prontuario']} atualizado.")
                                st.rerun()

                    if st.button("Excluir paciente e consultas", key=f"del_pac_{p['id']}"):
                        api_delete(f"/api/pacientes/{p['id']}", token=token)
                        avisar("info", f"Paciente {p['codigo_prontuario']} excluído.")
                        st.rerun()

                    historico = api_get(f"/api/pacientes/{p['id']}/consultas", token=token)
                    if not historico:
                        st.caption("Nenhuma consulta registrada.")
                    for c in historico:
                        col1, col2, col3 = st.columns([5, 1, 1])
                        col1.write(
                            f"- **{fmt_data(c['data'])} {c['horario']}** | {c['status']} | "
                            f"compareceu: {c['compareceu']} | {c['motivo'] or '-'}"
                        )
                        editar = col2.checkbox("Editar", key=f"editar_consulta_{c['id']}")
                        if col3.button("Excluir", key=f"del_consulta_{c['id']}"):
                            api_delete(f"/api/consultas/{c['id']}", token=token)
                            avisar("info", "Consulta excluída.")
                            st.rerun()
                        if editar:
                            form_editar_consulta(c, token, "pac")
        except PermissionError as e:
            sessao_invalida(e)
        except (RuntimeError, requests.RequestException) as e:
            st.error(f"Erro ao carregar pacientes: {e}")



# TAB - Nova consulta (protegido)

with tab_consulta:
    st.subheader("Nova consulta")

    token = require_auth()
    if token:
        with st.form("form_consulta", clear_on_submit=True):
            paciente = st.text_input("Nome do paciente *")
            genero_c = st.selectbox("Gênero", GENEROS, format_func=lambda g: g.capitalize() or "-", key="nc_genero")
            c1, c2 = st.columns(2)
            data_nc = c1.date_input("Data *", value=date.today(), key="nc_data")
            hora_nc = c2.time_input("Horário *", value=time(9, 0), key="nc_hora")
            c3, c4, c5 = st.columns(3)
            status_nc = c3.selectbox("Status", ["agendada", "realizada", "cancelada"], key="nc_status")
            esp_nc = c4.selectbox("Especialidade", [""] + ESPECIALIDADES, key="nc_esp")
            comp_nc = c5.selectbox("Compareceu", ["pendente", "sim", "nao"], key="nc_comp")
            motivo_nc = st.selectbox("Motivo", [""] + MOTIVOS, key="nc_motivo")
            obs_nc = st.text_area("Observações", key="nc_obs")
            salvar = st.form_submit_button("Salvar consulta")

        if salvar:
            try:
                res = api_post(
                    "/api/consultas",
                    {
                        "paciente": paciente,
                        "genero": genero_c or None,
                        "data": data_nc.isoformat(),
                        "horario": hora_nc.strftime("%H:%M"),
                        "status": status_nc,
                        "compareceu": comp_nc,
                        "especialidade": esp_nc or None,
                        "motivo": motivo_nc or None,
                        "observacoes": obs_nc or None,
                    },
                    token=token,
                )
                st.success(f"Consulta cadastrada para {res['paciente']} ({res['codigo_prontuario']}).")
            except PermissionError as e:
                sessao_invalida(e)
            except (RuntimeError, requests.RequestException) as e:
                st.error(str(e))



# TAB - Relatórios (protegido)

with tab_relatorios:
    st.subheader("Relatórios")

    token = require_auth()
    if token:
        try:
            rel = api_get("/api/relatorios", token=token)
            comp = rel["comparecimento"]

            m1, m2, m3 = st.columns(3)
            m1.metric("Total de consultas", rel["total"])
            m2.metric("Compareceram", comp["sim"]["total"], f"{comp['sim']['percentual']}%")
            m3.metric("Faltaram", comp["nao"]["total"], f"{comp['nao']['percentual']}%", delta_color="inverse")

            c1, c2 = st.columns(2)
            with c1:
                st.write("**Por período**")
                if rel["por_periodo"]:
                    st.bar_chart(pd.DataFrame(rel["por_periodo"]).set_index("nome")["total"])
                st.write("**Por motivo**")
                if rel["por_motivo"]:
                    st.bar_chart(pd.DataFrame(rel["por_motivo"]).set_index("nome")["total"])
            with c2:
                st.write("**Por especialidade**")
                if rel["por_especialidade"]:
                    st.bar_chart(pd.DataFrame(rel["por_especialidade"]).set_index("nome")["total"])
                st.write("**Evolução mensal**")
                if rel["evolucao_mensal"]:
                    st.line_chart(pd.DataFrame(rel["evolucao_mensal"]).set_index("mes")["consultas"])
        except PermissionError as e:
            sessao_invalida(e)
        except (RuntimeError, requests.RequestException) as e:
            st.error(f"Erro ao carregar relatórios: {e}")
