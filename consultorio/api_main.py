from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response, status
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from sqlalchemy.exc import SQLAlchemyError

from . import config
from .auth_models import Usuario
from .auth_security import emitir_token, usuario_id_do_token
from .auth_service import autentica, get_usuario_by_id
from .codigos import CodigoIndisponivelError
from .models import StatusConsulta, StatusSolicitacao
from .relatorios import gerar_dashboard, gerar_relatorio
from .schemas import (
    AprovacaoIn,
    ConsultaCreateIn,
    ConsultaUpdateIn,
    MeOut,
    PacienteCreateIn,
    PacienteUpdateIn,
    RejeicaoIn,
    SolicitacaoCreateIn,
    SolicitacaoUpdateIn,
    TokenOut,
)
from .seed import seed_base
from .services import (
    TransicaoInvalidaError,
    acompanhar_solicitacao,
    aprovar_solicitacao,
    atualizar_consulta,
    atualizar_paciente,
    atualizar_solicitacao,
    consultas_do_paciente_flat,
    criar_consulta,
    criar_paciente,
    criar_solicitacao,
    deletar_consulta,
    deletar_paciente,
    deletar_solicitacao,
    get_consulta_flat,
    get_paciente_flat,
    get_paciente_por_codigo_flat,
    get_solicitacao_flat,
    init_db,
    lista_consultas_flat,
    lista_pacientes_flat,
    lista_solicitacoes_flat,
    rejeitar_solicitacao,
)

logging.basicConfig(level=config.LOG_LEVEL, format=config.LOG_FORMAT)
logger = logging.getLogger(__name__)

# OAuth2 Bearer (Authorization: Bearer <token>)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Cria tabelas e conta da psicóloga (idempotente)
    init_db()
    seed_base()
    logger.info("API iniciada (v%s)", config.APP_VERSION)
    yield
    logger.info("API encerrada")


app = FastAPI(title=config.APP_NAME, version=config.APP_VERSION, lifespan=lifespan)


@app.exception_handler(SQLAlchemyError)
async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception("Erro de banco em %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Falha ao processar requisição"})


def _erro_dominio(e: ValueError) -> HTTPException:
    if isinstance(e, TransicaoInvalidaError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


def _codigo_indisponivel(e: CodigoIndisponivelError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))


def _nao_encontrado(recurso: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{recurso} não encontrado(a)")


# Dependências auth

def get_current_user(token: str = Depends(oauth2_scheme)) -> Usuario:
    # remove espaços / aspas coladas por engano
    token = token.strip().strip('"').strip("'")

    user_id = usuario_id_do_token(token)
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token inválido")

    u = get_usuario_by_id(user_id)
    if not u or not u.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Usuário inválido")
    return u


# Health

@app.get("/health")
def health() -> dict[str, Any]:
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": config.APP_VERSION,
    }


# AUTH

@app.post("/api/auth/login", response_model=TokenOut)
def login(form: OAuth2PasswordRequestForm = Depends()) -> TokenOut:
    u = autentica(form.username, form.password)
    if not u:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Credenciais inválidas")

    token = emitir_token(u)
    return TokenOut(access_token=token)


@app.get("/api/me", response_model=MeOut)
def me(user: Usuario = Depends(get_current_user)) -> MeOut:
    return MeOut(id=user.id, username=user.username, nome=user.nome, papel=user.papel.value, is_active=user.is_active)


# PUBLIC (funcionários, sem JWT)

@app.post("/api/solicitacoes", status_code=status.HTTP_201_CREATED)
def api_criar_solicitacao(payload: SolicitacaoCreateIn) -> dict[str, Any]:
    try:
        return criar_solicitacao(**payload.model_dump())
    except CodigoIndisponivelError as e:
        raise _codigo_indisponivel(e)
    except ValueError as e:
        raise _erro_dominio(e)


@app.get("/api/solicitacoes/codigo/{codigo}")
def api_acompanhar_solicitacao(codigo: str) -> dict[str, Any]:
    sol = acompanhar_solicitacao(codigo)
    if not sol:
        raise _nao_encontrado("Solicitação")
    return sol


# PROTECTED: solicitações

@app.get("/api/solicitacoes")
def api_solicitacoes(
    status_filtro: StatusSolicitacao | None = Query(None, alias="status"),
    user: Usuario = Depends(get_current_user),
) -> list[dict]:
    return lista_solicitacoes_flat(status_filtro)


@app.get("/api/solicitacoes/{solicitacao_id}")
def api_solicitacao(solicitacao_id: str, user: Usuario = Depends(get_current_user)) -> dict[str, Any]:
    sol = get_solicitacao_flat(solicitacao_id)
    if not sol:
        raise _nao_encontrado("Solicitação")
    return sol


@app.patch("/api/solicitacoes/{solicitacao_id}")
def api_atualizar_solicitacao(
    solicitacao_id: str,
    payload: SolicitacaoUpdateIn,
    user: Usuario = Depends(get_current_user),
) -> dict[str, Any]:
    try:
        sol = atualizar_solicitacao(solicitacao_id, **payload.model_dump(exclude_unset=True))
    except ValueError as e:
        raise _erro_dominio(e)
    if not sol:
        raise _nao_encontrado("Solicitação")
    return sol


@app.delete("/api/solicitacoes/{solicitacao_id}", status_code=status.HTTP_204_NO_CONTENT)
def api_deletar_solicitacao(solicitacao_id: str, user: Usuario = Depends(get_current_user)) -> Response:
    if not deletar_solicitacao(solicitacao_id):
        raise _nao_encontrado("Solicitação")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.post("/api/solicitacoes/{solicitacao_id}/aprovar")
def api_aprovar_solicitacao(
    solicitacao_id: str,
    payload: AprovacaoIn,
    user: Usuario = Depends(get_current_user),
) -> dict[str, Any]:
    """
    Aprovação pela psicóloga:
    - cadastra (ou reaproveita) o paciente
    - agenda a consulta
    - envia e-mail de confirmação se o funcionário informou e-mail
    """
    try:
        resultado = aprovar_solicitacao(
            solicitacao_id,
            data=payload.data,
            horario=payload.horario,
            especialidade=payload.especialidade,
            observacoes=payload.observacoes,
        )
    except CodigoIndisponivelError as e:
        raise _codigo_indisponivel(e)
    except ValueError as e:
        raise _erro_dominio(e)

    if resultado is None:
        raise _nao_encontrado("Solicitação")

    return {
        **asdict(resultado),
        "solicitacao": get_solicitacao_flat(solicitacao_id),
        "consulta": get_consulta_flat(resultado.consulta_id),
    }


@app.post("/api/solicitacoes/{solicitacao_id}/rejeitar")
def api_rejeitar_solicitacao(
    solicitacao_id: str,
    payload: RejeicaoIn,
    user: Usuario = Depends(get_current_user),
) -> dict[str, Any]:
    try:
        sol = rejeitar_solicitacao(solicitacao_id, payload.observacoes)
    except ValueError as e:
        raise _erro_dominio(e)
    if not sol:
        raise _nao_encontrado("Solicitação")
    return sol


# PROTECTED: pacientes

@app.get("/api/pacientes")
def api_pacientes(search: str | None = Query(None), user: Usuario = Depends(get_current_user)) -> list[dict]:
    return lista_pacientes_flat(search)


@app.get("/api/pacientes/codigo/{codigo}")
def api_paciente_por_codigo(codigo: str, user: Usuario = Depends(get_current_user)) -> dict[str, Any]:
    p = get_paciente_por_codigo_flat(codigo)
    if not p:
        raise _nao_encontrado("Paciente")
    return p


@app.get("/api/pacientes/{paciente_id}")
def api_paciente(paciente_id: str, user: Usuario = Depends(get_current_user)) -> dict[str, Any]:
    p = get_paciente_flat(paciente_id)
    if not p:
        raise _nao_encontrado("Paciente")
    return p


@app.get("/api/pacientes/{paciente_id}/consultas")
def api_consultas_paciente(paciente_id: str, user: Usuario = Depends(get_current_user)) -> list[dict]:
    consultas = consultas_do_paciente_flat(paciente_id)
    if consultas is None:
        raise _nao_encontrado("Paciente")
    return consultas


@app.post("/api/pacientes", status_code=status.HTTP_201_CREATED)
def api_criar_paciente(payload: PacienteCreateIn, user: Usuario = Depends(get_current_user)) -> dict[str, Any]:
    try:
        return criar_paciente(**payload.model_dump())
    except CodigoIndisponivelError as e:
        raise _codigo_indisponivel(e)
    except ValueError as e:
        raise _erro_dominio(e)


@app.patch("/api/pacientes/{paciente_id}")
def api_atualizar_paciente(
    paciente_id: str,
    payload: PacienteUpdateIn,
    user: Usuario = Depends(get_current_user),
) -> dict[str, Any]:
    try:
        p = atualizar_paciente(paciente_id, **payload.model_dump(exclude_unset=True))
    except ValueError as e:
        raise _erro_dominio(e)
    if not p:
        raise _nao_encontrado("Paciente")
    return p


@app.delete("/api/pacientes/{paciente_id}", status_code=status.HTTP_204_NO_CONTENT)
def api_deletar_paciente(paciente_id: str, user: Usuario = Depends(get_current_user)) -> Response:
    if not deletar_paciente(paciente_id):
        raise _nao_encontrado("Paciente")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# PROTECTED: consultas

@app.get("/api/consultas")
def api_consultas(
    status_filtro: StatusConsulta | None = Query(None, alias="status"),
    search: str | None = Query(None),
    user: Usuario = Depends(get_current_user),
) -> list[dict]:
    return lista_consultas_flat(status_filtro, search)


@app.get("/api/consultas/{consulta_id}")
def api_consulta(consulta_id: str, user: Usuario = Depends(get_current_user)) -> dict[str, Any]:
    c = get_consulta_flat(consulta_id)
    if not c:
        raise _nao_encontrado("Consulta")
    return c


@app.post("/api/consultas", status_code=status.HTTP_201_CREATED)
def api_criar_consulta(payload: ConsultaCreateIn, user: Usuario = Depends(get_current_user)) -> dict[str, Any]:
    try:
        return criar_consulta(**payload.model_dump())
    except CodigoIndisponivelError as e:
        raise _codigo_indisponivel(e)
    except ValueError as e:
        raise _erro_dominio(e)


@app.patch("/api/consultas/{consulta_id}")
def api_atualizar_consulta(
    consulta_id: str,
    payload: ConsultaUpdateIn,
    user: Usuario = Depends(get_current_user),
) -> dict[str, Any]:
    try:
        c = atualizar_consulta(consulta_id, **payload.model_dump(exclude_unset=True))
    except ValueError as e:
        raise _erro_dominio(e)
    if not c:
        raise _nao_encontrado("Consulta")
    return c


@app.delete("/api/consultas/{consulta_id}", status_code=status.HTTP_204_NO_CONTENT)
def api_deletar_consulta(consulta_id: str, user: Usuario = Depends(get_current_user)) -> Response:
    if not deletar_consulta(consulta_id):
        raise _nao_encontrado("Consulta")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# PROTECTED: relatórios

@app.get("/api/relatorios")
def api_relatorios(user: Usuario = Depends(get_current_user)) -> dict[str, Any]:
    return gerar_relatorio()


@app.get("/api/dashboard")
def api_dashboard(user: Usuario = Depends(get_current_user)) -> dict[str, Any]:
    return gerar_dashboard()
