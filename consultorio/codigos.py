from __future__ import annotations

import logging
import re
import time
from typing import Callable, TypeVar

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import InstrumentedAttribute, Session

from . import config
from .db import db_session

logger = logging.getLogger(__name__)

T = TypeVar("T")

PREFIXO_PRONTUARIO = "P"
PREFIXO_RASTREAMENTO = "S"
DIGITOS = 5


class CodigoIndisponivelError(RuntimeError):
    """Todas as tentativas de gravar um código sequencial esbarraram em conflito."""


def formatar_codigo(prefixo: str, numero: int) -> str:
    return f"{prefixo}-{numero:0{DIGITOS}d}"


def proximo_codigo(s: Session, coluna: InstrumentedAttribute, prefixo: str) -> str:
    """
    Lê o último código existente com o prefixo e devolve o seguinte.
    Códigos maiores primeiro (P-100000 > P-99999), depois ordem lexicográfica.
    Sem registros, ou com um último código fora do padrão, recomeça em 00001.
    """
    ultimo = s.execute(
        select(coluna)
        .where(coluna.like(f"{prefixo}-%"))
        .order_by(func.length(coluna).desc(), coluna.desc())
        .limit(1)
    ).scalar_one_or_none()

    if ultimo is None:
        return formatar_codigo(prefixo, 1)

    match = re.fullmatch(rf"{re.escape(prefixo)}-(\d+)", ultimo)
    if not match:
        return formatar_codigo(prefixo, 1)

    return formatar_codigo(prefixo, int(match.group(1)) + 1)


def violacao_unicidade(exc: IntegrityError) -> bool:
    orig = exc.orig
    # PostgreSQL: SQLSTATE 23505 / SQLite: "UNIQUE constraint failed"
    if getattr(orig, "pgcode", None) == "23505" or getattr(orig, "sqlstate", None) == "23505":
        return True
    return "unique" in str(orig).lower()


def com_retentativa(
    operacao: Callable[[Session], T],
    descricao: str = "registro",
    max_tentativas: int | None = None,
    espera_segundos: float | None = None,
) -> T:
    """
    Executa `operacao(session)` numa transação nova; se o commit falhar por
    violação de unicidade (dois clientes gerando o mesmo código), faz rollback,
    espera `espera * tentativa` e repete a unidade de trabalho inteira.
    Outros erros de integridade sobem sem retry.
    """
    max_tentativas = max_tentativas or config.CODIGO_MAX_TENTATIVAS
    espera = config.CODIGO_ESPERA_SEGUNDOS if espera_segundos is None else espera_segundos

    for tentativa in range(1, max_tentativas + 1):
        try:
            with db_session() as s:
                return operacao(s)
        except IntegrityError as exc:
            if not violacao_unicidade(exc):
                raise
            if tentativa == max_tentativas:
                logger.error("Conflito de código ao criar %s após %d tentativas", descricao, tentativa)
                raise CodigoIndisponivelError(
                    f"Não foi possível criar {descricao} após {max_tentativas} tentativas"
                ) from exc
            logger.warning(
                "Conflito de código ao criar %s (tentativa %d/%d), repetindo",
                descricao,
                tentativa,
                max_tentativas,
            )
            time.sleep(espera * tentativa)

    raise CodigoIndisponivelError(f"Não foi possível criar {descricao}")
