from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

from . import config
from .auth_models import Usuario

logger = logging.getLogger(__name__)

_senhas = CryptContext(schemes=["bcrypt"], deprecated="auto")


def gerar_hash_senha(senha: str) -> str:
    return _senhas.hash(senha)


def confere_senha(senha: str, senha_hash: str) -> bool:
    return _senhas.verify(senha, senha_hash)


def emitir_token(usuario: Usuario, minutos: int | None = None) -> str:
    """
    JWT HS256 da equipe: sub = id do usuário, mais username e papel
    (lidos pela UI para mostrar quem está logado).
    """
    agora = datetime.now(timezone.utc)
    expira = agora + timedelta(minutes=minutos or config.JWT_EXPIRE_MINUTES)

    claims: dict[str, Any] = {
        "sub": usuario.id,
        "username": usuario.username,
        "papel": usuario.papel.value,
        "iat": int(agora.timestamp()),
        "exp": int(expira.timestamp()),
    }
    return jwt.encode(claims, config.JWT_SECRET, algorithm=config.JWT_ALG)


def ler_token(token: str) -> dict[str, Any]:
    """Valida assinatura e exp; levanta JWTError se inválido."""
    return jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALG])


def usuario_id_do_token(token: str) -> str | None:
    try:
        return ler_token(token).get("sub")
    except ExpiredSignatureError:
        logger.info("Token expirado")
        return None
    except JWTError:
        logger.warning("Token inválido recebido")
        return None
