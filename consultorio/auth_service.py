from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from .auth_models import Papel, Usuario
from .auth_security import confere_senha, gerar_hash_senha
from .db import db_session

logger = logging.getLogger(__name__)


def _normaliza(username: str | None) -> str:
    return (username or "").strip().lower()


def _por_username(s: Session, username: str) -> Usuario | None:
    return s.scalars(select(Usuario).where(Usuario.username == username)).first()


def criar_usuario(username: str, senha: str, nome: str | None = None, papel: Papel = Papel.PSICOLOGA) -> str:
    username = _normaliza(username)
    if not username or not senha:
        raise ValueError("Usuário e senha são obrigatórios.")

    with db_session() as s:
        if _por_username(s, username):
            raise ValueError("Usuário já cadastrado.")

        u = Usuario(username=username, nome=nome, password_hash=gerar_hash_senha(senha), papel=papel)
        s.add(u)
        s.flush()
        logger.info("Usuário %s criado (%s)", username, papel.value)
        return u.id


def garantir_usuario(username: str, senha: str, nome: str | None = None, papel: Papel = Papel.PSICOLOGA) -> bool:
    """Cria o usuário só se ainda não existir. True se criou."""
    with db_session() as s:
        if _por_username(s, _normaliza(username)):
            return False
    criar_usuario(username, senha, nome=nome, papel=papel)
    return True


def autentica(username: str, senha: str) -> Usuario | None:
    username = _normaliza(username)
    with db_session() as s:
        u = _por_username(s, username)
        if u is None or not u.is_active:
            logger.warning("Login recusado para %r", username)
            return None
        if not confere_senha(senha, u.password_hash):
            logger.warning("Senha incorreta para %s", username)
            return None
        return u


def get_usuario_by_id(user_id: str) -> Usuario | None:
    with db_session() as s:
        return s.get(Usuario, user_id)


def remover_usuario(username: str) -> bool:
    with db_session() as s:
        u = _por_username(s, _normaliza(username))
        if u is None:
            return False
        s.delete(u)
        logger.info("Usuário %s removido", u.username)
        return True
