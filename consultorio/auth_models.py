from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, String
from sqlalchemy.orm import Mapped, mapped_column

from .db import Base
from .models import new_uuid, utcnow


class Papel(enum.Enum):
    PSICOLOGA = "psicologa"
    ADMIN = "admin"


class Usuario(Base):
    """
    Usuário da equipe (psicóloga) que acessa a área restrita.
    - username único, sempre minúsculo
    - password_hash com bcrypt (passlib)
    """
    __tablename__ = "usuarios"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    username: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    nome: Mapped[str | None] = mapped_column(String(120), nullable=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    papel: Mapped[Papel] = mapped_column(
        Enum(Papel, values_callable=lambda e: [m.value for m in e], native_enum=False),
        default=Papel.PSICOLOGA,
        nullable=False,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
