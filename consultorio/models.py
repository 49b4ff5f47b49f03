from __future__ import annotations

import enum
import uuid
from datetime import date, datetime, time, timezone

from sqlalchemy import Date, DateTime, Enum, ForeignKey, String, Text, Time
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base


def new_uuid() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    # datetime naive em UTC (SQLite não guarda fuso)
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Genero(enum.Enum):
    MASCULINO = "masculino"
    FEMININO = "feminino"
    OUTRO = "outro"


class StatusConsulta(enum.Enum):
    AGENDADA = "agendada"
    REALIZADA = "realizada"
    CANCELADA = "cancelada"


class Compareceu(enum.Enum):
    SIM = "sim"
    NAO = "nao"
    PENDENTE = "pendente"


class StatusSolicitacao(enum.Enum):
    PENDENTE = "pendente"
    APROVADA = "aprovada"
    REJEITADA = "rejeitada"


def _enum_col(enum_cls: type[enum.Enum]) -> Enum:
    # grava o value ("agendada"), não o nome do membro
    return Enum(
        enum_cls,
        values_callable=lambda e: [m.value for m in e],
        native_enum=False,
        validate_strings=True,
    )


class Paciente(Base):
    __tablename__ = "pacientes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    codigo_prontuario: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    nome: Mapped[str] = mapped_column(String(160), nullable=False)
    genero: Mapped[Genero | None] = mapped_column(_enum_col(Genero), nullable=True)
    setor: Mapped[str | None] = mapped_column(String(120), nullable=True)
    email: Mapped[str | None] = mapped_column(String(160), nullable=True)
    telefone: Mapped[str | None] = mapped_column(String(30), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    consultas: Mapped[list["Consulta"]] = relationship(back_populates="paciente", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"Paciente({self.codigo_prontuario} {self.nome})"


class Solicitacao(Base):
    __tablename__ = "solicitacoes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    codigo_rastreamento: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)

    nome_funcionario: Mapped[str] = mapped_column(String(160), nullable=False)
    genero: Mapped[Genero | None] = mapped_column(_enum_col(Genero), nullable=True)
    setor: Mapped[str] = mapped_column(String(120), nullable=False)
    motivo: Mapped[str] = mapped_column(String(120), nullable=False)
    descricao: Mapped[str] = mapped_column(Text, nullable=False)
    data_preferencial: Mapped[date | None] = mapped_column(Date, nullable=True)
    horario_preferencial: Mapped[str | None] = mapped_column(String(60), nullable=True)
    email: Mapped[str | None] = mapped_column(String(160), nullable=True)
    telefone: Mapped[str | None] = mapped_column(String(30), nullable=True)

    status: Mapped[StatusSolicitacao] = mapped_column(
        _enum_col(StatusSolicitacao), default=StatusSolicitacao.PENDENTE, nullable=False
    )
    observacoes_psicologo: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    avaliada_em: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    consultas: Mapped[list["Consulta"]] = relationship(back_populates="solicitacao")

    def __repr__(self) -> str:
        return f"Solicitacao({self.codigo_rastreamento} {self.status.value})"


class Consulta(Base):
    __tablename__ = "consultas"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)

    paciente_id: Mapped[str] = mapped_column(ForeignKey("pacientes.id"), nullable=False)
    # opcional: consulta gerada a partir de uma solicitação aprovada
    solicitacao_id: Mapped[str | None] = mapped_column(ForeignKey("solicitacoes.id"), nullable=True)

    data: Mapped[date] = mapped_column(Date, nullable=False)
    horario: Mapped[time] = mapped_column(Time, nullable=False)

    status: Mapped[StatusConsulta] = mapped_column(
        _enum_col(StatusConsulta), default=StatusConsulta.AGENDADA, nullable=False
    )
    compareceu: Mapped[Compareceu] = mapped_column(
        _enum_col(Compareceu), default=Compareceu.PENDENTE, nullable=False
    )

    especialidade: Mapped[str | None] = mapped_column(String(120), nullable=True)
    motivo: Mapped[str | None] = mapped_column(String(120), nullable=True)
    observacoes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    paciente: Mapped["Paciente"] = relationship(back_populates="consultas")
    solicitacao: Mapped["Solicitacao | None"] = relationship(back_populates="consultas")
