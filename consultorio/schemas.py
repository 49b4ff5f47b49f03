from __future__ import annotations

from datetime import date, time
from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator

from .models import Compareceu, Genero, StatusConsulta


class _Entrada(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    @model_validator(mode="before")
    @classmethod
    def vazios_para_none(cls, data: Any) -> Any:
        # formulários mandam "" nos campos opcionais
        if isinstance(data, dict):
            return {k: (None if isinstance(v, str) and not v.strip() else v) for k, v in data.items()}
        return data


# Auth

class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"


class MeOut(BaseModel):
    id: str
    username: str
    nome: str | None
    papel: str
    is_active: bool


# Pacientes

class PacienteCreateIn(_Entrada):
    nome: str = Field(..., min_length=1, max_length=160)
    genero: Genero | None = None
    setor: str | None = None
    email: EmailStr | None = None
    telefone: str | None = None


class PacienteUpdateIn(_Entrada):
    nome: str | None = Field(None, min_length=1, max_length=160)
    genero: Genero | None = None
    setor: str | None = None
    email: EmailStr | None = None
    telefone: str | None = None


# Consultas

class ConsultaCreateIn(_Entrada):
    # paciente existente (id) ou nome para localizar/cadastrar
    paciente_id: str | None = None
    paciente: str | None = Field(None, max_length=160)
    genero: Genero | None = None
    setor: str | None = None
    email: EmailStr | None = None
    telefone: str | None = None

    data: date
    horario: time
    status: StatusConsulta = StatusConsulta.AGENDADA
    compareceu: Compareceu = Compareceu.PENDENTE
    especialidade: str | None = None
    motivo: str | None = None
    observacoes: str | None = None


    @model_validator(mode="after")
    def exige_paciente(self) -> "ConsultaCreateIn":
        if not self.paciente_id and not self.paciente:
            raise ValueError("Nome do paciente é obrigatório")
        return self


class ConsultaUpdateIn(_Entrada):
    data: date | None = None
    horario: time | None = None
    status: StatusConsulta | None = None
    compareceu: Compareceu | None = None
    especialidade: str | None = None
    motivo: str | None = None
    observacoes: str | None = None


# Solicitações

class SolicitacaoCreateIn(_Entrada):
    nome_funcionario: str = Field(..., min_length=1, max_length=160)
    genero: Genero | None = None
    setor: str = Field(..., min_length=1, max_length=120)
    motivo: str = Field(..., min_length=1, max_length=120)
    descricao: str = Field(..., min_length=10)
    data_preferencial: date | None = None
    horario_preferencial: str | None = Field(None, max_length=60)
    email: EmailStr | None = None
    telefone: str | None = Field(None, max_length=30)


class SolicitacaoUpdateIn(_Entrada):
    observacoes_psicologo: str | None = None


class AprovacaoIn(_Entrada):
    data: date
    horario: time
    especialidade: str | None = None
    observacoes: str | None = None


class RejeicaoIn(_Entrada):
    observacoes: str | None = None
