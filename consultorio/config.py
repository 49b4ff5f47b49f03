from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

# .env na raiz do projeto
PROJECT_ROOT = Path(__file__).resolve().parents[1]
load_dotenv(dotenv_path=PROJECT_ROOT / ".env")

APP_NAME = "Consultório de Psicologia API"
APP_VERSION = os.getenv("APP_VERSION", "1.0.0")

# Banco: SQLite em arquivo por padrão, qualquer URL SQLAlchemy funciona (ex.: PostgreSQL)
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{PROJECT_ROOT / 'consultorio.sqlite'}")
DB_ECHO = os.getenv("DB_ECHO", "false").lower() == "true"

# Em produção: definir via variável de ambiente
JWT_SECRET = os.getenv("JWT_SECRET", "CHANGE_ME_DEV_SECRET")
JWT_ALG = "HS256"
JWT_EXPIRE_MINUTES = int(os.getenv("JWT_EXPIRE_MINUTES", "60"))

# Conta da psicóloga criada no seed (idempotente)
PSICOLOGA_USERNAME = os.getenv("PSICOLOGA_USERNAME", "psicologa")
PSICOLOGA_PASSWORD = os.getenv("PSICOLOGA_PASSWORD")

# Gmail API (sem token o e-mail é apenas registrado no log)
GMAIL_ACCESS_TOKEN = os.getenv("GMAIL_ACCESS_TOKEN")
GMAIL_SEND_URL = "https://gmail.googleapis.com/gmail/v1/users/me/messages/send"
EMAIL_REMETENTE = os.getenv("EMAIL_REMETENTE", "Equipe de Psicologia <psicologia@empresa.local>")
EMAIL_TIMEOUT_SECONDS = float(os.getenv("EMAIL_TIMEOUT_SECONDS", "10"))

# Geração de códigos sequenciais
CODIGO_MAX_TENTATIVAS = int(os.getenv("CODIGO_MAX_TENTATIVAS", "5"))
CODIGO_ESPERA_SEGUNDOS = float(os.getenv("CODIGO_ESPERA_SEGUNDOS", "0.1"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
