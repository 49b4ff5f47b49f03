from __future__ import annotations

import os
import tempfile

import pytest

# banco de teste isolado; precisa vir antes de importar o pacote (engine é criada no import)
_DB_DIR = tempfile.mkdtemp(prefix="consultorio-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'test.sqlite')}"
os.environ.pop("PSICOLOGA_PASSWORD", None)
os.environ.pop("GMAIL_ACCESS_TOKEN", None)

from fastapi.testclient import TestClient  # noqa: E402

from consultorio import auth_models  # noqa: E402,F401
from consultorio import config  # noqa: E402
from consultorio.api_main import app  # noqa: E402
from consultorio.auth_service import criar_usuario  # noqa: E402
from consultorio.db import Base, engine  # noqa: E402

USERNAME = "psicologa"
PASSWORD = "senha-de-teste"


@pytest.fixture(autouse=True)
def banco_limpo(monkeypatch):
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    monkeypatch.setattr(config, "GMAIL_ACCESS_TOKEN", None)
    monkeypatch.setattr(config, "PSICOLOGA_PASSWORD", None)
    monkeypatch.setattr(config, "CODIGO_ESPERA_SEGUNDOS", 0.0)
    yield


@pytest.fixture
def usuario() -> str:
    return criar_usuario(USERNAME, PASSWORD, nome="Dra. Teste")


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def auth_headers(client, usuario) -> dict[str, str]:
    r = client.post("/api/auth/login", data={"username": USERNAME, "password": PASSWORD})
    assert r.status_code == 200, r.text
    return {"Authorization": f"Bearer {r.json()['access_token']}"}
