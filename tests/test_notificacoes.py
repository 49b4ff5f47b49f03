from __future__ import annotations

import base64
from datetime import date
from email import message_from_bytes

import pytest
import requests

from consultorio import config, notificacoes


class _Resposta:
    def __init__(self, status_code: int, text: str = ""):
        self.status_code = status_code
        self.text = text

    @property
    def ok(self) -> bool:
        return self.status_code < 400


def test_data_por_extenso():
    assert notificacoes.data_por_extenso(date(2026, 3, 5)) == "05 de março de 2026"
    assert notificacoes.data_por_extenso(date(2025, 12, 31)) == "31 de dezembro de 2025"


def test_montar_mensagem():
    msg = notificacoes.montar_mensagem("maria@empresa.com", "Maria", date(2026, 3, 5), "14:30")
    assert msg["To"] == "maria@empresa.com"
    assert msg["Subject"] == "Consulta Psicológica Aprovada"

    partes = [p for p in msg.walk() if not p.is_multipart()]
    assert [p.get_content_type() for p in partes] == ["text/plain", "text/html"]
    texto = partes[0].get_payload(decode=True).decode("utf-8")
    assert "05 de março de 2026" in texto
    assert "14:30" in texto


def test_nome_escapado_no_html():
    msg = notificacoes.montar_mensagem("ana@empresa.com", "<b>Ana</b> & Cia", date(2026, 3, 5), "14:30")
    texto, html = [p.get_payload(decode=True).decode("utf-8") for p in msg.walk() if not p.is_multipart()]
    assert "&lt;b&gt;Ana&lt;/b&gt; &amp; Cia" in html
    assert "<b>Ana</b>" not in html
    # texto puro fica como veio
    assert "<b>Ana</b> & Cia" in texto


def test_sem_token_nao_envia(monkeypatch):
    monkeypatch.setattr(requests, "post", lambda *a, **k: pytest.fail("não deveria chamar a API"))
    assert notificacoes.enviar_email_confirmacao("maria@empresa.com", "Maria", date(2026, 3, 5), "14:30") is False


def test_envio_pela_gmail_api(monkeypatch):
    monkeypatch.setattr(config, "GMAIL_ACCESS_TOKEN", "token-teste")
    chamadas = []

    def fake_post(url, headers, json, timeout):
        chamadas.append((url, headers, json))
        return _Resposta(200)

    monkeypatch.setattr(requests, "post", fake_post)

    assert notificacoes.enviar_email_confirmacao("maria@empresa.com", "Maria", date(2026, 3, 5), "14:30") is True

    url, headers, corpo = chamadas[0]
    assert url == config.GMAIL_SEND_URL
    assert headers["Authorization"] == "Bearer token-teste"
    raw = corpo["raw"]
    assert "=" not in raw
    msg = message_from_bytes(base64.urlsafe_b64decode(raw + "=" * (-len(raw) % 4)))
    assert msg["To"] == "maria@empresa.com"


def test_falha_http_devolve_false(monkeypatch):
    monkeypatch.setattr(config, "GMAIL_ACCESS_TOKEN", "token-teste")
    monkeypatch.setattr(requests, "post", lambda *a, **k: _Resposta(401, "invalid credentials"))
    assert notificacoes.enviar_email_confirmacao("maria@empresa.com", "Maria", date(2026, 3, 5), "14:30") is False


def test_erro_de_rede_devolve_false(monkeypatch):
    monkeypatch.setattr(config, "GMAIL_ACCESS_TOKEN", "token-teste")

    def fake_post(*a, **k):
        raise requests.ConnectionError("sem rede")

    monkeypatch.setattr(requests, "post", fake_post)
    assert notificacoes.enviar_email_confirmacao("maria@empresa.com", "Maria", date(2026, 3, 5), "14:30") is False
