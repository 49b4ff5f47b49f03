"""
E-mail de confirmação enviado ao funcionário quando a solicitação é aprovada.

Envio via Gmail API (users/me/messages/send). Sem GMAIL_ACCESS_TOKEN o envio
é apenas registrado no log e a função devolve False.
"""
from __future__ import annotations

import base64
import html
import logging
from datetime import date
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

import requests

from . import config

logger = logging.getLogger(__name__)

ASSUNTO_APROVACAO = "Consulta Psicológica Aprovada"

MESES = [
    "janeiro", "fevereiro", "março", "abril", "maio", "junho",
    "julho", "agosto", "setembro", "outubro", "novembro", "dezembro",
]


def data_por_extenso(d: date) -> str:
    """05 de março de 2026"""
    return f"{d.day:02d} de {MESES[d.month - 1]} de {d.year}"


def _corpo_texto(nome: str, data_fmt: str, horario: str) -> str:
    return (
        f"Olá, {nome}!\n\n"
        "Sua solicitação de atendimento psicológico foi aprovada pela equipe de psicologia.\n\n"
        "DETALHES DA CONSULTA:\n"
        f"Data: {data_fmt}\n"
        f"Horário: {horario}\n\n"
        "Por favor, compareça no horário agendado. Caso não possa comparecer, "
        "entre em contato com antecedência.\n\n"
        "Estamos aqui para apoiá-lo(a)!\n\n"
        "Equipe de Psicologia"
    )


def _corpo_html(nome: str, data_fmt: str, horario: str) -> str:
    # nome vem do formulário público
    nome, horario = html.escape(nome), html.escape(horario)
    return f"""<!DOCTYPE html>
<html>
<head><meta charset="UTF-8"></head>
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
  <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
    <h1 style="background-color: #2563eb; color: white; padding: 20px; text-align: center;">Consulta Aprovada!</h1>
    <p>Olá, <strong>{nome}</strong>!</p>
    <p>Sua solicitação de atendimento psicológico foi aprovada pela equipe de psicologia.</p>
    <div style="background-color: white; padding: 20px; border-left: 4px solid #2563eb;">
      <h2 style="color: #2563eb; margin-top: 0;">Detalhes da Consulta</h2>
      <p><strong>Data:</strong> {data_fmt}</p>
      <p><strong>Horário:</strong> {horario}</p>
    </div>
    <p>Por favor, compareça no horário agendado. Caso não possa comparecer, entre em contato com antecedência.</p>
    <p>Estamos aqui para apoiá-lo(a)!</p>
    <p style="text-align: center; color: #6b7280; font-size: 12px;">Este é um email automático, por favor não responda.</p>
  </div>
</body>
</html>"""


def montar_mensagem(para: str, nome: str, data: date, horario: str) -> MIMEMultipart:
    data_fmt = data_por_extenso(data)

    msg = MIMEMultipart("alternative")
    msg["To"] = para
    msg["From"] = config.EMAIL_REMETENTE
    msg["Subject"] = ASSUNTO_APROVACAO
    msg.attach(MIMEText(_corpo_texto(nome, data_fmt, horario), "plain", "utf-8"))
    msg.attach(MIMEText(_corpo_html(nome, data_fmt, horario), "html", "utf-8"))
    return msg


def enviar_email_confirmacao(para: str, nome: str, data: date, horario: str) -> bool:
    msg = montar_mensagem(para, nome, data, horario)

    token = config.GMAIL_ACCESS_TOKEN
    if not token:
        logger.warning("Gmail não configurado: e-mail para %s não enviado (assunto: %s)", para, ASSUNTO_APROVACAO)
        return False

    raw = base64.urlsafe_b64encode(msg.as_bytes()).decode("ascii").rstrip("=")
    try:
        r = requests.post(
            config.GMAIL_SEND_URL,
            headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
            json={"raw": raw},
            timeout=config.EMAIL_TIMEOUT_SECONDS,
        )
    except requests.RequestException as e:
        logger.error("Erro ao enviar e-mail para %s: %s", para, e)
        return False

    if not r.ok:
        logger.error("Falha ao enviar e-mail para %s: HTTP %s %s", para, r.status_code, r.text[:200])
        return False

    logger.info("E-mail de confirmação enviado para %s", para)
    return True
