from __future__ import annotations

import logging

from . import config
from .auth_models import Papel
from .auth_service import garantir_usuario

logger = logging.getLogger(__name__)


def seed_base() -> None:
    """Conta da psicóloga a partir de PSICOLOGA_USERNAME / PSICOLOGA_PASSWORD (idempotente)."""
    if not config.PSICOLOGA_PASSWORD:
        logger.info("PSICOLOGA_PASSWORD não definida: seed da conta da psicóloga ignorado")
        return

    criada = garantir_usuario(
        config.PSICOLOGA_USERNAME,
        config.PSICOLOGA_PASSWORD,
        nome="Psicóloga responsável",
        papel=Papel.PSICOLOGA,
    )
    if criada:
        logger.info("Conta %s criada pelo seed", config.PSICOLOGA_USERNAME)
