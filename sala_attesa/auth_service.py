from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select

from . import config
from .auth_security import create_access_token, hash_password, verify_password
from .db import db_session
from .errori import ErroreServizio, conflitto, non_trovato
from .models import Clinica, adesso
from .services import clinica_to_dict

logger = logging.getLogger(__name__)


def _normalizza_email(email: str) -> str:
    return (email or "").strip().lower()


def crea_clinica(
    nome: str,
    email: str,
    password: str,
    nome_medico: str | None = None,
    telefono: str | None = None,
    indirizzo: str | None = None,
    lingua: str = "fr",
    durata_media_visita: int = 10,
    tipo_attivita: str = "medical",
) -> str:
    email = _normalizza_email(email)
    if not nome or not email or not password:
        raise ErroreServizio("VALIDATION_ERROR", "Name, email and password are required")

    with db_session() as s:
        exists = s.execute(select(Clinica).where(Clinica.email == email)).scalar_one_or_none()
        if exists:
            raise conflitto("EMAIL_EXISTS", "A clinic with this email already exists")

        c = Clinica(
            nome=nome.strip(),
            email=email,
            password_hash=hash_password(password),
            nome_medico=nome_medico,
            telefono=telefono,
            indirizzo=indirizzo,
            lingua=lingua,
            durata_media_visita=durata_media_visita,
            tipo_attivita=tipo_attivita,
        )
        s.add(c)
        s.flush()
        logger.info("Created clinic %s (%s)", c.nome, c.email)
        return c.id


def autentica(email: str, password: str) -> dict[str, Any] | None:
    """Ritorna il profilo della clinica e registra l'ultimo accesso; None se le credenziali non valgono."""
    email = _normalizza_email(email)
    with db_session() as s:
        c = s.execute(select(Clinica).where(Clinica.email == email)).scalar_one_or_none()
        if not c or not c.attiva:
            return None
        if not verify_password(password, c.password_hash):
            return None
        c.ultimo_accesso = adesso()
        return clinica_to_dict(c)


def login(email: str, password: str) -> dict[str, Any]:
    profilo = autentica(email, password)
    if not profilo:
        raise ErroreServizio("INVALID_CREDENTIALS", "Invalid email or password", status_http=401)

    token = create_access_token(
        subject=profilo["id"], extra={"email": profilo["email"], "name": profilo["nome"]}
    )
    return {"token": token, "clinica": profilo}


def get_clinica_by_id(clinica_id: str) -> Clinica | None:
    with db_session() as s:
        return s.get(Clinica, clinica_id)


def e_admin(email: str) -> bool:
    return _normalizza_email(email) in config.ADMIN_EMAILS


def cambia_password(clinica_id: str, nuova_password: str) -> None:
    if not nuova_password or len(nuova_password) < 6:
        raise ErroreServizio("VALIDATION_ERROR", "Password must be at least 6 characters")
    with db_session() as s:
        c = s.get(Clinica, clinica_id)
        if not c:
            raise non_trovato("CLINIC_NOT_FOUND", "Clinic not found")
        c.password_hash = hash_password(nuova_password)
