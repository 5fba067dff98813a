from __future__ import annotations

import logging
from datetime import timedelta

from sqlalchemy import select

from . import config
from .auth_security import hash_password
from .db import db_session
from .models import Clinica, Medico, MetodoCheckIn, Paziente, VoceCoda, adesso
from .posizioni import ricalcola_posizioni

logger = logging.getLogger(__name__)

DEMO_EMAIL = "dr.skander@example.tn"
DEMO_PASSWORD = "password123"

ORARI_STANDARD = {
    "monday": {"start": "09:00", "end": "17:00"},
    "tuesday": {"start": "09:00", "end": "17:00"},
    "wednesday": {"start": "09:00", "end": "17:00"},
    "thursday": {"start": "09:00", "end": "17:00"},
    "friday": {"start": "09:00", "end": "13:00"},
    "saturday": {"start": "09:00", "end": "13:00"},
    "sunday": None,
}


def _clinica(s, email: str, **campi) -> Clinica:
    c = s.execute(select(Clinica).where(Clinica.email == email)).scalar_one_or_none()
    if c is None:
        c = Clinica(email=email, **campi)
        s.add(c)
        s.flush()
    return c


def seed_demo() -> str:
    """
    Popola dati demo (idempotente):
    - clinica demo con medico, pazienti e qualche voce in coda
    - clinica admin (prima email di ADMIN_EMAILS)
    Ritorna l'id della clinica demo.
    """
    with db_session() as s:
        if config.ADMIN_EMAILS:
            _clinica(
                s,
                config.ADMIN_EMAILS[0],
                nome="Administration",
                password_hash=hash_password("admin12345"),
            )

        c = _clinica(
            s,
            DEMO_EMAIL,
            nome="Cabinet Dr Skander Kamoun",
            nome_medico="Dr. Skander Kamoun",
            password_hash=hash_password(DEMO_PASSWORD),
            telefono="+21671234567",
            indirizzo="Tunis, Tunisia",
            durata_media_visita=15,
            ultimo_accesso=adesso(),
        )

        if s.execute(select(Medico).where(Medico.clinica_id == c.id)).first() is None:
            s.add(
                Medico(
                    clinica_id=c.id,
                    nome="Dr. Skander Kamoun",
                    specializzazione="Ophtalmologie",
                    orari_lavoro=ORARI_STANDARD,
                )
            )

        pazienti = [
            ("Mohamed Trabelsi", "+21698765432", MetodoCheckIn.QR_CODE, 90),
            ("Fatma Khalil", "+21694123456", MetodoCheckIn.MANUAL, 75),
            ("Ali Sassi", "+21699887766", MetodoCheckIn.QR_CODE, 60),
            ("Sara Ben Amor", "+21691234567", MetodoCheckIn.WHATSAPP, 45),
        ]
        ora = adesso()
        for nome, telefono, metodo, minuti_fa in pazienti:
            if s.execute(
                select(Paziente).where(Paziente.clinica_id == c.id, Paziente.telefono == telefono)
            ).first() is None:
                s.add(Paziente(clinica_id=c.id, nome=nome, telefono=telefono))

            if s.execute(
                select(VoceCoda).where(VoceCoda.clinica_id == c.id, VoceCoda.telefono_paziente == telefono)
            ).first() is None:
                s.add(
                    VoceCoda(
                        clinica_id=c.id,
                        nome_paziente=nome,
                        telefono_paziente=telefono,
                        posizione=999,
                        metodo_checkin=metodo,
                        arrivato_il=ora - timedelta(minutes=minuti_fa),
                    )
                )
        s.flush()
        ricalcola_posizioni(s, c.id)
        logger.info("Demo data ready: %s / %s", DEMO_EMAIL, DEMO_PASSWORD)
        return c.id
