"""Eventi in tempo reale verso dashboard clinica e pagine paziente."""
from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any

from .db import db_session
from .models import StatoCoda, VoceCoda
from .posizioni import voci_attive
from .realtime import bus, stanza_clinica, stanza_paziente, stanza_pazienti_clinica
from .statistiche import invalida_statistiche, statistiche_coda

logger = logging.getLogger(__name__)


def to_iso(v: datetime | date | None) -> str | None:
    return v.isoformat() if v is not None else None


def voce_to_dict(v: VoceCoda) -> dict[str, Any]:
    return {
        "id": v.id,
        "clinica_id": v.clinica_id,
        "nome_paziente": v.nome_paziente,
        "telefono_paziente": v.telefono_paziente,
        "posizione": v.posizione,
        "stato": v.stato.value,
        "metodo_checkin": v.metodo_checkin.value,
        "orario_appuntamento": to_iso(v.orario_appuntamento),
        "arrivato_il": to_iso(v.arrivato_il),
        "notificato_il": to_iso(v.notificato_il),
        "chiamato_il": to_iso(v.chiamato_il),
        "completato_il": to_iso(v.completato_il),
        "appuntamento_id": v.appuntamento_id,
    }


def coda_flat(clinica_id: str) -> list[dict[str, Any]]:
    with db_session() as s:
        return [voce_to_dict(v) for v in voci_attive(s, clinica_id)]


def emetti_aggiornamento_coda(clinica_id: str) -> None:
    """Coda completa + statistiche aggiornate alla dashboard della clinica."""
    invalida_statistiche(clinica_id)
    try:
        payload = {"coda": coda_flat(clinica_id), "statistiche": statistiche_coda(clinica_id)}
    except Exception:
        logger.exception("Failed to build queue update for clinic %s", clinica_id)
        return
    bus.pubblica(stanza_clinica(clinica_id), "queue:updated", payload)


def emetti_aggiornamento_paziente(voce_id: str, posizione: int, stato: StatoCoda | str) -> None:
    valore = stato.value if isinstance(stato, StatoCoda) else stato
    bus.pubblica(stanza_paziente(voce_id), "patient:called", {"posizione": posizione, "stato": valore})


def emetti_presenza_medico(clinica_id: str, presente: bool) -> None:
    dati = {"clinica_id": clinica_id, "medico_presente": presente}
    bus.pubblica(stanza_clinica(clinica_id), "doctor:presence", dati)
    bus.pubblica(stanza_pazienti_clinica(clinica_id), "doctor:presence", dati)


def emetti_evento_clinica(clinica_id: str, evento: str, dati: Any) -> None:
    bus.pubblica(stanza_clinica(clinica_id), evento, dati)
