from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from ..auth_deps import get_current_clinica
from ..errori import non_trovato
from ..models import Clinica, MetodoCheckIn, StatoCoda
from ..rate_limit import limite_pubblico
from ..schemas import AggiornaStatoIn, AggiungiPazienteIn, CheckInPubblicoIn, RiordinaIn
from ..services import (
    aggiorna_stato,
    aggiungi_paziente,
    chiama_prossimo,
    get_coda,
    lascia_coda,
    riordina,
    rimuovi_paziente,
    stato_paziente,
    svuota_coda,
    verifica_clinica_attiva,
)
from ..statistiche import reset_statistiche
from ..tempo import a_utc_naive, oggi_locale, parse_orario
from . import ok

router = APIRouter(prefix="/api/queue", tags=["queue"])


def _gia_in_coda(messaggio: str, voce: dict[str, Any]) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": {"code": "ALREADY_CHECKED_IN", "message": messaggio}, "data": voce},
    )


# =========================
# Staff (JWT)
# =========================
@router.get("")
def api_coda(clinica: Clinica = Depends(get_current_clinica)) -> dict[str, Any]:
    return ok(get_coda(clinica.id))


@router.post("", status_code=status.HTTP_201_CREATED)
def api_aggiungi(payload: AggiungiPazienteIn, clinica: Clinica = Depends(get_current_clinica)):
    orario = parse_orario(payload.orario_appuntamento, oggi_locale()) if payload.orario_appuntamento else None
    esito = aggiungi_paziente(
        clinica.id,
        payload.telefono,
        payload.nome,
        metodo=payload.metodo_checkin,
        orario_appuntamento=orario,
        arrivato_il=a_utc_naive(payload.arrivato_il) if payload.arrivato_il else None,
    )
    if esito.gia_in_coda:
        return _gia_in_coda("This patient is already in the queue", esito.voce)
    return ok(esito.voce)


@router.delete("")
def api_svuota(clinica: Clinica = Depends(get_current_clinica)) -> dict[str, Any]:
    return ok({"cancellate": svuota_coda(clinica.id)})


@router.post("/next")
def api_prossimo(clinica: Clinica = Depends(get_current_clinica)) -> dict[str, Any]:
    voce = chiama_prossimo(clinica.id)
    if not voce:
        raise non_trovato("NO_PATIENTS", "No patients waiting")
    return ok(voce)


@router.post("/reorder")
def api_riordina(payload: RiordinaIn, clinica: Clinica = Depends(get_current_clinica)) -> dict[str, Any]:
    cambiato, voce = riordina(clinica.id, payload.voce_id, payload.nuova_posizione)
    return ok({"cambiato": cambiato, "voce": voce})


@router.post("/reset-stats")
def api_reset_statistiche(clinica: Clinica = Depends(get_current_clinica)) -> dict[str, Any]:
    return ok({"cancellate": reset_statistiche(clinica.id)})


@router.patch("/{voce_id}/status")
def api_stato(
    voce_id: str, payload: AggiornaStatoIn, clinica: Clinica = Depends(get_current_clinica)
) -> dict[str, Any]:
    completato_il = a_utc_naive(payload.completato_il) if payload.completato_il else None
    return ok(aggiorna_stato(clinica.id, voce_id, payload.stato, completato_il=completato_il))


@router.delete("/{voce_id}")
def api_rimuovi(voce_id: str, clinica: Clinica = Depends(get_current_clinica)) -> dict[str, Any]:
    if not rimuovi_paziente(clinica.id, voce_id):
        raise non_trovato("ENTRY_NOT_FOUND", "Queue entry not found")
    return ok({"messaggio": "Patient removed from queue"})


# =========================
# Pubblici (rate limit per IP)
# =========================
@router.post(
    "/checkin/{clinica_id}",
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(limite_pubblico)],
)
def api_checkin_pubblico(clinica_id: str, payload: CheckInPubblicoIn):
    clinica = verifica_clinica_attiva(clinica_id)
    esito = aggiungi_paziente(clinica_id, payload.telefono, payload.nome, metodo=MetodoCheckIn.QR_CODE)
    if esito.gia_in_coda:
        return _gia_in_coda("You are already in the queue", esito.voce)

    voce = dict(esito.voce)
    voce["nome_clinica"] = clinica["nome"]
    voce["attesa_stimata_minuti"] = voce["posizione"] * clinica["durata_media_visita"]
    return ok(voce)


@router.get("/patient/{voce_id}", dependencies=[Depends(limite_pubblico)])
def api_stato_paziente(voce_id: str) -> dict[str, Any]:
    dati = stato_paziente(voce_id)
    if not dati:
        raise non_trovato("ENTRY_NOT_FOUND", "Queue entry not found")
    return ok(dati)


@router.post("/patient/{voce_id}/leave", dependencies=[Depends(limite_pubblico)])
def api_lascia(voce_id: str) -> dict[str, Any]:
    lascia_coda(voce_id)
    return ok({"messaggio": "Successfully left the queue", "stato": StatoCoda.CANCELLED.value})
