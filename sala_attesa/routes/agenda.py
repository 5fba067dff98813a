from __future__ import annotations

from datetime import date
from typing import Any

from fastapi import APIRouter, Depends, Query, Response, status

from .. import agenda
from ..auth_deps import get_current_clinica
from ..models import Clinica, StatoAppuntamento
from ..schemas import (
    AppuntamentoIn,
    AppuntamentoUpdateIn,
    MedicoIn,
    MedicoUpdateIn,
    PazienteIn,
    PazienteUpdateIn,
)
from . import ok

medici = APIRouter(prefix="/api/doctors", tags=["doctors"])
pazienti = APIRouter(prefix="/api/patients", tags=["patients"])
appuntamenti = APIRouter(prefix="/api/appointments", tags=["appointments"])
calendario = APIRouter(prefix="/api/calendar", tags=["calendar"])

routers = (medici, pazienti, appuntamenti, calendario)


# =========================
# Medici
# =========================
@medici.get("")
def api_medici(attivi: bool = True, clinica: Clinica = Depends(get_current_clinica)) -> dict[str, Any]:
    return ok(agenda.lista_medici(clinica.id, solo_attivi=attivi))


@medici.get("/{medico_id}")
def api_medico(medico_id: str, clinica: Clinica = Depends(get_current_clinica)) -> dict[str, Any]:
    return ok(agenda.get_medico(clinica.id, medico_id))


@medici.post("", status_code=status.HTTP_201_CREATED)
def api_crea_medico(payload: MedicoIn, clinica: Clinica = Depends(get_current_clinica)) -> dict[str, Any]:
    return ok(agenda.crea_medico(clinica.id, payload.model_dump(exclude_none=True)))


@medici.patch("/{medico_id}")
def api_aggiorna_medico(
    medico_id: str, payload: MedicoUpdateIn, clinica: Clinica = Depends(get_current_clinica)
) -> dict[str, Any]:
    return ok(agenda.aggiorna_medico(clinica.id, medico_id, payload.model_dump(exclude_none=True)))


@medici.delete("/{medico_id}", status_code=status.HTTP_204_NO_CONTENT)
def api_disattiva_medico(medico_id: str, clinica: Clinica = Depends(get_current_clinica)) -> Response:
    agenda.disattiva_medico(clinica.id, medico_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@medici.get("/{medico_id}/availability")
def api_disponibilita(
    medico_id: str,
    data: date = Query(...),
    durata: int | None = Query(None, ge=5, le=180),
    clinica: Clinica = Depends(get_current_clinica),
) -> dict[str, Any]:
    return ok(agenda.disponibilita_medico(clinica.id, medico_id, data, durata))


# =========================
# Pazienti
# =========================
@pazienti.get("")
def api_pazienti(
    cerca: str | None = None,
    pagina: int = Query(1, ge=1),
    limite: int = Query(20, ge=1, le=100),
    clinica: Clinica = Depends(get_current_clinica),
) -> dict[str, Any]:
    righe, totale = agenda.cerca_pazienti(clinica.id, cerca, pagina, limite)
    return ok(righe, pagina=pagina, limite=limite, totale=totale)


@pazienti.get("/{paziente_id}")
def api_paziente(paziente_id: str, clinica: Clinica = Depends(get_current_clinica)) -> dict[str, Any]:
    return ok(agenda.get_paziente(clinica.id, paziente_id))


@pazienti.post("", status_code=status.HTTP_201_CREATED)
def api_crea_paziente(payload: PazienteIn, clinica: Clinica = Depends(get_current_clinica)) -> dict[str, Any]:
    return ok(agenda.crea_paziente(clinica.id, payload.model_dump(exclude_none=True)))


@pazienti.patch("/{paziente_id}")
def api_aggiorna_paziente(
    paziente_id: str, payload: PazienteUpdateIn, clinica: Clinica = Depends(get_current_clinica)
) -> dict[str, Any]:
    return ok(agenda.aggiorna_paziente(clinica.id, paziente_id, payload.model_dump(exclude_none=True)))


@pazienti.delete("/{paziente_id}", status_code=status.HTTP_204_NO_CONTENT)
def api_elimina_paziente(paziente_id: str, clinica: Clinica = Depends(get_current_clinica)) -> Response:
    agenda.elimina_paziente(clinica.id, paziente_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@pazienti.get("/{paziente_id}/history")
def api_storico(
    paziente_id: str,
    pagina: int = Query(1, ge=1),
    limite: int = Query(20, ge=1, le=100),
    clinica: Clinica = Depends(get_current_clinica),
) -> dict[str, Any]:
    righe, totale = agenda.storico_paziente(clinica.id, paziente_id, pagina, limite)
    return ok(righe, pagina=pagina, limite=limite, totale=totale)


# =========================
# Appuntamenti
# =========================
@appuntamenti.get("")
def api_appuntamenti(
    data: date | None = None,
    dal: date | None = None,
    al: date | None = None,
    medico_id: str | None = None,
    paziente_id: str | None = None,
    stato: StatoAppuntamento | None = None,
    pagina: int = Query(1, ge=1),
    limite: int = Query(20, ge=1, le=100),
    clinica: Clinica = Depends(get_current_clinica),
) -> dict[str, Any]:
    righe, totale = agenda.lista_appuntamenti(
        clinica.id,
        giorno=data,
        dal=dal,
        al=al,
        medico_id=medico_id,
        paziente_id=paziente_id,
        stato=stato,
        pagina=pagina,
        limite=limite,
    )
    return ok(righe, pagina=pagina, limite=limite, totale=totale)


@appuntamenti.get("/{appuntamento_id}")
def api_appuntamento(appuntamento_id: str, clinica: Clinica = Depends(get_current_clinica)) -> dict[str, Any]:
    return ok(agenda.get_appuntamento(clinica.id, appuntamento_id))


@appuntamenti.post("", status_code=status.HTTP_201_CREATED)
def api_crea_appuntamento(payload: AppuntamentoIn, clinica: Clinica = Depends(get_current_clinica)) -> dict[str, Any]:
    return ok(
        agenda.crea_appuntamento(
            clinica.id,
            medico_id=payload.medico_id,
            paziente_id=payload.paziente_id,
            giorno=payload.data,
            orario=payload.orario,
            durata=payload.durata,
            motivo=payload.motivo,
            note=payload.note,
        )
    )


@appuntamenti.patch("/{appuntamento_id}")
def api_aggiorna_appuntamento(
    appuntamento_id: str, payload: AppuntamentoUpdateIn, clinica: Clinica = Depends(get_current_clinica)
) -> dict[str, Any]:
    return ok(agenda.aggiorna_appuntamento(clinica.id, appuntamento_id, payload.model_dump(exclude_unset=True)))


@appuntamenti.delete("/{appuntamento_id}", status_code=status.HTTP_204_NO_CONTENT)
def api_annulla_appuntamento(
    appuntamento_id: str, motivo: str | None = None, clinica: Clinica = Depends(get_current_clinica)
) -> Response:
    agenda.annulla_appuntamento(clinica.id, appuntamento_id, motivo)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@appuntamenti.post("/{appuntamento_id}/checkin")
def api_checkin_appuntamento(appuntamento_id: str, clinica: Clinica = Depends(get_current_clinica)) -> dict[str, Any]:
    return ok(agenda.checkin_appuntamento(clinica.id, appuntamento_id))


# =========================
# Calendario
# =========================
@calendario.get("/day/{giorno}")
def api_giorno(giorno: date, clinica: Clinica = Depends(get_current_clinica)) -> dict[str, Any]:
    return ok(agenda.vista_giorno(clinica.id, giorno))


@calendario.get("/week/{giorno}")
def api_settimana(giorno: date, clinica: Clinica = Depends(get_current_clinica)) -> dict[str, Any]:
    return ok(agenda.vista_settimana(clinica.id, giorno))


@calendario.get("/month/{giorno}")
def api_mese(giorno: date, clinica: Clinica = Depends(get_current_clinica)) -> dict[str, Any]:
    return ok(agenda.vista_mese(clinica.id, giorno))


@calendario.get("/slots")
def api_slot(
    data: date = Query(...),
    medico_id: str | None = None,
    durata: int = Query(15, ge=5, le=180),
    clinica: Clinica = Depends(get_current_clinica),
) -> dict[str, Any]:
    return ok(agenda.slot_liberi(clinica.id, data, medico_id=medico_id, durata=durata))
