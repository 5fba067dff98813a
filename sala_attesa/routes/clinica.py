from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from ..auth_deps import get_current_clinica
from ..models import Clinica
from ..qr import qr_checkin
from ..rate_limit import limite_pubblico
from ..schemas import AggiornaClinicaIn, PresenzaMedicoIn
from ..services import aggiorna_clinica, get_clinica, imposta_presenza_medico, info_pubblica_clinica
from . import ok

router = APIRouter(prefix="/api/clinic", tags=["clinic"])


@router.get("")
def api_clinica(clinica: Clinica = Depends(get_current_clinica)) -> dict[str, Any]:
    return ok(get_clinica(clinica.id))


@router.patch("")
def api_aggiorna_clinica(payload: AggiornaClinicaIn, clinica: Clinica = Depends(get_current_clinica)) -> dict[str, Any]:
    return ok(aggiorna_clinica(clinica.id, payload.model_dump(exclude_none=True)))


@router.get("/qr")
def api_qr(clinica: Clinica = Depends(get_current_clinica)) -> dict[str, Any]:
    dati = qr_checkin(clinica.id)
    dati["nome_clinica"] = clinica.nome
    return ok(dati)


@router.post("/doctor-presence")
def api_presenza(payload: PresenzaMedicoIn, clinica: Clinica = Depends(get_current_clinica)) -> dict[str, Any]:
    return ok(imposta_presenza_medico(clinica.id, payload.presente))


@router.get("/{clinica_id}/info", dependencies=[Depends(limite_pubblico)])
def api_info_pubblica(clinica_id: str) -> dict[str, Any]:
    return ok(info_pubblica_clinica(clinica_id))
