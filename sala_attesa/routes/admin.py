from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, status

from ..admin_service import (
    crea_clinica_admin,
    dettaglio_clinica,
    imposta_stato_clinica,
    inizia_pagamento_konnect,
    lista_pagamenti,
    metriche_admin,
    registra_pagamento,
    reset_password_clinica,
    salute_cliniche,
)
from ..auth_deps import richiedi_admin
from ..schemas import CambioPasswordIn, CreaClinicaIn, KonnectIn, PagamentoIn, StatoClinicaIn
from . import ok

router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(richiedi_admin)])


@router.get("/metrics")
def api_metriche() -> dict[str, Any]:
    return ok(metriche_admin())


@router.get("/clinics")
def api_cliniche() -> dict[str, Any]:
    return ok(salute_cliniche())


@router.post("/clinics", status_code=status.HTTP_201_CREATED)
def api_crea_clinica(payload: CreaClinicaIn) -> dict[str, Any]:
    return ok(crea_clinica_admin(payload.model_dump()))


@router.get("/clinics/{clinica_id}")
def api_dettaglio_clinica(clinica_id: str) -> dict[str, Any]:
    return ok(dettaglio_clinica(clinica_id))


@router.patch("/clinics/{clinica_id}/status")
def api_stato_clinica(clinica_id: str, payload: StatoClinicaIn) -> dict[str, Any]:
    return ok(imposta_stato_clinica(clinica_id, payload.attiva))


@router.post("/clinics/{clinica_id}/reset-password")
def api_reset_password(clinica_id: str, payload: CambioPasswordIn) -> dict[str, Any]:
    reset_password_clinica(clinica_id, payload.nuova_password)
    return ok({"messaggio": "Password updated"})


@router.get("/clinics/{clinica_id}/payments")
def api_pagamenti(clinica_id: str) -> dict[str, Any]:
    return ok(lista_pagamenti(clinica_id))


@router.post("/clinics/{clinica_id}/payments", status_code=status.HTTP_201_CREATED)
def api_registra_pagamento(clinica_id: str, payload: PagamentoIn) -> dict[str, Any]:
    return ok(registra_pagamento(clinica_id, **payload.model_dump()))


@router.post("/clinics/{clinica_id}/payments/konnect")
def api_pagamento_konnect(clinica_id: str, payload: KonnectIn) -> dict[str, Any]:
    return ok(inizia_pagamento_konnect(clinica_id, payload.mese))
