from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Query

from ..admin_service import gestisci_webhook_konnect
from . import ok

router = APIRouter(prefix="/api/payments", tags=["payments"])


@router.api_route("/konnect/webhook", methods=["GET", "POST"])
def api_webhook_konnect(payment_ref: str = Query(..., min_length=1)) -> dict[str, Any]:
    """Konnect notifica solo il riferimento: lo stato viene riletto dal gateway."""
    return ok(gestisci_webhook_konnect(payment_ref))
