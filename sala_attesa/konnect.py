"""
Client del gateway di pagamento Konnect (Tunisia).
Gli importi sono sempre in millimes (1 TND = 1000 millimes).
"""
from __future__ import annotations

import logging
from typing import Any

import requests

from . import config

logger = logging.getLogger(__name__)


class KonnectError(RuntimeError):
    pass


def _json(r: requests.Response) -> dict[str, Any]:
    try:
        return r.json()
    except ValueError as e:
        raise KonnectError("Konnect returned an invalid response") from e


class KonnectClient:
    def __init__(
        self,
        api_url: str | None = None,
        api_key: str | None = None,
        wallet_id: str | None = None,
        timeout: float = 15,
    ) -> None:
        self.api_url = (api_url or config.KONNECT_API_URL).rstrip("/")
        self.api_key = api_key or config.KONNECT_API_KEY
        self.wallet_id = wallet_id or config.KONNECT_WALLET_ID
        self.timeout = timeout

    def _headers(self) -> dict[str, str]:
        if not self.api_key:
            raise KonnectError("KONNECT_API_KEY must be set")
        return {"Content-Type": "application/json", "x-api-key": self.api_key}

    def _richiesta(self, metodo: str, percorso: str, **kwargs: Any) -> requests.Response:
        headers = self._headers()
        try:
            return requests.request(
                metodo, f"{self.api_url}{percorso}", headers=headers, timeout=self.timeout, **kwargs
            )
        except requests.RequestException as e:
            logger.error("[Konnect] %s %s unreachable: %s", metodo, percorso, e)
            raise KonnectError(f"Konnect unreachable: {e.__class__.__name__}") from e

    def init_pagamento(
        self,
        importo: int,
        ordine_id: str,
        descrizione: str,
        webhook_url: str,
        success_url: str,
        fail_url: str,
        email: str | None = None,
        telefono: str | None = None,
        nome: str | None = None,
    ) -> dict[str, str]:
        """Ritorna {"payUrl", "paymentRef"}."""
        if not self.wallet_id:
            raise KonnectError("KONNECT_API_KEY and KONNECT_WALLET_ID must be set")

        body = {
            "receiverWalletId": self.wallet_id,
            "token": "TND",
            "amount": importo,
            "type": "immediate",
            "description": descrizione,
            "acceptedPaymentMethods": ["bank_card", "e-DINAR", "wallet"],
            "lifespan": 60,
            "checkoutForm": False,
            "addPaymentFeesToAmount": False,
            "firstName": nome,
            "email": email,
            "phoneNumber": telefono,
            "orderId": ordine_id,
            "webhook": webhook_url,
            "silentWebhook": True,
            "successUrl": success_url,
            "failUrl": fail_url,
        }
        r = self._richiesta("POST", "/payments/init-payment", json=body)
        if not r.ok:
            logger.error("[Konnect] Init payment failed: %s %s", r.status_code, r.text)
            raise KonnectError(f"Konnect payment init failed: {r.status_code}")
        return _json(r)

    def dettagli_pagamento(self, payment_ref: str) -> dict[str, Any]:
        """Ritorna {"payment": {"id", "amount", "status", ...}}; status: completed | pending | failed."""
        r = self._richiesta("GET", f"/payments/{payment_ref}")
        if not r.ok:
            raise KonnectError(f"Konnect get payment failed: {r.status_code}")
        return _json(r)


def get_client() -> KonnectClient:
    return KonnectClient()
