from __future__ import annotations

from typing import Any


class ErroreServizio(ValueError):
    """
    Errore di dominio sollevato dai servizi.
    L'API lo traduce in {"error": {"code", "message", "details"}} con status_http.
    """

    def __init__(self, codice: str, messaggio: str, status_http: int = 400, dettagli: Any = None) -> None:
        super().__init__(messaggio)
        self.codice = codice
        self.messaggio = messaggio
        self.status_http = status_http
        self.dettagli = dettagli

    def to_dict(self) -> dict[str, Any]:
        err: dict[str, Any] = {"code": self.codice, "message": self.messaggio}
        if self.dettagli is not None:
            err["details"] = self.dettagli
        return err


def non_trovato(codice: str, messaggio: str) -> ErroreServizio:
    return ErroreServizio(codice, messaggio, status_http=404)


def conflitto(codice: str, messaggio: str, dettagli: Any = None) -> ErroreServizio:
    return ErroreServizio(codice, messaggio, status_http=409, dettagli=dettagli)
