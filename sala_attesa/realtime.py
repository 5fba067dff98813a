"""
Fan-out in tempo reale: bus pub/sub in-process organizzato per stanze.

Stanze:
- clinic:{id}            dashboard dello staff
- clinic:{id}:patients   pagine stato dei pazienti (presenza medico)
- patient:{voce_id}      pagina stato del singolo paziente

Gli iscritti sono callback (evento, dati). Il WebSocket /ws registra una
callback che inoltra sul proprio event loop; i test registrano una lista.
"""
from __future__ import annotations

import itertools
import logging
import threading
from collections import defaultdict
from typing import Any, Callable

logger = logging.getLogger(__name__)

Callback = Callable[[str, Any], None]


def stanza_clinica(clinica_id: str) -> str:
    return f"clinic:{clinica_id}"


def stanza_pazienti_clinica(clinica_id: str) -> str:
    return f"clinic:{clinica_id}:patients"


def stanza_paziente(voce_id: str) -> str:
    return f"patient:{voce_id}"


TIPI_STANZA = ("clinic", "clinic_patients", "patient")


def tipo_stanza(stanza: str) -> str:
    if stanza.startswith("patient:"):
        return "patient"
    if stanza.endswith(":patients"):
        return "clinic_patients"
    return "clinic" if stanza.startswith("clinic:") else "other"


class BusEventi:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._callback: dict[int, Callback] = {}
        self._stanze: dict[str, set[int]] = defaultdict(set)

    def registra(self, callback: Callback) -> int:
        with self._lock:
            iscritto = next(self._ids)
            self._callback[iscritto] = callback
            return iscritto

    def entra(self, iscritto: int, stanza: str) -> int:
        """Aggiunge l'iscritto alla stanza; ritorna il numero di iscritti nella stanza."""
        with self._lock:
            if iscritto not in self._callback:
                raise KeyError(iscritto)
            self._stanze[stanza].add(iscritto)
            return len(self._stanze[stanza])

    def esci(self, iscritto: int, stanza: str) -> None:
        with self._lock:
            self._stanze.get(stanza, set()).discard(iscritto)

    def rimuovi(self, iscritto: int) -> None:
        with self._lock:
            self._callback.pop(iscritto, None)
            for stanza in list(self._stanze):
                self._stanze[stanza].discard(iscritto)
                if not self._stanze[stanza]:
                    del self._stanze[stanza]

    def iscrivi(self, stanza: str, callback: Callback) -> int:
        iscritto = self.registra(callback)
        self.entra(iscritto, stanza)
        return iscritto

    def numero_iscritti(self, stanza: str) -> int:
        with self._lock:
            return len(self._stanze.get(stanza, ()))

    def numero_connessioni(self) -> int:
        with self._lock:
            return len(self._callback)

    def stanze_per_tipo(self) -> dict[str, int]:
        """Stanze con almeno un iscritto, raggruppate per tipo (clinic, clinic_patients, patient)."""
        with self._lock:
            nomi = [stanza for stanza, iscritti in self._stanze.items() if iscritti]
        tipi = dict.fromkeys(TIPI_STANZA, 0)
        for nome in nomi:
            tipo = tipo_stanza(nome)
            tipi[tipo] = tipi.get(tipo, 0) + 1
        return tipi

    def pubblica(self, stanza: str, evento: str, dati: Any) -> int:
        with self._lock:
            destinatari = [self._callback[i] for i in self._stanze.get(stanza, ()) if i in self._callback]

        logger.debug("Emit '%s' to room '%s' (%d clients)", evento, stanza, len(destinatari))
        consegnati = 0
        for cb in destinatari:
            try:
                cb(evento, dati)
                consegnati += 1
            except Exception:
                # un client rotto non deve bloccare gli altri
                logger.exception("Subscriber failed for '%s' in room '%s'", evento, stanza)
        return consegnati

    def reset(self) -> None:
        with self._lock:
            self._callback.clear()
            self._stanze.clear()


bus = BusEventi()
