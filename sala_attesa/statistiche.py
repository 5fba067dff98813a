from __future__ import annotations

import threading
import time
from typing import Any

from sqlalchemy import delete, func, select

from .config import STATS_CACHE_SECONDS
from .db import db_session
from .models import StatoCoda, VoceCoda
from .tempo import inizio_giorno_utc, minuti


class CacheTTL:
    """Cache in memoria con scadenza per chiave."""

    def __init__(self) -> None:
        self._dati: dict[str, tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, chiave: str) -> Any | None:
        with self._lock:
            voce = self._dati.get(chiave)
            if voce is None:
                return None
            scade, valore = voce
            if time.monotonic() > scade:
                del self._dati[chiave]
                return None
            return valore

    def set(self, chiave: str, valore: Any, ttl: float) -> None:
        with self._lock:
            self._dati[chiave] = (time.monotonic() + ttl, valore)

    def delete(self, chiave: str) -> bool:
        with self._lock:
            return self._dati.pop(chiave, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._dati.clear()


cache = CacheTTL()


def _chiave(clinica_id: str) -> str:
    return f"stats:{clinica_id}"


def statistiche_coda(clinica_id: str) -> dict[str, Any]:
    """
    - in_attesa: WAITING + NOTIFIED (esclusa la visita in corso)
    - visti: visite completate oggi
    - attesa_media / attesa_max: minuti tra arrivo e chiamata, solo oggi
    - durata_ultima_visita: durata dell'ultima visita completata
    - assenti: NO_SHOW di oggi
    """
    cached = cache.get(_chiave(clinica_id))
    if cached is not None:
        return cached

    da = inizio_giorno_utc()

    with db_session() as s:
        in_attesa = s.execute(
            select(func.count(VoceCoda.id)).where(
                VoceCoda.clinica_id == clinica_id,
                VoceCoda.stato.in_((StatoCoda.WAITING, StatoCoda.NOTIFIED)),
            )
        ).scalar_one()

        visti = s.execute(
            select(VoceCoda.arrivato_il, VoceCoda.chiamato_il).where(
                VoceCoda.clinica_id == clinica_id,
                VoceCoda.stato == StatoCoda.COMPLETED,
                VoceCoda.arrivato_il >= da,
            )
        ).all()

        assenti = s.execute(
            select(func.count(VoceCoda.id)).where(
                VoceCoda.clinica_id == clinica_id,
                VoceCoda.stato == StatoCoda.NO_SHOW,
                VoceCoda.arrivato_il >= da,
            )
        ).scalar_one()

        ultima = s.execute(
            select(VoceCoda.chiamato_il, VoceCoda.completato_il)
            .where(
                VoceCoda.clinica_id == clinica_id,
                VoceCoda.stato == StatoCoda.COMPLETED,
                VoceCoda.chiamato_il.is_not(None),
                VoceCoda.completato_il.is_not(None),
            )
            .order_by(VoceCoda.completato_il.desc())
            .limit(1)
        ).first()

    attese = [minuti(r.chiamato_il - r.arrivato_il) for r in visti if r.arrivato_il and r.chiamato_il]
    attesa_media = int(sum(attese) / len(attese) + 0.5) if attese else None
    attesa_max = max(attese) if attese else None

    ultima_visita = minuti(ultima.completato_il - ultima.chiamato_il) if ultima else None

    stats = {
        "in_attesa": in_attesa,
        "visti": len(visti),
        "attesa_media": attesa_media,
        "attesa_max": attesa_max,
        "durata_ultima_visita": ultima_visita,
        "assenti": assenti,
    }
    cache.set(_chiave(clinica_id), stats, STATS_CACHE_SECONDS)
    return stats


def invalida_statistiche(clinica_id: str) -> None:
    cache.delete(_chiave(clinica_id))


def reset_statistiche(clinica_id: str) -> int:
    """Cancella le voci COMPLETED della clinica. Ritorna quante ne ha cancellate."""
    with db_session() as s:
        res = s.execute(
            delete(VoceCoda).where(VoceCoda.clinica_id == clinica_id, VoceCoda.stato == StatoCoda.COMPLETED)
        )
        cancellate = res.rowcount or 0
    invalida_statistiche(clinica_id)
    return cancellate
