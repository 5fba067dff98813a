"""
Riconciliazione posizioni/stati della coda di una clinica.

Regola (applicata dopo ogni modifica della coda):
- voci attive = WAITING, NOTIFIED, IN_CONSULTATION
- ordinate e rinumerate 1..N
- posizione 1 -> IN_CONSULTATION (chiamato_il impostato una sola volta)
- posizione 2 -> NOTIFIED (notificato_il impostato una sola volta)
- posizione >= 3 -> WAITING

Ordinamento:
1. voci riordinate a mano (ordine_priorita valorizzato), in ordine di timestamp
2. voci con appuntamento, per orario appuntamento
3. walk-in, per orario di arrivo
"""
from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .errori import ErroreServizio, non_trovato
from .models import STATI_ATTIVI, StatoCoda, VoceCoda, adesso


def stato_per_posizione(posizione: int) -> StatoCoda:
    if posizione == 1:
        return StatoCoda.IN_CONSULTATION
    if posizione == 2:
        return StatoCoda.NOTIFIED
    return StatoCoda.WAITING


def chiave_ordinamento(v: VoceCoda) -> tuple:
    return (
        v.ordine_priorita is None,
        v.ordine_priorita or datetime.min,
        v.orario_appuntamento is None,
        v.orario_appuntamento or datetime.min,
        v.arrivato_il,
        v.id,
    )


def voci_attive(s: Session, clinica_id: str) -> list[VoceCoda]:
    """Voci attive nell'ordine delle posizioni correnti."""
    q = (
        select(VoceCoda)
        .where(VoceCoda.clinica_id == clinica_id, VoceCoda.stato.in_(STATI_ATTIVI))
        .order_by(VoceCoda.posizione.asc(), VoceCoda.arrivato_il.asc())
    )
    return list(s.scalars(q))


def applica_regola(voci: list[VoceCoda], ora: datetime | None = None) -> list[VoceCoda]:
    """Ordina, rinumera e assegna gli stati. Non tocca la sessione: lavora sugli oggetti."""
    ora = ora or adesso()
    ordinate = sorted(voci, key=chiave_ordinamento)
    for pos, v in enumerate(ordinate, start=1):
        v.posizione = pos
        nuovo = stato_per_posizione(pos)
        if nuovo == StatoCoda.IN_CONSULTATION and v.chiamato_il is None:
            v.chiamato_il = ora
        elif nuovo == StatoCoda.NOTIFIED and v.notificato_il is None:
            v.notificato_il = ora
        v.stato = nuovo
    return ordinate


def ricalcola_posizioni(s: Session, clinica_id: str, ora: datetime | None = None) -> list[VoceCoda]:
    """Ricalcola posizioni e stati dentro la transazione del chiamante."""
    ordinate = applica_regola(voci_attive(s, clinica_id), ora=ora)
    s.flush()
    return ordinate


def prossima_posizione(s: Session, clinica_id: str) -> int:
    q = select(func.max(VoceCoda.posizione)).where(
        VoceCoda.clinica_id == clinica_id, VoceCoda.stato.in_(STATI_ATTIVI)
    )
    return (s.execute(q).scalar() or 0) + 1


def riordina_voce(s: Session, clinica_id: str, voce_id: str, nuova_posizione: int) -> bool:
    """
    Sposta una voce attiva a nuova_posizione e "congela" l'intero ordine:
    ogni voce attiva riceve un ordine_priorita crescente, così i ricalcoli
    successivi rispettano il riordino e i nuovi arrivi finiscono in coda.
    Ritorna False se la posizione è già quella richiesta.
    """
    voci = voci_attive(s, clinica_id)
    ids = [v.id for v in voci]
    if voce_id not in ids:
        raise non_trovato("ENTRY_NOT_FOUND", "Queue entry not found or not active")

    if nuova_posizione < 1 or nuova_posizione > len(voci):
        raise ErroreServizio("INVALID_POSITION", f"Position must be between 1 and {len(voci)}")

    attuale = ids.index(voce_id) + 1
    if attuale == nuova_posizione:
        return False

    ids.pop(attuale - 1)
    ids.insert(nuova_posizione - 1, voce_id)

    per_id = {v.id: v for v in voci}
    base = adesso()
    for i, vid in enumerate(ids):
        per_id[vid].ordine_priorita = base + timedelta(milliseconds=i)

    applica_regola(voci, ora=base)
    s.flush()
    return True
