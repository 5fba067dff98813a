from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .db import db_session
from .errori import ErroreServizio, non_trovato
from .models import (
    STATI_ATTIVI,
    STATI_TERMINALI,
    Appuntamento,
    Clinica,
    MetodoCheckIn,
    StatoAppuntamento,
    StatoCoda,
    VoceCoda,
    adesso,
)
from .notifiche import (
    emetti_aggiornamento_coda,
    emetti_aggiornamento_paziente,
    emetti_presenza_medico,
    voce_to_dict,
)
from .posizioni import prossima_posizione, ricalcola_posizioni, riordina_voce, voci_attive
from .statistiche import statistiche_coda
from .telefono import formatta_telefono
from .tempo import inizio_giorno_utc

logger = logging.getLogger(__name__)


# =========================
# Helper / DTO
# =========================
@dataclass(frozen=True)
class EsitoCheckIn:
    voce: dict[str, Any]
    gia_in_coda: bool


# (voce_id, posizione, stato) da notificare dopo il commit
Variazione = tuple[str, int, StatoCoda]

_STATO_APPUNTAMENTO = {
    StatoCoda.IN_CONSULTATION: StatoAppuntamento.IN_PROGRESS,
    StatoCoda.COMPLETED: StatoAppuntamento.COMPLETED,
    StatoCoda.NO_SHOW: StatoAppuntamento.NO_SHOW,
}


def _sincronizza_appuntamento(s: Session, voce: VoceCoda) -> None:
    """L'appuntamento collegato segue la voce di coda."""
    nuovo = _STATO_APPUNTAMENTO.get(voce.stato)
    if not voce.appuntamento_id or nuovo is None:
        return
    app = s.get(Appuntamento, voce.appuntamento_id)
    if app and app.stato != StatoAppuntamento.CANCELLED:
        app.stato = nuovo


def _ricalcola(s: Session, clinica_id: str) -> list[Variazione]:
    """Ricalcola e ritorna solo le voci la cui posizione o stato è cambiato."""
    prima = {v.id: (v.posizione, v.stato) for v in voci_attive(s, clinica_id)}
    variate: list[Variazione] = []
    for v in ricalcola_posizioni(s, clinica_id):
        if prima.get(v.id) != (v.posizione, v.stato):
            variate.append((v.id, v.posizione, v.stato))
            _sincronizza_appuntamento(s, v)
    return variate


def _notifica(clinica_id: str, variate: list[Variazione]) -> None:
    emetti_aggiornamento_coda(clinica_id)
    for voce_id, posizione, stato in variate:
        emetti_aggiornamento_paziente(voce_id, posizione, stato)


def _voce_della_clinica(s: Session, clinica_id: str, voce_id: str) -> VoceCoda:
    v = s.get(VoceCoda, voce_id)
    if not v or v.clinica_id != clinica_id:
        raise non_trovato("ENTRY_NOT_FOUND", "Queue entry not found")
    return v


def _scollega_appuntamento(s: Session, voce: VoceCoda) -> None:
    if voce.appuntamento_id:
        app = s.get(Appuntamento, voce.appuntamento_id)
        if app and app.voce_coda_id == voce.id:
            app.voce_coda_id = None


# =========================
# Coda (use case core)
# =========================
def trova_voce_attiva_oggi(s: Session, clinica_id: str, telefono: str) -> VoceCoda | None:
    """Stesso telefono, stessa clinica, stato attivo, arrivato oggi (giorno locale)."""
    q = (
        select(VoceCoda)
        .where(
            VoceCoda.clinica_id == clinica_id,
            VoceCoda.telefono_paziente == telefono,
            VoceCoda.stato.in_(STATI_ATTIVI),
            VoceCoda.arrivato_il >= inizio_giorno_utc(),
        )
        .limit(1)
    )
    return s.scalars(q).first()


def aggiungi_paziente(
    clinica_id: str,
    telefono: str,
    nome: str | None = None,
    metodo: MetodoCheckIn = MetodoCheckIn.MANUAL,
    orario_appuntamento: datetime | None = None,
    arrivato_il: datetime | None = None,
    appuntamento_id: str | None = None,
) -> EsitoCheckIn:
    """
    Use case: check-in di un paziente.
    - normalizza il telefono
    - blocca il doppio check-in della giornata (ritorna la voce esistente)
    - accoda in WAITING, ricalcola posizioni/stati, notifica
    """
    telefono = formatta_telefono(telefono)

    with db_session() as s:
        esistente = trova_voce_attiva_oggi(s, clinica_id, telefono)
        if esistente:
            return EsitoCheckIn(voce_to_dict(esistente), gia_in_coda=True)

        v = VoceCoda(
            clinica_id=clinica_id,
            telefono_paziente=telefono,
            nome_paziente=(nome or "").strip() or None,
            posizione=prossima_posizione(s, clinica_id),
            stato=StatoCoda.WAITING,
            metodo_checkin=metodo,
            orario_appuntamento=orario_appuntamento,
            appuntamento_id=appuntamento_id,
        )
        if arrivato_il is not None:
            v.arrivato_il = arrivato_il
        s.add(v)
        s.flush()

        variate = _ricalcola(s, clinica_id)
        voce = voce_to_dict(v)

    logger.info("Check-in %s in clinic %s at position %s", voce["id"], clinica_id, voce["posizione"])
    _notifica(clinica_id, variate)
    return EsitoCheckIn(voce, gia_in_coda=False)


def rimuovi_paziente(clinica_id: str, voce_id: str) -> bool:
    with db_session() as s:
        v = s.get(VoceCoda, voce_id)
        if not v or v.clinica_id != clinica_id:
            return False
        _scollega_appuntamento(s, v)
        s.delete(v)
        s.flush()
        variate = _ricalcola(s, clinica_id)

    _notifica(clinica_id, variate)
    return True


def chiama_prossimo(clinica_id: str) -> dict[str, Any] | None:
    """
    Use case: chiamare il prossimo paziente.
    - completa la visita in corso
    - se resta qualcuno in attesa ricalcola e ritorna il nuovo IN_CONSULTATION
    - altrimenti ritorna None
    """
    completata: Variazione | None = None
    variate: list[Variazione] = []
    nuovo: dict[str, Any] | None = None

    with db_session() as s:
        in_visita = s.scalars(
            select(VoceCoda)
            .where(VoceCoda.clinica_id == clinica_id, VoceCoda.stato == StatoCoda.IN_CONSULTATION)
            .order_by(VoceCoda.posizione.asc())
            .limit(1)
        ).first()

        if in_visita:
            in_visita.stato = StatoCoda.COMPLETED
            in_visita.completato_il = adesso()
            _sincronizza_appuntamento(s, in_visita)
            completata = (in_visita.id, in_visita.posizione, in_visita.stato)
            s.flush()

        rimasti = s.execute(
            select(func.count(VoceCoda.id)).where(
                VoceCoda.clinica_id == clinica_id,
                VoceCoda.stato.in_((StatoCoda.WAITING, StatoCoda.NOTIFIED)),
            )
        ).scalar_one()

        if rimasti:
            variate = _ricalcola(s, clinica_id)
            primo = s.scalars(
                select(VoceCoda).where(
                    VoceCoda.clinica_id == clinica_id, VoceCoda.stato == StatoCoda.IN_CONSULTATION
                )
            ).first()
            nuovo = voce_to_dict(primo) if primo else None

    if completata:
        variate.insert(0, completata)
    _notifica(clinica_id, variate)
    return nuovo


def lascia_coda(voce_id: str) -> str:
    """Il paziente esce volontariamente dalla coda. Ritorna l'id della clinica."""
    with db_session() as s:
        v = s.get(VoceCoda, voce_id)
        if not v:
            raise non_trovato("ENTRY_NOT_FOUND", "Queue entry not found")
        if v.stato in STATI_TERMINALI:
            raise ErroreServizio("CANNOT_LEAVE", "Cannot leave queue in current status")

        v.stato = StatoCoda.CANCELLED
        clinica_id = v.clinica_id
        s.flush()
        variate = _ricalcola(s, clinica_id)

    _notifica(clinica_id, variate)
    emetti_aggiornamento_paziente(voce_id, 0, StatoCoda.CANCELLED)
    return clinica_id


def get_coda(clinica_id: str) -> dict[str, Any]:
    with db_session() as s:
        coda = [voce_to_dict(v) for v in voci_attive(s, clinica_id)]
    return {"coda": coda, "statistiche": statistiche_coda(clinica_id)}


def svuota_coda(clinica_id: str) -> int:
    """Cancella tutte le voci attive. Ritorna quante ne ha cancellate."""
    with db_session() as s:
        voci = voci_attive(s, clinica_id)
        ids = [v.id for v in voci]
        for v in voci:
            _scollega_appuntamento(s, v)
            s.delete(v)

    emetti_aggiornamento_coda(clinica_id)
    for voce_id in ids:
        emetti_aggiornamento_paziente(voce_id, 0, StatoCoda.CANCELLED)
    return len(ids)


def stato_paziente(voce_id: str) -> dict[str, Any] | None:
    """Vista pubblica della pagina stato paziente."""
    with db_session() as s:
        v = s.get(VoceCoda, voce_id)
        if not v:
            return None
        c = s.get(Clinica, v.clinica_id)
        dati = voce_to_dict(v)
        dati.update(
            {
                "attesa_stimata_minuti": v.posizione * c.durata_media_visita,
                "durata_media_visita": c.durata_media_visita,
                "nome_clinica": c.nome,
                "nome_medico": c.nome_medico,
                "medico_presente": c.medico_presente,
            }
        )
        return dati


def aggiorna_stato(
    clinica_id: str,
    voce_id: str,
    stato: StatoCoda,
    completato_il: datetime | None = None,
) -> dict[str, Any]:
    with db_session() as s:
        v = _voce_della_clinica(s, clinica_id, voce_id)
        v.stato = stato
        if completato_il is not None:
            v.completato_il = completato_il
        elif stato == StatoCoda.COMPLETED and v.completato_il is None:
            v.completato_il = adesso()
        _sincronizza_appuntamento(s, v)
        s.flush()

        variate: list[Variazione] = []
        if stato != StatoCoda.WAITING:
            variate = _ricalcola(s, clinica_id)
        voce = voce_to_dict(v)

    # la voce modificata viene sempre notificata, anche se il ricalcolo non l'ha toccata
    variate = [x for x in variate if x[0] != voce_id]
    variate.append((voce_id, voce["posizione"], StatoCoda(voce["stato"])))
    _notifica(clinica_id, variate)
    return voce


def riordina(clinica_id: str, voce_id: str, nuova_posizione: int) -> tuple[bool, dict[str, Any]]:
    """Riordino manuale. Ritorna (cambiato, voce aggiornata)."""
    with db_session() as s:
        prima = {v.id: (v.posizione, v.stato) for v in voci_attive(s, clinica_id)}
        cambiato = riordina_voce(s, clinica_id, voce_id, nuova_posizione)
        variate: list[Variazione] = []
        for v in voci_attive(s, clinica_id):
            if prima.get(v.id) != (v.posizione, v.stato):
                variate.append((v.id, v.posizione, v.stato))
                _sincronizza_appuntamento(s, v)
        voce = voce_to_dict(s.get(VoceCoda, voce_id))

    if cambiato:
        _notifica(clinica_id, variate)
    return cambiato, voce


# =========================
# Clinica
# =========================
def etichette_ui(tipo_attivita: str | None) -> dict[str, str]:
    medico = (tipo_attivita or "medical") == "medical"
    return {
        "customer": "patient" if medico else "client",
        "customers": "patients" if medico else "clients",
        "presenceOn": "Docteur présent" if medico else "Magasin ouvert",
        "presenceOff": "Docteur absent" if medico else "Magasin fermé",
        "addCustomer": "Ajouter un patient" if medico else "Ajouter un client",
        "noCustomers": "Aucun patient dans la file" if medico else "Aucun client dans la file",
    }


def clinica_to_dict(c: Clinica) -> dict[str, Any]:
    return {
        "id": c.id,
        "nome": c.nome,
        "nome_medico": c.nome_medico,
        "email": c.email,
        "telefono": c.telefono,
        "indirizzo": c.indirizzo,
        "lingua": c.lingua,
        "durata_media_visita": c.durata_media_visita,
        "notifica_alla_posizione": c.notifica_alla_posizione,
        "whatsapp_attivo": c.whatsapp_attivo,
        "medico_presente": c.medico_presente,
        "tipo_attivita": c.tipo_attivita or "medical",
        "mostra_appuntamenti": c.mostra_appuntamenti,
        "attiva": c.attiva,
        "etichette_ui": etichette_ui(c.tipo_attivita),
    }


def get_clinica(clinica_id: str) -> dict[str, Any]:
    with db_session() as s:
        c = s.get(Clinica, clinica_id)
        if not c:
            raise non_trovato("CLINIC_NOT_FOUND", "Clinic not found")
        return clinica_to_dict(c)


CAMPI_MODIFICABILI = {
    "nome",
    "nome_medico",
    "telefono",
    "indirizzo",
    "lingua",
    "durata_media_visita",
    "notifica_alla_posizione",
    "whatsapp_attivo",
    "tipo_attivita",
    "mostra_appuntamenti",
}


def aggiorna_clinica(clinica_id: str, dati: dict[str, Any]) -> dict[str, Any]:
    with db_session() as s:
        c = s.get(Clinica, clinica_id)
        if not c:
            raise non_trovato("CLINIC_NOT_FOUND", "Clinic not found")
        for campo, valore in dati.items():
            if campo in CAMPI_MODIFICABILI:
                setattr(c, campo, valore)
        s.flush()
        return clinica_to_dict(c)


def verifica_clinica_attiva(clinica_id: str) -> dict[str, Any]:
    with db_session() as s:
        c = s.get(Clinica, clinica_id)
        if not c or not c.attiva:
            raise non_trovato("CLINIC_NOT_FOUND", "Clinic not found or inactive")
        return {"id": c.id, "nome": c.nome, "durata_media_visita": c.durata_media_visita}


def info_pubblica_clinica(clinica_id: str) -> dict[str, Any]:
    with db_session() as s:
        c = s.get(Clinica, clinica_id)
        if not c:
            raise non_trovato("CLINIC_NOT_FOUND", "Clinic not found")
        in_attesa = s.execute(
            select(func.count(VoceCoda.id)).where(
                VoceCoda.clinica_id == clinica_id,
                VoceCoda.stato.in_((StatoCoda.WAITING, StatoCoda.NOTIFIED)),
            )
        ).scalar_one()
        return {
            "nome": c.nome,
            "in_attesa": in_attesa,
            "durata_media_visita": c.durata_media_visita,
            "medico_presente": c.medico_presente,
        }


def imposta_presenza_medico(clinica_id: str, presente: bool) -> dict[str, Any]:
    with db_session() as s:
        c = s.get(Clinica, clinica_id)
        if not c:
            raise non_trovato("CLINIC_NOT_FOUND", "Clinic not found")
        c.medico_presente = presente

    emetti_presenza_medico(clinica_id, presente)
    return {"id": clinica_id, "medico_presente": presente}


# =========================
# Reset notturno
# =========================
def reset_notturno() -> list[tuple[str, int]]:
    """
    A mezzanotte (ora locale) per ogni clinica attiva:
    - svuota la coda
    - imposta il medico assente e lo notifica
    Ritorna [(nome clinica, voci cancellate)].
    """
    with db_session() as s:
        cliniche = list(s.execute(select(Clinica.id, Clinica.nome).where(Clinica.attiva.is_(True))).all())

    esito: list[tuple[str, int]] = []
    for c in cliniche:
        cancellate = svuota_coda(c.id)
        with db_session() as s:
            s.get(Clinica, c.id).medico_presente = False
        emetti_presenza_medico(c.id, False)
        logger.info("[Midnight Reset] %s: cleared %d entries, doctor set absent", c.nome, cancellate)
        esito.append((c.nome, cancellate))

    logger.info("[Midnight Reset] Complete. Reset %d clinic(s).", len(cliniche))
    return esito
