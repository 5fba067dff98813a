"""
Agenda: medici, anagrafica pazienti, appuntamenti e calendario.

Gli orari degli appuntamenti sono ora locale della clinica (naive).
Uno slot è occupato da ogni appuntamento non CANCELLED/NO_SHOW che si
sovrappone: [inizio, fine) contro [nuovo_inizio, nuova_fine).
"""
from __future__ import annotations

import calendar
import logging
from datetime import date, datetime, timedelta
from typing import Any, Iterable

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.orm import Session, selectinload

from .db import db_session
from .errori import ErroreServizio, conflitto, non_trovato
from .models import (
    STATI_APP_LIBERI,
    Appuntamento,
    Clinica,
    Medico,
    MetodoCheckIn,
    Paziente,
    StatoAppuntamento,
    VoceCoda,
)
from .notifiche import emetti_evento_clinica, to_iso
from .services import aggiungi_paziente
from .telefono import formatta_telefono
from .tempo import formatta_orario, oggi_locale, parse_orario

logger = logging.getLogger(__name__)

# indicizzato con date.weekday()
GIORNI = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


# =========================
# Helper
# =========================
def orari_del_giorno(orari_lavoro: dict | None, giorno: date) -> dict[str, str] | None:
    if not orari_lavoro:
        return None
    return orari_lavoro.get(GIORNI[giorno.weekday()]) or None


def genera_slot(
    inizio: datetime,
    fine: datetime,
    durata: int,
    occupati: Iterable[tuple[datetime, datetime]],
) -> list[dict[str, str]]:
    """Slot consecutivi di `durata` minuti dentro [inizio, fine), esclusi quelli sovrapposti."""
    occupati = list(occupati)
    passo = timedelta(minutes=durata)
    slot: list[dict[str, str]] = []
    corrente = inizio
    while corrente + passo <= fine:
        fine_slot = corrente + passo
        if not any(corrente < f and fine_slot > i for i, f in occupati):
            slot.append({"inizio": formatta_orario(corrente), "fine": formatta_orario(fine_slot)})
        corrente = fine_slot
    return slot


def _pagina(pagina: int, limite: int) -> tuple[int, int]:
    return (pagina - 1) * limite, limite


def _medico(s: Session, clinica_id: str, medico_id: str, solo_attivo: bool = False) -> Medico:
    m = s.get(Medico, medico_id)
    if not m or m.clinica_id != clinica_id or (solo_attivo and not m.attivo):
        raise non_trovato("NOT_FOUND", "Doctor not found" + (" or inactive" if solo_attivo else ""))
    return m


def _paziente(s: Session, clinica_id: str, paziente_id: str) -> Paziente:
    p = s.get(Paziente, paziente_id)
    if not p or p.clinica_id != clinica_id:
        raise non_trovato("NOT_FOUND", "Patient not found")
    return p


def _appuntamento(s: Session, clinica_id: str, appuntamento_id: str) -> Appuntamento:
    a = s.get(Appuntamento, appuntamento_id)
    if not a or a.clinica_id != clinica_id:
        raise non_trovato("NOT_FOUND", "Appointment not found")
    return a


def _occupati(s: Session, medico_id: str, giorno: date, escludi_id: str | None = None) -> list[Appuntamento]:
    q = select(Appuntamento).where(
        Appuntamento.medico_id == medico_id,
        Appuntamento.data == giorno,
        Appuntamento.stato.not_in(STATI_APP_LIBERI),
    )
    if escludi_id:
        q = q.where(Appuntamento.id != escludi_id)
    return list(s.scalars(q.order_by(Appuntamento.inizio.asc())))


def _verifica_slot(
    s: Session,
    medico: Medico,
    giorno: date,
    inizio: datetime,
    fine: datetime,
    escludi_id: str | None = None,
) -> None:
    """Orario di lavoro del medico e nessuna sovrapposizione, altrimenti ErroreServizio."""
    orari = orari_del_giorno(medico.orari_lavoro, giorno)
    if not orari:
        raise ErroreServizio("OUTSIDE_HOURS", f"Doctor does not work on {GIORNI[giorno.weekday()]}")

    if inizio < parse_orario(orari["start"], giorno) or fine > parse_orario(orari["end"], giorno):
        raise ErroreServizio(
            "OUTSIDE_HOURS", f"Appointment must be between {orari['start']} and {orari['end']}"
        )

    for a in _occupati(s, medico.id, giorno, escludi_id=escludi_id):
        if a.inizio < fine and a.fine > inizio:
            raise conflitto(
                "DOUBLE_BOOKING",
                "This time slot is already booked",
                {
                    "appuntamento_esistente_id": a.id,
                    "orario_richiesto": formatta_orario(inizio),
                    "orario_in_conflitto": f"{formatta_orario(a.inizio)}-{formatta_orario(a.fine)}",
                },
            )


# =========================
# DTO
# =========================
def medico_to_dict(m: Medico) -> dict[str, Any]:
    return {
        "id": m.id,
        "clinica_id": m.clinica_id,
        "nome": m.nome,
        "specializzazione": m.specializzazione,
        "telefono": m.telefono,
        "email": m.email,
        "colore": m.colore,
        "durata_slot": m.durata_slot,
        "orari_lavoro": m.orari_lavoro,
        "attivo": m.attivo,
    }


def paziente_to_dict(p: Paziente) -> dict[str, Any]:
    return {
        "id": p.id,
        "clinica_id": p.clinica_id,
        "nome": p.nome,
        "telefono": p.telefono,
        "email": p.email,
        "data_nascita": to_iso(p.data_nascita),
        "genere": p.genere.value if p.genere else None,
        "note": p.note,
        "medico_preferito_id": p.medico_preferito_id,
        "preferenza_promemoria": p.preferenza_promemoria.value,
        "creato_il": to_iso(p.creato_il),
    }


def appuntamento_to_dict(a: Appuntamento) -> dict[str, Any]:
    return {
        "id": a.id,
        "clinica_id": a.clinica_id,
        "data": a.data.isoformat(),
        "inizio": formatta_orario(a.inizio),
        "fine": formatta_orario(a.fine),
        "durata": a.durata,
        "stato": a.stato.value,
        "motivo": a.motivo,
        "note": a.note,
        "voce_coda_id": a.voce_coda_id,
        "medico": {
            "id": a.medico.id,
            "nome": a.medico.nome,
            "colore": a.medico.colore,
            "specializzazione": a.medico.specializzazione,
        },
        "paziente": {"id": a.paziente.id, "nome": a.paziente.nome, "telefono": a.paziente.telefono},
    }


def _con_relazioni(q):
    return q.options(selectinload(Appuntamento.medico), selectinload(Appuntamento.paziente))


# =========================
# Medici
# =========================
def lista_medici(clinica_id: str, solo_attivi: bool = True) -> list[dict[str, Any]]:
    with db_session() as s:
        q = select(Medico).where(Medico.clinica_id == clinica_id)
        if solo_attivi:
            q = q.where(Medico.attivo.is_(True))
        return [medico_to_dict(m) for m in s.scalars(q.order_by(Medico.nome))]


def get_medico(clinica_id: str, medico_id: str) -> dict[str, Any]:
    with db_session() as s:
        return medico_to_dict(_medico(s, clinica_id, medico_id))


def crea_medico(clinica_id: str, dati: dict[str, Any]) -> dict[str, Any]:
    with db_session() as s:
        m = Medico(clinica_id=clinica_id, **dati)
        s.add(m)
        s.flush()
        logger.info("Created doctor %s in clinic %s", m.nome, clinica_id)
        return medico_to_dict(m)


def aggiorna_medico(clinica_id: str, medico_id: str, dati: dict[str, Any]) -> dict[str, Any]:
    with db_session() as s:
        m = _medico(s, clinica_id, medico_id)
        for campo, valore in dati.items():
            setattr(m, campo, valore)
        s.flush()
        return medico_to_dict(m)


def disattiva_medico(clinica_id: str, medico_id: str) -> None:
    """Soft delete: il medico resta sugli appuntamenti storici."""
    with db_session() as s:
        _medico(s, clinica_id, medico_id).attivo = False


def disponibilita_medico(
    clinica_id: str, medico_id: str, giorno: date, durata: int | None = None
) -> dict[str, Any]:
    with db_session() as s:
        m = _medico(s, clinica_id, medico_id, solo_attivo=True)
        orari = orari_del_giorno(m.orari_lavoro, giorno)
        risultato: dict[str, Any] = {
            "data": giorno.isoformat(),
            "medico_id": medico_id,
            "orari_lavoro": orari,
            "slot_liberi": [],
            "slot_occupati": [],
        }
        if not orari:
            return risultato

        occupati = _occupati(s, medico_id, giorno)
        risultato["slot_occupati"] = [
            {"inizio": formatta_orario(a.inizio), "fine": formatta_orario(a.fine), "appuntamento_id": a.id}
            for a in occupati
        ]
        risultato["slot_liberi"] = genera_slot(
            parse_orario(orari["start"], giorno),
            parse_orario(orari["end"], giorno),
            durata or m.durata_slot,
            [(a.inizio, a.fine) for a in occupati],
        )
        return risultato


# =========================
# Pazienti
# =========================
def cerca_pazienti(
    clinica_id: str, cerca: str | None = None, pagina: int = 1, limite: int = 20
) -> tuple[list[dict[str, Any]], int]:
    filtro = [Paziente.clinica_id == clinica_id]
    if cerca:
        like = f"%{cerca.strip()}%"
        filtro.append(
            or_(Paziente.nome.ilike(like), Paziente.telefono.contains(cerca.strip()), Paziente.email.ilike(like))
        )

    offset, limit = _pagina(pagina, limite)
    with db_session() as s:
        totale = s.execute(select(func.count(Paziente.id)).where(*filtro)).scalar_one()
        righe = s.scalars(select(Paziente).where(*filtro).order_by(Paziente.nome).offset(offset).limit(limit))
        return [paziente_to_dict(p) for p in righe], totale


def get_paziente(clinica_id: str, paziente_id: str) -> dict[str, Any]:
    with db_session() as s:
        return paziente_to_dict(_paziente(s, clinica_id, paziente_id))


def _telefono_duplicato(s: Session, clinica_id: str, telefono: str, escludi_id: str | None = None) -> Paziente | None:
    q = select(Paziente).where(Paziente.clinica_id == clinica_id, Paziente.telefono == telefono)
    if escludi_id:
        q = q.where(Paziente.id != escludi_id)
    return s.scalars(q.limit(1)).first()


def crea_paziente(clinica_id: str, dati: dict[str, Any]) -> dict[str, Any]:
    dati = dict(dati)
    dati["telefono"] = formatta_telefono(dati["telefono"])
    with db_session() as s:
        esistente = _telefono_duplicato(s, clinica_id, dati["telefono"])
        if esistente:
            raise conflitto(
                "DUPLICATE_PATIENT",
                "A patient with this phone number already exists",
                {"paziente_esistente_id": esistente.id},
            )
        p = Paziente(clinica_id=clinica_id, **dati)
        s.add(p)
        s.flush()
        return paziente_to_dict(p)


def aggiorna_paziente(clinica_id: str, paziente_id: str, dati: dict[str, Any]) -> dict[str, Any]:
    dati = dict(dati)
    with db_session() as s:
        p = _paziente(s, clinica_id, paziente_id)
        if dati.get("telefono"):
            dati["telefono"] = formatta_telefono(dati["telefono"])
            esistente = _telefono_duplicato(s, clinica_id, dati["telefono"], escludi_id=paziente_id)
            if esistente:
                raise conflitto(
                    "DUPLICATE_PATIENT",
                    "Another patient with this phone number already exists",
                    {"paziente_esistente_id": esistente.id},
                )
        for campo, valore in dati.items():
            setattr(p, campo, valore)
        s.flush()
        return paziente_to_dict(p)


def elimina_paziente(clinica_id: str, paziente_id: str) -> None:
    with db_session() as s:
        p = _paziente(s, clinica_id, paziente_id)
        futuri = s.execute(
            select(func.count(Appuntamento.id)).where(
                Appuntamento.paziente_id == paziente_id,
                Appuntamento.data >= oggi_locale(),
                Appuntamento.stato.not_in(
                    (StatoAppuntamento.CANCELLED, StatoAppuntamento.NO_SHOW, StatoAppuntamento.COMPLETED)
                ),
            )
        ).scalar_one()
        if futuri:
            raise conflitto(
                "HAS_APPOINTMENTS",
                f"Patient has {futuri} upcoming appointment(s). Cancel them first.",
            )

        # le voci di coda storiche restano, senza collegamento
        s.execute(
            update(VoceCoda)
            .where(VoceCoda.appuntamento_id.in_(select(Appuntamento.id).where(Appuntamento.paziente_id == paziente_id)))
            .values(appuntamento_id=None)
        )
        s.delete(p)


def storico_paziente(
    clinica_id: str, paziente_id: str, pagina: int = 1, limite: int = 20
) -> tuple[list[dict[str, Any]], int]:
    offset, limit = _pagina(pagina, limite)
    with db_session() as s:
        _paziente(s, clinica_id, paziente_id)
        totale = s.execute(
            select(func.count(Appuntamento.id)).where(Appuntamento.paziente_id == paziente_id)
        ).scalar_one()
        q = _con_relazioni(
            select(Appuntamento)
            .where(Appuntamento.paziente_id == paziente_id)
            .order_by(Appuntamento.data.desc(), Appuntamento.inizio.desc())
            .offset(offset)
            .limit(limit)
        )
        return [appuntamento_to_dict(a) for a in s.scalars(q)], totale


# =========================
# Appuntamenti
# =========================
def lista_appuntamenti(
    clinica_id: str,
    giorno: date | None = None,
    dal: date | None = None,
    al: date | None = None,
    medico_id: str | None = None,
    paziente_id: str | None = None,
    stato: StatoAppuntamento | None = None,
    pagina: int = 1,
    limite: int = 20,
) -> tuple[list[dict[str, Any]], int]:
    filtro = [Appuntamento.clinica_id == clinica_id]
    if giorno:
        filtro.append(Appuntamento.data == giorno)
    if dal:
        filtro.append(Appuntamento.data >= dal)
    if al:
        filtro.append(Appuntamento.data <= al)
    if medico_id:
        filtro.append(Appuntamento.medico_id == medico_id)
    if paziente_id:
        filtro.append(Appuntamento.paziente_id == paziente_id)
    if stato:
        filtro.append(Appuntamento.stato == stato)

    offset, limit = _pagina(pagina, limite)
    with db_session() as s:
        totale = s.execute(select(func.count(Appuntamento.id)).where(and_(*filtro))).scalar_one()
        q = _con_relazioni(
            select(Appuntamento)
            .where(and_(*filtro))
            .order_by(Appuntamento.data.asc(), Appuntamento.inizio.asc())
            .offset(offset)
            .limit(limit)
        )
        return [appuntamento_to_dict(a) for a in s.scalars(q)], totale


def get_appuntamento(clinica_id: str, appuntamento_id: str) -> dict[str, Any]:
    with db_session() as s:
        return appuntamento_to_dict(_appuntamento(s, clinica_id, appuntamento_id))


def crea_appuntamento(
    clinica_id: str,
    medico_id: str,
    paziente_id: str,
    giorno: date,
    orario: str,
    durata: int,
    motivo: str | None = None,
    note: str | None = None,
) -> dict[str, Any]:
    """
    Use case: prenotare un appuntamento.
    - medico attivo e paziente della clinica
    - dentro l'orario di lavoro del giorno (OUTSIDE_HOURS)
    - nessuna sovrapposizione con altri appuntamenti del medico (DOUBLE_BOOKING)
    """
    with db_session() as s:
        m = _medico(s, clinica_id, medico_id, solo_attivo=True)
        _paziente(s, clinica_id, paziente_id)

        inizio = parse_orario(orario, giorno)
        fine = inizio + timedelta(minutes=durata)
        _verifica_slot(s, m, giorno, inizio, fine)

        a = Appuntamento(
            clinica_id=clinica_id,
            medico_id=medico_id,
            paziente_id=paziente_id,
            data=giorno,
            inizio=inizio,
            fine=fine,
            durata=durata,
            motivo=motivo,
            note=note,
        )
        s.add(a)
        s.flush()
        dati = appuntamento_to_dict(a)

    emetti_evento_clinica(clinica_id, "appointment:created", {"appuntamento": dati})
    return dati


def aggiorna_appuntamento(clinica_id: str, appuntamento_id: str, dati: dict[str, Any]) -> dict[str, Any]:
    """Spostamento (data/orario/durata) con gli stessi controlli della creazione, più stato/motivo/note."""
    with db_session() as s:
        a = _appuntamento(s, clinica_id, appuntamento_id)

        if dati.get("data") or dati.get("orario") or dati.get("durata"):
            giorno = dati.get("data") or a.data
            inizio = parse_orario(dati["orario"], giorno) if dati.get("orario") else datetime.combine(giorno, a.inizio.time())
            durata = dati.get("durata") or a.durata
            fine = inizio + timedelta(minutes=durata)
            _verifica_slot(s, a.medico, giorno, inizio, fine, escludi_id=a.id)
            a.data, a.inizio, a.fine, a.durata = giorno, inizio, fine, durata

        if dati.get("stato"):
            a.stato = dati["stato"]
        for campo in ("motivo", "note"):
            if campo in dati:
                setattr(a, campo, dati[campo])
        s.flush()
        risultato = appuntamento_to_dict(a)

    emetti_evento_clinica(clinica_id, "appointment:updated", {"appuntamento": risultato})
    return risultato


def annulla_appuntamento(clinica_id: str, appuntamento_id: str, motivo: str | None = None) -> None:
    """Soft delete: stato CANCELLED, il motivo finisce in coda alle note."""
    with db_session() as s:
        a = _appuntamento(s, clinica_id, appuntamento_id)
        a.stato = StatoAppuntamento.CANCELLED
        if motivo:
            a.note = f"{a.note or ''}\n[Cancelled: {motivo}]".strip()

    emetti_evento_clinica(
        clinica_id, "appointment:cancelled", {"appuntamento_id": appuntamento_id, "motivo": motivo}
    )


def checkin_appuntamento(clinica_id: str, appuntamento_id: str) -> dict[str, Any]:
    """
    Porta il paziente dell'appuntamento nella coda live (metodo APPOINTMENT).
    L'orario dell'appuntamento decide l'ordine rispetto ai walk-in.
    """
    with db_session() as s:
        a = _appuntamento(s, clinica_id, appuntamento_id)
        if a.stato == StatoAppuntamento.CHECKED_IN:
            raise conflitto(
                "ALREADY_CHECKED_IN", "Patient is already checked in", {"voce_coda_id": a.voce_coda_id}
            )
        if a.stato in STATI_APP_LIBERI:
            raise ErroreServizio(
                "INVALID_STATUS", f"Cannot check in a {a.stato.value.lower()} appointment"
            )
        nome, telefono, orario = a.paziente.nome, a.paziente.telefono, a.inizio

    esito = aggiungi_paziente(
        clinica_id,
        telefono,
        nome,
        metodo=MetodoCheckIn.APPOINTMENT,
        orario_appuntamento=orario,
        appuntamento_id=appuntamento_id,
    )
    if esito.gia_in_coda:
        raise conflitto(
            "ALREADY_CHECKED_IN",
            "Patient is already in today's queue",
            {"voce_coda_id": esito.voce["id"]},
        )

    voce = esito.voce
    with db_session() as s:
        a = s.get(Appuntamento, appuntamento_id)
        a.voce_coda_id = voce["id"]
        # la riconciliazione può averlo già portato in visita
        if a.stato in (StatoAppuntamento.SCHEDULED, StatoAppuntamento.CONFIRMED):
            a.stato = StatoAppuntamento.CHECKED_IN
        stato = a.stato.value
        durata_media = s.get(Clinica, clinica_id).durata_media_visita

    risultato = {
        "appuntamento_id": appuntamento_id,
        "voce_coda_id": voce["id"],
        "posizione": voce["posizione"],
        "attesa_stimata_minuti": voce["posizione"] * durata_media,
        "stato": stato,
    }
    emetti_evento_clinica(clinica_id, "patient:checked_in", risultato)
    return risultato


# =========================
# Calendario
# =========================
def _appuntamenti_tra(s: Session, clinica_id: str, dal: date, al: date) -> list[Appuntamento]:
    q = _con_relazioni(
        select(Appuntamento)
        .where(Appuntamento.clinica_id == clinica_id, Appuntamento.data >= dal, Appuntamento.data <= al)
        .order_by(Appuntamento.inizio.asc())
    )
    return list(s.scalars(q))


def vista_giorno(clinica_id: str, giorno: date) -> dict[str, Any]:
    with db_session() as s:
        appuntamenti = [appuntamento_to_dict(a) for a in _appuntamenti_tra(s, clinica_id, giorno, giorno)]

    riepilogo: dict[str, int] = {"totale": len(appuntamenti)}
    for st in StatoAppuntamento:
        riepilogo[st.value] = sum(1 for a in appuntamenti if a["stato"] == st.value)

    return {"data": giorno.isoformat(), "appuntamenti": appuntamenti, "riepilogo": riepilogo}


def vista_settimana(clinica_id: str, giorno: date) -> dict[str, Any]:
    """Settimana da lunedì a domenica che contiene `giorno`."""
    lunedi = giorno - timedelta(days=giorno.weekday())
    domenica = lunedi + timedelta(days=6)

    with db_session() as s:
        appuntamenti = [appuntamento_to_dict(a) for a in _appuntamenti_tra(s, clinica_id, lunedi, domenica)]

    giorni = []
    for i in range(7):
        d = lunedi + timedelta(days=i)
        giorni.append(
            {
                "data": d.isoformat(),
                "giorno": GIORNI[d.weekday()],
                "appuntamenti": [a for a in appuntamenti if a["data"] == d.isoformat()],
            }
        )
    return {"inizio_settimana": lunedi.isoformat(), "fine_settimana": domenica.isoformat(), "giorni": giorni}


def vista_mese(clinica_id: str, giorno: date) -> dict[str, Any]:
    """Numero di appuntamenti (non annullati) per ogni giorno del mese."""
    primo = giorno.replace(day=1)
    ultimo = giorno.replace(day=calendar.monthrange(giorno.year, giorno.month)[1])

    with db_session() as s:
        righe = s.execute(
            select(Appuntamento.data, func.count(Appuntamento.id))
            .where(
                Appuntamento.clinica_id == clinica_id,
                Appuntamento.data >= primo,
                Appuntamento.data <= ultimo,
                Appuntamento.stato != StatoAppuntamento.CANCELLED,
            )
            .group_by(Appuntamento.data)
        ).all()

    conteggi = {d: n for d, n in righe}
    giorni = [
        {"data": (primo + timedelta(days=i)).isoformat(), "conteggio": conteggi.get(primo + timedelta(days=i), 0)}
        for i in range(ultimo.day)
    ]
    return {"mese": primo.strftime("%Y-%m"), "giorni": giorni}


def slot_liberi(
    clinica_id: str, giorno: date, medico_id: str | None = None, durata: int = 15
) -> dict[str, Any]:
    """Slot liberi di tutti i medici attivi (o di uno), ordinati per orario e poi per nome medico."""
    with db_session() as s:
        q = select(Medico).where(Medico.clinica_id == clinica_id, Medico.attivo.is_(True))
        if medico_id:
            q = q.where(Medico.id == medico_id)
        medici = list(s.scalars(q))

        tutti: list[dict[str, str]] = []
        for m in medici:
            orari = orari_del_giorno(m.orari_lavoro, giorno)
            if not orari:
                continue
            occupati = [(a.inizio, a.fine) for a in _occupati(s, m.id, giorno)]
            for slot in genera_slot(
                parse_orario(orari["start"], giorno),
                parse_orario(orari["end"], giorno),
                durata or m.durata_slot,
                occupati,
            ):
                tutti.append({"medico_id": m.id, "nome_medico": m.nome, **slot})

    tutti.sort(key=lambda x: (x["inizio"], x["nome_medico"]))
    return {"data": giorno.isoformat(), "slot": tutti}
