from __future__ import annotations

from datetime import date, datetime

import pytest

from sala_attesa import agenda
from sala_attesa.errori import ErroreServizio
from sala_attesa.models import StatoAppuntamento
from sala_attesa.realtime import stanza_clinica
from sala_attesa.services import aggiungi_paziente, chiama_prossimo, get_coda

LUNEDI = date(2030, 1, 7)
DOMENICA = date(2030, 1, 13)

ORARI = {"monday": {"start": "09:00", "end": "12:00"}, "sunday": None}


@pytest.fixture
def medico(clinica_id):
    return agenda.crea_medico(clinica_id, {"nome": "Dr. Amine", "orari_lavoro": ORARI, "durata_slot": 30})


@pytest.fixture
def paziente(clinica_id):
    return agenda.crea_paziente(clinica_id, {"nome": "Leila Ben Ali", "telefono": "22 111 333"})


def _prenota(clinica_id, medico, paziente, orario="09:00", durata=30, giorno=LUNEDI):
    return agenda.crea_appuntamento(clinica_id, medico["id"], paziente["id"], giorno, orario, durata)


def test_genera_slot_esclude_occupati():
    inizio = datetime(2030, 1, 7, 9, 0)
    fine = datetime(2030, 1, 7, 10, 0)
    occupati = [(datetime(2030, 1, 7, 9, 15), datetime(2030, 1, 7, 9, 30))]

    slot = agenda.genera_slot(inizio, fine, 15, occupati)

    assert slot == [
        {"inizio": "09:00", "fine": "09:15"},
        {"inizio": "09:30", "fine": "09:45"},
        {"inizio": "09:45", "fine": "10:00"},
    ]


def test_crea_appuntamento(clinica_id, medico, paziente, eventi):
    ricevuti = eventi(stanza_clinica(clinica_id))

    a = _prenota(clinica_id, medico, paziente, "10:00", 20)

    assert a["inizio"] == "10:00"
    assert a["fine"] == "10:20"
    assert a["stato"] == "SCHEDULED"
    assert a["paziente"]["telefono"] == "+21622111333"
    assert ricevuti[-1][0] == "appointment:created"


def test_doppia_prenotazione(clinica_id, medico, paziente):
    esistente = _prenota(clinica_id, medico, paziente, "09:00", 30)

    with pytest.raises(ErroreServizio) as exc:
        _prenota(clinica_id, medico, paziente, "09:15", 30)

    assert exc.value.codice == "DOUBLE_BOOKING"
    assert exc.value.status_http == 409
    assert exc.value.dettagli["appuntamento_esistente_id"] == esistente["id"]
    assert exc.value.dettagli["orario_in_conflitto"] == "09:00-09:30"


def test_slot_adiacenti_non_si_sovrappongono(clinica_id, medico, paziente):
    _prenota(clinica_id, medico, paziente, "09:00", 30)
    assert _prenota(clinica_id, medico, paziente, "09:30", 30)["inizio"] == "09:30"


def test_slot_liberato_da_annullamento(clinica_id, medico, paziente):
    a = _prenota(clinica_id, medico, paziente, "09:00", 30)
    agenda.annulla_appuntamento(clinica_id, a["id"], "Malade")

    assert _prenota(clinica_id, medico, paziente, "09:00", 30)
    annullato = agenda.get_appuntamento(clinica_id, a["id"])
    assert annullato["stato"] == "CANCELLED"
    assert annullato["note"].endswith("[Cancelled: Malade]")


def test_fuori_orario(clinica_id, medico, paziente):
    with pytest.raises(ErroreServizio) as exc:
        _prenota(clinica_id, medico, paziente, "11:45", 30)
    assert exc.value.codice == "OUTSIDE_HOURS"

    with pytest.raises(ErroreServizio) as exc:
        _prenota(clinica_id, medico, paziente, "10:00", 30, giorno=DOMENICA)
    assert exc.value.codice == "OUTSIDE_HOURS"


def test_medico_disattivato_non_prenotabile(clinica_id, medico, paziente):
    agenda.disattiva_medico(clinica_id, medico["id"])

    assert agenda.lista_medici(clinica_id) == []
    assert len(agenda.lista_medici(clinica_id, solo_attivi=False)) == 1
    with pytest.raises(ErroreServizio) as exc:
        _prenota(clinica_id, medico, paziente)
    assert exc.value.status_http == 404


def test_sposta_appuntamento(clinica_id, medico, paziente):
    a = _prenota(clinica_id, medico, paziente, "09:00", 30)
    b = _prenota(clinica_id, medico, paziente, "10:00", 30)

    with pytest.raises(ErroreServizio) as exc:
        agenda.aggiorna_appuntamento(clinica_id, b["id"], {"orario": "09:15"})
    assert exc.value.codice == "DOUBLE_BOOKING"

    # spostarlo su se stesso non è un conflitto
    spostato = agenda.aggiorna_appuntamento(clinica_id, a["id"], {"orario": "09:10", "note": "ritardo"})
    assert spostato["inizio"] == "09:10"
    assert spostato["fine"] == "09:40"
    assert spostato["note"] == "ritardo"


def test_disponibilita_medico(clinica_id, medico, paziente):
    _prenota(clinica_id, medico, paziente, "09:30", 30)

    disp = agenda.disponibilita_medico(clinica_id, medico["id"], LUNEDI)

    assert disp["orari_lavoro"] == {"start": "09:00", "end": "12:00"}
    assert [s["inizio"] for s in disp["slot_liberi"]] == ["09:00", "10:00", "10:30", "11:00", "11:30"]
    assert disp["slot_occupati"][0]["inizio"] == "09:30"

    assert agenda.disponibilita_medico(clinica_id, medico["id"], DOMENICA)["slot_liberi"] == []


def test_slot_liberi_tutti_i_medici(clinica_id, medico):
    agenda.crea_medico(
        clinica_id, {"nome": "Dr. Badis", "orari_lavoro": {"monday": {"start": "09:00", "end": "09:30"}}}
    )

    slot = agenda.slot_liberi(clinica_id, LUNEDI, durata=30)["slot"]

    assert [(s["inizio"], s["nome_medico"]) for s in slot[:3]] == [
        ("09:00", "Dr. Amine"),
        ("09:00", "Dr. Badis"),
        ("09:30", "Dr. Amine"),
    ]


# =========================
# Pazienti
# =========================
def test_paziente_duplicato(clinica_id, paziente):
    with pytest.raises(ErroreServizio) as exc:
        agenda.crea_paziente(clinica_id, {"nome": "Altro", "telefono": "+21622111333"})
    assert exc.value.codice == "DUPLICATE_PATIENT"
    assert exc.value.dettagli["paziente_esistente_id"] == paziente["id"]


def test_cerca_pazienti(clinica_id, paziente):
    agenda.crea_paziente(clinica_id, {"nome": "Mohamed Trabelsi", "telefono": "55000111"})

    righe, totale = agenda.cerca_pazienti(clinica_id, "leila")
    assert totale == 1 and righe[0]["id"] == paziente["id"]

    righe, totale = agenda.cerca_pazienti(clinica_id, "55000")
    assert totale == 1 and righe[0]["nome"] == "Mohamed Trabelsi"

    righe, totale = agenda.cerca_pazienti(clinica_id, pagina=2, limite=1)
    assert totale == 2 and len(righe) == 1


def test_elimina_paziente_con_appuntamenti_futuri(clinica_id, medico, paziente):
    _prenota(clinica_id, medico, paziente)

    with pytest.raises(ErroreServizio) as exc:
        agenda.elimina_paziente(clinica_id, paziente["id"])
    assert exc.value.codice == "HAS_APPOINTMENTS"


def test_elimina_paziente(clinica_id, paziente):
    agenda.elimina_paziente(clinica_id, paziente["id"])
    with pytest.raises(ErroreServizio):
        agenda.get_paziente(clinica_id, paziente["id"])


def test_storico_paziente(clinica_id, medico, paziente):
    _prenota(clinica_id, medico, paziente, "09:00")
    _prenota(clinica_id, medico, paziente, "10:00")

    righe, totale = agenda.storico_paziente(clinica_id, paziente["id"])
    assert totale == 2
    assert [r["inizio"] for r in righe] == ["10:00", "09:00"]


# =========================
# Check-in da appuntamento
# =========================
def test_checkin_appuntamento(clinica_id, medico, paziente, eventi):
    ricevuti = eventi(stanza_clinica(clinica_id))
    aggiungi_paziente(clinica_id, "20000001")
    a = _prenota(clinica_id, medico, paziente)

    r = agenda.checkin_appuntamento(clinica_id, a["id"])

    # con orario di appuntamento passa davanti al walk-in
    assert r["posizione"] == 1
    assert r["attesa_stimata_minuti"] == 10
    assert r["stato"] == "IN_PROGRESS"
    assert get_coda(clinica_id)["coda"][0]["metodo_checkin"] == "APPOINTMENT"
    assert ricevuti[-1][0] == "patient:checked_in"

    with pytest.raises(ErroreServizio) as exc:
        agenda.checkin_appuntamento(clinica_id, a["id"])
    assert exc.value.codice == "ALREADY_CHECKED_IN"


def test_checkin_appuntamento_in_attesa(clinica_id, medico, paziente):
    aggiungi_paziente(clinica_id, "20000001")
    aggiungi_paziente(clinica_id, "20000002")
    a = _prenota(clinica_id, medico, paziente)

    r = agenda.checkin_appuntamento(clinica_id, a["id"])

    assert r["stato"] == "IN_PROGRESS"  # davanti a tutti i walk-in

    b = agenda.crea_appuntamento(
        clinica_id,
        medico["id"],
        agenda.crea_paziente(clinica_id, {"nome": "Karim", "telefono": "50123456"})["id"],
        LUNEDI,
        "11:00",
        30,
    )
    r = agenda.checkin_appuntamento(clinica_id, b["id"])
    assert r["posizione"] == 2
    assert r["stato"] == "CHECKED_IN"
    assert agenda.get_appuntamento(clinica_id, b["id"])["voce_coda_id"] == r["voce_coda_id"]


def test_checkin_appuntamento_annullato(clinica_id, medico, paziente):
    a = _prenota(clinica_id, medico, paziente)
    agenda.annulla_appuntamento(clinica_id, a["id"])

    with pytest.raises(ErroreServizio) as exc:
        agenda.checkin_appuntamento(clinica_id, a["id"])
    assert exc.value.codice == "INVALID_STATUS"


def test_appuntamento_segue_la_coda(clinica_id, medico, paziente):
    a = _prenota(clinica_id, medico, paziente)
    agenda.checkin_appuntamento(clinica_id, a["id"])

    chiama_prossimo(clinica_id)

    assert agenda.get_appuntamento(clinica_id, a["id"])["stato"] == StatoAppuntamento.COMPLETED.value


# =========================
# Calendario
# =========================
def test_viste_calendario(clinica_id, medico, paziente):
    _prenota(clinica_id, medico, paziente, "09:00")
    annullato = _prenota(clinica_id, medico, paziente, "10:00")
    agenda.annulla_appuntamento(clinica_id, annullato["id"])

    giorno = agenda.vista_giorno(clinica_id, LUNEDI)
    assert giorno["riepilogo"]["totale"] == 2
    assert giorno["riepilogo"]["SCHEDULED"] == 1
    assert giorno["riepilogo"]["CANCELLED"] == 1

    settimana = agenda.vista_settimana(clinica_id, date(2030, 1, 9))
    assert settimana["inizio_settimana"] == "2030-01-07"
    assert settimana["fine_settimana"] == "2030-01-13"
    assert settimana["giorni"][0]["giorno"] == "monday"
    assert len(settimana["giorni"][0]["appuntamenti"]) == 2

    mese = agenda.vista_mese(clinica_id, LUNEDI)
    assert mese["mese"] == "2030-01"
    assert len(mese["giorni"]) == 31
    assert mese["giorni"][6] == {"data": "2030-01-07", "conteggio": 1}
