from __future__ import annotations

from sala_attesa.auth_security import create_access_token
from sala_attesa.realtime import BusEventi, stanza_clinica, stanza_paziente, stanza_pazienti_clinica
from sala_attesa.routes.ws import gestisci_messaggio
from sala_attesa.services import aggiungi_paziente, imposta_presenza_medico


def test_bus_consegna_solo_alla_stanza():
    bus = BusEventi()
    a, b = [], []
    bus.iscrivi("clinic:1", lambda e, d: a.append((e, d)))
    bus.iscrivi("clinic:2", lambda e, d: b.append((e, d)))

    assert bus.pubblica("clinic:1", "queue:updated", {"x": 1}) == 1

    assert a == [("queue:updated", {"x": 1})]
    assert b == []


def test_bus_iscritto_rotto_non_blocca_gli_altri():
    bus = BusEventi()
    ricevuti = []

    def rotto(evento, dati):
        raise RuntimeError("socket chiuso")

    bus.iscrivi("r", rotto)
    bus.iscrivi("r", lambda e, d: ricevuti.append(e))

    assert bus.pubblica("r", "ping", None) == 1
    assert ricevuti == ["ping"]


def test_bus_rimuovi():
    bus = BusEventi()
    iscritto = bus.registra(lambda e, d: None)
    bus.entra(iscritto, "a")
    bus.entra(iscritto, "b")
    assert bus.numero_iscritti("a") == 1

    bus.rimuovi(iscritto)

    assert bus.numero_iscritti("a") == 0
    assert bus.pubblica("b", "x", None) == 0


def test_presenza_medico_a_clinica_e_pazienti(clinica_id, eventi):
    staff = eventi(stanza_clinica(clinica_id))
    pazienti = eventi(stanza_pazienti_clinica(clinica_id))

    imposta_presenza_medico(clinica_id, True)

    atteso = ("doctor:presence", {"clinica_id": clinica_id, "medico_presente": True})
    assert staff == [atteso]
    assert pazienti == [atteso]


# =========================
# Messaggi WebSocket
# =========================
def test_join_clinic_richiede_token_della_clinica(clinica_id, altra_clinica_id):
    from sala_attesa.realtime import bus

    iscritto = bus.registra(lambda e, d: None)

    r = gestisci_messaggio(
        iscritto, {"event": "join:clinic", "data": {"clinica_id": clinica_id, "token": create_access_token(altra_clinica_id)}}
    )
    assert r["event"] == "error"
    assert r["data"]["code"] == "UNAUTHORIZED"

    r = gestisci_messaggio(
        iscritto, {"event": "join:clinic", "data": {"clinica_id": clinica_id, "token": create_access_token(clinica_id)}}
    )
    assert r == {"event": "joined:clinic", "data": {"stanza": stanza_clinica(clinica_id)}}
    assert bus.numero_iscritti(stanza_clinica(clinica_id)) == 1


def test_join_patient(clinica_id):
    from sala_attesa.realtime import bus

    voce = aggiungi_paziente(clinica_id, "20000001").voce
    iscritto = bus.registra(lambda e, d: None)

    r = gestisci_messaggio(iscritto, {"event": "join:patient", "data": {"voce_id": voce["id"]}})

    assert r["event"] == "joined:patient"
    assert r["data"]["posizione"] == 1
    assert bus.numero_iscritti(stanza_paziente(voce["id"])) == 1
    assert bus.numero_iscritti(stanza_pazienti_clinica(clinica_id)) == 1

    r = gestisci_messaggio(iscritto, {"event": "join:patient", "data": {"voce_id": "non-esiste"}})
    assert r["data"]["code"] == "ENTRY_NOT_FOUND"


def test_messaggi_sconosciuti():
    assert gestisci_messaggio(1, {"event": "ping"}) == {"event": "pong", "data": None}
    assert gestisci_messaggio(1, {"event": "boh"})["data"]["code"] == "UNKNOWN_EVENT"
    assert gestisci_messaggio(1, "testo")["data"]["code"] == "INVALID_MESSAGE"


def test_websocket_riceve_aggiornamenti_coda(client, clinica_id):
    token = create_access_token(clinica_id)
    with client.websocket_connect("/ws") as ws:
        ws.send_json({"event": "join:clinic", "data": {"clinica_id": clinica_id, "token": token}})
        assert ws.receive_json()["event"] == "joined:clinic"

        aggiungi_paziente(clinica_id, "20000001", "Sami")

        messaggio = ws.receive_json()
        assert messaggio["event"] == "queue:updated"
        assert messaggio["data"]["coda"][0]["nome_paziente"] == "Sami"


def test_websocket_paziente(client, clinica_id):
    primo = aggiungi_paziente(clinica_id, "20000001").voce
    voce = aggiungi_paziente(clinica_id, "20000002").voce

    with client.websocket_connect("/ws") as ws:
        ws.send_json({"event": "join:patient", "data": {"voce_id": voce["id"]}})
        assert ws.receive_json()["data"]["stato"] == "NOTIFIED"

        client.post(f"/api/queue/patient/{primo['id']}/leave")

        assert ws.receive_json() == {"event": "patient:called", "data": {"posizione": 1, "stato": "IN_CONSULTATION"}}
