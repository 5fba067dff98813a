from __future__ import annotations

import base64

from sala_attesa.seed import DEMO_EMAIL, DEMO_PASSWORD, seed_demo
from sala_attesa.services import aggiungi_paziente, get_clinica, get_coda, imposta_presenza_medico, reset_notturno


def test_impostazioni_clinica(client, headers):
    r = client.patch(
        "/api/clinic",
        json={"durata_media_visita": 15, "tipo_attivita": "retail", "lingua": "ar"},
        headers=headers,
    )
    assert r.status_code == 200
    dati = r.json()["data"]
    assert dati["durata_media_visita"] == 15
    assert dati["etichette_ui"]["customers"] == "clients"

    r = client.patch("/api/clinic", json={"durata_media_visita": 500}, headers=headers)
    assert r.status_code == 400


def test_qr_checkin(client, headers, clinica_id):
    r = client.get("/api/clinic/qr", headers=headers)
    dati = r.json()["data"]

    assert dati["url"].endswith(f"/checkin/{clinica_id}")
    assert dati["qr"].startswith("data:image/png;base64,")
    png = base64.b64decode(dati["qr"].split(",", 1)[1])
    assert png[:8] == b"\x89PNG\r\n\x1a\n"


def test_presenza_e_info_pubblica(client, headers, clinica_id):
    aggiungi_paziente(clinica_id, "20000001")
    aggiungi_paziente(clinica_id, "20000002")

    r = client.post("/api/clinic/doctor-presence", json={"presente": True}, headers=headers)
    assert r.json()["data"]["medico_presente"] is True

    info = client.get(f"/api/clinic/{clinica_id}/info").json()["data"]
    assert info == {
        "nome": "Cabinet Test",
        "in_attesa": 1,
        "durata_media_visita": 10,
        "medico_presente": True,
    }


def test_reset_notturno(clinica_id):
    aggiungi_paziente(clinica_id, "20000001")
    aggiungi_paziente(clinica_id, "20000002")
    imposta_presenza_medico(clinica_id, True)

    esito = reset_notturno()

    assert ("Cabinet Test", 2) in esito
    assert get_coda(clinica_id)["coda"] == []
    assert get_clinica(clinica_id)["medico_presente"] is False


def test_api_agenda(client, headers):
    r = client.post(
        "/api/doctors",
        json={
            "nome": "Dr. Amine",
            "colore": "#10B981",
            "orari_lavoro": {"monday": {"start": "09:00", "end": "12:00"}},
        },
        headers=headers,
    )
    assert r.status_code == 201
    medico = r.json()["data"]

    r = client.post("/api/doctors", json={"nome": "Dr. X", "colore": "rosso"}, headers=headers)
    assert r.status_code == 400

    r = client.post("/api/patients", json={"nome": "Leila", "telefono": "12345678"}, headers=headers)
    assert r.status_code == 400

    r = client.post("/api/patients", json={"nome": "Leila", "telefono": "22111333"}, headers=headers)
    assert r.status_code == 201
    paziente = r.json()["data"]

    body = {
        "medico_id": medico["id"],
        "paziente_id": paziente["id"],
        "data": "2030-01-07",
        "orario": "09:00",
        "durata": 30,
    }
    r = client.post("/api/appointments", json=body, headers=headers)
    assert r.status_code == 201
    app_id = r.json()["data"]["id"]

    r = client.post("/api/appointments", json=body, headers=headers)
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "DOUBLE_BOOKING"
    assert r.json()["error"]["details"]["appuntamento_esistente_id"] == app_id

    r = client.get("/api/appointments", params={"data": "2030-01-07"}, headers=headers)
    assert r.json()["meta"] == {"pagina": 1, "limite": 20, "totale": 1}

    r = client.get("/api/calendar/slots", params={"data": "2030-01-07", "durata": 60}, headers=headers)
    assert [s["inizio"] for s in r.json()["data"]["slot"]] == ["10:00", "11:00"]

    r = client.get("/api/calendar/day/2030-01-07", headers=headers)
    assert r.json()["data"]["riepilogo"]["totale"] == 1

    r = client.get(f"/api/patients/{paziente['id']}/history", headers=headers)
    assert r.json()["meta"]["totale"] == 1

    r = client.delete(f"/api/appointments/{app_id}", params={"motivo": "annullato"}, headers=headers)
    assert r.status_code == 204

    r = client.delete(f"/api/doctors/{medico['id']}", headers=headers)
    assert r.status_code == 204
    assert client.get("/api/doctors", headers=headers).json()["data"] == []


def test_agenda_isolata_per_clinica(client, headers, altra_clinica_id):
    from sala_attesa.agenda import crea_paziente

    altro = crea_paziente(altra_clinica_id, {"nome": "Estraneo", "telefono": "22000000"})

    r = client.get(f"/api/patients/{altro['id']}", headers=headers)
    assert r.status_code == 404


def test_seed_demo_idempotente(client):
    primo = seed_demo()
    assert seed_demo() == primo

    coda = get_coda(primo)["coda"]
    assert coda
    assert [v["posizione"] for v in coda] == list(range(1, len(coda) + 1))

    r = client.post("/api/auth/login", json={"email": DEMO_EMAIL, "password": DEMO_PASSWORD})
    assert r.status_code == 200
