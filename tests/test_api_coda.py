from __future__ import annotations

from sala_attesa import config, rate_limit
from sala_attesa.auth_security import create_access_token, get_subject
from sala_attesa.rate_limit import RateLimiter


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_login_e_me(client, clinica_id):
    r = client.post("/api/auth/login", json={"email": "CABINET@test.tn", "password": "segreta123"})
    assert r.status_code == 200
    dati = r.json()["data"]
    assert dati["clinica"]["id"] == clinica_id
    assert dati["clinica"]["admin"] is False
    assert dati["clinica"]["etichette_ui"]["customer"] == "patient"

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {dati['token']}"})
    assert me.json()["data"]["email"] == "cabinet@test.tn"


def test_get_subject_tollera_virgolette(clinica_id):
    token = create_access_token(clinica_id)
    assert get_subject(f' "{token}" ') == clinica_id
    assert get_subject("") is None
    assert get_subject("non-un-jwt") is None


def test_login_credenziali_errate(client, clinica_id):
    r = client.post("/api/auth/login", json={"email": "cabinet@test.tn", "password": "sbagliata"})
    assert r.status_code == 401
    assert r.json()["error"]["code"] == "INVALID_CREDENTIALS"


def test_token_oauth2_form(client, clinica_id):
    r = client.post("/api/auth/token", data={"username": "cabinet@test.tn", "password": "segreta123"})
    assert r.status_code == 200
    assert r.json()["token_type"] == "bearer"


def test_coda_richiede_token(client):
    r = client.get("/api/queue")
    assert r.status_code == 401
    assert r.json()["error"]["code"] == "UNAUTHORIZED"

    r = client.get("/api/queue", headers={"Authorization": "Bearer non-valido"})
    assert r.status_code == 401
    assert r.json()["error"]["code"] == "INVALID_TOKEN"


def test_aggiungi_e_leggi_coda(client, headers):
    r = client.post("/api/queue", json={"telefono": "98765432", "nome": "Amira"}, headers=headers)
    assert r.status_code == 201
    voce = r.json()["data"]
    assert voce["posizione"] == 1
    assert voce["metodo_checkin"] == "MANUAL"

    r = client.get("/api/queue", headers=headers)
    body = r.json()["data"]
    assert [v["id"] for v in body["coda"]] == [voce["id"]]
    assert body["statistiche"]["in_attesa"] == 0


def test_doppio_check_in_api(client, headers):
    client.post("/api/queue", json={"telefono": "98765432"}, headers=headers)
    r = client.post("/api/queue", json={"telefono": "+21698765432"}, headers=headers)

    assert r.status_code == 400
    body = r.json()
    assert body["error"]["code"] == "ALREADY_CHECKED_IN"
    assert body["data"]["telefono_paziente"] == "+21698765432"


def test_errore_validazione(client, headers):
    r = client.post("/api/queue", json={"nome": "senza telefono"}, headers=headers)
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "VALIDATION_ERROR"
    assert r.json()["error"]["details"]


def test_rotta_sconosciuta(client):
    r = client.get("/api/non-esiste")
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "NOT_FOUND"


def test_next_senza_pazienti(client, headers):
    r = client.post("/api/queue/next", headers=headers)
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "NO_PATIENTS"


def test_flusso_staff(client, headers):
    ids = [
        client.post("/api/queue", json={"telefono": tel}, headers=headers).json()["data"]["id"]
        for tel in ("20000001", "20000002", "20000003")
    ]

    r = client.post("/api/queue/reorder", json={"voce_id": ids[2], "nuova_posizione": 1}, headers=headers)
    assert r.json()["data"]["cambiato"] is True
    assert r.json()["data"]["voce"]["stato"] == "IN_CONSULTATION"

    r = client.post("/api/queue/reorder", json={"voce_id": ids[2], "nuova_posizione": 9}, headers=headers)
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "INVALID_POSITION"

    r = client.patch(f"/api/queue/{ids[0]}/status", json={"stato": "NO_SHOW"}, headers=headers)
    assert r.json()["data"]["stato"] == "NO_SHOW"

    r = client.post("/api/queue/next", headers=headers)
    assert r.json()["data"]["id"] == ids[1]

    r = client.delete(f"/api/queue/{ids[1]}", headers=headers)
    assert r.status_code == 200
    r = client.delete(f"/api/queue/{ids[1]}", headers=headers)
    assert r.status_code == 404

    stats = client.get("/api/queue", headers=headers).json()["data"]["statistiche"]
    assert stats["visti"] == 1
    assert stats["assenti"] == 1

    r = client.post("/api/queue/reset-stats", headers=headers)
    assert r.json()["data"]["cancellate"] == 1


def test_check_in_pubblico_e_stato(client, clinica_id):
    r = client.post(f"/api/queue/checkin/{clinica_id}", json={"telefono": "20000001", "nome": "Sami"})
    assert r.status_code == 201
    voce = r.json()["data"]
    assert voce["metodo_checkin"] == "QR_CODE"
    assert voce["nome_clinica"] == "Cabinet Test"
    assert voce["attesa_stimata_minuti"] == 10

    r = client.get(f"/api/queue/patient/{voce['id']}")
    assert r.json()["data"]["posizione"] == 1

    r = client.post(f"/api/queue/patient/{voce['id']}/leave")
    assert r.json()["data"]["stato"] == "CANCELLED"

    r = client.post(f"/api/queue/patient/{voce['id']}/leave")
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "CANNOT_LEAVE"


def test_check_in_pubblico_clinica_inesistente(client):
    r = client.post("/api/queue/checkin/non-esiste", json={"telefono": "20000001"})
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "CLINIC_NOT_FOUND"


def test_check_in_pubblico_telefono_non_valido(client, clinica_id):
    r = client.post(f"/api/queue/checkin/{clinica_id}", json={"telefono": "1234"})
    assert r.status_code == 400


def test_rate_limit_rotte_pubbliche(client, clinica_id, monkeypatch):
    monkeypatch.setattr(rate_limit, "limitatore_pubblico", RateLimiter(2, 60))

    for _ in range(2):
        assert client.get(f"/api/clinic/{clinica_id}/info").status_code == 200

    r = client.get(f"/api/clinic/{clinica_id}/info")
    assert r.status_code == 429
    assert r.json()["error"]["code"] == "RATE_LIMITED"
    assert int(r.headers["retry-after"]) > 0


def test_rate_limit_ignora_x_forwarded_for(client, clinica_id, monkeypatch):
    monkeypatch.setattr(rate_limit, "limitatore_pubblico", RateLimiter(3, 60))

    stati = [
        client.get(f"/api/clinic/{clinica_id}/info", headers={"X-Forwarded-For": f"10.0.0.{i}"}).status_code
        for i in range(10)
    ]

    assert stati[:3] == [200, 200, 200]
    assert set(stati[3:]) == {429}


def test_rate_limit_per_ip_dietro_proxy(client, clinica_id, monkeypatch):
    monkeypatch.setattr(config, "TRUST_PROXY", True)
    monkeypatch.setattr(rate_limit, "limitatore_pubblico", RateLimiter(1, 60))

    assert client.get(f"/api/clinic/{clinica_id}/info", headers={"X-Forwarded-For": "10.0.0.1"}).status_code == 200
    assert client.get(f"/api/clinic/{clinica_id}/info", headers={"X-Forwarded-For": "10.0.0.2"}).status_code == 200
    assert client.get(f"/api/clinic/{clinica_id}/info", headers={"X-Forwarded-For": "10.0.0.1"}).status_code == 429


def test_rate_limiter_finestra():
    rl = RateLimiter(2, 60)
    assert rl.allow("k") and rl.allow("k")
    assert rl.allow("k") is False
    assert rl.retry_after("k") > 0
    rl.reset("k")
    assert rl.allow("k")


def test_rate_limiter_finestra_scorrevole():
    ora = [1000.0]
    rl = RateLimiter(2, 60, clock=lambda: ora[0])

    assert rl.allow("k")
    ora[0] += 30
    assert rl.allow("k")
    assert rl.allow("k") is False

    # dopo 60s dal primo evento si libera un solo posto
    ora[0] += 31
    assert rl.allow("k")
    assert rl.allow("k") is False


def test_rate_limiter_dimentica_chiavi_inattive():
    ora = [1000.0]
    rl = RateLimiter(5, 60, clock=lambda: ora[0])
    for i in range(20):
        rl.allow(f"10.0.0.{i}")
    assert rl.chiavi_attive() == 20

    ora[0] += 61
    rl.allow("10.0.1.1")

    assert rl.chiavi_attive() == 1
