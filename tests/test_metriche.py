from __future__ import annotations

import pytest
from prometheus_client import REGISTRY

from sala_attesa.metriche import normalizza_rotta
from sala_attesa.realtime import stanza_clinica, stanza_paziente
from sala_attesa.services import aggiungi_paziente

VOCE_ID = "3f2b8c1e-9d4a-4e6b-8a7c-1b2c3d4e5f60"


def valore(nome: str, **labels) -> float:
    return REGISTRY.get_sample_value(nome, labels) or 0.0


@pytest.mark.parametrize(
    "path, atteso",
    [
        ("/health", "/health"),
        (f"/api/queue/patient/{VOCE_ID}/leave", "/api/queue/patient/:id/leave"),
        (f"/api/clinic/{VOCE_ID}/info", "/api/clinic/:id/info"),
        ("/api/queue/checkin/demo-clinic", "/api/queue/checkin/:id"),
        ("/api/calendar/day/2030-01-07", "/api/calendar/day/:giorno"),
        ("/api/admin/clinics/42", "/api/admin/clinics/:id"),
    ],
)
def test_normalizza_rotta(path, atteso):
    assert normalizza_rotta(path) == atteso


def test_metrics_formato_prometheus(client):
    r = client.get("/metrics")

    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/plain")
    assert "# TYPE sala_attesa_http_requests_total counter" in r.text
    assert "sala_attesa_queue_entries" in r.text


def test_metrics_conta_richieste_http(client):
    etichette = {"method": "GET", "route": "/health", "status_code": "200"}
    prima = valore("sala_attesa_http_requests_total", **etichette)

    client.get("/health")
    client.get("/health")

    assert valore("sala_attesa_http_requests_total", **etichette) == prima + 2
    assert 'route="/health"' in client.get("/metrics").text


def test_metrics_conta_errori_api(client):
    prima = valore("sala_attesa_api_errors_total", route="/api/queue", error_type="UNAUTHORIZED")

    assert client.get("/api/queue").status_code == 401

    assert valore("sala_attesa_api_errors_total", route="/api/queue", error_type="UNAUTHORIZED") == prima + 1


def test_metrics_voci_coda_per_stato(client, clinica_id):
    aggiungi_paziente(clinica_id, "20000001", "Amine")
    aggiungi_paziente(clinica_id, "20000002", "Sami")

    client.get("/metrics")

    assert valore("sala_attesa_queue_entries", status="IN_CONSULTATION") == 1
    assert valore("sala_attesa_queue_entries", status="NOTIFIED") == 1
    assert valore("sala_attesa_queue_entries", status="WAITING") == 0
    assert valore("sala_attesa_patients_today") == 2


def test_metrics_connessioni_e_stanze(client, clinica_id, eventi):
    eventi(stanza_clinica(clinica_id))
    eventi(stanza_paziente(VOCE_ID))

    client.get("/metrics")

    assert valore("sala_attesa_socket_connections_active") == 2
    assert valore("sala_attesa_socket_rooms_active", type="clinic") == 1
    assert valore("sala_attesa_socket_rooms_active", type="patient") == 1
    assert valore("sala_attesa_socket_rooms_active", type="clinic_patients") == 0
