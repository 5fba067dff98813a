"""
Metriche Prometheus, esposte su GET /metrics.

- HTTP: contatore e istogramma per metodo, rotta normalizzata e status
- WebSocket: iscritti al bus e stanze attive per tipo
- Coda: voci per stato (oggi + attive), pazienti arrivati oggi
- Errori API per rotta e codice

I gauge di coda e WebSocket sono letti al momento dello scrape.
Le metriche di processo sono quelle predefinite del registry.
"""
from __future__ import annotations

import re

from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, Counter, Gauge, Histogram, generate_latest
from sqlalchemy import func, or_, select

from .db import db_session
from .models import STATI_ATTIVI, StatoCoda, VoceCoda
from .realtime import bus
from .tempo import inizio_giorno_utc

PREFISSO = "sala_attesa"


def _get_or_create_metric(metric_cls, name: str, documentation: str, labelnames=(), **kwargs):
    existing = REGISTRY._names_to_collectors.get(name)
    if existing is not None:
        return existing
    return metric_cls(name, documentation, labelnames=labelnames, **kwargs)


HTTP_DURATA = _get_or_create_metric(
    Histogram,
    f"{PREFISSO}_http_request_duration_seconds",
    "Duration of HTTP requests in seconds",
    ("method", "route", "status_code"),
    buckets=(0.01, 0.05, 0.1, 0.3, 0.5, 1, 2, 5),
)
HTTP_RICHIESTE = _get_or_create_metric(
    Counter,
    f"{PREFISSO}_http_requests_total",
    "Total number of HTTP requests",
    ("method", "route", "status_code"),
)
ERRORI_API = _get_or_create_metric(
    Counter,
    f"{PREFISSO}_api_errors_total",
    "Total number of API errors",
    ("route", "error_type"),
)
WS_CONNESSIONI = _get_or_create_metric(
    Gauge,
    f"{PREFISSO}_socket_connections_active",
    "Number of active real-time subscribers",
)
WS_STANZE = _get_or_create_metric(
    Gauge,
    f"{PREFISSO}_socket_rooms_active",
    "Number of active real-time rooms by type",
    ("type",),
)
VOCI_CODA = _get_or_create_metric(
    Gauge,
    f"{PREFISSO}_queue_entries",
    "Number of queue entries by status",
    ("status",),
)
PAZIENTI_OGGI = _get_or_create_metric(
    Gauge,
    f"{PREFISSO}_patients_today",
    "Number of patients checked in today",
)


_UUID = re.compile(r"/[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}", re.IGNORECASE)
_GIORNO = re.compile(r"/\d{4}-\d{2}-\d{2}(?=/|$)")
_NUMERO = re.compile(r"/\d+(?=/|$)")
_PAZIENTE = re.compile(r"/patient/[^/]+")
_CHECKIN = re.compile(r"/checkin/[^/]+")


def normalizza_rotta(path: str) -> str:
    """/api/queue/patient/<uuid>/leave -> /api/queue/patient/:id/leave"""
    path = _UUID.sub("/:id", path)
    path = _GIORNO.sub("/:giorno", path)
    path = _NUMERO.sub("/:id", path)
    path = _PAZIENTE.sub("/patient/:id", path)
    return _CHECKIN.sub("/checkin/:id", path)


def osserva_richiesta(metodo: str, path: str, status_code: int, durata: float) -> None:
    rotta = normalizza_rotta(path)
    HTTP_RICHIESTE.labels(metodo, rotta, str(status_code)).inc()
    HTTP_DURATA.labels(metodo, rotta, str(status_code)).observe(durata)


def registra_errore(path: str, codice: str) -> None:
    ERRORI_API.labels(normalizza_rotta(path), codice).inc()


def aggiorna_gauge() -> None:
    WS_CONNESSIONI.set(bus.numero_connessioni())
    for tipo, n in bus.stanze_per_tipo().items():
        WS_STANZE.labels(tipo).set(n)

    da = inizio_giorno_utc()
    with db_session() as s:
        righe = s.execute(
            select(VoceCoda.stato, func.count(VoceCoda.id))
            .where(or_(VoceCoda.arrivato_il >= da, VoceCoda.stato.in_(STATI_ATTIVI)))
            .group_by(VoceCoda.stato)
        ).all()
        oggi = s.execute(select(func.count(VoceCoda.id)).where(VoceCoda.arrivato_il >= da)).scalar_one()

    conteggi = {stato: n for stato, n in righe}
    for stato in StatoCoda:
        VOCI_CODA.labels(stato.value).set(conteggi.get(stato, 0))
    PAZIENTI_OGGI.set(oggi)


def esporta() -> tuple[bytes, str]:
    aggiorna_gauge()
    return generate_latest(REGISTRY), CONTENT_TYPE_LATEST
