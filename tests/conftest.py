from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

from sala_attesa import config
from sala_attesa.auth_service import crea_clinica, login
from sala_attesa.db import configura_engine, init_db
from sala_attesa.rate_limit import limitatore_pubblico
from sala_attesa.realtime import bus
from sala_attesa.statistiche import cache

ADMIN_EMAIL = "admin@salaattesa.tn"


@pytest.fixture(autouse=True)
def db():
    """DB SQLite in memoria, nuovo per ogni test."""
    engine = configura_engine("sqlite://", poolclass=StaticPool)
    init_db()
    bus.reset()
    cache.clear()
    limitatore_pubblico.clear()
    yield engine
    bus.reset()
    cache.clear()


@pytest.fixture(autouse=True)
def admin_emails(monkeypatch):
    monkeypatch.setattr(config, "ADMIN_EMAILS", [ADMIN_EMAIL])


@pytest.fixture
def clinica_id() -> str:
    return crea_clinica(
        nome="Cabinet Test",
        email="cabinet@test.tn",
        password="segreta123",
        nome_medico="Dr. Test",
        durata_media_visita=10,
    )


@pytest.fixture
def altra_clinica_id() -> str:
    return crea_clinica(nome="Altra Clinica", email="altra@test.tn", password="segreta123")


@pytest.fixture
def client() -> TestClient:
    from sala_attesa.api_main import app

    return TestClient(app)


@pytest.fixture
def headers(clinica_id) -> dict[str, str]:
    token = login("cabinet@test.tn", "segreta123")["token"]
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers() -> dict[str, str]:
    crea_clinica(nome="Administration", email=ADMIN_EMAIL, password="admin12345")
    token = login(ADMIN_EMAIL, "admin12345")["token"]
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def eventi():
    """Registra gli eventi pubblicati su una stanza: eventi(stanza) -> lista [(evento, dati)]."""
    ricevuti: dict[str, list] = {}

    def iscrivi(stanza: str) -> list:
        lista = ricevuti.setdefault(stanza, [])
        bus.iscrivi(stanza, lambda evento, dati: lista.append((evento, dati)))
        return lista

    return iscrivi
