from __future__ import annotations

import sys

import pytest

from sala_attesa import cli
from sala_attesa.auth_service import autentica
from sala_attesa.tools import reset_password


def _esegui(monkeypatch, *argv):
    monkeypatch.setattr(sys, "argv", ["sala_attesa", *argv])
    cli.main()


def test_cli_flusso_coda(monkeypatch, capsys, clinica_id):
    _esegui(monkeypatch, "checkin", "--clinica-id", clinica_id, "--telefono", "20000001", "--nome", "Sami")
    _esegui(monkeypatch, "checkin", "--clinica-id", clinica_id, "--telefono", "20000002")
    _esegui(monkeypatch, "checkin", "--clinica-id", clinica_id, "--telefono", "20000001")
    out = capsys.readouterr().out
    assert "In coda: #1" in out
    assert "Già in coda: #1" in out

    _esegui(monkeypatch, "next", "--clinica-id", clinica_id)
    assert "In visita: +21620000002" in capsys.readouterr().out

    _esegui(monkeypatch, "queue", "--clinica-id", clinica_id)
    out = capsys.readouterr().out
    assert "#1 | IN_CONSULTATION" in out
    assert "visti oggi: 1" in out


def test_cli_cliniche(monkeypatch, capsys):
    _esegui(monkeypatch, "add-clinic", "--nome", "Cabinet CLI", "--email", "cli@test.tn", "--password", "segreta123")
    _esegui(monkeypatch, "list")
    assert "Cabinet CLI | cli@test.tn | attiva" in capsys.readouterr().out

    with pytest.raises(SystemExit):
        _esegui(monkeypatch, "add-clinic", "--nome", "Doppia", "--email", "cli@test.tn", "--password", "segreta123")
    assert "EMAIL_EXISTS" in capsys.readouterr().out


def test_cli_reset_notturno(monkeypatch, capsys, clinica_id):
    _esegui(monkeypatch, "checkin", "--clinica-id", clinica_id, "--telefono", "20000001")
    _esegui(monkeypatch, "reset-notturno")
    assert "Cabinet Test: 1 voci cancellate" in capsys.readouterr().out


def test_reset_password_tool(monkeypatch, capsys, clinica_id):
    monkeypatch.setattr(sys, "argv", ["reset_password", "Cabinet@Test.tn", "nuova-pass"])
    reset_password.main()

    assert "OK:" in capsys.readouterr().out
    assert autentica("cabinet@test.tn", "nuova-pass") is not None


def test_reset_password_tool_email_sconosciuta(monkeypatch):
    monkeypatch.setattr(sys, "argv", ["reset_password", "nessuno@test.tn", "nuova-pass"])
    with pytest.raises(SystemExit) as exc:
        reset_password.main()
    assert exc.value.code == 1
