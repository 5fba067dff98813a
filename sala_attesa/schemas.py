from __future__ import annotations

import re
from datetime import date, datetime
from typing import Annotated, Literal

from pydantic import AfterValidator, BaseModel, BeforeValidator, EmailStr, Field

from .models import Genere, MetodoCheckIn, Promemoria, StatoAppuntamento, StatoCoda
from .telefono import telefono_valido

ORARIO_RE = r"^([01]\d|2[0-3]):([0-5]\d)$"


def _verifica_telefono(v: str) -> str:
    if not telefono_valido(v):
        raise ValueError("Invalid Tunisian phone number. Must be +216XXXXXXXX format.")
    return v


def _mese(v):
    # accetta anche "YYYY-MM"
    if isinstance(v, str) and re.fullmatch(r"\d{4}-\d{2}", v):
        return f"{v}-01"
    return v


Telefono = Annotated[str, AfterValidator(_verifica_telefono)]
Mese = Annotated[date, BeforeValidator(_mese)]


# =========================
# Auth
# =========================
class LoginIn(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)


class CambioPasswordIn(BaseModel):
    nuova_password: str = Field(..., min_length=6)


# =========================
# Coda
# =========================
class AggiungiPazienteIn(BaseModel):
    telefono: str = Field(..., min_length=8)
    nome: str | None = None
    metodo_checkin: MetodoCheckIn = MetodoCheckIn.MANUAL
    # "HH:MM" di oggi, ora locale
    orario_appuntamento: str | None = Field(None, pattern=ORARIO_RE)
    arrivato_il: datetime | None = None


class CheckInPubblicoIn(BaseModel):
    telefono: str = Field(..., min_length=8)
    nome: str | None = None


class AggiornaStatoIn(BaseModel):
    stato: StatoCoda
    completato_il: datetime | None = None


class RiordinaIn(BaseModel):
    voce_id: str
    nuova_posizione: int = Field(..., ge=1)


# =========================
# Clinica
# =========================
class AggiornaClinicaIn(BaseModel):
    nome: str | None = None
    nome_medico: str | None = None
    telefono: str | None = None
    indirizzo: str | None = None
    lingua: Literal["fr", "ar"] | None = None
    durata_media_visita: int | None = Field(None, ge=5, le=120)
    notifica_alla_posizione: int | None = Field(None, ge=1, le=10)
    whatsapp_attivo: bool | None = None
    tipo_attivita: Literal["medical", "retail"] | None = None
    mostra_appuntamenti: bool | None = None


class PresenzaMedicoIn(BaseModel):
    presente: bool


# =========================
# Agenda
# =========================
class OrariGiorno(BaseModel):
    start: str = Field(..., pattern=ORARIO_RE)
    end: str = Field(..., pattern=ORARIO_RE)


class OrariLavoro(BaseModel):
    monday: OrariGiorno | None = None
    tuesday: OrariGiorno | None = None
    wednesday: OrariGiorno | None = None
    thursday: OrariGiorno | None = None
    friday: OrariGiorno | None = None
    saturday: OrariGiorno | None = None
    sunday: OrariGiorno | None = None


class MedicoIn(BaseModel):
    nome: str = Field(..., min_length=2)
    specializzazione: str | None = None
    telefono: Telefono | None = None
    email: EmailStr | None = None
    colore: str | None = Field(None, pattern=r"^#[0-9A-Fa-f]{6}$")
    durata_slot: int | None = Field(None, ge=5, le=120)
    orari_lavoro: OrariLavoro | None = None


class MedicoUpdateIn(MedicoIn):
    nome: str | None = Field(None, min_length=2)
    attivo: bool | None = None


class PazienteIn(BaseModel):
    nome: str = Field(..., min_length=2)
    telefono: Telefono
    email: EmailStr | None = None
    data_nascita: date | None = None
    genere: Genere | None = None
    note: str | None = None
    medico_preferito_id: str | None = None
    preferenza_promemoria: Promemoria | None = None


class PazienteUpdateIn(PazienteIn):
    nome: str | None = Field(None, min_length=2)
    telefono: Telefono | None = None


class AppuntamentoIn(BaseModel):
    medico_id: str
    paziente_id: str
    data: date
    orario: str = Field(..., pattern=ORARIO_RE)
    durata: int = Field(..., ge=5, le=180)
    motivo: str | None = None
    note: str | None = None


class AppuntamentoUpdateIn(BaseModel):
    data: date | None = None
    orario: str | None = Field(None, pattern=ORARIO_RE)
    durata: int | None = Field(None, ge=5, le=180)
    stato: StatoAppuntamento | None = None
    motivo: str | None = None
    note: str | None = None


# =========================
# Admin
# =========================
class CreaClinicaIn(BaseModel):
    nome: str = Field(..., min_length=2)
    email: EmailStr
    password: str = Field(..., min_length=6)
    nome_medico: str | None = None
    telefono: str | None = None
    indirizzo: str | None = None
    lingua: Literal["fr", "ar"] = "fr"
    durata_media_visita: int = Field(10, ge=5, le=120)
    tipo_attivita: Literal["medical", "retail"] = "medical"


class StatoClinicaIn(BaseModel):
    attiva: bool


class PagamentoIn(BaseModel):
    importo: int | None = Field(None, gt=0)  # millimes
    mese: Mese | None = None
    metodo: str = "bank_transfer"
    riferimento: str | None = None
    note: str | None = None


class KonnectIn(BaseModel):
    mese: Mese | None = None
