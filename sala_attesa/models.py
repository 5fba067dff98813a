from __future__ import annotations

import enum
import uuid
from datetime import date, datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base


def new_uuid() -> str:
    return str(uuid.uuid4())


def adesso() -> datetime:
    """UTC naive: tutti i timestamp della coda sono salvati così."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class StatoCoda(enum.Enum):
    WAITING = "WAITING"
    NOTIFIED = "NOTIFIED"
    IN_CONSULTATION = "IN_CONSULTATION"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"


STATI_ATTIVI = (StatoCoda.WAITING, StatoCoda.NOTIFIED, StatoCoda.IN_CONSULTATION)
STATI_TERMINALI = (StatoCoda.COMPLETED, StatoCoda.CANCELLED, StatoCoda.NO_SHOW)


class MetodoCheckIn(enum.Enum):
    QR_CODE = "QR_CODE"
    MANUAL = "MANUAL"
    WHATSAPP = "WHATSAPP"
    SMS = "SMS"
    APPOINTMENT = "APPOINTMENT"


class StatoAppuntamento(enum.Enum):
    SCHEDULED = "SCHEDULED"
    CONFIRMED = "CONFIRMED"
    CHECKED_IN = "CHECKED_IN"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"


# appuntamenti che non occupano lo slot del medico
STATI_APP_LIBERI = (StatoAppuntamento.CANCELLED, StatoAppuntamento.NO_SHOW)


class Genere(enum.Enum):
    MALE = "MALE"
    FEMALE = "FEMALE"
    OTHER = "OTHER"


class Promemoria(enum.Enum):
    SMS = "SMS"
    WHATSAPP = "WHATSAPP"
    NONE = "NONE"


class StatoPagamento(enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class Clinica(Base):
    """
    Tenant: studio medico o negozio.
    - email univoca, usata anche come login
    - password_hash con bcrypt (passlib)
    """
    __tablename__ = "cliniche"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    nome: Mapped[str] = mapped_column(String(120), nullable=False)
    nome_medico: Mapped[str | None] = mapped_column(String(120), nullable=True)
    email: Mapped[str] = mapped_column(String(120), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    telefono: Mapped[str | None] = mapped_column(String(30), nullable=True)
    indirizzo: Mapped[str | None] = mapped_column(String(255), nullable=True)
    lingua: Mapped[str] = mapped_column(String(2), default="fr", nullable=False)

    durata_media_visita: Mapped[int] = mapped_column(Integer, default=10, nullable=False)
    notifica_alla_posizione: Mapped[int] = mapped_column(Integer, default=2, nullable=False)
    whatsapp_attivo: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    medico_presente: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    tipo_attivita: Mapped[str] = mapped_column(String(20), default="medical", nullable=False)
    mostra_appuntamenti: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    attiva: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    ultimo_accesso: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    creata_il: Mapped[datetime] = mapped_column(DateTime, default=adesso, nullable=False)

    voci_coda: Mapped[list["VoceCoda"]] = relationship(back_populates="clinica", cascade="all, delete-orphan")
    medici: Mapped[list["Medico"]] = relationship(back_populates="clinica", cascade="all, delete-orphan")
    pazienti: Mapped[list["Paziente"]] = relationship(back_populates="clinica", cascade="all, delete-orphan")
    pagamenti: Mapped[list["Pagamento"]] = relationship(back_populates="clinica", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"Clinica({self.nome}, {self.email})"


class VoceCoda(Base):
    __tablename__ = "voci_coda"
    __table_args__ = (
        Index("ix_voci_coda_clinica_stato", "clinica_id", "stato"),
        Index("ix_voci_coda_clinica_telefono", "clinica_id", "telefono_paziente"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    clinica_id: Mapped[str] = mapped_column(ForeignKey("cliniche.id"), nullable=False)

    nome_paziente: Mapped[str | None] = mapped_column(String(120), nullable=True)
    telefono_paziente: Mapped[str] = mapped_column(String(30), nullable=False)

    posizione: Mapped[int] = mapped_column(Integer, nullable=False)
    stato: Mapped[StatoCoda] = mapped_column(Enum(StatoCoda), default=StatoCoda.WAITING, nullable=False)
    metodo_checkin: Mapped[MetodoCheckIn] = mapped_column(
        Enum(MetodoCheckIn), default=MetodoCheckIn.MANUAL, nullable=False
    )

    # ora locale della clinica
    orario_appuntamento: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    # valorizzato dal riordino manuale: ha la precedenza su tutto
    ordine_priorita: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    arrivato_il: Mapped[datetime] = mapped_column(DateTime, default=adesso, nullable=False)
    notificato_il: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    chiamato_il: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    completato_il: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    appuntamento_id: Mapped[str | None] = mapped_column(ForeignKey("appuntamenti.id"), nullable=True)

    clinica: Mapped["Clinica"] = relationship(back_populates="voci_coda")

    def __repr__(self) -> str:
        return f"VoceCoda(#{self.posizione} {self.telefono_paziente} {self.stato.value})"


class Medico(Base):
    __tablename__ = "medici"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    clinica_id: Mapped[str] = mapped_column(ForeignKey("cliniche.id"), nullable=False)
    nome: Mapped[str] = mapped_column(String(120), nullable=False)
    specializzazione: Mapped[str | None] = mapped_column(String(120), nullable=True)
    telefono: Mapped[str | None] = mapped_column(String(30), nullable=True)
    email: Mapped[str | None] = mapped_column(String(120), nullable=True)
    colore: Mapped[str] = mapped_column(String(7), default="#3B82F6", nullable=False)
    durata_slot: Mapped[int] = mapped_column(Integer, default=15, nullable=False)
    # {"monday": {"start": "09:00", "end": "17:00"}, "sunday": null, ...}
    orari_lavoro: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    attivo: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    clinica: Mapped["Clinica"] = relationship(back_populates="medici")
    appuntamenti: Mapped[list["Appuntamento"]] = relationship(back_populates="medico")

    def __repr__(self) -> str:
        return f"Medico({self.nome}, {self.specializzazione})"


class Paziente(Base):
    __tablename__ = "pazienti"
    __table_args__ = (UniqueConstraint("clinica_id", "telefono", name="uq_paziente_clinica_telefono"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    clinica_id: Mapped[str] = mapped_column(ForeignKey("cliniche.id"), nullable=False)
    nome: Mapped[str] = mapped_column(String(120), nullable=False)
    telefono: Mapped[str] = mapped_column(String(30), nullable=False)
    email: Mapped[str | None] = mapped_column(String(120), nullable=True)
    data_nascita: Mapped[date | None] = mapped_column(Date, nullable=True)
    genere: Mapped[Genere | None] = mapped_column(Enum(Genere), nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    medico_preferito_id: Mapped[str | None] = mapped_column(ForeignKey("medici.id"), nullable=True)
    preferenza_promemoria: Mapped[Promemoria] = mapped_column(
        Enum(Promemoria), default=Promemoria.SMS, nullable=False
    )
    creato_il: Mapped[datetime] = mapped_column(DateTime, default=adesso, nullable=False)

    clinica: Mapped["Clinica"] = relationship(back_populates="pazienti")
    appuntamenti: Mapped[list["Appuntamento"]] = relationship(back_populates="paziente", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"Paziente({self.nome}, {self.telefono})"


class Appuntamento(Base):
    __tablename__ = "appuntamenti"
    __table_args__ = (Index("ix_appuntamenti_medico_data", "medico_id", "data"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    clinica_id: Mapped[str] = mapped_column(ForeignKey("cliniche.id"), nullable=False)
    medico_id: Mapped[str] = mapped_column(ForeignKey("medici.id"), nullable=False)
    paziente_id: Mapped[str] = mapped_column(ForeignKey("pazienti.id"), nullable=False)

    data: Mapped[date] = mapped_column(Date, nullable=False)
    inizio: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    fine: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    durata: Mapped[int] = mapped_column(Integer, nullable=False)

    stato: Mapped[StatoAppuntamento] = mapped_column(
        Enum(StatoAppuntamento), default=StatoAppuntamento.SCHEDULED, nullable=False
    )
    motivo: Mapped[str | None] = mapped_column(Text, nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    # nessuna FK: la voce può essere cancellata dalla coda
    voce_coda_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    creato_il: Mapped[datetime] = mapped_column(DateTime, default=adesso, nullable=False)

    medico: Mapped["Medico"] = relationship(back_populates="appuntamenti")
    paziente: Mapped["Paziente"] = relationship(back_populates="appuntamenti")


class Pagamento(Base):
    __tablename__ = "pagamenti"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    clinica_id: Mapped[str] = mapped_column(ForeignKey("cliniche.id"), nullable=False)
    importo: Mapped[int] = mapped_column(Integer, nullable=False)  # millimes
    mese: Mapped[date] = mapped_column(Date, nullable=False)  # primo giorno del mese coperto
    metodo: Mapped[str] = mapped_column(String(30), nullable=False)
    riferimento: Mapped[str | None] = mapped_column(String(120), nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    stato: Mapped[StatoPagamento] = mapped_column(
        Enum(StatoPagamento), default=StatoPagamento.PENDING, nullable=False
    )
    riferimento_gateway: Mapped[str | None] = mapped_column(String(120), nullable=True, unique=True)

    creato_il: Mapped[datetime] = mapped_column(DateTime, default=adesso, nullable=False)
    pagato_il: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    clinica: Mapped["Clinica"] = relationship(back_populates="pagamenti")
