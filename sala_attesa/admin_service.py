from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Any

from sqlalchemy import func, select

from . import config
from .auth_service import cambia_password, crea_clinica
from .db import db_session
from .errori import ErroreServizio, non_trovato
from .konnect import KonnectError, get_client
from .models import Clinica, MetodoCheckIn, Pagamento, StatoCoda, StatoPagamento, VoceCoda, adesso
from .notifiche import to_iso, voce_to_dict
from .services import clinica_to_dict
from .statistiche import statistiche_coda
from .tempo import inizio_giorno_utc, minuti, oggi_locale

logger = logging.getLogger(__name__)

GIORNI_ATTIVA = 7
GIORNI_A_RISCHIO = 30


# =========================
# Salute cliniche
# =========================
def stato_salute(ultimo_accesso, ora=None) -> str:
    """active: login negli ultimi 7 giorni; at_risk: negli ultimi 30; altrimenti churned."""
    if ultimo_accesso is None:
        return "churned"
    giorni = ((ora or adesso()) - ultimo_accesso).days
    if giorni <= GIORNI_ATTIVA:
        return "active"
    if giorni <= GIORNI_A_RISCHIO:
        return "at_risk"
    return "churned"


def _attesa_media(voci) -> int | None:
    visti = [
        minuti(v.chiamato_il - v.arrivato_il)
        for v in voci
        if v.chiamato_il and v.stato in (StatoCoda.IN_CONSULTATION, StatoCoda.COMPLETED)
    ]
    if not visti:
        return None
    return int(sum(visti) / len(visti) + 0.5)


def metriche_admin() -> dict[str, Any]:
    da = inizio_giorno_utc()
    with db_session() as s:
        cliniche = list(s.execute(select(Clinica.ultimo_accesso).where(Clinica.attiva.is_(True))).scalars())
        pazienti_oggi = s.execute(select(func.count(VoceCoda.id)).where(VoceCoda.arrivato_il >= da)).scalar_one()
        qr_oggi = s.execute(
            select(func.count(VoceCoda.id)).where(
                VoceCoda.arrivato_il >= da, VoceCoda.metodo_checkin == MetodoCheckIn.QR_CODE
            )
        ).scalar_one()

    stati = [stato_salute(u) for u in cliniche]
    attive = stati.count("active")
    return {
        "cliniche_attive": attive,
        "cliniche_totali": len(cliniche),
        "mrr_tnd": attive * config.PREZZO_MENSILE_MILLIMES // 1000,
        "pazienti_oggi": pazienti_oggi,
        "tasso_checkin_qr": round(qr_oggi / pazienti_oggi * 100) if pazienti_oggi else 0,
        "cliniche_a_rischio": stati.count("at_risk"),
    }


def salute_cliniche() -> list[dict[str, Any]]:
    da = inizio_giorno_utc()
    with db_session() as s:
        cliniche = list(s.scalars(select(Clinica).where(Clinica.attiva.is_(True)).order_by(Clinica.nome)))
        risultato = []
        for c in cliniche:
            voci = list(s.scalars(select(VoceCoda).where(VoceCoda.clinica_id == c.id, VoceCoda.arrivato_il >= da)))
            risultato.append(
                {
                    "id": c.id,
                    "nome": c.nome,
                    "nome_medico": c.nome_medico,
                    "email": c.email,
                    "ultimo_accesso": to_iso(c.ultimo_accesso),
                    "pazienti_oggi": len(voci),
                    "attesa_media": _attesa_media(voci),
                    "stato": stato_salute(c.ultimo_accesso),
                }
            )
        return risultato


# =========================
# Gestione cliniche
# =========================
def crea_clinica_admin(dati: dict[str, Any]) -> dict[str, Any]:
    clinica_id = crea_clinica(**dati)
    with db_session() as s:
        return clinica_to_dict(s.get(Clinica, clinica_id))


def pagamento_to_dict(p: Pagamento) -> dict[str, Any]:
    return {
        "id": p.id,
        "clinica_id": p.clinica_id,
        "importo": p.importo,
        "mese": p.mese.isoformat(),
        "metodo": p.metodo,
        "riferimento": p.riferimento,
        "note": p.note,
        "stato": p.stato.value,
        "riferimento_gateway": p.riferimento_gateway,
        "creato_il": to_iso(p.creato_il),
        "pagato_il": to_iso(p.pagato_il),
    }


def dettaglio_clinica(clinica_id: str) -> dict[str, Any]:
    """Profilo, statistiche di oggi, pazienti degli ultimi 7 giorni, ultime voci e pagamenti."""
    oggi = oggi_locale()
    with db_session() as s:
        c = s.get(Clinica, clinica_id)
        if not c:
            raise non_trovato("CLINIC_NOT_FOUND", "Clinic not found")

        settimana = []
        for i in range(6, -1, -1):
            giorno = oggi - timedelta(days=i)
            n = s.execute(
                select(func.count(VoceCoda.id)).where(
                    VoceCoda.clinica_id == clinica_id,
                    VoceCoda.arrivato_il >= inizio_giorno_utc(giorno),
                    VoceCoda.arrivato_il < inizio_giorno_utc(giorno + timedelta(days=1)),
                )
            ).scalar_one()
            settimana.append({"data": giorno.isoformat(), "pazienti": n})

        recenti = s.scalars(
            select(VoceCoda)
            .where(VoceCoda.clinica_id == clinica_id)
            .order_by(VoceCoda.arrivato_il.desc())
            .limit(20)
        )
        pagamenti = s.scalars(
            select(Pagamento).where(Pagamento.clinica_id == clinica_id).order_by(Pagamento.mese.desc())
        )

        dettaglio = clinica_to_dict(c)
        dettaglio.update(
            {
                "ultimo_accesso": to_iso(c.ultimo_accesso),
                "creata_il": to_iso(c.creata_il),
                "stato_salute": stato_salute(c.ultimo_accesso),
                "pazienti_settimana": settimana,
                "voci_recenti": [voce_to_dict(v) for v in recenti],
                "pagamenti": [pagamento_to_dict(p) for p in pagamenti],
            }
        )

    dettaglio["statistiche_oggi"] = statistiche_coda(clinica_id)
    return dettaglio


def imposta_stato_clinica(clinica_id: str, attiva: bool) -> dict[str, Any]:
    with db_session() as s:
        c = s.get(Clinica, clinica_id)
        if not c:
            raise non_trovato("CLINIC_NOT_FOUND", "Clinic not found")
        c.attiva = attiva
        logger.info("Clinic %s %s", c.nome, "activated" if attiva else "deactivated")
        return {"id": c.id, "attiva": c.attiva}


def reset_password_clinica(clinica_id: str, nuova_password: str) -> None:
    cambia_password(clinica_id, nuova_password)
    logger.info("Password reset for clinic %s", clinica_id)


# =========================
# Pagamenti
# =========================
def primo_del_mese(mese: date | None = None) -> date:
    return (mese or oggi_locale()).replace(day=1)


def lista_pagamenti(clinica_id: str) -> list[dict[str, Any]]:
    with db_session() as s:
        q = select(Pagamento).where(Pagamento.clinica_id == clinica_id).order_by(Pagamento.mese.desc())
        return [pagamento_to_dict(p) for p in s.scalars(q)]


def registra_pagamento(
    clinica_id: str,
    importo: int | None = None,
    mese: date | None = None,
    metodo: str = "bank_transfer",
    riferimento: str | None = None,
    note: str | None = None,
) -> dict[str, Any]:
    """Pagamento manuale (bonifico, contanti...): nasce già COMPLETED."""
    with db_session() as s:
        if not s.get(Clinica, clinica_id):
            raise non_trovato("CLINIC_NOT_FOUND", "Clinic not found")
        p = Pagamento(
            clinica_id=clinica_id,
            importo=importo or config.PREZZO_MENSILE_MILLIMES,
            mese=primo_del_mese(mese),
            metodo=metodo,
            riferimento=riferimento,
            note=note,
            stato=StatoPagamento.COMPLETED,
            pagato_il=adesso(),
        )
        s.add(p)
        s.flush()
        return pagamento_to_dict(p)


def inizia_pagamento_konnect(clinica_id: str, mese: date | None = None) -> dict[str, Any]:
    """Crea un pagamento PENDING e ritorna il link di pagamento Konnect."""
    mese = primo_del_mese(mese)
    with db_session() as s:
        c = s.get(Clinica, clinica_id)
        if not c:
            raise non_trovato("CLINIC_NOT_FOUND", "Clinic not found")
        p = Pagamento(
            clinica_id=clinica_id,
            importo=config.PREZZO_MENSILE_MILLIMES,
            mese=mese,
            metodo="konnect",
            stato=StatoPagamento.PENDING,
        )
        s.add(p)
        s.flush()
        pagamento_id, email, telefono, nome = p.id, c.email, c.telefono, c.nome

    webhook = f"{config.API_PUBLIC_URL.rstrip('/')}/api/payments/konnect/webhook"
    try:
        risposta = get_client().init_pagamento(
            importo=config.PREZZO_MENSILE_MILLIMES,
            ordine_id=pagamento_id,
            descrizione=f"Abonnement {nome} {mese.strftime('%m/%Y')}",
            webhook_url=webhook,
            success_url=f"{config.FRONTEND_URL.rstrip('/')}/admin?payment=success",
            fail_url=f"{config.FRONTEND_URL.rstrip('/')}/admin?payment=failed",
            email=email,
            telefono=telefono,
            nome=nome,
        )
    except KonnectError as e:
        with db_session() as s:
            s.get(Pagamento, pagamento_id).stato = StatoPagamento.FAILED
        raise ErroreServizio("PAYMENT_GATEWAY_ERROR", str(e), status_http=502) from e

    with db_session() as s:
        p = s.get(Pagamento, pagamento_id)
        p.riferimento_gateway = risposta["paymentRef"]
        dati = pagamento_to_dict(p)

    return {"pagamento": dati, "pay_url": risposta["payUrl"]}


def gestisci_webhook_konnect(payment_ref: str) -> dict[str, Any]:
    """
    Konnect chiama il webhook con ?payment_ref=...: lo stato vero si legge dal gateway.
    Idempotente: un pagamento già COMPLETED non cambia più.
    """
    with db_session() as s:
        p = s.execute(select(Pagamento).where(Pagamento.riferimento_gateway == payment_ref)).scalar_one_or_none()
        if not p:
            raise non_trovato("PAYMENT_NOT_FOUND", "Payment not found")
        if p.stato == StatoPagamento.COMPLETED:
            return pagamento_to_dict(p)

    try:
        dettagli = get_client().dettagli_pagamento(payment_ref)
    except KonnectError as e:
        raise ErroreServizio("PAYMENT_GATEWAY_ERROR", str(e), status_http=502) from e

    stato_gateway = (dettagli.get("payment") or {}).get("status", "pending")
    with db_session() as s:
        p = s.execute(select(Pagamento).where(Pagamento.riferimento_gateway == payment_ref)).scalar_one()
        if stato_gateway == "completed":
            p.stato = StatoPagamento.COMPLETED
            p.pagato_il = adesso()
        elif stato_gateway == "failed":
            p.stato = StatoPagamento.FAILED
        logger.info("Konnect payment %s -> %s", payment_ref, p.stato.value)
        return pagamento_to_dict(p)
