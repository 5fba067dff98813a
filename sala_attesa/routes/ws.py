"""
WebSocket /ws: ogni connessione è un iscritto del bus eventi.

Messaggi in ingresso: {"event": ..., "data": {...}}
- join:clinic   {"clinica_id", "token"}  dashboard staff (JWT della clinica)
- join:patient  {"voce_id"}              pagina stato paziente
- ping
Messaggi in uscita: {"event": ..., "data": ...} (queue:updated, patient:called, doctor:presence, ...)
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder
from starlette.concurrency import run_in_threadpool

from ..auth_security import get_subject
from ..db import db_session
from ..models import VoceCoda
from ..realtime import bus, stanza_clinica, stanza_paziente, stanza_pazienti_clinica

logger = logging.getLogger(__name__)

router = APIRouter()


def _errore(codice: str, messaggio: str) -> dict[str, Any]:
    return {"event": "error", "data": {"code": codice, "message": messaggio}}


def gestisci_messaggio(iscritto: int, messaggio: Any) -> dict[str, Any] | None:
    if not isinstance(messaggio, dict):
        return _errore("INVALID_MESSAGE", "Expected {event, data}")
    evento = messaggio.get("event")
    dati = messaggio.get("data") or {}

    if evento == "ping":
        return {"event": "pong", "data": None}

    if evento == "join:clinic":
        clinica_id = dati.get("clinica_id")
        if not clinica_id or get_subject(dati.get("token") or "") != clinica_id:
            logger.warning("Rejected join:clinic for %s", clinica_id)
            return _errore("UNAUTHORIZED", "Invalid token for this clinic")
        bus.entra(iscritto, stanza_clinica(clinica_id))
        return {"event": "joined:clinic", "data": {"stanza": stanza_clinica(clinica_id)}}

    if evento == "join:patient":
        voce_id = dati.get("voce_id")
        with db_session() as s:
            v = s.get(VoceCoda, voce_id) if voce_id else None
            if not v:
                return _errore("ENTRY_NOT_FOUND", "Queue entry not found")
            clinica_id, posizione, stato = v.clinica_id, v.posizione, v.stato.value
        bus.entra(iscritto, stanza_paziente(voce_id))
        bus.entra(iscritto, stanza_pazienti_clinica(clinica_id))
        return {
            "event": "joined:patient",
            "data": {"stanza": stanza_paziente(voce_id), "posizione": posizione, "stato": stato},
        }

    return _errore("UNKNOWN_EVENT", f"Unknown event: {evento}")


@router.websocket("/ws")
async def ws_eventi(websocket: WebSocket) -> None:
    await websocket.accept()
    loop = asyncio.get_running_loop()
    uscita: asyncio.Queue[dict[str, Any]] = asyncio.Queue()

    def inoltra(evento: str, dati: Any) -> None:
        # chiamata dai thread dei servizi
        loop.call_soon_threadsafe(uscita.put_nowait, {"event": evento, "data": jsonable_encoder(dati)})

    iscritto = bus.registra(inoltra)

    async def ricevi() -> None:
        while True:
            messaggio = await websocket.receive_json()
            risposta = await run_in_threadpool(gestisci_messaggio, iscritto, messaggio)
            if risposta:
                uscita.put_nowait(risposta)

    async def invia() -> None:
        while True:
            await websocket.send_json(await uscita.get())

    tasks = [asyncio.create_task(ricevi()), asyncio.create_task(invia())]
    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for t in done:
            exc = t.exception()
            if exc and not isinstance(exc, WebSocketDisconnect):
                logger.error("WebSocket error: %s", exc)
    finally:
        for t in tasks:
            t.cancel()
        bus.rimuovi(iscritto)
        logger.debug("WebSocket subscriber %s disconnected", iscritto)
