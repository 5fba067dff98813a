from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import config, metriche
from .db import init_db
from .errori import ErroreServizio
from .routes import admin, agenda, auth, clinica, coda, metriche as metriche_routes, pagamenti, ws
from .seed import seed_demo
from .services import reset_notturno
from .tempo import ora_locale, secondi_a_mezzanotte

logger = logging.getLogger(__name__)

app = FastAPI(title="Sala d'Attesa API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router)
app.include_router(coda.router)
app.include_router(clinica.router)
for r in agenda.routers:
    app.include_router(r)
app.include_router(admin.router)
app.include_router(pagamenti.router)
app.include_router(ws.router)
app.include_router(metriche_routes.router)


@app.middleware("http")
async def traccia_metriche_http(request: Request, call_next):
    inizio = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception:
        metriche.osserva_richiesta(request.method, request.url.path, 500, time.perf_counter() - inizio)
        raise
    metriche.osserva_richiesta(request.method, request.url.path, response.status_code, time.perf_counter() - inizio)
    return response


# Errori -> {"error": {"code", "message", "details"?}}

_CODICI_HTTP = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    429: "RATE_LIMITED",
}


@app.exception_handler(ErroreServizio)
async def errore_servizio_handler(request: Request, exc: ErroreServizio) -> JSONResponse:
    metriche.registra_errore(request.url.path, exc.codice)
    return JSONResponse(status_code=exc.status_http, content={"error": exc.to_dict()})


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if isinstance(exc.detail, dict) and "code" in exc.detail:
        errore = dict(exc.detail)
    else:
        codice = _CODICI_HTTP.get(exc.status_code, "SERVER_ERROR" if exc.status_code >= 500 else "BAD_REQUEST")
        errore = {"code": codice, "message": str(exc.detail)}
    metriche.registra_errore(request.url.path, errore["code"])
    return JSONResponse(status_code=exc.status_code, content={"error": errore}, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    metriche.registra_errore(request.url.path, "VALIDATION_ERROR")
    return JSONResponse(
        status_code=400,
        content={
            "error": {
                "code": "VALIDATION_ERROR",
                "message": "Invalid request data",
                "details": jsonable_encoder(exc.errors()),
            }
        },
    )


@app.exception_handler(Exception)
async def errore_generico_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    metriche.registra_errore(request.url.path, "SERVER_ERROR")
    return JSONResponse(
        status_code=500, content={"error": {"code": "SERVER_ERROR", "message": "Internal server error"}}
    )


# Reset notturno

async def ciclo_reset_notturno() -> None:
    """Attende la mezzanotte locale, esegue il reset, ricomincia."""
    while True:
        attesa = secondi_a_mezzanotte()
        logger.info("[Scheduler] Next midnight reset in %d minutes", int(attesa // 60))
        await asyncio.sleep(attesa + 1)
        try:
            await run_in_threadpool(reset_notturno)
        except Exception:
            logger.exception("[Midnight Reset] Failed")


# Startup / shutdown

@app.on_event("startup")
async def startup() -> None:
    config.configura_logging()
    # Crea tabelle e, se richiesto, dati demo (idempotente)
    init_db()
    if config.SEED_DEMO:
        seed_demo()
    if config.MIDNIGHT_RESET:
        app.state.reset_task = asyncio.create_task(ciclo_reset_notturno())
    logger.info("Sala d'Attesa API started (timezone %s)", config.TIMEZONE)


@app.on_event("shutdown")
async def shutdown() -> None:
    task = getattr(app.state, "reset_task", None)
    if task:
        task.cancel()


@app.get("/health")
def health() -> dict[str, Any]:
    return {"status": "ok", "ora_locale": ora_locale().isoformat(timespec="seconds")}
