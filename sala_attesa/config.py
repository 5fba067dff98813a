from __future__ import annotations

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

# .env nella root del progetto (accanto a streamlit_app.py)
ROOT_DIR = Path(__file__).resolve().parents[1]
load_dotenv(dotenv_path=ROOT_DIR / ".env")


def _bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _lista(name: str, default: str) -> list[str]:
    return [v.strip() for v in os.getenv(name, default).split(",") if v.strip()]


DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{ROOT_DIR / 'sala_attesa.sqlite'}")

# In produzione: mettila in variabile d'ambiente
JWT_SECRET = os.getenv("JWT_SECRET", "CHANGE_ME_DEV_SECRET")
JWT_EXPIRE_MINUTES = int(os.getenv("JWT_EXPIRE_MINUTES", str(7 * 24 * 60)))

FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:8501")
API_PUBLIC_URL = os.getenv("API_PUBLIC_URL", "http://127.0.0.1:8000")
CORS_ORIGINS = _lista("CORS_ORIGIN", "http://localhost:8501,http://localhost:5173")

ADMIN_EMAILS = [e.lower() for e in _lista("ADMIN_EMAILS", "admin@salaattesa.tn")]

# Fuso orario della clinica: definisce "oggi" per statistiche e doppio check-in
TIMEZONE = os.getenv("TIMEZONE", "Africa/Tunis")

PUBLIC_RATE_LIMIT = int(os.getenv("PUBLIC_RATE_LIMIT", "30"))
# Dietro un reverse proxy fidato: usa X-Forwarded-For come IP del client
TRUST_PROXY = _bool("TRUST_PROXY", False)
STATS_CACHE_SECONDS = float(os.getenv("STATS_CACHE_SECONDS", "10"))

# Abbonamento mensile in millimes (1 TND = 1000 millimes)
PREZZO_MENSILE_MILLIMES = int(os.getenv("PREZZO_MENSILE_MILLIMES", "50000"))

KONNECT_API_URL = os.getenv("KONNECT_API_URL", "https://api.konnect.network/api/v2")
KONNECT_API_KEY = os.getenv("KONNECT_API_KEY")
KONNECT_WALLET_ID = os.getenv("KONNECT_WALLET_ID")

MIDNIGHT_RESET = _bool("MIDNIGHT_RESET", True)
SEED_DEMO = _bool("SEED_DEMO", False)

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def configura_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=level or LOG_LEVEL,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    # uvicorn/httpx sono troppo verbosi a INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("multipart").setLevel(logging.WARNING)
