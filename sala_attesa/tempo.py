from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from .config import TIMEZONE


def fuso() -> ZoneInfo:
    return ZoneInfo(TIMEZONE)


def ora_locale() -> datetime:
    """Ora della clinica, naive."""
    return datetime.now(fuso()).replace(tzinfo=None)


def oggi_locale() -> date:
    return ora_locale().date()


def inizio_giorno_utc(giorno: date | None = None) -> datetime:
    """Mezzanotte locale del giorno indicato, espressa in UTC naive (come i timestamp della coda)."""
    giorno = giorno or oggi_locale()
    mezzanotte = datetime.combine(giorno, time.min, tzinfo=fuso())
    return mezzanotte.astimezone(timezone.utc).replace(tzinfo=None)


def a_utc_naive(dt: datetime) -> datetime:
    """Datetime aware -> UTC naive; i naive sono considerati già UTC."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def secondi_a_mezzanotte() -> float:
    adesso = datetime.now(fuso())
    domani = datetime.combine(adesso.date() + timedelta(days=1), time.min, tzinfo=fuso())
    return (domani - adesso).total_seconds()


def minuti(delta: timedelta) -> int:
    """Minuti arrotondati al più vicino (0.5 per eccesso)."""
    sec = delta.total_seconds()
    segno = -1 if sec < 0 else 1
    return segno * int(abs(sec) / 60 + 0.5)


def parse_orario(hhmm: str, giorno: date) -> datetime:
    ore, mins = (int(x) for x in hhmm.split(":"))
    return datetime.combine(giorno, time(ore, mins))


def formatta_orario(dt: datetime) -> str:
    return dt.strftime("%H:%M")
