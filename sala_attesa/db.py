from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from .config import DATABASE_URL


def _crea_engine(url: str, **kwargs: Any) -> Engine:
    if url.startswith("sqlite"):
        # le richieste FastAPI sync girano nel threadpool
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    return create_engine(
        url,
        echo=False,              # metti True se vuoi vedere le query
        future=True,
        **kwargs,
    )


engine = _crea_engine(DATABASE_URL)

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    future=True,
    expire_on_commit=False
)


class Base(DeclarativeBase):
    """Base ORM per tutti i modelli."""
    pass


def configura_engine(url: str, **kwargs: Any) -> Engine:
    """
    Sostituisce engine e sessionmaker (test, CLI con --db).
    db_session() legge i globali a ogni chiamata, quindi basta riassegnarli.
    """
    global engine
    engine.dispose()
    engine = _crea_engine(url, **kwargs)
    SessionLocal.configure(bind=engine)
    return engine


def init_db() -> None:
    """Crea le tabelle se non esistono."""
    from . import models  # noqa: F401  (registra i modelli nel metadata)

    Base.metadata.create_all(bind=engine)


@contextmanager
def db_session() -> Iterator[Session]:
    """
    Context manager per gestire correttamente la sessione:
    - commit se tutto ok
    - rollback su eccezioni
    - close sempre
    """
    session: Session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
