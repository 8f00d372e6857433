from __future__ import annotations

import contextlib
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from steamauth.config import settings


def make_engine(url: str):
    if url.startswith("sqlite"):
        return create_engine(url, future=True, connect_args={"check_same_thread": False})
    return create_engine(url, pool_pre_ping=True, pool_size=5, max_overflow=5, future=True)


engine = make_engine(settings.database_url)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
_engine_url = settings.database_url


def configure_engine(url: str):
    """Point ``engine`` and ``session_scope()`` at ``url``; no-op when unchanged."""
    global engine, _engine_url
    if url != _engine_url:
        engine.dispose()
        engine = make_engine(url)
        _engine_url = url
        SessionLocal.configure(bind=engine)
    return engine


@contextlib.contextmanager
def session_scope() -> Iterator[Session]:
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
