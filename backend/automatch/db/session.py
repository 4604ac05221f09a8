# backend/automatch/db/session.py
"""
SQLAlchemy session/engine bootstrap.
- Reads DATABASE_URL from env (required for the matching pipeline).
- Exposes: Base, make_engine(), make_session_factory(), get_session_factory(),
  session_scope(), get_session(), ensure_tables().
- Engines are built lazily; a missing DATABASE_URL surfaces as ConfigurationError
  at first use, not at import time.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session, DeclarativeBase
from sqlalchemy.pool import StaticPool

from ..core.config import get_database_url, db_echo

# --- SQLAlchemy base ---------------------------------------------------------

class Base(DeclarativeBase):
    pass

# --- engine & session --------------------------------------------------------

_engine: Optional[Engine] = None
_SessionLocal: Optional[sessionmaker[Session]] = None


def make_engine(url: Optional[str] = None, echo: Optional[bool] = None) -> Engine:
    """
    Build an engine for `url` (defaults to DATABASE_URL).
    In-memory SQLite shares one connection so every session sees the same tables.
    """
    url = url or get_database_url()
    echo = db_echo() if echo is None else echo
    if url.startswith("sqlite") and (":memory:" in url or url.rstrip("/") == "sqlite:"):
        return create_engine(
            url,
            echo=echo,
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    if url.startswith("sqlite"):
        return create_engine(url, echo=echo, future=True, connect_args={"check_same_thread": False})
    return create_engine(url, echo=echo, pool_pre_ping=True, future=True)


def make_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, class_=Session, autoflush=False, autocommit=False, expire_on_commit=False)


def get_session_factory() -> sessionmaker[Session]:
    """Process-wide factory bound to DATABASE_URL (tables created on first call)."""
    global _engine, _SessionLocal
    if _SessionLocal is None:
        _engine = make_engine()
        ensure_tables(_engine)
        _SessionLocal = make_session_factory(_engine)
    return _SessionLocal

# --- helpers ----------------------------------------------------------------

@contextmanager
def session_scope(factory: Optional[sessionmaker[Session]] = None) -> Iterator[Session]:
    """
    Context manager for a DB session.
    Example:
        with session_scope() as s:
            s.add(obj)
    Commits on success, rolls back on error.
    """
    session = (factory or get_session_factory())()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_session() -> Iterator[Session]:
    """
    FastAPI dependency style generator.
    Usage:
        @router.get(...)
        def handler(db: Session = Depends(get_session)):
            ...
    """
    db = get_session_factory()()
    try:
        yield db
    finally:
        db.close()


def ensure_tables(engine: Engine) -> None:
    """
    Create tables if needed. Import models lazily to avoid circulars.
    """
    # local import to prevent circular import during module import
    from . import models  # noqa: F401
    Base.metadata.create_all(bind=engine)


__all__ = [
    "Base",
    "make_engine",
    "make_session_factory",
    "get_session_factory",
    "session_scope",
    "get_session",
    "ensure_tables",
]
