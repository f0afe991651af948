"""
Engine and session factory for the quality inspection store.

Sessions keep loaded objects usable after commit (``expire_on_commit=False``):
workflow transitions commit, then hand the same inspection to the response
schema and to post-commit notification delivery.
"""

from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from app.core.config import settings


class Base(DeclarativeBase):
    """Declarative base for tenants, staff, inspections, audit and outbox tables."""


def _engine_options(database_url: str) -> dict:
    if database_url.startswith("sqlite"):
        # Background notification delivery uses sessions from other threads.
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True}


engine = create_engine(settings.database_url, echo=False, future=True, **_engine_options(settings.database_url))
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


def get_db():
    """Request-scoped session; anything left uncommitted by a failed request is rolled back."""
    db: Session = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
