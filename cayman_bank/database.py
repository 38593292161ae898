# cayman_bank/database.py
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker, Session

from cayman_bank.core.config import settings
from cayman_bank.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

_engine = None
_SessionLocal = None


def get_engine():
    global _engine, _SessionLocal
    if _engine is None:
        url = settings.sqlalchemy_url
        if not url:
            raise ConfigurationError("DATABASE_URL is not set")
        _engine = create_engine(
            url,
            pool_pre_ping=True,
            future=True,
        )
        _SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_engine, future=True)
    return _engine


def get_sessionmaker():
    if _SessionLocal is None:
        get_engine()
    return _SessionLocal


@contextmanager
def db_session() -> Generator[Session, None, None]:
    SessionLocal = get_sessionmaker()
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_db() -> Generator[Session, None, None]:
    with db_session() as db:
        yield db


def _ensure_review_columns(engine) -> None:
    """Add the review-trail columns to pending_transactions when missing (idempotent).

    The tables themselves belong to the managed backend; only the columns this
    service writes on approve/reject are ensured here.
    """
    ddl = [
        "ALTER TABLE pending_transactions ADD COLUMN IF NOT EXISTS reviewed_by VARCHAR(36);",
        "ALTER TABLE pending_transactions ADD COLUMN IF NOT EXISTS reviewed_at TIMESTAMPTZ;",
        "ALTER TABLE pending_transactions ADD COLUMN IF NOT EXISTS rejection_reason TEXT;",
    ]

    with engine.begin() as conn:
        for stmt in ddl:
            conn.execute(text(stmt))


def init_db() -> None:
    engine = get_engine()
    if engine.dialect.name != "postgresql":
        logger.info("init_db: dialect %s, skipping review column check", engine.dialect.name)
        return
    _ensure_review_columns(engine)
