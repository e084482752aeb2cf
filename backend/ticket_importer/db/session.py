"""Database engine and session lifecycle helpers."""

from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from ticket_importer.core.config import settings

engine = create_engine(settings.DATABASE_URL, pool_pre_ping=True)
# Import batches commit row by row and keep resolved objects cached across
# commits, so instances are not expired on commit.
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
