# src/rental_pricing/db.py
from __future__ import annotations

import logging

from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker

from .settings import settings

logger = logging.getLogger(__name__)


# psycopg3 uses 'postgresql+psycopg' instead of 'postgresql+psycopg2'
def get_sqlalchemy_url() -> str:
    url = settings.sqlalchemy_url
    if 'postgresql+psycopg2' in url:
        url = url.replace('postgresql+psycopg2', 'postgresql+psycopg')
    elif url.startswith('postgresql://'):
        url = url.replace('postgresql://', 'postgresql+psycopg://')
    return url


def make_engine(url: str):
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(
        url,
        pool_pre_ping=True,
        pool_recycle=300,
        connect_args={
            "options": "-c statement_timeout=30000",  # 30 second timeout
            # Prevent duplicate prepared statement errors across pooled connections
            "prepare_threshold": 0,
        },
    )


engine = make_engine(get_sqlalchemy_url())

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


def seed_duration_catalog(db: Session, *, overwrite: bool = False) -> int:
    """Write the default days-only catalog; existing entries are kept unless ``overwrite``."""
    from .models import EquipmentDropdown
    from .rules.pricing_config import DEFAULT_CATALOG, upsert_catalog_entries

    existing = set(db.execute(select(EquipmentDropdown.name)).scalars().all())
    pending = [e for e in DEFAULT_CATALOG if overwrite or e["name"] not in existing]
    if not pending:
        return 0
    upsert_catalog_entries(db, pending)
    logger.info("Seeded duration catalog entries: %s", ", ".join(e["name"] for e in pending))
    return len(pending)


def init_db(bind=None) -> None:
    # Safe if tables already exist
    from .models import Base

    bind = bind or engine
    Base.metadata.create_all(bind=bind)
    if settings.seed_duration_catalog:
        with Session(bind=bind) as db:
            seed_duration_catalog(db)
