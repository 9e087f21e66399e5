# app/core/database.py
"""Database configuration with separate config and data source databases."""

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from dotenv import load_dotenv
import logging
import os

load_dotenv()

logger = logging.getLogger(__name__)


def _connect_args(url: str) -> dict:
    return {"check_same_thread": False} if url.startswith("sqlite") else {}


# ===== CONFIG DATABASE =====
# Stores saved table configurations and request logs.
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./tablequery_config.db")

engine = create_engine(DATABASE_URL, connect_args=_connect_args(DATABASE_URL))
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


# ===== DATA SOURCE DATABASE =====
# The columnar data the configured queries run against. Its schema is
# reflected at runtime, so no models are declared for it here.
DATASOURCE_URL = os.getenv("DATASOURCE_URL", "sqlite:///./tablequery_datasource.db")

ds_engine = create_engine(DATASOURCE_URL, connect_args=_connect_args(DATASOURCE_URL))
DSSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=ds_engine)


# ===== SESSION GENERATORS =====


def get_db():
    """Get config database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_ds_db():
    """Get data source database session."""
    db = DSSessionLocal()
    try:
        yield db
    finally:
        db.close()


# ===== TABLE CREATION =====


def create_all_tables():
    """Create the config database tables."""
    # Import models to ensure they're registered with Base
    from app.tables.models import TableConfigRecord  # noqa: F401
    from app.logging.models import Log  # noqa: F401

    Base.metadata.create_all(bind=engine)
    logger.info("Config database tables created")


def init_db():
    """Initialize database on application startup."""
    create_all_tables()
