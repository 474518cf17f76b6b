# File: autoparts_catalog/database.py
import logging
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from fastapi import HTTPException

from . import config

logger = logging.getLogger(__name__)

engine = None
SessionLocal = None

if config.DATABASE_URL:
    try:
        engine = create_engine(config.DATABASE_URL, pool_pre_ping=True, echo=False)
        with engine.connect():
            logger.info("Initial database connection succeeded.")
        SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    except Exception as e:
        logger.error(f"Could not create database engine: {e}. Check DATABASE_URL in .env.")
        engine = None
        SessionLocal = None
else:
    logger.error("DATABASE_URL is not set, catalog endpoints will answer 503.")

# Base for every table in models.py
Base = declarative_base()


def get_db():
    """Yields a database session for one request."""
    if SessionLocal is None:
        raise HTTPException(status_code=503, detail="Database configuration unavailable.")
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_tables(bind=None):
    """Creates every catalog table that does not exist yet."""
    from . import models  # noqa: F401  registers the tables on Base.metadata
    bind = bind or engine
    if bind is None:
        logger.warning("No database engine, skipping table creation.")
        return
    Base.metadata.create_all(bind=bind)
    logger.info("Catalog tables are in place.")
