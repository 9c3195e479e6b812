from sqlalchemy import create_engine, text
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.exc import OperationalError, SQLAlchemyError
import time
import logging

from .errors import TransientPersistenceError

logger = logging.getLogger(__name__)

Base = declarative_base()

# Configured by init_database()
engine = None
SessionLocal = None


def _engine_options(database_url: str) -> dict:
    if database_url.startswith("sqlite"):
        options = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            # One shared connection, otherwise every session sees an empty database
            options["poolclass"] = StaticPool
        return options
    return {
        "pool_pre_ping": True,
        "pool_recycle": 300,
        "connect_args": {"connect_timeout": 10},
    }


def init_database(database_url: str, max_retries: int = 5, retry_delay: float = 5) -> bool:
    """Initialize database connection and create tables"""
    global engine, SessionLocal

    logger.info(f"Initializing database connection to: {database_url}")

    # Import models so that their tables are registered on Base
    from . import models  # noqa: F401

    for attempt in range(max_retries):
        try:
            engine = create_engine(database_url, echo=False, **_engine_options(database_url))

            # Test connection
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))

            SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
            Base.metadata.create_all(bind=engine)

            logger.info("✓ Database connection established")
            return True

        except OperationalError as e:
            logger.warning(f"Database connection attempt {attempt + 1}/{max_retries} failed: {e}")
            if attempt < max_retries - 1:
                time.sleep(retry_delay)

    logger.error("✗ Max retries reached, could not connect to database")
    return False


def close_database():
    global engine, SessionLocal
    if engine is not None:
        engine.dispose()
        logger.info("Database connection closed")
    engine = None
    SessionLocal = None


def get_db():
    """Dependency for database session"""
    if SessionLocal is None:
        raise RuntimeError("Database not initialized")

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def commit_or_rollback(db, action: str):
    """Commit the session; on failure roll back and raise a retryable error"""
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Database error during {action}: {e}")
        raise TransientPersistenceError(f"Could not {action}, please retry") from e
