# backend/core/database.py
"""
Database configuration and session management
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool
import logging

from config.settings import Settings, get_settings
from models.records import Base
from repositories.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


def create_db_engine(settings: Settings = None):
    """Create the engine; in-memory SQLite shares one connection."""
    settings = settings or get_settings()
    options = {"echo": settings.DATABASE_ECHO, "pool_pre_ping": True}
    if settings.DATABASE_URL.startswith("sqlite"):
        options["connect_args"] = {"check_same_thread": False}
        if ":memory:" in settings.DATABASE_URL:
            options["poolclass"] = StaticPool
    return create_engine(settings.DATABASE_URL, **options)


def create_session_factory(settings: Settings = None) -> sessionmaker:
    return sessionmaker(autoflush=False, bind=create_db_engine(settings))


def init_db(engine) -> None:
    """Create the workflow tables if they do not exist yet"""
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ready")


class SessionUnitOfWork(UnitOfWork):
    """Unit of work over a SQLAlchemy session's commit and rollback."""

    def __init__(self, session: Session):
        self.session = session
        self._depth = 0

    def begin(self) -> None:
        self._depth += 1

    def commit(self) -> None:
        self._depth -= 1
        if self._depth == 0:
            try:
                self.session.commit()
            except Exception as e:
                logger.error(f"Commit failed: {str(e)}")
                self.session.rollback()
                raise

    def rollback(self) -> None:
        self._depth -= 1
        if self._depth == 0:
            self.session.rollback()
