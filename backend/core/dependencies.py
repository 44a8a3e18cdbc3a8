# backend/core/dependencies.py
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from config.logging import get_logger, setup_logging
from config.settings import Settings, get_settings
from core.database import SessionUnitOfWork, create_session_factory, init_db
from repositories.sales_repo import SalesRepositories
from repositories.sql_repo import sql_repositories
from repositories.unit_of_work import InMemoryUnitOfWork, UnitOfWork
from services.conversion_service import ConversionService
from services.document_service import DocumentService
from services.sequence import DocumentNumberGenerator
from services.statistics_service import StatisticsService
from utils.date_utils import Clock, SystemClock

logger = get_logger(__name__)


@dataclass
class Workflow:
    """Wired collaborators of the sales document workflow."""
    settings: Settings
    clock: Clock
    repositories: SalesRepositories
    unit_of_work: UnitOfWork
    numbers: DocumentNumberGenerator
    documents: DocumentService
    conversions: ConversionService
    statistics: StatisticsService
    session: Optional[Session] = None


def build_workflow(
    settings: Optional[Settings] = None,
    clock: Optional[Clock] = None,
    repositories: Optional[SalesRepositories] = None,
    unit_of_work: Optional[UnitOfWork] = None,
    session: Optional[Session] = None,
    configure_logging: bool = True
) -> Workflow:
    """
    Assemble repositories, unit of work, numbering and services.

    With ``PERSISTENCE=database`` (or an explicit ``session``) documents are
    stored through SQLAlchemy and every unit of work commits the session;
    otherwise they live in memory.
    """
    settings = settings or get_settings()
    if configure_logging:
        setup_logging(settings)

    if session is None and repositories is None and settings.PERSISTENCE == "database":
        session = create_session_factory(settings)()
    if session is not None:
        init_db(session.get_bind())
        repositories = repositories or sql_repositories(session)
        unit_of_work = unit_of_work or SessionUnitOfWork(session)

    clock = clock or SystemClock(settings.TIMEZONE)
    repositories = repositories or SalesRepositories()
    unit_of_work = unit_of_work or InMemoryUnitOfWork(repositories.all())
    numbers = DocumentNumberGenerator(settings=settings, clock=clock)

    logger.info(f"{settings.APP_NAME} {settings.VERSION} workflow ready ({'database' if session else 'memory'})")

    return Workflow(
        settings=settings,
        clock=clock,
        repositories=repositories,
        unit_of_work=unit_of_work,
        numbers=numbers,
        documents=DocumentService(repositories, unit_of_work, numbers, clock, settings),
        conversions=ConversionService(repositories, unit_of_work, numbers, clock, settings),
        statistics=StatisticsService(repositories, clock, settings),
        session=session,
    )
