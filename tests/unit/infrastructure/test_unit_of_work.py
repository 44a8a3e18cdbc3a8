"""Unit tests for the in-memory and SQLAlchemy session units of work."""

from unittest.mock import MagicMock

import pytest
from sqlalchemy import inspect

from config.settings import TestingSettings
from core.database import SessionUnitOfWork, create_db_engine, create_session_factory, init_db
from repositories.sales_repo import QuotationRepository, SalesOrderRepository
from schemas.sales import Quotation, SalesOrder
from repositories.unit_of_work import InMemoryUnitOfWork


class TestInMemoryUnitOfWork:
    def test_commit_keeps_changes(self) -> None:
        repo = QuotationRepository()
        uow = InMemoryUnitOfWork([repo])

        with uow:
            repo.create(Quotation())

        assert repo.count() == 1

    def test_exception_restores_every_repository(self) -> None:
        quotations = QuotationRepository()
        orders = SalesOrderRepository()
        existing = quotations.create(Quotation(notes="before"))
        uow = InMemoryUnitOfWork([quotations, orders])

        with pytest.raises(ValueError):
            with uow:
                orders.create(SalesOrder())
                existing.notes = "after"
                quotations.update(existing)
                raise ValueError("boom")

        assert orders.count() == 0
        assert quotations.get_by_id(existing.id).notes == "before"

    def test_ids_are_reused_after_rollback(self) -> None:
        repo = SalesOrderRepository()
        uow = InMemoryUnitOfWork()
        uow.register(repo)

        with pytest.raises(RuntimeError):
            with uow:
                repo.create(SalesOrder())
                raise RuntimeError("fail")

        assert repo.create(SalesOrder()).id == 1

    def test_nested_scope_rolls_back_with_outer(self) -> None:
        repo = QuotationRepository()
        uow = InMemoryUnitOfWork([repo])

        with pytest.raises(KeyError):
            with uow:
                with uow:
                    repo.create(Quotation())
                raise KeyError("outer")

        assert repo.count() == 0


class TestSessionUnitOfWork:
    def test_commits_on_success(self) -> None:
        session = MagicMock()

        with SessionUnitOfWork(session):
            pass

        session.commit.assert_called_once()
        session.rollback.assert_not_called()

    def test_rolls_back_on_error(self) -> None:
        session = MagicMock()

        with pytest.raises(RuntimeError):
            with SessionUnitOfWork(session):
                raise RuntimeError("constraint violated")

        session.rollback.assert_called_once()
        session.commit.assert_not_called()

    def test_failed_commit_rolls_back_and_raises(self) -> None:
        session = MagicMock()
        session.commit.side_effect = RuntimeError("lost connection")

        with pytest.raises(RuntimeError):
            with SessionUnitOfWork(session):
                pass

        session.rollback.assert_called_once()

    def test_only_outermost_scope_commits(self) -> None:
        session = MagicMock()
        uow = SessionUnitOfWork(session)

        with uow:
            with uow:
                pass
            session.commit.assert_not_called()

        session.commit.assert_called_once()


class TestDatabaseSetup:
    def test_in_memory_sqlite_session(self) -> None:
        settings = TestingSettings()
        engine = create_db_engine(settings)
        assert engine.url.drivername == "sqlite"

        session = create_session_factory(settings)()
        init_db(session.get_bind())
        try:
            with SessionUnitOfWork(session):
                pass
            assert "sales_documents" in inspect(session.get_bind()).get_table_names()
        finally:
            session.close()
