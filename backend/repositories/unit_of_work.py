"""
Unit of work for multi-write workflow operations.

A conversion creates the derived document and updates its source; both
writes commit together or neither does.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from config.logging import get_logger

logger = get_logger("repositories")


class UnitOfWork(ABC):
    """Context manager: commit on clean exit, rollback when an exception escapes."""

    def __enter__(self) -> "UnitOfWork":
        self.begin()
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> bool:
        if exc_type is None:
            self.commit()
        else:
            logger.warning(f"Rolling back unit of work: {exc_value}")
            self.rollback()
        return False

    @abstractmethod
    def begin(self) -> None:
        """Start tracking changes"""

    @abstractmethod
    def commit(self) -> None:
        """Make the tracked changes permanent"""

    @abstractmethod
    def rollback(self) -> None:
        """Discard the tracked changes"""


class InMemoryUnitOfWork(UnitOfWork):
    """Snapshots every registered in-memory store and restores them on rollback."""

    def __init__(self, repositories: Optional[List[Any]] = None):
        self.repositories = list(repositories or [])
        self._snapshots: Optional[List[Dict[str, Any]]] = None
        self._depth = 0

    def register(self, repository: Any) -> None:
        self.repositories.append(repository)

    def begin(self) -> None:
        self._depth += 1
        if self._depth == 1:
            self._snapshots = [repo.snapshot() for repo in self.repositories]

    def commit(self) -> None:
        self._depth -= 1
        if self._depth == 0:
            self._snapshots = None

    def rollback(self) -> None:
        self._depth -= 1
        if self._depth == 0 and self._snapshots is not None:
            for repo, state in zip(self.repositories, self._snapshots):
                repo.restore(state)
            self._snapshots = None
