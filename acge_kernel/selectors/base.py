"""
Module: acge_kernel.selectors.base
Responsibility: Base class for read-only query selectors.
Architecture position: Kernel > Selectors.  May import from db/, models/
    and domain/ value objects.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Read-only access: selectors never add, delete, flush or commit.
    - DTO return convention: selectors return frozen dataclasses, not ORM
      instances.
    - Store failures are raised as InfrastructureError, never swallowed.
"""

from abc import ABC
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from acge_kernel.exceptions import InfrastructureError
from acge_kernel.logging_config import get_logger

logger = get_logger("selectors")

T = TypeVar("T")


class BaseSelector(ABC):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session from the caller, perform read-only queries,
        and return DTOs or computed results.
    """

    def __init__(self, session: Session):
        self.session = session

    @contextmanager
    def _isolated_read(self, operation: str) -> Iterator[None]:
        """Run a read inside a savepoint and translate store failures.

        The savepoint keeps an aborted query from poisoning the caller's
        transaction, so a second independent read can still run.
        """
        try:
            with self.session.begin_nested():
                yield
        except SQLAlchemyError as exc:
            logger.error(
                "selector_query_failed",
                extra={"operation": operation},
                exc_info=True,
            )
            raise InfrastructureError(operation, type(exc).__name__) from exc

    def _read(self, operation: str, query: Callable[[], T]) -> T:
        with self._isolated_read(operation):
            return query()
