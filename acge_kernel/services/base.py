"""
BaseService -- common base for kernel services that write dossier state.

Responsibility:
    Provides the constructor and session contract shared by the workflow,
    synthesis and quitus services: they receive a SQLAlchemy ``Session``
    and use ``session.flush()`` -- never ``session.commit()``.  Also holds
    the dossier lookup and role check every operation starts with.

Invariants enforced:
    - Transaction boundaries: services flush within the caller's
      transaction and never commit or roll back themselves.  The caller
      (``session_scope()``, the API request scope, or a test) owns
      commit/rollback, which makes each transition all-or-nothing.
"""

from abc import ABC
from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from acge_kernel.domain.clock import Clock, SystemClock
from acge_kernel.domain.dossier import ActorContext, Role
from acge_kernel.exceptions import (
    DossierNotFoundError,
    InfrastructureError,
    UnauthorizedActorError,
)
from acge_kernel.logging_config import get_logger
from acge_kernel.models.dossier import DossierModel

logger = get_logger("services.base")


class BaseService(ABC):
    """
    Abstract base class for writing kernel services.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self._clock = clock or SystemClock()

    def _load_dossier_model(self, dossier_id: UUID, lock: bool = False) -> DossierModel:
        """Load the dossier row, bypassing any stale identity-map copy.

        With ``lock`` the row is read FOR UPDATE and held until the caller's
        transaction ends.

        Raises:
            DossierNotFoundError: If no row has this id.
            InfrastructureError: If the store call fails.
        """
        stmt = (
            select(DossierModel)
            .where(DossierModel.id == dossier_id)
            .execution_options(populate_existing=True)
        )
        if lock:
            stmt = stmt.with_for_update()
        try:
            model = self.session.execute(stmt).scalar_one_or_none()
        except SQLAlchemyError as exc:
            logger.error(
                "dossier_load_failed",
                extra={"dossier_id": str(dossier_id)},
                exc_info=True,
            )
            raise InfrastructureError("dossier_load", type(exc).__name__) from exc

        if model is None:
            raise DossierNotFoundError(str(dossier_id))
        return model

    @staticmethod
    def _require_role(
        actor: ActorContext,
        allowed_roles: Iterable[str | Role],
        operation: str,
    ) -> None:
        """Raise UnauthorizedActorError unless the actor's role is allowed."""
        allowed = {Role(r) for r in allowed_roles}
        if actor.role not in allowed:
            logger.warning(
                "actor_unauthorized",
                extra={
                    "actor_id": actor.user_id,
                    "role": actor.role.value,
                    "operation": operation,
                },
            )
            raise UnauthorizedActorError(actor.user_id, actor.role.value, operation)
