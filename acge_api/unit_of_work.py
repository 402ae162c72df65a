"""
Request-scoped unit of work.

Opens one session per request, wires the kernel services onto it and
commits on success or rolls back on any exception.  Handlers schedule
transition effects only after the ``with`` block has exited, so effects
never run for a transaction that did not commit.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from sqlalchemy.orm import Session, sessionmaker

from acge_kernel.domain.clock import Clock, SystemClock
from acge_kernel.logging_config import get_logger
from acge_kernel.services.auditor_service import AuditorService
from acge_kernel.services.dossier_workflow_service import DossierWorkflowService
from acge_kernel.services.gate_evaluator import ValidationGateEvaluator
from acge_kernel.services.quitus_service import QuitusService
from acge_kernel.services.synthesis_service import SynthesisService

logger = get_logger("api.unit_of_work")


@dataclass(frozen=True)
class KernelServices:
    session: Session
    auditor: AuditorService
    gates: ValidationGateEvaluator
    synthesis: SynthesisService
    quitus: QuitusService
    workflow: DossierWorkflowService


class UnitOfWorkFactory:
    """Builds a fresh set of kernel services per request."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        public_base_url: str,
        numbering: str,
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._public_base_url = public_base_url
        self._numbering = numbering
        self._clock = clock or SystemClock()

    def _build(self, session: Session) -> KernelServices:
        auditor = AuditorService(session, self._clock)
        gates = ValidationGateEvaluator(session)
        quitus = QuitusService(session, auditor, self._public_base_url, clock=self._clock)
        return KernelServices(
            session=session,
            auditor=auditor,
            gates=gates,
            synthesis=SynthesisService(session, auditor, clock=self._clock),
            quitus=quitus,
            workflow=DossierWorkflowService(
                session,
                clock=self._clock,
                auditor=auditor,
                gate_evaluator=gates,
                quitus_service=quitus,
                numbering=self._numbering,
            ),
        )

    @contextmanager
    def __call__(self) -> Iterator[KernelServices]:
        session = self._session_factory()
        try:
            yield self._build(session)
            session.commit()
        except Exception:
            session.rollback()
            logger.debug("request_rolled_back")
            raise
        finally:
            session.close()
