"""
Module: acge_kernel.selectors.validation_selector
Responsibility: The two independent lookups behind the validation gate
    evaluator -- operation-type validations and fond-control validations
    of one dossier.
Architecture position: Kernel > Selectors.

Each lookup is a single aggregate query (count, latest created_at) run in
its own savepoint, so one failing store call leaves the other usable.
"""

from uuid import UUID

from sqlalchemy import case, func, select

from acge_kernel.domain.gates import GateCategory, GateCheck
from acge_kernel.models.validation import (
    ControleFondValidationModel,
    OperationTypeValidationModel,
)
from acge_kernel.selectors.base import BaseSelector


class ValidationSelector(BaseSelector):
    """Read access to gate evidence rows."""

    def operation_type_check(self, dossier_id: UUID) -> GateCheck:
        """Operation-type validations recorded for the dossier.

        Raises:
            InfrastructureError: If the store call fails.
        """
        model = OperationTypeValidationModel

        def query() -> GateCheck:
            count, last_created_at = self.session.execute(
                select(func.count(model.id), func.max(model.created_at))
                .where(model.dossier_id == dossier_id)
            ).one()
            return GateCheck(
                category=GateCategory.OPERATION_TYPE,
                record_count=count or 0,
                last_created_at=last_created_at,
            )

        return self._read("validations_cb_lookup", query)

    def controles_fond_check(self, dossier_id: UUID) -> GateCheck:
        """Fond-control validations recorded for the dossier.

        ``failed_records`` counts rows with ``valide`` false; it does not
        affect satisfaction of the gate.

        Raises:
            InfrastructureError: If the store call fails.
        """
        model = ControleFondValidationModel

        def query() -> GateCheck:
            count, last_created_at, failed = self.session.execute(
                select(
                    func.count(model.id),
                    func.max(model.created_at),
                    func.sum(case((model.valide.is_(False), 1), else_=0)),
                )
                .where(model.dossier_id == dossier_id)
            ).one()
            return GateCheck(
                category=GateCategory.CONTROLES_FOND,
                record_count=count or 0,
                last_created_at=last_created_at,
                failed_records=int(failed or 0),
            )

        return self._read("validations_controles_fond_lookup", query)
