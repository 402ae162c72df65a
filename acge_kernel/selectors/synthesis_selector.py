"""
Module: acge_kernel.selectors.synthesis_selector
Responsibility: Read contract of the synthesis aggregator -- the single
    ordonnateur verification synthesis of a dossier.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Zero rows -> None.  More than one row is a data-integrity anomaly and
      raises SynthesisIntegrityError; no row is silently picked.
"""

from uuid import UUID

from sqlalchemy import select

from acge_kernel.domain.synthesis import FieldVerification, SyntheseVerification
from acge_kernel.exceptions import SynthesisIntegrityError
from acge_kernel.logging_config import get_logger
from acge_kernel.models.synthese import (
    OrdonnateurVerificationModel,
    SyntheseVerificationModel,
)
from acge_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.synthesis")


class SynthesisSelector(BaseSelector):
    """Read access to ordonnateur syntheses and their constituent checks."""

    def get_synthesis(self, dossier_id: UUID) -> SyntheseVerification | None:
        """The dossier's synthesis, or None when verification has not started.

        Raises:
            SynthesisIntegrityError: If more than one row exists.
            MalformedRowError: If the stored statut is outside the set.
            InfrastructureError: If the store call fails.
        """
        rows = self._read(
            "synthese_lookup",
            lambda: self.session.execute(
                select(SyntheseVerificationModel)
                .where(SyntheseVerificationModel.dossier_id == dossier_id)
            ).scalars().all(),
        )

        if not rows:
            return None
        if len(rows) > 1:
            logger.error(
                "synthesis_integrity_violation",
                extra={"dossier_id": str(dossier_id), "row_count": len(rows)},
            )
            raise SynthesisIntegrityError(str(dossier_id), len(rows))
        return rows[0].to_dto()

    def list_verifications(self, dossier_id: UUID) -> list[FieldVerification]:
        """Field verifications of the dossier, ordered by critere."""
        rows = self._read(
            "verifications_ordonnateur_lookup",
            lambda: self.session.execute(
                select(OrdonnateurVerificationModel)
                .where(OrdonnateurVerificationModel.dossier_id == dossier_id)
                .order_by(OrdonnateurVerificationModel.critere)
            ).scalars().all(),
        )
        return [row.to_dto() for row in rows]
