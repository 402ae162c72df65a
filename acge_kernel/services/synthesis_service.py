"""
SynthesisService -- authoring side of the ordonnateur verification synthesis.

Responsibility:
    Records field-level ordonnateur verifications and keeps the dossier's
    single synthesis row in step with them.  The transition engine only
    reads the synthesis (through SynthesisSelector); this service is the
    one writer.

Architecture position:
    Kernel > Services.

Invariants enforced:
    - One verification per (dossier, critere); re-recording replaces it.
    - The synthesis counts are recomputed from the verification rows on
      every write, and its statut follows ``derive_synthesis_status``.
    - Verifications may only be recorded while the dossier sits at the
      ordonnateur stage.
    - Recordings on one dossier are serialized by a FOR UPDATE lock on the
      dossier row, taken before the verification upsert and the recount.

Failure modes:
    - DossierNotFoundError, UnauthorizedActorError, PreconditionFailedError.
    - SynthesisIntegrityError if duplicate synthesis rows already exist.
"""

from uuid import UUID

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from acge_kernel.domain.clock import Clock
from acge_kernel.domain.dossier import ActorContext, DossierStatus, Role
from acge_kernel.domain.synthesis import (
    SyntheseVerification,
    derive_synthesis_status,
)
from acge_kernel.exceptions import (
    InvalidDossierFieldError,
    PreconditionFailedError,
    SynthesisIntegrityError,
)
from acge_kernel.logging_config import get_logger
from acge_kernel.models.synthese import (
    OrdonnateurVerificationModel,
    SyntheseVerificationModel,
)
from acge_kernel.selectors.synthesis_selector import SynthesisSelector
from acge_kernel.services.auditor_service import AuditorService
from acge_kernel.services.base import BaseService

logger = get_logger("services.synthesis")

VERIFICATION_ROLES = (Role.ORDONNATEUR, Role.ADMIN)

VERIFIABLE_STATUSES: tuple[DossierStatus, ...] = (
    DossierStatus.VALIDE_CB,
    DossierStatus.EN_ATTENTE_ORDONNANCEMENT,
    DossierStatus.VALIDE_ORDONNATEUR,
)


class SynthesisService(BaseService):
    """Writes ordonnateur verifications and maintains the synthesis row."""

    def __init__(
        self,
        session: Session,
        auditor: AuditorService,
        clock: Clock | None = None,
    ):
        super().__init__(session, clock)
        self._auditor = auditor
        self._selector = SynthesisSelector(session)

    def get_synthesis(self, dossier_id: UUID) -> SyntheseVerification | None:
        return self._selector.get_synthesis(dossier_id)

    def record_verification(
        self,
        actor: ActorContext,
        dossier_id: UUID,
        critere: str,
        valide: bool,
        commentaire: str | None = None,
    ) -> SyntheseVerification:
        """Record (or replace) one field verification and refresh the synthesis.

        Returns:
            The recomputed synthesis.
        """
        operation = "record_verification"
        self._require_role(actor, VERIFICATION_ROLES, operation)
        if not critere or not critere.strip():
            raise InvalidDossierFieldError("critere", "must not be empty")

        dossier = self._load_dossier_model(dossier_id, lock=True)
        current = dossier.status
        if current not in VERIFIABLE_STATUSES:
            raise PreconditionFailedError(
                dossier_id=str(dossier_id),
                operation=operation,
                current_status=current.value,
                allowed_statuses=tuple(s.value for s in VERIFIABLE_STATUSES),
            )

        now = self._clock.now()
        critere = critere.strip()
        verification = self.session.execute(
            select(OrdonnateurVerificationModel).where(
                OrdonnateurVerificationModel.dossier_id == dossier_id,
                OrdonnateurVerificationModel.critere == critere,
            )
        ).scalar_one_or_none()

        if verification is None:
            verification = OrdonnateurVerificationModel(
                dossier_id=dossier_id,
                critere=critere,
                valide=valide,
                commentaire=commentaire,
                verified_by=actor.user_id,
                verified_at=now,
            )
            self.session.add(verification)
        else:
            verification.valide = valide
            verification.commentaire = commentaire
            verification.verified_by = actor.user_id
            verification.verified_at = now
        self.session.flush()

        synthesis = self._recompute(dossier_id)

        self._auditor.record_verification(
            dossier_id=str(dossier_id),
            actor_id=actor.user_id,
            critere=critere,
            valide=valide,
            synthesis_status=synthesis.statut.value,
        )

        logger.info(
            "verification_recorded",
            extra={
                "dossier_id": str(dossier_id),
                "critere": critere,
                "valide": valide,
                "synthesis_status": synthesis.statut.value,
                "total_verifications": synthesis.total_verifications,
                "verifications_rejetees": synthesis.verifications_rejetees,
            },
        )
        return synthesis

    def _recompute(self, dossier_id: UUID) -> SyntheseVerification:
        model = OrdonnateurVerificationModel
        total, rejetees = self.session.execute(
            select(
                func.count(model.id),
                func.coalesce(func.sum(case((model.valide.is_(False), 1), else_=0)), 0),
            ).where(model.dossier_id == dossier_id)
        ).one()
        total = total or 0
        rejetees = rejetees or 0

        rows = self.session.execute(
            select(SyntheseVerificationModel)
            .where(SyntheseVerificationModel.dossier_id == dossier_id)
        ).scalars().all()
        if len(rows) > 1:
            raise SynthesisIntegrityError(str(dossier_id), len(rows))

        synthesis = rows[0] if rows else SyntheseVerificationModel(dossier_id=dossier_id)
        synthesis.total_verifications = total
        synthesis.verifications_rejetees = rejetees
        synthesis.verifications_validees = total - rejetees
        synthesis.statut = derive_synthesis_status(total, rejetees).value
        synthesis.updated_at = self._clock.now()
        if not rows:
            self.session.add(synthesis)
        self.session.flush()
        return synthesis.to_dto()
