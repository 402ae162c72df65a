"""
QuitusService -- issue, store and publicly verify quitus certificates.

Responsibility:
    Builds the canonical contenu of a definitively validated dossier, seals
    it with ``compute_quitus_hash``, renders the QR verification artifact
    and persists the immutable quitus row.  On the public side it
    re-verifies a presented hash and durably logs every attempt.

Architecture position:
    Kernel > Services.  Called by DossierWorkflowService at the terminal
    transition and by the public verify endpoint.

Invariants enforced:
    - At most one quitus per dossier; generating again returns the stored
      one unchanged.
    - Quitus numbers issued by one service instance carry strictly
      increasing epoch milliseconds, so two calls never collide even within
      the same millisecond.
    - Every verification attempt on an existing quitus is logged,
      AUTHENTIQUE or NON_AUTHENTIQUE, before the answer is returned.

Failure modes:
    - QuitusNotFoundError for an unknown number.
    - IntegrityMismatchError from ``check_integrity``.
    - InfrastructureError when the store fails.
"""

import random
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from acge_kernel.domain.clock import Clock
from acge_kernel.domain.dossier import ActorContext, Dossier
from acge_kernel.domain.quitus import (
    QUITUS_STATUT_GENERE,
    WATERMARK_ORIGINAL,
    Quitus,
    QuitusVerificationOutcome,
    QuitusVerificationRecord,
    VerificationResult,
    compute_quitus_hash,
    generate_quitus_number,
    to_js_iso,
    to_json_number,
    verify_quitus_hash,
)
from acge_kernel.exceptions import (
    InfrastructureError,
    IntegrityMismatchError,
    QuitusNotFoundError,
)
from acge_kernel.logging_config import LogContext, get_logger
from acge_kernel.models.quitus import QuitusModel, QuitusVerificationModel
from acge_kernel.selectors.synthesis_selector import SynthesisSelector
from acge_kernel.selectors.validation_selector import ValidationSelector
from acge_kernel.services.auditor_service import AuditorService
from acge_kernel.services.base import BaseService
from acge_kernel.utils.verification_artifact import generate_verification_artifact

logger = get_logger("services.quitus")

UNKNOWN_CLIENT = "unknown"
RECOMMANDATION_CONFORME = (
    "Toutes les vérifications sont conformes. Le dossier peut être traité."
)
RECOMMANDATION_NON_CONFORME = (
    "Des incohérences ont été détectées et doivent être résolues."
)


class QuitusService(BaseService):
    """Issues and verifies quitus certificates."""

    def __init__(
        self,
        session: Session,
        auditor: AuditorService,
        base_url: str,
        clock: Clock | None = None,
        rng: random.Random | None = None,
    ):
        super().__init__(session, clock)
        self._auditor = auditor
        self._base_url = base_url
        self._rng = rng
        self._last_millis = 0
        self._synthesis = SynthesisSelector(session)
        self._validations = ValidationSelector(session)

    # Numbering

    def next_number(self, numero_dossier: str) -> str:
        """A fresh ``QUITUS-<numero>-<year>-<rrr>-<millis>`` number."""
        now = self._clock.now()
        millis = self._clock.now_millis()
        if millis <= self._last_millis:
            millis = self._last_millis + 1
        self._last_millis = millis
        return generate_quitus_number(numero_dossier, now, millis, self._rng)

    # Lookup

    def _find_model(self, **criteria: Any) -> QuitusModel | None:
        try:
            return self.session.execute(
                select(QuitusModel).filter_by(**criteria)
            ).scalar_one_or_none()
        except SQLAlchemyError as exc:
            logger.error("quitus_lookup_failed", extra=criteria, exc_info=True)
            raise InfrastructureError("quitus_lookup", type(exc).__name__) from exc

    def get_quitus(self, numero_quitus: str) -> Quitus:
        """
        Raises:
            QuitusNotFoundError: If no quitus carries this number.
        """
        model = self._find_model(id=numero_quitus)
        if model is None:
            raise QuitusNotFoundError(numero_quitus)
        return model.to_dto()

    def get_quitus_for_dossier(self, dossier_id: UUID) -> Quitus | None:
        model = self._find_model(dossier_id=dossier_id)
        return model.to_dto() if model is not None else None

    # Issue

    def build_contenu(self, dossier: Dossier, numero_quitus: str) -> dict[str, Any]:
        """Canonical snapshot of the dossier outcome, before sealing."""
        synthesis = self._synthesis.get_synthesis(dossier.id)
        fond = self._validations.controles_fond_check(dossier.id)
        conforme = bool(synthesis is not None and synthesis.is_validated and fond.all_valid)

        ordonnateur: dict[str, Any] = {
            "total": synthesis.total_verifications if synthesis else 0,
            "valides": synthesis.verifications_validees if synthesis else 0,
            "rejetes": synthesis.verifications_rejetees if synthesis else 0,
            "statut": synthesis.statut.value if synthesis else None,
        }

        return {
            "numeroQuitus": numero_quitus,
            "dateGeneration": to_js_iso(self._clock.now()),
            "dossier": {
                "numero": dossier.numero_dossier,
                "objet": dossier.objet_operation,
                "beneficiaire": dossier.beneficiaire,
                "posteComptable": dossier.poste_comptable or "Non défini",
                "montantOrdonnance": to_json_number(dossier.montant_ordonnance),
            },
            "historique": {
                "creation": {
                    "date": to_js_iso(dossier.created_at),
                    "par": dossier.secretaire_id,
                },
                "validationCB": {
                    "date": to_js_iso(dossier.validated_cb_at),
                    "statut": "VALIDÉ_CB",
                },
                "ordonnancement": {
                    "date": to_js_iso(dossier.ordonnanced_at),
                    "commentaire": dossier.ordonnancement_comment,
                    "montant": to_json_number(dossier.montant_ordonnance) or 0,
                },
                "validationDefinitive": {
                    "date": to_js_iso(dossier.validated_definitively_at),
                    "commentaire": dossier.validation_definitive_comment,
                },
            },
            "verifications": {
                "ordonnateur": ordonnateur,
                "controlesFond": {
                    "total": fond.record_count,
                    "valides": fond.record_count - fond.failed_records,
                    "rejetes": fond.failed_records,
                },
            },
            "conclusion": {
                "conforme": conforme,
                "recommandations": (
                    RECOMMANDATION_CONFORME if conforme else RECOMMANDATION_NON_CONFORME
                ),
            },
        }

    def generate_for_dossier(
        self,
        actor: ActorContext,
        dossier: Dossier,
        numero_quitus: str | None = None,
    ) -> Quitus:
        """Issue the quitus of a definitively validated dossier.

        Idempotent: an existing quitus for the dossier is returned as is.
        """
        existing = self.get_quitus_for_dossier(dossier.id)
        if existing is not None:
            logger.info(
                "quitus_already_issued",
                extra={
                    "dossier_id": str(dossier.id),
                    "numero_quitus": existing.numero_quitus,
                },
            )
            return existing

        numero = numero_quitus or self.next_number(dossier.numero_dossier)
        contenu = self.build_contenu(dossier, numero)
        quitus_hash = compute_quitus_hash(contenu)
        qr_code = generate_verification_artifact(numero, quitus_hash, self._base_url)
        contenu["securite"] = {
            "hash": quitus_hash,
            "watermark": WATERMARK_ORIGINAL,
            "dateGeneration": contenu["dateGeneration"],
        }

        model = QuitusModel(
            id=numero,
            dossier_id=dossier.id,
            contenu=contenu,
            hash=quitus_hash,
            qr_code=qr_code,
            statut=QUITUS_STATUT_GENERE,
            genere_le=self._clock.now(),
        )
        self.session.add(model)
        self.session.flush()

        self._auditor.record_quitus_issued(
            numero_quitus=numero,
            dossier_id=str(dossier.id),
            actor_id=actor.user_id,
            quitus_hash=quitus_hash,
        )

        with LogContext.bind(quitus_id=numero):
            logger.info(
                "quitus_issued",
                extra={
                    "dossier_id": str(dossier.id),
                    "numero_dossier": dossier.numero_dossier,
                    "hash": quitus_hash,
                    "conforme": contenu["conclusion"]["conforme"],
                },
            )
        return model.to_dto()

    # Verification

    def check_integrity(self, numero_quitus: str, provided_hash: str | None = None) -> Quitus:
        """Re-verify a stored quitus against its own or a presented hash.

        Raises:
            QuitusNotFoundError: If the number is unknown.
            IntegrityMismatchError: If the fingerprint does not match.
        """
        quitus = self.get_quitus(numero_quitus)
        if provided_hash is None:
            expected, matches = quitus.hash, quitus.verification_hash_matches
        else:
            expected, matches = provided_hash, verify_quitus_hash(quitus.contenu, provided_hash)
        if not matches:
            computed = compute_quitus_hash(quitus.contenu)
            logger.warning(
                "quitus_integrity_mismatch",
                extra={
                    "numero_quitus": numero_quitus,
                    "expected_hash": expected,
                    "computed_hash": computed,
                },
            )
            raise IntegrityMismatchError(numero_quitus, expected, computed)
        return quitus

    def verify_public(
        self,
        numero_quitus: str,
        provided_hash: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> QuitusVerificationOutcome:
        """Verify a presented hash and log the attempt.

        A mismatch is not an exception here: the attempt is logged as
        NON_AUTHENTIQUE and reported through the returned outcome.

        Raises:
            QuitusNotFoundError: If the number is unknown (nothing is logged).
            InfrastructureError: If the store fails.
        """
        quitus = self.get_quitus(numero_quitus)
        resultat = (
            VerificationResult.AUTHENTIQUE
            if verify_quitus_hash(quitus.contenu, provided_hash)
            else VerificationResult.NON_AUTHENTIQUE
        )

        row = QuitusVerificationModel(
            quitus_id=numero_quitus,
            verifie_le=self._clock.now(),
            resultat=resultat.value,
            ip_address=ip_address or UNKNOWN_CLIENT,
            user_agent=user_agent or UNKNOWN_CLIENT,
        )
        try:
            self.session.add(row)
            self.session.flush()
        except SQLAlchemyError as exc:
            logger.error(
                "quitus_verification_log_failed",
                extra={"numero_quitus": numero_quitus},
                exc_info=True,
            )
            raise InfrastructureError("quitus_verification_log", type(exc).__name__) from exc

        log = logger.info if resultat is VerificationResult.AUTHENTIQUE else logger.warning
        log(
            "quitus_verified",
            extra={
                "numero_quitus": numero_quitus,
                "resultat": resultat.value,
                "ip_address": row.ip_address,
            },
        )
        return QuitusVerificationOutcome(quitus=quitus, record=row.to_dto())

    def list_verifications(self, numero_quitus: str) -> list[QuitusVerificationRecord]:
        """Logged verification attempts of a quitus, oldest first."""
        rows = self.session.execute(
            select(QuitusVerificationModel)
            .where(QuitusVerificationModel.quitus_id == numero_quitus)
            .order_by(QuitusVerificationModel.verifie_le, QuitusVerificationModel.id)
        ).scalars().all()
        return [row.to_dto() for row in rows]
