"""
DossierWorkflowService -- the dossier status transition engine.

Responsibility:
    One dedicated method per workflow operation (create, update, submit,
    CB validate / reject, ordonnateur validate, final validate).  Each
    method checks the actor's role, loads the dossier, checks the statut
    precondition against ``DOSSIER_WORKFLOW``, re-evaluates the operation's
    gate, and commits a single conditional row update plus an audit event.
    Side effects are returned, never performed.

Architecture position:
    Kernel > Services -- imperative shell around the pure workflow
    definition in ``domain/dossier``.

Invariants enforced:
    - statut changes only along an edge declared in DOSSIER_WORKFLOW.
    - Gates are evaluated at call time, inside the transition.
    - Every write is ``UPDATE ... WHERE id AND statut AND row_version``;
      zero matched rows means someone else got there first and surfaces as
      PreconditionFailedError with ``concurrent_modification`` set.
    - Any failure raises before the dossier row is written, or leaves the
      caller's transaction to roll back: a transition is all-or-nothing.
    - A quitus is issued in the same transaction as the final validation.

Failure modes:
    - UnauthorizedActorError, DossierNotFoundError, PreconditionFailedError,
      GateNotSatisfiedError, MissingSynthesisError, DuplicateDossierNumberError,
      InvalidDossierFieldError, InfrastructureError.

Audit relevance:
    Every successful operation appends a hash-chained AuditEvent with the
    from/to statut.
"""

from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError as SQLAlchemyIntegrityError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from acge_kernel.domain.clock import Clock
from acge_kernel.domain.dossier import (
    CREATE_ROLES,
    DOSSIER_WORKFLOW,
    EDITABLE_FIELDS,
    SYNTHESIS_GATE,
    ActorContext,
    Dossier,
    DossierAction,
    DossierChanges,
    DossierDraft,
    DossierStatus,
    Role,
)
from acge_kernel.domain.effects import (
    Effect,
    InvalidateCacheEffect,
    NotifyEffect,
    TransitionOutcome,
)
from acge_kernel.domain.quitus import to_js_iso, to_json_number
from acge_kernel.domain.synthesis import synthesis_gate_reason
from acge_kernel.domain.workflow import Transition
from acge_kernel.exceptions import (
    DuplicateDossierNumberError,
    GateNotSatisfiedError,
    InfrastructureError,
    InvalidDossierFieldError,
    MissingSynthesisError,
    PreconditionFailedError,
    UnauthorizedActorError,
)
from acge_kernel.logging_config import LogContext, get_logger
from acge_kernel.models.audit_event import AuditAction
from acge_kernel.models.dossier import DossierModel
from acge_kernel.selectors.synthesis_selector import SynthesisSelector
from acge_kernel.services.auditor_service import AuditorService
from acge_kernel.services.base import BaseService
from acge_kernel.services.gate_evaluator import ValidationGateEvaluator
from acge_kernel.services.quitus_service import QuitusService
from acge_kernel.services.sequence_service import SequenceService

logger = get_logger("services.dossier_workflow")

NUMBERING_DATED = "dated"
NUMBERING_SEQUENTIAL = "sequential"

DOSSIER_FINALIZED_EVENT = "dossier_validated_definitively"

_REQUIRED_FIELDS = ("numero_nature", "objet_operation", "beneficiaire")

_AUDIT_ACTIONS: dict[DossierAction, AuditAction] = {
    DossierAction.UPDATE: AuditAction.DOSSIER_UPDATED,
    DossierAction.SUBMIT: AuditAction.DOSSIER_SUBMITTED,
    DossierAction.CB_VALIDATE: AuditAction.DOSSIER_CB_VALIDATED,
    DossierAction.CB_REJECT: AuditAction.DOSSIER_CB_REJECTED,
    DossierAction.ORDONNATEUR_VALIDATE: AuditAction.DOSSIER_ORDONNANCED,
    DossierAction.FINAL_VALIDATE: AuditAction.DOSSIER_FINALIZED,
}


def _clean_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _to_amount(field: str, value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise InvalidDossierFieldError(field, f"not a number: {value!r}") from None
    if not amount.is_finite() or amount < 0:
        raise InvalidDossierFieldError(field, "must be a non-negative amount")
    return amount


class DossierWorkflowService(BaseService):
    """Executes dossier workflow operations."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        auditor: AuditorService | None = None,
        gate_evaluator: ValidationGateEvaluator | None = None,
        quitus_service: QuitusService | None = None,
        base_url: str = "http://localhost:3000",
        numbering: str = NUMBERING_DATED,
    ):
        super().__init__(session, clock)
        self._auditor = auditor or AuditorService(session, self._clock)
        self._gates = gate_evaluator or ValidationGateEvaluator(session)
        self._synthesis = SynthesisSelector(session)
        self._quitus = quitus_service or QuitusService(
            session, self._auditor, base_url, clock=self._clock,
        )
        if numbering not in (NUMBERING_DATED, NUMBERING_SEQUENTIAL):
            raise ValueError(f"Unknown dossier numbering scheme: {numbering}")
        self._numbering = numbering

    # =====================================================================
    # Reads
    # =====================================================================

    def get_dossier(self, dossier_id: UUID) -> Dossier:
        """
        Raises:
            DossierNotFoundError: If the dossier does not exist.
            MalformedRowError: If the stored statut is outside the closed set.
        """
        return self._load_dossier_model(dossier_id).to_dto()

    # =====================================================================
    # Create / update
    # =====================================================================

    def _generate_numero(self, dossier_id: UUID, now: datetime) -> str:
        if self._numbering == NUMBERING_SEQUENTIAL:
            value = SequenceService(self.session).next_value(
                SequenceService.dossier_sequence(now.year)
            )
            return f"{now.year}{value:04d}"
        return f"DOSS-ACGE-{now.date().isoformat()}-{str(dossier_id)[:8]}"

    def _ensure_numero_available(self, numero: str, exclude_id: UUID | None = None) -> None:
        query = select(DossierModel.id).where(DossierModel.numero_dossier == numero)
        if exclude_id is not None:
            query = query.where(DossierModel.id != exclude_id)
        if self.session.execute(query).first() is not None:
            raise DuplicateDossierNumberError(numero)

    def create_dossier(self, actor: ActorContext, draft: DossierDraft) -> TransitionOutcome:
        """Create a dossier in BROUILLON, owned by the calling actor."""
        self._require_role(actor, CREATE_ROLES, DossierAction.CREATE.value)

        values = {name: _clean_text(getattr(draft, name)) for name in _REQUIRED_FIELDS}
        for name, value in values.items():
            if value is None:
                raise InvalidDossierFieldError(name, "is required")
        montant = _to_amount("montant", draft.montant)

        now = self._clock.now()
        dossier_id = uuid4()
        numero = _clean_text(draft.numero_dossier) or self._generate_numero(dossier_id, now)
        self._ensure_numero_available(numero)

        model = DossierModel(
            id=dossier_id,
            numero_dossier=numero,
            statut=DossierStatus.BROUILLON.value,
            montant=montant,
            poste_comptable_id=_clean_text(draft.poste_comptable_id),
            poste_comptable=_clean_text(draft.poste_comptable),
            nature_document_id=_clean_text(draft.nature_document_id),
            secretaire_id=actor.user_id,
            created_at=now,
            updated_at=now,
            row_version=1,
            **values,
        )
        try:
            with self.session.begin_nested():
                self.session.add(model)
        except SQLAlchemyIntegrityError:
            raise DuplicateDossierNumberError(numero) from None

        self._auditor.record_dossier_action(
            dossier_id=str(dossier_id),
            action=AuditAction.DOSSIER_CREATED,
            actor_id=actor.user_id,
            from_status=None,
            to_status=DossierStatus.BROUILLON.value,
            details={"numero_dossier": numero},
        )

        with LogContext.bind(dossier_id=str(dossier_id)):
            logger.info(
                "dossier_created",
                extra={"numero_dossier": numero, "actor_id": actor.user_id},
            )

        return TransitionOutcome(
            dossier=model.to_dto(),
            effects=(InvalidateCacheEffect(str(dossier_id), "secretaire"),),
        )

    def update_dossier(
        self,
        actor: ActorContext,
        dossier_id: UUID,
        changes: DossierChanges,
        expected_version: int | None = None,
    ) -> TransitionOutcome:
        """Edit fields of a dossier that is still editable.

        Only fields whose value actually changes are written.
        """
        action = DossierAction.UPDATE
        model, transition, current = self._begin(actor, dossier_id, action)

        unknown = set(changes.values) - EDITABLE_FIELDS
        if unknown:
            raise InvalidDossierFieldError(sorted(unknown)[0], "is not editable")

        values: dict[str, Any] = {}
        for name, raw in changes.values.items():
            if name == "montant":
                value = _to_amount(name, raw)
            else:
                value = _clean_text(raw)
            if value is None and (name in _REQUIRED_FIELDS or name == "numero_dossier"):
                raise InvalidDossierFieldError(name, "is required")
            if value != getattr(model, name):
                values[name] = value

        if "numero_dossier" in values:
            self._ensure_numero_available(values["numero_dossier"], exclude_id=model.id)

        values["updated_at"] = self._clock.now()
        return self._apply(
            actor, model, action, current, current, values, expected_version,
            details={"changed_fields": sorted(k for k in values if k != "updated_at")},
            scope=transition.cache_scope,
        )

    # =====================================================================
    # Transitions
    # =====================================================================

    def submit(
        self,
        actor: ActorContext,
        dossier_id: UUID,
        expected_version: int | None = None,
    ) -> TransitionOutcome:
        """BROUILLON -> EN_ATTENTE."""
        action = DossierAction.SUBMIT
        model, transition, current = self._begin(actor, dossier_id, action)
        target = DossierStatus(transition.target_for(current.value))
        return self._apply(
            actor, model, action, current, target,
            {"updated_at": self._clock.now()},
            expected_version,
            scope=transition.cache_scope,
        )

    def cb_validate(
        self,
        actor: ActorContext,
        dossier_id: UUID,
        expected_version: int | None = None,
    ) -> TransitionOutcome:
        """EN_ATTENTE -> VALIDÉ_CB, once both CB gates are satisfied."""
        action = DossierAction.CB_VALIDATE
        model, transition, current = self._begin(actor, dossier_id, action)

        evaluation = self._gates.evaluate_gates(model.id)
        if evaluation.has_errors:
            raise InfrastructureError(
                "gate_evaluation", "; ".join(evaluation.errors),
            )
        if not evaluation.can_validate:
            self._gate_failed(model, action, evaluation.missing_validations)

        now = self._clock.now()
        target = DossierStatus(transition.target_for(current.value))
        return self._apply(
            actor, model, action, current, target,
            {"updated_at": now, "validated_cb_at": now},
            expected_version,
            scope=transition.cache_scope,
        )

    def cb_reject(
        self,
        actor: ActorContext,
        dossier_id: UUID,
        reason: str,
        expected_version: int | None = None,
    ) -> TransitionOutcome:
        """EN_ATTENTE -> REJETÉ_CB with a mandatory reason."""
        action = DossierAction.CB_REJECT
        reason = _clean_text(reason)
        if reason is None:
            raise InvalidDossierFieldError("rejection_reason", "is required")
        model, transition, current = self._begin(actor, dossier_id, action)

        now = self._clock.now()
        target = DossierStatus(transition.target_for(current.value))
        return self._apply(
            actor, model, action, current, target,
            {"updated_at": now, "rejected_at": now, "rejection_reason": reason},
            expected_version,
            details={"reason": reason},
            scope=transition.cache_scope,
        )

    def ordonnateur_validate(
        self,
        actor: ActorContext,
        dossier_id: UUID,
        montant: Decimal | str | int | None = None,
        commentaire: str | None = None,
        expected_version: int | None = None,
    ) -> TransitionOutcome:
        """VALIDÉ_CB / EN_ATTENTE_ORDONNANCEMENT -> VALIDÉ_ORDONNATEUR.

        Requires a VALIDÉ synthesis.  ``montant`` is recorded as the
        ordonnanced amount; without one the amount is stored as null.
        """
        action = DossierAction.ORDONNATEUR_VALIDATE
        montant_ordonnance = _to_amount("montant_ordonnance", montant)
        model, transition, current = self._begin(actor, dossier_id, action)

        synthesis = self._synthesis.get_synthesis(model.id)
        if synthesis is None or not synthesis.is_validated:
            self._gate_failed(
                model, action, (SYNTHESIS_GATE.name,), synthesis_gate_reason(synthesis),
            )

        now = self._clock.now()
        values: dict[str, Any] = {
            "updated_at": now,
            "ordonnanced_at": now,
            "ordonnancement_comment": _clean_text(commentaire),
            "montant_ordonnance": montant_ordonnance,
        }
        target = DossierStatus(transition.target_for(current.value))
        return self._apply(
            actor, model, action, current, target, values, expected_version,
            scope=transition.cache_scope,
        )

    def final_validate(
        self,
        actor: ActorContext,
        dossier_id: UUID,
        commentaire: str | None = None,
        expected_version: int | None = None,
    ) -> TransitionOutcome:
        """VALIDÉ_ORDONNATEUR -> VALIDÉ_DÉFINITIVEMENT and issue the quitus.

        The synthesis is re-checked here even though the ordonnateur step
        already required it.
        """
        action = DossierAction.FINAL_VALIDATE
        model, transition, current = self._begin(actor, dossier_id, action)

        synthesis = self._synthesis.get_synthesis(model.id)
        if synthesis is None:
            logger.info(
                "transition_rejected",
                extra={
                    "dossier_id": str(model.id),
                    "operation": action.value,
                    "reason": "missing_synthesis",
                },
            )
            raise MissingSynthesisError(str(model.id), action.value)
        if not synthesis.is_validated:
            self._gate_failed(
                model, action, (SYNTHESIS_GATE.name,), synthesis_gate_reason(synthesis),
            )

        numero_quitus = self._quitus.next_number(model.numero_dossier)
        now = self._clock.now()
        comment = _clean_text(commentaire)
        target = DossierStatus(transition.target_for(current.value))
        outcome = self._apply(
            actor, model, action, current, target,
            {
                "updated_at": now,
                "validated_definitively_at": now,
                "validation_definitive_comment": comment,
            },
            expected_version,
            details={"numero_quitus": numero_quitus},
            scope=transition.cache_scope,
        )

        dossier = outcome.dossier
        quitus = self._quitus.generate_for_dossier(actor, dossier, numero_quitus)

        montant = (
            dossier.montant_ordonnance
            if dossier.montant_ordonnance is not None
            else dossier.montant
        )
        notification = NotifyEffect(
            event_type=DOSSIER_FINALIZED_EVENT,
            payload={
                "dossierId": str(dossier.id),
                "numeroDossier": dossier.numero_dossier,
                "objetOperation": dossier.objet_operation,
                "beneficiaire": dossier.beneficiaire,
                "posteComptable": dossier.poste_comptable,
                "montant": to_json_number(montant),
                "commentaire": comment,
                "validatedAt": to_js_iso(now),
            },
        )
        return TransitionOutcome(
            dossier=dossier,
            effects=(notification,) + outcome.effects,
            previous_status=outcome.previous_status,
            quitus_numero=quitus.numero_quitus,
        )

    # =====================================================================
    # Internals
    # =====================================================================

    def _begin(
        self,
        actor: ActorContext,
        dossier_id: UUID,
        action: DossierAction,
    ) -> tuple[DossierModel, Transition, DossierStatus]:
        """Role check, load, ownership check and statut precondition."""
        transition = DOSSIER_WORKFLOW.transition(action.value)
        self._require_role(actor, transition.allowed_roles, action.value)
        model = self._load_dossier_model(dossier_id)

        if (
            actor.role is Role.SECRETAIRE
            and model.secretaire_id
            and model.secretaire_id != actor.user_id
        ):
            raise UnauthorizedActorError(
                actor.user_id, actor.role.value, action.value,
                reason="dossier belongs to another secretary",
            )

        current = model.status
        if current.value not in transition.from_states:
            logger.info(
                "transition_rejected",
                extra={
                    "dossier_id": str(model.id),
                    "operation": action.value,
                    "current_status": current.value,
                    "reason": "precondition_failed",
                },
            )
            raise PreconditionFailedError(
                dossier_id=str(model.id),
                operation=action.value,
                current_status=current.value,
                allowed_statuses=transition.from_states,
            )
        return model, transition, current

    def _gate_failed(
        self,
        model: DossierModel,
        action: DossierAction,
        gates: tuple[str, ...],
        detail: str | None = None,
    ) -> None:
        logger.info(
            "transition_rejected",
            extra={
                "dossier_id": str(model.id),
                "operation": action.value,
                "reason": "gate_not_satisfied",
                "gates": list(gates),
                "detail": detail,
            },
        )
        raise GateNotSatisfiedError(str(model.id), action.value, tuple(gates), detail)

    def _conditional_update(
        self,
        model: DossierModel,
        action: DossierAction,
        values: dict[str, Any],
        expected_version: int | None,
    ) -> None:
        loaded_version = model.row_version if expected_version is None else expected_version
        try:
            result = self.session.execute(
                update(DossierModel)
                .where(
                    DossierModel.id == model.id,
                    DossierModel.statut == model.statut,
                    DossierModel.row_version == loaded_version,
                )
                .values(**values, row_version=loaded_version + 1)
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyIntegrityError:
            if "numero_dossier" in values:
                raise DuplicateDossierNumberError(values["numero_dossier"]) from None
            raise
        except SQLAlchemyError as exc:
            logger.error(
                "dossier_update_failed",
                extra={"dossier_id": str(model.id), "operation": action.value},
                exc_info=True,
            )
            raise InfrastructureError("dossier_update", type(exc).__name__) from exc

        if result.rowcount != 1:
            fresh = self._load_dossier_model(model.id)
            logger.warning(
                "concurrent_modification",
                extra={
                    "dossier_id": str(model.id),
                    "operation": action.value,
                    "expected_version": loaded_version,
                    "actual_version": fresh.row_version,
                    "current_status": fresh.statut,
                },
            )
            raise PreconditionFailedError(
                dossier_id=str(model.id),
                operation=action.value,
                current_status=fresh.status.value,
                concurrent_modification=True,
            )
        self.session.refresh(model)

    def _apply(
        self,
        actor: ActorContext,
        model: DossierModel,
        action: DossierAction,
        current: DossierStatus,
        target: DossierStatus,
        values: dict[str, Any],
        expected_version: int | None,
        scope: str,
        details: dict[str, Any] | None = None,
    ) -> TransitionOutcome:
        if target is not current or model.statut != target.value:
            values = {**values, "statut": target.value}

        self._conditional_update(model, action, values, expected_version)

        self._auditor.record_dossier_action(
            dossier_id=str(model.id),
            action=_AUDIT_ACTIONS[action],
            actor_id=actor.user_id,
            from_status=current.value,
            to_status=target.value,
            details=details,
        )

        with LogContext.bind(dossier_id=str(model.id)):
            logger.info(
                "dossier_transitioned",
                extra={
                    "operation": action.value,
                    "from_status": current.value,
                    "to_status": target.value,
                    "row_version": model.row_version,
                    "actor_id": actor.user_id,
                },
            )

        effects: tuple[Effect, ...] = (InvalidateCacheEffect(str(model.id), scope),)
        return TransitionOutcome(
            dossier=model.to_dto(),
            effects=effects,
            previous_status=current.value,
        )
