"""Dossier workflow routes.

Every mutating route runs the kernel operation inside one unit of work and
schedules the returned effects as a background task once it has committed.
The optional ``If-Match`` header carries the ``rowVersion`` the client
last saw; a stale value is answered with 409.
"""

from collections.abc import Callable
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Request

from acge_api.identity import require_actor
from acge_api.schemas import (
    CreateDossierRequest,
    DossierResponse,
    OrdonnanceRequest,
    QuitusResponse,
    RejectRequest,
    SynthesisResponse,
    TransitionResponse,
    UpdateDossierRequest,
    ValidationDefinitiveRequest,
    VerificationRequest,
)
from acge_kernel.domain.dossier import ActorContext, DossierChanges, DossierDraft
from acge_kernel.domain.effects import TransitionOutcome
from acge_kernel.exceptions import QuitusNotFoundError
from acge_kernel.logging_config import LogContext
from acge_kernel.services.dossier_workflow_service import DossierWorkflowService
from acge_kernel.services.gate_evaluator import gate_evaluation_payload

dossier_router = APIRouter(prefix="/api/dossiers", tags=["Dossiers"])


def expected_version(
    if_match: str | None = Header(default=None, alias="If-Match"),
) -> int | None:
    """Parse ``If-Match: "<rowVersion>"`` (weak tags accepted)."""
    if if_match is None or not if_match.strip():
        return None
    value = if_match.strip()
    if value.startswith("W/"):
        value = value[2:]
    try:
        return int(value.strip('"'))
    except ValueError:
        raise HTTPException(
            status_code=400,
            detail="If-Match doit contenir la rowVersion du dossier",
        ) from None


def _run_transition(
    request: Request,
    background_tasks: BackgroundTasks,
    dossier_id: UUID | None,
    message: str,
    operation: Callable[[DossierWorkflowService], TransitionOutcome],
) -> TransitionResponse:
    if dossier_id is not None:
        LogContext.set(dossier_id=str(dossier_id))
    with request.app.state.unit_of_work() as kernel:
        outcome = operation(kernel.workflow)
    background_tasks.add_task(request.app.state.dispatcher.dispatch, outcome.effects)
    return TransitionResponse(
        message=message,
        dossier=DossierResponse.model_validate(outcome.dossier),
        previous_status=outcome.previous_status,
        quitus_numero=outcome.quitus_numero,
    )


@dossier_router.post("", response_model=TransitionResponse, status_code=201)
def create_dossier(
    body: CreateDossierRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    actor: ActorContext = Depends(require_actor),
) -> TransitionResponse:
    """Create a dossier.  It always starts in BROUILLON."""
    draft = DossierDraft(**body.model_dump())
    return _run_transition(
        request, background_tasks, None, "Dossier créé",
        lambda workflow: workflow.create_dossier(actor, draft),
    )


@dossier_router.get("/{dossier_id}", response_model=DossierResponse)
def get_dossier(
    dossier_id: UUID,
    request: Request,
    actor: ActorContext = Depends(require_actor),
) -> DossierResponse:
    with request.app.state.unit_of_work() as kernel:
        dossier = kernel.workflow.get_dossier(dossier_id)
    return DossierResponse.model_validate(dossier)


@dossier_router.put("/{dossier_id}/update", response_model=TransitionResponse)
def update_dossier(
    dossier_id: UUID,
    body: UpdateDossierRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    actor: ActorContext = Depends(require_actor),
    version: int | None = Depends(expected_version),
) -> TransitionResponse:
    """Edit fields.  Only fields present in the body are considered."""
    changes = DossierChanges(values=body.model_dump(exclude_unset=True))
    return _run_transition(
        request, background_tasks, dossier_id, "Dossier mis à jour",
        lambda workflow: workflow.update_dossier(actor, dossier_id, changes, version),
    )


@dossier_router.post("/{dossier_id}/submit", response_model=TransitionResponse)
def submit_dossier(
    dossier_id: UUID,
    request: Request,
    background_tasks: BackgroundTasks,
    actor: ActorContext = Depends(require_actor),
    version: int | None = Depends(expected_version),
) -> TransitionResponse:
    return _run_transition(
        request, background_tasks, dossier_id, "Dossier soumis",
        lambda workflow: workflow.submit(actor, dossier_id, version),
    )


@dossier_router.get("/{dossier_id}/validation-status")
def validation_status(
    dossier_id: UUID,
    request: Request,
    actor: ActorContext = Depends(require_actor),
) -> dict:
    """Combined gate view, computed by the same evaluator as CB validation."""
    LogContext.set(dossier_id=str(dossier_id))
    with request.app.state.unit_of_work() as kernel:
        kernel.workflow.get_dossier(dossier_id)
        evaluation = kernel.gates.evaluate_gates(dossier_id)
    return {"success": True, **gate_evaluation_payload(evaluation)}


@dossier_router.put("/{dossier_id}/validate", response_model=TransitionResponse)
def cb_validate(
    dossier_id: UUID,
    request: Request,
    background_tasks: BackgroundTasks,
    actor: ActorContext = Depends(require_actor),
    version: int | None = Depends(expected_version),
) -> TransitionResponse:
    return _run_transition(
        request, background_tasks, dossier_id, "Dossier validé par le CB",
        lambda workflow: workflow.cb_validate(actor, dossier_id, version),
    )


@dossier_router.put("/{dossier_id}/reject", response_model=TransitionResponse)
def cb_reject(
    dossier_id: UUID,
    body: RejectRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    actor: ActorContext = Depends(require_actor),
    version: int | None = Depends(expected_version),
) -> TransitionResponse:
    return _run_transition(
        request, background_tasks, dossier_id, "Dossier rejeté par le CB",
        lambda workflow: workflow.cb_reject(actor, dossier_id, body.reason, version),
    )


@dossier_router.put("/{dossier_id}/ordonnance", response_model=TransitionResponse)
def ordonnance(
    dossier_id: UUID,
    body: OrdonnanceRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    actor: ActorContext = Depends(require_actor),
    version: int | None = Depends(expected_version),
) -> TransitionResponse:
    return _run_transition(
        request, background_tasks, dossier_id, "Dossier ordonnancé",
        lambda workflow: workflow.ordonnateur_validate(
            actor, dossier_id, body.montant, body.commentaire, version,
        ),
    )


@dossier_router.put("/{dossier_id}/validation-definitive", response_model=TransitionResponse)
def validation_definitive(
    dossier_id: UUID,
    body: ValidationDefinitiveRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    actor: ActorContext = Depends(require_actor),
    version: int | None = Depends(expected_version),
) -> TransitionResponse:
    """Final validation by the Agent Comptable; issues the quitus."""
    return _run_transition(
        request, background_tasks, dossier_id, "Dossier validé définitivement",
        lambda workflow: workflow.final_validate(
            actor, dossier_id, body.commentaire, version,
        ),
    )


@dossier_router.post(
    "/{dossier_id}/verifications-ordonnateur",
    response_model=SynthesisResponse,
)
def record_verification(
    dossier_id: UUID,
    body: VerificationRequest,
    request: Request,
    actor: ActorContext = Depends(require_actor),
) -> SynthesisResponse:
    """Record one ordonnateur field verification; returns the new synthesis."""
    LogContext.set(dossier_id=str(dossier_id))
    with request.app.state.unit_of_work() as kernel:
        synthesis = kernel.synthesis.record_verification(
            actor, dossier_id, body.critere, body.valide, body.commentaire,
        )
    return SynthesisResponse.model_validate(synthesis)


@dossier_router.get("/{dossier_id}/quitus", response_model=QuitusResponse)
def get_dossier_quitus(
    dossier_id: UUID,
    request: Request,
    actor: ActorContext = Depends(require_actor),
) -> QuitusResponse:
    with request.app.state.unit_of_work() as kernel:
        dossier = kernel.workflow.get_dossier(dossier_id)
        quitus = kernel.quitus.get_quitus_for_dossier(dossier.id)
    if quitus is None:
        raise QuitusNotFoundError(f"dossier {dossier.numero_dossier}")
    return QuitusResponse.model_validate(quitus)
