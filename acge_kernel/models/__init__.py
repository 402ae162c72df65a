"""ORM models for the ACGE kernel."""

from acge_kernel.models.audit_event import AuditAction, AuditEvent
from acge_kernel.models.dossier import DossierModel
from acge_kernel.models.quitus import QuitusModel, QuitusVerificationModel
from acge_kernel.models.sequence import SequenceCounter
from acge_kernel.models.synthese import (
    OrdonnateurVerificationModel,
    SyntheseVerificationModel,
)
from acge_kernel.models.validation import (
    ControleFondValidationModel,
    OperationTypeValidationModel,
)

__all__ = [
    "AuditAction",
    "AuditEvent",
    "DossierModel",
    "QuitusModel",
    "QuitusVerificationModel",
    "SequenceCounter",
    "OrdonnateurVerificationModel",
    "SyntheseVerificationModel",
    "ControleFondValidationModel",
    "OperationTypeValidationModel",
]
