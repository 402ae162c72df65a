"""
Kernel services.

Services own write-side behaviour: they receive a Session, flush, and
never commit.  Transaction boundaries belong to the caller.
"""

from acge_kernel.services.auditor_service import AuditorService, AuditTrace
from acge_kernel.services.dossier_workflow_service import (
    NUMBERING_DATED,
    NUMBERING_SEQUENTIAL,
    DossierWorkflowService,
)
from acge_kernel.services.gate_evaluator import (
    ValidationGateEvaluator,
    gate_evaluation_payload,
)
from acge_kernel.services.quitus_service import QuitusService
from acge_kernel.services.sequence_service import SequenceService
from acge_kernel.services.synthesis_service import SynthesisService

__all__ = [
    "AuditorService",
    "AuditTrace",
    "DossierWorkflowService",
    "NUMBERING_DATED",
    "NUMBERING_SEQUENTIAL",
    "QuitusService",
    "SequenceService",
    "SynthesisService",
    "ValidationGateEvaluator",
    "gate_evaluation_payload",
]
