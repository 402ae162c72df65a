"""
Pure domain layer.

This module contains value objects and decision logic with NO
dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O (time comes from an injected Clock)
"""

from acge_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from acge_kernel.domain.dossier import (
    DOSSIER_WORKFLOW,
    EDITABLE_STATUSES,
    ActorContext,
    Dossier,
    DossierAction,
    DossierChanges,
    DossierDraft,
    DossierStatus,
    Role,
    normalize_status,
)
from acge_kernel.domain.effects import (
    InvalidateCacheEffect,
    NotifyEffect,
    TransitionOutcome,
)
from acge_kernel.domain.gates import GateCategory, GateCheck, GateEvaluation
from acge_kernel.domain.quitus import (
    Quitus,
    VerificationResult,
    compute_quitus_hash,
    verify_quitus_hash,
)
from acge_kernel.domain.synthesis import SynthesisStatus, SyntheseVerification

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "DOSSIER_WORKFLOW",
    "EDITABLE_STATUSES",
    "ActorContext",
    "Dossier",
    "DossierAction",
    "DossierChanges",
    "DossierDraft",
    "DossierStatus",
    "Role",
    "normalize_status",
    "InvalidateCacheEffect",
    "NotifyEffect",
    "TransitionOutcome",
    "GateCategory",
    "GateCheck",
    "GateEvaluation",
    "Quitus",
    "VerificationResult",
    "compute_quitus_hash",
    "verify_quitus_hash",
    "SynthesisStatus",
    "SyntheseVerification",
]
