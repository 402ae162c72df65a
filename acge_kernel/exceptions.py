"""
Typed Exception Hierarchy for the ACGE Kernel.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from AcgeKernelError:

    AcgeKernelError (base)
    |
    +-- NotFoundError
    |   +-- DossierNotFoundError
    |   +-- QuitusNotFoundError
    |
    +-- WorkflowError
    |   +-- PreconditionFailedError
    |   +-- GateNotSatisfiedError
    |   +-- MissingSynthesisError
    |   +-- UnauthorizedActorError
    |
    +-- DossierError
    |   +-- DuplicateDossierNumberError
    |   +-- InvalidDossierFieldError
    |
    +-- IntegrityError
    |   +-- IntegrityMismatchError
    |   +-- SynthesisIntegrityError
    |   +-- AuditChainBrokenError
    |   +-- MalformedRowError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- InfrastructureError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Not found       | DOSSIER_NOT_FOUND           | Dossier ID doesn't exist
                | QUITUS_NOT_FOUND            | Quitus number doesn't exist
----------------|-----------------------------|-----------------------------------------
Workflow        | PRECONDITION_FAILED         | Current statut forbids the operation,
                |                             | or the row changed underneath us
                | GATE_NOT_SATISFIED          | Named gate(s) unmet
                | MISSING_SYNTHESIS           | No synthesis row for the dossier
                | UNAUTHORIZED_ACTOR          | Role may not perform the operation
----------------|-----------------------------|-----------------------------------------
Dossier         | DUPLICATE_DOSSIER_NUMBER    | numeroDossier already taken
                | INVALID_DOSSIER_FIELD       | Required field missing or malformed
----------------|-----------------------------|-----------------------------------------
Integrity       | INTEGRITY_MISMATCH          | Quitus hash does not match contenu
                | SYNTHESIS_INTEGRITY         | More than one synthesis row
                | AUDIT_CHAIN_BROKEN          | Audit hash chain validation failed
                | MALFORMED_ROW               | Stored row fails boundary validation
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Finalised dossier / quitus modified
----------------|-----------------------------|-----------------------------------------
Infrastructure  | INFRASTRUCTURE_ERROR        | Store unreachable or errored

===============================================================================
HANDLING
===============================================================================

   - WorkflowError / DossierError -> report to caller with structured detail
   - NotFoundError -> 404
   - InfrastructureError -> generic message to caller, full detail in logs
   - IntegrityError / ImmutabilityError -> never retried, alert
"""


class AcgeKernelError(Exception):
    """
    Base exception for all ACGE kernel errors.

    All subclasses must have a `code` class attribute for
    machine-readable error identification.
    """

    code: str = "ACGE_KERNEL_ERROR"


# Lookup failures


class NotFoundError(AcgeKernelError):
    """Base exception for missing entities."""

    code: str = "NOT_FOUND"


class DossierNotFoundError(NotFoundError):
    """Dossier with given ID was not found."""

    code: str = "DOSSIER_NOT_FOUND"

    def __init__(self, dossier_id: str):
        self.dossier_id = dossier_id
        super().__init__(f"Dossier not found: {dossier_id}")


class QuitusNotFoundError(NotFoundError):
    """Quitus with given number was not found."""

    code: str = "QUITUS_NOT_FOUND"

    def __init__(self, numero_quitus: str):
        self.numero_quitus = numero_quitus
        super().__init__(f"Quitus not found: {numero_quitus}")


# Workflow exceptions


class WorkflowError(AcgeKernelError):
    """Base exception for rejected workflow operations."""

    code: str = "WORKFLOW_ERROR"


class PreconditionFailedError(WorkflowError):
    """
    The dossier statut does not permit the requested operation.

    Also raised when the conditional update matched no row because another
    request changed the dossier between our read and our write
    (``concurrent_modification`` is then True).
    """

    code: str = "PRECONDITION_FAILED"

    def __init__(
        self,
        dossier_id: str,
        operation: str,
        current_status: str,
        allowed_statuses: tuple[str, ...] = (),
        concurrent_modification: bool = False,
    ):
        self.dossier_id = dossier_id
        self.operation = operation
        self.current_status = current_status
        self.allowed_statuses = allowed_statuses
        self.concurrent_modification = concurrent_modification
        if concurrent_modification:
            detail = "dossier was modified concurrently"
        else:
            detail = f"allowed from {', '.join(allowed_statuses) or 'no status'}"
        super().__init__(
            f"Cannot {operation} dossier {dossier_id} "
            f"with statut {current_status}: {detail}"
        )


class GateNotSatisfiedError(WorkflowError):
    """One or more named validation gates are unmet."""

    code: str = "GATE_NOT_SATISFIED"

    def __init__(
        self,
        dossier_id: str,
        operation: str,
        gates: tuple[str, ...],
        reason: str | None = None,
    ):
        self.dossier_id = dossier_id
        self.operation = operation
        self.gates = gates
        self.reason = reason
        message = f"Cannot {operation} dossier {dossier_id}: missing {', '.join(gates)}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class MissingSynthesisError(WorkflowError):
    """No ordonnateur synthesis row exists for the dossier."""

    code: str = "MISSING_SYNTHESIS"

    def __init__(self, dossier_id: str, operation: str):
        self.dossier_id = dossier_id
        self.operation = operation
        super().__init__(
            f"Cannot {operation} dossier {dossier_id}: "
            "no verification synthesis found"
        )


class UnauthorizedActorError(WorkflowError):
    """The actor's role may not perform the operation on this dossier."""

    code: str = "UNAUTHORIZED_ACTOR"

    def __init__(self, actor_id: str, role: str, operation: str, reason: str = ""):
        self.actor_id = actor_id
        self.role = role
        self.operation = operation
        self.reason = reason
        message = f"Role {role} may not {operation}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


# Dossier data exceptions


class DossierError(AcgeKernelError):
    """Base exception for dossier data errors."""

    code: str = "DOSSIER_ERROR"


class DuplicateDossierNumberError(DossierError):
    """numeroDossier is already used by another dossier."""

    code: str = "DUPLICATE_DOSSIER_NUMBER"

    def __init__(self, numero_dossier: str):
        self.numero_dossier = numero_dossier
        super().__init__(f"Dossier number already exists: {numero_dossier}")


class InvalidDossierFieldError(DossierError):
    """A dossier field is missing or malformed."""

    code: str = "INVALID_DOSSIER_FIELD"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid dossier field {field}: {reason}")


# Integrity exceptions


class IntegrityError(AcgeKernelError):
    """Base exception for data integrity anomalies."""

    code: str = "INTEGRITY_ERROR"


class IntegrityMismatchError(IntegrityError):
    """
    Quitus hash verification failed.

    The recomputed fingerprint does not match the expected one, so the
    stored contenu or the presented hash has been altered.
    """

    code: str = "INTEGRITY_MISMATCH"

    def __init__(self, numero_quitus: str, expected_hash: str, computed_hash: str):
        self.numero_quitus = numero_quitus
        self.expected_hash = expected_hash
        self.computed_hash = computed_hash
        super().__init__(
            f"Integrity mismatch for quitus {numero_quitus}: "
            f"expected {expected_hash}, computed {computed_hash}"
        )


class SynthesisIntegrityError(IntegrityError):
    """More than one synthesis row exists for a dossier."""

    code: str = "SYNTHESIS_INTEGRITY"

    def __init__(self, dossier_id: str, row_count: int):
        self.dossier_id = dossier_id
        self.row_count = row_count
        super().__init__(
            f"Dossier {dossier_id} has {row_count} synthesis rows, expected at most 1"
        )


class AuditChainBrokenError(IntegrityError):
    """Audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, audit_event_id: str, expected_hash: str, actual_hash: str):
        self.audit_event_id = audit_event_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at event {audit_event_id}: "
            f"expected {expected_hash}, got {actual_hash}"
        )


class MalformedRowError(IntegrityError):
    """A stored row failed validation at the store boundary."""

    code: str = "MALFORMED_ROW"

    def __init__(self, entity_type: str, entity_id: str, field: str, value: object):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.field = field
        self.value = value
        super().__init__(
            f"Malformed {entity_type} {entity_id}: unexpected {field}={value!r}"
        )


# Immutability-related exceptions


class ImmutabilityError(AcgeKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    Finalised dossiers, quitus rows, quitus verifications and audit events
    are immutable once written.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Infrastructure


class InfrastructureError(AcgeKernelError):
    """The underlying store or a collaborator is unreachable or errored."""

    code: str = "INFRASTRUCTURE_ERROR"

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Infrastructure failure during {operation}: {detail}")
