"""
Module: acge_kernel.models.audit_event
Responsibility: ORM persistence for the tamper-evident audit hash chain.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Audit records are append-only; no UPDATE or DELETE (ORM listeners).
    - hash = H(entity_type | entity_id | action | payload_hash | prev_hash),
      validated by AuditorService.
    - seq is monotonically increasing, allocated by SequenceService.

Audit relevance:
    Every committed workflow operation (creation, edit, submission, CB
    decision, ordonnancement, final validation, quitus issue) produces
    one AuditEvent in the same transaction.
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import JSON, BigInteger, DateTime, Index, String, event
from sqlalchemy.orm import Mapped, mapped_column

from acge_kernel.db.base import Base
from acge_kernel.exceptions import ImmutabilityViolationError


class AuditAction(str, Enum):
    """Types of auditable actions."""

    DOSSIER_CREATED = "dossier_created"
    DOSSIER_UPDATED = "dossier_updated"
    DOSSIER_SUBMITTED = "dossier_submitted"
    DOSSIER_CB_VALIDATED = "dossier_cb_validated"
    DOSSIER_CB_REJECTED = "dossier_cb_rejected"
    DOSSIER_ORDONNANCED = "dossier_ordonnanced"
    DOSSIER_FINALIZED = "dossier_finalized"

    VERIFICATION_RECORDED = "verification_recorded"
    QUITUS_ISSUED = "quitus_issued"


class AuditEvent(Base):
    """
    Audit event with hash chain for tamper evidence.

    Guarantees:
        - seq is globally unique and monotonically increasing.
        - prev_hash is None only for the genesis event.

    Non-goals:
        - This model does NOT enforce hash correctness at INSERT time;
          that is the responsibility of AuditorService.
    """

    __tablename__ = "audit_events"

    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
        Index("idx_audit_action", "action"),
        Index("idx_audit_seq", "seq"),
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)

    # "Dossier", "Quitus", ...
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)

    # Dossier UUID or quitus number
    entity_id: Mapped[str] = mapped_column(String(200), nullable=False)

    action: Mapped[str] = mapped_column(String(50), nullable=False)

    actor_id: Mapped[str] = mapped_column(String(100), nullable=False)

    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<AuditEvent {self.action} on {self.entity_type}:{self.entity_id}>"

    @property
    def is_genesis(self) -> bool:
        return self.prev_hash is None


@event.listens_for(AuditEvent, "before_update")
def prevent_audit_update(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="AuditEvent",
        entity_id=str(target.id),
        reason="Audit events are append-only -- cannot modify",
    )


@event.listens_for(AuditEvent, "before_delete")
def prevent_audit_delete(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="AuditEvent",
        entity_id=str(target.id),
        reason="Audit events are append-only -- cannot delete",
    )
