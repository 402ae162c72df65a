"""
AuditorService -- tamper-evident audit trail and hash chain maintenance.

Responsibility:
    Creates immutable, hash-chained audit events for every committed
    workflow operation and quitus issue.  Provides chain validation for
    tamper detection and per-entity trace queries.

Architecture position:
    Kernel > Services -- imperative shell, called by DossierWorkflowService,
    SynthesisService and QuitusService.

Invariants enforced:
    - Sequence numbers come from SequenceService (locked counter row).
    - hash = H(entity_type | entity_id | action | payload_hash | prev_hash).
    - Audit events are append-only (ORM listeners on AuditEvent).

Failure modes:
    - AuditChainBrokenError: recomputed hash does not match stored hash,
      or prev_hash does not match the predecessor's hash.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from acge_kernel.domain.clock import Clock, SystemClock
from acge_kernel.exceptions import AuditChainBrokenError
from acge_kernel.logging_config import get_logger
from acge_kernel.models.audit_event import AuditAction, AuditEvent
from acge_kernel.services.sequence_service import SequenceService
from acge_kernel.utils.hashing import hash_audit_event, hash_payload, to_json_safe

logger = get_logger("services.auditor")


@dataclass(frozen=True)
class AuditTraceEntry:
    """A single entry in an audit trace."""

    seq: int
    action: str
    occurred_at: datetime
    actor_id: str
    payload: dict[str, Any]
    hash: str


@dataclass(frozen=True)
class AuditTrace:
    """All audit events of one entity, in chronological order."""

    entity_type: str
    entity_id: str
    entries: tuple[AuditTraceEntry, ...]

    @property
    def actions(self) -> tuple[str, ...]:
        return tuple(entry.action for entry in self.entries)

    @property
    def last_action(self) -> str | None:
        return self.entries[-1].action if self.entries else None


class AuditorService:
    """
    Service for creating and validating tamper-evident audit events.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequence_service = SequenceService(session)

    def _get_last_hash(self) -> str | None:
        last_event = self._session.execute(
            select(AuditEvent)
            .order_by(AuditEvent.seq.desc())
            .limit(1)
        ).scalar_one_or_none()

        return last_event.hash if last_event else None

    def _create_audit_event(
        self,
        entity_type: str,
        entity_id: str,
        action: AuditAction,
        actor_id: str,
        payload: dict[str, Any] | None = None,
    ) -> AuditEvent:
        """Append one event to the chain and flush it."""
        seq = self._sequence_service.next_value(SequenceService.AUDIT_EVENT)
        prev_hash = self._get_last_hash()

        payload_data = to_json_safe(payload or {})
        computed_payload_hash = hash_payload(payload_data)

        event_hash = hash_audit_event(
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action.value,
            payload_hash=computed_payload_hash,
            prev_hash=prev_hash,
        )

        audit_event = AuditEvent(
            seq=seq,
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action.value,
            actor_id=actor_id,
            occurred_at=self._clock.now(),
            payload=payload_data,
            payload_hash=computed_payload_hash,
            prev_hash=prev_hash,
            hash=event_hash,
        )

        self._session.add(audit_event)
        self._session.flush()

        logger.info(
            "audit_event_created",
            extra={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "action": action.value,
                "seq": seq,
            },
        )

        return audit_event

    # Domain-specific recording methods

    def record_dossier_action(
        self,
        dossier_id: str,
        action: AuditAction,
        actor_id: str,
        from_status: str | None,
        to_status: str,
        details: dict[str, Any] | None = None,
    ) -> AuditEvent:
        """Record a committed workflow operation on a dossier."""
        payload: dict[str, Any] = {
            "from_status": from_status,
            "to_status": to_status,
        }
        if details:
            payload.update(details)
        return self._create_audit_event(
            entity_type="Dossier",
            entity_id=dossier_id,
            action=action,
            actor_id=actor_id,
            payload=payload,
        )

    def record_verification(
        self,
        dossier_id: str,
        actor_id: str,
        critere: str,
        valide: bool,
        synthesis_status: str,
    ) -> AuditEvent:
        """Record an ordonnateur field verification and the resulting synthesis."""
        return self._create_audit_event(
            entity_type="Dossier",
            entity_id=dossier_id,
            action=AuditAction.VERIFICATION_RECORDED,
            actor_id=actor_id,
            payload={
                "critere": critere,
                "valide": valide,
                "synthesis_status": synthesis_status,
            },
        )

    def record_quitus_issued(
        self,
        numero_quitus: str,
        dossier_id: str,
        actor_id: str,
        quitus_hash: str,
    ) -> AuditEvent:
        """Record the issue of a sealed quitus."""
        return self._create_audit_event(
            entity_type="Quitus",
            entity_id=numero_quitus,
            action=AuditAction.QUITUS_ISSUED,
            actor_id=actor_id,
            payload={"dossier_id": dossier_id, "hash": quitus_hash},
        )

    # Chain validation

    def validate_chain(self) -> bool:
        """
        Validate the entire audit chain.

        Raises:
            AuditChainBrokenError: If chain validation fails at any point.
        """
        events = self._session.execute(
            select(AuditEvent).order_by(AuditEvent.seq)
        ).scalars().all()

        if not events:
            return True

        if events[0].prev_hash is not None:
            logger.critical("audit_chain_broken", extra={"seq": events[0].seq})
            raise AuditChainBrokenError(str(events[0].id), "None", events[0].prev_hash)

        for i, event in enumerate(events):
            expected_hash = hash_audit_event(
                entity_type=event.entity_type,
                entity_id=event.entity_id,
                action=event.action,
                payload_hash=event.payload_hash,
                prev_hash=event.prev_hash,
            )
            if event.hash != expected_hash:
                logger.critical("audit_chain_broken", extra={"seq": event.seq})
                raise AuditChainBrokenError(str(event.id), expected_hash, event.hash)

            if i > 0 and event.prev_hash != events[i - 1].hash:
                logger.critical("audit_chain_broken", extra={"seq": event.seq})
                raise AuditChainBrokenError(
                    str(event.id), events[i - 1].hash, event.prev_hash or "None",
                )

        logger.info("audit_chain_valid", extra={"event_count": len(events)})
        return True

    def get_trace(self, entity_type: str, entity_id: str) -> AuditTrace:
        """All audit events of an entity, oldest first."""
        events = self._session.execute(
            select(AuditEvent)
            .where(
                AuditEvent.entity_type == entity_type,
                AuditEvent.entity_id == str(entity_id),
            )
            .order_by(AuditEvent.seq)
        ).scalars().all()

        return AuditTrace(
            entity_type=entity_type,
            entity_id=str(entity_id),
            entries=tuple(
                AuditTraceEntry(
                    seq=event.seq,
                    action=event.action,
                    occurred_at=event.occurred_at,
                    actor_id=event.actor_id,
                    payload=event.payload or {},
                    hash=event.hash,
                )
                for event in events
            ),
        )
