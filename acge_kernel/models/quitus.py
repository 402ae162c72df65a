"""
Module: acge_kernel.models.quitus
Responsibility: ORM persistence for sealed quitus certificates and the
    audit trail of their public verifications.

Architecture position: Kernel > Models.  May import from db/base.py,
    domain/quitus and exceptions only.

Invariants enforced:
    - A quitus row is keyed by its number and is immutable once written.
    - At most one quitus per dossier (unique dossier_id).
    - Verification rows are append-only and never pruned.
    - resultat restricted to AUTHENTIQUE / NON_AUTHENTIQUE.

Failure modes:
    - ImmutabilityViolationError on UPDATE/DELETE of either table.
    - IntegrityError on a second quitus for the same dossier.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column

from acge_kernel.db.base import Base, UUIDString
from acge_kernel.domain.quitus import (
    Quitus,
    QuitusVerificationRecord,
    VerificationResult,
)
from acge_kernel.exceptions import ImmutabilityViolationError


class QuitusModel(Base):
    """Persistent quitus certificate."""

    __tablename__ = "quitus"

    # Quitus are addressed by their printed number, not a surrogate UUID
    id: Mapped[str] = mapped_column(String(200), primary_key=True)
    dossier_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("dossiers.id"), nullable=False, unique=True,
    )
    contenu: Mapped[dict] = mapped_column(JSON, nullable=False)
    hash: Mapped[str] = mapped_column(String(16), nullable=False)
    qr_code: Mapped[str | None] = mapped_column(Text, nullable=True)
    statut: Mapped[str] = mapped_column(String(20), nullable=False)
    genere_le: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<Quitus {self.id} hash={self.hash}>"

    def to_dto(self) -> Quitus:
        return Quitus(
            numero_quitus=self.id,
            dossier_id=self.dossier_id,
            contenu=dict(self.contenu),
            hash=self.hash,
            qr_code=self.qr_code,
            statut=self.statut,
            genere_le=self.genere_le,
        )


class QuitusVerificationModel(Base):
    """One verification attempt made through the public endpoint."""

    __tablename__ = "quitus_verifications"

    __table_args__ = (
        CheckConstraint(
            "resultat IN ('AUTHENTIQUE', 'NON_AUTHENTIQUE')",
            name="ck_quitus_verifications_resultat",
        ),
        Index("ix_quitus_verifications_quitus", "quitus_id", "verifie_le"),
    )

    quitus_id: Mapped[str] = mapped_column(
        String(200), ForeignKey("quitus.id"), nullable=False,
    )
    verifie_le: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    resultat: Mapped[str] = mapped_column(String(20), nullable=False)
    ip_address: Mapped[str] = mapped_column(String(255), nullable=False)
    user_agent: Mapped[str] = mapped_column(Text, nullable=False)

    def to_dto(self) -> QuitusVerificationRecord:
        return QuitusVerificationRecord(
            quitus_id=self.quitus_id,
            verifie_le=self.verifie_le,
            resultat=VerificationResult(self.resultat),
            ip_address=self.ip_address,
            user_agent=self.user_agent,
        )


@event.listens_for(QuitusModel, "before_update")
def prevent_quitus_update(mapper, connection, target):
    """Prevent updates to issued quitus."""
    raise ImmutabilityViolationError(
        entity_type="Quitus",
        entity_id=str(target.id),
        reason="Issued quitus are immutable -- cannot modify",
    )


@event.listens_for(QuitusModel, "before_delete")
def prevent_quitus_delete(mapper, connection, target):
    """Prevent deletion of issued quitus."""
    raise ImmutabilityViolationError(
        entity_type="Quitus",
        entity_id=str(target.id),
        reason="Issued quitus are immutable -- cannot delete",
    )


@event.listens_for(QuitusVerificationModel, "before_update")
def prevent_verification_update(mapper, connection, target):
    """Prevent updates to verification audit rows."""
    raise ImmutabilityViolationError(
        entity_type="QuitusVerification",
        entity_id=str(target.id),
        reason="Verification audit rows are append-only -- cannot modify",
    )


@event.listens_for(QuitusVerificationModel, "before_delete")
def prevent_verification_delete(mapper, connection, target):
    """Prevent deletion of verification audit rows."""
    raise ImmutabilityViolationError(
        entity_type="QuitusVerification",
        entity_id=str(target.id),
        reason="Verification audit rows are append-only -- cannot delete",
    )
