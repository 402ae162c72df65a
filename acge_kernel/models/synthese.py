"""
Module: acge_kernel.models.synthese
Responsibility: ORM persistence for ordonnateur field verifications and
    their per-dossier synthesis row.

Architecture position: Kernel > Models.  May import from db/base.py,
    domain/synthesis and exceptions only.

Invariants enforced:
    - One verification per (dossier, critere) -- DB unique constraint.
    - statut restricted to VALIDÉ / REJETÉ / EN_COURS (check constraint).
    - "At most one synthesis row per dossier" is NOT a DB constraint:
      rows imported from the legacy store may already violate it, and the
      read path must surface that as SynthesisIntegrityError rather than
      pick one.  The write path (SynthesisService) upserts.

Failure modes:
    - MalformedRowError when a stored statut is outside the set.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from acge_kernel.db.base import Base, UUIDString
from acge_kernel.domain.synthesis import (
    FieldVerification,
    SynthesisStatus,
    SyntheseVerification,
)
from acge_kernel.exceptions import MalformedRowError


class SyntheseVerificationModel(Base):
    """Rollup of the ordonnateur verifications of one dossier."""

    __tablename__ = "syntheses_verifications"

    __table_args__ = (
        CheckConstraint(
            "statut IN ('VALIDÉ', 'REJETÉ', 'EN_COURS')",
            name="ck_syntheses_valid_statut",
        ),
        CheckConstraint(
            "verifications_rejetees >= 0 AND verifications_rejetees <= total_verifications",
            name="ck_syntheses_counts",
        ),
        Index("ix_syntheses_dossier", "dossier_id"),
    )

    dossier_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("dossiers.id"), nullable=False,
    )
    statut: Mapped[str] = mapped_column(String(20), nullable=False)
    total_verifications: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    verifications_validees: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    verifications_rejetees: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    commentaire_general: Mapped[str | None] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def to_dto(self) -> SyntheseVerification:
        try:
            statut = SynthesisStatus(self.statut)
        except ValueError:
            raise MalformedRowError(
                "SyntheseVerification", str(self.id), "statut", self.statut,
            ) from None
        return SyntheseVerification(
            dossier_id=self.dossier_id,
            statut=statut,
            total_verifications=self.total_verifications,
            verifications_rejetees=self.verifications_rejetees,
            verifications_validees=self.verifications_validees,
            commentaire_general=self.commentaire_general,
            updated_at=self.updated_at,
        )


class OrdonnateurVerificationModel(Base):
    """One field-level check authored by the ordonnateur."""

    __tablename__ = "verifications_ordonnateur"

    __table_args__ = (
        UniqueConstraint("dossier_id", "critere", name="uq_verifications_ordonnateur_critere"),
    )

    dossier_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("dossiers.id"), nullable=False,
    )
    critere: Mapped[str] = mapped_column(String(100), nullable=False)
    valide: Mapped[bool] = mapped_column(Boolean, nullable=False)
    commentaire: Mapped[str | None] = mapped_column(Text, nullable=True)
    verified_by: Mapped[str] = mapped_column(String(100), nullable=False)
    verified_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def to_dto(self) -> FieldVerification:
        return FieldVerification(
            dossier_id=self.dossier_id,
            critere=self.critere,
            valide=self.valide,
            commentaire=self.commentaire,
            verified_by=self.verified_by,
            verified_at=self.verified_at,
        )
