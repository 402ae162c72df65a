"""
Module: acge_kernel.models.dossier
Responsibility: ORM persistence for dossiers and the mapping from rows to
    the typed ``Dossier`` DTO.

Architecture position: Kernel > Models.  May import from db/base.py,
    domain/ value objects and exceptions only.

Invariants enforced:
    - numero_dossier is globally unique (DB constraint).
    - statut is restricted to the closed set plus its two legacy spellings
      (DB check constraint); legacy spellings are folded on read.
    - row_version is the optimistic-concurrency token; every committed
      transition bumps it.
    - A VALIDÉ_DÉFINITIVEMENT dossier can no longer be modified or deleted
      through the ORM.

Failure modes:
    - IntegrityError on duplicate numero_dossier.
    - MalformedRowError when a stored statut is outside the closed set.
    - ImmutabilityViolationError on UPDATE/DELETE of a finalised dossier.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    Index,
    String,
    Text,
    event,
    inspect,
)
from sqlalchemy.orm import Mapped, mapped_column

from acge_kernel.db.base import Base
from acge_kernel.domain.dossier import (
    STATUS_ALIASES,
    Dossier,
    DossierStatus,
    normalize_status,
)
from acge_kernel.exceptions import ImmutabilityViolationError, MalformedRowError

_ALLOWED_STATUT_VALUES = tuple(s.value for s in DossierStatus) + tuple(STATUS_ALIASES)


class DossierModel(Base):
    """Persistent dossier row."""

    __tablename__ = "dossiers"

    __table_args__ = (
        CheckConstraint(
            "statut IN ("
            + ", ".join(f"'{value}'" for value in _ALLOWED_STATUT_VALUES)
            + ")",
            name="ck_dossiers_valid_statut",
        ),
        CheckConstraint("row_version >= 1", name="ck_dossiers_row_version"),
        Index("ix_dossiers_statut", "statut"),
        Index("ix_dossiers_secretaire", "secretaire_id"),
    )

    numero_dossier: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    statut: Mapped[str] = mapped_column(
        String(50), nullable=False, default=DossierStatus.BROUILLON.value,
    )
    objet_operation: Mapped[str] = mapped_column(Text, nullable=False)
    beneficiaire: Mapped[str] = mapped_column(String(255), nullable=False)
    numero_nature: Mapped[str | None] = mapped_column(String(50), nullable=True)
    montant: Mapped[Decimal | None] = mapped_column(nullable=True)
    montant_ordonnance: Mapped[Decimal | None] = mapped_column(nullable=True)
    poste_comptable_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    poste_comptable: Mapped[str | None] = mapped_column(String(255), nullable=True)
    nature_document_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    secretaire_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    validated_cb_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    rejected_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    ordonnanced_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    ordonnancement_comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    validated_definitively_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    validation_definitive_comment: Mapped[str | None] = mapped_column(Text, nullable=True)

    row_version: Mapped[int] = mapped_column(BigInteger, nullable=False, default=1)

    def __repr__(self) -> str:
        return f"<Dossier {self.numero_dossier} statut={self.statut} v{self.row_version}>"

    @property
    def status(self) -> DossierStatus:
        """Typed statut.

        Raises:
            MalformedRowError: If the stored value is outside the closed set.
        """
        try:
            return normalize_status(self.statut)
        except ValueError:
            raise MalformedRowError(
                "Dossier", str(self.id), "statut", self.statut,
            ) from None

    def to_dto(self) -> Dossier:
        """Convert ORM model to frozen domain DTO."""
        return Dossier(
            id=self.id,
            numero_dossier=self.numero_dossier,
            statut=self.status,
            objet_operation=self.objet_operation,
            beneficiaire=self.beneficiaire,
            numero_nature=self.numero_nature,
            montant=self.montant,
            montant_ordonnance=self.montant_ordonnance,
            poste_comptable_id=self.poste_comptable_id,
            poste_comptable=self.poste_comptable,
            nature_document_id=self.nature_document_id,
            secretaire_id=self.secretaire_id,
            created_at=self.created_at,
            updated_at=self.updated_at,
            validated_cb_at=self.validated_cb_at,
            rejected_at=self.rejected_at,
            rejection_reason=self.rejection_reason,
            ordonnanced_at=self.ordonnanced_at,
            ordonnancement_comment=self.ordonnancement_comment,
            validated_definitively_at=self.validated_definitively_at,
            validation_definitive_comment=self.validation_definitive_comment,
            row_version=self.row_version,
        )


def _committed_statut(target: DossierModel) -> str | None:
    history = inspect(target).attrs.statut.history
    if history.deleted:
        return history.deleted[0]
    if history.unchanged:
        return history.unchanged[0]
    return target.statut


@event.listens_for(DossierModel, "before_update")
def prevent_final_dossier_update(mapper, connection, target):
    """Prevent changes to a dossier once it is definitively validated."""
    if _committed_statut(target) == DossierStatus.VALIDE_DEFINITIVEMENT.value:
        raise ImmutabilityViolationError(
            entity_type="Dossier",
            entity_id=str(target.id),
            reason="Definitively validated dossiers are immutable -- cannot modify",
        )


@event.listens_for(DossierModel, "before_delete")
def prevent_final_dossier_delete(mapper, connection, target):
    """Prevent deletion of a definitively validated dossier."""
    if _committed_statut(target) == DossierStatus.VALIDE_DEFINITIVEMENT.value:
        raise ImmutabilityViolationError(
            entity_type="Dossier",
            entity_id=str(target.id),
            reason="Definitively validated dossiers are immutable -- cannot delete",
        )
