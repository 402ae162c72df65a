"""
Module: acge_kernel.models.validation
Responsibility: ORM persistence for the evidence rows checked by the
    validation gate evaluator: operation-type validations recorded by the
    budget controller and fond-control validations.

Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Every row belongs to one dossier (many-to-one).
    - The gate only counts rows; ``valide`` on fond controls is advisory.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from acge_kernel.db.base import Base, UUIDString


class OperationTypeValidationModel(Base):
    """CB validation of a dossier's operation type."""

    __tablename__ = "validations_cb"

    __table_args__ = (
        Index("ix_validations_cb_dossier", "dossier_id", "created_at"),
    )

    dossier_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("dossiers.id"), nullable=False,
    )
    type_operation_id: Mapped[str] = mapped_column(String(100), nullable=False)
    nature_operation_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    validated_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<OperationTypeValidation dossier={self.dossier_id} type={self.type_operation_id}>"


class ControleFondValidationModel(Base):
    """One fond-control check performed on a dossier."""

    __tablename__ = "validations_controles_fond"

    __table_args__ = (
        Index("ix_validations_controles_fond_dossier", "dossier_id", "created_at"),
    )

    dossier_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("dossiers.id"), nullable=False,
    )
    controle_fond_id: Mapped[str] = mapped_column(String(100), nullable=False)
    valide: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    commentaire: Mapped[str | None] = mapped_column(Text, nullable=True)
    validated_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<ControleFondValidation dossier={self.dossier_id} "
            f"controle={self.controle_fond_id} valide={self.valide}>"
        )
