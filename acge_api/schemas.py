"""Request and response bodies of the HTTP surface (camelCase on the wire)."""

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_serializer
from pydantic.alias_generators import to_camel

from acge_kernel.domain.dossier import DossierStatus
from acge_kernel.domain.quitus import to_json_number
from acge_kernel.domain.synthesis import SynthesisStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# Requests


class CreateDossierRequest(CamelModel):
    """Any ``statut`` sent by the client is ignored."""

    numero_dossier: str | None = None
    numero_nature: str
    objet_operation: str
    beneficiaire: str
    montant: Decimal | None = None
    poste_comptable_id: str | None = None
    poste_comptable: str | None = None
    nature_document_id: str | None = None


class UpdateDossierRequest(CamelModel):
    numero_dossier: str | None = None
    numero_nature: str | None = None
    objet_operation: str | None = None
    beneficiaire: str | None = None
    montant: Decimal | None = None
    poste_comptable_id: str | None = None
    poste_comptable: str | None = None
    nature_document_id: str | None = None


class RejectRequest(CamelModel):
    reason: str = Field(default="", description="Motif du rejet")


class OrdonnanceRequest(CamelModel):
    montant: Decimal | None = None
    commentaire: str | None = None


class ValidationDefinitiveRequest(CamelModel):
    commentaire: str | None = None


class VerificationRequest(CamelModel):
    critere: str
    valide: bool
    commentaire: str | None = None


# Responses


class DossierResponse(CamelModel):
    id: UUID
    numero_dossier: str
    statut: DossierStatus
    objet_operation: str
    beneficiaire: str
    numero_nature: str | None = None
    montant: Decimal | None = None
    montant_ordonnance: Decimal | None = None
    poste_comptable_id: str | None = None
    poste_comptable: str | None = None
    nature_document_id: str | None = None
    secretaire_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    validated_cb_at: datetime | None = None
    rejected_at: datetime | None = None
    rejection_reason: str | None = None
    ordonnanced_at: datetime | None = None
    ordonnancement_comment: str | None = None
    validated_definitively_at: datetime | None = None
    validation_definitive_comment: str | None = None
    row_version: int

    @field_serializer("montant", "montant_ordonnance")
    def _amount(self, value: Decimal | None) -> int | float | None:
        return to_json_number(value)


class TransitionResponse(CamelModel):
    success: bool = True
    message: str
    dossier: DossierResponse
    previous_status: str | None = None
    quitus_numero: str | None = None


class SynthesisResponse(CamelModel):
    dossier_id: UUID
    statut: SynthesisStatus
    total_verifications: int
    verifications_validees: int
    verifications_rejetees: int
    commentaire_general: str | None = None
    updated_at: datetime | None = None


class QuitusResponse(CamelModel):
    numero_quitus: str
    dossier_id: UUID
    hash: str
    statut: str
    qr_code: str | None = None
    genere_le: datetime
    contenu: dict[str, Any]

