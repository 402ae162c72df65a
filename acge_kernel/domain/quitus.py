"""
Quitus integrity primitives (``acge_kernel.domain.quitus``).

Responsibility
--------------
Pure functions that seal and re-verify a quitus:

* ``compute_quitus_hash`` -- deterministic fingerprint over a fixed,
  ordered subset of the quitus contenu.
* ``verify_quitus_hash`` -- recompute and compare.
* ``generate_quitus_number`` -- ``QUITUS-<numero>-<year>-<rrr>-<millis>``.
* ``build_verification_url`` -- the URL embedded in the QR artifact.

Architecture position
---------------------
**Kernel domain layer** -- ZERO I/O.  Persistence and the verification
audit trail live in ``services/quitus_service``.

Invariants enforced
-------------------
* The hashed object always has the key order numeroQuitus, dossierId,
  dateGeneration, beneficiaire, montant, statut.  It is serialized as
  compact JSON with non-ASCII characters kept verbatim, so the digest is
  identical to the one produced by the web client.
* The fingerprint is the first 16 upper-case hex characters of SHA-256.
* statut is exactly "CONFORME" or "NON_CONFORME".

Hashing is an integrity check against a publicly printed value, so the
comparison in ``verify_quitus_hash`` is a plain equality.
"""

from __future__ import annotations

import hashlib
import json
import random
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping
from uuid import UUID

HASH_LENGTH = 16
STATUT_CONFORME = "CONFORME"
STATUT_NON_CONFORME = "NON_CONFORME"
WATERMARK_ORIGINAL = "ORIGINAL"
QUITUS_STATUT_GENERE = "GÉNÉRÉ"

_MISSING = object()


class VerificationResult(str, Enum):
    AUTHENTIQUE = "AUTHENTIQUE"
    NON_AUTHENTIQUE = "NON_AUTHENTIQUE"


@dataclass(frozen=True)
class Quitus:
    """A persisted, sealed clearance certificate."""

    numero_quitus: str
    dossier_id: UUID
    contenu: dict[str, Any]
    hash: str
    qr_code: str | None
    statut: str
    genere_le: datetime

    @property
    def verification_hash_matches(self) -> bool:
        """Stored hash still matches the stored contenu."""
        return verify_quitus_hash(self.contenu, self.hash)


@dataclass(frozen=True)
class QuitusVerificationRecord:
    """One audited verification attempt."""

    quitus_id: str
    verifie_le: datetime
    resultat: VerificationResult
    ip_address: str
    user_agent: str


@dataclass(frozen=True)
class QuitusVerificationOutcome:
    """Result of a public verification attempt, already logged."""

    quitus: Quitus
    record: QuitusVerificationRecord

    @property
    def valid(self) -> bool:
        return self.record.resultat is VerificationResult.AUTHENTIQUE


def to_json_number(value: Decimal | int | float | None) -> int | float | None:
    """Render an amount the way a JavaScript number prints.

    Integral amounts become ``int`` (``1500000`` rather than ``1500000.0``).
    """
    if value is None:
        return None
    if isinstance(value, Decimal):
        if value == value.to_integral_value():
            return int(value)
        return float(value)
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def to_js_iso(value: datetime | None) -> str | None:
    """UTC timestamp with millisecond precision, e.g. ``2024-01-01T12:00:00.000Z``.

    Naive datetimes are taken to be UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def _pick(source: Mapping[str, Any] | None, key: str) -> Any:
    if not isinstance(source, Mapping):
        return _MISSING
    return source.get(key, _MISSING)


def quitus_hash_fields(contenu: Mapping[str, Any]) -> dict[str, Any]:
    """Extract the hashed subset of a quitus contenu, in canonical order.

    Keys absent from the contenu are left out of the result, mirroring how
    the web client serializes undefined properties.
    """
    dossier = contenu.get("dossier")
    conclusion = contenu.get("conclusion")
    conforme = _pick(conclusion, "conforme")

    ordered = (
        ("numeroQuitus", contenu.get("numeroQuitus", _MISSING)),
        ("dossierId", _pick(dossier, "numero")),
        ("dateGeneration", contenu.get("dateGeneration", _MISSING)),
        ("beneficiaire", _pick(dossier, "beneficiaire")),
        ("montant", _pick(dossier, "montantOrdonnance")),
        (
            "statut",
            STATUT_CONFORME
            if conforme is not _MISSING and conforme
            else STATUT_NON_CONFORME,
        ),
    )
    fields: dict[str, Any] = {}
    for key, value in ordered:
        if value is _MISSING:
            continue
        if key == "montant" and isinstance(value, (Decimal, float)):
            value = to_json_number(value)
        fields[key] = value
    return fields


def compute_quitus_hash(contenu: Mapping[str, Any]) -> str:
    """Fingerprint of a quitus contenu (16 upper-case hex characters)."""
    serialized = json.dumps(
        quitus_hash_fields(contenu),
        separators=(",", ":"),
        ensure_ascii=False,
    )
    digest = hashlib.sha256(serialized.encode("utf-8")).hexdigest()
    return digest.upper()[:HASH_LENGTH]


def verify_quitus_hash(contenu: Mapping[str, Any], provided_hash: str) -> bool:
    """True when ``provided_hash`` is the fingerprint of ``contenu``."""
    return compute_quitus_hash(contenu) == provided_hash


def generate_quitus_number(
    numero_dossier: str,
    now: datetime,
    epoch_millis: int,
    rng: random.Random | None = None,
) -> str:
    """``QUITUS-<numeroDossier>-<year>-<000..999>-<epochMillis>``."""
    rand = (rng or random).randrange(1000)
    return f"QUITUS-{numero_dossier}-{now.year}-{rand:03d}-{epoch_millis}"


def build_verification_url(base_url: str, numero_quitus: str, quitus_hash: str) -> str:
    """Public verification link embedded in the quitus QR code."""
    return f"{base_url.rstrip('/')}/verify-quitus/{numero_quitus}?hash={quitus_hash}"
