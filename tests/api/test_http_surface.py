"""
Tests for the HTTP surface (acge_api).

Drives the FastAPI app end to end against an in-memory database:
routing, identity headers, the error-to-status mapping, If-Match
concurrency and the public quitus verification endpoint.
"""

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

import acge_kernel.models  # noqa: F401
from acge_api.app import create_app
from acge_config import AcgeConfig, DatabaseConfig
from acge_kernel.db.base import Base
from acge_kernel.db.engine import build_engine
from acge_kernel.domain.clock import DeterministicClock
from acge_kernel.domain.gates import MISSING_CONTROLES_FOND, MISSING_OPERATION_TYPE
from acge_kernel.models.quitus import QuitusVerificationModel
from acge_kernel.models.validation import (
    ControleFondValidationModel,
    OperationTypeValidationModel,
)
from acge_services.effects import EffectDispatcher
from tests.conftest import TEST_BASE_URL

NOW = datetime(2024, 3, 15, 9, 30, tzinfo=timezone.utc)

SECRETAIRE = {"X-User-Id": "user-secretaire", "X-User-Role": "SECRETAIRE"}
CB = {"X-User-Id": "user-cb", "X-User-Role": "CONTROLEUR_BUDGETAIRE"}
ORDONNATEUR = {"X-User-Id": "user-ordonnateur", "X-User-Role": "ORDONNATEUR"}
AGENT_COMPTABLE = {"X-User-Id": "user-ac", "X-User-Role": "AGENT_COMPTABLE"}

DOSSIER_BODY = {
    "numeroNature": "NAT-6011",
    "objetOperation": "Achat de fournitures de bureau",
    "beneficiaire": "Société Générale d'Équipement",
    "montant": 1500000,
    "posteComptable": "PC Libreville",
}


class RecordingNotifications:

    def __init__(self):
        self.events = []

    def notify(self, event_type, payload):
        self.events.append((event_type, payload))


@pytest.fixture
def session_factory():
    engine = build_engine("sqlite://")
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, expire_on_commit=False)
    engine.dispose()


@pytest.fixture
def notifications():
    return RecordingNotifications()


@pytest.fixture
def client(session_factory, notifications):
    config = AcgeConfig(
        config_id="acge-test",
        version=1,
        checksum="test",
        database=DatabaseConfig(url="sqlite://"),
        log_level="INFO",
        public_base_url=TEST_BASE_URL,
        public_base_url_source="config",
        dossier_numbering="dated",
    )
    app = create_app(
        config=config,
        session_factory=session_factory,
        dispatcher=EffectDispatcher(notifications=notifications),
        clock=DeterministicClock(NOW),
    )
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def add_gate_evidence(session_factory):
    def _add(dossier_id):
        with session_factory() as session:
            session.add(OperationTypeValidationModel(
                dossier_id=dossier_id,
                type_operation_id="TYPE-DEPENSE",
                validated_by="user-cb",
                created_at=NOW,
            ))
            session.add(ControleFondValidationModel(
                dossier_id=dossier_id,
                controle_fond_id="CF-PIECES",
                valide=True,
                validated_by="user-cb",
                created_at=NOW,
            ))
            session.commit()

    return _add


def create(client, **overrides):
    response = client.post("/api/dossiers", json={**DOSSIER_BODY, **overrides}, headers=SECRETAIRE)
    assert response.status_code == 201, response.text
    return response.json()["dossier"]


def submitted(client):
    dossier = create(client)
    response = client.post(f"/api/dossiers/{dossier['id']}/submit", headers=SECRETAIRE)
    assert response.status_code == 200, response.text
    return response.json()["dossier"]


def finalised(client, add_gate_evidence):
    """Drive one dossier through the whole workflow over HTTP."""
    dossier = submitted(client)
    dossier_id = dossier["id"]
    add_gate_evidence(dossier_id)

    assert client.put(f"/api/dossiers/{dossier_id}/validate", headers=CB).status_code == 200
    response = client.post(
        f"/api/dossiers/{dossier_id}/verifications-ordonnateur",
        json={"critere": "montant", "valide": True},
        headers=ORDONNATEUR,
    )
    assert response.status_code == 200, response.text
    response = client.put(
        f"/api/dossiers/{dossier_id}/ordonnance",
        json={"montant": 1500000, "commentaire": "RAS"},
        headers=ORDONNATEUR,
    )
    assert response.status_code == 200, response.text
    response = client.put(
        f"/api/dossiers/{dossier_id}/validation-definitive",
        json={"commentaire": "Bon pour paiement"},
        headers=AGENT_COMPTABLE,
    )
    assert response.status_code == 200, response.text
    return response.json()


# =============================================================================
# Workflow routes
# =============================================================================


class TestDossierRoutes:

    def test_create_ignores_client_statut(self, client):
        dossier = create(client, statut="VALIDÉ_DÉFINITIVEMENT")

        assert dossier["statut"] == "BROUILLON"
        assert dossier["numeroDossier"].startswith("DOSS-ACGE-2024-03-15-")
        assert dossier["montant"] == 1500000
        assert dossier["rowVersion"] == 1
        assert dossier["secretaireId"] == "user-secretaire"

    def test_get(self, client):
        dossier = create(client)
        response = client.get(f"/api/dossiers/{dossier['id']}", headers=CB)

        assert response.status_code == 200
        assert response.json()["objetOperation"] == "Achat de fournitures de bureau"

    def test_update(self, client):
        dossier = create(client)
        response = client.put(
            f"/api/dossiers/{dossier['id']}/update",
            json={"beneficiaire": "Nouveau bénéficiaire"},
            headers=SECRETAIRE,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["dossier"]["beneficiaire"] == "Nouveau bénéficiaire"
        assert body["dossier"]["objetOperation"] == "Achat de fournitures de bureau"

    def test_validation_status(self, client, add_gate_evidence):
        dossier = submitted(client)
        path = f"/api/dossiers/{dossier['id']}/validation-status"

        body = client.get(path, headers=CB).json()
        assert body["success"] is True
        assert body["canValidate"] is False
        assert body["missingValidations"] == [MISSING_OPERATION_TYPE, MISSING_CONTROLES_FOND]

        add_gate_evidence(dossier["id"])
        body = client.get(path, headers=CB).json()
        assert body["canValidate"] is True
        assert body["details"]["controlesFond"]["count"] == 1

    def test_cb_validate_reports_missing_gates(self, client):
        dossier = submitted(client)
        response = client.put(f"/api/dossiers/{dossier['id']}/validate", headers=CB)

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["code"] == "GATE_NOT_SATISFIED"
        assert body["missingValidations"] == [MISSING_OPERATION_TYPE, MISSING_CONTROLES_FOND]

    def test_ordonnance_reports_synthesis_not_validated(self, client, add_gate_evidence):
        dossier = submitted(client)
        add_gate_evidence(dossier["id"])
        assert client.put(f"/api/dossiers/{dossier['id']}/validate", headers=CB).status_code == 200
        client.post(
            f"/api/dossiers/{dossier['id']}/verifications-ordonnateur",
            json={"critere": "montant", "valide": False},
            headers=ORDONNATEUR,
        )

        response = client.put(
            f"/api/dossiers/{dossier['id']}/ordonnance", json={}, headers=ORDONNATEUR,
        )

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "GATE_NOT_SATISFIED"
        assert body["reason"].startswith("synthèse REJETÉ, VALIDÉ requis")

    def test_reject(self, client):
        dossier = submitted(client)
        response = client.put(
            f"/api/dossiers/{dossier['id']}/reject",
            json={"reason": "Pièces manquantes"},
            headers=CB,
        )

        assert response.status_code == 200
        assert response.json()["dossier"]["statut"] == "REJETÉ_CB"
        assert response.json()["previousStatus"] == "EN_ATTENTE"

    def test_reject_without_reason(self, client):
        dossier = submitted(client)
        response = client.put(f"/api/dossiers/{dossier['id']}/reject", json={}, headers=CB)

        assert response.status_code == 400
        assert response.json()["field"] == "rejection_reason"

    def test_full_workflow(self, client, add_gate_evidence, notifications):
        body = finalised(client, add_gate_evidence)

        dossier = body["dossier"]
        assert dossier["statut"] == "VALIDÉ_DÉFINITIVEMENT"
        assert dossier["montantOrdonnance"] == 1500000
        assert body["quitusNumero"].startswith(f"QUITUS-{dossier['numeroDossier']}-2024-")

        quitus = client.get(f"/api/dossiers/{dossier['id']}/quitus", headers=AGENT_COMPTABLE)
        assert quitus.status_code == 200
        assert quitus.json()["numeroQuitus"] == body["quitusNumero"]
        assert quitus.json()["qrCode"].startswith("data:image/png;base64,")

        ((event_type, payload),) = notifications.events
        assert event_type == "dossier_validated_definitively"
        assert payload["dossierId"] == dossier["id"]
        assert payload["commentaire"] == "Bon pour paiement"

    def test_quitus_absent_before_final_validation(self, client):
        dossier = create(client)
        response = client.get(f"/api/dossiers/{dossier['id']}/quitus", headers=SECRETAIRE)
        assert response.status_code == 404

    def test_correlation_id_echoed(self, client):
        response = client.get(
            "/api/dossiers/00000000-0000-0000-0000-000000000000",
            headers={**CB, "X-Request-Id": "req-42"},
        )
        assert response.headers["X-Request-Id"] == "req-42"


# =============================================================================
# Error mapping
# =============================================================================


class TestErrorMapping:

    def test_missing_identity(self, client):
        response = client.post("/api/dossiers", json=DOSSIER_BODY)
        assert response.status_code == 401
        assert response.json()["detail"] == "Authentification requise"

    def test_unknown_role(self, client):
        response = client.post(
            "/api/dossiers",
            json=DOSSIER_BODY,
            headers={"X-User-Id": "someone", "X-User-Role": "STAGIAIRE"},
        )
        assert response.status_code == 401

    def test_wrong_role(self, client):
        dossier = submitted(client)
        response = client.put(f"/api/dossiers/{dossier['id']}/validate", headers=SECRETAIRE)

        assert response.status_code == 403
        assert response.json()["code"] == "UNAUTHORIZED_ACTOR"

    def test_unknown_dossier(self, client):
        response = client.post(
            "/api/dossiers/00000000-0000-0000-0000-000000000000/submit",
            headers=SECRETAIRE,
        )
        assert response.status_code == 404
        assert response.json()["success"] is False

    def test_precondition_failed(self, client):
        dossier = submitted(client)
        response = client.post(f"/api/dossiers/{dossier['id']}/submit", headers=SECRETAIRE)

        assert response.status_code == 409
        body = response.json()
        assert body["code"] == "PRECONDITION_FAILED"
        assert body["currentStatus"] == "EN_ATTENTE"
        assert body["allowedStatuses"] == ["BROUILLON"]
        assert body["concurrentModification"] is False

    def test_duplicate_number(self, client):
        create(client, numeroDossier="DOSS-2024-0001")
        response = client.post(
            "/api/dossiers",
            json={**DOSSIER_BODY, "numeroDossier": "DOSS-2024-0001"},
            headers=SECRETAIRE,
        )
        assert response.status_code == 409
        assert response.json()["code"] == "DUPLICATE_DOSSIER_NUMBER"

    def test_blank_required_field(self, client):
        response = client.post(
            "/api/dossiers", json={**DOSSIER_BODY, "beneficiaire": "  "}, headers=SECRETAIRE,
        )
        assert response.status_code == 400
        assert response.json()["field"] == "beneficiaire"

    def test_malformed_body(self, client):
        body = {k: v for k, v in DOSSIER_BODY.items() if k != "objetOperation"}
        response = client.post("/api/dossiers", json=body, headers=SECRETAIRE)
        assert response.status_code == 422

    def test_failed_transition_rolled_back(self, client):
        dossier = submitted(client)
        client.put(f"/api/dossiers/{dossier['id']}/validate", headers=CB)

        response = client.get(f"/api/dossiers/{dossier['id']}", headers=CB)
        assert response.json()["statut"] == "EN_ATTENTE"
        assert response.json()["rowVersion"] == dossier["rowVersion"]


class TestIfMatch:

    def test_current_version_accepted(self, client):
        dossier = create(client)
        response = client.post(
            f"/api/dossiers/{dossier['id']}/submit",
            headers={**SECRETAIRE, "If-Match": '"1"'},
        )
        assert response.status_code == 200
        assert response.json()["dossier"]["rowVersion"] == 2

    def test_weak_tag_accepted(self, client):
        dossier = create(client)
        response = client.post(
            f"/api/dossiers/{dossier['id']}/submit",
            headers={**SECRETAIRE, "If-Match": 'W/"1"'},
        )
        assert response.status_code == 200

    def test_stale_version(self, client):
        dossier = create(client)
        response = client.post(
            f"/api/dossiers/{dossier['id']}/submit",
            headers={**SECRETAIRE, "If-Match": "99"},
        )

        assert response.status_code == 409
        assert response.json()["concurrentModification"] is True

    def test_garbage(self, client):
        dossier = create(client)
        response = client.post(
            f"/api/dossiers/{dossier['id']}/submit",
            headers={**SECRETAIRE, "If-Match": "latest"},
        )
        assert response.status_code == 400


# =============================================================================
# Public quitus verification
# =============================================================================


class TestVerifyQuitus:

    @pytest.fixture
    def quitus(self, client, add_gate_evidence):
        dossier_id = finalised(client, add_gate_evidence)["dossier"]["id"]
        return client.get(f"/api/dossiers/{dossier_id}/quitus", headers=AGENT_COMPTABLE).json()

    def test_authentic(self, client, quitus):
        response = client.get(
            f"/verify-quitus/{quitus['numeroQuitus']}", params={"hash": quitus["hash"]},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["valid"] is True
        assert body["message"] == "Document authentique"
        assert body["quitus"]["securite"]["hash"] == quitus["hash"]

    def test_public_without_identity(self, client, quitus):
        response = client.get(
            f"/verify-quitus/{quitus['numeroQuitus']}",
            params={"hash": quitus["hash"]},
            headers={"X-User-Id": "", "X-User-Role": ""},
        )
        assert response.status_code == 200

    def test_flipped_hash_rejected_and_logged(self, client, session_factory, quitus):
        digest = quitus["hash"]
        forged = ("0" if digest[0] != "0" else "1") + digest[1:]

        response = client.get(
            f"/verify-quitus/{quitus['numeroQuitus']}",
            params={"hash": forged},
            headers={"x-forwarded-for": "198.51.100.4", "user-agent": "scanner/1.0"},
        )

        assert response.status_code == 400
        assert response.json()["valid"] is False
        assert response.json()["error"] == "Document non authentique"

        with session_factory() as session:
            rows = session.execute(
                select(QuitusVerificationModel)
                .where(QuitusVerificationModel.quitus_id == quitus["numeroQuitus"])
            ).scalars().all()
        assert [(r.resultat, r.ip_address, r.user_agent) for r in rows] == [
            ("NON_AUTHENTIQUE", "198.51.100.4", "scanner/1.0"),
        ]

    def test_missing_hash(self, client, quitus):
        response = client.get(f"/verify-quitus/{quitus['numeroQuitus']}")
        assert response.status_code == 400
        assert response.json() == {"valid": False, "error": "Hash de vérification manquant"}

    def test_unknown_quitus(self, client):
        response = client.get("/verify-quitus/QUITUS-NOPE", params={"hash": "0" * 16})
        assert response.status_code == 404
        assert response.json()["error"] == "Quitus non trouvé"
