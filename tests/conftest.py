"""
Pytest fixtures for the ACGE kernel test suite.

Provides:
- An in-memory SQLite engine shared by the whole run (tables created once)
- Per-test sessions isolated by an outer transaction that is rolled back
- Actors per role, services wired on the test session
- Factories that drive a dossier to a given workflow stage

Environment Variables:
- DATABASE_URL: run the suite against another database (e.g. PostgreSQL).
  Defaults to ``sqlite://``.
"""

import json
import logging
import os
from collections.abc import Callable
from datetime import datetime, timezone
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import UUID

import pytest
from sqlalchemy.orm import Session

import acge_kernel.models  # noqa: F401
from acge_kernel.db.base import Base
from acge_kernel.db.engine import build_engine
from acge_kernel.domain.clock import DeterministicClock
from acge_kernel.domain.dossier import ActorContext, Dossier, DossierDraft, Role
from acge_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from acge_kernel.models.synthese import SyntheseVerificationModel
from acge_kernel.models.validation import (
    ControleFondValidationModel,
    OperationTypeValidationModel,
)
from acge_kernel.services.auditor_service import AuditorService
from acge_kernel.services.dossier_workflow_service import DossierWorkflowService
from acge_kernel.services.gate_evaluator import ValidationGateEvaluator
from acge_kernel.services.quitus_service import QuitusService
from acge_kernel.services.synthesis_service import SynthesisService

DEFAULT_DATABASE_URL = "sqlite://"
TEST_BASE_URL = "https://acge.example.org"


def get_database_url() -> str:
    """Get database URL from environment, or use in-memory SQLite."""
    return os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture acge_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, workflow, actors):
            workflow.submit(actors.secretaire, dossier.id)
            logs = captured_logs()
            assert any(r["message"] == "dossier_transitioned" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("acge_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture(scope="session")
def db_engine():
    """Single engine for the entire test session, tables created once."""
    eng = build_engine(get_database_url())
    Base.metadata.drop_all(eng)
    Base.metadata.create_all(eng)
    yield eng
    Base.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture
def session(db_engine) -> Generator[Session, None, None]:
    """Provide a database session for testing.

    The session joins an outer transaction on a dedicated connection;
    ``session.commit()`` inside a test only releases a savepoint, and the
    outer transaction is rolled back at teardown.
    """
    conn = db_engine.connect()
    trans = conn.begin()
    sess = Session(bind=conn, join_transaction_mode="create_savepoint", expire_on_commit=False)
    yield sess
    try:
        sess.close()
    finally:
        try:
            trans.rollback()
        finally:
            conn.close()


# =============================================================================
# Clock and actors
# =============================================================================


@pytest.fixture
def deterministic_clock():
    """Provide a deterministic clock for testing."""
    return DeterministicClock(datetime(2024, 3, 15, 9, 30, 0, tzinfo=timezone.utc))


class Actors:
    """One actor per role, plus a second secretary."""

    secretaire = ActorContext("user-secretaire", Role.SECRETAIRE)
    other_secretaire = ActorContext("user-secretaire-2", Role.SECRETAIRE)
    cb = ActorContext("user-cb", Role.CONTROLEUR_BUDGETAIRE)
    ordonnateur = ActorContext("user-ordonnateur", Role.ORDONNATEUR)
    agent_comptable = ActorContext("user-ac", Role.AGENT_COMPTABLE)
    admin = ActorContext("user-admin", Role.ADMIN)


@pytest.fixture
def actors() -> type[Actors]:
    return Actors


# =============================================================================
# Service fixtures
# =============================================================================


@pytest.fixture
def auditor_service(session: Session, deterministic_clock):
    """Provide an AuditorService instance."""
    return AuditorService(session, deterministic_clock)


@pytest.fixture
def gate_evaluator(session: Session):
    return ValidationGateEvaluator(session)


@pytest.fixture
def synthesis_service(session, auditor_service, deterministic_clock):
    return SynthesisService(session, auditor_service, clock=deterministic_clock)


@pytest.fixture
def quitus_service(session, auditor_service, deterministic_clock):
    return QuitusService(session, auditor_service, TEST_BASE_URL, clock=deterministic_clock)


@pytest.fixture
def workflow(session, deterministic_clock, auditor_service, gate_evaluator, quitus_service):
    """Provide a DossierWorkflowService wired to the shared test services."""
    return DossierWorkflowService(
        session,
        clock=deterministic_clock,
        auditor=auditor_service,
        gate_evaluator=gate_evaluator,
        quitus_service=quitus_service,
        base_url=TEST_BASE_URL,
    )


# =============================================================================
# Data factories
# =============================================================================


def make_draft(**overrides) -> DossierDraft:
    values = {
        "objet_operation": "Achat de fournitures de bureau",
        "beneficiaire": "Société Générale d'Équipement",
        "numero_nature": "NAT-6011",
        "montant": Decimal("1500000"),
        "poste_comptable": "PC Libreville",
    }
    values.update(overrides)
    return DossierDraft(**values)


@pytest.fixture
def create_dossier(workflow, actors) -> Callable[..., Dossier]:
    """Factory fixture: create a BROUILLON dossier owned by the secretary."""

    def _create(actor: ActorContext | None = None, **overrides) -> Dossier:
        return workflow.create_dossier(actor or actors.secretaire, make_draft(**overrides)).dossier

    return _create


@pytest.fixture
def add_gate_evidence(session, deterministic_clock):
    """Factory fixture: insert gate evidence rows for a dossier."""

    def _add(
        dossier_id: UUID,
        operation_type: bool = True,
        controles_fond: bool = True,
        fond_valide: bool = True,
    ) -> None:
        now = deterministic_clock.now()
        if operation_type:
            session.add(OperationTypeValidationModel(
                dossier_id=dossier_id,
                type_operation_id="TYPE-DEPENSE",
                validated_by="user-cb",
                created_at=now,
            ))
        if controles_fond:
            session.add(ControleFondValidationModel(
                dossier_id=dossier_id,
                controle_fond_id="CF-PIECES",
                valide=fond_valide,
                validated_by="user-cb",
                created_at=now,
            ))
        session.flush()

    return _add


@pytest.fixture
def put_synthesis(session, deterministic_clock):
    """Factory fixture: write a pre-aggregated synthesis row directly."""

    def _put(
        dossier_id: UUID,
        statut: str = "VALIDÉ",
        total: int = 5,
        rejetees: int = 0,
    ) -> SyntheseVerificationModel:
        row = SyntheseVerificationModel(
            dossier_id=dossier_id,
            statut=statut,
            total_verifications=total,
            verifications_rejetees=rejetees,
            verifications_validees=total - rejetees,
            updated_at=deterministic_clock.now(),
        )
        session.add(row)
        session.flush()
        return row

    return _put


@pytest.fixture
def dossier_at(workflow, actors, create_dossier, add_gate_evidence, put_synthesis):
    """Factory fixture: a dossier driven through the workflow to ``stage``.

    Stages: "BROUILLON", "EN_ATTENTE", "VALIDÉ_CB", "REJETÉ_CB",
    "VALIDÉ_ORDONNATEUR", "VALIDÉ_DÉFINITIVEMENT".  Stages after VALIDÉ_CB
    carry a VALIDÉ synthesis unless ``synthesis`` is given (None for no row).
    """

    def _at(stage: str, synthesis: str | None = "VALIDÉ", **overrides) -> Dossier:
        dossier = create_dossier(**overrides)
        if stage == "BROUILLON":
            return dossier
        dossier = workflow.submit(actors.secretaire, dossier.id).dossier
        if stage == "EN_ATTENTE":
            return dossier
        if stage == "REJETÉ_CB":
            return workflow.cb_reject(actors.cb, dossier.id, "Pièces manquantes").dossier
        add_gate_evidence(dossier.id)
        dossier = workflow.cb_validate(actors.cb, dossier.id).dossier
        if stage == "VALIDÉ_CB":
            if synthesis is not None:
                put_synthesis(dossier.id, statut=synthesis)
            return dossier
        put_synthesis(dossier.id, statut="VALIDÉ")
        dossier = workflow.ordonnateur_validate(
            actors.ordonnateur, dossier.id, montant=Decimal("1500000"),
        ).dossier
        if stage == "VALIDÉ_ORDONNATEUR":
            return dossier
        return workflow.final_validate(actors.agent_comptable, dossier.id).dossier

    return _at
