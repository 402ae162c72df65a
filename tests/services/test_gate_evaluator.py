"""
Tests for ValidationGateEvaluator -- the single CB gate computation.

Covers:
- existence-only satisfaction of both gates, fixed missing order
- idempotence (no writes, identical results)
- fail-closed store failures reported as "Erreur de vérification"
- the validation-status payload is built from the same evaluation
"""

from uuid import uuid4

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from acge_kernel.domain.gates import (
    MISSING_CONTROLES_FOND,
    MISSING_OPERATION_TYPE,
    VERIFICATION_ERROR,
)
from acge_kernel.exceptions import InfrastructureError
from acge_kernel.models.audit_event import AuditEvent
from acge_kernel.selectors.validation_selector import ValidationSelector
from acge_kernel.services.gate_evaluator import (
    ValidationGateEvaluator,
    gate_evaluation_payload,
)


class FailingOperationTypeSelector(ValidationSelector):
    """Operation-type lookup fails; fond-control lookup works."""

    def operation_type_check(self, dossier_id):
        raise InfrastructureError("validations_cb_lookup", "OperationalError")


def _failing_execute(*args, **kwargs):
    raise OperationalError("SELECT", {}, Exception("connection refused"))


class TestEvaluateGates:

    def test_no_records(self, gate_evaluator, create_dossier):
        dossier = create_dossier()
        evaluation = gate_evaluator.evaluate_gates(dossier.id)

        assert not evaluation.has_operation_type_validation
        assert not evaluation.has_controles_fond_validation
        assert not evaluation.can_validate
        assert evaluation.missing_validations == (MISSING_OPERATION_TYPE, MISSING_CONTROLES_FOND)

    def test_only_operation_type(self, gate_evaluator, create_dossier, add_gate_evidence):
        dossier = create_dossier()
        add_gate_evidence(dossier.id, controles_fond=False)

        evaluation = gate_evaluator.evaluate_gates(dossier.id)
        assert evaluation.has_operation_type_validation
        assert evaluation.missing_validations == (MISSING_CONTROLES_FOND,)

    def test_both_present(self, gate_evaluator, create_dossier, add_gate_evidence):
        dossier = create_dossier()
        add_gate_evidence(dossier.id)

        evaluation = gate_evaluator.evaluate_gates(dossier.id)
        assert evaluation.can_validate
        assert evaluation.missing_validations == ()

    def test_rejected_fond_control_still_counts(
        self, gate_evaluator, create_dossier, add_gate_evidence,
    ):
        """Existence only: a fond control with valide false satisfies the gate."""
        dossier = create_dossier()
        add_gate_evidence(dossier.id, fond_valide=False)

        evaluation = gate_evaluator.evaluate_gates(dossier.id)
        assert evaluation.can_validate
        assert evaluation.controles_fond.failed_records == 1

    def test_unknown_dossier_not_satisfied(self, gate_evaluator):
        evaluation = gate_evaluator.evaluate_gates(uuid4())
        assert not evaluation.can_validate
        assert not evaluation.has_errors

    def test_idempotent_and_read_only(self, session, gate_evaluator, create_dossier, add_gate_evidence):
        dossier = create_dossier()
        add_gate_evidence(dossier.id, controles_fond=False)
        audit_count = session.execute(select(func.count(AuditEvent.id))).scalar_one()

        first = gate_evaluator.evaluate_gates(dossier.id)
        second = gate_evaluator.evaluate_gates(dossier.id)

        assert first == second
        assert not session.new and not session.dirty
        assert session.execute(select(func.count(AuditEvent.id))).scalar_one() == audit_count

    def test_counts_in_details(self, gate_evaluator, create_dossier, add_gate_evidence):
        dossier = create_dossier()
        add_gate_evidence(dossier.id)
        add_gate_evidence(dossier.id, operation_type=False, fond_valide=False)

        payload = gate_evaluation_payload(gate_evaluator.evaluate_gates(dossier.id))
        assert payload["details"]["operationType"]["count"] == 1
        assert payload["details"]["controlesFond"]["count"] == 2
        assert payload["details"]["controlesFond"]["failedCount"] == 1
        assert payload["details"]["operationType"]["lastValidation"] is not None


class TestStoreFailures:
    """A failed lookup is never satisfied and is reported distinctly."""

    def test_one_lookup_fails(self, session, create_dossier, add_gate_evidence):
        dossier = create_dossier()
        add_gate_evidence(dossier.id)
        evaluator = ValidationGateEvaluator(session, FailingOperationTypeSelector(session))

        evaluation = evaluator.evaluate_gates(dossier.id)

        assert not evaluation.can_validate
        assert evaluation.has_controles_fond_validation
        assert evaluation.missing_validations == (VERIFICATION_ERROR,)
        assert evaluation.errors == ("operation_type",)

    def test_selector_translates_store_errors(self, session, monkeypatch):
        selector = ValidationSelector(session)
        monkeypatch.setattr(session, "execute", _failing_execute)

        with pytest.raises(InfrastructureError) as exc_info:
            selector.operation_type_check(uuid4())
        assert exc_info.value.operation == "validations_cb_lookup"
        assert exc_info.value.detail == "OperationalError"

    def test_both_lookups_fail(self, session, monkeypatch):
        evaluator = ValidationGateEvaluator(session)
        monkeypatch.setattr(session, "execute", _failing_execute)

        evaluation = evaluator.evaluate_gates(uuid4())
        assert not evaluation.can_validate
        assert evaluation.missing_validations == (VERIFICATION_ERROR,)
        assert set(evaluation.errors) == {"operation_type", "controles_fond"}

    def test_failure_is_logged(self, session, captured_logs):
        evaluator = ValidationGateEvaluator(session, FailingOperationTypeSelector(session))
        evaluator.evaluate_gates(uuid4())

        logs = captured_logs()
        failed = [r for r in logs if r["message"] == "gate_lookup_failed"]
        assert failed and failed[0]["category"] == "operation_type"


class TestStatusView:

    def test_payload_shape(self, gate_evaluator, create_dossier):
        dossier = create_dossier()
        payload = gate_evaluator.status_view(dossier.id)

        assert payload["dossierId"] == str(dossier.id)
        assert payload["canValidate"] is False
        assert payload["missingValidations"] == [MISSING_OPERATION_TYPE, MISSING_CONTROLES_FOND]
        assert payload["errors"] == []

    def test_view_agrees_with_evaluation(self, gate_evaluator, create_dossier, add_gate_evidence):
        dossier = create_dossier()
        add_gate_evidence(dossier.id)
        evaluation = gate_evaluator.evaluate_gates(dossier.id)

        assert gate_evaluator.status_view(dossier.id)["canValidate"] == evaluation.can_validate
