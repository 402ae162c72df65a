"""Tests for the pure gate and synthesis decision rules."""

from datetime import datetime, timezone
from uuid import uuid4

import pytest

from acge_kernel.domain.gates import (
    MISSING_CONTROLES_FOND,
    MISSING_OPERATION_TYPE,
    VERIFICATION_ERROR,
    GateCategory,
    GateCheck,
    evaluate_gate_checks,
)
from acge_kernel.domain.synthesis import SynthesisStatus, derive_synthesis_status

OP = GateCategory.OPERATION_TYPE
FOND = GateCategory.CONTROLES_FOND


class TestEvaluateGateChecks:

    def test_both_present(self):
        evaluation = evaluate_gate_checks(
            uuid4(), GateCheck(OP, record_count=1), GateCheck(FOND, record_count=3),
        )
        assert evaluation.can_validate
        assert evaluation.missing_validations == ()
        assert not evaluation.has_errors

    def test_both_missing_in_fixed_order(self):
        evaluation = evaluate_gate_checks(uuid4(), GateCheck(OP), GateCheck(FOND))
        assert not evaluation.can_validate
        assert evaluation.missing_validations == (
            MISSING_OPERATION_TYPE,
            MISSING_CONTROLES_FOND,
        )

    def test_labels(self):
        assert MISSING_OPERATION_TYPE == "Validation du type d'opération"
        assert MISSING_CONTROLES_FOND == "Contrôles de fond"

    def test_failed_fond_control_rows_still_satisfy(self):
        """Existence only: rows with valide false count toward the gate."""
        fond = GateCheck(FOND, record_count=2, failed_records=2)
        evaluation = evaluate_gate_checks(uuid4(), GateCheck(OP, record_count=1), fond)
        assert evaluation.has_controles_fond_validation
        assert evaluation.can_validate

    def test_lookup_failure_fails_closed(self):
        evaluation = evaluate_gate_checks(
            uuid4(),
            GateCheck.failed(OP, "OperationalError"),
            GateCheck(FOND, record_count=1),
        )
        assert not evaluation.can_validate
        assert evaluation.missing_validations == (VERIFICATION_ERROR,)
        assert evaluation.errors == ("operation_type",)

    def test_verification_error_listed_once(self):
        evaluation = evaluate_gate_checks(
            uuid4(),
            GateCheck.failed(OP, "boom"),
            GateCheck.failed(FOND, "boom"),
        )
        assert evaluation.missing_validations == (VERIFICATION_ERROR,)
        assert evaluation.errors == ("operation_type", "controles_fond")

    def test_error_plus_missing(self):
        evaluation = evaluate_gate_checks(
            uuid4(), GateCheck(OP), GateCheck.failed(FOND, "boom"),
        )
        assert evaluation.missing_validations == (MISSING_OPERATION_TYPE, VERIFICATION_ERROR)

    def test_pure(self):
        dossier_id = uuid4()
        checks = (
            GateCheck(OP, record_count=1, last_created_at=datetime(2024, 1, 1, tzinfo=timezone.utc)),
            GateCheck(FOND),
        )
        assert evaluate_gate_checks(dossier_id, *checks) == evaluate_gate_checks(dossier_id, *checks)


class TestGateCheckValidity:

    @pytest.mark.parametrize("check,expected", [
        (GateCheck(FOND, record_count=2), True),
        (GateCheck(FOND, record_count=2, failed_records=1), False),
        (GateCheck(FOND), False),
        (GateCheck.failed(FOND, "OperationalError"), False),
    ])
    def test_all_valid(self, check, expected):
        assert check.all_valid is expected

    def test_failed_record_still_satisfies_gate(self):
        check = GateCheck(FOND, record_count=1, failed_records=1)
        assert check.satisfied
        assert not check.all_valid


class TestDeriveSynthesisStatus:

    @pytest.mark.parametrize("total,rejetees,expected", [
        (0, 0, SynthesisStatus.EN_COURS),
        (5, 0, SynthesisStatus.VALIDE),
        (5, 1, SynthesisStatus.REJETE),
        (1, 1, SynthesisStatus.REJETE),
    ])
    def test_rule(self, total, rejetees, expected):
        assert derive_synthesis_status(total, rejetees) is expected

    def test_wire_values(self):
        assert SynthesisStatus.VALIDE.value == "VALIDÉ"
        assert SynthesisStatus.REJETE.value == "REJETÉ"
