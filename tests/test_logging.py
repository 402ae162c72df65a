"""Tests for the structured logging system (acge_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from acge_kernel.domain.dossier import DossierStatus
from acge_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_log(stream: StringIO) -> dict:
    """Parse the first JSON log line from a stream."""
    line = stream.getvalue().strip().split("\n")[0]
    return json.loads(line)


def _parse_all_logs(stream: StringIO) -> list[dict]:
    """Parse all JSON log lines from a stream."""
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


# ---------------------------------------------------------------------------
# StructuredFormatter tests
# ---------------------------------------------------------------------------


class TestStructuredFormatter:
    """Tests for JSON log output format."""

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "acge_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("dossier_transitioned", extra={"row_version": 3, "operation": "submit"})

        record = _parse_log(stream)
        assert record["row_version"] == 3
        assert record["operation"] == "submit"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        LogContext.set(correlation_id="abc-123", dossier_id="d-456")
        logger.info("test_msg")

        record = _parse_log(stream)
        assert record["correlation_id"] == "abc-123"
        assert record["dossier_id"] == "d-456"

    def test_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        try:
            raise ValueError("boom")
        except ValueError:
            logger.error("failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "traceback" in record

    def test_kernel_exception_code_extracted(self):
        """Kernel exceptions carry a .code attribute and structured fields."""
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        from acge_kernel.exceptions import PreconditionFailedError

        try:
            raise PreconditionFailedError(
                "d-1", "submit", "EN_ATTENTE", allowed_statuses=("BROUILLON",),
            )
        except PreconditionFailedError:
            logger.error("transition_error", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "PRECONDITION_FAILED"
        assert record["exc_type"] == "PreconditionFailedError"
        assert record["exc_current_status"] == "EN_ATTENTE"
        assert record["exc_allowed_statuses"] == ["BROUILLON"]

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("bare_message")

        record = _parse_log(stream)
        assert "correlation_id" not in record
        assert "dossier_id" not in record

    def test_values_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        uid = uuid4()
        logger.info(
            "with_values",
            extra={
                "dossier_uuid": uid,
                "montant": Decimal("1500.50"),
                "statut": DossierStatus.VALIDE_CB,
            },
        )

        record = _parse_log(stream)
        assert record["dossier_uuid"] == str(uid)
        assert record["montant"] == "1500.50"
        assert record["statut"] == "VALIDÉ_CB"

    def test_non_ascii_kept(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("Contrôles de fond")

        assert "Contrôles de fond" in stream.getvalue()

    def test_valid_json_every_line(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        logs = _parse_all_logs(stream)
        # Default level is INFO, so the debug line is dropped
        assert len(logs) == 2
        for record in logs:
            assert "ts" in record
            assert "level" in record
            assert "logger" in record
            assert "message" in record


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:
    """Tests for context propagation."""

    def test_set_and_get(self):
        LogContext.set(correlation_id="x", actor_id="y")
        assert LogContext.get_all() == {"correlation_id": "x", "actor_id": "y"}

    def test_clear(self):
        LogContext.set(correlation_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_context_manager(self):
        LogContext.set(dossier_id="outer")
        with LogContext.bind(dossier_id="inner"):
            assert LogContext.get_all()["dossier_id"] == "inner"
        assert LogContext.get_all()["dossier_id"] == "outer"

    def test_bind_restores_none(self):
        """bind() restores to None if there was no previous value."""
        assert "quitus_id" not in LogContext.get_all()
        with LogContext.bind(quitus_id="QUITUS-1"):
            assert LogContext.get_all()["quitus_id"] == "QUITUS-1"
        assert "quitus_id" not in LogContext.get_all()

    def test_bind_ignores_unknown_fields(self):
        with LogContext.bind(unknown_field="x", actor_role="ADMIN"):
            assert LogContext.get_all() == {"actor_role": "ADMIN"}

    def test_all_fields(self):
        LogContext.set(
            correlation_id="c",
            actor_id="a",
            actor_role="r",
            dossier_id="d",
            quitus_id="q",
        )
        ctx = LogContext.get_all()
        assert len(ctx) == 5
        assert ctx["quitus_id"] == "q"


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:
    """Tests for initialization."""

    def test_idempotent(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)  # second call is no-op
        root = logging.getLogger("acge_kernel")
        assert sum(h is h1 for h in root.handlers) == 1
        assert h2 not in root.handlers

    def test_get_logger_returns_child(self):
        logger = get_logger("services.dossier_workflow")
        assert logger.name == "acge_kernel.services.dossier_workflow"

    def test_logger_hierarchy(self):
        """Child loggers inherit the acge_kernel root config."""
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        child = get_logger("deep.nested.module")
        child.debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["message"] == "hierarchy_test"
        assert record["logger"] == "acge_kernel.deep.nested.module"
