"""
Structured logging of part operations.

Verifies:
- Records are single JSON objects; values render the way audit payloads do.
- Kernel errors are logged with their code and structured fields.
- LogContext bindings nest, restore, and refuse unknown field names.
- configure_logging() installs its handler once and can re-level later.
- PartService binds actor, operation and part around every call, and
  logs rejected and failed operations with that context.
"""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from bom_kernel.domain.commands import ActorContext
from bom_kernel.domain.lifecycle import PartStatus
from bom_kernel.exceptions import InvalidTransitionError
from bom_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    describe_exception,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    reset_logging()
    yield
    reset_logging()


@pytest.fixture
def json_stream():
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    configure_logging(handler=handler, level=logging.DEBUG)

    def _records() -> list[dict]:
        return [json.loads(line) for line in stream.getvalue().splitlines() if line]

    _records.handler = handler
    return _records


class TestRecordFormat:
    def test_envelope_and_extras(self, json_stream):
        get_logger("services.nomenclature").info("bom_line_added", extra={"rang": 20})

        (record,) = json_stream()
        assert record["message"] == "bom_line_added"
        assert record["logger"] == "bom_kernel.services.nomenclature"
        assert record["level"] == "INFO"
        assert record["rang"] == 20
        assert record["ts"].endswith("+00:00")

    def test_values_render_like_audit_payloads(self, json_stream):
        line_id = uuid4()
        get_logger("t").info(
            "costed",
            extra={"line_id": line_id, "cout_mo": Decimal("288.00"), "statut": PartStatus.ACTIVE},
        )

        (record,) = json_stream()
        assert record["line_id"] == str(line_id)
        assert record["cout_mo"] == "288"
        assert record["statut"] == "ACTIVE"

    def test_unrenderable_extra_falls_back_to_str(self, json_stream):
        get_logger("t").info("odd", extra={"thing": object()})
        assert json_stream()[0]["thing"].startswith("<object object")

    def test_bound_context_wins_over_extra(self, json_stream):
        with LogContext.bind(operation="transition"):
            get_logger("t").info("part_status_changed", extra={"operation": "ignored"})

        record = json_stream()[0]
        assert record["operation"] == "transition"
        assert record["message"] == "part_status_changed"


class TestExceptionRendering:
    def test_kernel_error_fields(self):
        part_id = uuid4()
        described = describe_exception(InvalidTransitionError(part_id, "OBSOLETE", "ACTIVE"))

        assert described["type"] == "InvalidTransitionError"
        assert described["code"] == "INVALID_TRANSITION"
        assert described["part_id"] == str(part_id)
        assert described["from_status"] == "OBSOLETE"
        assert described["to_status"] == "ACTIVE"

    def test_plain_exception_has_no_code(self):
        assert describe_exception(ValueError("boom")) == {"type": "ValueError", "message": "boom"}

    def test_logged_under_error_key(self, json_stream):
        try:
            raise InvalidTransitionError(uuid4(), "DRAFT", "OBSOLETE")
        except InvalidTransitionError:
            get_logger("t").error("transition_failed", exc_info=True)

        record = json_stream()[0]
        assert record["error"]["code"] == "INVALID_TRANSITION"
        assert "Traceback" in record["traceback"]


class TestLogContext:
    def test_bind_nests_and_restores(self):
        with LogContext.bind(correlation_id="outer", actor_id="a"):
            with LogContext.bind(correlation_id="inner", part_id="p"):
                assert LogContext.get_all() == {
                    "correlation_id": "inner", "actor_id": "a", "part_id": "p",
                }
            assert LogContext.get_all() == {"correlation_id": "outer", "actor_id": "a"}
        assert LogContext.get_all() == {}

    def test_restored_after_exception(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(operation="delete_part"):
                raise RuntimeError
        assert LogContext.get_all() == {}

    def test_none_dropped_and_values_stringified(self):
        part_id = uuid4()
        with LogContext.bind(part_id=part_id, client_session_id=None):
            assert LogContext.get_all() == {"part_id": str(part_id)}

    def test_unknown_field_refused(self):
        with pytest.raises(TypeError):
            LogContext.set(trace_id="x")

    def test_actor_fields(self):
        actor = ActorContext(actor_id=uuid4(), path="/api/pieces-techniques/1", client_session_id="s-9")
        with LogContext.bind(**actor.log_fields()):
            assert LogContext.get_all() == {
                "actor_id": str(actor.actor_id),
                "client_session_id": "s-9",
                "request_path": "/api/pieces-techniques/1",
            }


class TestConfigureLogging:
    def test_handler_installed_once(self):
        first, second = logging.StreamHandler(StringIO()), logging.StreamHandler(StringIO())
        configure_logging(handler=first)
        configure_logging(handler=second)

        handlers = logging.getLogger("bom_kernel").handlers
        assert first in handlers
        assert second not in handlers
        assert isinstance(first.formatter, StructuredFormatter)

    def test_later_call_changes_level_only(self, json_stream):
        configure_logging(level="warning")
        get_logger("t").info("hidden")
        get_logger("t").warning("shown")

        assert [r["message"] for r in json_stream()] == ["shown"]

    def test_later_call_without_level_keeps_level(self):
        configure_logging(level=logging.ERROR)
        configure_logging()
        assert logging.getLogger("bom_kernel").level == logging.ERROR

    def test_unknown_level(self):
        with pytest.raises(ValueError):
            configure_logging(level="chatty")

    def test_reset_removes_handler(self, json_stream):
        reset_logging()
        kernel_logger = logging.getLogger("bom_kernel")
        assert json_stream.handler not in kernel_logger.handlers
        assert kernel_logger.propagate is True


class TestOperationLogging:
    @pytest.fixture
    def web_actor(self, test_actor_id):
        return ActorContext(
            actor_id=test_actor_id,
            path="/api/pieces-techniques/transition",
            client_session_id="sess-42",
        )

    def test_rejection_carries_actor_and_part(self, create_part, part_service, web_actor, captured_logs):
        part = create_part(statut=PartStatus.OBSOLETE)

        with pytest.raises(InvalidTransitionError):
            part_service.transition(part.id, PartStatus.ACTIVE, web_actor)

        (rejected,) = [r for r in captured_logs() if r["message"] == "part_operation_rejected"]
        assert rejected["operation"] == "transition"
        assert rejected["error_code"] == "INVALID_TRANSITION"
        assert rejected["part_id"] == str(part.id)
        assert rejected["actor_id"] == str(web_actor.actor_id)
        assert rejected["client_session_id"] == "sess-42"
        assert rejected["request_path"] == "/api/pieces-techniques/transition"

    def test_unexpected_error_logged_as_failure(self, create_part, part_service, web_actor, captured_logs):
        part = create_part()

        with pytest.raises(ValueError):
            part_service.transition(part.id, "ARCHIVED", web_actor)

        (failed,) = [r for r in captured_logs() if r["message"] == "part_operation_failed"]
        assert failed["level"] == "ERROR"
        assert failed["operation"] == "transition"
        assert failed["error"]["type"] == "ValueError"
        assert "code" not in failed["error"]

    def test_one_correlation_id_per_call(self, create_part, part_service, web_actor, captured_logs):
        part = create_part()
        part_service.transition(part.id, PartStatus.ACTIVE, web_actor)
        part_service.transition(part.id, PartStatus.IN_FABRICATION, web_actor)

        per_call = {}
        for record in captured_logs():
            if record.get("operation") == "transition":
                per_call.setdefault(record["correlation_id"], []).append(record["message"])

        assert len(per_call) == 2
        assert all("part_status_changed" in messages for messages in per_call.values())

    def test_context_cleared_after_call(self, create_part, part_service, web_actor):
        part = create_part()
        part_service.transition(part.id, PartStatus.ACTIVE, web_actor)
        assert LogContext.get_all() == {}
