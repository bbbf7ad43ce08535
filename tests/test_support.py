"""
Tests for the supporting pieces: lifecycle table, integrity-error
translation, log formatting and request context, request timing headers,
rate-limit hook order and key.
"""

import json
import logging
from types import SimpleNamespace

import pytest
from flask import g
from sqlalchemy.exc import IntegrityError

from review_api.core.exceptions import ConflictError, InvalidTransitionError, ValidationError
from review_api.middleware.logging_config import JSONFormatter, RequestContextFilter
from review_api.middleware.rate_limiter import rate_limit_key
from review_api.services.helpers.db_errors import translate_integrity_error
from review_api.services.review_application_lifecycle import resolve_transition
from tests.factories import member


class TestResolveTransition:
    @pytest.mark.parametrize("action,target", [("approve", "APPROVED"), ("reject", "REJECTED")])
    def test_from_pending(self, action, target):
        app = SimpleNamespace(id="a-1", status="PENDING")
        assert resolve_transition(app, action, strict=True) == target

    def test_terminal_lenient(self):
        app = SimpleNamespace(id="a-1", status="REJECTED")
        assert resolve_transition(app, "approve", strict=False) == "APPROVED"

    def test_terminal_strict(self):
        app = SimpleNamespace(id="a-1", status="REJECTED")
        with pytest.raises(InvalidTransitionError):
            resolve_transition(app, "approve", strict=True)

    def test_unknown_action(self):
        with pytest.raises(ValidationError):
            resolve_transition(SimpleNamespace(id="a-1", status="PENDING"), "withdraw", strict=False)


class TestTranslateIntegrityError:
    def _error(self, text):
        return IntegrityError("INSERT ...", {}, Exception(text))

    def test_unique(self):
        exc = translate_integrity_error(self._error("UNIQUE constraint failed: ai_workflows.name"),
                                        "AiWorkflow", "name", "x")
        assert isinstance(exc, ConflictError)

    def test_foreign_key(self):
        exc = translate_integrity_error(self._error("FOREIGN KEY constraint failed"), "AiWorkflowRun", "submissionId")
        assert isinstance(exc, ValidationError)

    def test_other_is_returned_unchanged(self):
        original = self._error("NOT NULL constraint failed: submissions.member_id")
        assert translate_integrity_error(original, "Submission", "memberId") is original


def test_json_formatter_includes_extras():
    record = logging.LogRecord("review_api.test", logging.INFO, __file__, 1, "hello %s", ("world",), None)
    record.user_id = "1001"
    record.submission_id = "sub-1"
    line = json.loads(JSONFormatter().format(record))
    assert line["message"] == "hello world"
    assert line["user_id"] == "1001"
    assert line["submission_id"] == "sub-1"
    assert line["level"] == "INFO"


def test_timing_headers(client):
    res = client.get("/api/v1/health/ready", headers={"X-Request-ID": "abc123"})
    assert res.headers["X-Request-ID"] == "abc123"
    assert float(res.headers["X-Request-Duration-Ms"]) >= 0


def test_request_context_filter_stamps_request_and_user(app):
    record = logging.LogRecord("review_api.test", logging.WARNING, __file__, 1, "denied", (), None)
    with app.test_request_context("/api/v1/health/live"):
        g.request_id = "req-42"
        g.identity = member("1001")
        RequestContextFilter().filter(record)

    assert record.request_id == "req-42"
    assert record.user_id == "1001"
    line = json.loads(JSONFormatter().format(record))
    assert line["request_id"] == "req-42"
    assert line["user_id"] == "1001"


def test_filter_outside_request_leaves_record_alone():
    record = logging.LogRecord("review_api.test", logging.INFO, __file__, 1, "startup", (), None)
    RequestContextFilter().filter(record)
    assert not hasattr(record, "request_id")
    assert "request_id" not in json.loads(JSONFormatter().format(record))


def test_rate_limit_check_runs_right_after_jwt(app):
    hooks = [getattr(f, "__name__", repr(f)) for f in app.before_request_funcs[None]]
    assert hooks.index("_check_rate_limit") == hooks.index("_jwt_auth") + 1


def test_rate_limit_key_prefers_user_id(app):
    with app.test_request_context("/api/v1/review-opportunities", environ_base={"REMOTE_ADDR": "10.0.0.7"}):
        assert rate_limit_key() == "10.0.0.7"
        g.identity = member("1001")
        assert rate_limit_key() == "user:1001"
