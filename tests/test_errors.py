"""Tests for error classification."""

from __future__ import annotations

import pytest

from docflow.errors import (
    AppError,
    ErrorSeverity,
    ExtractionError,
    ExtractionErrorKind,
    ModelError,
    ModelErrorKind,
    PreconditionError,
    StageError,
    classify_error,
)


class TestRetryable:
    @pytest.mark.parametrize(
        "kind, retryable",
        [
            (ModelErrorKind.UNAUTHORIZED, False),
            (ModelErrorKind.NOT_FOUND, False),
            (ModelErrorKind.RATE_LIMITED, True),
            (ModelErrorKind.SERVICE_UNAVAILABLE, True),
            (ModelErrorKind.NETWORK_ERROR, True),
            (ModelErrorKind.UNKNOWN, True),
        ],
    )
    def test_model_errors(self, kind, retryable):
        assert ModelError("x", kind).retryable is retryable

    def test_extraction_errors(self):
        assert not ExtractionError("x", ExtractionErrorKind.UNSUPPORTED_FORMAT).retryable
        assert ExtractionError("x").retryable

    def test_precondition_never_retryable(self):
        assert PreconditionError.retryable is False


def test_stage_error_keeps_cause_details():
    cause = ModelError("busy", ModelErrorKind.SERVICE_UNAVAILABLE, status_code=503, provider="google")
    error = StageError(cause, agent_name="Cleaner", stage_index=0, chunk_index=1, total_chunks=4)

    assert str(error) == "Cleaner failed on chunk 2/4: busy"
    assert error.kind is ModelErrorKind.SERVICE_UNAVAILABLE
    assert error.status_code == 503
    assert error.provider == "google"
    assert error.cause is cause


class TestClassifyError:
    def test_precondition(self):
        app_error = classify_error(PreconditionError("No agents"), "AI workflow")
        assert app_error.kind == "precondition"
        assert app_error.severity is ErrorSeverity.WARNING
        assert app_error.message == "No agents"
        assert not app_error.retryable

    def test_unsupported_file(self):
        error = ExtractionError("Unsupported file type: .exe", ExtractionErrorKind.UNSUPPORTED_FORMAT)
        app_error = classify_error(error, "File processing")
        assert app_error.kind == "extraction.unsupported_format"
        assert app_error.title == "Unsupported File Type"
        assert app_error.details == "File processing"
        assert not app_error.retryable

    def test_malformed_file(self):
        app_error = classify_error(ExtractionError("broken"))
        assert app_error.kind == "extraction.malformed_file"
        assert app_error.title == "File Processing Failed"
        assert app_error.retryable

    @pytest.mark.parametrize(
        "kind, title",
        [
            (ModelErrorKind.UNAUTHORIZED, "Authentication Failed"),
            (ModelErrorKind.RATE_LIMITED, "Rate Limit Reached"),
            (ModelErrorKind.NOT_FOUND, "Model Not Found"),
            (ModelErrorKind.SERVICE_UNAVAILABLE, "Service Unavailable"),
            (ModelErrorKind.NETWORK_ERROR, "Connection Error"),
            (ModelErrorKind.UNKNOWN, "AI Processing Error"),
        ],
    )
    def test_model_error_titles(self, kind, title):
        app_error = classify_error(ModelError("raw provider text", kind), "AI workflow")
        assert app_error.kind == f"model.{kind.value}"
        assert app_error.title == title
        assert app_error.details == "AI workflow: raw provider text"
        assert app_error.severity is ErrorSeverity.ERROR

    def test_unexpected_exception(self):
        app_error = classify_error(KeyError("steps"))
        assert app_error.kind == "unknown"
        assert app_error.severity is ErrorSeverity.CRITICAL
        assert app_error.retryable

    def test_serializes_to_json(self):
        data = classify_error(ModelError("x", ModelErrorKind.RATE_LIMITED)).model_dump(mode="json")
        assert data["severity"] == "error"
        assert isinstance(data["timestamp"], str)
        assert AppError.model_validate(data).kind == "model.rate_limited"
