"""
Error taxonomy for docflow.

Domain exceptions are raised by extraction, model clients and the pipeline.
classify_error() turns any of them into an AppError, the user-facing record
the web server and CLI present (title, message, retryable, ...).

Cancellation is deliberately absent: a stopped run is a normal outcome,
not an error.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


class ModelErrorKind(str, Enum):
    """Classification of model client failures."""

    UNAUTHORIZED = "unauthorized"
    RATE_LIMITED = "rate_limited"
    NOT_FOUND = "not_found"
    SERVICE_UNAVAILABLE = "service_unavailable"
    NETWORK_ERROR = "network_error"
    UNKNOWN = "unknown"


# Kinds that need reconfiguration rather than another attempt
NON_RETRYABLE_MODEL_ERRORS: frozenset[ModelErrorKind] = frozenset(
    {ModelErrorKind.UNAUTHORIZED, ModelErrorKind.NOT_FOUND}
)


class ExtractionErrorKind(str, Enum):
    """Classification of text extraction failures."""

    UNSUPPORTED_FORMAT = "unsupported_format"
    MALFORMED_FILE = "malformed_file"


class DocflowError(Exception):
    """Base exception for docflow."""

    pass


class PreconditionError(DocflowError):
    """Raised when a run is requested with missing text, agents or credentials."""

    retryable = False


class ExtractionError(DocflowError):
    """Raised when text cannot be extracted from an uploaded file."""

    def __init__(self, message: str, kind: ExtractionErrorKind = ExtractionErrorKind.MALFORMED_FILE):
        super().__init__(message)
        self.kind = kind

    @property
    def retryable(self) -> bool:
        return self.kind is not ExtractionErrorKind.UNSUPPORTED_FORMAT


class ModelError(DocflowError):
    """Raised by a model client when a generation call fails."""

    def __init__(
        self,
        message: str,
        kind: ModelErrorKind = ModelErrorKind.UNKNOWN,
        *,
        status_code: int | None = None,
        provider: str | None = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code
        self.provider = provider

    @property
    def retryable(self) -> bool:
        return self.kind not in NON_RETRYABLE_MODEL_ERRORS


class StageError(ModelError):
    """A model failure attributed to one stage and chunk of a run."""

    def __init__(
        self,
        cause: ModelError,
        *,
        agent_name: str,
        stage_index: int | None = None,
        chunk_index: int,
        total_chunks: int,
    ):
        super().__init__(
            f"{agent_name} failed on chunk {chunk_index + 1}/{total_chunks}: {cause}",
            cause.kind,
            status_code=cause.status_code,
            provider=cause.provider,
        )
        self.cause = cause
        self.agent_name = agent_name
        self.stage_index = stage_index
        self.chunk_index = chunk_index
        self.total_chunks = total_chunks


# -----------------------------------------------------------------------------
# User-facing presentation
# -----------------------------------------------------------------------------


class ErrorSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AppError(BaseModel):
    """Structured, displayable error."""

    kind: str
    severity: ErrorSeverity = ErrorSeverity.ERROR
    title: str
    message: str
    details: str | None = None
    retryable: bool = False
    dismissable: bool = True
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


_MODEL_ERROR_TEXT: dict[ModelErrorKind, tuple[str, str]] = {
    ModelErrorKind.UNAUTHORIZED: (
        "Authentication Failed",
        "The API key was rejected. Check the key in the model settings.",
    ),
    ModelErrorKind.RATE_LIMITED: (
        "Rate Limit Reached",
        "The request limit for this model was reached. Wait a few seconds and retry, "
        "or switch model.",
    ),
    ModelErrorKind.NOT_FOUND: (
        "Model Not Found",
        "The configured model does not exist or is not available. Check the model name.",
    ),
    ModelErrorKind.SERVICE_UNAVAILABLE: (
        "Service Unavailable",
        "The AI service is overloaded or failing. Retry in a few minutes.",
    ),
    ModelErrorKind.NETWORK_ERROR: (
        "Connection Error",
        "The AI service could not be reached. Check the network connection and retry.",
    ),
    ModelErrorKind.UNKNOWN: (
        "AI Processing Error",
        "Something went wrong while processing the text. Retry, or change model "
        "if the problem persists.",
    ),
}


def classify_error(error: BaseException, context: str | None = None) -> AppError:
    """
    Classify an exception into a displayable AppError.

    Args:
        error: The exception to classify
        context: Where it happened (e.g. "AI workflow", "File processing")

    Returns:
        AppError with severity, title, message and retry flags
    """
    if isinstance(error, PreconditionError):
        return AppError(
            kind="precondition",
            severity=ErrorSeverity.WARNING,
            title="Cannot Start Workflow",
            message=str(error),
            details=context,
            retryable=False,
        )

    if isinstance(error, ExtractionError):
        if error.kind is ExtractionErrorKind.UNSUPPORTED_FORMAT:
            title = "Unsupported File Type"
        else:
            title = "File Processing Failed"
        return AppError(
            kind=f"extraction.{error.kind.value}",
            title=title,
            message=str(error),
            details=context,
            retryable=error.retryable,
        )

    if isinstance(error, ModelError):
        title, message = _MODEL_ERROR_TEXT[error.kind]
        details = str(error)
        if context:
            details = f"{context}: {details}"
        return AppError(
            kind=f"model.{error.kind.value}",
            title=title,
            message=message,
            details=details,
            retryable=error.retryable,
        )

    return AppError(
        kind="unknown",
        severity=ErrorSeverity.CRITICAL,
        title="Unexpected Error",
        message=str(error) or type(error).__name__,
        details=context,
        retryable=True,
    )
