"""Core exception hierarchy for ExamForge.

This module defines all custom exceptions used throughout the package.
All exceptions inherit from ExamForgeError for unified error handling.
"""


class ExamForgeError(Exception):
    """Base exception for all ExamForge errors.

    All custom exceptions in the package inherit from this class,
    allowing callers to catch all ExamForge-specific errors with a single
    except clause.
    """

    def __init__(self, message: str, cause: Exception | None = None):
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            cause: Optional underlying exception that triggered this error.
        """
        super().__init__(message)
        self.message = message
        self.cause = cause

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.cause:
            return f"{self.message} (caused by: {self.cause})"
        return self.message


class ConfigError(ExamForgeError):
    """Raised when configuration validation fails.

    This includes invalid YAML files, missing required fields,
    type mismatches, or invalid prompt templates.
    """

    def __init__(
        self,
        message: str,
        field_path: str | None = None,
        cause: Exception | None = None,
    ):
        """Initialize the configuration error.

        Args:
            message: Human-readable error description.
            field_path: Optional dotted path to the problematic field
                (e.g., "validator.pass_threshold").
            cause: Optional underlying exception.
        """
        super().__init__(message, cause)
        self.field_path = field_path

    def __str__(self) -> str:
        """Return string representation including field path."""
        base_msg = super().__str__()
        if self.field_path:
            return f"{base_msg} (field: {self.field_path})"
        return base_msg


class ConfigOverrideError(ConfigError):
    """Raised when applying invalid configuration overrides.

    This occurs when attempting to override non-existent fields
    or with incompatible types.
    """

    pass


class GenerationError(ExamForgeError):
    """Raised when exam generation fails.

    Base class for every failure the generation pipeline can surface. The
    optional correlation id ties the error back to the request logs.
    """

    def __init__(
        self,
        message: str,
        correlation_id: str | None = None,
        cause: Exception | None = None,
    ):
        """Initialize the generation error.

        Args:
            message: Human-readable error description.
            correlation_id: Optional identifier of the failed request.
            cause: Optional underlying exception.
        """
        super().__init__(message, cause)
        self.correlation_id = correlation_id

    def __str__(self) -> str:
        """Return string representation including correlation id."""
        base_msg = super().__str__()
        if self.correlation_id:
            return f"{base_msg} (correlation_id: {self.correlation_id})"
        return base_msg


class TransportError(GenerationError):
    """Raised when the external generation call fails.

    Covers non-retryable provider errors, timeouts, and local model
    loading failures.
    """

    pass


class TransientTransportError(TransportError):
    """Raised when the generation call fails for a retryable reason.

    Service overloaded, unavailable, or rate limited. Retried in place with
    exponential backoff before it is surfaced.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        correlation_id: str | None = None,
        cause: Exception | None = None,
    ):
        """Initialize the transient transport error.

        Args:
            message: Human-readable error description.
            status_code: Optional HTTP status reported by the provider.
            correlation_id: Optional identifier of the failed request.
            cause: Optional underlying exception.
        """
        super().__init__(message, correlation_id=correlation_id, cause=cause)
        self.status_code = status_code


class DegenerateOutputError(GenerationError):
    """Raised when model output shows runaway length or repetition."""

    def __init__(
        self,
        message: str,
        reason: str | None = None,
        correlation_id: str | None = None,
    ):
        """Initialize the degenerate output error.

        Args:
            message: Human-readable error description.
            reason: Detector diagnosis (e.g., "length", "repetition").
            correlation_id: Optional identifier of the failed request.
        """
        super().__init__(message, correlation_id=correlation_id)
        self.reason = reason


class UnparseableOutputError(GenerationError):
    """Raised when every recovery strategy failed to produce structured data.

    Carries the first 200 characters of the offending text for diagnosis.
    """

    def __init__(
        self,
        message: str,
        snippet: str | None = None,
        correlation_id: str | None = None,
        cause: Exception | None = None,
    ):
        """Initialize the unparseable output error.

        Args:
            message: Human-readable error description.
            snippet: Leading characters of the raw text.
            correlation_id: Optional identifier of the failed request.
            cause: Optional underlying exception.
        """
        super().__init__(message, correlation_id=correlation_id, cause=cause)
        self.snippet = snippet


class NonPayloadError(UnparseableOutputError):
    """Raised when the text is obviously not a structured payload.

    Typically an HTML error page or XML document returned by a proxy.
    """

    pass


class SchemaViolationError(GenerationError):
    """Raised when a parsed document lacks mandatory top-level fields."""

    def __init__(
        self,
        message: str,
        snippet: str | None = None,
        correlation_id: str | None = None,
    ):
        """Initialize the schema violation error.

        Args:
            message: Human-readable error description.
            snippet: Leading characters of the raw text.
            correlation_id: Optional identifier of the failed request.
        """
        super().__init__(message, correlation_id=correlation_id)
        self.snippet = snippet


class ValidationFailedError(GenerationError):
    """Raised when the winning attempt scored below the pass threshold."""

    def __init__(
        self,
        message: str,
        score: int,
        errors: list[str] | None = None,
        warnings: list[str] | None = None,
        correlation_id: str | None = None,
    ):
        """Initialize the validation failure.

        Args:
            message: Human-readable error description.
            score: Validation score of the rejected question set.
            errors: Blocking findings.
            warnings: Non-blocking findings.
            correlation_id: Optional identifier of the failed request.
        """
        super().__init__(message, correlation_id=correlation_id)
        self.score = score
        self.errors = errors or []
        self.warnings = warnings or []

    def __str__(self) -> str:
        """Return string representation including the score."""
        return f"{super().__str__()} (score: {self.score})"


class GenerationCancelledError(GenerationError):
    """Raised when the caller cancelled generation between attempts."""

    pass


class StorageError(ExamForgeError):
    """Raised when the persistence collaborator cannot store an exam."""

    pass
