"""Custom exception types for the mail triage service.

Messages should say what failed, where, and how to fix it when a fix is
known (e.g. which config key is missing).
"""


class TriageError(Exception):
    """Base exception for all mail triage errors."""

    pass


class ConfigError(TriageError):
    """Raised for missing credentials or malformed configuration.

    Fatal at startup: the process exits before any remote call is made.
    """

    pass


class ConfigLoadError(ConfigError):
    """Raised when config.yaml cannot be loaded (file not found, YAML parse error)."""

    pass


class ConfigValidationError(ConfigError):
    """Raised when config.yaml fails Pydantic validation.

    Includes specific field errors with actionable messages.
    """

    pass


class RemoteCallError(TriageError):
    """Raised when the JMAP server returns a non-success response.

    Covers both HTTP-level failures and JMAP method-level errors
    (an ``["error", {...}, callId]`` entry in methodResponses).

    Attributes:
        status_code: HTTP status code, if the failure was at the HTTP level
        error_type: JMAP error type (e.g. ``invalidArguments``), if available
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        error_type: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.error_type = error_type


class NotFoundError(TriageError):
    """Raised when a required remote resource (e.g. the scan folder) is absent."""

    pass


class InvalidRequestError(TriageError):
    """Raised for missing or invalid fields at the interactive HTTP boundary."""

    pass


class LedgerError(TriageError):
    """Raised when a ledger file cannot be read or written."""

    pass
