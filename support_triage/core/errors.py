"""Service-layer exceptions.

Services raise these; ``main`` maps them to HTTP status codes and the
``{"error": ...}`` body in one place.
"""


class SupportTriageError(Exception):
    """Base exception for support triage service errors."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(SupportTriageError):
    """Missing required field or value outside an enumerated set."""

    status_code = 400


class NotFoundError(SupportTriageError):
    """Referenced thread, conversation, or flag record does not exist."""

    status_code = 404


class ConflictError(SupportTriageError):
    """Concurrent writers kept colliding on the same row."""

    status_code = 409


class PolicyViolationError(ValidationError):
    """Status transition rejected by the configured transition policy."""
