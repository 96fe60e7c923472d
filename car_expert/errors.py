"""
Error taxonomy for the diagnostic protocol.

Every failure a caller can observe is one of these types. The HTTP layer
translates transport exceptions and status codes into them; nothing above
that layer handles httpx exceptions directly.

All error paths leave the session's transcript and state exactly as they
were before the failing call.
"""

from typing import Optional


class DiagnosticError(Exception):
    """Base class for all diagnostic client errors."""


class AuthenticationExpired(DiagnosticError):
    """
    Credential missing or rejected by the Session Authority (HTTP 401).

    Never retried automatically. The caller must re-authenticate.
    """


class ValidationRejected(DiagnosticError):
    """
    Request rejected as malformed (HTTP 422, or local pre-check such as a
    missing diagnostic type). User-correctable.
    """

    def __init__(self, message: str, detail: Optional[object] = None):
        super().__init__(message)
        self.detail = detail


class MalformedResponse(DiagnosticError):
    """
    Response matched neither the expected shape nor exactly one branch of
    a tagged union. Fatal to the current session.
    """


class TransportFailure(DiagnosticError):
    """
    Network error, timeout, or unexpected HTTP status. The caller may retry.

    Attributes:
        status_code: HTTP status when a response was received, else None
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ContractViolation(DiagnosticError):
    """
    Operation issued out of order for the session's current state
    (answer before start, start twice, answer after conclusion,
    overlapping calls on one session).
    """
