"""
Authentication Error Taxonomy

Request-time errors (subclasses of AuthenticationError) are caught at the
API boundary and turned into one generic response, so a caller cannot tell
an unknown identity from an expired challenge or a failed signature.
The specific class is kept for internal logs.

ConfigurationError is raised at startup and is fatal.
"""
from typing import Optional

GENERIC_AUTH_FAILURE = "Authentication failed"
GENERIC_ISSUE_FAILURE = "Unable to initiate authentication"


class AuthenticationError(Exception):
    """Base class for request-time authentication failures."""

    kind = "authentication_error"

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.details = details

    @property
    def public_message(self) -> str:
        return GENERIC_AUTH_FAILURE


class ResolutionError(AuthenticationError):
    """No DID is associated with the identity reference."""
    kind = "resolution_error"


class ServiceUnavailable(AuthenticationError):
    """A downstream dependency was unreachable, failed, or timed out."""
    kind = "service_unavailable"


class ChallengeInvalid(AuthenticationError):
    """Challenge unknown, expired, mismatched, or already consumed."""
    kind = "challenge_invalid"


class SignatureInvalid(AuthenticationError):
    """The identity service rejected the signature."""
    kind = "signature_invalid"


class ConfigurationError(Exception):
    """Missing or unusable configuration; the service must not start."""
