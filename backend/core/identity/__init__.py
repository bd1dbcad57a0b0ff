"""
DID Challenge/Response Authentication

A user proves control of a DID by signing a server-issued challenge; the
proof is exchanged for a session token whose subject is the DID.

Flow:
    ChallengeIssuer.issue(email) -> (did, challenge)
    [client signs the challenge with the DID's key]
    AuthenticationCoordinator.verify(did, challenge, signature) -> session

Signature checks and email -> DID lookups are delegated to the identity service.
"""

from backend.core.identity.errors import (
    AuthenticationError,
    ResolutionError,
    ServiceUnavailable,
    ChallengeInvalid,
    SignatureInvalid,
    ConfigurationError,
)
from backend.core.identity.challenges import ChallengeStore, PendingChallenge
from backend.core.identity.issuer import ChallengeIssuer, IssuedChallenge
from backend.core.identity.verifier import (
    SignatureVerifier,
    HttpSignatureVerifier,
    VerificationResult,
)
from backend.core.identity.sessions import (
    SessionIssuer,
    SessionAttributes,
    SessionClaims,
    SessionCredential,
    to_session_view,
)
from backend.core.identity.coordinator import AuthenticationCoordinator, Principal
from backend.core.identity.strategies import AuthStrategy, DidChallengeStrategy, StrategyRegistry

__all__ = [
    # Errors
    "AuthenticationError",
    "ResolutionError",
    "ServiceUnavailable",
    "ChallengeInvalid",
    "SignatureInvalid",
    "ConfigurationError",
    # Challenges
    "ChallengeStore",
    "PendingChallenge",
    "ChallengeIssuer",
    "IssuedChallenge",
    # Verification
    "SignatureVerifier",
    "HttpSignatureVerifier",
    "VerificationResult",
    # Sessions
    "SessionIssuer",
    "SessionAttributes",
    "SessionClaims",
    "SessionCredential",
    "to_session_view",
    # Orchestration
    "AuthenticationCoordinator",
    "Principal",
    "AuthStrategy",
    "DidChallengeStrategy",
    "StrategyRegistry",
]
