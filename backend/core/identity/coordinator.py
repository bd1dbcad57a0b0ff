"""
Authentication Coordinator

Turns a signed challenge into a session bound to the DID.

Per attempt:
    ISSUED -> CHECKING_FRESHNESS -> CHECKING_SIGNATURE -> AUTHENTICATED | REJECTED

1. The challenge is consumed from the store before anything else happens, so
   stale or replayed attempts never reach the identity service and a
   challenge can be answered only once.
2. The signature is checked by the identity service, under a bounded timeout.
   The store lock is not held during this call.
3. On success a session is minted for the DID.

Nothing is retried here. A failed attempt needs a new challenge.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from backend.core.identity.challenges import ChallengeStore, PendingChallenge
from backend.core.identity.dids import is_valid_did, short_did
from backend.core.identity.errors import (
    AuthenticationError,
    ChallengeInvalid,
    ServiceUnavailable,
    SignatureInvalid,
)
from backend.core.identity.sessions import (
    DID_CHALLENGE_METHOD,
    SessionAttributes,
    SessionCredential,
    SessionIssuer,
)
from backend.core.identity.verifier import SignatureVerifier, VerificationResult

logger = logging.getLogger(__name__)

DEFAULT_VERIFIER_TIMEOUT_SECONDS = 10.0


class AttemptState(str, Enum):
    ISSUED = "issued"
    CHECKING_FRESHNESS = "checking_freshness"
    CHECKING_SIGNATURE = "checking_signature"
    AUTHENTICATED = "authenticated"
    REJECTED = "rejected"


@dataclass(frozen=True)
class Principal:
    """
    An authenticated subject.

    Attributes:
        subject: The verified DID
        attributes: Display metadata for the session
        strategy: Name of the strategy that authenticated the subject
    """
    subject: str
    attributes: SessionAttributes = field(default_factory=SessionAttributes)
    strategy: str = DID_CHALLENGE_METHOD


@dataclass
class _Attempt:
    did: str
    state: AttemptState = AttemptState.ISSUED

    def advance(self, state: AttemptState) -> None:
        logger.debug(f"Attempt for {short_did(self.did)}: {self.state.value} -> {state.value}")
        self.state = state


class AuthenticationCoordinator:
    """Orchestrates challenge freshness, signature verification and session minting."""

    def __init__(
        self,
        store: ChallengeStore,
        verifier: SignatureVerifier,
        sessions: SessionIssuer,
        verifier_timeout: float = DEFAULT_VERIFIER_TIMEOUT_SECONDS,
    ):
        self.store = store
        self.verifier = verifier
        self.sessions = sessions
        self.verifier_timeout = verifier_timeout

    async def verify(self, did: str, challenge: str, signature: str) -> SessionCredential:
        """
        Authenticate a signed challenge and mint a session for the DID.

        Raises:
            ChallengeInvalid: Unknown, expired, mismatched or consumed challenge
            SignatureInvalid: The identity service rejected the signature
            ServiceUnavailable: The identity service failed or timed out
        """
        principal = await self.authenticate(did, challenge, signature)
        return self.sessions.mint(principal.subject, principal.attributes, auth_method=principal.strategy)

    async def authenticate(
        self,
        did: str,
        challenge: str,
        signature: str,
        claimed_email: Optional[str] = None,
    ) -> Principal:
        """
        Check freshness and signature of a challenge response.

        Args:
            did: DID the challenge was issued to
            challenge: The challenge value
            signature: Signature over the challenge (opaque)
            claimed_email: Client-supplied email; never trusted, only compared for logs

        Returns:
            Principal whose subject is the DID
        """
        attempt = _Attempt(did=did)
        try:
            pending = self._check_freshness(attempt, did, challenge)
            result = await self._check_signature(attempt, did, challenge, signature)
        except AuthenticationError as e:
            attempt.advance(AttemptState.REJECTED)
            logger.warning(
                f"Authentication rejected for {short_did(did)}: {e.kind} ({e})"
                + (f" - {e.details}" if e.details else "")
            )
            raise

        attributes = self._session_attributes(result, pending, claimed_email)
        attempt.advance(AttemptState.AUTHENTICATED)
        logger.info(f"Authenticated {short_did(did)}")
        return Principal(subject=did, attributes=attributes, strategy=DID_CHALLENGE_METHOD)

    def _check_freshness(self, attempt: _Attempt, did: str, challenge: str) -> PendingChallenge:
        attempt.advance(AttemptState.CHECKING_FRESHNESS)

        if not is_valid_did(did) or not challenge:
            raise ChallengeInvalid("Malformed challenge response")

        pending = self.store.claim(did, challenge)
        if pending is None:
            raise ChallengeInvalid("Challenge unknown, expired or already used")
        return pending

    async def _check_signature(
        self, attempt: _Attempt, did: str, challenge: str, signature: str
    ) -> VerificationResult:
        attempt.advance(AttemptState.CHECKING_SIGNATURE)

        if not signature:
            raise SignatureInvalid("Empty signature")

        try:
            result = await asyncio.wait_for(
                self.verifier.verify(did, challenge, signature),
                timeout=self.verifier_timeout,
            )
        except asyncio.TimeoutError:
            raise ServiceUnavailable(
                f"Signature verification exceeded {self.verifier_timeout}s"
            )

        if not result.is_valid:
            raise SignatureInvalid("Signature rejected by identity service")
        return result

    @staticmethod
    def _session_attributes(
        result: VerificationResult,
        pending: PendingChallenge,
        claimed_email: Optional[str],
    ) -> SessionAttributes:
        """Prefer attributes vouched for by the identity service, then the directory-bound email."""
        user = result.user
        email = (user.email if user else None) or pending.identity_reference
        name = user.name if user else None

        if claimed_email and email and claimed_email.strip().lower() != email.lower():
            logger.debug(f"Ignoring client-supplied email for {short_did(pending.did)}")

        return SessionAttributes(email=email, name=name)
