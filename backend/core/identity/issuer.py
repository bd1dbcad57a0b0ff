"""
Challenge Issuer

Resolves an identity reference to its DID and hands out a fresh random
challenge for that DID to sign.
"""

import logging
import secrets
from dataclasses import dataclass

from backend.core.identity.challenges import ChallengeStore, DEFAULT_CHALLENGE_TTL_SECONDS
from backend.core.identity.dids import is_valid_did, short_did
from backend.core.identity.directory import IdentityDirectory, normalize_identity_reference
from backend.core.identity.errors import ResolutionError, ServiceUnavailable

logger = logging.getLogger(__name__)

# 32 random bytes = 256 bits of entropy
DEFAULT_CHALLENGE_BYTES = 32
MIN_CHALLENGE_BYTES = 16


@dataclass(frozen=True)
class IssuedChallenge:
    """A challenge handed to a client."""
    did: str
    challenge: str
    expires_at: float


def generate_challenge(num_bytes: int = DEFAULT_CHALLENGE_BYTES) -> str:
    """Generate an unpredictable URL-safe challenge."""
    if num_bytes < MIN_CHALLENGE_BYTES:
        raise ValueError(f"Challenges need at least {MIN_CHALLENGE_BYTES} random bytes")
    return secrets.token_urlsafe(num_bytes)


class ChallengeIssuer:
    """Issues challenges for identity references."""

    def __init__(
        self,
        directory: IdentityDirectory,
        store: ChallengeStore,
        ttl_seconds: int = DEFAULT_CHALLENGE_TTL_SECONDS,
        challenge_bytes: int = DEFAULT_CHALLENGE_BYTES,
    ):
        if challenge_bytes < MIN_CHALLENGE_BYTES:
            raise ValueError(f"Challenges need at least {MIN_CHALLENGE_BYTES} random bytes")
        self.directory = directory
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.challenge_bytes = challenge_bytes

    async def issue(self, identity_reference: str) -> IssuedChallenge:
        """
        Issue a challenge for the DID registered to an identity reference.

        Replaces any challenge still outstanding for that DID.

        Raises:
            ResolutionError: No DID is associated with the reference
            ServiceUnavailable: The directory could not be queried
        """
        reference = normalize_identity_reference(identity_reference)
        if not reference:
            raise ResolutionError("Empty identity reference")

        did = await self.directory.resolve(reference)
        if not is_valid_did(did):
            raise ServiceUnavailable("Directory returned an invalid DID")

        challenge = generate_challenge(self.challenge_bytes)
        entry = self.store.put(did, challenge, ttl=self.ttl_seconds, identity_reference=reference)

        logger.info(f"Issued challenge for {short_did(did)} (ttl={self.ttl_seconds}s)")
        return IssuedChallenge(did=did, challenge=challenge, expires_at=entry.expires_at)
