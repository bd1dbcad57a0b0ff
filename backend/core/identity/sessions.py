"""
Session Tokens

Mints and validates the signed, time-bounded JWT handed to a client after a
successful authentication.

The subject (sub) of every token is the verified DID. Email and display
name are carried only as display metadata and are never used to authorize.

mint() and validate() are a pure pair over immutable claims: there is no
server-side session state and no revocation list. Expiry is checked on every
validation and is never extended.
"""

import logging
import secrets
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

import jwt

from backend.core.identity.dids import is_valid_did, short_did
from backend.core.identity.keys import KeyRing

logger = logging.getLogger(__name__)

DID_CHALLENGE_METHOD = "did-challenge"

DEFAULT_SESSION_TTL_SECONDS = 86400


@dataclass(frozen=True)
class SessionAttributes:
    """Display metadata carried in a session. Empty strings are stored as None."""
    email: Optional[str] = None
    name: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "email", self.email or None)
        object.__setattr__(self, "name", self.name or None)

    def to_claims(self) -> dict:
        claims = {}
        if self.email:
            claims["email"] = self.email
        if self.name:
            claims["name"] = self.name
        return claims


@dataclass(frozen=True)
class SessionClaims:
    """
    Validated contents of a session token.

    Attributes:
        subject: The DID the session is bound to
        attributes: Display metadata (email, name)
        issued_at: Unix timestamp the token was minted
        expires_at: Unix timestamp the token stops being valid
        token_id: Unique token identifier (jti)
        auth_method: Name of the strategy that authenticated the subject
        key_id: Key identifier the token was signed with
    """
    subject: str
    attributes: SessionAttributes = field(default_factory=SessionAttributes)
    issued_at: int = 0
    expires_at: int = 0
    token_id: str = ""
    auth_method: str = DID_CHALLENGE_METHOD
    key_id: str = ""

    @property
    def did(self) -> str:
        return self.subject


@dataclass(frozen=True)
class SessionCredential:
    """A freshly minted token and the claims it carries."""
    token: str
    claims: SessionClaims

    @property
    def expires_in(self) -> int:
        return self.claims.expires_at - self.claims.issued_at


class SessionIssuer:
    """Signs and validates session tokens with the configured key ring."""

    def __init__(
        self,
        key_ring: KeyRing,
        ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS,
        issuer: str = "wotid-auth",
        audience: str = "wotid-web",
        clock: Callable[[], float] = time.time,
    ):
        if ttl_seconds <= 0:
            raise ValueError("Session TTL must be positive")
        self.key_ring = key_ring
        self.ttl_seconds = ttl_seconds
        self.issuer = issuer
        self.audience = audience
        self._clock = clock

    def mint(
        self,
        did: str,
        attributes: Optional[SessionAttributes] = None,
        auth_method: str = DID_CHALLENGE_METHOD,
    ) -> SessionCredential:
        """
        Create a session token whose subject is the DID.

        Raises:
            ValueError: If did is not a DID
        """
        if not is_valid_did(did):
            raise ValueError("Session subject must be a DID")

        attributes = attributes or SessionAttributes()
        key = self.key_ring.active
        now = int(self._clock())

        claims = SessionClaims(
            subject=did,
            attributes=attributes,
            issued_at=now,
            expires_at=now + self.ttl_seconds,
            token_id=secrets.token_urlsafe(16),
            auth_method=auth_method,
            key_id=key.kid,
        )

        payload = {
            "sub": claims.subject,
            "iat": claims.issued_at,
            "exp": claims.expires_at,
            "jti": claims.token_id,
            "iss": self.issuer,
            "aud": self.audience,
            "amr": claims.auth_method,
            **attributes.to_claims(),
        }
        token = jwt.encode(
            payload,
            key.signing_key,
            algorithm=key.algorithm,
            headers={"kid": key.kid},
        )

        logger.info(
            f"Minted session for {short_did(did)} "
            f"(kid={key.kid}, method={auth_method}, ttl={self.ttl_seconds}s)"
        )
        return SessionCredential(token=token, claims=claims)

    def validate(self, token: Optional[str]) -> Optional[SessionClaims]:
        """
        Validate a session token.

        Checks the key identifier, signature, algorithm, issuer, audience,
        expiry and subject.

        Returns:
            SessionClaims if the token is valid, None otherwise
        """
        if not token or not isinstance(token, str):
            return None

        try:
            header = jwt.get_unverified_header(token)
        except jwt.InvalidTokenError as e:
            logger.debug(f"Malformed session token: {e}")
            return None

        key = self.key_ring.get(header.get("kid"))
        if key is None:
            logger.warning(f"Session token signed with unknown key id: {str(header.get('kid'))[:16]}")
            return None

        try:
            payload = jwt.decode(
                token,
                key.verification_key,
                algorithms=[key.algorithm],
                issuer=self.issuer,
                audience=self.audience,
                options={
                    "require": ["sub", "iat", "exp", "iss", "aud", "jti"],
                    "verify_signature": True,
                    # Time claims are checked below against the issuer's clock
                    "verify_exp": False,
                    "verify_iat": False,
                    "verify_iss": True,
                    "verify_aud": True,
                },
            )
        except jwt.InvalidTokenError as e:
            logger.info(f"Rejected session token: {type(e).__name__}")
            return None

        now = self._clock()
        try:
            issued_at = int(payload["iat"])
            expires_at = int(payload["exp"])
        except (TypeError, ValueError):
            return None

        if now >= expires_at:
            logger.debug("Rejected session token: expired")
            return None
        if issued_at > now:
            logger.info("Rejected session token: issued in the future")
            return None

        subject = payload.get("sub")
        if not isinstance(subject, str) or not is_valid_did(subject):
            logger.warning("Rejected session token: subject is not a DID")
            return None

        return SessionClaims(
            subject=subject,
            attributes=SessionAttributes(
                email=payload.get("email"),
                name=payload.get("name"),
            ),
            issued_at=issued_at,
            expires_at=expires_at,
            token_id=str(payload.get("jti", "")),
            auth_method=str(payload.get("amr", DID_CHALLENGE_METHOD)),
            key_id=key.kid,
        )


def to_session_view(claims: SessionClaims) -> dict:
    """
    Build the client-visible session structure.

    Returns a new dict on every call; the claims are not modified.
    """
    user = {"id": claims.subject, "did": claims.subject}
    if claims.attributes.email:
        user["email"] = claims.attributes.email
    if claims.attributes.name:
        user["name"] = claims.attributes.name

    return {
        "user": user,
        "auth_method": claims.auth_method,
        "expires": datetime.fromtimestamp(claims.expires_at, tz=timezone.utc).isoformat(),
    }
