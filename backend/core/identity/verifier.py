"""
Signature Verifier

Client for the identity service that checks a signed challenge against the
keys registered in a DID document. This service is the only place where
cryptographic trust is established; nothing in this package verifies
signatures itself.

Request:
    POST {base_url}{verify_path}
    {"did": "...", "challenge": "...", "signature": "<compact JWS>"}

Response:
    {"isValid": true, "user": {"email": "...", "name": "..."}}
"""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

import httpx

from backend.core.identity.dids import short_did
from backend.core.identity.errors import ServiceUnavailable

logger = logging.getLogger(__name__)

HEALTH_CHECK_TIMEOUT_SECONDS = 5.0


@dataclass(frozen=True)
class VerifiedUser:
    """User attributes vouched for by the identity service."""
    email: Optional[str] = None
    name: Optional[str] = None


@dataclass(frozen=True)
class VerificationResult:
    """
    Outcome of a signature check.

    Attributes:
        is_valid: Whether the signature proves control of the DID
        user: Optional attributes returned by the identity service
    """
    is_valid: bool
    user: Optional[VerifiedUser] = None

    @classmethod
    def from_response(cls, data: dict) -> "VerificationResult":
        """Parse the identity service response body."""
        if not isinstance(data, dict) or not isinstance(data.get("isValid"), bool):
            raise ValueError("Response is missing boolean 'isValid'")

        user = None
        user_data = data.get("user")
        if isinstance(user_data, dict):
            email = user_data.get("email")
            name = user_data.get("name")
            user = VerifiedUser(
                email=email if isinstance(email, str) and email else None,
                name=name if isinstance(name, str) and name else None,
            )
        return cls(is_valid=data["isValid"], user=user)


class SignatureVerifier(Protocol):
    """Checks that a signature over a challenge was made with a DID's key."""

    async def verify(self, did: str, challenge: str, signature: str) -> VerificationResult:
        """
        Verify a signed challenge.

        Returns:
            VerificationResult (invalid signatures are not exceptions)

        Raises:
            ServiceUnavailable: The verifier could not be reached or failed
        """
        ...


class HttpSignatureVerifier:
    """SignatureVerifier backed by the identity service."""

    def __init__(
        self,
        base_url: str,
        verify_path: str = "/api/v1/identity/verify-signature",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.verify_path = verify_path
        self.timeout = timeout
        self._transport = transport

    @property
    def verify_url(self) -> str:
        return f"{self.base_url}{self.verify_path}"

    async def verify(self, did: str, challenge: str, signature: str) -> VerificationResult:
        payload = {
            "did": did,
            "challenge": challenge,
            "signature": signature,
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.verify_url, json=payload)
        except httpx.TimeoutException as e:
            raise ServiceUnavailable("Signature verification timed out", details=str(e))
        except httpx.RequestError as e:
            raise ServiceUnavailable("Failed to reach identity service", details=str(e))

        # The identity service answers 400 for malformed DIDs or JWS
        if 400 <= response.status_code < 500:
            logger.info(
                f"Identity service rejected verification request for {short_did(did)} "
                f"(status={response.status_code})"
            )
            return VerificationResult(is_valid=False)

        if not response.is_success:
            raise ServiceUnavailable(
                f"Identity service returned status {response.status_code}",
                details=response.text[:200],
            )

        try:
            return VerificationResult.from_response(response.json())
        except ValueError as e:
            raise ServiceUnavailable("Malformed verification response", details=str(e))

    async def health(self) -> Optional[str]:
        """
        Check identity service health.

        Returns:
            "ok" if the service answered 2xx, None otherwise
        """
        try:
            async with httpx.AsyncClient(
                timeout=HEALTH_CHECK_TIMEOUT_SECONDS, transport=self._transport
            ) as client:
                response = await client.get(f"{self.base_url}/health")
        except httpx.RequestError as e:
            logger.warning(f"Identity service health check failed: {e}")
            return None

        if response.is_success:
            return "ok"
        logger.warning(f"Identity service health check returned {response.status_code}")
        return None
