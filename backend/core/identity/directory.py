"""
Identity Directory

Maps an identity reference (an email address) to the DID registered for it.

Implementations:
- HttpIdentityDirectory: asks the identity service
- StaticIdentityDirectory: reads a YAML mapping (development and tests)

Configuration format (config/identity_directory.yaml):
```yaml
identities:
  user@example.com: "did:iota:tst:0x1234"
```
"""

import logging
from pathlib import Path
from typing import Dict, Optional, Protocol

import httpx
import yaml

from backend.core.identity.dids import is_valid_did
from backend.core.identity.errors import ConfigurationError, ResolutionError, ServiceUnavailable

logger = logging.getLogger(__name__)


def normalize_identity_reference(identity_reference: str) -> str:
    """Emails are matched case-insensitively and without surrounding whitespace."""
    return (identity_reference or "").strip().lower()


class IdentityDirectory(Protocol):
    """Resolves identity references to DIDs."""

    async def resolve(self, identity_reference: str) -> str:
        """
        Look up the DID registered for an identity reference.

        Raises:
            ResolutionError: No DID is associated with the reference
            ServiceUnavailable: The directory could not be queried
        """
        ...


class HttpIdentityDirectory:
    """
    Directory backed by the identity service.

    POST {base_url}{resolve_path} with {"email": ...}
        200 {"did": "..."}  -> resolved
        404                 -> no DID registered
        anything else       -> service unavailable
    """

    def __init__(
        self,
        base_url: str,
        resolve_path: str = "/api/v1/identity/resolve",
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.resolve_path = resolve_path
        self.timeout = timeout
        self._transport = transport

    @property
    def resolve_url(self) -> str:
        return f"{self.base_url}{self.resolve_path}"

    async def resolve(self, identity_reference: str) -> str:
        email = normalize_identity_reference(identity_reference)
        if not email:
            raise ResolutionError("Empty identity reference")

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.resolve_url, json={"email": email})
        except httpx.TimeoutException as e:
            raise ServiceUnavailable("Identity directory timed out", details=str(e))
        except httpx.RequestError as e:
            raise ServiceUnavailable("Failed to reach identity directory", details=str(e))

        if response.status_code == 404:
            raise ResolutionError("No DID registered for identity reference")

        if response.status_code != 200:
            raise ServiceUnavailable(
                f"Identity directory returned status {response.status_code}",
                details=response.text[:200],
            )

        try:
            did = response.json().get("did")
        except (ValueError, AttributeError) as e:
            raise ServiceUnavailable("Malformed identity directory response", details=str(e))

        if not isinstance(did, str) or not is_valid_did(did):
            raise ServiceUnavailable("Identity directory returned an invalid DID")

        return did


class StaticIdentityDirectory:
    """Directory backed by an in-memory mapping of email -> DID."""

    def __init__(self, identities: Dict[str, str]):
        self._identities: Dict[str, str] = {}
        for email, did in identities.items():
            if not is_valid_did(did):
                raise ConfigurationError(f"Invalid DID for identity '{email}': {did!r}")
            self._identities[normalize_identity_reference(email)] = did

    @classmethod
    def from_yaml(cls, path: Path) -> "StaticIdentityDirectory":
        """Load the mapping from a YAML file."""
        try:
            with open(path) as f:
                config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to load identity directory {path}: {e}") from e

        if not isinstance(config, dict):
            raise ConfigurationError(f"{path} must contain a mapping")

        identities = config.get("identities") or {}
        if not isinstance(identities, dict):
            raise ConfigurationError(f"'identities' in {path} must be a mapping")

        directory = cls({str(k): str(v) for k, v in identities.items()})
        logger.info(f"Loaded {len(directory)} static identities from {path}")
        return directory

    def __len__(self) -> int:
        return len(self._identities)

    async def resolve(self, identity_reference: str) -> str:
        did = self._identities.get(normalize_identity_reference(identity_reference))
        if did is None:
            raise ResolutionError("No DID registered for identity reference")
        return did
