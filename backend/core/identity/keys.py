"""
Session Signing Keys

Key material for signing session tokens, held in a key ring indexed by key
identifier (kid). Tokens carry the kid in their header so that validation
can pick the right key, and old keys can stay in the ring for validation
while a new key signs.

Supported algorithms:
- HS256: shared secret (SESSION_SIGNING_KEY)
- EdDSA: Ed25519 private key in PEM format (SESSION_SIGNING_KEY_PATH);
  previous keys are base64 public key files as written by save_keypair()
"""

import base64
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

from backend.core.identity.errors import ConfigurationError

logger = logging.getLogger(__name__)

MIN_SECRET_LENGTH = 32


def generate_keypair() -> Tuple[Ed25519PrivateKey, Ed25519PublicKey]:
    """
    Generate a new Ed25519 keypair.

    Returns:
        Tuple of (private_key, public_key)
    """
    private_key = Ed25519PrivateKey.generate()
    return private_key, private_key.public_key()


def public_key_to_base64(public_key: Ed25519PublicKey) -> str:
    """Serialize a public key to a base64-encoded string (44 characters)."""
    raw_bytes = public_key.public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )
    return base64.b64encode(raw_bytes).decode("ascii")


def base64_to_public_key(b64_key: str) -> Ed25519PublicKey:
    """
    Deserialize a base64-encoded public key string.

    Raises:
        ValueError: If the key is invalid or wrong length
    """
    try:
        raw_bytes = base64.b64decode(b64_key)
        if len(raw_bytes) != 32:
            raise ValueError(f"Invalid public key length: {len(raw_bytes)} bytes (expected 32)")
        return Ed25519PublicKey.from_public_bytes(raw_bytes)
    except Exception as e:
        raise ValueError(f"Invalid public key: {e}") from e


def save_keypair(
    private_key: Ed25519PrivateKey,
    public_key: Ed25519PublicKey,
    directory: Path,
    name: str = "session",
) -> Tuple[Path, Path]:
    """
    Save a keypair to files.

    Creates two files:
    - {name}.key (private key, PEM format, mode 0600)
    - {name}.pub (public key, base64)

    Returns:
        Tuple of (private_key_path, public_key_path)
    """
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)

    private_path = directory / f"{name}.key"
    public_path = directory / f"{name}.pub"

    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    private_path.write_bytes(private_pem)
    os.chmod(private_path, 0o600)

    public_path.write_text(public_key_to_base64(public_key) + "\n")

    return private_path, public_path


def load_private_key(path: Path) -> Ed25519PrivateKey:
    """
    Load a private key from a PEM file.

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If key is invalid
    """
    path = Path(path)
    pem_data = path.read_bytes()

    try:
        private_key = serialization.load_pem_private_key(pem_data, password=None)
    except Exception as e:
        raise ValueError(f"Failed to load private key from {path}: {e}") from e

    if not isinstance(private_key, Ed25519PrivateKey):
        raise ValueError(f"Not an Ed25519 key: {type(private_key)}")
    return private_key


def load_public_key(path: Path) -> Ed25519PublicKey:
    """Load a public key from a base64 file."""
    path = Path(path)
    return base64_to_public_key(path.read_text().strip())


@dataclass(frozen=True)
class SigningKey:
    """
    One entry of the key ring.

    Attributes:
        kid: Key identifier carried in token headers
        algorithm: JWT algorithm name
        signing_key: Material used to sign (None for validation-only keys)
        verification_key: Material used to validate
    """
    kid: str
    algorithm: str
    signing_key: Optional[Any]
    verification_key: Any

    @property
    def can_sign(self) -> bool:
        return self.signing_key is not None


class KeyRing:
    """Active signing key plus validation-only previous keys."""

    def __init__(self, active: SigningKey, previous: Optional[Dict[str, SigningKey]] = None):
        if not active.can_sign:
            raise ConfigurationError(f"Active session key '{active.kid}' cannot sign")

        self.active = active
        self._keys: Dict[str, SigningKey] = dict(previous or {})
        if active.kid in self._keys:
            raise ConfigurationError(f"Duplicate session key id '{active.kid}'")
        self._keys[active.kid] = active

    def get(self, kid: Optional[str]) -> Optional[SigningKey]:
        """Look up a key by identifier (validate-time lookup)."""
        if not kid:
            return None
        return self._keys.get(kid)

    @property
    def key_ids(self):
        return sorted(self._keys)


def hs256_key(kid: str, secret: str, can_sign: bool = True) -> SigningKey:
    if not secret or len(secret) < MIN_SECRET_LENGTH:
        raise ConfigurationError(
            f"Session key '{kid}' must be at least {MIN_SECRET_LENGTH} characters"
        )
    return SigningKey(
        kid=kid,
        algorithm="HS256",
        signing_key=secret if can_sign else None,
        verification_key=secret,
    )


def _parse_previous_keys(raw: str) -> Dict[str, str]:
    """Parse 'kid:material,kid:material' into a dict."""
    entries: Dict[str, str] = {}
    for item in (raw or "").split(","):
        item = item.strip()
        if not item:
            continue
        kid, sep, material = item.partition(":")
        if not sep or not kid.strip() or not material.strip():
            raise ConfigurationError(
                f"Invalid SESSION_PREVIOUS_KEYS entry '{item[:16]}...' (expected kid:material)"
            )
        entries[kid.strip()] = material.strip()
    return entries


def load_key_ring(settings) -> KeyRing:
    """
    Build the session key ring from settings.

    Called once at startup.

    Raises:
        ConfigurationError: If the signing key is missing or unusable
    """
    algorithm = settings.session_signing_algorithm
    kid = settings.session_signing_key_id
    previous_raw = _parse_previous_keys(settings.session_previous_keys)

    if algorithm == "HS256":
        if not settings.session_signing_key:
            raise ConfigurationError("SESSION_SIGNING_KEY must be set")
        active = hs256_key(kid, settings.session_signing_key)
        previous = {
            pkid: hs256_key(pkid, secret, can_sign=False)
            for pkid, secret in previous_raw.items()
        }

    elif algorithm == "EdDSA":
        if not settings.session_signing_key_path:
            raise ConfigurationError("SESSION_SIGNING_KEY_PATH must be set for EdDSA")
        try:
            private_key = load_private_key(Path(settings.session_signing_key_path).expanduser())
        except (OSError, ValueError) as e:
            raise ConfigurationError(f"Cannot load session signing key: {e}") from e
        active = SigningKey(
            kid=kid,
            algorithm="EdDSA",
            signing_key=private_key,
            verification_key=private_key.public_key(),
        )
        previous = {}
        for pkid, path in previous_raw.items():
            try:
                public_key = load_public_key(Path(path).expanduser())
            except (OSError, ValueError) as e:
                raise ConfigurationError(f"Cannot load previous session key '{pkid}': {e}") from e
            previous[pkid] = SigningKey(
                kid=pkid, algorithm="EdDSA", signing_key=None, verification_key=public_key
            )

    else:
        raise ConfigurationError(f"Unsupported session signing algorithm '{algorithm}'")

    ring = KeyRing(active, previous)
    logger.info(
        f"Session key ring loaded: active={kid} ({algorithm}), "
        f"validation keys={ring.key_ids}"
    )
    return ring
