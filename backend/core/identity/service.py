"""
Authentication service wiring.

Builds every component of the authentication flow from settings once, at
startup. Any configuration problem raises ConfigurationError here, before
the API accepts traffic.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from backend.core.config import Settings, validate_settings
from backend.core.identity.challenges import ChallengeStore
from backend.core.identity.coordinator import AuthenticationCoordinator
from backend.core.identity.directory import (
    HttpIdentityDirectory,
    IdentityDirectory,
    StaticIdentityDirectory,
)
from backend.core.identity.errors import ConfigurationError
from backend.core.identity.issuer import ChallengeIssuer
from backend.core.identity.keys import load_key_ring
from backend.core.identity.sessions import SessionIssuer
from backend.core.identity.strategies import DidChallengeStrategy, StrategyRegistry
from backend.core.identity.verifier import HttpSignatureVerifier, SignatureVerifier
from backend.core.paths import get_config_path

logger = logging.getLogger(__name__)


@dataclass
class AuthService:
    """Everything the API needs to authenticate users."""
    settings: Settings
    store: ChallengeStore
    directory: IdentityDirectory
    verifier: SignatureVerifier
    issuer: ChallengeIssuer
    sessions: SessionIssuer
    coordinator: AuthenticationCoordinator
    strategies: StrategyRegistry

    def start(self) -> None:
        self.store.start()

    def stop(self) -> None:
        self.store.stop()


def build_directory(settings: Settings) -> IdentityDirectory:
    """Create the identity directory selected by IDENTITY_DIRECTORY_BACKEND."""
    if settings.identity_directory_backend == "static":
        path = get_config_path(settings.identity_directory_file)
        if path is None:
            raise ConfigurationError(
                f"Static identity directory '{settings.identity_directory_file}' not found"
            )
        return StaticIdentityDirectory.from_yaml(path)

    return HttpIdentityDirectory(
        settings.identity_service_base_url,
        resolve_path=settings.identity_resolve_path,
        timeout=settings.directory_timeout_seconds,
    )


def build_auth_service(
    settings: Settings,
    directory: Optional[IdentityDirectory] = None,
    verifier: Optional[SignatureVerifier] = None,
) -> AuthService:
    """
    Build the authentication service.

    Args:
        settings: Application settings
        directory: Identity directory override (defaults to the configured one)
        verifier: Signature verifier override (defaults to the identity service client)

    Raises:
        ConfigurationError: If settings are missing or unusable
    """
    validate_settings(settings)
    key_ring = load_key_ring(settings)

    store = ChallengeStore(
        cleanup_interval=settings.challenge_cleanup_interval_seconds,
        max_pending=settings.max_pending_challenges,
    )
    directory = directory or build_directory(settings)
    verifier = verifier or HttpSignatureVerifier(
        settings.identity_service_base_url,
        verify_path=settings.identity_verify_path,
        timeout=settings.verifier_timeout_seconds,
    )
    sessions = SessionIssuer(
        key_ring,
        ttl_seconds=settings.session_ttl_seconds,
        issuer=settings.session_issuer,
        audience=settings.session_audience,
    )
    issuer = ChallengeIssuer(
        directory,
        store,
        ttl_seconds=settings.challenge_ttl_seconds,
        challenge_bytes=settings.challenge_bytes,
    )
    coordinator = AuthenticationCoordinator(
        store,
        verifier,
        sessions,
        verifier_timeout=settings.verifier_timeout_seconds,
    )
    strategies = StrategyRegistry([DidChallengeStrategy(coordinator)])

    logger.info(
        f"Authentication service configured (directory={settings.identity_directory_backend}, "
        f"challenge_ttl={settings.challenge_ttl_seconds}s, session_ttl={settings.session_ttl_seconds}s)"
    )
    return AuthService(
        settings=settings,
        store=store,
        directory=directory,
        verifier=verifier,
        issuer=issuer,
        sessions=sessions,
        coordinator=coordinator,
        strategies=strategies,
    )
