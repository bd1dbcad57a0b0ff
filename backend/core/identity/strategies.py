"""
Authentication Strategies

Every way of signing in is a strategy with one capability:

    authorize(credentials) -> Principal   (raises AuthenticationError to reject)

Strategies are registered by name in a StrategyRegistry, so each one can be
built and tested on its own and the API only needs the registry.
"""

import logging
from typing import Dict, List, Mapping, Optional, Protocol

from backend.core.identity.coordinator import AuthenticationCoordinator, Principal
from backend.core.identity.errors import ChallengeInvalid
from backend.core.identity.sessions import DID_CHALLENGE_METHOD

logger = logging.getLogger(__name__)


class AuthStrategy(Protocol):
    """A pluggable authentication strategy."""

    name: str

    async def authorize(self, credentials: Mapping[str, Optional[str]]) -> Principal:
        ...


class DidChallengeStrategy:
    """
    Sign in by signing a server-issued challenge with a DID key.

    Credentials:
        did: DID the challenge was issued to
        challenge: The issued challenge
        signature: Signature over the challenge
        email: Optional legacy identity reference (not trusted)
    """

    name = DID_CHALLENGE_METHOD

    def __init__(self, coordinator: AuthenticationCoordinator):
        self.coordinator = coordinator

    async def authorize(self, credentials: Mapping[str, Optional[str]]) -> Principal:
        did = (credentials.get("did") or "").strip()
        challenge = (credentials.get("challenge") or "").strip()
        signature = (credentials.get("signature") or "").strip()

        if not did or not challenge or not signature:
            logger.warning(
                f"Missing credentials for challenge-response authentication "
                f"(did={bool(did)}, challenge={bool(challenge)}, signature={bool(signature)})"
            )
            raise ChallengeInvalid("Missing challenge-response credentials")

        return await self.coordinator.authenticate(
            did, challenge, signature, claimed_email=credentials.get("email")
        )


class StrategyRegistry:
    """Named collection of authentication strategies."""

    def __init__(self, strategies: Optional[List[AuthStrategy]] = None):
        self._strategies: Dict[str, AuthStrategy] = {}
        for strategy in strategies or []:
            self.register(strategy)

    def register(self, strategy: AuthStrategy) -> None:
        if strategy.name in self._strategies:
            raise ValueError(f"Strategy '{strategy.name}' is already registered")
        self._strategies[strategy.name] = strategy
        logger.info(f"Registered authentication strategy: {strategy.name}")

    def get(self, name: str) -> Optional[AuthStrategy]:
        return self._strategies.get(name)

    def names(self) -> List[str]:
        return list(self._strategies)

    async def authorize(self, name: str, credentials: Mapping[str, Optional[str]]) -> Principal:
        """
        Authorize credentials with the named strategy.

        Raises:
            AuthenticationError: The strategy rejected the credentials,
                or no such strategy exists
        """
        strategy = self.get(name)
        if strategy is None:
            raise ChallengeInvalid(f"Unknown authentication strategy '{name[:32]}'")
        return await strategy.authorize(credentials)
