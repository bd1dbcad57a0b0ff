"""
Challenge Store

Holds outstanding challenges issued to DIDs until they are answered or expire.

Features:
- At most one outstanding challenge per DID (a new one replaces the old)
- Consume-on-attempt: a lookup removes the entry whether or not it matches
- Lazy eviction on lookup plus a background sweep of expired entries
- Bounded size

Entries live in memory only and are never persisted. A restart simply
invalidates every outstanding challenge.
"""

import logging
import secrets
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from backend.core.identity.dids import short_did

logger = logging.getLogger(__name__)


# Default lifetime of a challenge
DEFAULT_CHALLENGE_TTL_SECONDS = 300

# Cleanup interval for expired entries
CLEANUP_INTERVAL_SECONDS = 60

# Maximum outstanding challenges (memory limit)
MAX_PENDING_CHALLENGES = 100_000


@dataclass(frozen=True)
class PendingChallenge:
    """
    A challenge waiting for a signed response.

    Attributes:
        did: DID the challenge was issued to
        challenge: The random challenge value
        identity_reference: Identity reference (email) that resolved to the DID
        created_at: Unix timestamp of creation
        expires_at: Unix timestamp of expiration
    """
    did: str
    challenge: str
    identity_reference: Optional[str]
    created_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class ChallengeStore:
    """
    Thread-safe in-memory challenge storage keyed by DID.

    take()/claim() are atomic: of several concurrent attempts with the same
    (did, challenge) exactly one succeeds.
    """

    def __init__(
        self,
        cleanup_interval: int = CLEANUP_INTERVAL_SECONDS,
        max_pending: int = MAX_PENDING_CHALLENGES,
        clock: Callable[[], float] = time.time,
    ):
        self._pending: Dict[str, PendingChallenge] = {}
        self._lock = threading.RLock()
        self._clock = clock
        self._cleanup_interval = cleanup_interval
        self._max_pending = max_pending
        self._stop_event = threading.Event()
        self._cleanup_thread: Optional[threading.Thread] = None

    def start(self) -> None:
        """Start the background cleanup thread."""
        if self._cleanup_thread and self._cleanup_thread.is_alive():
            return

        self._stop_event.clear()
        self._cleanup_thread = threading.Thread(
            target=self._cleanup_loop, name="challenge-sweeper", daemon=True
        )
        self._cleanup_thread.start()
        logger.info(f"Challenge store sweeper started (interval={self._cleanup_interval}s)")

    def stop(self) -> None:
        """Stop the background cleanup thread."""
        self._stop_event.set()
        if self._cleanup_thread:
            self._cleanup_thread.join(timeout=5)
            self._cleanup_thread = None
        logger.info("Challenge store sweeper stopped")

    def _cleanup_loop(self) -> None:
        while not self._stop_event.wait(self._cleanup_interval):
            self.sweep()

    def sweep(self) -> int:
        """
        Remove expired challenges.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        with self._lock:
            expired = [did for did, entry in self._pending.items() if entry.is_expired(now)]
            for did in expired:
                del self._pending[did]

        if expired:
            logger.info(f"Swept {len(expired)} expired challenges")
        return len(expired)

    def put(
        self,
        did: str,
        challenge: str,
        ttl: int = DEFAULT_CHALLENGE_TTL_SECONDS,
        identity_reference: Optional[str] = None,
    ) -> PendingChallenge:
        """
        Register a pending challenge for a DID.

        Any challenge still outstanding for the same DID is replaced.

        Args:
            did: DID the challenge is bound to
            challenge: Random challenge value
            ttl: Seconds until the challenge expires
            identity_reference: Identity reference that resolved to the DID

        Returns:
            The stored entry
        """
        if ttl <= 0:
            raise ValueError(f"Challenge TTL must be positive, got {ttl}")

        now = self._clock()
        entry = PendingChallenge(
            did=did,
            challenge=challenge,
            identity_reference=identity_reference,
            created_at=now,
            expires_at=now + ttl,
        )

        with self._lock:
            replaced = self._pending.pop(did, None)
            if replaced is None and len(self._pending) >= self._max_pending:
                self._enforce_limit(now)
            self._pending[did] = entry

        if replaced is not None:
            logger.debug(f"Replaced outstanding challenge for {short_did(did)}")
        return entry

    def claim(self, did: str, challenge: str) -> Optional[PendingChallenge]:
        """
        Consume the outstanding challenge for a DID.

        The entry is removed whatever the outcome, so a challenge can be
        attempted only once.

        Returns:
            The consumed entry if it matched and had not expired, None otherwise
        """
        now = self._clock()
        with self._lock:
            entry = self._pending.pop(did, None)

        if entry is None:
            return None
        if entry.is_expired(now):
            return None
        if not secrets.compare_digest(entry.challenge.encode("utf-8"), challenge.encode("utf-8")):
            return None
        return entry

    def take(self, did: str, challenge: str) -> bool:
        """
        Atomically check and consume a challenge.

        Returns:
            True exactly once for a valid, unexpired (did, challenge) pair
        """
        return self.claim(did, challenge) is not None

    def _enforce_limit(self, now: float) -> None:
        """Drop expired entries, then the soonest-expiring ones (caller must hold lock)."""
        expired = [did for did, entry in self._pending.items() if entry.is_expired(now)]
        for did in expired:
            del self._pending[did]

        overflow = len(self._pending) - self._max_pending + 1
        if overflow <= 0:
            return

        oldest = sorted(self._pending.values(), key=lambda e: e.expires_at)[:overflow]
        for entry in oldest:
            del self._pending[entry.did]
        logger.warning(f"Challenge store full: evicted {len(oldest)} outstanding challenges")

    def count(self) -> int:
        """Number of outstanding challenges (including not yet swept expired ones)."""
        with self._lock:
            return len(self._pending)

    def clear(self) -> None:
        """Drop every outstanding challenge."""
        with self._lock:
            count = len(self._pending)
            self._pending.clear()
        logger.info(f"Cleared {count} challenges")
