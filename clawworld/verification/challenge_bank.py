"""Challenge bank for proof-of-AI registration"""
import logging
import random
import secrets
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional

from .challenges import CHALLENGE_VARIANTS, ChallengeCategory, ChallengeVariant

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300

# Attempts at drawing a fresh ID before giving up on a colliding generator
MAX_ID_ATTEMPTS = 8


class VerificationOutcome(str, Enum):
    """Result of checking an answer against a pending challenge"""
    VALID = "valid"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    REJECTED = "rejected"


@dataclass
class PendingChallenge:
    """A challenge waiting for an answer"""
    challenge_id: str
    prompt: str
    variant: ChallengeVariant
    name: str
    issued_at: float
    expires_at: float

    @property
    def category(self) -> ChallengeCategory:
        return self.variant.category


@dataclass
class IssuedChallenge:
    """What the candidate gets back when a challenge is issued"""
    challenge_id: str
    prompt: str
    category: ChallengeCategory
    ttl_seconds: int

    def to_dict(self) -> dict:
        return {
            "challengeId": self.challenge_id,
            "question": self.prompt,
            "type": self.category.value,
            "expiresIn": self.ttl_seconds,
        }


class ChallengeBank:
    """
    Issues and checks proof-of-AI challenges.

    Pending challenges live in process memory only. Each issuance purges
    entries past their expiry; there is no background timer. A challenge
    validates successfully at most once.

    The map is guarded by a lock so the bank can be shared between threads.
    A multi-instance deployment needs a shared expiring key-value store
    (e.g. Redis with per-key TTL and GETDEL for single use) in its place.
    """

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
        id_factory: Callable[[], str] = lambda: secrets.token_hex(16),
        rng: Optional[random.Random] = None,
    ):
        """
        Initialize the challenge bank.

        Args:
            ttl_seconds: Lifetime of an issued challenge
            clock: Returns the current time in seconds
            id_factory: Returns a new unguessable challenge ID
            rng: Random source for picking categories and variants
        """
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._id_factory = id_factory
        self._rng = rng or random.SystemRandom()
        self._pending: Dict[str, PendingChallenge] = {}
        self._lock = threading.Lock()

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def issue_challenge(self, name: str) -> IssuedChallenge:
        """
        Issue a new challenge for a prospective bot.

        Args:
            name: Display name the candidate wants to register

        Returns:
            IssuedChallenge with the ID and prompt to answer
        """
        category = self._rng.choice(list(CHALLENGE_VARIANTS))
        variant = self._rng.choice(CHALLENGE_VARIANTS[category])
        now = self._clock()

        with self._lock:
            self._purge_expired_locked(now)
            challenge_id = self._new_id_locked()
            self._pending[challenge_id] = PendingChallenge(
                challenge_id=challenge_id,
                prompt=variant.render(name),
                variant=variant,
                name=name,
                issued_at=now,
                expires_at=now + self.ttl_seconds,
            )
            pending = self._pending[challenge_id]

        logger.info(
            f"Challenge issued for {name!r}: id={challenge_id[:8]}..., "
            f"type={category.value}, variant={variant.id}"
        )
        return IssuedChallenge(
            challenge_id=challenge_id,
            prompt=pending.prompt,
            category=category,
            ttl_seconds=self.ttl_seconds,
        )

    def verify_challenge(self, challenge_id: str, answer: str) -> VerificationOutcome:
        """
        Check an answer against a pending challenge.

        Expired challenges are dropped regardless of the answer. A valid
        answer consumes the challenge. A rule that raises counts as a
        rejection.
        """
        now = self._clock()
        with self._lock:
            challenge = self._pending.get(challenge_id)
            if challenge is None:
                return VerificationOutcome.NOT_FOUND

            if challenge.expires_at <= now:
                del self._pending[challenge_id]
                logger.info(f"Challenge {challenge_id[:8]}... expired")
                return VerificationOutcome.EXPIRED

            try:
                accepted = challenge.variant.rule.accepts(answer, challenge.name)
            except Exception as e:
                logger.warning(f"Challenge rule failed for {challenge_id[:8]}...: {e}")
                accepted = False

            if not accepted:
                logger.info(
                    f"Challenge {challenge_id[:8]}... rejected "
                    f"(type={challenge.category.value})"
                )
                return VerificationOutcome.REJECTED

            del self._pending[challenge_id]

        logger.info(f"Challenge {challenge_id[:8]}... PASSED for {challenge.name!r}")
        return VerificationOutcome.VALID

    def purge_expired(self) -> int:
        """Drop expired challenges. Returns the number removed."""
        with self._lock:
            return self._purge_expired_locked(self._clock())

    def _purge_expired_locked(self, now: float) -> int:
        expired = [cid for cid, c in self._pending.items() if c.expires_at <= now]
        for cid in expired:
            del self._pending[cid]
        if expired:
            logger.debug(f"Purged {len(expired)} expired challenge(s)")
        return len(expired)

    def _new_id_locked(self) -> str:
        for _ in range(MAX_ID_ATTEMPTS):
            challenge_id = self._id_factory()
            if challenge_id not in self._pending:
                return challenge_id
            logger.warning("Challenge ID collision, drawing a new one")
        raise RuntimeError("Could not generate a unique challenge ID")
