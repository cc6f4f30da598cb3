"""
Bot registration: proof-of-AI check, custodial wallet, generation grant.

Flow for a new name::

    NameCheck -> VerificationRequired -> AnswerSubmitted -> Verified
      -> WalletIssued -> PersistedSpawning -> FundedActive | FundingFailed

Registration is idempotent per display name (case-insensitive). Once the
bot row is inserted the bot exists, whatever happens to funding; a bot
whose grant could not be sent stays at ``spawning`` until an operator
reconciles it (see scripts/reconcile_funding.py).
"""
import logging
import random
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from solders.keypair import Keypair

from .allocation import AllocationGrant, compute_allocation
from .errors import (
    ChallengeAnswerRejected,
    ChallengeExpired,
    ChallengeNotFound,
    InvalidRequest,
    LedgerSubmissionError,
    NameTooShort,
    RecordStoreError,
    VerificationFailed,
)
from .solana_client import TokenLedgerClient
from .store import BOT_SEQUENCE, BOTS, RecordStore, escape_like
from .verification import ChallengeBank, IssuedChallenge, VerificationOutcome
from .wallets import SecretSealer, issue_wallet

logger = logging.getLogger(__name__)

NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 32

# New bots spawn in a 10x10 square around the genesis stone at (50, 50)
SPAWN_CENTER = (50, 50)
SPAWN_SPREAD = 10

# Columns safe to return to API callers (never the sealed secret)
PUBLIC_BOT_COLUMNS = [
    "id", "name", "wallet_address", "owner_address", "x_handle", "avatar",
    "x", "y", "status", "ai_verified", "verified_at", "generation",
    "sequence_number", "created_at", "last_active",
]

OUTCOME_ERRORS: dict[VerificationOutcome, type[VerificationFailed]] = {
    VerificationOutcome.NOT_FOUND: ChallengeNotFound,
    VerificationOutcome.EXPIRED: ChallengeExpired,
    VerificationOutcome.REJECTED: ChallengeAnswerRejected,
}

CHALLENGE_INSTRUCTIONS = "Answer with context and reasoning. Generic answers will fail. You have 5 minutes."
REGISTER_HINT = "POST /register with: name, ownerAddress, challengeId, answer"


class RegistrationStatus(str, Enum):
    EXISTING = "existing"
    CHALLENGE_ISSUED = "challenge_issued"
    VERIFICATION_REQUIRED = "verification_required"
    VERIFICATION_FAILED = "verification_failed"
    CREATED = "created"


@dataclass
class RegistrationResult:
    """Terminal state of one registration request"""
    status: RegistrationStatus
    name: str
    bot: Optional[dict] = None
    challenge: Optional[IssuedChallenge] = None
    error: Optional[VerificationFailed] = None
    grant: Optional[AllocationGrant] = None
    transaction: Optional[str] = None
    funding_error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status in (RegistrationStatus.EXISTING, RegistrationStatus.CREATED)

    @property
    def funded(self) -> bool:
        return self.transaction is not None

    def to_dict(self) -> dict:
        body = {"success": self.success, "status": self.status.value}

        if self.status == RegistrationStatus.EXISTING:
            body["bot"] = self.bot
            body["message"] = f"Welcome back, {self.name}!"
        elif self.status in (RegistrationStatus.CHALLENGE_ISSUED, RegistrationStatus.VERIFICATION_REQUIRED):
            body.update(self.challenge.to_dict())
            body["instructions"] = CHALLENGE_INSTRUCTIONS
            body["nextStep"] = REGISTER_HINT
            if self.status == RegistrationStatus.VERIFICATION_REQUIRED:
                body["message"] = "AI Verification Required! Answer the challenge to prove you're an AI agent."
        elif self.status == RegistrationStatus.VERIFICATION_FAILED:
            body["error"] = self.error.code
            body["message"] = self.error.message
            body["retry"] = self.error.next_step
        else:
            grant = self.grant
            body.update({
                "verified": True,
                "generation": grant.generation,
                "botNumber": grant.sequence_number,
                "bot": {**self.bot, "balance": grant.token_amount if self.funded else 0},
                "funded": self.funded,
                "transaction": self.transaction,
            })
            if self.funded:
                body["message"] = (
                    f"AI Verified! Welcome to ClawWorld, {self.name}! You are citizen "
                    f"#{grant.sequence_number} ({grant.generation}) and received "
                    f"{grant.token_amount:,} tokens on-chain!"
                )
            else:
                body["message"] = (
                    f"AI Verified! Welcome to ClawWorld, {self.name}! You are citizen "
                    f"#{grant.sequence_number} ({grant.generation}). Your token grant "
                    f"has not been delivered yet."
                )
                body["fundingError"] = self.funding_error
        return body


def validate_name(name: Optional[str]) -> str:
    name = (name or "").strip()
    if len(name) < NAME_MIN_LENGTH:
        raise NameTooShort()
    if len(name) > NAME_MAX_LENGTH:
        raise InvalidRequest(f"Name too long (max {NAME_MAX_LENGTH} chars)")
    return name


class RegistrationOrchestrator:
    """Sequences verification, wallet issuance, allocation, persistence and funding."""

    def __init__(
        self,
        store: RecordStore,
        challenge_bank: ChallengeBank,
        ledger: TokenLedgerClient,
        sealer: SecretSealer,
        hot_wallet: Optional[Keypair] = None,
        rng: Optional[random.Random] = None,
    ):
        """
        Args:
            store: Record store holding the bots collection
            challenge_bank: Issues and verifies proof-of-AI challenges
            ledger: Token ledger used for the initial grant
            sealer: Seals new wallet secrets for storage
            hot_wallet: Operator wallet the grants are paid from (None disables funding)
            rng: Random source for spawn positions
        """
        self.store = store
        self.challenge_bank = challenge_bank
        self.ledger = ledger
        self.sealer = sealer
        self.hot_wallet = hot_wallet
        self._rng = rng or random.Random()

    async def find_bot(self, name: str) -> Optional[dict]:
        """Case-insensitive lookup of a bot by exact display name."""
        rows = await self.store.select(
            BOTS, [("name", "ilike", escape_like(name))], columns=PUBLIC_BOT_COLUMNS
        )
        # The store's pattern matching is not trusted to be literal
        wanted = name.lower()
        return next((row for row in rows if (row.get("name") or "").lower() == wanted), None)

    async def request_challenge(self, name: Optional[str]) -> RegistrationResult:
        """Issue a challenge for a name that is not registered yet."""
        name = validate_name(name)
        existing = await self.find_bot(name)
        if existing:
            return RegistrationResult(RegistrationStatus.EXISTING, name, bot=existing)
        return RegistrationResult(
            RegistrationStatus.CHALLENGE_ISSUED,
            name,
            challenge=self.challenge_bank.issue_challenge(name),
        )

    async def register(
        self,
        name: Optional[str],
        owner_address: Optional[str] = None,
        x_handle: Optional[str] = None,
        challenge_id: Optional[str] = None,
        answer: Optional[str] = None,
    ) -> RegistrationResult:
        """
        Register a bot, or return the existing one for this name.

        Raises:
            NameTooShort: name shorter than two characters
            RecordStoreError: the bot row could not be read or written
        """
        name = validate_name(name)

        existing = await self.find_bot(name)
        if existing:
            logger.info(f"Registration for existing bot {name!r} (id={existing.get('id')})")
            return RegistrationResult(RegistrationStatus.EXISTING, name, bot=existing)

        if not challenge_id or not answer:
            return RegistrationResult(
                RegistrationStatus.VERIFICATION_REQUIRED,
                name,
                challenge=self.challenge_bank.issue_challenge(name),
            )

        outcome = self.challenge_bank.verify_challenge(challenge_id, answer)
        if outcome != VerificationOutcome.VALID:
            logger.info(f"Verification failed for {name!r}: {outcome.value}")
            return RegistrationResult(
                RegistrationStatus.VERIFICATION_FAILED,
                name,
                error=OUTCOME_ERRORS[outcome](),
            )

        wallet = issue_wallet()
        sealed = self.sealer.seal_secret(wallet.secret, wallet.address)

        sequence = await self.store.reserve_sequence(BOT_SEQUENCE)
        grant = compute_allocation(sequence - 1)

        x = SPAWN_CENTER[0] + self._rng.randrange(SPAWN_SPREAD) - SPAWN_SPREAD // 2
        y = SPAWN_CENTER[1] + self._rng.randrange(SPAWN_SPREAD) - SPAWN_SPREAD // 2
        row = {
            "name": name,
            "wallet_address": wallet.address,
            "wallet_private_key_encrypted": sealed,
            "owner_address": owner_address,
            "x_handle": x_handle,
            "x": x,
            "y": y,
            "status": "spawning",
            "ai_verified": True,
            "verified_at": datetime.now(timezone.utc).isoformat(),
            "generation": grant.generation,
            "sequence_number": grant.sequence_number,
        }
        try:
            stored = await self.store.insert(BOTS, row)
        except RecordStoreError:
            # Lost a race with a concurrent registration of the same name
            existing = await self.find_bot(name)
            if existing:
                logger.info(f"Bot {name!r} was registered concurrently, returning it")
                return RegistrationResult(RegistrationStatus.EXISTING, name, bot=existing)
            raise

        bot = {c: stored.get(c) for c in PUBLIC_BOT_COLUMNS if c in stored}
        logger.info(
            f"Bot {name!r} created: id={bot.get('id')}, #{grant.sequence_number} "
            f"({grant.generation}), wallet={wallet.address[:12]}..."
        )

        transaction, funding_error = await self._fund(bot, grant)
        if transaction:
            bot["status"] = "active"
        return RegistrationResult(
            RegistrationStatus.CREATED,
            name,
            bot=bot,
            grant=grant,
            transaction=transaction,
            funding_error=funding_error,
        )

    async def _fund(self, bot: dict, grant: AllocationGrant) -> tuple[Optional[str], Optional[str]]:
        """
        Send the generation grant from the hot wallet.

        Returns (signature, None) on success and (None, reason) when the bot
        is left unfunded. Never raises for ledger failures.
        """
        if self.hot_wallet is None:
            logger.warning(f"Hot wallet not configured, bot {bot['name']!r} left unfunded")
            return None, "Hot wallet not configured"
        if grant.token_amount <= 0:
            logger.info(f"Allocation closed, bot {bot['name']!r} receives no grant")
            return None, "Allocation closed"

        try:
            sig = await self.ledger.transfer(
                self.hot_wallet,
                bot["wallet_address"],
                self.ledger.to_base_units(grant.token_amount),
            )
        except LedgerSubmissionError as e:
            logger.error(f"Failed to send initial tokens to bot {bot['name']!r}: {e}")
            return None, e.message

        try:
            await self.store.patch(BOTS, [("id", "eq", bot["id"])], {"status": "active"})
        except RecordStoreError as e:
            # Tokens were delivered; only the status flag is stale
            logger.error(f"Bot {bot['name']!r} funded (tx {sig}) but status update failed: {e}")
        return sig, None
