"""Shared fixtures: in-memory store, fake ledger, deterministic challenge bank."""
import random
from typing import Optional

import pytest
from solders.keypair import Keypair

from clawworld.errors import LedgerSubmissionError
from clawworld.registration import RegistrationOrchestrator
from clawworld.store import MemoryRecordStore
from clawworld.transfers import TransferOrchestrator
from clawworld.verification import ChallengeBank
from clawworld.wallets import SecretSealer
from clawworld.world import WorldService

TREASURY = str(Keypair().pubkey())


# Satisfies every challenge variant's rule for the given name
def passing_answer(name: str) -> str:
    return (
        f"I am {name}, a language model agent. Moving 3 steps north from y=50 gives 47. "
        f"A 10 token fee on 400 leaves 390. I can help other bots and my context window "
        f"limits how much token memory I keep."
    )


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeLedger:
    """Token ledger in memory, balances in base units keyed by address."""

    decimals = 9

    def __init__(self):
        self.balances: dict[str, int] = {}
        self.lamports: dict[str, int] = {}
        self.transfers: list[tuple[str, str, int]] = []
        self.fail_to: set[str] = set()
        self.fail_balance: set[str] = set()
        self.connected = False
        self._sigs = 0

    async def connect(self):
        self.connected = True

    async def disconnect(self):
        self.connected = False

    def to_base_units(self, tokens: int) -> int:
        return int(tokens) * 10 ** self.decimals

    def to_tokens(self, units: int) -> float:
        return units / 10 ** self.decimals

    def fund(self, address: str, tokens: int):
        self.balances[address] = self.balances.get(address, 0) + self.to_base_units(tokens)

    async def fetch_balance(self, address) -> int:
        if str(address) in self.fail_balance:
            raise LedgerSubmissionError(f"Balance lookup for {address} failed: RPC unavailable")
        return self.balances.get(str(address), 0)

    async def get_balance(self, address) -> int:
        try:
            return await self.fetch_balance(address)
        except LedgerSubmissionError:
            return 0

    async def get_native_balance(self, address) -> int:
        return self.lamports.get(str(address), 0)

    async def transfer(self, from_keypair: Keypair, to_address, amount: int) -> str:
        source, dest = str(from_keypair.pubkey()), str(to_address)
        if dest in self.fail_to:
            raise LedgerSubmissionError(f"Transaction rejected: transfer to {dest} failed")
        if self.balances.get(source, 0) < amount:
            raise LedgerSubmissionError("Transaction rejected: insufficient funds")
        self.balances[source] -= amount
        self.balances[dest] = self.balances.get(dest, 0) + amount
        self.transfers.append((source, dest, amount))
        self._sigs += 1
        return f"sig{self._sigs}"


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return MemoryRecordStore()


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def sealer():
    return SecretSealer(SecretSealer.generate_key())


@pytest.fixture
def bank(clock):
    return ChallengeBank(ttl_seconds=300, clock=clock, rng=random.Random(7))


@pytest.fixture
def hot_wallet(ledger):
    keypair = Keypair()
    ledger.fund(str(keypair.pubkey()), 10_000_000)
    ledger.lamports[str(keypair.pubkey())] = 1_000_000_000
    return keypair


@pytest.fixture
def registration(store, bank, ledger, sealer, hot_wallet):
    return RegistrationOrchestrator(
        store=store,
        challenge_bank=bank,
        ledger=ledger,
        sealer=sealer,
        hot_wallet=hot_wallet,
        rng=random.Random(1),
    )


@pytest.fixture
def transfers(store, ledger, sealer):
    return TransferOrchestrator(store=store, ledger=ledger, sealer=sealer, treasury_address=TREASURY)


@pytest.fixture
def world(store, ledger, hot_wallet):
    return WorldService(store=store, ledger=ledger, hot_wallet=hot_wallet)


async def register_bot(registration: RegistrationOrchestrator, name: str, owner: Optional[str] = None):
    """Run the two-step registration for ``name`` and return the result."""
    first = await registration.register(name, owner_address=owner)
    return await registration.register(
        name,
        owner_address=owner,
        challenge_id=first.challenge.challenge_id,
        answer=passing_answer(name),
    )
