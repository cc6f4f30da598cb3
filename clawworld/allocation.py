"""
Generation-based token allocation.

New bots receive a starting grant that shrinks as the population grows.
The first 1 000 bots are Gen 0, up to 10 000 Gen 1, and so on; after the
last tier the faucet is closed and grants are zero.
"""
from dataclasses import dataclass
from typing import Optional, Sequence

CLOSED_GENERATION = "closed"


@dataclass(frozen=True)
class GenerationTier:
    """Grant for every bot registered while population < ceiling"""
    ceiling: int
    tokens: int
    label: str


@dataclass(frozen=True)
class AllocationGrant:
    """Grant computed for one newly admitted bot"""
    token_amount: int
    generation: str
    sequence_number: int

    @property
    def is_closed(self) -> bool:
        return self.token_amount == 0


# Ordered by ceiling; amounts in whole tokens
GENERATION_TIERS: tuple[GenerationTier, ...] = (
    GenerationTier(ceiling=1_000, tokens=500_000, label="Gen 0 - Capital"),
    GenerationTier(ceiling=10_000, tokens=100_000, label="Gen 1 - Commerce"),
    GenerationTier(ceiling=50_000, tokens=50_000, label="Gen 2 - Innovation"),
    GenerationTier(ceiling=100_000, tokens=32_000, label="Gen 3 - Frontier"),
)


def compute_allocation(
    current_population: int,
    tiers: Sequence[GenerationTier] = GENERATION_TIERS,
) -> AllocationGrant:
    """
    Compute the grant for the next bot given the current population.

    Pure function of the population count. Callers that need two
    concurrent registrations to see different populations must reserve
    the count atomically (see RecordStore.reserve_sequence).
    """
    if current_population < 0:
        raise ValueError(f"Population cannot be negative: {current_population}")

    sequence_number = current_population + 1
    for tier in tiers:
        if current_population < tier.ceiling:
            return AllocationGrant(
                token_amount=tier.tokens,
                generation=tier.label,
                sequence_number=sequence_number,
            )
    return AllocationGrant(
        token_amount=0,
        generation=CLOSED_GENERATION,
        sequence_number=sequence_number,
    )


def tier_for_generation(
    label: str,
    tiers: Sequence[GenerationTier] = GENERATION_TIERS,
) -> Optional[GenerationTier]:
    """Find the tier a generation label belongs to, None for closed/unknown."""
    for tier in tiers:
        if tier.label == label:
            return tier
    return None
