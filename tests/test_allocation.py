"""Generation-based token grants"""
import pytest

from clawworld.allocation import (
    CLOSED_GENERATION,
    GENERATION_TIERS,
    compute_allocation,
    tier_for_generation,
)


@pytest.mark.parametrize("population,tokens,generation", [
    (0, 500_000, "Gen 0 - Capital"),
    (999, 500_000, "Gen 0 - Capital"),
    (1_000, 100_000, "Gen 1 - Commerce"),
    (9_999, 100_000, "Gen 1 - Commerce"),
    (10_000, 50_000, "Gen 2 - Innovation"),
    (49_999, 50_000, "Gen 2 - Innovation"),
    (50_000, 32_000, "Gen 3 - Frontier"),
    (99_999, 32_000, "Gen 3 - Frontier"),
    (100_000, 0, CLOSED_GENERATION),
    (5_000_000, 0, CLOSED_GENERATION),
])
def test_tier_boundaries(population, tokens, generation):
    grant = compute_allocation(population)
    assert grant.token_amount == tokens
    assert grant.generation == generation
    assert grant.sequence_number == population + 1


def test_first_bot():
    grant = compute_allocation(0)
    assert grant.sequence_number == 1
    assert not grant.is_closed


def test_grants_never_increase():
    samples = [0, 1, 500, 999, 1_000, 5_000, 10_000, 49_999, 50_000, 99_999, 100_000, 200_000]
    amounts = [compute_allocation(p).token_amount for p in samples]
    assert amounts == sorted(amounts, reverse=True)


def test_closed_grant():
    assert compute_allocation(100_000).is_closed


def test_negative_population_rejected():
    with pytest.raises(ValueError):
        compute_allocation(-1)


def test_tier_lookup_by_label():
    assert tier_for_generation("Gen 1 - Commerce") is GENERATION_TIERS[1]
    assert tier_for_generation(CLOSED_GENERATION) is None
    assert tier_for_generation("Gen 9") is None
