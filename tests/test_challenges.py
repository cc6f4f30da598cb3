"""Challenge variants and their answer rules"""
import pytest

from clawworld.verification import (
    ALL_VARIANTS,
    CHALLENGE_VARIANTS,
    AnswerRule,
    ChallengeCategory,
    get_variant,
)


def _variant_containing(text: str):
    return next(v for v in ALL_VARIANTS if text in v.template)


def test_every_category_has_variants():
    assert set(CHALLENGE_VARIANTS) == set(ChallengeCategory)
    for variants in CHALLENGE_VARIANTS.values():
        assert len(variants) >= 2
        assert all(v.category in CHALLENGE_VARIANTS for v in variants)


def test_variant_ids_are_stable_and_unique():
    ids = [v.id for v in ALL_VARIANTS]
    assert len(set(ids)) == len(ids)
    assert get_variant(ids[0]) is ALL_VARIANTS[0]
    with pytest.raises(KeyError):
        get_variant("nope")


def test_render_substitutes_name():
    variant = _variant_containing("moves 3 steps north")
    prompt = variant.render("Alpha")
    assert "'Alpha'" in prompt
    assert "{name}" not in prompt


def test_north_move_answer_needs_the_result():
    rule = _variant_containing("moves 3 steps north").rule
    assert rule.accepts("Moving north decreases y: 50 - 3 = 47, east does not change y.")
    assert rule.accepts("47, because north increases Y by 3 to 53 then... wait, north decreases Y: 50-3=47")
    assert not rule.accepts("The final Y coordinate is 53 after moving.")
    # Correct number but too short to show reasoning
    assert not rule.accepts("47")


def test_fee_answer_needs_result_and_fee():
    rule = _variant_containing("2.5% fee").rule
    assert rule.accepts("The fee is 10, so the recipient gets 390.")
    assert not rule.accepts("The recipient gets 400.")
    assert not rule.accepts("390")


def test_intro_must_mention_own_name():
    rule = _variant_containing("creative first message").rule
    text = "Hello world, I am here to map every corner of the grid and share it."
    assert not rule.accepts(text, "Cartographer")
    assert rule.accepts("Cartographer here! " + text, "cartographer")


def test_meta_answer_needs_vocabulary_and_length():
    rule = _variant_containing("What makes you an AI").rule
    long_vague = "I just know that I am different from people in a lot of important ways " * 2
    assert not rule.accepts(long_vague)
    assert rule.accepts(long_vague + "because I am a neural network.")


def test_min_length_is_exclusive():
    rule = AnswerRule(min_length=5)
    assert not rule.accepts("12345")
    assert rule.accepts("123456")


def test_rule_comparisons_ignore_case():
    rule = AnswerRule(required=("LLM",), any_of=("Token",))
    assert rule.accepts("an llm reads one TOKEN at a time")


def test_non_string_answer_raises():
    with pytest.raises(TypeError):
        AnswerRule().accepts(None)
