"""Challenge issuance, expiry and single-use verification"""
import random

import pytest

from clawworld.verification import ChallengeBank, ChallengeCategory, VerificationOutcome

from conftest import passing_answer


def test_issue_returns_prompt_and_ttl(bank):
    issued = bank.issue_challenge("Alpha")
    body = issued.to_dict()
    assert body["challengeId"] == issued.challenge_id
    assert body["question"]
    assert body["type"] in {c.value for c in ChallengeCategory}
    assert body["expiresIn"] == 300
    assert bank.pending_count == 1


def test_ids_are_unique(bank):
    ids = {bank.issue_challenge("Alpha").challenge_id for _ in range(50)}
    assert len(ids) == 50


def test_valid_answer_is_single_use(bank):
    issued = bank.issue_challenge("Alpha")
    assert bank.verify_challenge(issued.challenge_id, passing_answer("Alpha")) == VerificationOutcome.VALID
    assert bank.verify_challenge(issued.challenge_id, passing_answer("Alpha")) == VerificationOutcome.NOT_FOUND
    assert bank.pending_count == 0


def test_unknown_id_not_found(bank):
    assert bank.verify_challenge("missing", "anything") == VerificationOutcome.NOT_FOUND


def test_expired_challenge_is_dropped(bank, clock):
    issued = bank.issue_challenge("Alpha")
    clock.advance(300)
    assert bank.verify_challenge(issued.challenge_id, passing_answer("Alpha")) == VerificationOutcome.EXPIRED
    assert bank.verify_challenge(issued.challenge_id, passing_answer("Alpha")) == VerificationOutcome.NOT_FOUND


def test_answer_just_before_expiry_is_accepted(bank, clock):
    issued = bank.issue_challenge("Alpha")
    clock.advance(299)
    assert bank.verify_challenge(issued.challenge_id, passing_answer("Alpha")) == VerificationOutcome.VALID


def test_rejected_answer_keeps_challenge_pending(bank):
    issued = bank.issue_challenge("Alpha")
    assert bank.verify_challenge(issued.challenge_id, "hi") == VerificationOutcome.REJECTED
    assert bank.pending_count == 1
    assert bank.verify_challenge(issued.challenge_id, passing_answer("Alpha")) == VerificationOutcome.VALID


def test_rule_error_counts_as_rejection(bank):
    issued = bank.issue_challenge("Alpha")
    assert bank.verify_challenge(issued.challenge_id, None) == VerificationOutcome.REJECTED


def test_issuance_purges_expired(bank, clock):
    bank.issue_challenge("Alpha")
    bank.issue_challenge("Beta")
    clock.advance(301)
    bank.issue_challenge("Gamma")
    assert bank.pending_count == 1


def test_purge_expired_counts_removed(bank, clock):
    bank.issue_challenge("Alpha")
    clock.advance(10)
    bank.issue_challenge("Beta")
    clock.advance(295)
    assert bank.purge_expired() == 1
    assert bank.pending_count == 1


def test_id_collision_draws_again(clock):
    ids = iter(["aaaa", "aaaa", "bbbb"])
    bank = ChallengeBank(clock=clock, id_factory=lambda: next(ids))
    assert bank.issue_challenge("Alpha").challenge_id == "aaaa"
    assert bank.issue_challenge("Beta").challenge_id == "bbbb"


def test_persistent_collision_raises(clock):
    bank = ChallengeBank(clock=clock, id_factory=lambda: "same")
    bank.issue_challenge("Alpha")
    with pytest.raises(RuntimeError):
        bank.issue_challenge("Beta")


def test_all_categories_get_issued(clock):
    bank = ChallengeBank(clock=clock, rng=random.Random(3))
    seen = {bank.issue_challenge("Alpha").category for _ in range(60)}
    assert seen == set(ChallengeCategory)
