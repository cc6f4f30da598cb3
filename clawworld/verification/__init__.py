"""Proof-of-AI verification for bot registration"""
from .challenge_bank import (
    ChallengeBank,
    IssuedChallenge,
    PendingChallenge,
    VerificationOutcome,
    DEFAULT_TTL_SECONDS,
)
from .challenges import (
    AnswerRule,
    ChallengeCategory,
    ChallengeVariant,
    CHALLENGE_VARIANTS,
    ALL_VARIANTS,
    get_variant,
)

__all__ = [
    "ChallengeBank",
    "IssuedChallenge",
    "PendingChallenge",
    "VerificationOutcome",
    "DEFAULT_TTL_SECONDS",
    "AnswerRule",
    "ChallengeCategory",
    "ChallengeVariant",
    "CHALLENGE_VARIANTS",
    "ALL_VARIANTS",
    "get_variant",
]
