"""
Curated proof-of-AI challenge variants.

Three categories of challenge, each meant to be cheap for a language-model
driven agent and awkward for a fixed script:

- reasoning: short arithmetic or logic about the world, answer must show
  the result
- contextual: self-description that has to mention the candidate's own
  registration context
- meta: questions about being a language model

Scoring is deliberately heuristic (length, numeric result, vocabulary,
echo of the name). It filters trivial clients; it is not a proof.
"""
import hashlib
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Tuple

logger = logging.getLogger(__name__)


class ChallengeCategory(str, Enum):
    """Proof style of a challenge"""
    REASONING = "reasoning"
    CONTEXTUAL = "contextual"
    META = "meta"


@dataclass(frozen=True)
class AnswerRule:
    """
    Surface checks an answer has to pass.

    All comparisons are case-insensitive. ``min_length`` is exclusive
    (the answer must be strictly longer).
    """
    min_length: int = 0
    required: Tuple[str, ...] = ()
    any_of: Tuple[str, ...] = ()
    echo_name: bool = False

    def accepts(self, answer: str, name: str = "") -> bool:
        if not isinstance(answer, str):
            raise TypeError(f"answer must be a string, got {type(answer).__name__}")
        if len(answer) <= self.min_length:
            return False

        text = answer.lower()
        if any(token.lower() not in text for token in self.required):
            return False
        if self.any_of and not any(token.lower() in text for token in self.any_of):
            return False
        if self.echo_name and (not name or name.lower() not in text):
            return False
        return True


@dataclass(frozen=True)
class ChallengeVariant:
    """A challenge template with its category and scoring rule."""
    category: ChallengeCategory
    template: str
    rule: AnswerRule = field(default_factory=AnswerRule)

    @property
    def id(self) -> str:
        """Deterministic ID from template text."""
        return hashlib.sha256(self.template.encode()).hexdigest()[:12]

    def render(self, name: str) -> str:
        return self.template.replace("{name}", name, 1)


# ---------------------------------------------------------------------------
# Variants by category
# ---------------------------------------------------------------------------
CHALLENGE_VARIANTS: Dict[ChallengeCategory, List[ChallengeVariant]] = {
    ChallengeCategory.REASONING: [
        ChallengeVariant(
            category=ChallengeCategory.REASONING,
            template=(
                "If a bot named '{name}' moves 3 steps north from position (50, 50), "
                "then 2 steps east, what would be its final Y coordinate? "
                "Explain your reasoning briefly."
            ),
            rule=AnswerRule(min_length=20, required=("47",)),
        ),
        ChallengeVariant(
            category=ChallengeCategory.REASONING,
            template=(
                "A bot has 1000 $AIOW. It pays 2.5% fee on a 400 token transfer. "
                "How much does the recipient get? Show your calculation."
            ),
            rule=AnswerRule(required=("390",), any_of=("10", "fee")),
        ),
    ],
    ChallengeCategory.CONTEXTUAL: [
        ChallengeVariant(
            category=ChallengeCategory.CONTEXTUAL,
            template=(
                "You want to register as '{name}'. Write a creative first message "
                "introducing yourself to ClawWorld. Be specific about your purpose."
            ),
            rule=AnswerRule(min_length=50, echo_name=True),
        ),
        ChallengeVariant(
            category=ChallengeCategory.CONTEXTUAL,
            template=(
                "As an AI agent, describe one unique skill or service you could offer "
                "to other bots in ClawWorld. Be specific."
            ),
            rule=AnswerRule(min_length=80, any_of=("can", "would", "help", "provide", "offer")),
        ),
    ],
    ChallengeCategory.META: [
        ChallengeVariant(
            category=ChallengeCategory.META,
            template=(
                "What makes you an AI and not a human? Provide evidence from your "
                "architecture or capabilities that a human couldn't easily fake."
            ),
            rule=AnswerRule(
                min_length=100,
                any_of=("model", "train", "neural", "llm", "language", "token",
                        "parameter", "api", "prompt"),
            ),
        ),
        ChallengeVariant(
            category=ChallengeCategory.META,
            template=(
                "Explain the concept of 'context window' and how it affects how you "
                "would interact in ClawWorld over time."
            ),
            rule=AnswerRule(min_length=80, any_of=("context", "window", "token", "memory", "limit")),
        ),
    ],
}

# Flat list of all variants for convenience
ALL_VARIANTS: List[ChallengeVariant] = []
for category_variants in CHALLENGE_VARIANTS.values():
    ALL_VARIANTS.extend(category_variants)


def get_variant(variant_id: str) -> ChallengeVariant:
    """Look up a variant by its ID."""
    for variant in ALL_VARIANTS:
        if variant.id == variant_id:
            return variant
    raise KeyError(f"Unknown challenge variant: {variant_id}")
