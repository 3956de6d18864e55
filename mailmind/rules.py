"""
Priority rule engine.

Combines the language model's baseline verdict with the user's weighted
priority rules. A rule can only ever replace the baseline with a stronger
verdict; it never lowers the score.
"""

import logging
from typing import Iterable, Optional, Sequence, Tuple

from .models import (
    EmailMetadata,
    PriorityRule,
    PriorityVerdict,
    clamp_score,
)

logger = logging.getLogger(__name__)

KEYWORD_MATCH_STRENGTH = 0.2
FULL_MATCH_STRENGTH = 1.0
COMPETE_THRESHOLD = 0.5


def _contains_any(haystack: str, needles: Iterable[str]) -> bool:
    haystack = haystack.lower()
    return any(n and n.lower() in haystack for n in needles)


def match_strength(
    rule: PriorityRule,
    content: str,
    metadata: Optional[EmailMetadata] = None,
) -> float:
    """
    How strongly a rule matches a message.

    - 0.2 for every rule keyword found in the content (case-insensitive)
    - +1 if the sender's domain contains any of the rule's sender domains
    - +1 if the subject contains any of the rule's subject keywords
    """
    metadata = metadata or EmailMetadata()
    conditions = rule.conditions
    strength = 0.0

    if conditions.keywords:
        content_lower = (content or "").lower()
        for keyword in conditions.keywords:
            if keyword and keyword.lower() in content_lower:
                strength += KEYWORD_MATCH_STRENGTH

    if conditions.sender_domains:
        domain = metadata.sender_domain
        if domain and _contains_any(domain, conditions.sender_domains):
            strength += FULL_MATCH_STRENGTH

    if conditions.subject_keywords and metadata.subject:
        if _contains_any(metadata.subject, conditions.subject_keywords):
            strength += FULL_MATCH_STRENGTH

    return strength


class PriorityRuleEngine:
    """
    Scores messages against a snapshot of the user's priority rules.

    The loaded rule set is replaced wholesale by load_rules(); a scoring
    pass always works on the tuple it read when it started.
    """

    def __init__(self, rules: Optional[Iterable[PriorityRule]] = None) -> None:
        self._rules: Tuple[PriorityRule, ...] = tuple(rules or ())

    @property
    def rules(self) -> Tuple[PriorityRule, ...]:
        return self._rules

    def load_rules(self, rules: Iterable[PriorityRule]) -> None:
        self._rules = tuple(rules)
        logger.debug("Loaded %d priority rules.", len(self._rules))

    def score(
        self,
        baseline: PriorityVerdict,
        content: str,
        metadata: Optional[EmailMetadata] = None,
    ) -> PriorityVerdict:
        rules: Sequence[PriorityRule] = self._rules
        best = baseline

        for rule in rules:
            if not rule.enabled:
                continue

            strength = match_strength(rule, content, metadata)
            if strength <= COMPETE_THRESHOLD:
                continue

            candidate = clamp_score(rule.weight * strength)
            if candidate > best.score:
                logger.debug(
                    "Rule %s (%s) wins with score=%.3f (strength=%.2f)",
                    rule.id,
                    rule.name,
                    candidate,
                    strength,
                )
                best = PriorityVerdict(
                    level=rule.level,
                    score=candidate,
                    reasons=[f"matched rule: {rule.name}"],
                )

        return best
