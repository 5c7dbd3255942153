"""Rule keys and the pattern matcher.

A rule's learning_key holds one of two shapes:

  - Pattern rules, authored explicitly: "<mode>:<PATTERN>", where mode is
    contains, starts_with or exact.  contains/starts_with test the
    normalized description; exact tests the transaction's learning key.
  - Legacy rules, learned from manual categorizations: a bare learning key.
    They match when the transaction's learning key equals the rule key OR
    the normalized description contains it.  Both conditions are kept so
    rules written before pattern rules existed still match.

Matching is case-insensitive: both sides are uppercased before comparison.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from spendsort.database.models import CategorizationRule, Transaction

logger = logging.getLogger(__name__)

CONTAINS = "contains"
STARTS_WITH = "starts_with"
EXACT = "exact"
MATCH_MODES = (CONTAINS, STARTS_WITH, EXACT)

LEGACY = "legacy"


@dataclass(frozen=True)
class RuleKey:
    """Parsed form of a rule's learning_key."""
    mode: str  # one of MATCH_MODES, or LEGACY
    pattern: str

    @property
    def is_pattern_rule(self) -> bool:
        return self.mode != LEGACY


def build_pattern_key(pattern: str, mode: str) -> str:
    """Build the stored key for an explicit pattern rule."""
    return f"{mode}:{pattern.strip().upper()}"


def parse_rule_key(learning_key: str) -> RuleKey:
    """Split a stored key into (mode, pattern).

    Keys without a colon are legacy keys.  A key with an unrecognized mode
    keeps that mode string so the matcher can reject it.
    """
    if ":" not in learning_key:
        return RuleKey(mode=LEGACY, pattern=learning_key.upper())
    mode, _, pattern = learning_key.partition(":")
    return RuleKey(mode=mode, pattern=pattern.upper())


def matches(rule: CategorizationRule, txn: Transaction) -> bool:
    """Return True if the rule applies to the transaction."""
    key = parse_rule_key(rule.learning_key or "")
    if not key.pattern:
        return False

    description = (txn.normalized_description or "").upper()
    fingerprint = (txn.learning_key or "").upper()

    if key.mode == LEGACY:
        if fingerprint and fingerprint == key.pattern:
            return True
        return bool(description) and key.pattern in description
    if key.mode == CONTAINS:
        return key.pattern in description
    if key.mode == STARTS_WITH:
        return description.startswith(key.pattern)
    if key.mode == EXACT:
        return fingerprint == key.pattern

    logger.debug("Ignoring rule %s with unknown match mode '%s'", rule.id, key.mode)
    return False


def first_match(
    rules: Iterable[CategorizationRule],
    txn: Transaction,
) -> CategorizationRule | None:
    """Return the first rule (in iteration order) that matches, or None."""
    for rule in rules:
        if matches(rule, txn):
            logger.debug(
                "Rule %s (%s) matched transaction %s",
                rule.id, rule.learning_key, txn.id,
            )
            return rule
    return None
