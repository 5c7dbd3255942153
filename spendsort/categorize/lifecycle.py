"""Rule lifecycle: explicit pattern rules and learning from manual edits.

Manual categorization options:
  once     set the category, nothing else
  rule     set the category and upsert a rule keyed by the transaction's
           learning key (existing rule: new category, confidence + 1)
  exclude  set the category, mark the transaction excluded from learning
           and clear its learning key
  no-auto  set the category and stop rules from ever touching it

The exclude/no-auto flags are sticky; nothing here clears them.
"""

from __future__ import annotations

import logging

from spendsort.categorize.rules import MATCH_MODES, build_pattern_key
from spendsort.database.models import CategorizationRule, Category
from spendsort.database.repository import Repository
from spendsort.errors import (
    DuplicateRuleError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)

logger = logging.getLogger(__name__)

ONCE = "once"
RULE = "rule"
EXCLUDE = "exclude"
NO_AUTO = "no-auto"
CATEGORIZE_OPTIONS = (ONCE, RULE, EXCLUDE, NO_AUTO)


def _require_category(repo: Repository, user_id: str, category_id: str) -> Category:
    category = repo.get_category(category_id)
    if category is None or category.user_id != user_id:
        raise NotFoundError("Category", category_id)
    return category


def create_pattern_rule(
    repo: Repository,
    user_id: str,
    pattern: str,
    mode: str,
    category_id: str,
) -> str:
    """Create an explicit pattern rule and return its id.

    Raises:
        ValidationError: empty pattern or unknown match mode.
        NotFoundError: the category does not exist for this user.
        DuplicateRuleError: the user already has a rule with this key.
    """
    if not pattern or not pattern.strip():
        raise ValidationError("Pattern must not be empty")
    if mode not in MATCH_MODES:
        raise ValidationError(
            f"Unknown match mode '{mode}' (expected one of {', '.join(MATCH_MODES)})"
        )
    _require_category(repo, user_id, category_id)

    key = build_pattern_key(pattern, mode)
    existing = repo.find_rule_by_key(user_id, key)
    if existing is not None:
        raise DuplicateRuleError(key, existing.id)

    rule_id = repo.insert_rule(CategorizationRule(
        user_id=user_id,
        learning_key=key,
        category_id=category_id,
        confidence=1,
    ))
    logger.info("Created pattern rule %s -> %s", key, category_id)
    return rule_id


def record_manual_categorization(
    repo: Repository,
    user_id: str,
    transaction_id: str,
    category_id: str | None,
    option: str,
    is_transfer: bool = False,
    is_income: bool = False,
) -> str | None:
    """Apply a user's category choice to one transaction.

    Returns the id of the rule created or updated (option "rule" only),
    otherwise None.

    Raises:
        NotFoundError: unknown transaction or category.
        UnauthorizedError: the transaction belongs to another user.
        ValidationError: unknown option, or no category for a transaction
            that is neither a transfer nor income.
    """
    if option not in CATEGORIZE_OPTIONS:
        raise ValidationError(
            f"Unknown categorize option '{option}'"
            f" (expected one of {', '.join(CATEGORIZE_OPTIONS)})"
        )

    txn = repo.get_transaction(transaction_id)
    if txn is None:
        raise NotFoundError("Transaction", transaction_id)
    if txn.user_id != user_id:
        raise UnauthorizedError(
            f"Transaction '{transaction_id}' does not belong to user '{user_id}'"
        )

    category_id = category_id or None
    if category_id is None and not (is_transfer or is_income):
        raise ValidationError(
            "A category is required unless the transaction is a transfer or income"
        )
    if category_id is not None:
        _require_category(repo, user_id, category_id)

    updates: dict = {
        "category_id": category_id,
        "is_manually_categorized": True,
        "is_transfer": is_transfer,
        "is_income": is_income,
    }
    if option == EXCLUDE:
        updates["exclude_from_learning"] = True
        updates["learning_key"] = None
    elif option == NO_AUTO:
        updates["disable_auto_rules"] = True

    repo.update_categorization(transaction_id, **updates)
    logger.info(
        "Transaction %s categorized as %s (option=%s)",
        transaction_id, category_id, option,
    )

    if option != RULE:
        return None
    if not txn.learning_key or category_id is None:
        logger.debug(
            "No rule learned from %s: learning key or category missing",
            transaction_id,
        )
        return None
    return _upsert_learned_rule(repo, user_id, txn.learning_key, category_id, txn.id)


def _upsert_learned_rule(
    repo: Repository,
    user_id: str,
    learning_key: str,
    category_id: str,
    transaction_id: str,
) -> str:
    existing = repo.find_rule_by_key(user_id, learning_key)
    if existing is not None:
        repo.update_rule_category_and_bump_confidence(existing.id, category_id)
        logger.info(
            "Reconfirmed rule %s -> %s (confidence %d)",
            learning_key, category_id, existing.confidence + 1,
        )
        return existing.id

    try:
        rule_id = repo.insert_rule(CategorizationRule(
            user_id=user_id,
            learning_key=learning_key,
            category_id=category_id,
            confidence=1,
            created_by_transaction_id=transaction_id,
        ))
    except DuplicateRuleError as e:
        # Another caller inserted the key after our lookup
        if e.existing_rule_id is None:
            raise
        rule_id = e.existing_rule_id
        repo.update_rule_category_and_bump_confidence(rule_id, category_id)
        logger.info("Reconfirmed concurrently created rule %s -> %s", learning_key, category_id)
        return rule_id
    logger.info("Learned rule %s -> %s from %s", learning_key, category_id, transaction_id)
    return rule_id


def list_rules(repo: Repository, user_id: str) -> list[dict]:
    """Rules with their category names, ordered by key."""
    return repo.list_rules_with_categories(user_id)


def delete_rule(repo: Repository, user_id: str, rule_id: str) -> None:
    rule = repo.get_rule(rule_id)
    if rule is None or rule.user_id != user_id:
        raise NotFoundError("Rule", rule_id)
    repo.delete_rule(rule_id)
    logger.info("Deleted rule %s (%s)", rule_id, rule.learning_key)
