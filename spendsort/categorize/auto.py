"""Batch auto-categorization: re-apply the rule set to uncategorized transactions.

The rule set is read once at the start of a run and shared read-only by all
workers; rules created while the pass runs are picked up by the next pass.
Rules are evaluated in creation order and the first match wins.

Each update is conditional on the transaction still being uncategorized, so
a second run with an unchanged rule set updates nothing, and a cancelled run
can simply be started again.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from spendsort.categorize.rules import first_match
from spendsort.database.models import CategorizationRule, Transaction
from spendsort.database.repository import Repository
from spendsort.errors import StorageError

logger = logging.getLogger(__name__)

_UPDATED = "updated"
_UNMATCHED = "unmatched"
_FAILED = "failed"
_CANCELLED = "cancelled"


@dataclass
class AutoCategorizeResult:
    """Summary of an auto-categorization pass."""
    updated_count: int
    evaluated_count: int
    failed_count: int = 0
    cancelled: bool = False


def auto_categorize(
    repo: Repository,
    user_id: str,
    workers: int = 1,
    cancel_event: threading.Event | None = None,
) -> AutoCategorizeResult:
    """Assign categories to eligible uncategorized transactions.

    Args:
        repo: Repository acting as transaction and rule store.
        user_id: Owner of the transactions and rules.
        workers: Size of the worker pool. 1 processes transactions in order
            on the calling thread.
        cancel_event: When set, no further transactions are started.
            Updates already applied are kept.
    """
    if workers < 1:
        raise ValueError("workers must be a positive integer")

    rules = tuple(repo.list_rules(user_id))
    eligible = repo.find_eligible_for_auto_categorize(user_id)
    logger.info(
        "Auto-categorizing %d transactions against %d rules",
        len(eligible), len(rules),
    )

    def _process(txn: Transaction) -> str:
        if cancel_event is not None and cancel_event.is_set():
            return _CANCELLED
        return _categorize_one(repo, rules, txn)

    if workers == 1:
        outcomes = [_process(txn) for txn in eligible]
    else:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            outcomes = list(pool.map(_process, eligible))

    result = AutoCategorizeResult(
        updated_count=outcomes.count(_UPDATED),
        evaluated_count=len(outcomes) - outcomes.count(_CANCELLED),
        failed_count=outcomes.count(_FAILED),
        cancelled=_CANCELLED in outcomes,
    )
    logger.info(
        "Auto-categorization done: %d updated, %d evaluated, %d failed%s",
        result.updated_count, result.evaluated_count, result.failed_count,
        " (cancelled)" if result.cancelled else "",
    )
    return result


def _categorize_one(
    repo: Repository,
    rules: tuple[CategorizationRule, ...],
    txn: Transaction,
) -> str:
    rule = first_match(rules, txn)
    if rule is None:
        return _UNMATCHED
    try:
        applied = repo.apply_auto_category(txn.id, rule.category_id)
    except StorageError as e:
        logger.warning("Failed to auto-categorize transaction %s: %s", txn.id, e)
        return _FAILED
    # Categorized by someone else since the eligibility query
    return _UPDATED if applied else _UNMATCHED
