"""Turn parsed bank records into stored transactions.

Statement parsers produce plain dicts with date, description and amount.
This module derives the normalized description and learning key for each,
drops records already stored, and inserts the rest in one batch.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from spendsort.categorize.fingerprint import learning_key_for
from spendsort.categorize.normalize import normalize_description
from spendsort.database.models import Transaction
from spendsort.database.repository import Repository
from spendsort.errors import ValidationError

logger = logging.getLogger(__name__)


@dataclass
class IngestResult:
    inserted: int
    duplicates: int


def build_transaction(
    user_id: str,
    date: str,
    amount: float,
    description: str,
    currency: str = "EUR",
    source: str | None = None,
) -> Transaction:
    """Create a Transaction with its derived description fields filled in."""
    return Transaction(
        user_id=user_id,
        date=date,
        amount=amount,
        raw_description=description,
        normalized_description=normalize_description(description),
        learning_key=learning_key_for(description) or None,
        currency=currency,
        import_source=source,
    )


def ingest_records(
    repo: Repository,
    user_id: str,
    records: list[dict],
    source: str | None = None,
) -> IngestResult:
    """Store parsed records, skipping ones that duplicate stored transactions.

    A duplicate has the same date, amount and raw description as an existing
    transaction of the same user (or as an earlier record in this batch).
    """
    new_txns: list[Transaction] = []
    seen: set[tuple] = set()
    duplicates = 0

    for i, rec in enumerate(records):
        try:
            date = rec["date"]
            description = rec["description"]
            amount = float(rec["amount"])
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"Record {i} is missing or has a bad field: {e}") from e

        sig = (date, round(amount, 2), description)
        if sig in seen or repo.find_duplicate_transaction(user_id, date, amount, description):
            duplicates += 1
            continue
        seen.add(sig)
        new_txns.append(build_transaction(
            user_id, date, amount, description,
            currency=rec.get("currency", "EUR"), source=source,
        ))

    if new_txns:
        repo.insert_transactions_batch(new_txns)
    logger.info(
        "Ingested %d transactions (%d duplicates skipped)",
        len(new_txns), duplicates,
    )
    return IngestResult(inserted=len(new_txns), duplicates=duplicates)
