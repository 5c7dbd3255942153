"""Dataclass models matching the SQLite schema.

Each dataclass corresponds to one table. Fields match column names exactly.
All primary keys are TEXT (UUID strings generated via uuid4()).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from uuid import uuid4


def _new_id() -> str:
    return str(uuid4())


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class Category:
    user_id: str
    name: str
    id: str = field(default_factory=_new_id)
    parent_id: str | None = None
    color: str | None = None
    icon: str | None = None
    created_at: str = field(default_factory=_now)


@dataclass
class Transaction:
    user_id: str
    date: str
    amount: float
    raw_description: str
    id: str = field(default_factory=_new_id)
    normalized_description: str | None = None
    learning_key: str | None = None
    category_id: str | None = None
    currency: str = "EUR"
    import_source: str | None = None
    is_manually_categorized: bool = False
    is_transfer: bool = False
    is_income: bool = False
    exclude_from_learning: bool = False
    disable_auto_rules: bool = False
    created_at: str = field(default_factory=_now)
    updated_at: str = field(default_factory=_now)


@dataclass
class CategorizationRule:
    user_id: str
    learning_key: str
    category_id: str
    id: str = field(default_factory=_new_id)
    confidence: int = 1
    created_by_transaction_id: str | None = None
    created_at: str = field(default_factory=_now)
