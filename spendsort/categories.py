"""User categories: creation with the one-level nesting rule, and seeding."""

from __future__ import annotations

import logging

from spendsort.config import Config
from spendsort.database.models import Category
from spendsort.database.repository import Repository
from spendsort.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


def create_category(
    repo: Repository,
    user_id: str,
    name: str,
    parent_id: str | None = None,
    category_id: str | None = None,
) -> Category:
    """Create a category, optionally under a top-level parent.

    Raises:
        ValidationError: empty name, or the parent is itself a child.
        NotFoundError: the parent does not exist for this user.
    """
    if not name or not name.strip():
        raise ValidationError("Category name must not be empty")
    if parent_id:
        parent = repo.get_category(parent_id)
        if parent is None or parent.user_id != user_id:
            raise NotFoundError("Category", parent_id)
        if parent.parent_id is not None:
            raise ValidationError(
                f"Category '{parent_id}' is already a subcategory; "
                "categories nest one level deep"
            )

    category = Category(user_id=user_id, name=name.strip(), parent_id=parent_id or None)
    if category_id:
        category.id = category_id
    return repo.insert_category(category)


def seed_categories(repo: Repository, config: Config, user_id: str) -> int:
    """Insert the configured category tree for a user. Returns count inserted.

    Categories that already exist are left alone, so seeding is repeatable.
    """
    inserted = 0
    # Parents come before their children in the flattened dict
    for cat_id, meta in config.flatten_category_tree().items():
        existing = repo.get_category(cat_id)
        if existing is not None:
            if existing.user_id != user_id:
                logger.warning("Category id '%s' already used by another user", cat_id)
            continue
        create_category(
            repo, user_id, meta["name"],
            parent_id=meta["parent_id"], category_id=cat_id,
        )
        inserted += 1
    logger.info("Seeded %d categories for %s", inserted, user_id)
    return inserted
