"""Tests for Repository CRUD operations."""

import sqlite3

import pytest

from spendsort.database.models import CategorizationRule, Category, Transaction
from spendsort.database.repository import MIGRATIONS_DIR, Repository
from spendsort.errors import DuplicateRuleError, StorageError


@pytest.fixture
def repo():
    r = Repository(":memory:")
    r.apply_migrations(MIGRATIONS_DIR)
    r.insert_category(Category(user_id="u1", name="Groceries", id="groceries"))
    r.insert_category(Category(user_id="u1", name="Streaming", id="streaming"))
    yield r
    r.close()


def _make_txn(**overrides) -> Transaction:
    defaults = dict(
        user_id="u1",
        date="2026-01-15",
        amount=-50.00,
        raw_description="Albert Heijn 1234",
        normalized_description="ALBERT HEIJN 1234",
        learning_key="ALBERT",
    )
    defaults.update(overrides)
    return Transaction(**defaults)


# ── Migrations ─────────────────────────────────────────────


class TestMigrations:
    def test_tables_created(self, repo):
        names = {
            r[0] for r in repo.conn.execute(
                "SELECT name FROM sqlite_master WHERE type = 'table'"
            ).fetchall()
        }
        assert {"categories", "transactions", "categorization_rules", "schema_version"} <= names

    def test_reapplying_is_noop(self, repo):
        repo.apply_migrations(MIGRATIONS_DIR)
        rows = repo.conn.execute("SELECT version FROM schema_version").fetchall()
        assert [r[0] for r in rows] == [1]


# ── Categories ─────────────────────────────────────────────


class TestCategoryCrud:
    def test_get(self, repo):
        cat = repo.get_category("groceries")
        assert cat.name == "Groceries"
        assert cat.parent_id is None

    def test_get_missing(self, repo):
        assert repo.get_category("nope") is None

    def test_list_by_user_sorted(self, repo):
        repo.insert_category(Category(user_id="u2", name="Other", id="other"))
        assert [c.id for c in repo.list_categories("u1")] == ["groceries", "streaming"]


# ── Transactions ───────────────────────────────────────────


class TestTransactionCrud:
    def test_insert_and_get(self, repo):
        txn = _make_txn()
        repo.insert_transaction(txn)
        found = repo.get_transaction(txn.id)
        assert found.raw_description == "Albert Heijn 1234"
        assert found.learning_key == "ALBERT"
        assert found.category_id is None
        assert found.exclude_from_learning is False
        assert found.disable_auto_rules is False

    def test_get_missing(self, repo):
        assert repo.get_transaction("nope") is None

    def test_batch_insert_is_atomic(self, repo):
        good = _make_txn()
        bad = _make_txn(category_id="no-such-category")
        with pytest.raises(StorageError):
            repo.insert_transactions_batch([good, bad])
        assert repo.get_transaction(good.id) is None

    def test_find_duplicate(self, repo):
        txn = _make_txn()
        repo.insert_transaction(txn)
        dup = repo.find_duplicate_transaction("u1", "2026-01-15", -50.0, "Albert Heijn 1234")
        assert dup.id == txn.id
        assert repo.find_duplicate_transaction("u1", "2026-01-16", -50.0, "Albert Heijn 1234") is None
        assert repo.find_duplicate_transaction("u2", "2026-01-15", -50.0, "Albert Heijn 1234") is None

    def test_update_categorization(self, repo):
        txn = _make_txn()
        repo.insert_transaction(txn)
        repo.update_categorization(
            txn.id, category_id="groceries", is_manually_categorized=True,
        )
        found = repo.get_transaction(txn.id)
        assert found.category_id == "groceries"
        assert found.is_manually_categorized is True

    def test_update_rejects_unknown_columns(self, repo):
        with pytest.raises(ValueError, match="Unknown columns"):
            repo.update_categorization("x", amount=1.0)

    def test_exclusion_requires_cleared_key(self, repo):
        txn = _make_txn()
        repo.insert_transaction(txn)
        with pytest.raises(StorageError):
            repo.update_categorization(txn.id, exclude_from_learning=True)
        repo.update_categorization(txn.id, exclude_from_learning=True, learning_key=None)
        assert repo.get_transaction(txn.id).exclude_from_learning is True

    def test_unknown_category_is_storage_error(self, repo):
        txn = _make_txn()
        repo.insert_transaction(txn)
        with pytest.raises(StorageError) as exc:
            repo.update_categorization(txn.id, category_id="missing")
        assert "FOREIGN KEY" not in str(exc.value)
        assert isinstance(exc.value.__cause__, sqlite3.IntegrityError)


class TestEligibility:
    def test_filters(self, repo):
        eligible = _make_txn()
        categorized = _make_txn(category_id="groceries")
        excluded = _make_txn(exclude_from_learning=True, learning_key=None)
        no_auto = _make_txn(disable_auto_rules=True)
        empty = _make_txn(normalized_description="", learning_key=None)
        other_user = _make_txn(user_id="u2")
        for t in (eligible, categorized, excluded, no_auto, empty, other_user):
            repo.insert_transaction(t)

        found = repo.find_eligible_for_auto_categorize("u1")
        assert [t.id for t in found] == [eligible.id]

    def test_apply_auto_category_only_once(self, repo):
        txn = _make_txn()
        repo.insert_transaction(txn)
        assert repo.apply_auto_category(txn.id, "groceries") is True
        assert repo.apply_auto_category(txn.id, "streaming") is False
        assert repo.get_transaction(txn.id).category_id == "groceries"


# ── Rules ──────────────────────────────────────────────────


class TestRuleCrud:
    def test_insert_and_find(self, repo):
        rule = CategorizationRule(user_id="u1", learning_key="ALBERT", category_id="groceries")
        assert repo.insert_rule(rule) == rule.id
        found = repo.find_rule_by_key("u1", "ALBERT")
        assert found.id == rule.id
        assert found.confidence == 1
        assert repo.find_rule_by_key("u2", "ALBERT") is None

    def test_unique_key_per_user(self, repo):
        repo.insert_rule(CategorizationRule(user_id="u1", learning_key="ALBERT", category_id="groceries"))
        with pytest.raises(DuplicateRuleError):
            repo.insert_rule(CategorizationRule(user_id="u1", learning_key="ALBERT", category_id="streaming"))

    def test_list_in_creation_order(self, repo):
        keys = ["ZARA", "contains:ALDI", "MERCADONA"]
        for k in keys:
            repo.insert_rule(CategorizationRule(user_id="u1", learning_key=k, category_id="groceries"))
        assert [r.learning_key for r in repo.list_rules("u1")] == keys

    def test_bump_confidence(self, repo):
        rule = CategorizationRule(user_id="u1", learning_key="NETFLIXCOM", category_id="groceries")
        repo.insert_rule(rule)
        repo.update_rule_category_and_bump_confidence(rule.id, "streaming")
        repo.update_rule_category_and_bump_confidence(rule.id, "streaming")
        found = repo.get_rule(rule.id)
        assert found.category_id == "streaming"
        assert found.confidence == 3

    def test_delete(self, repo):
        rule = CategorizationRule(user_id="u1", learning_key="ALBERT", category_id="groceries")
        repo.insert_rule(rule)
        assert repo.delete_rule(rule.id) is True
        assert repo.delete_rule(rule.id) is False
