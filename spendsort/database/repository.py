"""Repository: CRUD operations against SQLite using raw SQL.

All methods take/return dataclass instances from models.py.
Connection management uses a single connection with WAL mode and
foreign keys enabled.  Writes are serialized through a lock so the
auto-categorization worker pool can share one repository.

Any sqlite3 failure is logged here with context and re-raised as a
StorageError carrying a generic message.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path

from spendsort.errors import DuplicateRuleError, StorageError

from .models import CategorizationRule, Category, Transaction

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"

_TXN_COLUMNS = (
    "id, user_id, date, amount, raw_description, normalized_description,"
    " learning_key, category_id, currency, import_source,"
    " is_manually_categorized, is_transfer, is_income,"
    " exclude_from_learning, disable_auto_rules, created_at, updated_at"
)


class Repository:
    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
            self._conn.execute("PRAGMA journal_mode = WAL")
        return self._conn

    def close(self):
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    @contextmanager
    def _op(self, action: str):
        """Run one unit of work under the lock; commit on success."""
        with self._lock:
            try:
                yield self.conn
                self.conn.commit()
            except sqlite3.Error as e:
                self.conn.rollback()
                logger.exception("Storage failure while trying to %s", action)
                raise StorageError(f"Failed to {action}") from e

    # ── Migrations ──────────────────────────────────────────

    def apply_migrations(self, migrations_dir: Path = MIGRATIONS_DIR):
        """Apply all pending SQL migrations in order.

        Each migration runs in a transaction: if the SQL fails, the
        schema_version row is not inserted, allowing retry on next startup.
        """
        self.conn.execute(
            "CREATE TABLE IF NOT EXISTS schema_version ("
            "  version INTEGER PRIMARY KEY,"
            "  description TEXT,"
            "  applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP"
            ")"
        )
        self.conn.commit()

        row = self.conn.execute(
            "SELECT MAX(version) FROM schema_version"
        ).fetchone()
        current = row[0] or 0

        for sql_file in sorted(Path(migrations_dir).glob("*.sql")):
            version = int(sql_file.name.split("_")[0])
            if version > current:
                try:
                    self.conn.execute("BEGIN")
                    # executescript auto-commits, so we split statements manually
                    sql_text = sql_file.read_text()
                    for statement in sql_text.split(";"):
                        statement = statement.strip()
                        if statement:
                            self.conn.execute(statement)
                    self.conn.execute(
                        "INSERT INTO schema_version (version, description) VALUES (?, ?)",
                        (version, sql_file.stem),
                    )
                    self.conn.commit()
                    logger.debug("Applied migration %s", sql_file.name)
                except Exception:
                    self.conn.rollback()
                    raise

    # ── Categories ──────────────────────────────────────────

    def insert_category(self, cat: Category) -> Category:
        with self._op("insert category") as conn:
            conn.execute(
                "INSERT INTO categories"
                " (id, user_id, parent_id, name, color, icon, created_at)"
                " VALUES (?,?,?,?,?,?,?)",
                (cat.id, cat.user_id, cat.parent_id, cat.name,
                 cat.color, cat.icon, cat.created_at),
            )
        return cat

    def get_category(self, category_id: str) -> Category | None:
        with self._op("read category") as conn:
            row = conn.execute(
                "SELECT * FROM categories WHERE id = ?", (category_id,)
            ).fetchone()
        return self._row_to_category(row) if row else None

    def list_categories(self, user_id: str) -> list[Category]:
        with self._op("list categories") as conn:
            rows = conn.execute(
                "SELECT * FROM categories WHERE user_id = ? ORDER BY name",
                (user_id,),
            ).fetchall()
        return [self._row_to_category(r) for r in rows]

    # ── Transactions ────────────────────────────────────────

    def insert_transaction(self, txn: Transaction) -> Transaction:
        with self._op("insert transaction") as conn:
            conn.execute(
                f"INSERT INTO transactions ({_TXN_COLUMNS})"
                " VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?)",
                self._transaction_params(txn),
            )
        return txn

    def insert_transactions_batch(self, txns: list[Transaction]):
        """Insert multiple transactions atomically.

        Uses a transaction wrapper so either all inserts succeed or none do.
        """
        with self._op("insert transactions") as conn:
            conn.execute("BEGIN")
            conn.executemany(
                f"INSERT INTO transactions ({_TXN_COLUMNS})"
                " VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?)",
                [self._transaction_params(t) for t in txns],
            )

    def get_transaction(self, txn_id: str) -> Transaction | None:
        with self._op("read transaction") as conn:
            row = conn.execute(
                "SELECT * FROM transactions WHERE id = ?", (txn_id,)
            ).fetchone()
        return self._row_to_transaction(row) if row else None

    def find_duplicate_transaction(
        self, user_id: str, date: str, amount: float, raw_description: str
    ) -> Transaction | None:
        """Find a transaction with the same date, amount and raw description."""
        with self._op("look up duplicate transaction") as conn:
            row = conn.execute(
                "SELECT * FROM transactions"
                " WHERE user_id = ? AND date = ?"
                "   AND ABS(amount - ?) < 0.005 AND raw_description = ?",
                (user_id, date, amount, raw_description),
            ).fetchone()
        return self._row_to_transaction(row) if row else None

    def list_transactions(
        self, user_id: str, uncategorized_only: bool = False
    ) -> list[Transaction]:
        sql = "SELECT * FROM transactions WHERE user_id = ?"
        if uncategorized_only:
            sql += " AND category_id IS NULL"
        sql += " ORDER BY date, rowid"
        with self._op("list transactions") as conn:
            rows = conn.execute(sql, (user_id,)).fetchall()
        return [self._row_to_transaction(r) for r in rows]

    def find_eligible_for_auto_categorize(self, user_id: str) -> list[Transaction]:
        """Uncategorized transactions that rules are allowed to touch."""
        with self._op("list transactions eligible for auto-categorization") as conn:
            rows = conn.execute(
                "SELECT * FROM transactions"
                " WHERE user_id = ?"
                "   AND category_id IS NULL"
                "   AND exclude_from_learning = 0"
                "   AND disable_auto_rules = 0"
                "   AND (COALESCE(learning_key, '') != ''"
                "        OR COALESCE(normalized_description, '') != '')"
                " ORDER BY date, rowid",
                (user_id,),
            ).fetchall()
        return [self._row_to_transaction(r) for r in rows]

    _CATEGORIZATION_COLS = frozenset({
        "category_id", "learning_key", "is_manually_categorized",
        "is_transfer", "is_income", "exclude_from_learning",
        "disable_auto_rules",
    })

    def update_categorization(self, txn_id: str, **fields) -> None:
        # Reject unknown column names to prevent silent bugs
        unknown = set(fields.keys()) - self._CATEGORIZATION_COLS
        if unknown:
            raise ValueError(f"Unknown columns for update_categorization: {unknown}")
        if not fields:
            return

        sets = ["updated_at = CURRENT_TIMESTAMP"]
        vals: list = []
        for col in sorted(fields):
            sets.append(f"{col} = ?")
            val = fields[col]
            vals.append(int(val) if isinstance(val, bool) else val)
        vals.append(txn_id)
        with self._op("update transaction categorization") as conn:
            conn.execute(
                f"UPDATE transactions SET {', '.join(sets)} WHERE id = ?",
                vals,
            )

    def apply_auto_category(self, txn_id: str, category_id: str) -> bool:
        """Set the category only if the transaction is still uncategorized.

        Returns True when this call performed the update.
        """
        with self._op("apply auto category") as conn:
            cur = conn.execute(
                "UPDATE transactions SET category_id = ?,"
                " updated_at = CURRENT_TIMESTAMP"
                " WHERE id = ? AND category_id IS NULL",
                (category_id, txn_id),
            )
        return cur.rowcount == 1

    # ── Categorization Rules ────────────────────────────────

    def insert_rule(self, rule: CategorizationRule) -> str:
        """Insert a rule and return its id.

        Raises:
            DuplicateRuleError: If the user already has a rule with this key.
                Covers the race where two callers create the same key.
        """
        with self._lock:
            try:
                self.conn.execute(
                    "INSERT INTO categorization_rules"
                    " (id, user_id, learning_key, category_id, confidence,"
                    "  created_by_transaction_id, created_at)"
                    " VALUES (?,?,?,?,?,?,?)",
                    (rule.id, rule.user_id, rule.learning_key, rule.category_id,
                     rule.confidence, rule.created_by_transaction_id,
                     rule.created_at),
                )
                self.conn.commit()
                return rule.id
            except sqlite3.IntegrityError as e:
                self.conn.rollback()
                if "learning_key" in str(e):
                    existing = self.find_rule_by_key(rule.user_id, rule.learning_key)
                    raise DuplicateRuleError(
                        rule.learning_key,
                        existing.id if existing else None,
                    ) from e
                logger.exception("Integrity failure inserting rule %s", rule.learning_key)
                raise StorageError("Failed to insert rule") from e
            except sqlite3.Error as e:
                self.conn.rollback()
                logger.exception("Storage failure inserting rule %s", rule.learning_key)
                raise StorageError("Failed to insert rule") from e

    def get_rule(self, rule_id: str) -> CategorizationRule | None:
        with self._op("read rule") as conn:
            row = conn.execute(
                "SELECT * FROM categorization_rules WHERE id = ?", (rule_id,)
            ).fetchone()
        return self._row_to_rule(row) if row else None

    def find_rule_by_key(
        self, user_id: str, learning_key: str
    ) -> CategorizationRule | None:
        with self._op("look up rule") as conn:
            row = conn.execute(
                "SELECT * FROM categorization_rules"
                " WHERE user_id = ? AND learning_key = ?",
                (user_id, learning_key),
            ).fetchone()
        return self._row_to_rule(row) if row else None

    def list_rules(self, user_id: str) -> list[CategorizationRule]:
        """All rules for a user in creation order (the matching precedence)."""
        with self._op("list rules") as conn:
            rows = conn.execute(
                "SELECT * FROM categorization_rules WHERE user_id = ?"
                " ORDER BY created_at, rowid",
                (user_id,),
            ).fetchall()
        return [self._row_to_rule(r) for r in rows]

    def list_rules_with_categories(self, user_id: str) -> list[dict]:
        """Rules joined with their category name, ordered by key for display."""
        with self._op("list rules") as conn:
            rows = conn.execute(
                "SELECT r.id, r.learning_key, r.category_id, r.confidence,"
                "  r.created_by_transaction_id, c.name AS category_name"
                " FROM categorization_rules r"
                " JOIN categories c ON c.id = r.category_id"
                " WHERE r.user_id = ?"
                " ORDER BY r.learning_key",
                (user_id,),
            ).fetchall()
        return [dict(r) for r in rows]

    def update_rule_category_and_bump_confidence(
        self, rule_id: str, category_id: str
    ) -> None:
        with self._op("update rule") as conn:
            conn.execute(
                "UPDATE categorization_rules"
                " SET category_id = ?, confidence = confidence + 1"
                " WHERE id = ?",
                (category_id, rule_id),
            )

    def delete_rule(self, rule_id: str) -> bool:
        with self._op("delete rule") as conn:
            cur = conn.execute(
                "DELETE FROM categorization_rules WHERE id = ?", (rule_id,)
            )
        return cur.rowcount == 1

    # ── Row Converters ──────────────────────────────────────

    @staticmethod
    def _transaction_params(t: Transaction) -> tuple:
        return (
            t.id, t.user_id, t.date, t.amount, t.raw_description,
            t.normalized_description, t.learning_key, t.category_id,
            t.currency, t.import_source,
            int(t.is_manually_categorized), int(t.is_transfer),
            int(t.is_income), int(t.exclude_from_learning),
            int(t.disable_auto_rules), t.created_at, t.updated_at,
        )

    @staticmethod
    def _row_to_category(row: sqlite3.Row) -> Category:
        return Category(
            id=row["id"], user_id=row["user_id"],
            parent_id=row["parent_id"], name=row["name"],
            color=row["color"], icon=row["icon"],
            created_at=row["created_at"],
        )

    @staticmethod
    def _row_to_transaction(row: sqlite3.Row) -> Transaction:
        return Transaction(
            id=row["id"], user_id=row["user_id"],
            date=row["date"], amount=row["amount"],
            raw_description=row["raw_description"],
            normalized_description=row["normalized_description"],
            learning_key=row["learning_key"],
            category_id=row["category_id"],
            currency=row["currency"],
            import_source=row["import_source"],
            is_manually_categorized=bool(row["is_manually_categorized"]),
            is_transfer=bool(row["is_transfer"]),
            is_income=bool(row["is_income"]),
            exclude_from_learning=bool(row["exclude_from_learning"]),
            disable_auto_rules=bool(row["disable_auto_rules"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _row_to_rule(row: sqlite3.Row) -> CategorizationRule:
        return CategorizationRule(
            id=row["id"], user_id=row["user_id"],
            learning_key=row["learning_key"],
            category_id=row["category_id"],
            confidence=row["confidence"],
            created_by_transaction_id=row["created_by_transaction_id"],
            created_at=row["created_at"],
        )
