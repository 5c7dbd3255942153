"""CLI entry point for spendsort.

Commands:
    spendsort init                           Create the database and seed categories
    spendsort fingerprint TEXT               Show normalized text and learning key
    spendsort add-txn DATE AMOUNT DESC       Store a single transaction
    spendsort list [--uncategorized]         List transactions
    spendsort categorize TXN [CATEGORY]      Categorize a transaction manually
        --option {once,rule,exclude,no-auto} [--transfer] [--income]
    spendsort rule add PATTERN --mode M --category ID   Create a pattern rule
    spendsort rule list                      List rules by key
    spendsort rule delete ID                 Delete a rule
    spendsort auto [--workers N]             Apply rules to uncategorized transactions
    spendsort category list                  Print categories
    spendsort category add NAME [--parent ID] [--id ID]   Add a category
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

from spendsort.errors import SpendsortError

logger = logging.getLogger(__name__)


def _setup_logging() -> None:
    """Configure logging based on SPENDSORT_LOG_LEVEL env var."""
    level = os.environ.get("SPENDSORT_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _get_config():
    """Load application config from config directory."""
    from spendsort.config import Config

    config_dir = os.environ.get("SPENDSORT_CONFIG_DIR", "config")
    return Config(config_dir=config_dir)


def _get_user(config) -> str:
    return os.environ.get("SPENDSORT_USER") or config.default_user


def _get_migrations_dir() -> Path:
    """Get the migrations directory path."""
    from spendsort.database.repository import MIGRATIONS_DIR

    return Path(os.environ.get("SPENDSORT_MIGRATIONS_DIR", MIGRATIONS_DIR))


def _get_repo(config):
    """Create a Repository connected to the configured database, schema applied."""
    from spendsort.database.repository import Repository

    db_path = os.environ.get("SPENDSORT_DB_PATH") or config.database_path
    repo = Repository(db_path=db_path)
    repo.apply_migrations(_get_migrations_dir())
    return repo


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid int value: '{value}'")
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


# ── Command handlers ─────────────────────────────────────


def cmd_init(args: argparse.Namespace) -> int:
    """Apply migrations and seed the configured categories."""
    from spendsort.categories import seed_categories

    config = _get_config()
    repo = _get_repo(config)
    try:
        user = _get_user(config)
        count = seed_categories(repo, config, user)
        print(f"Database ready. Seeded {count} categories for '{user}'.")
        return 0
    finally:
        repo.close()


def cmd_fingerprint(args: argparse.Namespace) -> int:
    """Print the normalized description and learning key for TEXT."""
    from spendsort.categorize.fingerprint import learning_key_for
    from spendsort.categorize.normalize import normalize_description

    print(f"Normalized:   {normalize_description(args.text)}")
    print(f"Learning key: {learning_key_for(args.text)}")
    return 0


def cmd_add_txn(args: argparse.Namespace) -> int:
    """Store one transaction, deriving its learning key."""
    from spendsort.ingest import ingest_records

    config = _get_config()
    repo = _get_repo(config)
    try:
        result = ingest_records(
            repo, _get_user(config),
            [{"date": args.date, "amount": args.amount, "description": args.description}],
            source="cli",
        )
    except SpendsortError as e:
        print(f"Error: {e}")
        return 1
    finally:
        repo.close()
    if result.duplicates:
        print("Skipped: an identical transaction already exists.")
    else:
        print("Added 1 transaction.")
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    """List transactions with their learning key and category."""
    config = _get_config()
    repo = _get_repo(config)
    try:
        txns = repo.list_transactions(
            _get_user(config), uncategorized_only=args.uncategorized,
        )
        if not txns:
            print("No transactions.")
            return 0
        for t in txns:
            flags = []
            if t.exclude_from_learning:
                flags.append("excluded")
            if t.disable_auto_rules:
                flags.append("no-auto")
            flag_str = f" [{', '.join(flags)}]" if flags else ""
            print(
                f"{t.id}  {t.date}  {t.amount:>10.2f}  {t.raw_description[:40]:<40}"
                f"  key={t.learning_key or '-'}  cat={t.category_id or '-'}{flag_str}"
            )
        return 0
    finally:
        repo.close()


def cmd_categorize(args: argparse.Namespace) -> int:
    """Manually categorize one transaction."""
    from spendsort.categorize.lifecycle import record_manual_categorization

    config = _get_config()
    repo = _get_repo(config)
    try:
        rule_id = record_manual_categorization(
            repo, _get_user(config), args.transaction_id, args.category_id,
            args.option, is_transfer=args.transfer, is_income=args.income,
        )
    except SpendsortError as e:
        print(f"Error: {e}")
        return 1
    finally:
        repo.close()
    print(f"Categorized {args.transaction_id} as {args.category_id or '-'}.")
    if rule_id:
        print(f"Rule {rule_id} created or updated.")
    return 0


def cmd_rule(args: argparse.Namespace) -> int:
    """Dispatch rule subcommands."""
    sub = getattr(args, "rule_command", None)
    if sub is None:
        print("Usage: spendsort rule {add,list,delete}")
        return 1

    config = _get_config()
    repo = _get_repo(config)
    user = _get_user(config)
    try:
        if sub == "add":
            return _cmd_rule_add(repo, user, args)
        if sub == "list":
            return _cmd_rule_list(repo, user)
        if sub == "delete":
            return _cmd_rule_delete(repo, user, args)
    except SpendsortError as e:
        print(f"Error: {e}")
        return 1
    finally:
        repo.close()

    print(f"Unknown rule command: {sub}")
    return 1


def _cmd_rule_add(repo, user: str, args: argparse.Namespace) -> int:
    from spendsort.categorize.lifecycle import create_pattern_rule

    rule_id = create_pattern_rule(repo, user, args.pattern, args.mode, args.category)
    print(f"Created rule {rule_id}.")
    return 0


def _cmd_rule_list(repo, user: str) -> int:
    from spendsort.categorize.lifecycle import list_rules

    rules = list_rules(repo, user)
    if not rules:
        print("No rules.")
        return 0
    for r in rules:
        print(
            f"{r['id']}  {r['learning_key']:<30}  -> {r['category_name']}"
            f"  (confidence {r['confidence']})"
        )
    return 0


def _cmd_rule_delete(repo, user: str, args: argparse.Namespace) -> int:
    from spendsort.categorize.lifecycle import delete_rule

    delete_rule(repo, user, args.rule_id)
    print(f"Deleted rule {args.rule_id}.")
    return 0


def cmd_auto(args: argparse.Namespace) -> int:
    """Run the auto-categorization pass."""
    from spendsort.categorize.auto import auto_categorize

    config = _get_config()
    repo = _get_repo(config)
    workers = args.workers if args.workers is not None else config.auto_categorize_workers
    try:
        result = auto_categorize(repo, _get_user(config), workers=workers)
    except SpendsortError as e:
        print(f"Error: {e}")
        return 1
    finally:
        repo.close()
    print(f"Auto-categorized {result.updated_count} transactions.")
    if result.failed_count:
        print(f"{result.failed_count} transactions failed to update (see log).")
    return 0


def cmd_category(args: argparse.Namespace) -> int:
    """Dispatch category subcommands."""
    sub = getattr(args, "category_command", None)
    if sub is None:
        print("Usage: spendsort category {list,add}")
        return 1

    config = _get_config()
    repo = _get_repo(config)
    user = _get_user(config)
    try:
        if sub == "list":
            return _cmd_category_list(repo, user)
        if sub == "add":
            return _cmd_category_add(repo, user, args)
    except SpendsortError as e:
        print(f"Error: {e}")
        return 1
    finally:
        repo.close()

    print(f"Unknown category command: {sub}")
    return 1


def _cmd_category_list(repo, user: str) -> int:
    cats = repo.list_categories(user)
    if not cats:
        print("No categories. Run 'spendsort init' to seed them.")
        return 0
    children: dict[str, list] = {}
    for c in cats:
        if c.parent_id:
            children.setdefault(c.parent_id, []).append(c)
    for c in cats:
        if c.parent_id:
            continue
        print(f"{c.name} [{c.id}]")
        kids = children.get(c.id, [])
        for i, child in enumerate(kids):
            connector = "└── " if i == len(kids) - 1 else "├── "
            print(f"{connector}{child.name} [{child.id}]")
    return 0


def _cmd_category_add(repo, user: str, args: argparse.Namespace) -> int:
    from spendsort.categories import create_category

    cat = create_category(repo, user, args.name, parent_id=args.parent, category_id=args.id)
    print(f"Added category '{cat.name}' [{cat.id}].")
    return 0


# ── Main entry point ─────────────────────────────────────


_COMMANDS = {
    "init": cmd_init,
    "fingerprint": cmd_fingerprint,
    "add-txn": cmd_add_txn,
    "list": cmd_list,
    "categorize": cmd_categorize,
    "rule": cmd_rule,
    "auto": cmd_auto,
    "category": cmd_category,
}


def main(argv: list[str] | None = None):
    _setup_logging()

    from spendsort.categorize.lifecycle import CATEGORIZE_OPTIONS
    from spendsort.categorize.rules import MATCH_MODES

    parser = argparse.ArgumentParser(
        prog="spendsort",
        description="spendsort learning transaction categorizer",
    )
    subparsers = parser.add_subparsers(dest="command")

    # init
    subparsers.add_parser("init", help="Create the database and seed categories")

    # fingerprint
    fp_p = subparsers.add_parser("fingerprint", help="Show normalized text and learning key")
    fp_p.add_argument("text", help="Raw bank description")

    # add-txn
    add_p = subparsers.add_parser("add-txn", help="Store a single transaction")
    add_p.add_argument("date", help="Transaction date (YYYY-MM-DD)")
    add_p.add_argument("amount", type=float, help="Signed amount")
    add_p.add_argument("description", help="Raw bank description")

    # list
    list_p = subparsers.add_parser("list", help="List transactions")
    list_p.add_argument("--uncategorized", action="store_true",
                        help="Only show transactions without a category")

    # categorize
    cat_txn_p = subparsers.add_parser("categorize", help="Categorize a transaction manually")
    cat_txn_p.add_argument("transaction_id", help="Transaction ID")
    cat_txn_p.add_argument("category_id", nargs="?", help="Category ID")
    cat_txn_p.add_argument("--option", choices=CATEGORIZE_OPTIONS, default="once",
                           help="Learning behavior (default: once)")
    cat_txn_p.add_argument("--transfer", action="store_true", help="Mark as transfer")
    cat_txn_p.add_argument("--income", action="store_true", help="Mark as income")

    # rule
    rule_p = subparsers.add_parser("rule", help="Manage categorization rules")
    rule_sub = rule_p.add_subparsers(dest="rule_command")
    rule_add_p = rule_sub.add_parser("add", help="Create a pattern rule")
    rule_add_p.add_argument("pattern", help="Text to match")
    rule_add_p.add_argument("--mode", choices=MATCH_MODES, default="contains",
                            help="How to match (default: contains)")
    rule_add_p.add_argument("--category", required=True, help="Target category ID")
    rule_sub.add_parser("list", help="List rules")
    rule_del_p = rule_sub.add_parser("delete", help="Delete a rule")
    rule_del_p.add_argument("rule_id", help="Rule ID")

    # auto
    auto_p = subparsers.add_parser("auto", help="Apply rules to uncategorized transactions")
    auto_p.add_argument("--workers", type=_positive_int, help="Worker pool size")

    # category
    cat_p = subparsers.add_parser("category", help="Manage categories")
    cat_sub = cat_p.add_subparsers(dest="category_command")
    cat_sub.add_parser("list", help="Print categories")
    cat_add_p = cat_sub.add_parser("add", help="Add a category")
    cat_add_p.add_argument("name", help="Display name")
    cat_add_p.add_argument("--parent", help="Parent category ID")
    cat_add_p.add_argument("--id", help="Category ID (slug); random if omitted")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    handler = _COMMANDS.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}")
        sys.exit(1)

    sys.exit(handler(args))


if __name__ == "__main__":
    main()
