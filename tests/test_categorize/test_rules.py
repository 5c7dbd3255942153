"""Tests for rule keys and the pattern matcher."""

from spendsort.categorize.rules import (
    CONTAINS,
    EXACT,
    LEGACY,
    STARTS_WITH,
    build_pattern_key,
    first_match,
    matches,
    parse_rule_key,
)
from spendsort.database.models import CategorizationRule, Transaction


def _rule(learning_key: str, category_id: str = "groceries") -> CategorizationRule:
    return CategorizationRule(user_id="u1", learning_key=learning_key, category_id=category_id)


def _txn(normalized: str, learning_key: str | None) -> Transaction:
    return Transaction(
        user_id="u1",
        date="2026-01-15",
        amount=-12.50,
        raw_description=normalized,
        normalized_description=normalized,
        learning_key=learning_key,
    )


class TestRuleKeys:
    def test_build_uppercases_and_trims(self):
        assert build_pattern_key(" glovo ", CONTAINS) == "contains:GLOVO"

    def test_parse_pattern_key(self):
        key = parse_rule_key("starts_with:ALBERT")
        assert key.mode == STARTS_WITH
        assert key.pattern == "ALBERT"
        assert key.is_pattern_rule

    def test_parse_legacy_key(self):
        key = parse_rule_key("GLOVO")
        assert key.mode == LEGACY
        assert key.pattern == "GLOVO"
        assert not key.is_pattern_rule

    def test_parse_splits_on_first_colon(self):
        key = parse_rule_key("contains:A:B")
        assert key.mode == CONTAINS
        assert key.pattern == "A:B"

    def test_parse_uppercases_pattern(self):
        assert parse_rule_key("exact:netflix").pattern == "NETFLIX"


class TestContains:
    def test_substring_of_description(self):
        assert matches(_rule("contains:HEIJN"), _txn("COMPRA EN ALBERT HEIJN1234", "ALBERT"))

    def test_not_in_description(self):
        assert not matches(_rule("contains:JUMBO"), _txn("COMPRA EN ALBERT HEIJN1234", "ALBERT"))

    def test_ignores_fingerprint(self):
        # Fingerprint equal to the pattern is not enough for contains
        assert not matches(_rule("contains:GLOVO"), _txn("UBER EATS", "GLOVO"))


class TestStartsWith:
    def test_prefix_of_description(self):
        assert matches(_rule("starts_with:PAGO EN GLOVO"), _txn("PAGO EN GLOVO01JAN", "GLOVO"))

    def test_substring_elsewhere_does_not_match(self):
        assert not matches(_rule("starts_with:GLOVO"), _txn("PAGO EN GLOVO01JAN", "GLOVO"))


class TestExact:
    def test_fingerprint_equality(self):
        assert matches(_rule("exact:GLOVO"), _txn("PAGO EN GLOVO01JAN BC6L1KTB", "GLOVO"))

    def test_description_containment_is_not_enough(self):
        assert not matches(_rule("exact:GLOVO"), _txn("PAGO EN GLOVO01JAN", "GLOVOX"))

    def test_missing_fingerprint(self):
        assert not matches(_rule("exact:GLOVO"), _txn("GLOVO", None))

    def test_case_insensitive(self):
        assert matches(_rule("exact:glovo"), _txn("GLOVO", "glovo"))


class TestLegacy:
    def test_fingerprint_equality(self):
        assert matches(_rule("NETFLIXCOM"), _txn("SOMETHING ELSE", "NETFLIXCOM"))

    def test_description_containment(self):
        assert matches(_rule("HEIJN"), _txn("COMPRA EN ALBERT HEIJN1234", "ALBERT"))

    def test_neither_condition(self):
        assert not matches(_rule("JUMBO"), _txn("COMPRA EN ALBERT HEIJN1234", "ALBERT"))

    def test_description_only_when_fingerprint_cleared(self):
        assert matches(_rule("ALBERT"), _txn("COMPRA EN ALBERT HEIJN1234", None))


class TestMalformedRules:
    def test_unknown_mode_never_matches(self):
        assert not matches(_rule("regex:GLOVO"), _txn("GLOVO", "GLOVO"))

    def test_empty_pattern_never_matches(self):
        assert not matches(_rule("contains:"), _txn("GLOVO", "GLOVO"))

    def test_empty_legacy_key_never_matches(self):
        assert not matches(_rule(""), _txn("GLOVO", "GLOVO"))


class TestFirstMatch:
    def test_first_in_order_wins(self):
        rules = [
            _rule("contains:ALBERT", "groceries"),
            _rule("ALBERT", "shopping"),
        ]
        hit = first_match(rules, _txn("COMPRA EN ALBERT HEIJN", "ALBERT"))
        assert hit is rules[0]

    def test_skips_non_matching(self):
        rules = [
            _rule("contains:JUMBO", "groceries"),
            _rule("exact:ALBERT", "shopping"),
        ]
        hit = first_match(rules, _txn("COMPRA EN ALBERT HEIJN", "ALBERT"))
        assert hit is rules[1]

    def test_no_match(self):
        assert first_match([_rule("JUMBO")], _txn("GLOVO", "GLOVO")) is None

    def test_empty_rule_set(self):
        assert first_match([], _txn("GLOVO", "GLOVO")) is None
