from __future__ import annotations

from decimal import Decimal

import pytest

from spending_analysis.categories import BuiltIn, BuiltInCategory, display_name
from spending_analysis.models import CategoryRule
from spending_analysis.rules import (
    MIN_CONFIDENCE,
    categorize,
    categorize_all,
    confidence,
    ordered_active,
    rule_from_transaction,
)

from tests.helpers.messages import AMAZON_BODY, mk_tx


def _mk_amazon_tx(amount: str = "1250.50", sender: str = "VM-HDFCBK"):
    return mk_tx(
        1,
        amount,
        description="from your account for Amazon purchase",
        body=AMAZON_BODY,
        sender=sender,
    )


def _mk_rule(name: str = "r", category: str = "Shopping", **kw) -> CategoryRule:
    return CategoryRule(name=name, category=category, **kw)


def test_single_keyword_rule_matches_with_full_confidence() -> None:
    rule = _mk_rule("Amazon", keywords=["amazon"], priority=5)
    match = categorize(_mk_amazon_tx(), [rule])

    assert match is not None
    assert match.confidence == 1.0
    assert match.rule == rule
    assert match.category == BuiltIn(BuiltInCategory.SHOPPING)
    assert display_name(match.category) == "Shopping"


def test_keywords_are_case_insensitive() -> None:
    rule = _mk_rule(keywords=["AMAZON", "  Purchase "])
    assert rule.keywords == frozenset({"amazon", "purchase"})
    assert confidence(_mk_amazon_tx(), rule) == 1.0


def test_partial_match_at_threshold() -> None:
    rule = _mk_rule(keywords=["amazon", "flipkart", "myntra"])
    match = categorize(_mk_amazon_tx(), [rule])

    assert match is not None
    assert match.confidence == pytest.approx(1 / 3)


def test_below_threshold_is_no_match() -> None:
    rule = _mk_rule(keywords=["amazon", "flipkart", "myntra", "ajio"])

    assert confidence(_mk_amazon_tx(), rule) == 0.25
    assert categorize(_mk_amazon_tx(), [rule]) is None


def test_invalid_sender_regex_contributes_nothing() -> None:
    rule = _mk_rule(keywords=["amazon"], sender_patterns=["[unclosed"])
    assert confidence(_mk_amazon_tx(), rule) == 0.5


def test_sender_pattern_is_a_case_insensitive_search() -> None:
    rule = _mk_rule(sender_patterns=["hdfc"])
    assert confidence(_mk_amazon_tx(sender="VM-HDFCBK"), rule) == 1.0
    assert confidence(_mk_amazon_tx(sender="AX-ICICIB"), rule) == 0.0


@pytest.mark.parametrize(
    ("lo", "hi", "expected"),
    [
        ("1000", None, 1.0),
        ("2000", None, 0.0),
        (None, "1250.50", 1.0),
        (None, "100", 0.0),
        ("1250.50", "1250.50", 1.0),
        ("1", "1250.49", 0.0),
    ],
)
def test_amount_range_is_one_inclusive_criterion(
    lo: str | None, hi: str | None, expected: float
) -> None:
    rule = _mk_rule(
        amount_min=Decimal(lo) if lo else None,
        amount_max=Decimal(hi) if hi else None,
    )
    assert confidence(_mk_amazon_tx(), rule) == expected


def test_inverted_amount_range_is_rejected() -> None:
    with pytest.raises(ValueError):
        _mk_rule(amount_min=Decimal("10"), amount_max=Decimal("5"))


def test_rule_without_criteria_never_matches() -> None:
    rule = _mk_rule()
    assert confidence(_mk_amazon_tx(), rule) == 0.0
    assert categorize(_mk_amazon_tx(), [rule]) is None


def test_higher_priority_wins_equal_confidence() -> None:
    low = _mk_rule("a-low", "Other", keywords=["amazon"], priority=1)
    high = _mk_rule("z-high", "Shopping", keywords=["amazon"], priority=10)

    match = categorize(_mk_amazon_tx(), [low, high])
    assert match is not None and match.rule == high


def test_equal_priority_breaks_ties_by_name() -> None:
    b = _mk_rule("B", "Other", keywords=["amazon"])
    a = _mk_rule("A", "Shopping", keywords=["amazon"])

    match = categorize(_mk_amazon_tx(), [b, a])
    assert match is not None and match.rule == a


def test_higher_confidence_beats_higher_priority() -> None:
    weak = _mk_rule("weak", "Other", keywords=["amazon", "flipkart"], priority=10)
    strong = _mk_rule("strong", "Shopping", keywords=["amazon"], priority=1)

    match = categorize(_mk_amazon_tx(), [weak, strong])
    assert match is not None
    assert match.rule == strong
    assert match.confidence == 1.0


def test_inactive_rules_are_ignored() -> None:
    rule = _mk_rule(keywords=["amazon"], active=False)
    assert categorize(_mk_amazon_tx(), [rule]) is None
    assert ordered_active([rule]) == []


def test_confidence_stays_within_bounds() -> None:
    tx = _mk_amazon_tx()
    rules = [
        _mk_rule(keywords=["amazon"], sender_patterns=["hdfc", "vm"], amount_min=Decimal("1")),
        _mk_rule(keywords=["nothing"], sender_patterns=["(("]),
        _mk_rule(keywords=["amazon", "purchase", "account"]),
    ]
    for rule in rules:
        assert 0.0 <= confidence(tx, rule) <= 1.0

    match = categorize(tx, rules)
    assert match is not None and match.confidence >= MIN_CONFIDENCE


def test_categorize_all_keeps_input_order() -> None:
    rule = _mk_rule(keywords=["amazon"])
    other = mk_tx(2, "10", description="bus ticket", body="Rs 10 paid bus ticket")

    out = categorize_all([other, _mk_amazon_tx()], [rule])

    assert [tx.id for tx, _ in out] == [2, 1]
    assert out[0][1] is None
    assert out[1][1] is not None


def test_rule_from_transaction_derives_keywords_and_sender_pattern() -> None:
    tx = _mk_amazon_tx()
    rule = rule_from_transaction(tx, "Amazon orders", "Shopping", priority=3)

    assert rule.keywords == frozenset({"your", "account", "amazon", "purchase", "debited"})
    assert rule.sender_patterns == frozenset({"VM.*HDFCBK"})
    assert rule.priority == 3 and rule.active
    assert confidence(tx, rule) == 1.0
    # Digits and dashes in the sender id are wildcarded.
    assert confidence(_mk_amazon_tx(sender="VM-620016-HDFCBK"), rule) == 1.0
