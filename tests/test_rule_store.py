from __future__ import annotations

from decimal import Decimal

import pytest

from spending_analysis.categories import BuiltInCategory
from spending_analysis.models import CategoryRule
from spending_analysis.rule_store import RuleStore


@pytest.fixture
def store(db_url: str) -> RuleStore:
    return RuleStore(database_url=db_url)


def _rule(name: str, category: str = "Shopping", **kw) -> CategoryRule:
    return CategoryRule(name=name, category=category, **kw)


def test_add_assigns_ids_and_round_trips(store: RuleStore) -> None:
    stored = store.add_rule(
        _rule(
            "Amazon",
            keywords=["Amazon", "order"],
            sender_patterns=["AMZN.*"],
            amount_min=Decimal("10"),
            amount_max=Decimal("5000"),
            priority=3,
        )
    )

    assert stored.id is not None
    again = store.get_rule(stored.id)
    assert again == stored
    assert again is not None and again.keywords == frozenset({"amazon", "order"})


def test_list_orders_by_priority_then_name(store: RuleStore) -> None:
    store.add_rule(_rule("Zeta", priority=1))
    store.add_rule(_rule("Alpha", priority=1))
    store.add_rule(_rule("Top", priority=9))

    assert [r.name for r in store.list_rules()] == ["Top", "Alpha", "Zeta"]


def test_set_active_filters_listing(store: RuleStore) -> None:
    a = store.add_rule(_rule("A"))
    store.add_rule(_rule("B"))
    assert a.id is not None

    assert store.set_active(a.id, False) is True
    assert [r.name for r in store.active_rules()] == ["B"]
    assert store.active_count() == 1
    assert len(store.list_rules()) == 2
    assert store.set_active(999, True) is False


def test_update(store: RuleStore) -> None:
    stored = store.add_rule(_rule("Fuel", category="Transport"))

    updated = store.update_rule(stored.model_copy(update={"priority": 7, "category": "Travel"}))

    assert updated.priority == 7
    assert store.get_rule(updated.id or 0) == updated


def test_update_requires_known_id(store: RuleStore) -> None:
    with pytest.raises(ValueError):
        store.update_rule(_rule("No id"))
    with pytest.raises(LookupError):
        store.update_rule(_rule("Ghost").model_copy(update={"id": 404}))


def test_delete(store: RuleStore) -> None:
    stored = store.add_rule(_rule("Temp"))
    assert stored.id is not None

    assert store.delete_rule(stored.id) is True
    assert store.get_rule(stored.id) is None
    assert store.delete_rule(stored.id) is False


def test_invalid_names_are_rejected(store: RuleStore) -> None:
    with pytest.raises(ValueError, match="Invalid rule name"):
        store.add_rule(_rule("bad$name"))
    with pytest.raises(ValueError, match="Invalid category"):
        store.add_rule(_rule("Fine", category="no<good>"))
    assert store.list_rules() == []


def test_all_categories_merges_custom_ones(store: RuleStore) -> None:
    store.add_rule(_rule("Vet", category="Pets"))
    store.add_rule(_rule("Mall", category="shopping"))

    names = store.all_categories()

    assert "Pets" in names
    assert names.count("Shopping") == 1
    assert len(names) == len(BuiltInCategory) + 1


def test_amount_bounds_keep_their_precision(store: RuleStore) -> None:
    # Stored as minor units; the range CHECK still compares numerically.
    small = store.add_rule(_rule("Tea", amount_min=Decimal("9.99"), amount_max=Decimal("10.00")))
    big = store.add_rule(_rule("Car", amount_min=Decimal("9999999999999999.99")))

    assert small.id is not None and big.id is not None
    got_small = store.get_rule(small.id)
    got_big = store.get_rule(big.id)
    assert got_small is not None
    assert (got_small.amount_min, got_small.amount_max) == (Decimal("9.99"), Decimal("10.00"))
    assert got_big is not None and str(got_big.amount_min) == "9999999999999999.99"
