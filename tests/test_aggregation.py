from __future__ import annotations

from datetime import UTC, date, datetime
from decimal import Decimal
from zoneinfo import ZoneInfo

import pytest

from spending_analysis.aggregation import UNCATEGORIZED, AggregationEngine, check_rollup, top_n
from spending_analysis.categories import BuiltIn, BuiltInCategory
from spending_analysis.errors import RollupInvariantError, SpendingAnalysisError
from spending_analysis.models import DailySummary, Direction, MonthlySummary, VendorGroup
from tests.helpers.messages import mk_tx

UTC_ENGINE = AggregationEngine(ZoneInfo("UTC"))


def _at(day: int, hour: int = 12, month: int = 3, year: int = 2024) -> datetime:
    return datetime(year, month, day, hour, tzinfo=UTC)


def _march_sample():
    return [
        mk_tx(1, "100", when=_at(1, 9)),
        mk_tx(2, "50", when=_at(1, 18)),
        mk_tx(3, "30", when=_at(2)),
    ]


def test_daily_and_monthly_rollup() -> None:
    daily = UTC_ENGINE.daily_summaries(_march_sample())

    assert [(d.date, d.total_amount, d.count) for d in daily] == [
        (date(2024, 3, 2), Decimal("30"), 1),
        (date(2024, 3, 1), Decimal("150"), 2),
    ]

    monthly = UTC_ENGINE.monthly_summaries(daily)
    assert len(monthly) == 1
    assert monthly[0].month == "2024-03"
    assert monthly[0].total_amount == Decimal("180")
    assert monthly[0].count == 3
    assert [d.date for d in monthly[0].daily_summaries] == [date(2024, 3, 2), date(2024, 3, 1)]


def test_excluded_transactions_do_not_contribute() -> None:
    txs = [*_march_sample(), mk_tx(4, "9999", when=_at(1), excluded=True)]

    daily = UTC_ENGINE.daily_summaries(txs)
    march_first = next(d for d in daily if d.date == date(2024, 3, 1))

    assert march_first.total_amount == Decimal("150")
    assert march_first.count == len(march_first.transactions) == 2
    assert UTC_ENGINE.total_spending(txs) == Decimal("180")


def test_credits_are_a_separate_view() -> None:
    txs = [
        *_march_sample(),
        mk_tx(5, "1000", when=_at(2), direction=Direction.CREDIT),
    ]

    assert UTC_ENGINE.total_spending(txs) == Decimal("180")
    assert UTC_ENGINE.total_credits(txs) == Decimal("1000")

    credit_days = UTC_ENGINE.daily_summaries(txs, Direction.CREDIT)
    assert [(d.date, d.total_amount) for d in credit_days] == [(date(2024, 3, 2), Decimal("1000"))]


def test_days_follow_the_configured_zone() -> None:
    # 20:00 UTC on Mar 1 is already Mar 2 in India (+05:30).
    tx = mk_tx(1, "10", when=_at(1, 20))

    assert UTC_ENGINE.daily_summaries([tx])[0].date == date(2024, 3, 1)
    kolkata = AggregationEngine(ZoneInfo("Asia/Kolkata"))
    assert kolkata.daily_summaries([tx])[0].date == date(2024, 3, 2)


def test_transactions_within_a_day_are_chronological() -> None:
    txs = [
        mk_tx(9, "1", when=_at(1, 15)),
        mk_tx(3, "1", when=_at(1, 8)),
        mk_tx(2, "1", when=_at(1, 15)),
    ]

    (day,) = UTC_ENGINE.daily_summaries(txs)
    assert [t.id for t in day.transactions] == [3, 2, 9]


def test_zero_amounts_are_ignored() -> None:
    assert UTC_ENGINE.daily_summaries([mk_tx(1, "0")]) == []


def test_yearly_rollup() -> None:
    txs = [
        mk_tx(1, "10", when=_at(5, month=1)),
        mk_tx(2, "20", when=_at(5, month=2)),
        mk_tx(3, "5", when=_at(5, month=12, year=2023)),
    ]

    yearly = UTC_ENGINE.yearly_summaries(
        UTC_ENGINE.monthly_summaries(UTC_ENGINE.daily_summaries(txs))
    )

    assert [(y.year, y.total_amount, y.count) for y in yearly] == [
        ("2024", Decimal("30"), 2),
        ("2023", Decimal("5"), 1),
    ]
    assert [m.month for m in yearly[0].monthly_summaries] == ["2024-02", "2024-01"]


def test_averages() -> None:
    txs = _march_sample()

    assert UTC_ENGINE.average_daily(txs) == Decimal("90.00")
    assert UTC_ENGINE.average_monthly(txs) == Decimal("180.00")
    assert UTC_ENGINE.average_daily([]) == Decimal("0.00")
    assert UTC_ENGINE.average_monthly([]) == Decimal("0.00")


def test_average_rounds_half_up() -> None:
    txs = [mk_tx(1, "0.01", when=_at(1)), mk_tx(2, "0.02", when=_at(2))]
    assert UTC_ENGINE.average_daily(txs) == Decimal("0.02")


def _day(d: int, total: str) -> DailySummary:
    return DailySummary(
        date=date(2024, 3, d), total_amount=Decimal(total), count=1, transactions=()
    )


def test_top_n_orders_by_total() -> None:
    days = [_day(1, "100"), _day(2, "500"), _day(3, "300")]
    assert [d.total_amount for d in top_n(days, 2)] == [Decimal("500"), Decimal("300")]


def test_top_n_is_stable_for_ties() -> None:
    days = [_day(1, "100"), _day(2, "100"), _day(3, "100")]
    assert [d.date.day for d in top_n(days, 2)] == [1, 2]


def test_top_n_edge_cases() -> None:
    assert top_n([_day(1, "1")], 0) == []
    assert len(top_n([_day(1, "1")], 10)) == 1
    with pytest.raises(ValueError):
        top_n([], -1)


def test_check_rollup_detects_mismatch() -> None:
    bad = MonthlySummary(
        month="2024-03",
        total_amount=Decimal("999"),
        count=1,
        daily_summaries=(_day(1, "10"),),
    )

    with pytest.raises(RollupInvariantError) as ei:
        check_rollup(bad)
    assert isinstance(ei.value, AssertionError)
    assert isinstance(ei.value, SpendingAnalysisError)


def test_by_category_sorted_by_total() -> None:
    txs = [
        mk_tx(1, "40", description="Swiggy order"),
        mk_tx(2, "200", description="Amazon purchase"),
        mk_tx(3, "60", description="Zomato order"),
        mk_tx(4, "5", description="mystery"),
    ]

    def categorizer(tx):
        if "mystery" in tx.description:
            return None
        if "Amazon" in tx.description:
            return BuiltIn(BuiltInCategory.SHOPPING)
        return BuiltIn(BuiltInCategory.FOOD_DINING)

    totals = UTC_ENGINE.by_category(txs, categorizer)

    assert list(totals.items()) == [
        ("Shopping", Decimal("200")),
        ("Food & Dining", Decimal("100")),
        (UNCATEGORIZED, Decimal("5")),
    ]


def test_by_sender() -> None:
    txs = [
        mk_tx(1, "10", sender="AX-SBIUPI", when=_at(1)),
        mk_tx(2, "25", sender="VM-HDFCBK", when=_at(2)),
        mk_tx(3, "20", sender="AX-SBIUPI", when=_at(3)),
        mk_tx(4, "99", sender="", when=_at(3)),
    ]

    summaries = UTC_ENGINE.by_sender(txs)

    assert [(s.sender, s.total_amount, s.count) for s in summaries] == [
        ("AX-SBIUPI", Decimal("30"), 2),
        ("VM-HDFCBK", Decimal("25"), 1),
    ]
    assert summaries[0].last_transaction_at == _at(3)


def test_date_range() -> None:
    txs = [
        mk_tx(1, "1", when=_at(5)),
        mk_tx(2, "1", when=_at(1)),
        mk_tx(3, "1", when=_at(9), excluded=True),
    ]

    assert UTC_ENGINE.date_range(txs) == (_at(1), _at(5))
    assert UTC_ENGINE.date_range([]) is None


def test_report_is_deterministic_for_input_order() -> None:
    txs = [
        *_march_sample(),
        mk_tx(4, "75", when=_at(10, month=2), description="Swiggy order"),
        mk_tx(5, "500", when=_at(3), direction=Direction.CREDIT),
    ]

    forward = UTC_ENGINE.build_report(txs)
    backward = UTC_ENGINE.build_report(list(reversed(txs)))

    assert forward.model_dump_json() == backward.model_dump_json()
    assert forward.total_spending == Decimal("255")
    assert forward.total_credits == Decimal("500")
    assert [m.month for m in forward.monthly] == ["2024-03", "2024-02"]
    assert forward.top_days[0].date == date(2024, 3, 1)
    assert forward.by_category["Food & Dining"] == Decimal("75")
    assert forward.first_transaction_at == _at(10, month=2)


def test_empty_report() -> None:
    report = UTC_ENGINE.build_report([])

    assert report.daily == () and report.monthly == () and report.yearly == ()
    assert report.total_spending == Decimal("0")
    assert report.average_daily == Decimal("0.00")
    assert report.by_category == {}
    assert report.first_transaction_at is None


def _shopping_spree():
    return [
        mk_tx(1, "40", body="Rs 40 paid at Swiggy", when=_at(1)),
        mk_tx(2, "200", body="Rs 200 debited for Amazon purchase", when=_at(2)),
        mk_tx(3, "60", body="Rs 60 paid at SWIGGY via UPI", when=_at(3)),
        mk_tx(4, "15", body="Rs 15 debited", when=_at(3)),
        mk_tx(5, "500", body="Rs 500 paid at Swiggy", when=_at(4), excluded=True),
        mk_tx(6, "25", body="Rs 25 paid to uber@axis", when=_at(4)),
    ]


def test_by_vendor_merges_spellings() -> None:
    summaries = UTC_ENGINE.by_vendor(_shopping_spree())

    assert [(s.vendor, s.total_amount, s.count) for s in summaries] == [
        ("Amazon", Decimal("200"), 1),
        ("SWIGGY", Decimal("100"), 2),
        ("Uber", Decimal("25"), 1),
    ]
    assert summaries[1].last_transaction_at == _at(3)


def test_by_vendor_group() -> None:
    groups = [
        VendorGroup(name="Food", vendors=["swiggy", "zomato"]),
        VendorGroup(name="Getting around", vendors=["Uber", "Ola"]),
        VendorGroup(name="Everything", vendors=["swiggy", "amazon", "uber"]),
        VendorGroup(name="Books", vendors=["kindle"]),
    ]

    totals = UTC_ENGINE.by_vendor_group(_shopping_spree(), groups)

    assert list(totals.items()) == [
        ("Everything", Decimal("325")),
        ("Food", Decimal("100")),
        ("Getting around", Decimal("25")),
        ("Books", Decimal("0")),
    ]


def test_report_carries_vendor_views() -> None:
    groups = [VendorGroup(name="Food", vendors=["swiggy"])]

    report = UTC_ENGINE.build_report(_shopping_spree(), vendor_groups=groups)

    assert [v.vendor for v in report.by_vendor] == ["Amazon", "SWIGGY", "Uber"]
    assert report.by_vendor_group == {"Food": Decimal("100")}
    assert UTC_ENGINE.build_report([]).by_vendor_group == {}
