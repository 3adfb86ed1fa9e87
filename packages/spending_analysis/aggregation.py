"""Time-bucketed spending aggregates.

Only transactions that are not excluded, have the requested direction and a
positive amount contribute. The same filter applies to totals, counts and the
``transactions`` list of each day, so ``count == len(transactions)`` always
holds and days with nothing to contribute are not emitted at all.

Roll-ups are strict: a month's total/count equals the sum over its days, a
year's equals the sum over its months. :func:`check_rollup` enforces this
and raises :class:`~spending_analysis.errors.RollupInvariantError` otherwise.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable, Iterable, Sequence
from datetime import date, datetime, tzinfo
from decimal import ROUND_HALF_UP, Decimal
from typing import TypeVar

from .categories import Category, display_name, guess_category
from .errors import RollupInvariantError
from .models import (
    DailySummary,
    Direction,
    MonthlySummary,
    SenderSummary,
    SpendingReport,
    Transaction,
    VendorGroup,
    VendorSummary,
    YearlySummary,
)
from .vendors import transaction_vendor, vendor_key

UNCATEGORIZED = "Uncategorized"
DEFAULT_TOP_N = 5

_ZERO = Decimal("0")
_CENTS = Decimal("0.01")

type Categorizer = Callable[[Transaction], Category | None]
type VendorExtractor = Callable[[Transaction], str | None]

SummaryT = TypeVar("SummaryT", DailySummary, MonthlySummary, YearlySummary)


def _q2(value: Decimal) -> Decimal:
    return value.quantize(_CENTS, rounding=ROUND_HALF_UP)


def _sum(values: Iterable[Decimal]) -> Decimal:
    return sum(values, _ZERO)


def _contributes(tx: Transaction, direction: Direction) -> bool:
    return not tx.excluded and tx.direction == direction and tx.amount > 0


def check_rollup(summary: MonthlySummary | YearlySummary) -> None:
    """Raise when ``summary`` disagrees with the children it was built from."""

    children: Sequence[DailySummary | MonthlySummary]
    if isinstance(summary, MonthlySummary):
        children, label = summary.daily_summaries, summary.month
    else:
        children, label = summary.monthly_summaries, summary.year
    total = _sum(c.total_amount for c in children)
    count = sum(c.count for c in children)
    if total != summary.total_amount or count != summary.count:
        raise RollupInvariantError(
            f"roll-up mismatch for {label}: total {summary.total_amount} vs {total}, "
            f"count {summary.count} vs {count}"
        )


class AggregationEngine:
    """Aggregates transactions using calendar days of a fixed time zone."""

    def __init__(self, tz: tzinfo) -> None:
        self.tz = tz

    def local_date(self, ts: datetime) -> date:
        return ts.astimezone(self.tz).date()

    # ---- bucketing -------------------------------------------------------------

    def daily_summaries(
        self, transactions: Iterable[Transaction], direction: Direction = Direction.DEBIT
    ) -> list[DailySummary]:
        buckets: dict[date, list[Transaction]] = defaultdict(list)
        for tx in transactions:
            if _contributes(tx, direction):
                buckets[self.local_date(tx.timestamp)].append(tx)

        out: list[DailySummary] = []
        for day in sorted(buckets, reverse=True):
            txs = sorted(buckets[day], key=lambda t: (t.timestamp, t.source_message_id))
            out.append(
                DailySummary(
                    date=day,
                    total_amount=_sum(t.amount for t in txs),
                    count=len(txs),
                    transactions=tuple(txs),
                )
            )
        return out

    def monthly_summaries(self, daily: Iterable[DailySummary]) -> list[MonthlySummary]:
        buckets: dict[str, list[DailySummary]] = defaultdict(list)
        for d in daily:
            buckets[d.date.strftime("%Y-%m")].append(d)

        out: list[MonthlySummary] = []
        for month in sorted(buckets, reverse=True):
            days = sorted(buckets[month], key=lambda d: d.date, reverse=True)
            summary = MonthlySummary(
                month=month,
                total_amount=_sum(d.total_amount for d in days),
                count=sum(d.count for d in days),
                daily_summaries=tuple(days),
            )
            check_rollup(summary)
            out.append(summary)
        return out

    def yearly_summaries(self, monthly: Iterable[MonthlySummary]) -> list[YearlySummary]:
        buckets: dict[str, list[MonthlySummary]] = defaultdict(list)
        for m in monthly:
            buckets[m.month[:4]].append(m)

        out: list[YearlySummary] = []
        for year in sorted(buckets, reverse=True):
            months = sorted(buckets[year], key=lambda m: m.month, reverse=True)
            summary = YearlySummary(
                year=year,
                total_amount=_sum(m.total_amount for m in months),
                count=sum(m.count for m in months),
                monthly_summaries=tuple(months),
            )
            check_rollup(summary)
            out.append(summary)
        return out

    # ---- statistics ------------------------------------------------------------

    def total(self, transactions: Iterable[Transaction], direction: Direction) -> Decimal:
        return _sum(t.amount for t in transactions if _contributes(t, direction))

    def total_spending(self, transactions: Iterable[Transaction]) -> Decimal:
        return self.total(transactions, Direction.DEBIT)

    def total_credits(self, transactions: Iterable[Transaction]) -> Decimal:
        return self.total(transactions, Direction.CREDIT)

    def average_daily(self, transactions: Iterable[Transaction]) -> Decimal:
        """Mean spend over days that had any spending."""

        days = self.daily_summaries(transactions)
        if not days:
            return _q2(_ZERO)
        return _q2(_sum(d.total_amount for d in days) / len(days))

    def average_monthly(self, transactions: Iterable[Transaction]) -> Decimal:
        months = self.monthly_summaries(self.daily_summaries(transactions))
        if not months:
            return _q2(_ZERO)
        return _q2(_sum(m.total_amount for m in months) / len(months))

    def by_category(
        self,
        transactions: Iterable[Transaction],
        categorizer: Categorizer,
        direction: Direction = Direction.DEBIT,
    ) -> dict[str, Decimal]:
        totals: dict[str, Decimal] = defaultdict(lambda: _ZERO)
        for tx in transactions:
            if not _contributes(tx, direction):
                continue
            category = categorizer(tx)
            label = display_name(category) if category is not None else UNCATEGORIZED
            totals[label] += tx.amount
        return dict(sorted(totals.items(), key=lambda kv: (-kv[1], kv[0])))

    def by_sender(
        self, transactions: Iterable[Transaction], direction: Direction = Direction.DEBIT
    ) -> list[SenderSummary]:
        acc: dict[str, list[Transaction]] = defaultdict(list)
        for tx in transactions:
            if _contributes(tx, direction) and tx.sender:
                acc[tx.sender].append(tx)
        out = [
            SenderSummary(
                sender=sender,
                total_amount=_sum(t.amount for t in txs),
                count=len(txs),
                last_transaction_at=max(t.timestamp for t in txs),
            )
            for sender, txs in acc.items()
        ]
        out.sort(key=lambda s: (-s.total_amount, s.sender))
        return out

    def by_vendor(
        self,
        transactions: Iterable[Transaction],
        direction: Direction = Direction.DEBIT,
        *,
        extractor: VendorExtractor = transaction_vendor,
    ) -> list[VendorSummary]:
        """Totals per vendor named in the message body; unnamed transactions are skipped.

        Spellings that differ only in case share one vendor, shown under the
        smallest spelling so the name does not depend on input order.
        """

        acc: dict[str, list[Transaction]] = defaultdict(list)
        names: dict[str, set[str]] = defaultdict(set)
        for tx in transactions:
            if not _contributes(tx, direction):
                continue
            vendor = extractor(tx)
            if vendor:
                key = vendor_key(vendor)
                acc[key].append(tx)
                names[key].add(vendor)
        out = [
            VendorSummary(
                vendor=min(names[key]),
                total_amount=_sum(t.amount for t in txs),
                count=len(txs),
                last_transaction_at=max(t.timestamp for t in txs),
            )
            for key, txs in acc.items()
        ]
        out.sort(key=lambda s: (-s.total_amount, s.vendor))
        return out

    def by_vendor_group(
        self,
        transactions: Iterable[Transaction],
        groups: Iterable[VendorGroup],
        direction: Direction = Direction.DEBIT,
        *,
        extractor: VendorExtractor = transaction_vendor,
    ) -> dict[str, Decimal]:
        """Total per vendor group, descending by total then name.

        Every group is listed, at zero when none of its vendors spent. A
        vendor in several groups counts toward each; vendors in no group are
        left out.
        """

        totals: dict[str, Decimal] = {}
        members: dict[str, list[str]] = defaultdict(list)
        for group in groups:
            totals.setdefault(group.name, _ZERO)
            for v in group.vendors:
                members[vendor_key(v)].append(group.name)
        for tx in transactions:
            if not _contributes(tx, direction):
                continue
            vendor = extractor(tx)
            if not vendor:
                continue
            for name in set(members.get(vendor_key(vendor), ())):
                totals[name] += tx.amount
        return dict(sorted(totals.items(), key=lambda kv: (-kv[1], kv[0])))

    def date_range(self, transactions: Iterable[Transaction]) -> tuple[datetime, datetime] | None:
        stamps = [t.timestamp for t in transactions if not t.excluded]
        if not stamps:
            return None
        return min(stamps), max(stamps)

    # ---- report ----------------------------------------------------------------

    def build_report(
        self,
        transactions: Sequence[Transaction],
        categorizer: Categorizer | None = None,
        *,
        vendor_groups: Sequence[VendorGroup] = (),
        top_n_limit: int = DEFAULT_TOP_N,
    ) -> SpendingReport:
        categorize = categorizer or (lambda tx: guess_category(tx.description))
        daily = self.daily_summaries(transactions)
        monthly = self.monthly_summaries(daily)
        credit_daily = self.daily_summaries(transactions, Direction.CREDIT)
        span = self.date_range(transactions)
        return SpendingReport(
            daily=tuple(daily),
            monthly=tuple(monthly),
            yearly=tuple(self.yearly_summaries(monthly)),
            credit_daily=tuple(credit_daily),
            credit_monthly=tuple(self.monthly_summaries(credit_daily)),
            total_spending=self.total_spending(transactions),
            total_credits=self.total_credits(transactions),
            average_daily=self.average_daily(transactions),
            average_monthly=self.average_monthly(transactions),
            top_days=tuple(top_n(daily, top_n_limit)),
            top_months=tuple(top_n(monthly, top_n_limit)),
            by_category=self.by_category(transactions, categorize),
            by_sender=tuple(self.by_sender(transactions)),
            by_vendor=tuple(self.by_vendor(transactions)),
            by_vendor_group=self.by_vendor_group(transactions, vendor_groups),
            first_transaction_at=span[0] if span else None,
            last_transaction_at=span[1] if span else None,
        )


def top_n(summaries: Iterable[SummaryT], n: int = DEFAULT_TOP_N) -> list[SummaryT]:
    """Highest totals first; equal totals keep their input order."""

    if n < 0:
        raise ValueError("n must be >= 0")
    return sorted(summaries, key=lambda s: -s.total_amount)[:n]


__all__ = [
    "AggregationEngine",
    "Categorizer",
    "VendorExtractor",
    "UNCATEGORIZED",
    "DEFAULT_TOP_N",
    "check_rollup",
    "top_n",
]
