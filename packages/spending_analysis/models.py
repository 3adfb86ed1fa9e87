"""Data models for ``spending_analysis``.

Records crossing a boundary (messages and rules coming in, cache rows going
to the store, summaries going to consumers) are frozen Pydantic models so
they validate on construction and serialize to JSON deterministically.
``CategoryMatch`` never leaves the process and stays a plain frozen
dataclass.
"""

from __future__ import annotations

import datetime as dt
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from enum import StrEnum
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

if TYPE_CHECKING:
    from .categories import Category

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class Direction(StrEnum):
    DEBIT = "DEBIT"
    CREDIT = "CREDIT"


class DirectionHint(StrEnum):
    """Message-level hint from the source (inbox vs. sent); advisory only."""

    INBOUND = "INBOUND"
    OUTBOUND = "OUTBOUND"
    UNKNOWN = "UNKNOWN"


class GatePolicy(StrEnum):
    """Which messages are allowed past the classifier's gate check.

    ``CURRENCY_OR_KEYWORD`` admits any body carrying a currency amount or a
    debit/credit keyword. ``REQUIRE_OTP`` additionally demands an OTP-like
    verification code, which drops ordinary notifications that carry none.
    """

    CURRENCY_OR_KEYWORD = "CURRENCY_OR_KEYWORD"
    REQUIRE_OTP = "REQUIRE_OTP"


_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
_ONE_MS = timedelta(milliseconds=1)


def millis_to_datetime(timestamp_ms: int) -> datetime:
    return _EPOCH + timedelta(milliseconds=timestamp_ms)


def datetime_to_millis(value: datetime) -> int:
    if value.tzinfo is None:
        raise ValueError("naive datetimes are ambiguous; attach a time zone")
    # Integer timedelta arithmetic; sub-millisecond parts are floored.
    return (value - _EPOCH) // _ONE_MS


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


class RawMessage(BaseModel):
    """A message as supplied by the Message Source."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: int = Field(ge=0)
    body: str
    sender: str = ""
    timestamp_ms: int
    direction_hint: DirectionHint = DirectionHint.UNKNOWN


def _clean_strings(v: object) -> list[str]:
    # Accepts a single string or any iterable; blanks and non-strings are dropped.
    if v is None:
        return []
    items = [v] if isinstance(v, str) else v
    if not isinstance(items, Iterable):
        raise ValueError("expected a string or a list of strings")
    return [s.strip() for s in items if isinstance(s, str) and s.strip()]


class CategoryRule(BaseModel):
    """A user-defined categorization rule (owned by the Rule Store).

    Keywords are matched case-insensitively, so they are stored lower-cased;
    blank keywords and sender patterns are dropped rather than counted as
    criteria that can never match.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", str_strip_whitespace=True)

    id: int | None = None
    name: str
    keywords: frozenset[str] = frozenset()
    sender_patterns: frozenset[str] = frozenset()
    amount_min: Decimal | None = None
    amount_max: Decimal | None = None
    category: str
    priority: int = 0
    active: bool = True

    @field_validator("keywords", mode="before")
    @classmethod
    def _normalize_keywords(cls, v: object) -> frozenset[str]:
        return frozenset(s.lower() for s in _clean_strings(v))

    @field_validator("sender_patterns", mode="before")
    @classmethod
    def _normalize_patterns(cls, v: object) -> frozenset[str]:
        return frozenset(_clean_strings(v))

    @field_validator("name", "category")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        if not v:
            raise ValueError("must be non-empty")
        return v

    @model_validator(mode="after")
    def _check_range(self) -> CategoryRule:
        if (
            self.amount_min is not None
            and self.amount_max is not None
            and self.amount_min > self.amount_max
        ):
            raise ValueError("amount_min must not exceed amount_max")
        return self

    @property
    def has_amount_range(self) -> bool:
        return self.amount_min is not None or self.amount_max is not None


class VendorGroup(BaseModel):
    """A named set of vendors whose spending is reported together.

    Vendor names are compared case-insensitively and stored lower-cased. A
    vendor may belong to several groups.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", str_strip_whitespace=True)

    name: str = Field(min_length=1)
    vendors: frozenset[str] = frozenset()

    @field_validator("vendors", mode="before")
    @classmethod
    def _normalize_vendors(cls, v: object) -> frozenset[str]:
        return frozenset(s.lower() for s in _clean_strings(v))


# ---------------------------------------------------------------------------
# Core records
# ---------------------------------------------------------------------------


class Transaction(BaseModel):
    """A structured financial event extracted from one message.

    Only the classifier creates these. ``excluded`` is the single field that
    changes afterwards, and it changes by copy (``with_excluded``).
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: int
    amount: Decimal = Field(ge=0)
    direction: Direction
    description: str
    timestamp: datetime
    source_message_id: int
    sender: str
    body: str
    excluded: bool = False

    @field_validator("timestamp")
    @classmethod
    def _aware(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            raise ValueError("timestamp must be timezone-aware")
        return v.astimezone(UTC)

    def with_excluded(self, excluded: bool = True) -> Transaction:
        return self.model_copy(update={"excluded": excluded})


@dataclass(frozen=True, slots=True)
class CategoryMatch:
    """Best rule for a transaction together with its confidence in [0, 1]."""

    rule: CategoryRule
    transaction: Transaction
    confidence: float

    @property
    def category(self) -> Category:
        from .categories import parse_category  # local import avoids a cycle

        return parse_category(self.rule.category)


class CacheEntry(BaseModel):
    """Persisted classification outcome for one message id."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    message_id: int
    body_hash: str
    body: str
    sender: str
    timestamp_ms: int
    has_transaction: bool
    amount: Decimal | None = None
    direction: Direction | None = None
    processed_at_ms: int
    excluded: bool = False
    # Policy the entry was classified under; entries from another policy are
    # never reused.
    gate_policy: GatePolicy = GatePolicy.CURRENCY_OR_KEYWORD

    @model_validator(mode="after")
    def _transaction_fields(self) -> CacheEntry:
        if self.has_transaction:
            if self.amount is None or self.direction is None:
                raise ValueError("transaction entries require amount and direction")
        elif self.amount is not None or self.direction is not None:
            raise ValueError("entries without a transaction must not carry amount/direction")
        return self


class AnalysisMetadata(BaseModel):
    """Bookkeeping for the most recent successful run; replaced wholesale."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    last_processed_message_id: int
    last_processed_timestamp_ms: int
    total_processed: int = Field(ge=0)
    run_count: int = Field(ge=0)
    last_run_at_ms: int


# ---------------------------------------------------------------------------
# Summaries (derived views)
# ---------------------------------------------------------------------------


class DailySummary(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    date: dt.date
    total_amount: Decimal
    count: int
    transactions: tuple[Transaction, ...]


class MonthlySummary(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    month: str  # "YYYY-MM"
    total_amount: Decimal
    count: int
    daily_summaries: tuple[DailySummary, ...]


class YearlySummary(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    year: str  # "YYYY"
    total_amount: Decimal
    count: int
    monthly_summaries: tuple[MonthlySummary, ...]


class SenderSummary(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    sender: str
    total_amount: Decimal
    count: int
    last_transaction_at: datetime


class VendorSummary(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    vendor: str
    total_amount: Decimal
    count: int
    last_transaction_at: datetime


class SpendingReport(BaseModel):
    """Everything the Summary Consumer reads after a run."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    daily: tuple[DailySummary, ...]
    monthly: tuple[MonthlySummary, ...]
    yearly: tuple[YearlySummary, ...]
    credit_daily: tuple[DailySummary, ...]
    credit_monthly: tuple[MonthlySummary, ...]
    total_spending: Decimal
    total_credits: Decimal
    average_daily: Decimal
    average_monthly: Decimal
    top_days: tuple[DailySummary, ...]
    top_months: tuple[MonthlySummary, ...]
    by_category: dict[str, Decimal]
    by_sender: tuple[SenderSummary, ...]
    by_vendor: tuple[VendorSummary, ...] = ()
    by_vendor_group: dict[str, Decimal] = Field(default_factory=dict)
    first_transaction_at: datetime | None = None
    last_transaction_at: datetime | None = None


__all__ = [
    "Direction",
    "DirectionHint",
    "GatePolicy",
    "RawMessage",
    "CategoryRule",
    "Transaction",
    "CategoryMatch",
    "CacheEntry",
    "AnalysisMetadata",
    "DailySummary",
    "MonthlySummary",
    "YearlySummary",
    "SenderSummary",
    "VendorSummary",
    "VendorGroup",
    "SpendingReport",
    "millis_to_datetime",
    "datetime_to_millis",
]
