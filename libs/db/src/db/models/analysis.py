from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    TypeDecorator,
    text,
)
from sqlalchemy.engine import Dialect
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


_CENTS = Decimal("0.01")


class Money(TypeDecorator[Decimal]):
    """Two-place decimal amount.

    SQLite has no decimal type and the driver would bind ``Decimal`` through
    ``float``, so there the value is stored as integer minor units. Other
    backends get ``NUMERIC(18, 2)``.
    """

    impl = Numeric(18, 2)
    cache_ok = True

    def load_dialect_impl(self, dialect: Dialect) -> Any:
        if dialect.name == "sqlite":
            return dialect.type_descriptor(BigInteger())
        return dialect.type_descriptor(Numeric(18, 2))

    def process_bind_param(self, value: Decimal | None, dialect: Dialect) -> Any:
        if value is None:
            return None
        value = Decimal(value).quantize(_CENTS, rounding=ROUND_HALF_UP)
        if dialect.name == "sqlite":
            return int(value.scaleb(2))
        return value

    def process_result_value(self, value: Any, dialect: Dialect) -> Decimal | None:
        if value is None:
            return None
        if dialect.name == "sqlite":
            return Decimal(int(value)).scaleb(-2)
        return Decimal(value)


# ---------------------------
# Core: sa_message_cache
# ---------------------------


class MessageCacheRow(Base):
    """Per-message classification result, keyed by the source message id.

    Rows are written only through batched upserts (last write wins). A row
    without a transaction never carries amount/direction; the CHECK below keeps
    that true even for writers that bypass the library.
    """

    __tablename__ = "sa_message_cache"

    message_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    body_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    # Raw body is kept so cached transactions can be re-described and matched
    # against keyword rules without re-reading the message source.
    body: Mapped[str] = mapped_column(Text, nullable=False)
    sender: Mapped[str] = mapped_column(String, nullable=False)
    timestamp_ms: Mapped[int] = mapped_column(BigInteger, nullable=False)
    has_transaction: Mapped[bool] = mapped_column(Boolean, nullable=False)
    amount: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    direction: Mapped[str | None] = mapped_column(String(6), nullable=True)
    processed_at_ms: Mapped[int] = mapped_column(BigInteger, nullable=False)
    excluded: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("false")
    )
    gate_policy: Mapped[str] = mapped_column(
        String(24), nullable=False, server_default=text("'CURRENCY_OR_KEYWORD'")
    )

    __table_args__ = (
        CheckConstraint(
            "direction IS NULL OR direction in ('DEBIT','CREDIT')",
            name="ck_sa_cache_direction",
        ),
        CheckConstraint(
            "has_transaction OR (amount IS NULL AND direction IS NULL)",
            name="ck_sa_cache_no_tx_fields",
        ),
        Index("ix_sa_cache_timestamp", "timestamp_ms"),
        Index("ix_sa_cache_processed_at", "processed_at_ms"),
    )


# ---------------------------
# Singleton: sa_analysis_metadata
# ---------------------------


class AnalysisMetadataRow(Base):
    __tablename__ = "sa_analysis_metadata"

    # Single row; the key is fixed so writes always replace the same record.
    id: Mapped[str] = mapped_column(String, primary_key=True)
    last_processed_message_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    last_processed_timestamp_ms: Mapped[int] = mapped_column(BigInteger, nullable=False)
    total_processed: Mapped[int] = mapped_column(Integer, nullable=False)
    run_count: Mapped[int] = mapped_column(Integer, nullable=False)
    last_run_at_ms: Mapped[int] = mapped_column(BigInteger, nullable=False)


# ---------------------------
# Reference: sa_category_rules
# ---------------------------


class CategoryRuleRow(Base):
    __tablename__ = "sa_category_rules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    keywords: Mapped[list[Any]] = mapped_column(JSON, nullable=False)
    sender_patterns: Mapped[list[Any]] = mapped_column(JSON, nullable=False)
    amount_min: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    amount_max: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    category: Mapped[str] = mapped_column(String, nullable=False)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("true"))
    created_at_ms: Mapped[int] = mapped_column(BigInteger, nullable=False)
    last_modified_ms: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "amount_min IS NULL OR amount_max IS NULL OR amount_min <= amount_max",
            name="ck_sa_rules_amount_range",
        ),
    )


__all__ = [
    "Base",
    "Money",
    "MessageCacheRow",
    "AnalysisMetadataRow",
    "CategoryRuleRow",
]
