"""Builders for messages and transactions used across tests."""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal

from spending_analysis.models import Direction, RawMessage, Transaction, datetime_to_millis

AMAZON_BODY = "Rs. 1,250.50 debited from your account for Amazon purchase"


def ts_ms(year: int, month: int, day: int, hour: int = 12, minute: int = 0) -> int:
    return datetime_to_millis(datetime(year, month, day, hour, minute, tzinfo=UTC))


def mk_message(
    id: int,
    body: str,
    *,
    sender: str = "VM-HDFCBK",
    timestamp_ms: int | None = None,
) -> RawMessage:
    return RawMessage(
        id=id,
        body=body,
        sender=sender,
        timestamp_ms=timestamp_ms if timestamp_ms is not None else ts_ms(2024, 3, 1),
    )


def mk_tx(
    id: int,
    amount: str | Decimal,
    *,
    when: datetime | None = None,
    direction: Direction = Direction.DEBIT,
    description: str = "",
    body: str = "",
    sender: str = "VM-HDFCBK",
    excluded: bool = False,
) -> Transaction:
    return Transaction(
        id=id,
        amount=Decimal(amount),
        direction=direction,
        description=description,
        timestamp=when or datetime(2024, 3, 1, 12, tzinfo=UTC),
        source_message_id=id,
        sender=sender,
        body=body,
        excluded=excluded,
    )
