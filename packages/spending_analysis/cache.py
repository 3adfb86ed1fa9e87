"""Incremental classification cache backed by SQLAlchemy.

One row per source message id records whether the message held a transaction
(and its amount/direction), a hash of the body it was computed from, the gate
policy it was classified under, and when. Runs consult it to skip messages
that were already classified.

Write path
----------
``upsert`` writes classification results; ``mark_excluded`` flips the user's
exclusion flag with a single ``UPDATE``. Both run in one database transaction
while holding a per-store lock, so a reader observes all of a batch or none
of it. An upsert over an existing row never touches ``excluded``: the flag
belongs to the user and a reclassification cannot undo it. Transient
``OperationalError``s (e.g. SQLite "database is locked") roll the write back
and retry it whole; after the final attempt a
:class:`~spending_analysis.errors.CacheWriteError` propagates.

Entries never expire on their own. ``stale_ids`` lists entries processed
before a cutoff so callers can refresh them opportunistically.
"""

from __future__ import annotations

import hashlib
import random
import threading
import time
from collections.abc import Callable, Iterable, Sequence
from typing import Any, TypeVar

from db.client import init_schema, session_scope
from db.models.analysis import AnalysisMetadataRow, MessageCacheRow
from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from .errors import CacheWriteError
from .logging_setup import get_logger
from .models import AnalysisMetadata, CacheEntry, Direction, GatePolicy

_logger = get_logger("spending_analysis.cache")

METADATA_ID = "last_analysis"

T = TypeVar("T")

# ---- Tunables (private) ------------------------------------------------------

_MAX_ATTEMPTS: int = 3
_BACKOFF_SCHEDULE_SEC: tuple[float, ...] = (0.5, 2.0)
_JITTER_PCT: float = 0.20
# Rows per INSERT statement; keeps bound-parameter counts well under SQLite's cap.
_STATEMENT_ROWS: int = 200

# No ``excluded``: on an existing row only mark_excluded changes it.
_UPDATABLE_COLUMNS: tuple[str, ...] = (
    "body_hash",
    "body",
    "sender",
    "timestamp_ms",
    "has_transaction",
    "amount",
    "direction",
    "processed_at_ms",
    "gate_policy",
)


def body_hash(body: str) -> str:
    return hashlib.sha256(body.encode("utf-8")).hexdigest()


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, OperationalError)


def _sleep_backoff(attempt_no: int) -> None:
    if attempt_no - 1 < len(_BACKOFF_SCHEDULE_SEC):
        base = _BACKOFF_SCHEDULE_SEC[attempt_no - 1]
    else:
        base = _BACKOFF_SCHEDULE_SEC[-1]
    jitter = base * _JITTER_PCT
    time.sleep(max(0.0, base + random.uniform(-jitter, jitter)))


def _entry_payload(e: CacheEntry) -> dict[str, Any]:
    return {
        "message_id": e.message_id,
        "body_hash": e.body_hash,
        "body": e.body,
        "sender": e.sender,
        "timestamp_ms": e.timestamp_ms,
        "has_transaction": e.has_transaction,
        "amount": e.amount,
        "direction": e.direction.value if e.direction is not None else None,
        "processed_at_ms": e.processed_at_ms,
        "excluded": e.excluded,
        "gate_policy": e.gate_policy.value,
    }


def _row_to_entry(row: MessageCacheRow) -> CacheEntry:
    return CacheEntry(
        message_id=row.message_id,
        body_hash=row.body_hash,
        body=row.body,
        sender=row.sender,
        timestamp_ms=row.timestamp_ms,
        has_transaction=row.has_transaction,
        amount=row.amount,
        direction=Direction(row.direction) if row.direction is not None else None,
        processed_at_ms=row.processed_at_ms,
        excluded=row.excluded,
        gate_policy=GatePolicy(row.gate_policy),
    )


class IncrementalCache:
    """Message-id keyed cache of classification results."""

    def __init__(self, *, database_url: str | None = None) -> None:
        self._database_url = database_url
        engine = init_schema(database_url=database_url)
        self._dialect = engine.dialect.name
        self._lock = threading.Lock()

    # ---- writes ----------------------------------------------------------------

    def _insert(self) -> Any:
        if self._dialect == "postgresql":
            return pg_insert(MessageCacheRow)
        if self._dialect == "sqlite":
            return sqlite_insert(MessageCacheRow)
        raise NotImplementedError(f"cache upsert not supported on dialect {self._dialect!r}")

    def _write_batch(self, session: Session, payloads: Sequence[dict[str, Any]]) -> None:
        for start in range(0, len(payloads), _STATEMENT_ROWS):
            stmt = self._insert().values(list(payloads[start : start + _STATEMENT_ROWS]))
            stmt = stmt.on_conflict_do_update(
                index_elements=["message_id"],
                set_={col: getattr(stmt.excluded, col) for col in _UPDATABLE_COLUMNS},
            )
            session.execute(stmt)

    def _write(self, op: str, rows: int, work: Callable[[Session], T]) -> T:
        """Run ``work`` in one transaction under the store lock, retrying transient errors."""

        attempt = 0
        with self._lock:
            while True:
                attempt += 1
                t0 = time.perf_counter()
                try:
                    with session_scope(database_url=self._database_url) as session:
                        result = work(session)
                except Exception as e:
                    if attempt >= _MAX_ATTEMPTS or not _is_retryable(e):
                        _logger.error(
                            "cache:%s_failed rows=%d attempts=%d error=%s",
                            op,
                            rows,
                            attempt,
                            e.__class__.__name__,
                        )
                        if _is_retryable(e):
                            raise CacheWriteError(
                                f"cache {op} of {rows} rows failed after {attempt} attempts",
                                batch_size=rows,
                                attempts=attempt,
                            ) from e
                        raise
                    _logger.warning(
                        "cache:%s_retry rows=%d attempt=%d error=%s",
                        op,
                        rows,
                        attempt,
                        e.__class__.__name__,
                    )
                    _sleep_backoff(attempt)
                    continue
                _logger.debug(
                    "cache:%s_ok rows=%d attempt=%d latency_ms=%.2f",
                    op,
                    rows,
                    attempt,
                    (time.perf_counter() - t0) * 1000.0,
                )
                return result

    def upsert(self, entries: Iterable[CacheEntry]) -> int:
        """Write ``entries`` as one atomic batch; last write per id wins.

        New rows take ``excluded`` from the entry; existing rows keep their
        stored flag. Returns the number of distinct message ids written.
        """

        # Collapse duplicates inside the batch so the statement never conflicts
        # with itself (PostgreSQL rejects that outright).
        by_id: dict[int, CacheEntry] = {}
        for e in entries:
            by_id[e.message_id] = e
        if not by_id:
            return 0
        payloads = [_entry_payload(by_id[k]) for k in sorted(by_id)]

        self._write("upsert", len(payloads), lambda s: self._write_batch(s, payloads))
        return len(payloads)

    def mark_excluded(self, message_id: int, excluded: bool = True) -> bool:
        """Set the ``excluded`` flag for one entry; ``False`` when the id is unknown."""

        stmt = (
            update(MessageCacheRow)
            .where(MessageCacheRow.message_id == message_id)
            .values(excluded=excluded)
        )
        matched = self._write("exclude", 1, lambda s: s.execute(stmt).rowcount)
        return matched > 0

    def clear(self) -> None:
        with self._lock, session_scope(database_url=self._database_url) as session:
            session.execute(delete(MessageCacheRow))
            session.execute(delete(AnalysisMetadataRow))

    # ---- reads -----------------------------------------------------------------

    def get(self, message_id: int) -> CacheEntry | None:
        with session_scope(database_url=self._database_url) as session:
            row = session.get(MessageCacheRow, message_id)
            return _row_to_entry(row) if row is not None else None

    def get_many(self, message_ids: Iterable[int]) -> dict[int, CacheEntry]:
        ids = sorted(set(message_ids))
        out: dict[int, CacheEntry] = {}
        with session_scope(database_url=self._database_url) as session:
            for start in range(0, len(ids), _STATEMENT_ROWS):
                chunk = ids[start : start + _STATEMENT_ROWS]
                rows = session.scalars(
                    select(MessageCacheRow).where(MessageCacheRow.message_id.in_(chunk))
                )
                for row in rows:
                    out[row.message_id] = _row_to_entry(row)
        return out

    def transactions_since(self, timestamp_ms: int) -> list[CacheEntry]:
        """Non-excluded transaction entries newer than ``timestamp_ms``, newest first."""

        stmt = (
            select(MessageCacheRow)
            .where(
                MessageCacheRow.has_transaction.is_(True),
                MessageCacheRow.excluded.is_(False),
                MessageCacheRow.timestamp_ms > timestamp_ms,
            )
            .order_by(MessageCacheRow.timestamp_ms.desc(), MessageCacheRow.message_id.desc())
        )
        with session_scope(database_url=self._database_url) as session:
            return [_row_to_entry(r) for r in session.scalars(stmt)]

    def cached_transactions(self, gate_policy: GatePolicy | None = None) -> list[CacheEntry]:
        """Every transaction entry, excluded ones included, newest first.

        With ``gate_policy`` only entries classified under that policy are
        returned.
        """

        stmt = select(MessageCacheRow).where(MessageCacheRow.has_transaction.is_(True))
        if gate_policy is not None:
            stmt = stmt.where(MessageCacheRow.gate_policy == gate_policy.value)
        stmt = stmt.order_by(
            MessageCacheRow.timestamp_ms.desc(), MessageCacheRow.message_id.desc()
        )
        with session_scope(database_url=self._database_url) as session:
            return [_row_to_entry(r) for r in session.scalars(stmt)]

    def stale_ids(self, cutoff_ms: int) -> list[int]:
        """Ids of entries processed before ``cutoff_ms``, highest id first."""

        stmt = (
            select(MessageCacheRow.message_id)
            .where(MessageCacheRow.processed_at_ms < cutoff_ms)
            .order_by(MessageCacheRow.message_id.desc())
        )
        with session_scope(database_url=self._database_url) as session:
            return list(session.scalars(stmt))

    def transaction_count(self) -> int:
        stmt = select(func.count()).select_from(MessageCacheRow).where(
            MessageCacheRow.has_transaction.is_(True)
        )
        with session_scope(database_url=self._database_url) as session:
            return int(session.scalar(stmt) or 0)

    # ---- run metadata ------------------------------------------------------------

    def read_metadata(self) -> AnalysisMetadata | None:
        with session_scope(database_url=self._database_url) as session:
            row = session.get(AnalysisMetadataRow, METADATA_ID)
            if row is None:
                return None
            return AnalysisMetadata(
                last_processed_message_id=row.last_processed_message_id,
                last_processed_timestamp_ms=row.last_processed_timestamp_ms,
                total_processed=row.total_processed,
                run_count=row.run_count,
                last_run_at_ms=row.last_run_at_ms,
            )

    def write_metadata(self, meta: AnalysisMetadata) -> None:
        """Replace the stored run metadata wholesale."""

        with self._lock, session_scope(database_url=self._database_url) as session:
            session.merge(AnalysisMetadataRow(id=METADATA_ID, **meta.model_dump()))


__all__ = ["IncrementalCache", "body_hash", "METADATA_ID"]
