"""One end-to-end analysis run.

Public API:
    - :func:`run_analysis`
    - :func:`classify_messages`
    - :class:`AnalysisResult`

A run classifies only what the cache cannot answer (new ids, changed bodies,
results from another gate policy, stale entries on request, or everything on
a forced rescan), writes those results in batches, then rebuilds the
transaction history recorded under the current gate policy from the cache and
aggregates it. Summaries are recomputed every time and never stored, so a
run that dies between batches leaves nothing half-aggregated behind.
"""

from __future__ import annotations

import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime

from .aggregation import AggregationEngine, Categorizer
from .cache import IncrementalCache, body_hash
from .categories import Category, guess_category
from .classifier import MessageClassifier, describe
from .config import AnalysisSettings
from .logging_setup import get_logger
from .models import (
    AnalysisMetadata,
    CacheEntry,
    CategoryRule,
    GatePolicy,
    RawMessage,
    SpendingReport,
    Transaction,
    VendorGroup,
    datetime_to_millis,
    millis_to_datetime,
)
from .pmap import p_map, partition
from .rules import categorize, ordered_active

_logger = get_logger("spending_analysis.pipeline")


@dataclass(frozen=True, slots=True)
class AnalysisResult:
    report: SpendingReport
    metadata: AnalysisMetadata
    classified: int
    reused: int


def _snapshot(messages: Iterable[RawMessage]) -> list[RawMessage]:
    # Later duplicates of an id replace earlier ones, mirroring cache semantics.
    by_id = {m.id: m for m in messages}
    return [by_id[k] for k in sorted(by_id)]


def _now_ms() -> int:
    return datetime_to_millis(datetime.now(UTC))


def _needs_classification(
    msg: RawMessage,
    entry: CacheEntry | None,
    *,
    gate_policy: GatePolicy,
    force_rescan: bool,
    stale_cutoff_ms: int | None,
) -> bool:
    if force_rescan or entry is None:
        return True
    if entry.body_hash != body_hash(msg.body):
        return True
    # A result from the other gate policy is never reused.
    if entry.gate_policy != gate_policy:
        return True
    return stale_cutoff_ms is not None and entry.processed_at_ms < stale_cutoff_ms


def _to_entry(
    msg: RawMessage, tx: Transaction | None, *, processed_at_ms: int, gate_policy: GatePolicy
) -> CacheEntry:
    return CacheEntry(
        message_id=msg.id,
        body_hash=body_hash(msg.body),
        body=msg.body,
        sender=msg.sender,
        timestamp_ms=msg.timestamp_ms,
        has_transaction=tx is not None,
        amount=tx.amount if tx is not None else None,
        direction=tx.direction if tx is not None else None,
        processed_at_ms=processed_at_ms,
        gate_policy=gate_policy,
    )


def entry_to_transaction(entry: CacheEntry) -> Transaction:
    """Rehydrate a cached transaction without running the classifier again."""

    if not entry.has_transaction or entry.amount is None or entry.direction is None:
        raise ValueError(f"cache entry {entry.message_id} holds no transaction")
    return Transaction(
        id=entry.message_id,
        amount=entry.amount,
        direction=entry.direction,
        description=describe(entry.body),
        timestamp=millis_to_datetime(entry.timestamp_ms),
        source_message_id=entry.message_id,
        sender=entry.sender,
        body=entry.body,
        excluded=entry.excluded,
    )


def make_categorizer(rules: Iterable[CategoryRule]) -> Categorizer:
    """Rule-based categorizer over a fixed snapshot of ``rules``.

    Without any active rule the keyword fallback names a category for every
    transaction; with rules, a transaction no rule matches is uncategorized.
    """

    ordered = ordered_active(rules)
    if not ordered:
        return lambda tx: guess_category(tx.description)

    def _categorize(tx: Transaction) -> Category | None:
        match = categorize(tx, ordered)
        return match.category if match is not None else None

    return _categorize


def classify_messages(
    messages: Iterable[RawMessage], settings: AnalysisSettings
) -> list[tuple[RawMessage, Transaction | None]]:
    """Classify ``messages`` concurrently; output follows message id order."""

    classifier = MessageClassifier(settings.gate_policy)
    snapshot = _snapshot(messages)
    return p_map(
        snapshot,
        lambda m: (m, classifier.classify(m)),
        concurrency=settings.max_workers,
    )


def run_analysis(
    messages: Iterable[RawMessage],
    *,
    cache: IncrementalCache,
    settings: AnalysisSettings,
    rules: Sequence[CategoryRule] = (),
    vendor_groups: Sequence[VendorGroup] = (),
    force_rescan: bool = False,
    refresh_stale: bool = False,
    now_ms: int | None = None,
) -> AnalysisResult:
    t0 = time.perf_counter()
    now = _now_ms() if now_ms is None else now_ms
    snapshot = _snapshot(messages)
    existing = cache.get_many(m.id for m in snapshot)
    stale_cutoff = now - settings.stale_after_ms if refresh_stale else None

    pending = [
        m
        for m in snapshot
        if _needs_classification(
            m,
            existing.get(m.id),
            gate_policy=settings.gate_policy,
            force_rescan=force_rescan,
            stale_cutoff_ms=stale_cutoff,
        )
    ]
    _logger.info(
        "pipeline:start messages=%d to_classify=%d force_rescan=%s refresh_stale=%s",
        len(snapshot),
        len(pending),
        force_rescan,
        refresh_stale,
    )

    classified = classify_messages(pending, settings)
    # upsert leaves the stored exclusion of an existing id alone.
    entries = [
        _to_entry(msg, tx, processed_at_ms=now, gate_policy=settings.gate_policy)
        for msg, tx in classified
    ]
    for batch in partition(entries, settings.batch_size):
        cache.upsert(batch)

    transactions = [
        entry_to_transaction(e) for e in cache.cached_transactions(settings.gate_policy)
    ]
    engine = AggregationEngine(settings.timezone)
    report = engine.build_report(
        transactions, make_categorizer(rules), vendor_groups=vendor_groups
    )

    previous = cache.read_metadata()
    last = snapshot[-1] if snapshot else None
    metadata = AnalysisMetadata(
        last_processed_message_id=(
            last.id if last else (previous.last_processed_message_id if previous else 0)
        ),
        last_processed_timestamp_ms=max(
            (m.timestamp_ms for m in snapshot),
            default=previous.last_processed_timestamp_ms if previous else 0,
        ),
        total_processed=len(snapshot),
        run_count=(previous.run_count if previous else 0) + 1,
        last_run_at_ms=now,
    )
    cache.write_metadata(metadata)

    _logger.info(
        "pipeline:done messages=%d classified=%d transactions=%d latency_ms=%.2f",
        len(snapshot),
        len(pending),
        len(transactions),
        (time.perf_counter() - t0) * 1000.0,
    )
    return AnalysisResult(
        report=report,
        metadata=metadata,
        classified=len(pending),
        reused=len(snapshot) - len(pending),
    )


__all__ = [
    "AnalysisResult",
    "run_analysis",
    "classify_messages",
    "entry_to_transaction",
    "make_categorizer",
]
