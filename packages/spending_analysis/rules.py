"""Rule-based categorization of transactions.

Public API:
    - :func:`categorize` / :func:`categorize_all`
    - :func:`confidence`
    - :func:`rule_from_transaction`
    - :data:`MIN_CONFIDENCE`

Confidence is the share of a rule's criteria that a transaction satisfies.
Each criterion family (keywords, sender patterns, amount range) is a scorer
reporting how many criteria a rule defines and how many of them hit; the
shares are summed as exact fractions so ties compare reliably.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from fractions import Fraction
from functools import lru_cache
from typing import Protocol

from .logging_setup import get_logger
from .models import CategoryMatch, CategoryRule, Transaction

_logger = get_logger("spending_analysis.rules")

MIN_CONFIDENCE = 0.3
_MIN_CONFIDENCE_EXACT = Fraction(3, 10)

_MAX_DERIVED_KEYWORDS = 5
_STOPWORDS: frozenset[str] = frozenset(
    {
        "the", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with",
        "by", "from", "up", "about", "into", "through", "during", "before",
        "after", "above", "below", "between", "among", "has", "have", "had",
        "is", "are", "was", "were", "be", "been", "being", "do", "does", "did",
        "will", "would", "could", "should", "may", "might", "must", "can",
    }
)  # fmt: skip


# ---- Scorers -------------------------------------------------------------------


class CriterionScorer(Protocol):
    def criteria_count(self, rule: CategoryRule) -> int: ...

    def hits(self, tx: Transaction, rule: CategoryRule) -> int: ...


class KeywordScorer:
    def criteria_count(self, rule: CategoryRule) -> int:
        return len(rule.keywords)

    def hits(self, tx: Transaction, rule: CategoryRule) -> int:
        text = f"{tx.description} {tx.body}".lower()
        return sum(1 for kw in rule.keywords if kw in text)


@lru_cache(maxsize=512)
def _compile_sender_pattern(pattern: str) -> re.Pattern[str] | None:
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error as e:
        _logger.debug("rules:invalid_sender_pattern pattern=%r error=%s", pattern, e)
        return None


class SenderPatternScorer:
    def criteria_count(self, rule: CategoryRule) -> int:
        return len(rule.sender_patterns)

    def hits(self, tx: Transaction, rule: CategoryRule) -> int:
        n = 0
        for pattern in rule.sender_patterns:
            compiled = _compile_sender_pattern(pattern)
            if compiled is not None and compiled.search(tx.sender):
                n += 1
        return n


class AmountRangeScorer:
    def criteria_count(self, rule: CategoryRule) -> int:
        return 1 if rule.has_amount_range else 0

    def hits(self, tx: Transaction, rule: CategoryRule) -> int:
        if not rule.has_amount_range:
            return 0
        if rule.amount_min is not None and tx.amount < rule.amount_min:
            return 0
        if rule.amount_max is not None and tx.amount > rule.amount_max:
            return 0
        return 1


DEFAULT_SCORERS: tuple[CriterionScorer, ...] = (
    KeywordScorer(),
    SenderPatternScorer(),
    AmountRangeScorer(),
)


def _confidence_exact(
    tx: Transaction, rule: CategoryRule, scorers: Sequence[CriterionScorer]
) -> Fraction:
    total = sum(s.criteria_count(rule) for s in scorers)
    if total == 0:
        return Fraction(0)
    matched = sum(s.hits(tx, rule) for s in scorers)
    return min(Fraction(1), Fraction(matched, total))


def confidence(
    tx: Transaction,
    rule: CategoryRule,
    scorers: Sequence[CriterionScorer] = DEFAULT_SCORERS,
) -> float:
    """Fraction of ``rule``'s criteria satisfied by ``tx``, in ``[0, 1]``."""

    return float(_confidence_exact(tx, rule, scorers))


# ---- Selection -------------------------------------------------------------------


def ordered_active(rules: Iterable[CategoryRule]) -> list[CategoryRule]:
    """Active rules by descending priority, then name; ``sorted`` keeps ties stable."""

    return sorted((r for r in rules if r.active), key=lambda r: (-r.priority, r.name))


def _best_match(
    tx: Transaction,
    ordered: Sequence[CategoryRule],
    scorers: Sequence[CriterionScorer],
) -> CategoryMatch | None:
    best: CategoryMatch | None = None
    best_score = Fraction(0)
    for rule in ordered:
        score = _confidence_exact(tx, rule, scorers)
        # Strictly greater: an equal score later in priority order never wins.
        if score > best_score and score >= _MIN_CONFIDENCE_EXACT:
            best_score = score
            best = CategoryMatch(rule=rule, transaction=tx, confidence=float(score))
    return best


def categorize(
    tx: Transaction,
    rules: Iterable[CategoryRule],
    *,
    scorers: Sequence[CriterionScorer] = DEFAULT_SCORERS,
) -> CategoryMatch | None:
    """Return the highest-confidence active rule for ``tx``, or ``None``.

    ``rules`` is treated as a snapshot; nothing about it is remembered between
    calls.
    """

    return _best_match(tx, ordered_active(rules), scorers)


def categorize_all(
    transactions: Iterable[Transaction],
    rules: Iterable[CategoryRule],
    *,
    scorers: Sequence[CriterionScorer] = DEFAULT_SCORERS,
) -> list[tuple[Transaction, CategoryMatch | None]]:
    ordered = ordered_active(rules)
    return [(tx, _best_match(tx, ordered, scorers)) for tx in transactions]


# ---- Rule derivation ---------------------------------------------------------------

_NON_ALPHA_RE = re.compile(r"[^a-z\s]")
_WILDCARD_SPLIT_RE = re.compile(r"[0-9\-]+")


def _derive_keywords(text: str) -> list[str]:
    seen: list[str] = []
    for word in _NON_ALPHA_RE.sub("", text.lower()).split():
        if len(word) > 2 and word not in _STOPWORDS and word not in seen:
            seen.append(word)
            if len(seen) == _MAX_DERIVED_KEYWORDS:
                break
    return seen


def _derive_sender_pattern(sender: str) -> str | None:
    # Digits and dashes vary between otherwise identical sender ids
    # ("AX-HDFCBK", "VM-HDFCBK", "HDFCBK-01"); everything else is literal.
    parts = _WILDCARD_SPLIT_RE.split(sender.strip())
    if not any(parts):
        return None
    return ".*".join(re.escape(p) for p in parts)


def rule_from_transaction(
    tx: Transaction, name: str, category: str, priority: int = 0
) -> CategoryRule:
    """Draft a rule that would match ``tx`` and similar future transactions."""

    pattern = _derive_sender_pattern(tx.sender)
    return CategoryRule(
        name=name,
        keywords=frozenset(_derive_keywords(f"{tx.description} {tx.body}")),
        sender_patterns=frozenset([pattern] if pattern else []),
        category=category,
        priority=priority,
        active=True,
    )


__all__ = [
    "MIN_CONFIDENCE",
    "CriterionScorer",
    "KeywordScorer",
    "SenderPatternScorer",
    "AmountRangeScorer",
    "DEFAULT_SCORERS",
    "confidence",
    "ordered_active",
    "categorize",
    "categorize_all",
    "rule_from_transaction",
]
