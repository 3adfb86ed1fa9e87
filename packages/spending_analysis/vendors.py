"""Vendor names pulled out of transaction bodies.

A vendor is the merchant or payee a message names ("paid at Swiggy", "for
Amazon purchase", "zomato@okaxis"). The extractor walks an ordered pattern
table, most specific first, and the first capture that survives cleaning wins,
so a transaction is attributed to at most one vendor.

Cleaning keeps up to three leading words of the capture and stops at the first
word that is not alphabetic or is a common message word (``account``, ``via``,
``purchase``...). A capture that starts with such a word yields nothing and the
next match is tried.
"""

from __future__ import annotations

import re
from collections.abc import Callable

from .models import Transaction

MAX_VENDOR_WORDS = 3

# Words that appear around merchant names in bank messages but never name one.
_STOP_WORDS: frozenset[str] = frozenset(
    {
        "a/c",
        "ac",
        "account",
        "amount",
        "avl",
        "bal",
        "balance",
        "bank",
        "been",
        "bill",
        "by",
        "card",
        "cash",
        "charge",
        "credit",
        "credited",
        "date",
        "dated",
        "debit",
        "debited",
        "deposited",
        "fee",
        "for",
        "from",
        "has",
        "info",
        "inr",
        "is",
        "money",
        "of",
        "on",
        "order",
        "paid",
        "payment",
        "purchase",
        "received",
        "ref",
        "rs",
        "sent",
        "subscription",
        "the",
        "to",
        "total",
        "transaction",
        "transfer",
        "txn",
        "upi",
        "using",
        "via",
        "with",
        "withdrawn",
        "you",
        "your",
    }
)

_WORD_SPLIT = re.compile(r"[\s,;:/()]+")
_HANDLE_SPLIT = re.compile(r"[._-]+")
_WORD = re.compile(r"[A-Za-z][A-Za-z&'.-]*")

type Prepare = Callable[[str], str]


def _as_is(text: str) -> str:
    return text


def _handle_words(text: str) -> str:
    return _HANDLE_SPLIT.sub(" ", text)


# A few words after the anchor, captured in a lookahead so a match consumes
# only the anchor and finditer still reaches later ones.
_TAIL = r"(?=(\S+(?:[ \t]+\S+){0,%d}))" % MAX_VENDOR_WORDS

_PATTERNS: tuple[tuple[str, re.Pattern[str], Prepare], ...] = (
    # UPI handle: the part before "@" usually names the payee.
    ("upi_handle", re.compile(r"\b([A-Za-z][A-Za-z._-]*)@[A-Za-z]{2,}\b"), _handle_words),
    ("at_merchant", re.compile(r"\bat\s+" + _TAIL, re.IGNORECASE), _as_is),
    ("paid_to", re.compile(r"\b(?:to|towards)\s+" + _TAIL, re.IGNORECASE), _as_is),
    ("for_purchase", re.compile(r"\bfor\s+" + _TAIL, re.IGNORECASE), _as_is),
    (
        "merchant_kind",
        re.compile(
            r"\b([A-Za-z][A-Za-z&'-]+)\s+(?:store|shop|restaurant|hotel)\b", re.IGNORECASE
        ),
        _as_is,
    ),
)


def _display(word: str) -> str:
    return word[:1].upper() + word[1:]


def clean_vendor_name(text: str) -> str | None:
    """Leading vendor words of ``text`` in display form, or ``None``."""

    words: list[str] = []
    for raw in _WORD_SPLIT.split(text.strip()):
        word = raw.strip(".-'")
        if (
            len(word) < 2
            or not _WORD.fullmatch(word)
            or word.lower() in _STOP_WORDS
            or len(words) == MAX_VENDOR_WORDS
        ):
            break
        words.append(_display(word))
    return " ".join(words) or None


def extract_vendor(body: str) -> str | None:
    """First vendor named in ``body`` by the ordered pattern table."""

    for _name, pattern, prepare in _PATTERNS:
        for m in pattern.finditer(body):
            vendor = clean_vendor_name(prepare(m.group(1)))
            if vendor is not None:
                return vendor
    return None


def vendor_key(name: str) -> str:
    """Case-insensitive identity of a vendor name."""

    return " ".join(name.lower().split())


def transaction_vendor(tx: Transaction) -> str | None:
    return extract_vendor(tx.body) if tx.body else None


__all__ = [
    "MAX_VENDOR_WORDS",
    "clean_vendor_name",
    "extract_vendor",
    "transaction_vendor",
    "vendor_key",
]
