"""Turn raw message text into a :class:`~spending_analysis.models.Transaction`.

Public API:
    - :class:`MessageClassifier` (``classify``)
    - :func:`is_transaction_message`, :func:`extract_amount`,
      :func:`detect_direction`, :func:`describe`, :func:`extract_otp`

Classification never raises for "this is not a transaction": every negative
outcome, including malformed amounts and unexpected errors inside a single
message, is ``None``.
"""

from __future__ import annotations

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from .logging_setup import get_logger
from .models import Direction, GatePolicy, RawMessage, Transaction, millis_to_datetime

_logger = get_logger("spending_analysis.classifier")

_FLAGS = re.IGNORECASE | re.DOTALL

# Currency marker followed by a number. ``Rs.`` is common enough in bank
# notifications ("Rs. 1,250.50") that the dot is part of the marker.
_CUR = r"(?:\b(?:rs\.?|inr)|₹)\s*"
_NUM = r"([0-9][0-9,]*(?:\.[0-9]+)?)"
_CURRENCY_AMOUNT = _CUR + _NUM

_DEBIT_WORDS: tuple[str, ...] = (
    "debited",
    "withdrawn",
    "deducted",
    "charged",
    "paid",
    "payment",
    "spent",
    "purchased",
    "bought",
    "transaction",
    "transfer",
)
_CREDIT_WORDS: tuple[str, ...] = (
    "credited",
    "deposited",
    "received",
    "refund",
    "credit",
    "added",
)


def _word_alternation(words: tuple[str, ...]) -> re.Pattern[str]:
    return re.compile(r"\b(?:" + "|".join(map(re.escape, words)) + r")\b", _FLAGS)


_DEBIT_RE = _word_alternation(_DEBIT_WORDS)
_CREDIT_RE = _word_alternation(_CREDIT_WORDS)
_CURRENCY_RE = re.compile(_CURRENCY_AMOUNT, _FLAGS)

# Ordered most specific first; the first pattern that matches decides the
# amount even if a later one would have found a different number.
_AMOUNT_CHAIN: tuple[tuple[str, re.Pattern[str]], ...] = tuple(
    (name, re.compile(pattern, _FLAGS))
    for name, pattern in (
        ("debit_then_amount", r"\b(?:debited|withdrawn|deducted|charged)\b.*?" + _CURRENCY_AMOUNT),
        ("amount_then_debit", _CURRENCY_AMOUNT + r".*?\b(?:debited|withdrawn|deducted|charged)\b"),
        ("payment_of", r"\bpayment\s+of\s+" + _CURRENCY_AMOUNT),
        ("credit_then_amount", r"\b(?:credited|deposited|received)\b.*?" + _CURRENCY_AMOUNT),
        ("amount_then_credit", _CURRENCY_AMOUNT + r".*?\b(?:credited|deposited|received)\b"),
        ("bank_then_amount", r"\b(?:sbi|icici|hdfc|axis|pnb)\b.*?" + _CURRENCY_AMOUNT),
        ("account_then_amount", r"(?:\ba/c\b|\baccount\b).*?" + _CURRENCY_AMOUNT),
        ("bare_amount", _CURRENCY_AMOUNT),
    )
)

_OTP_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, _FLAGS)
    for p in (
        r"(?:otp|one-time password|verification code|auth code|security code)"
        r"\s*[:\-]?\s*([0-9]{4,8})",
        r"([0-9]{4,8})\s*(?:is your|is the|your)\s*(?:otp|one-time password|verification code)",
        r"(?:sbi|hdfc|icici|axis|pnb|bob|kotak)\s*(?:otp|verification code)"
        r"\s*[:\-]?\s*([0-9]{4,8})",
        r"otp\s*([0-9]{4,8})\s*(?:for|to)\s*(?:debit|credit|transaction)",
        r"(?:code|pin|password)\s*[:\-]?\s*([0-9]{4,8})",
        r"([0-9]{4,8})\s*(?:is your|is the)\s*(?:code|pin)",
        r"(?:transaction|payment|transfer)\s*(?:otp|code)\s*[:\-]?\s*([0-9]{4,8})",
        r"otp\s*([0-9]{4,8})\s*for\s*(?:rs|₹|inr)\s*[0-9,]+(?:\.[0-9]+)?",
    )
)

_DESCRIPTION_WORDS_RE = _word_alternation(
    ("debited", "credited", "withdrawn", "deducted", "charged", "paid", "received", "deposited")
)
_WS_RE = re.compile(r"\s+")

MAX_DESCRIPTION_LEN = 100
_ELLIPSIS = "..."
_CENTS = Decimal("0.01")


# ---- Pure helpers -----------------------------------------------------------


def is_transaction_message(body: str) -> bool:
    """Cheap gate: a currency amount or any debit/credit keyword is present."""

    return bool(_CURRENCY_RE.search(body) or _DEBIT_RE.search(body) or _CREDIT_RE.search(body))


def extract_otp(body: str) -> str | None:
    for pattern in _OTP_PATTERNS:
        m = pattern.search(body)
        if m:
            return m.group(1)
    return None


def _parse_amount(text: str) -> Decimal | None:
    try:
        value = Decimal(text.replace(",", ""))
    except InvalidOperation:
        return None
    if not value.is_finite():
        return None
    return value.quantize(_CENTS, rounding=ROUND_HALF_UP)


def extract_amount(body: str) -> Decimal | None:
    """Return the amount picked by the first matching strategy, else ``None``.

    A strategy that matches but yields unparsable digits ends the search; a
    later, looser strategy is not consulted for a second opinion.
    """

    for name, pattern in _AMOUNT_CHAIN:
        m = pattern.search(body)
        if m is None:
            continue
        amount = _parse_amount(m.group(1))
        if amount is None:
            _logger.debug("classifier:amount_unparsable strategy=%s text=%r", name, m.group(1))
        return amount
    return None


def detect_direction(body: str) -> Direction:
    debit_hits = len(_DEBIT_RE.findall(body))
    credit_hits = len(_CREDIT_RE.findall(body))
    return Direction.CREDIT if credit_hits > debit_hits else Direction.DEBIT


def describe(body: str) -> str:
    """Human-readable remainder of ``body`` with amounts and direction words removed."""

    text = _CURRENCY_RE.sub("", body)
    text = _DESCRIPTION_WORDS_RE.sub("", text)
    text = _WS_RE.sub(" ", text).strip()
    if len(text) > MAX_DESCRIPTION_LEN:
        text = text[: MAX_DESCRIPTION_LEN - len(_ELLIPSIS)] + _ELLIPSIS
    return text


# ---- Classifier ---------------------------------------------------------------


class MessageClassifier:
    """Stateless classifier; safe to share across worker threads."""

    def __init__(self, gate_policy: GatePolicy = GatePolicy.CURRENCY_OR_KEYWORD) -> None:
        self.gate_policy = gate_policy

    def passes_gate(self, body: str) -> bool:
        if not is_transaction_message(body):
            return False
        if self.gate_policy is GatePolicy.REQUIRE_OTP:
            return extract_otp(body) is not None
        return True

    def classify(self, raw: RawMessage) -> Transaction | None:
        try:
            if not self.passes_gate(raw.body):
                return None
            amount = extract_amount(raw.body)
            if amount is None:
                return None
            return Transaction(
                id=raw.id,
                amount=amount,
                direction=detect_direction(raw.body),
                description=describe(raw.body),
                timestamp=millis_to_datetime(raw.timestamp_ms),
                source_message_id=raw.id,
                sender=raw.sender,
                body=raw.body,
            )
        except Exception as e:  # noqa: BLE001 - one bad message must not sink a batch
            _logger.debug(
                "classifier:message_failed message_id=%d error=%s", raw.id, e.__class__.__name__
            )
            return None


__all__ = [
    "MessageClassifier",
    "MAX_DESCRIPTION_LEN",
    "is_transaction_message",
    "extract_otp",
    "extract_amount",
    "detect_direction",
    "describe",
]
