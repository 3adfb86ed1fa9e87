"""Category domain helpers.

A category is either one of the built-in kinds or a free-form custom name:

    Category = BuiltIn | Custom

Rule records store categories as text; :func:`parse_category` lifts that text
into the union, and display/icon lookups are pure functions over it.

Exports
-------
- ``BuiltInCategory``, ``BuiltIn``, ``Custom``, ``Category``
- ``parse_category``, ``display_name``, ``category_icon``
- ``builtin_category_names``, ``all_category_names``
- ``guess_category``: keyword fallback used when no rule applies
- ``normalize_name`` / ``validate_name``: shared by the CLI and rule store
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

# ---------------------------
# Tagged union
# ---------------------------


class BuiltInCategory(Enum):
    FOOD_DINING = "FOOD_DINING"
    SHOPPING = "SHOPPING"
    TRANSPORT = "TRANSPORT"
    ENTERTAINMENT = "ENTERTAINMENT"
    BILLS_UTILITIES = "BILLS_UTILITIES"
    HEALTHCARE = "HEALTHCARE"
    EDUCATION = "EDUCATION"
    TRAVEL = "TRAVEL"
    INVESTMENTS = "INVESTMENTS"
    INSURANCE = "INSURANCE"
    SALARY_INCOME = "SALARY_INCOME"
    TRANSFERS = "TRANSFERS"
    ATM_WITHDRAWAL = "ATM_WITHDRAWAL"
    ONLINE_SERVICES = "ONLINE_SERVICES"
    OTHER = "OTHER"


@dataclass(frozen=True, slots=True)
class BuiltIn:
    kind: BuiltInCategory


@dataclass(frozen=True, slots=True)
class Custom:
    name: str


type Category = BuiltIn | Custom


_ICONS: dict[BuiltInCategory, str] = {
    BuiltInCategory.FOOD_DINING: "🍽️",
    BuiltInCategory.SHOPPING: "🛍️",
    BuiltInCategory.TRANSPORT: "🚗",
    BuiltInCategory.ENTERTAINMENT: "🎬",
    BuiltInCategory.BILLS_UTILITIES: "💡",
    BuiltInCategory.HEALTHCARE: "🏥",
    BuiltInCategory.EDUCATION: "📚",
    BuiltInCategory.TRAVEL: "✈️",
    BuiltInCategory.INVESTMENTS: "📈",
    BuiltInCategory.INSURANCE: "🛡️",
    BuiltInCategory.SALARY_INCOME: "💰",
    BuiltInCategory.TRANSFERS: "↗️",
    BuiltInCategory.ATM_WITHDRAWAL: "🏧",
    BuiltInCategory.ONLINE_SERVICES: "💻",
}
_DEFAULT_ICON = "📦"

_DISPLAY_OVERRIDES: dict[BuiltInCategory, str] = {
    BuiltInCategory.FOOD_DINING: "Food & Dining",
    BuiltInCategory.BILLS_UTILITIES: "Bills & Utilities",
    BuiltInCategory.SALARY_INCOME: "Salary & Income",
    BuiltInCategory.ATM_WITHDRAWAL: "ATM Withdrawal",
}


def _builtin_display(kind: BuiltInCategory) -> str:
    return _DISPLAY_OVERRIDES.get(kind) or kind.value.replace("_", " ").title()


def _builtin_key(text: str) -> str:
    # "Food & Dining", "food_dining" and "FOOD-DINING" all resolve to FOOD_DINING
    return re.sub(r"[\s_\-&]+", "_", text.strip()).upper()


_BY_KEY: dict[str, BuiltInCategory] = {k.value: k for k in BuiltInCategory}


def parse_category(text: str) -> Category:
    """Return the built-in kind when ``text`` names one, else a custom category."""

    kind = _BY_KEY.get(_builtin_key(text))
    if kind is not None:
        return BuiltIn(kind)
    return Custom(normalize_name(text))


def display_name(category: Category) -> str:
    match category:
        case BuiltIn(kind=kind):
            return _builtin_display(kind)
        case Custom(name=name):
            return name
    raise TypeError(f"not a category: {category!r}")


def category_icon(category: Category) -> str:
    match category:
        case BuiltIn(kind=kind):
            return _ICONS.get(kind, _DEFAULT_ICON)
        case Custom():
            return _DEFAULT_ICON
    raise TypeError(f"not a category: {category!r}")


def builtin_category_names() -> list[str]:
    return [display_name(BuiltIn(k)) for k in BuiltInCategory]


def all_category_names(custom: Iterable[str] = ()) -> list[str]:
    """Built-in display names plus custom names, de-duplicated and sorted."""

    names = {display_name(parse_category(c)) for c in custom if c and c.strip()}
    names.update(builtin_category_names())
    return sorted(names, key=str.casefold)


# ---------------------------
# Keyword fallback
# ---------------------------

# First hit wins; order matters ("atm withdrawal" before generic transfers).
_GUESS_TABLE: tuple[tuple[tuple[str, ...], BuiltInCategory], ...] = (
    (("atm", "withdrawal"), BuiltInCategory.ATM_WITHDRAWAL),
    (("shopping", "mall", "store"), BuiltInCategory.SHOPPING),
    (("food", "restaurant", "cafe", "swiggy", "zomato"), BuiltInCategory.FOOD_DINING),
    (("fuel", "petrol", "uber", "ola"), BuiltInCategory.TRANSPORT),
    (("online", "e-commerce", "amazon", "flipkart"), BuiltInCategory.ONLINE_SERVICES),
    (("utility", "electricity", "water", "recharge"), BuiltInCategory.BILLS_UTILITIES),
    (("transfer", "upi", "paytm", "neft", "imps"), BuiltInCategory.TRANSFERS),
    (("salary",), BuiltInCategory.SALARY_INCOME),
    (("entertainment", "movie", "netflix", "spotify"), BuiltInCategory.ENTERTAINMENT),
    (("medical", "pharmacy", "hospital"), BuiltInCategory.HEALTHCARE),
)


def guess_category(description: str) -> Category:
    """Cheap keyword heuristic over a transaction description."""

    lowered = description.lower()
    for words, kind in _GUESS_TABLE:
        if any(w in lowered for w in words):
            return BuiltIn(kind)
    return BuiltIn(BuiltInCategory.OTHER)


# ---------------------------
# Name normalization/validation
# ---------------------------

_ALLOWED_RE = re.compile(r"^[\w &\-/]+$")


def normalize_name(name: str) -> str:
    """Return a trimmed, single-spaced representation of ``name``."""

    return " ".join(name.strip().split())


@dataclass(frozen=True, slots=True)
class NameValidation:
    ok: bool
    reason: str | None = None


def validate_name(name: str, *, min_len: int = 1, max_len: int = 64) -> NameValidation:
    """Validate a category or rule name.

    Rules
    -----
    - Trim whitespace; enforce length bounds 1..64.
    - Allowed characters: word characters, spaces, and ``& - /``.
    """

    n = normalize_name(name)
    if len(n) < min_len:
        return NameValidation(False, "Name cannot be empty")
    if len(n) > max_len:
        return NameValidation(False, f"Name must be at most {max_len} characters")
    if not _ALLOWED_RE.match(n):
        return NameValidation(False, "Only letters, numbers, spaces, and & - / are allowed")
    return NameValidation(True, None)


__all__ = [
    "BuiltInCategory",
    "BuiltIn",
    "Custom",
    "Category",
    "parse_category",
    "display_name",
    "category_icon",
    "builtin_category_names",
    "all_category_names",
    "guess_category",
    "normalize_name",
    "validate_name",
    "NameValidation",
]
