"""JSON boundary for messages, rules, vendor groups and reports.

Inputs are validated with Pydantic ``TypeAdapter``s so a malformed record
fails the whole load with a ``pydantic.ValidationError`` that names the
offending index and field.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import TypeAdapter

from .models import CategoryRule, RawMessage, SpendingReport, VendorGroup

_MESSAGES = TypeAdapter(list[RawMessage])
_RULES = TypeAdapter(list[CategoryRule])
_VENDOR_GROUPS = TypeAdapter(list[VendorGroup])


def parse_messages(data: str | bytes) -> list[RawMessage]:
    return _MESSAGES.validate_json(data)


def parse_rules(data: str | bytes) -> list[CategoryRule]:
    return _RULES.validate_json(data)


def parse_vendor_groups(data: str | bytes) -> list[VendorGroup]:
    return _VENDOR_GROUPS.validate_json(data)


def load_messages(path: str | Path) -> list[RawMessage]:
    return parse_messages(Path(path).read_bytes())


def load_rules(path: str | Path) -> list[CategoryRule]:
    return parse_rules(Path(path).read_bytes())


def load_vendor_groups(path: str | Path) -> list[VendorGroup]:
    return parse_vendor_groups(Path(path).read_bytes())


def dump_report(report: SpendingReport, *, indent: int | None = 2) -> str:
    """Serialize ``report``; equal reports always produce identical text."""

    return report.model_dump_json(indent=indent)


__all__ = [
    "parse_messages",
    "parse_rules",
    "parse_vendor_groups",
    "load_messages",
    "load_rules",
    "load_vendor_groups",
    "dump_report",
]
