"""SQL persistence for :class:`~spending_analysis.models.CategoryRule`.

Rules are stored in ``sa_category_rules``. Callers always receive fresh
``CategoryRule`` snapshots; nothing here caches rows between calls, so a rule
edited in one process is visible to the next ``active_rules()`` anywhere.
"""

from __future__ import annotations

from datetime import UTC, datetime

from db.client import init_schema, session_scope
from db.models.analysis import CategoryRuleRow
from sqlalchemy import func, select

from .categories import all_category_names, validate_name
from .logging_setup import get_logger
from .models import CategoryRule, datetime_to_millis

_logger = get_logger("spending_analysis.rule_store")


def _now_ms() -> int:
    return datetime_to_millis(datetime.now(UTC))


def _row_to_rule(row: CategoryRuleRow) -> CategoryRule:
    return CategoryRule(
        id=row.id,
        name=row.name,
        keywords=frozenset(row.keywords or []),
        sender_patterns=frozenset(row.sender_patterns or []),
        amount_min=row.amount_min,
        amount_max=row.amount_max,
        category=row.category,
        priority=row.priority,
        active=row.is_active,
    )


def _apply(row: CategoryRuleRow, rule: CategoryRule, *, now_ms: int) -> None:
    # Sorted lists keep the stored JSON stable across writes of the same rule.
    row.name = rule.name
    row.keywords = sorted(rule.keywords)
    row.sender_patterns = sorted(rule.sender_patterns)
    row.amount_min = rule.amount_min
    row.amount_max = rule.amount_max
    row.category = rule.category
    row.priority = rule.priority
    row.is_active = rule.active
    row.last_modified_ms = now_ms


def _check_names(rule: CategoryRule) -> None:
    for label, value in (("rule name", rule.name), ("category", rule.category)):
        res = validate_name(value)
        if not res.ok:
            raise ValueError(f"Invalid {label} {value!r}: {res.reason}")


class RuleStore:
    def __init__(self, *, database_url: str | None = None) -> None:
        self._database_url = database_url
        init_schema(database_url=database_url)

    def add_rule(self, rule: CategoryRule) -> CategoryRule:
        """Insert ``rule`` (any ``id`` on it is ignored) and return it with its new id."""

        _check_names(rule)
        now = _now_ms()
        with session_scope(database_url=self._database_url) as session:
            row = CategoryRuleRow(created_at_ms=now)
            _apply(row, rule, now_ms=now)
            session.add(row)
            session.flush()
            stored = _row_to_rule(row)
        _logger.info(
            "rule_store:added id=%s name=%r category=%r", stored.id, stored.name, stored.category
        )
        return stored

    def update_rule(self, rule: CategoryRule) -> CategoryRule:
        if rule.id is None:
            raise ValueError("update_rule requires a rule with an id")
        _check_names(rule)
        with session_scope(database_url=self._database_url) as session:
            row = session.get(CategoryRuleRow, rule.id)
            if row is None:
                raise LookupError(f"no rule with id {rule.id}")
            _apply(row, rule, now_ms=_now_ms())
            session.flush()
            return _row_to_rule(row)

    def delete_rule(self, rule_id: int) -> bool:
        with session_scope(database_url=self._database_url) as session:
            row = session.get(CategoryRuleRow, rule_id)
            if row is None:
                return False
            session.delete(row)
        _logger.info("rule_store:deleted id=%d", rule_id)
        return True

    def set_active(self, rule_id: int, active: bool) -> bool:
        with session_scope(database_url=self._database_url) as session:
            row = session.get(CategoryRuleRow, rule_id)
            if row is None:
                return False
            row.is_active = active
            row.last_modified_ms = _now_ms()
        return True

    def get_rule(self, rule_id: int) -> CategoryRule | None:
        with session_scope(database_url=self._database_url) as session:
            row = session.get(CategoryRuleRow, rule_id)
            return _row_to_rule(row) if row is not None else None

    def list_rules(self, *, active_only: bool = False) -> list[CategoryRule]:
        """Rules by descending priority, then name, then id."""

        stmt = select(CategoryRuleRow).order_by(
            CategoryRuleRow.priority.desc(), CategoryRuleRow.name, CategoryRuleRow.id
        )
        if active_only:
            stmt = stmt.where(CategoryRuleRow.is_active.is_(True))
        with session_scope(database_url=self._database_url) as session:
            return [_row_to_rule(r) for r in session.scalars(stmt)]

    def active_rules(self) -> list[CategoryRule]:
        return self.list_rules(active_only=True)

    def active_count(self) -> int:
        stmt = select(func.count()).select_from(CategoryRuleRow).where(
            CategoryRuleRow.is_active.is_(True)
        )
        with session_scope(database_url=self._database_url) as session:
            return int(session.scalar(stmt) or 0)

    def all_categories(self) -> list[str]:
        """Built-in category names plus every category a stored rule names."""

        with session_scope(database_url=self._database_url) as session:
            custom = list(session.scalars(select(CategoryRuleRow.category).distinct()))
        return all_category_names(custom)


__all__ = ["RuleStore"]
