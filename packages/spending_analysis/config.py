"""Runtime settings for an analysis run.

Settings are read from the environment once (the CLI loads ``.env`` with
python-dotenv first) and then passed around as a frozen value; no module reads
the environment on its own after startup.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .models import GatePolicy

_TRUTHY = frozenset({"1", "true", "yes", "on"})

_DEFAULT_MAX_WORKERS = 4
_MAX_WORKERS_CAP = 32
_DEFAULT_BATCH_SIZE = 500
_DEFAULT_STALE_AFTER_HOURS = 24

# Captured at import so every run in this process groups days the same way,
# even if the host zone changes underneath a long-lived process.
_LOCAL_TZ: tzinfo = datetime.now().astimezone().tzinfo or ZoneInfo("UTC")


def _int_env(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e


def resolve_timezone(name: str | None) -> tzinfo:
    """Return the named IANA zone, or the process-local zone when ``name`` is empty."""

    if not name or not name.strip():
        return _LOCAL_TZ
    try:
        return ZoneInfo(name.strip())
    except ZoneInfoNotFoundError as e:
        raise ValueError(f"Unknown time zone: {name!r}") from e


@dataclass(frozen=True, slots=True)
class AnalysisSettings:
    timezone: tzinfo = field(default_factory=lambda: _LOCAL_TZ)
    gate_policy: GatePolicy = GatePolicy.CURRENCY_OR_KEYWORD
    max_workers: int = _DEFAULT_MAX_WORKERS
    batch_size: int = _DEFAULT_BATCH_SIZE
    stale_after_hours: int = _DEFAULT_STALE_AFTER_HOURS

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if self.stale_after_hours < 0:
            raise ValueError("stale_after_hours must be >= 0")
        # Clamp rather than reject; an oversized pool is a tuning slip, not an error.
        clamped = max(1, min(_MAX_WORKERS_CAP, self.max_workers))
        object.__setattr__(self, "max_workers", clamped)

    @property
    def stale_after_ms(self) -> int:
        return self.stale_after_hours * 3600 * 1000

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> AnalysisSettings:
        """Build settings from ``SA_*`` variables (``os.environ`` by default)."""

        env = os.environ if env is None else env
        require_otp = env.get("SA_REQUIRE_OTP", "").strip().lower() in _TRUTHY
        return cls(
            timezone=resolve_timezone(env.get("SA_TIMEZONE")),
            gate_policy=GatePolicy.REQUIRE_OTP if require_otp else GatePolicy.CURRENCY_OR_KEYWORD,
            max_workers=_int_env(env, "SA_MAX_WORKERS", _DEFAULT_MAX_WORKERS),
            batch_size=_int_env(env, "SA_BATCH_SIZE", _DEFAULT_BATCH_SIZE),
            stale_after_hours=_int_env(env, "SA_STALE_AFTER_HOURS", _DEFAULT_STALE_AFTER_HOURS),
        )


__all__ = ["AnalysisSettings", "resolve_timezone"]
