"""Pytest configuration for test isolation.

Settings are read from ``SA_*`` variables and the store location from
``DATABASE_URL``. A developer shell (or a ``.env`` loaded by an earlier CLI
test) can leave those set, which would silently change time zones, gate
policy, or point a test at a real database. The autouse fixture below clears
them for every test.

Each test that needs persistence gets its own file-backed SQLite database in
``tmp_path``; the engine is disposed afterwards so file handles don't leak
across tests.
"""

# ruff: noqa: E402, I001
from __future__ import annotations

import os
import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

# Make the workspace packages importable without an editable install.
_ROOT = Path(__file__).resolve().parents[1]
sys.path[:0] = [
    p
    for p in (str(_ROOT / "packages"), str(_ROOT / "libs" / "db" / "src"), str(_ROOT))
    if p not in sys.path
]

from db.client import dispose_engine

from tests.helpers.db import bootstrap_sqlite_db

_ENV_PREFIXES = ("SA_",)
_ENV_NAMES = ("DATABASE_URL", "SPENDING_ANALYSIS_LOG_LEVEL")


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in list(os.environ):
        if name.startswith(_ENV_PREFIXES) or name in _ENV_NAMES:
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def db_url(tmp_path: Path) -> Iterator[str]:
    url = bootstrap_sqlite_db(tmp_path / "db" / "analysis.sqlite3")
    yield url
    dispose_engine(database_url=url)
