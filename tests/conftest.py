"""Pytest configuration for test isolation.

The file cache persists collection blobs under a default project-relative
directory (``./.cache``). When tests run in the same working tree, those
files would leak between tests: a store built by a later test would seed
itself from orders written by an earlier one.

To keep tests hermetic, we redirect the cache root to a unique temporary
directory for each test via an autouse fixture, and clear the settings
variables a developer's shell or ``.env`` might carry.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

# Make sure the workspace `packages/` and `libs/db/src` dirs are importable, and
# the repo root too so `tests.helpers` resolves.
_ROOT = Path(__file__).resolve().parents[1]
_PATHS = [_ROOT / "packages", _ROOT / "libs" / "db" / "src", _ROOT]
sys.path[:0] = [str(p) for p in _PATHS if str(p) not in sys.path]

_SETTINGS_VARS = (
    "ORDER_LEDGER_SYNC_ENABLED",
    "ORDER_LEDGER_SPREADSHEET_ID",
    "ORDER_LEDGER_APPS_SCRIPT_URL",
    "ORDER_LEDGER_HTTP_TIMEOUT",
    "ORDER_LEDGER_IMAGE_MODE",
    "ORDER_LEDGER_MAX_IMAGE_CHARS",
    "ORDER_LEDGER_CACHE_BACKEND",
    "DATABASE_URL",
)


@pytest.fixture(autouse=True)
def _isolate_cache_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Force a per-test cache root so tests don't share on-disk state.

    The application reads ``ORDER_LEDGER_CACHE_DIR`` (when set) to override
    the default ``./.cache`` location. We point it at the test's own
    temporary directory.
    """

    cache_root = tmp_path / "cache"
    cache_root.mkdir(parents=True, exist_ok=True)
    monkeypatch.setenv("ORDER_LEDGER_CACHE_DIR", os.fspath(cache_root))
    for name in _SETTINGS_VARS:
        monkeypatch.delenv(name, raising=False)
