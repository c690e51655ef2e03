"""Runtime settings for ``order_ledger``.

Settings are read from the process environment. Entry points (the CLI) load a
local ``.env`` with ``python-dotenv`` first; library code never does.

Environment variables
---------------------
- ``ORDER_LEDGER_SYNC_ENABLED``: ``1/true/yes`` to talk to the remote sheet.
- ``ORDER_LEDGER_SPREADSHEET_ID``: target spreadsheet id.
- ``ORDER_LEDGER_APPS_SCRIPT_URL``: deployed Apps Script web-app URL.
- ``ORDER_LEDGER_HTTP_TIMEOUT``: seconds per request (default 30).
- ``ORDER_LEDGER_IMAGE_MODE``: ``flag`` (default) or ``payload``.
- ``ORDER_LEDGER_MAX_IMAGE_CHARS``: payload bound for image cells.
- ``ORDER_LEDGER_CACHE_BACKEND``: ``file`` (default) or ``db``.
- ``ORDER_LEDGER_CACHE_DIR``: root for the file cache (default ``./.cache``).
- ``DATABASE_URL``: SQLAlchemy URL for the ``db`` cache backend.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from .codec import DEFAULT_MAX_IMAGE_CHARS, ImageColumnPolicy
from .errors import ConfigurationError

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


def _env_bool(raw: str | None, *, name: str, default: bool) -> bool:
    if raw is None:
        return default
    v = raw.strip().lower()
    if v in _TRUE:
        return True
    if v in _FALSE:
        return False
    raise ConfigurationError(f"{name} must be a boolean (1/0, true/false), got {raw!r}")


def _env_number(raw: str | None, *, name: str, default: float, cast=float):
    if raw is None or not raw.strip():
        return default
    try:
        value = cast(raw.strip())
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from e
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {raw!r}")
    return value


def _env_str(raw: str | None) -> str | None:
    if raw is None:
        return None
    s = raw.strip()
    return s or None


@dataclass(frozen=True, slots=True)
class RemoteConfig:
    """Connection settings for the Apps Script endpoint."""

    spreadsheet_id: str
    apps_script_url: str
    timeout: float = 30.0


@dataclass(frozen=True, slots=True)
class LedgerSettings:
    sync_enabled: bool = False
    spreadsheet_id: str | None = None
    apps_script_url: str | None = None
    http_timeout: float = 30.0
    image_mode: Literal["flag", "payload"] = "flag"
    max_image_chars: int = DEFAULT_MAX_IMAGE_CHARS
    cache_backend: Literal["file", "db"] = "file"
    cache_dir: Path | None = None
    database_url: str | None = None

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> LedgerSettings:
        """Build settings from ``env`` (defaults to ``os.environ``).

        Raises :class:`ConfigurationError` for values that are present but
        malformed. Missing remote settings are not an error here; see
        :meth:`require_remote`.
        """

        e = os.environ if env is None else env

        image_mode = (e.get("ORDER_LEDGER_IMAGE_MODE") or "flag").strip().lower()
        if image_mode not in ("flag", "payload"):
            raise ConfigurationError(
                f"ORDER_LEDGER_IMAGE_MODE must be 'flag' or 'payload', got {image_mode!r}"
            )
        backend = (e.get("ORDER_LEDGER_CACHE_BACKEND") or "file").strip().lower()
        if backend not in ("file", "db"):
            raise ConfigurationError(
                f"ORDER_LEDGER_CACHE_BACKEND must be 'file' or 'db', got {backend!r}"
            )
        cache_dir = _env_str(e.get("ORDER_LEDGER_CACHE_DIR"))

        return cls(
            sync_enabled=_env_bool(
                e.get("ORDER_LEDGER_SYNC_ENABLED"), name="ORDER_LEDGER_SYNC_ENABLED", default=False
            ),
            spreadsheet_id=_env_str(e.get("ORDER_LEDGER_SPREADSHEET_ID")),
            apps_script_url=_env_str(e.get("ORDER_LEDGER_APPS_SCRIPT_URL")),
            http_timeout=_env_number(
                e.get("ORDER_LEDGER_HTTP_TIMEOUT"), name="ORDER_LEDGER_HTTP_TIMEOUT", default=30.0
            ),
            image_mode=image_mode,  # type: ignore[arg-type]
            max_image_chars=_env_number(
                e.get("ORDER_LEDGER_MAX_IMAGE_CHARS"),
                name="ORDER_LEDGER_MAX_IMAGE_CHARS",
                default=DEFAULT_MAX_IMAGE_CHARS,
                cast=int,
            ),
            cache_backend=backend,  # type: ignore[arg-type]
            cache_dir=Path(cache_dir).expanduser() if cache_dir else None,
            database_url=_env_str(e.get("DATABASE_URL")),
        )

    def missing_remote_settings(self) -> list[str]:
        """Names of the settings that keep the remote sheet disabled."""

        missing: list[str] = []
        if not self.sync_enabled:
            missing.append("ORDER_LEDGER_SYNC_ENABLED")
        if not self.spreadsheet_id:
            missing.append("ORDER_LEDGER_SPREADSHEET_ID")
        if not self.apps_script_url:
            missing.append("ORDER_LEDGER_APPS_SCRIPT_URL")
        return missing

    @property
    def remote_configured(self) -> bool:
        return not self.missing_remote_settings()

    def require_remote(self) -> RemoteConfig:
        missing = self.missing_remote_settings()
        if missing:
            raise ConfigurationError(
                "remote sheet sync is not configured; set " + ", ".join(missing)
            )
        assert self.spreadsheet_id is not None and self.apps_script_url is not None
        return RemoteConfig(
            spreadsheet_id=self.spreadsheet_id,
            apps_script_url=self.apps_script_url,
            timeout=self.http_timeout,
        )

    @property
    def image_policy(self) -> ImageColumnPolicy:
        return ImageColumnPolicy(mode=self.image_mode, max_chars=self.max_image_chars)


__all__ = ["LedgerSettings", "RemoteConfig"]
