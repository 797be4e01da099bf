"""Database configuration helpers."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Dict, Optional

from platformdirs import user_data_dir

APP_NAME = "clinicdb"
DEFAULT_SQLITE_NAME = "dental_clinic.db"
_SYNCHRONOUS_MODES = {"OFF", "NORMAL", "FULL", "EXTRA"}


@dataclass(frozen=True)
class DatabaseSettings:
    """Resolved storage configuration for the clinic database."""

    path: Path
    synchronous: str = "NORMAL"
    cache_size: int = 1000
    busy_timeout: float = 5.0

    def pragmas(self) -> Dict[str, object]:
        """Return the durability pragmas applied on every (re)open."""

        return {
            "foreign_keys": "ON",
            "journal_mode": "WAL",
            "synchronous": self.synchronous,
            "cache_size": self.cache_size,
            "temp_store": "MEMORY",
        }

    @property
    def is_memory(self) -> bool:
        return str(self.path) == ":memory:"


def _sqlite_name() -> str:
    return os.getenv("CLINICDB_SQLITE_NAME") or DEFAULT_SQLITE_NAME


def _default_sqlite_path() -> Path:
    data_dir = Path(user_data_dir(APP_NAME, APP_NAME))
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir / _sqlite_name()


def normalise_sqlite_path(path: str | os.PathLike[str]) -> Path:
    """Resolve ``path`` to a database file, creating parent directories."""

    if str(path) == ":memory:":
        return Path(":memory:")
    resolved = Path(path).expanduser()
    if resolved.is_dir():
        resolved = resolved / _sqlite_name()
    resolved.parent.mkdir(parents=True, exist_ok=True)
    return resolved.resolve()


def _get_int_env(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if raw in (None, ""):
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer; got {raw!r}") from exc


def _get_synchronous() -> str:
    raw = (os.getenv("CLINICDB_SYNCHRONOUS") or "NORMAL").strip().upper()
    if raw not in _SYNCHRONOUS_MODES:
        raise ValueError(
            f"Environment variable CLINICDB_SYNCHRONOUS must be one of {sorted(_SYNCHRONOUS_MODES)}; got {raw!r}"
        )
    return raw


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
    """Return the active database settings derived from the environment."""

    path_override = os.getenv("CLINICDB_DB_PATH")
    if path_override:
        db_path = normalise_sqlite_path(path_override)
    else:
        db_path = _default_sqlite_path()

    cache_size = _get_int_env("CLINICDB_CACHE_SIZE")
    busy_timeout = _get_int_env("CLINICDB_BUSY_TIMEOUT")
    return DatabaseSettings(
        path=db_path,
        synchronous=_get_synchronous(),
        cache_size=1000 if cache_size is None else cache_size,
        busy_timeout=5.0 if busy_timeout is None else float(busy_timeout),
    )


__all__ = [
    "APP_NAME",
    "DEFAULT_SQLITE_NAME",
    "DatabaseSettings",
    "get_database_settings",
    "normalise_sqlite_path",
]
