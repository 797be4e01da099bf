"""Database configuration for :mod:`clinicdb`."""

from clinicdb.db.config import DatabaseSettings, get_database_settings, normalise_sqlite_path

__all__ = ["DatabaseSettings", "get_database_settings", "normalise_sqlite_path"]
