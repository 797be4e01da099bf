from pathlib import Path

import pytest

from clinicdb.db import config
from clinicdb.db.config import DatabaseSettings, get_database_settings, normalise_sqlite_path


def test_path_from_env(monkeypatch, tmp_path):
    target = tmp_path / 'nested' / 'clinic.db'
    monkeypatch.setenv('CLINICDB_DB_PATH', str(target))
    monkeypatch.setenv('CLINICDB_CACHE_SIZE', '2000')
    monkeypatch.setenv('CLINICDB_BUSY_TIMEOUT', '9')
    monkeypatch.setenv('CLINICDB_SYNCHRONOUS', 'full')

    settings = get_database_settings()
    assert settings.path == target.resolve()
    assert target.parent.is_dir()
    assert settings.cache_size == 2000
    assert settings.busy_timeout == 9.0
    assert settings.synchronous == 'FULL'
    assert settings.pragmas()['synchronous'] == 'FULL'


def test_directory_path_gets_default_file_name(monkeypatch, tmp_path):
    monkeypatch.delenv('CLINICDB_SQLITE_NAME', raising=False)
    resolved = normalise_sqlite_path(tmp_path)
    assert resolved == (tmp_path / config.DEFAULT_SQLITE_NAME).resolve()


def test_default_path_uses_user_data_dir(monkeypatch, tmp_path):
    monkeypatch.delenv('CLINICDB_DB_PATH', raising=False)
    monkeypatch.setenv('CLINICDB_SQLITE_NAME', 'other.db')
    monkeypatch.setattr(config, 'user_data_dir', lambda *args, **kwargs: str(tmp_path / 'data'))

    settings = get_database_settings()
    assert settings.path == tmp_path / 'data' / 'other.db'
    assert (tmp_path / 'data').is_dir()


def test_invalid_integer_env_raises(monkeypatch, tmp_path):
    monkeypatch.setenv('CLINICDB_DB_PATH', str(tmp_path / 'clinic.db'))
    monkeypatch.setenv('CLINICDB_CACHE_SIZE', 'lots')
    with pytest.raises(ValueError):
        get_database_settings()


def test_invalid_synchronous_mode_raises(monkeypatch, tmp_path):
    monkeypatch.setenv('CLINICDB_DB_PATH', str(tmp_path / 'clinic.db'))
    monkeypatch.setenv('CLINICDB_SYNCHRONOUS', 'sometimes')
    with pytest.raises(ValueError):
        get_database_settings()


def test_memory_path_is_kept():
    settings = DatabaseSettings(path=normalise_sqlite_path(':memory:'))
    assert settings.is_memory
    assert settings.path == Path(':memory:')
    assert settings.pragmas()['foreign_keys'] == 'ON'
    assert settings.pragmas()['journal_mode'] == 'WAL'
