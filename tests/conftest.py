import os
import sys

import pytest

# Ensure the repository root is on sys.path so tests can import the clinicdb package
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from clinicdb.connection import connect  # noqa: E402
from clinicdb.db.config import get_database_settings  # noqa: E402
from clinicdb.store import ClinicStore  # noqa: E402


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    get_database_settings.cache_clear()
    yield
    get_database_settings.cache_clear()


@pytest.fixture
def conn():
    connection = connect(':memory:')
    try:
        yield connection
    finally:
        connection.close()


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / 'clinic.db'


@pytest.fixture
def store(db_path):
    clinic = ClinicStore(db_path)
    clinic.start()
    try:
        yield clinic
    finally:
        clinic.close()


@pytest.fixture
def patient_id(store):
    patient = store.patients.create(
        {
            'full_name': 'Layla Hassan',
            'gender': 'female',
            'age': 34,
            'patient_condition': 'Healthy',
            'phone': '0555 123 456',
        }
    )
    return patient['id']


@pytest.fixture
def make_treatment(store, patient_id):
    def _make(tooth_number=16, **overrides):
        payload = {
            'patient_id': patient_id,
            'tooth_number': tooth_number,
            'treatment_type': 'filling',
            'cost': 0,
        }
        payload.update(overrides)
        return store.treatments.create(payload)

    return _make
