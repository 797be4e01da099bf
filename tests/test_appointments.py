import pytest

from clinicdb.appointments import CONFLICT_MESSAGE
from clinicdb.errors import ConstraintViolation, NotFound


def _book(store, patient_id, start, end, **extra):
    payload = {
        'patient_id': patient_id,
        'title': 'Check-up',
        'start_time': start,
        'end_time': end,
    }
    payload.update(extra)
    return store.appointments.create(payload)


def test_create_normalises_times_and_joins_patient(store, patient_id):
    appointment = _book(store, patient_id, '2024-07-01T09:00', '2024-07-01T09:30')
    assert appointment['start_time'] == '2024-07-01T09:00:00.000Z'
    assert appointment['end_time'] == '2024-07-01T09:30:00.000Z'
    assert appointment['status'] == 'scheduled'
    assert appointment['patient_name'] == 'Layla Hassan'
    assert [row['id'] for row in store.appointments.list_by_patient(patient_id)] == [appointment['id']]


def test_overlapping_booking_is_rejected(store, patient_id):
    _book(store, patient_id, '2024-07-01T09:00', '2024-07-01T10:00')
    with pytest.raises(ConstraintViolation) as excinfo:
        _book(store, patient_id, '2024-07-01T09:30', '2024-07-01T10:30')
    assert excinfo.value.message == CONFLICT_MESSAGE
    with pytest.raises(ConstraintViolation):
        _book(store, patient_id, '2024-07-01T08:00', '2024-07-01T11:00')
    assert len(store.appointments.list()) == 1


def test_back_to_back_and_cancelled_do_not_conflict(store, patient_id):
    first = _book(store, patient_id, '2024-07-01T09:00', '2024-07-01T10:00')
    _book(store, patient_id, '2024-07-01T10:00', '2024-07-01T10:30')

    store.appointments.update(first['id'], {'status': 'cancelled'})
    replacement = _book(store, patient_id, '2024-07-01T09:15', '2024-07-01T09:45')
    assert replacement['status'] == 'scheduled'

    # Reinstating the cancelled slot now clashes with the replacement.
    with pytest.raises(ConstraintViolation):
        store.appointments.update(first['id'], {'status': 'scheduled'})


def test_rescheduling_checks_other_appointments_only(store, patient_id):
    first = _book(store, patient_id, '2024-07-01T09:00', '2024-07-01T10:00')
    second = _book(store, patient_id, '2024-07-01T11:00', '2024-07-01T12:00')

    moved = store.appointments.update(first['id'], {'end_time': '2024-07-01T10:30'})
    assert moved['end_time'] == '2024-07-01T10:30:00.000Z'
    with pytest.raises(ConstraintViolation):
        store.appointments.update(second['id'], {'start_time': '2024-07-01T10:00'})
    assert store.appointments.get(second['id'])['start_time'] == '2024-07-01T11:00:00.000Z'


def test_end_must_follow_start(store, patient_id):
    with pytest.raises(ConstraintViolation):
        _book(store, patient_id, '2024-07-01T10:00', '2024-07-01T09:00')
    appointment = _book(store, patient_id, '2024-07-01T09:00', '2024-07-01T10:00')
    with pytest.raises(ConstraintViolation):
        store.appointments.update(appointment['id'], {'end_time': '2024-07-01T08:00'})


def test_unknown_patient_is_rejected(store):
    with pytest.raises(ConstraintViolation):
        _book(store, 'missing', '2024-07-01T09:00', '2024-07-01T10:00')


def test_search_and_delete(store, patient_id):
    appointment = _book(store, patient_id, '2024-07-01T09:00', '2024-07-01T10:00', notes='bring x-rays')
    assert [row['id'] for row in store.appointments.search('x-rays')] == [appointment['id']]
    assert [row['id'] for row in store.appointments.search('Layla')] == [appointment['id']]

    store.appointments.delete(appointment['id'])
    assert store.appointments.get(appointment['id']) is None
    with pytest.raises(NotFound):
        store.appointments.delete(appointment['id'])
    with pytest.raises(NotFound):
        store.appointments.update(appointment['id'], {'title': 'Gone'})
