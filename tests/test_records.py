from decimal import Decimal

import pytest

from clinicdb.errors import ConstraintViolation, NotFound


def test_patient_crud(store, patient_id):
    patient = store.patients.get(patient_id)
    assert patient['serial_number'] == patient_id[:8]
    assert patient['created_at'].endswith('Z')

    updated = store.patients.update(patient_id, {'age': 35, 'notes': 'Prefers mornings'})
    assert updated['age'] == 35
    assert [row['id'] for row in store.patients.list('Layla')] == [patient_id]
    assert store.patients.list('nobody') == []

    store.patients.delete(patient_id)
    assert store.patients.get(patient_id) is None
    with pytest.raises(NotFound):
        store.patients.delete(patient_id)


def test_patient_validation(store):
    with pytest.raises(ConstraintViolation) as excinfo:
        store.patients.create(
            {'full_name': 'No Age', 'gender': 'female', 'age': 0, 'patient_condition': 'Healthy'}
        )
    assert 'age' in excinfo.value.message
    with pytest.raises(ConstraintViolation):
        store.patients.create({'full_name': 'X', 'gender': 'other', 'age': 3, 'patient_condition': 'ok'})


def test_duplicate_serial_number_is_a_constraint_violation(store, patient_id):
    serial = store.patients.get(patient_id)['serial_number']
    with pytest.raises(ConstraintViolation):
        store.patients.create(
            {
                'serial_number': serial,
                'full_name': 'Copy',
                'gender': 'male',
                'age': 20,
                'patient_condition': 'Healthy',
            }
        )


def test_update_missing_patient(store):
    with pytest.raises(NotFound):
        store.patients.update('missing', {'age': 5})


def test_sessions_are_numbered_per_treatment(store, make_treatment):
    treatment = make_treatment(16)
    other = make_treatment(17)

    def add(treatment_id, title):
        return store.sessions.create(
            {
                'tooth_treatment_id': treatment_id,
                'session_type': 'visit',
                'session_title': title,
                'session_date': '2024-07-01',
            }
        )

    first = add(treatment['id'], 'First')
    second = add(treatment['id'], 'Second')
    elsewhere = add(other['id'], 'Elsewhere')
    assert (first['session_number'], second['session_number'], elsewhere['session_number']) == (1, 2, 1)

    updated = store.sessions.update(first['id'], {'session_status': 'completed'})
    assert updated['session_status'] == 'completed'
    assert [row['id'] for row in store.sessions.list_by_treatment(treatment['id'])] == [first['id'], second['id']]

    store.sessions.delete(second['id'])
    assert store.sessions.get(second['id']) is None
    with pytest.raises(NotFound):
        store.sessions.update(second['id'], {'notes': 'gone'})


def test_session_for_missing_treatment_is_rejected(store):
    with pytest.raises(ConstraintViolation):
        store.sessions.create(
            {
                'tooth_treatment_id': 'missing',
                'session_type': 'visit',
                'session_title': 'Orphan',
                'session_date': '2024-07-01',
            }
        )


def test_clinic_needs(store):
    gloves = store.clinic_needs.create({'need_name': 'Gloves', 'quantity': 10, 'price': '2.50', 'priority': 'high'})
    masks = store.clinic_needs.create({'need_name': 'Masks', 'quantity': 4, 'price': 1.25, 'supplier': 'MedCo'})
    assert (gloves['serial_number'], masks['serial_number']) == ('001', '002')

    store.clinic_needs.update(masks['id'], {'status': 'ordered'})
    assert [row['id'] for row in store.clinic_needs.list(status='ordered')] == [masks['id']]
    assert [row['id'] for row in store.clinic_needs.search('medco')] == [masks['id']]

    stats = store.clinic_needs.statistics()
    assert stats.total == 2
    assert stats.total_value == Decimal('30.00')
    assert stats.by_status == {'pending': 1, 'ordered': 1}
    assert stats.by_priority == {'high': 1, 'medium': 1}

    with pytest.raises(ConstraintViolation):
        store.clinic_needs.create({'need_name': 'Bad', 'status': 'lost'})
    store.clinic_needs.delete(gloves['id'])
    with pytest.raises(NotFound):
        store.clinic_needs.delete(gloves['id'])
