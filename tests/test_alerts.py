import json

import pytest

from clinicdb.errors import ConstraintViolation, NotFound
from clinicdb.schemas import AppointmentRef, FollowUpRef, LabOrderRef


def _alert(store, title='Appointment tomorrow', **extra):
    payload = {'type': 'appointment', 'priority': 'medium', 'title': title, 'description': 'Reminder'}
    payload.update(extra)
    return store.alerts.create(payload)


def test_duplicate_alert_returns_existing(store, patient_id):
    first = _alert(store, patient_id=patient_id)
    second = _alert(store, patient_id=patient_id, description='Different text')
    assert second.id == first.id
    assert len(store.alerts.list_all()) == 1

    other_patient = _alert(store)
    assert other_patient.id != first.id
    assert _alert(store).id == other_patient.id


def test_explicit_existing_id_returns_stored_alert(store):
    first = _alert(store, id='alert-1')
    again = _alert(store, id='alert-1', title='Another title')
    assert again.id == 'alert-1'
    assert again.title == first.title


def test_dismissed_alert_does_not_suppress_new_one(store):
    first = _alert(store)
    store.alerts.dismiss(first.id)
    second = _alert(store)
    assert second.id != first.id


def test_snoozed_alert_still_counts_as_duplicate(store):
    first = _alert(store)
    store.alerts.snooze(first.id, '2999-01-01T00:00:00Z')
    assert _alert(store).id == first.id


def test_active_alerts_ordering(store):
    low = _alert(store, 'Low unread', priority='low')
    high_read = _alert(store, 'High read', priority='high')
    high_unread = _alert(store, 'High unread', priority='high')
    medium = _alert(store, 'Medium', priority='medium')
    store.alerts.mark_read(high_read.id)

    ids = [alert.id for alert in store.alerts.list_active()]
    assert ids == [high_unread.id, high_read.id, medium.id, low.id]


def test_elapsed_snooze_is_cleared(store):
    sleeping = _alert(store, 'Sleeping')
    waking = _alert(store, 'Waking')
    dismissed = _alert(store, 'Dismissed')
    store.alerts.snooze(sleeping.id, '2999-01-01T00:00:00Z')
    store.alerts.snooze(waking.id, '2000-01-01T00:00:00Z')
    store.alerts.dismiss(dismissed.id)

    active = store.alerts.list_active()
    assert [alert.id for alert in active] == [waking.id]
    assert active[0].snooze_until is None
    assert store.alerts.get(sleeping.id).snooze_until == '2999-01-01T00:00:00.000Z'


def test_snooze_evaluated_against_given_time(store):
    alert = _alert(store)
    store.alerts.snooze(alert.id, '2030-06-01T12:00:00+02:00')
    assert store.alerts.list_active(now='2030-06-01T09:59:59Z') == []
    assert [item.id for item in store.alerts.list_active(now='2030-06-01T10:00:00Z')] == [alert.id]


def test_related_data_round_trip(store):
    alert = _alert(store, related={'kind': 'appointment', 'appointment_id': 'apt-1'})
    stored = store.alerts.get(alert.id)
    assert isinstance(stored.related, AppointmentRef)
    assert stored.related.appointment_id == 'apt-1'

    follow_up = store.alerts.create(
        {'type': 'follow_up', 'title': 'Check healing', 'related': FollowUpRef(treatment_id='t-9')}
    )
    assert follow_up.related == FollowUpRef(treatment_id='t-9')


def test_related_kind_must_match_type(store):
    with pytest.raises(ConstraintViolation):
        _alert(store, related=LabOrderRef(lab_order_id='o-1'))


def test_legacy_camel_case_related_data(store):
    store.alerts.list_all()
    store.connection.execute(
        """
        INSERT INTO smart_alerts (id, type, priority, title, description, related_data)
        VALUES ('legacy-1', 'lab_order', 'high', 'Lab order late', '', ?)
        """,
        (json.dumps({'labOrderId': 'o-7'}),),
    )
    alert = store.alerts.get('legacy-1')
    assert alert.related == LabOrderRef(lab_order_id='o-7')

    assert store.alerts.delete_by_related('lab_order', 'o-7') == 1
    assert store.alerts.get('legacy-1') is None


def test_delete_by_related(store):
    keep = _alert(store, 'Keep', related={'kind': 'appointment', 'appointment_id': 'apt-2'})
    _alert(store, 'Drop', related={'kind': 'appointment', 'appointment_id': 'apt-1'})
    store.connection.execute(
        """
        INSERT INTO smart_alerts (id, type, priority, title, description, related_data)
        VALUES ('broken', 'appointment', 'low', 'Broken json', '', 'not json')
        """
    )
    assert store.alerts.delete_by_related('appointment', 'apt-1') == 1
    remaining = {alert.id for alert in store.alerts.list_all()}
    assert remaining == {keep.id, 'broken'}
    with pytest.raises(ValueError):
        store.alerts.delete_by_related('invoice', 'x')


def test_delete_helpers(store, patient_id):
    _alert(store, 'Patient alert', patient_id=patient_id)
    _alert(store, 'Payment due', type='payment')
    dismissed = _alert(store, 'Old news')
    store.alerts.dismiss(dismissed.id)

    assert store.alerts.clear_dismissed() == 1
    assert store.alerts.delete_by_type('payment') == 1
    assert store.alerts.delete_by_patient(patient_id) == 1
    assert store.alerts.list_all() == []
    with pytest.raises(NotFound):
        store.alerts.delete('missing')


def test_patient_delete_cascades_to_alerts(store, patient_id):
    _alert(store, patient_id=patient_id)
    store.patients.delete(patient_id)
    assert store.alerts.list_all() == []
