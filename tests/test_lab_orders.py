import pytest

from clinicdb.errors import ConstraintViolation, NotFound


@pytest.fixture
def lab(store):
    return store.lab_orders.create_lab({'name': 'Smile Lab', 'contact_info': '0555 000 111'})


def _order(store, lab, **extra):
    payload = {'lab_id': lab['id'], 'service_name': 'Crown', 'cost': 300, 'order_date': '2024-06-01'}
    payload.update(extra)
    return store.lab_orders.create(payload)


def test_new_order_starts_unpaid(store, lab, patient_id):
    order = _order(store, lab, patient_id=patient_id)
    assert order['status'] == 'معلق'
    assert order['paid_amount'] == 0
    assert order['remaining_balance'] == 300.0
    assert order['lab_name'] == 'Smile Lab'
    assert order['patient_name'] == 'Layla Hassan'


def test_order_payments_update_the_order_balance(store, lab, patient_id):
    order = _order(store, lab, patient_id=patient_id)
    payment = store.payments.create(
        {
            'patient_id': patient_id,
            'lab_order_id': order['id'],
            'amount': 100,
            'payment_method': 'cash',
            'payment_date': '2024-06-02',
        }
    )
    refreshed = store.lab_orders.get(order['id'])
    assert (refreshed['paid_amount'], refreshed['remaining_balance']) == (100.0, 200.0)
    assert (payment['total_amount_due'], payment['amount_paid'], payment['remaining_balance']) == (
        300.0,
        100.0,
        200.0,
    )

    store.lab_orders.update(order['id'], {'cost': 150})
    refreshed = store.lab_orders.get(order['id'])
    assert refreshed['remaining_balance'] == 50.0
    assert float(store.lab_orders.balance(order['id']).remaining) == 50.0


def test_order_inherits_patient_and_tooth_from_treatment(store, lab, make_treatment, patient_id):
    treatment = make_treatment(36, cost=700)
    order = _order(store, lab, tooth_treatment_id=treatment['id'])
    assert order['patient_id'] == patient_id
    assert order['tooth_number'] == 36
    assert [row['id'] for row in store.lab_orders.list_by_treatment(treatment['id'])] == [order['id']]


def test_invalid_status_and_derived_fields_are_rejected(store, lab):
    with pytest.raises(ConstraintViolation):
        _order(store, lab, status='pending')
    with pytest.raises(ConstraintViolation):
        _order(store, lab, paid_amount=20)
    order = _order(store, lab)
    with pytest.raises(ConstraintViolation):
        store.lab_orders.update(order['id'], {'remaining_balance': 0})
    updated = store.lab_orders.update(order['id'], {'status': 'مكتمل'})
    assert updated['status'] == 'مكتمل'


def test_delete_order_removes_its_payments(store, lab, patient_id):
    order = _order(store, lab, patient_id=patient_id)
    for amount in (50, 70):
        store.payments.create(
            {
                'patient_id': patient_id,
                'lab_order_id': order['id'],
                'amount': amount,
                'payment_method': 'cash',
                'payment_date': '2024-06-03',
            }
        )
    assert store.lab_orders.delete(order['id']) == 2
    assert store.payments.list_by_lab_order(order['id']) == []
    with pytest.raises(NotFound):
        store.lab_orders.delete(order['id'])


def test_delete_lab_cascades_to_orders(store, lab, patient_id):
    order = _order(store, lab, patient_id=patient_id)
    store.payments.create(
        {
            'patient_id': patient_id,
            'lab_order_id': order['id'],
            'amount': 10,
            'payment_method': 'cash',
            'payment_date': '2024-06-04',
        }
    )
    store.lab_orders.delete_lab(lab['id'])
    assert store.lab_orders.get(order['id']) is None
    assert store.lab_orders.list_labs() == []
    assert store.payments.list_by_patient(patient_id) == []


def test_update_lab(store, lab):
    updated = store.lab_orders.update_lab(lab['id'], {'address': 'Main street'})
    assert updated['address'] == 'Main street'
    with pytest.raises(NotFound):
        store.lab_orders.update_lab('missing', {'name': 'Other'})
