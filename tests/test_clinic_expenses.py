from decimal import Decimal

import pytest

from clinicdb.errors import ConstraintViolation, NotFound


def _expense(store, name, amount, **extra):
    payload = {
        'expense_name': name,
        'amount': amount,
        'expense_type': 'supplies',
        'payment_method': 'cash',
        'payment_date': '2024-07-01',
    }
    payload.update(extra)
    return store.clinic_expenses.create(payload)


def test_expense_filters_and_totals(store):
    rent = _expense(store, 'Rent', 1500, expense_type='rent', is_recurring=True, recurring_frequency='monthly')
    gloves = _expense(store, 'Gloves', '12.345', vendor='MedCo', payment_date='2024-07-03')
    assert gloves['amount'] == 12.35
    assert gloves['status'] == 'pending'
    assert rent['is_recurring'] == 1

    assert [row['id'] for row in store.clinic_expenses.list()] == [gloves['id'], rent['id']]
    assert [row['id'] for row in store.clinic_expenses.list(expense_type='rent')] == [rent['id']]
    assert [row['id'] for row in store.clinic_expenses.list_recurring()] == [rent['id']]
    assert [row['id'] for row in store.clinic_expenses.search('medco')] == [gloves['id']]

    store.clinic_expenses.update(rent['id'], {'status': 'paid'})
    assert [row['id'] for row in store.clinic_expenses.list(status='paid')] == [rent['id']]
    assert store.clinic_expenses.total() == Decimal('1512.35')
    assert store.clinic_expenses.total(status='pending') == Decimal('12.35')


def test_expense_validation(store):
    with pytest.raises(ConstraintViolation):
        _expense(store, 'Cleaner', 50, expense_type='party')
    with pytest.raises(ConstraintViolation):
        _expense(store, 'Rent', 1500, is_recurring=True)

    gloves = _expense(store, 'Gloves', 10)
    with pytest.raises(ConstraintViolation):
        store.clinic_expenses.update(gloves['id'], {'is_recurring': True})


def test_expense_delete(store):
    gloves = _expense(store, 'Gloves', 10)
    store.clinic_expenses.delete(gloves['id'])
    assert store.clinic_expenses.get(gloves['id']) is None
    with pytest.raises(NotFound):
        store.clinic_expenses.delete(gloves['id'])
    with pytest.raises(NotFound):
        store.clinic_expenses.update(gloves['id'], {'notes': 'gone'})
