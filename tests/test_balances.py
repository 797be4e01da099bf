from decimal import Decimal

import pytest

from clinicdb import balances
from clinicdb.errors import ConstraintViolation


def test_partial_payment_balance():
    balance = balances.compute_balance(1000, [400, 400])
    assert balance.cost == Decimal('1000.00')
    assert balance.paid == Decimal('800.00')
    assert balance.remaining == Decimal('200.00')
    assert balance.status == 'partial'


def test_overpayment_clamps_remaining_to_zero():
    balance = balances.compute_balance(100, [60, 60])
    assert balance.paid == Decimal('120.00')
    assert balance.remaining == Decimal('0.00')
    assert balance.status == 'completed'


def test_zero_cost_is_completed():
    balance = balances.compute_balance(0, [])
    assert balance.remaining == Decimal('0.00')
    assert balance.status == 'completed'


def test_unpaid_balance_is_pending():
    assert balances.compute_balance(250, []).status == 'pending'


def test_decimal_sums_do_not_drift():
    balance = balances.compute_balance(1, [0.1] * 10)
    assert balance.paid == Decimal('1.00')
    assert balance.remaining == Decimal('0.00')


def test_to_money_rounds_half_up():
    assert balances.to_money(0.1 + 0.2) == Decimal('0.30')
    assert balances.to_money('2.675') == Decimal('2.68')
    assert balances.to_money(None) == Decimal('0.00')
    assert balances.money_to_db('19.999') == 20.0


@pytest.mark.parametrize('value', ['abc', float('nan'), float('inf')])
def test_to_money_rejects_non_numbers(value):
    with pytest.raises(ConstraintViolation):
        balances.to_money(value)


def test_general_balance_defaults_to_the_payment_itself():
    balance = balances.general_balance(100)
    assert (balance.cost, balance.paid, balance.remaining) == (
        Decimal('100.00'),
        Decimal('100.00'),
        Decimal('0.00'),
    )


def test_general_balance_seeded_from_totals():
    balance = balances.general_balance(50, total_amount_due=200)
    assert balance.remaining == Decimal('150.00')

    balance = balances.general_balance(50, total_amount=80)
    assert balance.cost == Decimal('80.00')
    assert balance.remaining == Decimal('30.00')

    balance = balances.general_balance(50, 200, 120, 80)
    assert (balance.paid, balance.remaining) == (Decimal('120.00'), Decimal('80.00'))


def test_balance_as_dict():
    assert balances.compute_balance('10.50', ['0.50']).as_dict() == {
        'cost': Decimal('10.50'),
        'paid': Decimal('0.50'),
        'remaining': Decimal('10.00'),
        'status': 'partial',
    }
