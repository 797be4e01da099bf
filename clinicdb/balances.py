"""Running balances for billable entities.

Amounts are handled as :class:`~decimal.Decimal` quantised to two places.
SQLite stores them as REAL, so every value read back goes through
:func:`to_money` and sums are computed in Python rather than with ``SUM()``.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional

import structlog

from clinicdb.errors import ConstraintViolation, NotFound
from clinicdb.time_utils import iso_now

logger = structlog.get_logger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: Any) -> Decimal:
    """Return ``value`` as a two-place ``Decimal`` (``None`` becomes zero)."""

    if value is None or value == "":
        return ZERO
    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            amount = Decimal(str(value))
        except InvalidOperation as exc:
            raise ConstraintViolation("Amounts must be numbers.", detail=repr(value)) from exc
    if not amount.is_finite():
        raise ConstraintViolation("Amounts must be numbers.", detail=repr(value))
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def money_to_db(value: Any) -> float:
    return float(to_money(value))


@dataclass(frozen=True)
class Balance:
    cost: Decimal
    paid: Decimal
    remaining: Decimal

    @property
    def status(self) -> str:
        if self.remaining == ZERO:
            return "completed"
        if self.paid > ZERO:
            return "partial"
        return "pending"

    def as_dict(self) -> Dict[str, Any]:
        return {
            "cost": self.cost,
            "paid": self.paid,
            "remaining": self.remaining,
            "status": self.status,
        }


def compute_balance(cost: Any, amounts: Iterable[Any]) -> Balance:
    """Compute ``{cost, paid, remaining}`` for ``cost`` and payment ``amounts``."""

    cost_value = to_money(cost)
    paid = sum((to_money(amount) for amount in amounts), ZERO)
    remaining = max(ZERO, cost_value - paid)
    return Balance(cost=cost_value, paid=paid, remaining=remaining)


def _linked_amounts(
    conn: sqlite3.Connection,
    column: str,
    entity_id: str,
    exclude_payment_id: Optional[str],
) -> List[Any]:
    sql = f"SELECT amount FROM payments WHERE {column} = ?"
    params: List[Any] = [entity_id]
    if exclude_payment_id is not None:
        sql += " AND id != ?"
        params.append(exclude_payment_id)
    return [row[0] for row in conn.execute(sql, params)]


def _entity_cost(conn: sqlite3.Connection, table: str, entity_id: str) -> Any:
    row = conn.execute(f"SELECT cost FROM {table} WHERE id = ?", (entity_id,)).fetchone()
    if row is None:
        raise NotFound(detail=f"{table}:{entity_id}")
    return row[0]


def treatment_balance(
    conn: sqlite3.Connection,
    treatment_id: str,
    *,
    exclude_payment_id: Optional[str] = None,
    extra: Any = 0,
) -> Balance:
    """Balance of a tooth treatment, optionally previewing a pending write.

    ``exclude_payment_id`` leaves out the payment being replaced and
    ``extra`` adds the amount about to be written.
    """

    cost = _entity_cost(conn, "tooth_treatments", treatment_id)
    amounts = _linked_amounts(conn, "tooth_treatment_id", treatment_id, exclude_payment_id)
    amounts.append(extra)
    return compute_balance(cost, amounts)


def lab_order_balance(
    conn: sqlite3.Connection,
    lab_order_id: str,
    *,
    exclude_payment_id: Optional[str] = None,
    extra: Any = 0,
) -> Balance:
    cost = _entity_cost(conn, "lab_orders", lab_order_id)
    amounts = _linked_amounts(conn, "lab_order_id", lab_order_id, exclude_payment_id)
    amounts.append(extra)
    return compute_balance(cost, amounts)


def reconcile_treatment(conn: sqlite3.Connection, treatment_id: str) -> Optional[Balance]:
    """Rewrite the treatment balance onto every payment linked to it.

    Returns ``None`` when the treatment no longer exists.
    """

    try:
        balance = treatment_balance(conn, treatment_id)
    except NotFound:
        return None
    conn.execute(
        """
        UPDATE payments
           SET treatment_total_cost = ?,
               treatment_total_paid = ?,
               treatment_remaining_balance = ?
         WHERE tooth_treatment_id = ?
        """,
        (float(balance.cost), float(balance.paid), float(balance.remaining), treatment_id),
    )
    logger.debug(
        "treatment_balance_reconciled",
        treatment_id=treatment_id,
        paid=str(balance.paid),
        remaining=str(balance.remaining),
    )
    return balance


def reconcile_lab_order(conn: sqlite3.Connection, lab_order_id: str) -> Optional[Balance]:
    """Recompute ``paid_amount`` and ``remaining_balance`` of a lab order."""

    try:
        balance = lab_order_balance(conn, lab_order_id)
    except NotFound:
        return None
    conn.execute(
        "UPDATE lab_orders SET paid_amount = ?, remaining_balance = ?, updated_at = ? WHERE id = ?",
        (float(balance.paid), float(balance.remaining), iso_now(), lab_order_id),
    )
    conn.execute(
        """
        UPDATE payments
           SET total_amount_due = ?, amount_paid = ?, remaining_balance = ?
         WHERE lab_order_id = ?
        """,
        (float(balance.cost), float(balance.paid), float(balance.remaining), lab_order_id),
    )
    logger.debug(
        "lab_order_balance_reconciled",
        lab_order_id=lab_order_id,
        paid=str(balance.paid),
        remaining=str(balance.remaining),
    )
    return balance


def general_balance(
    amount: Any,
    total_amount_due: Any = None,
    amount_paid: Any = None,
    remaining_balance: Any = None,
    *,
    total_amount: Any = None,
) -> Balance:
    """Balance carried by a payment that is not linked to a billable entity.

    The triple is seeded from the caller's totals; anything missing falls
    back to the payment's own ``total_amount`` and ``amount``.
    """

    due = to_money(total_amount_due if total_amount_due is not None else (
        total_amount if total_amount is not None else amount
    ))
    paid = to_money(amount_paid if amount_paid is not None else amount)
    if remaining_balance is not None:
        remaining = max(ZERO, to_money(remaining_balance))
    else:
        remaining = max(ZERO, due - paid)
    return Balance(cost=due, paid=paid, remaining=remaining)


@dataclass
class PaymentSummary:
    treatment_id: str
    balance: Balance
    payments: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.payments)

    @property
    def status(self) -> str:
        return self.balance.status


def payment_summary(conn: sqlite3.Connection, treatment_id: str) -> PaymentSummary:
    balance = treatment_balance(conn, treatment_id)
    rows = conn.execute(
        "SELECT * FROM payments WHERE tooth_treatment_id = ? ORDER BY payment_date DESC, created_at DESC",
        (treatment_id,),
    ).fetchall()
    return PaymentSummary(
        treatment_id=treatment_id,
        balance=balance,
        payments=[dict(row) for row in rows],
    )


__all__ = [
    "Balance",
    "CENT",
    "PaymentSummary",
    "ZERO",
    "compute_balance",
    "general_balance",
    "lab_order_balance",
    "money_to_db",
    "payment_summary",
    "reconcile_lab_order",
    "reconcile_treatment",
    "to_money",
    "treatment_balance",
]
