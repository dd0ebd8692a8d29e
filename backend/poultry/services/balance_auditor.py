"""
Balance auditor: recompute cached customer balances from transaction history.

balance should equal sum(invoice.final_amount) - sum(payment.amount). Drift
beyond BALANCE_TOLERANCE is repaired by overwriting the cached balance.
Repairs go through the same version column as postings, so a posting that
commits between the audit's read and write makes the audit retry instead of
being overwritten.
"""
import logging
from decimal import Decimal
from typing import Dict, List

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from poultry.core.audit import AuditLog
from poultry.core.exceptions import NotFound
from poultry.core.numbers import TOLERANCE, quantize
from poultry.db.transactions import run_in_transaction
from poultry.models.customer import Customer
from poultry.models.invoice import Invoice
from poultry.models.payment import Payment
from poultry.schemas.customer import BalanceRecomputation

logger = logging.getLogger(__name__)

BALANCE_TOLERANCE = TOLERANCE
ZERO = Decimal("0.00")


def _history_balance(db: Session, customer_id: int) -> Decimal:
    total_invoiced = db.execute(
        select(func.coalesce(func.sum(Invoice.final_amount), 0)).where(Invoice.customer_id == customer_id)
    ).scalar_one()
    total_paid = db.execute(
        select(func.coalesce(func.sum(Payment.amount), 0)).where(Payment.customer_id == customer_id)
    ).scalar_one()
    return quantize(total_invoiced) - quantize(total_paid)


def _history_balances(db: Session) -> Dict[int, Decimal]:
    invoiced = dict(
        db.execute(
            select(Invoice.customer_id, func.sum(Invoice.final_amount)).group_by(Invoice.customer_id)
        ).all()
    )
    paid = dict(
        db.execute(
            select(Payment.customer_id, func.sum(Payment.amount)).group_by(Payment.customer_id)
        ).all()
    )
    customer_ids = set(invoiced) | set(paid)
    return {cid: quantize(invoiced.get(cid) or 0) - quantize(paid.get(cid) or 0) for cid in customer_ids}


def recompute_balance(db: Session, customer_id: int) -> BalanceRecomputation:
    """Recompute one customer's balance and repair drift above the tolerance.

    Returns:
        drift (recomputed - cached, zero when within tolerance) and the balance
        the customer holds afterwards

    Raises:
        NotFound: Unknown customer
        TransactionFailed: Repair could not be committed
    """

    previous = {}

    def unit(session: Session) -> BalanceRecomputation:
        customer = session.execute(
            select(Customer)
            .where(Customer.id == customer_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if customer is None:
            raise NotFound(f"Customer {customer_id} not found")

        cached = quantize(customer.balance)
        previous["balance"] = cached
        recomputed = _history_balance(session, customer_id)
        drift = recomputed - cached
        if abs(drift) <= BALANCE_TOLERANCE:
            return BalanceRecomputation(customer_id=customer_id, drift=ZERO, new_balance=cached)

        customer.balance = recomputed
        return BalanceRecomputation(customer_id=customer_id, drift=drift, new_balance=recomputed)

    result = run_in_transaction(db, unit, description=f"recompute_balance(customer={customer_id})")
    if result.drift != 0:
        logger.warning(
            f"Recalculated balance for customer {customer_id}. "
            f"Old: {previous['balance']}, New: {result.new_balance}"
        )
        AuditLog.log_balance_repaired(customer_id, previous["balance"], result.new_balance, result.drift)
    return result


def recompute_all_balances(db: Session) -> Dict[int, Decimal]:
    """Recompute every customer and commit all repairs in one batch.

    Returns:
        {customer_id: drift} for repaired customers only
    """

    repairs: Dict[int, tuple] = {}

    def unit(session: Session) -> Dict[int, Decimal]:
        repairs.clear()
        history = _history_balances(session)
        customers = session.execute(
            select(Customer).execution_options(populate_existing=True)
        ).scalars().all()

        adjustments: Dict[int, Decimal] = {}
        for customer in customers:
            cached = quantize(customer.balance)
            recomputed = history.get(customer.id, ZERO)
            drift = recomputed - cached
            if abs(drift) > BALANCE_TOLERANCE:
                adjustments[customer.id] = drift
                repairs[customer.id] = (cached, recomputed)
                customer.balance = recomputed
        return adjustments

    adjustments = run_in_transaction(db, unit, description="recompute_all_balances")
    if adjustments:
        logger.warning(f"Recalculated balances for {len(adjustments)} customers")
        for customer_id, drift in adjustments.items():
            old_balance, new_balance = repairs[customer_id]
            AuditLog.log_balance_repaired(customer_id, old_balance, new_balance, drift)
    else:
        logger.info("All customer balances match their transaction history")
    return adjustments


def find_balance_discrepancies(db: Session) -> List[dict]:
    """Read-only report of customers whose cached balance drifts from history."""
    history = _history_balances(db)
    report = []
    for customer in db.execute(select(Customer).order_by(Customer.id)).scalars():
        cached = quantize(customer.balance)
        recomputed = history.get(customer.id, ZERO)
        if abs(recomputed - cached) > BALANCE_TOLERANCE:
            report.append({
                "customer_id": customer.id,
                "customer_name": customer.name,
                "cached_balance": cached,
                "history_balance": recomputed,
                "drift": recomputed - cached,
            })
    return report
