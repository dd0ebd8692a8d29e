"""
Ledger postings: invoices (debit) and payments (credit).

Each posting is one atomic unit over the customer's cached balance and the new
record. The customer row is read FOR UPDATE (a real row lock on PostgreSQL)
and carries a version column, so two postings that read the same balance can
never both commit; the loser rolls back and re-runs from a fresh read.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from poultry.core.audit import AuditLog
from poultry.core.exceptions import InvalidArgument, NotFound
from poultry.core.numbers import TOLERANCE, quantize, to_decimal
from poultry.db.transactions import RETRYABLE_ERRORS, run_in_transaction
from poultry.models.customer import Customer
from poultry.models.invoice import Invoice
from poultry.models.payment import PAYMENT_METHODS, Payment
from poultry.schemas.records import InvoiceDraft, PaymentDraft, PaymentRecord, PaymentResult
from poultry.services.registry import get_customer, get_truck
from poultry.services.sequence_allocator import allocate_invoice_number, invoice_number_exists

logger = logging.getLogger(__name__)


def calculate_invoice_amounts(
    gross_weight,
    cages_weight,
    unit_price,
    discount_percentage=0,
) -> dict:
    """Derive invoice amounts for a terminal building a draft.

    Args:
        gross_weight: Weight on the scale including cages
        cages_weight: Tare
        unit_price: Price per weight unit
        discount_percentage: 0-100

    Returns:
        dict with net_weight, total_amount, discount_amount, final_amount
        (all non-negative, 2 decimal places)
    """
    gross = to_decimal(gross_weight)
    tare = to_decimal(cages_weight)
    price = to_decimal(unit_price)
    discount = to_decimal(discount_percentage)

    net = max(Decimal("0"), gross - tare)
    total = max(Decimal("0"), net * price)
    discount_amount = total * discount / Decimal("100")
    final = max(Decimal("0"), total - discount_amount)

    return {
        "net_weight": quantize(net),
        "total_amount": quantize(total),
        "discount_amount": quantize(discount_amount),
        "final_amount": quantize(final),
    }


def local_timestamp(value: Optional[datetime] = None) -> datetime:
    """Naive local wall-clock time; aware values are converted first."""
    if value is None:
        return datetime.now()
    if value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


def _validate_invoice_draft(draft: InvoiceDraft) -> None:
    for field in ("gross_weight", "cages_weight", "net_weight", "unit_price", "total_amount", "final_amount"):
        if getattr(draft, field) < 0:
            raise InvalidArgument(f"{field} cannot be negative")
    if draft.cages_count < 0:
        raise InvalidArgument("cages_count cannot be negative")
    if not (Decimal("0") <= draft.discount_percentage <= Decimal("100")):
        raise InvalidArgument("discount_percentage must be between 0 and 100")
    if draft.cages_weight > draft.gross_weight:
        raise InvalidArgument("cages_weight cannot exceed gross_weight")
    if abs(draft.net_weight - (draft.gross_weight - draft.cages_weight)) >= TOLERANCE:
        raise InvalidArgument("net_weight must equal gross_weight - cages_weight")
    if draft.final_amount > draft.total_amount + TOLERANCE:
        raise InvalidArgument("final_amount cannot exceed total_amount")


def _lock_customer(db: Session, customer_id: int) -> Customer:
    customer = db.execute(
        select(Customer)
        .where(Customer.id == customer_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if customer is None:
        raise NotFound(f"Customer {customer_id} not found")
    return customer


def post_invoice(db: Session, draft: InvoiceDraft, timeout: Optional[float] = None) -> Invoice:
    """Post an invoice and raise the customer's balance by its final amount.

    Amounts must already be computed by the caller; they are validated, never
    recomputed. An invoice number is allocated when the draft has none.

    Raises:
        InvalidArgument: Draft failed validation (nothing written)
        NotFound: Customer or truck missing
        TransactionFailed: Rolled back (safe to retry)
    """
    _validate_invoice_draft(draft)
    get_truck(db, draft.truck_id)

    # Same local calendar day as the number prefix and reconcile_truck_day
    invoice_date = local_timestamp(draft.invoice_date)

    def unit(session: Session) -> Invoice:
        if draft.invoice_number:
            number = draft.invoice_number
            if invoice_number_exists(session, number):
                raise InvalidArgument(f"Invoice number {number} already exists")
        else:
            # Commits its own counter increment before the posting starts
            number = allocate_invoice_number(session, invoice_date)

        customer = _lock_customer(session, draft.customer_id)
        previous_balance = quantize(customer.balance)
        final_amount = quantize(draft.final_amount)

        invoice = Invoice(
            invoice_number=number,
            customer_id=customer.id,
            truck_id=draft.truck_id,
            invoice_date=invoice_date,
            gross_weight=quantize(draft.gross_weight),
            cages_weight=quantize(draft.cages_weight),
            cages_count=draft.cages_count,
            net_weight=quantize(draft.net_weight),
            unit_price=quantize(draft.unit_price),
            total_amount=quantize(draft.total_amount),
            discount_percentage=quantize(draft.discount_percentage),
            final_amount=final_amount,
            previous_balance=previous_balance,
            current_balance=previous_balance + final_amount,
        )
        session.add(invoice)
        customer.balance = invoice.current_balance
        return invoice

    invoice = run_in_transaction(
        db,
        unit,
        description=f"post_invoice(customer={draft.customer_id})",
        timeout=timeout,
        # A lost race on the invoice number re-allocates on the next attempt
        retry_on=RETRYABLE_ERRORS + (IntegrityError,),
    )
    db.refresh(invoice)

    logger.info(
        f"Posted invoice {invoice.invoice_number} for customer {invoice.customer_id}: "
        f"{invoice.final_amount} (balance {invoice.previous_balance} -> {invoice.current_balance})"
    )
    AuditLog.log_invoice_posted(
        invoice.id,
        invoice.invoice_number,
        invoice.customer_id,
        invoice.final_amount,
        invoice.previous_balance,
        invoice.current_balance,
    )
    return invoice


def post_payment(db: Session, draft: PaymentDraft, timeout: Optional[float] = None) -> PaymentResult:
    """Post a payment and lower the customer's balance, clamped at zero.

    A payment larger than the balance is accepted; the excess is reported on
    the result (overpayment) and logged, but not kept as credit.

    Raises:
        InvalidArgument: amount <= 0 or unknown payment method (nothing written)
        NotFound: Customer missing, or invoice missing / owned by another customer
        TransactionFailed: Rolled back (safe to retry)
    """
    amount = to_decimal(draft.amount)
    if amount <= 0:
        raise InvalidArgument("Payment amount must be greater than zero")
    amount = quantize(amount)
    if amount <= 0:
        raise InvalidArgument("Payment amount must be at least 0.01")
    method = (draft.payment_method or "CASH").strip().upper()
    if method not in PAYMENT_METHODS:
        raise InvalidArgument(f"Unknown payment method {draft.payment_method!r}")

    payment_date = local_timestamp(draft.payment_date)
    movement = {}

    def unit(session: Session) -> Payment:
        customer = _lock_customer(session, draft.customer_id)
        if draft.invoice_id is not None:
            invoice = session.get(Invoice, draft.invoice_id)
            if invoice is None or invoice.customer_id != customer.id:
                raise NotFound(f"Invoice {draft.invoice_id} not found for customer {customer.id}")

        previous_balance = quantize(customer.balance)
        excess = amount - previous_balance if amount > previous_balance else Decimal("0")

        payment = Payment(
            customer_id=customer.id,
            invoice_id=draft.invoice_id,
            amount=amount,
            payment_method=method,
            payment_date=payment_date,
            notes=draft.notes,
        )
        session.add(payment)
        customer.balance = max(Decimal("0"), previous_balance - amount)

        movement.update(
            previous_balance=previous_balance,
            new_balance=quantize(customer.balance),
            overpayment=quantize(excess),
        )
        return payment

    payment = run_in_transaction(
        db,
        unit,
        description=f"post_payment(customer={draft.customer_id})",
        timeout=timeout,
    )
    db.refresh(payment)

    if movement["overpayment"] > 0:
        logger.warning(
            f"Payment amount {amount} exceeds customer {payment.customer_id} debt "
            f"{movement['previous_balance']}. Processed as overpayment."
        )
        AuditLog.log_overpayment(
            payment.customer_id, amount, movement["previous_balance"], movement["overpayment"]
        )

    logger.info(
        f"Processed payment of {amount} for customer {payment.customer_id}. "
        f"New balance: {movement['new_balance']}"
    )
    AuditLog.log_payment_posted(
        payment.id,
        payment.customer_id,
        amount,
        movement["previous_balance"],
        movement["new_balance"],
        invoice_id=payment.invoice_id,
    )
    return PaymentResult(payment=PaymentRecord.model_validate(payment), **movement)


def get_customer_statement(db: Session, customer_id: int) -> dict:
    """Invoice and payment totals next to the cached balance for one customer."""
    customer = get_customer(db, customer_id)

    total_invoiced = db.execute(
        select(func.coalesce(func.sum(Invoice.final_amount), 0)).where(Invoice.customer_id == customer_id)
    ).scalar_one()
    total_paid = db.execute(
        select(func.coalesce(func.sum(Payment.amount), 0)).where(Payment.customer_id == customer_id)
    ).scalar_one()
    invoice_count = db.execute(
        select(func.count(Invoice.id)).where(Invoice.customer_id == customer_id)
    ).scalar_one()
    payment_count = db.execute(
        select(func.count(Payment.id)).where(Payment.customer_id == customer_id)
    ).scalar_one()

    total_invoiced = quantize(total_invoiced)
    total_paid = quantize(total_paid)
    return {
        "customer_id": customer.id,
        "customer_name": customer.name,
        "cached_balance": quantize(customer.balance),
        "total_invoiced": total_invoiced,
        "total_paid": total_paid,
        "history_balance": total_invoiced - total_paid,
        "invoice_count": invoice_count,
        "payment_count": payment_count,
    }
