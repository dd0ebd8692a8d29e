"""Ledger: customers, invoice and payment postings, balance audits."""
from datetime import date
from decimal import Decimal
from typing import Dict, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from poultry.api.deps import get_db
from poultry.core.exceptions import BusinessError, LedgerError
from poultry.schemas.customer import BalanceRecomputation, CustomerCreate, CustomerResponse
from poultry.schemas.records import InvoiceDraft, InvoiceRecord, PaymentDraft, PaymentResult
from poultry.services import balance_auditor, ledger_service, registry
from poultry.services.sequence_allocator import allocate_invoice_number

router = APIRouter()


@router.post("/customers", response_model=CustomerResponse, status_code=201)
def create_customer(data: CustomerCreate, db: Session = Depends(get_db)):
    try:
        return registry.create_customer(db, data.name, phone=data.phone, address=data.address)
    except LedgerError as e:
        raise BusinessError.from_ledger_error(e, "Customer")


@router.get("/customers/{customer_id}/statement")
def customer_statement(customer_id: int, db: Session = Depends(get_db)):
    """Cached balance next to invoice and payment totals."""
    try:
        return ledger_service.get_customer_statement(db, customer_id)
    except LedgerError as e:
        raise BusinessError.from_ledger_error(e, "Customer")


@router.post("/invoices", response_model=InvoiceRecord, status_code=201)
def post_invoice(draft: InvoiceDraft, db: Session = Depends(get_db)):
    try:
        return ledger_service.post_invoice(db, draft)
    except LedgerError as e:
        raise BusinessError.from_ledger_error(e, "Customer or truck")


@router.post("/payments", response_model=PaymentResult, status_code=201)
def post_payment(draft: PaymentDraft, db: Session = Depends(get_db)):
    """Overpayment is not an error; see the overpayment field on the result."""
    try:
        return ledger_service.post_payment(db, draft)
    except LedgerError as e:
        raise BusinessError.from_ledger_error(e, "Customer or invoice")


@router.post("/invoice-numbers")
def next_invoice_number(on_date: Optional[date] = Query(None), db: Session = Depends(get_db)):
    try:
        return {"invoice_number": allocate_invoice_number(db, on_date)}
    except LedgerError as e:
        raise BusinessError.from_ledger_error(e, "Invoice number")


@router.post("/customers/{customer_id}/recompute", response_model=BalanceRecomputation)
def recompute_balance(customer_id: int, db: Session = Depends(get_db)):
    try:
        return balance_auditor.recompute_balance(db, customer_id)
    except LedgerError as e:
        raise BusinessError.from_ledger_error(e, "Customer")


@router.post("/recompute-all", response_model=Dict[int, Decimal])
def recompute_all_balances(db: Session = Depends(get_db)):
    try:
        return balance_auditor.recompute_all_balances(db)
    except LedgerError as e:
        raise BusinessError.from_ledger_error(e)


@router.get("/discrepancies")
def balance_discrepancies(db: Session = Depends(get_db)):
    """Read-only drift report; nothing is repaired."""
    return balance_auditor.find_balance_discrepancies(db)
