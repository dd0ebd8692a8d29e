"""Ledger drafts and committed records."""
from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from decimal import Decimal


class InvoiceDraft(BaseModel):
    """
    Invoice as prepared by the selling terminal.

    Weights and amounts are computed by the caller (see
    ledger_service.calculate_invoice_amounts); posting never recomputes them.
    """
    customer_id: int
    truck_id: int
    gross_weight: Decimal
    cages_weight: Decimal
    cages_count: int = 0
    net_weight: Decimal
    unit_price: Decimal
    discount_percentage: Decimal = Decimal("0")
    total_amount: Decimal
    final_amount: Decimal
    invoice_number: Optional[str] = None
    invoice_date: Optional[datetime] = None


class PaymentDraft(BaseModel):
    customer_id: int
    amount: Decimal
    invoice_id: Optional[int] = None
    payment_method: str = "CASH"
    notes: Optional[str] = None
    payment_date: Optional[datetime] = None


class InvoiceRecord(BaseModel):
    id: int
    invoice_number: str
    customer_id: int
    truck_id: int
    invoice_date: datetime
    gross_weight: Decimal
    cages_weight: Decimal
    cages_count: int
    net_weight: Decimal
    unit_price: Decimal
    total_amount: Decimal
    discount_percentage: Decimal
    final_amount: Decimal
    previous_balance: Decimal
    current_balance: Decimal

    class Config:
        from_attributes = True


class PaymentRecord(BaseModel):
    id: int
    customer_id: int
    invoice_id: Optional[int] = None
    amount: Decimal
    payment_method: str
    payment_date: datetime
    notes: Optional[str] = None

    class Config:
        from_attributes = True


class PaymentResult(BaseModel):
    """Committed payment plus the balance movement it caused."""
    payment: PaymentRecord
    previous_balance: Decimal
    new_balance: Decimal
    # Amount above the balance at posting time; the clamp discards it
    overpayment: Decimal = Decimal("0")

    @property
    def is_overpayment(self) -> bool:
        return self.overpayment > 0
