from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from decimal import Decimal


class CustomerCreate(BaseModel):
    name: str
    phone: Optional[str] = None
    address: Optional[str] = None


class CustomerResponse(BaseModel):
    id: int
    name: str
    phone: Optional[str] = None
    address: Optional[str] = None
    balance: Decimal
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BalanceRecomputation(BaseModel):
    """Auditor result. drift = recomputed - cached; zero when nothing was written."""
    customer_id: int
    drift: Decimal
    new_balance: Decimal
