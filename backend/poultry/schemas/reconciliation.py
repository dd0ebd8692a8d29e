from pydantic import BaseModel
from typing import Optional
from datetime import date, datetime
from decimal import Decimal


class ReconciliationCreate(BaseModel):
    truck_id: int
    reconciliation_date: date
    load_weight: Decimal
    sold_weight: Decimal
    notes: Optional[str] = None


class ReconciliationRecord(BaseModel):
    id: int
    truck_id: int
    reconciliation_date: date
    load_weight: Decimal
    sold_weight: Decimal
    wastage_weight: Decimal
    wastage_percentage: Decimal
    status: str
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class InvestigationRequest(BaseModel):
    reason: str


class WeightCorrection(BaseModel):
    load_weight: Optional[Decimal] = None
    sold_weight: Optional[Decimal] = None
