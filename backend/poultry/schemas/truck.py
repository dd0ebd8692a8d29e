from pydantic import BaseModel
from typing import Optional
from datetime import date, datetime
from decimal import Decimal


class TruckCreate(BaseModel):
    truck_number: str
    driver_name: str


class TruckResponse(BaseModel):
    id: int
    truck_number: str
    driver_name: str
    is_active: bool

    class Config:
        from_attributes = True


class TruckLoadDraft(BaseModel):
    truck_id: int
    total_weight: Decimal
    cages_count: int
    load_date: Optional[date] = None
    notes: Optional[str] = None


class TruckLoadRecord(BaseModel):
    id: int
    truck_id: int
    load_date: date
    total_weight: Decimal
    cages_count: int
    status: str
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
