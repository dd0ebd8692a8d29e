"""Trucks and their daily loads."""
from datetime import date
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from poultry.api.deps import get_db
from poultry.core.exceptions import BusinessError, LedgerError
from poultry.schemas.reconciliation import ReconciliationRecord
from poultry.schemas.truck import TruckCreate, TruckLoadDraft, TruckLoadRecord, TruckResponse
from poultry.services import reconciliation_service, registry, truck_load_service, variance_detector

router = APIRouter()


@router.post("", response_model=TruckResponse, status_code=201)
def create_truck(data: TruckCreate, db: Session = Depends(get_db)):
    try:
        return registry.create_truck(db, data.truck_number, data.driver_name)
    except LedgerError as e:
        raise BusinessError.from_ledger_error(e, "Truck")


@router.post("/loads", response_model=TruckLoadRecord, status_code=201)
def create_load(draft: TruckLoadDraft, db: Session = Depends(get_db)):
    try:
        return truck_load_service.create_truck_load(db, draft)
    except LedgerError as e:
        raise BusinessError.from_ledger_error(e, "Truck")


@router.patch("/loads/{load_id}", response_model=TruckLoadRecord)
def update_load_status(load_id: int, status: str = Query(...), db: Session = Depends(get_db)):
    try:
        return truck_load_service.update_load_status(db, load_id, status)
    except LedgerError as e:
        raise BusinessError.from_ledger_error(e, "Truck load")


@router.post("/{truck_id}/reconcile", response_model=ReconciliationRecord, status_code=201)
def reconcile_day(truck_id: int, on_date: Optional[date] = Query(None), db: Session = Depends(get_db)):
    """Close the truck's day from its recorded loads and invoices."""
    try:
        return reconciliation_service.reconcile_truck_day(db, truck_id, on_date or date.today())
    except LedgerError as e:
        raise BusinessError.from_ledger_error(e, "Truck")


@router.get("/{truck_id}/expected-wastage")
def expected_wastage(truck_id: int, load_weight: Decimal = Query(..., gt=0), db: Session = Depends(get_db)):
    return {
        "truck_id": truck_id,
        "load_weight": load_weight,
        "expected_wastage": variance_detector.predict_expected_wastage(db, truck_id, load_weight),
    }
