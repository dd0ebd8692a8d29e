"""Daily truck reconciliations and wastage analytics."""
from datetime import date
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from poultry.api.deps import get_db
from poultry.core.config import settings
from poultry.core.exceptions import BusinessError, LedgerError
from poultry.schemas.reconciliation import (
    InvestigationRequest,
    ReconciliationCreate,
    ReconciliationRecord,
    WeightCorrection,
)
from poultry.services import reconciliation_service, variance_detector

router = APIRouter()


@router.post("", response_model=ReconciliationRecord, status_code=201)
def create_reconciliation(data: ReconciliationCreate, db: Session = Depends(get_db)):
    try:
        return reconciliation_service.create_reconciliation(
            db,
            data.truck_id,
            data.reconciliation_date,
            data.load_weight,
            data.sold_weight,
            notes=data.notes,
        )
    except LedgerError as e:
        raise BusinessError.from_ledger_error(e, "Truck")


# Fixed paths are declared before /{reconciliation_id} routes


@router.get("/anomalies", response_model=List[ReconciliationRecord])
def wastage_anomalies(
    window_days: int = Query(settings.DEFAULT_ANOMALY_WINDOW_DAYS, ge=1),
    k: float = Query(settings.DEFAULT_ANOMALY_K, ge=0),
    db: Session = Depends(get_db),
):
    return variance_detector.find_wastage_anomalies(db, window_days=window_days, k_std_dev=k)


@router.get("/patterns", response_model=Dict[int, List[ReconciliationRecord]])
def variance_patterns(
    threshold: float = Query(settings.HIGH_WASTAGE_THRESHOLD, ge=0),
    day_range: int = Query(30, ge=1),
    db: Session = Depends(get_db),
):
    return variance_detector.find_consistent_variance_patterns(db, threshold, day_range)


@router.get("/metrics")
def truck_metrics(
    start: date = Query(...),
    end: date = Query(...),
    db: Session = Depends(get_db),
):
    return variance_detector.truck_wastage_metrics(db, start, end)


@router.get("/lookup", response_model=Optional[ReconciliationRecord])
def lookup_reconciliation(truck_id: int, on_date: date, db: Session = Depends(get_db)):
    return reconciliation_service.get_reconciliation(db, truck_id, on_date)


@router.post("/{reconciliation_id}/recalculate")
def recalculate(reconciliation_id: int, db: Session = Depends(get_db)):
    return {"recalculated": reconciliation_service.recalculate_reconciliation(db, reconciliation_id)}


@router.get("/{reconciliation_id}/integrity")
def integrity(reconciliation_id: int, db: Session = Depends(get_db)):
    return {"valid": reconciliation_service.validate_reconciliation_integrity(db, reconciliation_id)}


@router.post("/{reconciliation_id}/flag")
def flag(reconciliation_id: int, data: InvestigationRequest, db: Session = Depends(get_db)):
    return {"flagged": variance_detector.flag_for_investigation(db, reconciliation_id, data.reason)}


@router.post("/{reconciliation_id}/close")
def close(reconciliation_id: int, data: InvestigationRequest, db: Session = Depends(get_db)):
    return {"closed": reconciliation_service.close_investigation(db, reconciliation_id, data.reason)}


@router.patch("/{reconciliation_id}/weights", response_model=ReconciliationRecord)
def correct_weights(reconciliation_id: int, data: WeightCorrection, db: Session = Depends(get_db)):
    try:
        return reconciliation_service.correct_weights(
            db,
            reconciliation_id,
            load_weight=data.load_weight,
            sold_weight=data.sold_weight,
        )
    except LedgerError as e:
        raise BusinessError.from_ledger_error(e, "Reconciliation")
