"""
Truck loads: the weight a truck leaves with, and the sold weight it came back
without. Both feed the daily reconciliation.
"""
import logging
from datetime import date, datetime, time, timedelta
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from poultry.core.exceptions import InvalidArgument, NotFound
from poultry.core.numbers import quantize, to_decimal
from poultry.models.invoice import Invoice
from poultry.models.truck_load import LOAD_STATUSES, TruckLoad
from poultry.schemas.truck import TruckLoadDraft
from poultry.services.registry import get_truck

logger = logging.getLogger(__name__)

MIN_LOAD_WEIGHT = Decimal("0.01")
MAX_LOAD_WEIGHT = Decimal("10000")
MIN_CAGES = 1
MAX_CAGES = 1000
MIN_WEIGHT_PER_CAGE = Decimal("5")
MAX_WEIGHT_PER_CAGE = Decimal("100")

OPEN_LOAD_STATUSES = ("LOADED", "IN_TRANSIT")

# Allowed forward moves; a completed load is final
LOAD_TRANSITIONS = {
    "LOADED": ("IN_TRANSIT", "COMPLETED"),
    "IN_TRANSIT": ("COMPLETED",),
    "COMPLETED": (),
}


def _day_bounds(on_date: date):
    start = datetime.combine(on_date, time.min)
    return start, start + timedelta(days=1)


def _validate_load_draft(draft: TruckLoadDraft, load_date: date) -> Decimal:
    weight = to_decimal(draft.total_weight)
    if weight < MIN_LOAD_WEIGHT or weight > MAX_LOAD_WEIGHT:
        raise InvalidArgument(f"Load weight must be between {MIN_LOAD_WEIGHT} and {MAX_LOAD_WEIGHT} kg")
    if draft.cages_count < MIN_CAGES or draft.cages_count > MAX_CAGES:
        raise InvalidArgument(f"Cages count must be between {MIN_CAGES} and {MAX_CAGES}")

    per_cage = weight / draft.cages_count
    if per_cage < MIN_WEIGHT_PER_CAGE or per_cage > MAX_WEIGHT_PER_CAGE:
        raise InvalidArgument(
            f"Average weight per cage ({quantize(per_cage)} kg) is outside the reasonable range "
            f"({MIN_WEIGHT_PER_CAGE}-{MAX_WEIGHT_PER_CAGE} kg)"
        )
    if load_date > date.today():
        raise InvalidArgument("Load date cannot be in the future")
    return quantize(weight)


def create_truck_load(db: Session, draft: TruckLoadDraft) -> TruckLoad:
    """
    Record a truck leaving with a load.

    Raises:
        NotFound: Unknown truck
        InvalidArgument: Inactive truck, truck already on an open load, or
            weights outside the accepted ranges
    """
    truck = get_truck(db, draft.truck_id)
    if not truck.is_active:
        raise InvalidArgument(f"Truck {truck.truck_number} is not active")

    load_date = draft.load_date or date.today()
    weight = _validate_load_draft(draft, load_date)

    open_load = db.execute(
        select(TruckLoad.id)
        .where(TruckLoad.truck_id == truck.id, TruckLoad.status.in_(OPEN_LOAD_STATUSES))
        .limit(1)
    ).first()
    if open_load is not None:
        raise InvalidArgument(f"Truck {truck.truck_number} already has an open load")

    load = TruckLoad(
        truck_id=truck.id,
        load_date=load_date,
        total_weight=weight,
        cages_count=draft.cages_count,
        status="LOADED",
        notes=(draft.notes or "").strip()[:500] or None,
    )
    db.add(load)
    db.commit()
    db.refresh(load)
    logger.info(f"Created truck load {load.id} for truck {truck.id}: {weight} kg in {load.cages_count} cages")
    return load


def update_load_status(db: Session, load_id: int, new_status: str) -> TruckLoad:
    new_status = (new_status or "").strip().upper()
    if new_status not in LOAD_STATUSES:
        raise InvalidArgument(f"Unknown load status {new_status!r}")

    load = db.get(TruckLoad, load_id)
    if load is None:
        raise NotFound(f"Truck load {load_id} not found")
    if new_status not in LOAD_TRANSITIONS[load.status]:
        raise InvalidArgument(f"Cannot move load {load_id} from {load.status} to {new_status}")

    old_status = load.status
    load.status = new_status
    db.commit()
    db.refresh(load)
    logger.info(f"Truck load {load_id}: {old_status} -> {new_status}")
    return load


def get_truck_load_weight(db: Session, truck_id: int, on_date: date) -> Decimal:
    """Total weight loaded on the truck that day."""
    total = db.execute(
        select(func.coalesce(func.sum(TruckLoad.total_weight), 0))
        .where(TruckLoad.truck_id == truck_id, TruckLoad.load_date == on_date)
    ).scalar_one()
    return quantize(total)


def get_truck_sold_weight(db: Session, truck_id: int, on_date: date) -> Decimal:
    """Net weight invoiced from the truck that day."""
    start, end = _day_bounds(on_date)
    total = db.execute(
        select(func.coalesce(func.sum(Invoice.net_weight), 0))
        .where(
            Invoice.truck_id == truck_id,
            Invoice.invoice_date >= start,
            Invoice.invoice_date < end,
        )
    ).scalar_one()
    return quantize(total)
