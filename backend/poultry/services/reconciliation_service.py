"""
Daily truck reconciliation: load weight against sold weight.

wastage_weight = load - sold and wastage_percentage = wastage / load * 100
(0 for an empty load). One record per truck per day; the unique constraint
on (truck_id, reconciliation_date) settles races between terminals.

Status moves PENDING -> COMPLETED -> UNDER_INVESTIGATION -> COMPLETED.
Notes only ever grow.
"""
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from poultry.core.audit import AuditLog
from poultry.core.exceptions import AlreadyExists, InvalidArgument, NotFound
from poultry.core.numbers import TOLERANCE, quantize, to_decimal
from poultry.db.transactions import run_in_transaction
from poultry.models.reconciliation import RECONCILIATION_STATUSES, DailyReconciliation
from poultry.models.truck_load import TruckLoad
from poultry.services.registry import get_truck
from poultry.services.truck_load_service import get_truck_load_weight, get_truck_sold_weight

logger = logging.getLogger(__name__)

NOTES_MAX_LENGTH = 2000

STATUS_TRANSITIONS = {
    "PENDING": ("COMPLETED",),
    "COMPLETED": ("UNDER_INVESTIGATION",),
    "UNDER_INVESTIGATION": ("COMPLETED",),
}


def calculate_wastage(load_weight, sold_weight) -> Tuple[Decimal, Decimal]:
    """Return (wastage_weight, wastage_percentage), both to 2 places."""
    load = to_decimal(load_weight)
    sold = to_decimal(sold_weight)
    wastage = load - sold
    percentage = wastage / load * Decimal("100") if load > 0 else Decimal("0")
    return quantize(wastage), quantize(percentage)


def append_note(existing: Optional[str], note: str) -> str:
    note = (note or "").strip()
    if not note:
        return existing
    stamped = f"[{datetime.now():%Y-%m-%d %H:%M}] {note}"
    combined = f"{existing}\n{stamped}" if existing else stamped
    # Oldest lines give way when the column is full
    return combined[-NOTES_MAX_LENGTH:]


def _validate_weights(load: Decimal, sold: Decimal) -> None:
    if load < 0 or sold < 0:
        raise InvalidArgument("Weights cannot be negative")
    if sold > load:
        raise InvalidArgument(f"Sold weight {sold} exceeds load weight {load}")


def get_reconciliation(db: Session, truck_id: int, on_date: date) -> Optional[DailyReconciliation]:
    return db.execute(
        select(DailyReconciliation).where(
            DailyReconciliation.truck_id == truck_id,
            DailyReconciliation.reconciliation_date == on_date,
        )
    ).scalar_one_or_none()


def _add_reconciliation(
    session: Session,
    truck_id: int,
    on_date: date,
    load: Decimal,
    sold: Decimal,
    notes: Optional[str] = None,
) -> DailyReconciliation:
    _validate_weights(load, sold)
    if get_reconciliation(session, truck_id, on_date) is not None:
        raise AlreadyExists(f"Reconciliation already exists for truck {truck_id} on {on_date}")

    wastage, percentage = calculate_wastage(load, sold)
    reconciliation = DailyReconciliation(
        truck_id=truck_id,
        reconciliation_date=on_date,
        load_weight=load,
        sold_weight=sold,
        wastage_weight=wastage,
        wastage_percentage=percentage,
        status="COMPLETED",
        notes=append_note(None, notes) if notes else None,
    )
    session.add(reconciliation)
    try:
        session.flush()
    except IntegrityError as e:
        # Another terminal reconciled the same truck-day first
        raise AlreadyExists(f"Reconciliation already exists for truck {truck_id} on {on_date}") from e
    return reconciliation


def _log_created(reconciliation: DailyReconciliation) -> None:
    logger.info(
        f"Created reconciliation {reconciliation.id} for truck {reconciliation.truck_id} "
        f"on {reconciliation.reconciliation_date}: wastage {reconciliation.wastage_weight} kg "
        f"({reconciliation.wastage_percentage}%)"
    )
    AuditLog.log_reconciliation(
        "created",
        reconciliation.id,
        reconciliation.truck_id,
        changes={
            "load_weight": reconciliation.load_weight,
            "sold_weight": reconciliation.sold_weight,
            "wastage_percentage": reconciliation.wastage_percentage,
        },
    )


def create_reconciliation(
    db: Session,
    truck_id: int,
    on_date: date,
    load_weight,
    sold_weight,
    notes: Optional[str] = None,
) -> DailyReconciliation:
    """
    Close a truck's day.

    Raises:
        NotFound: Unknown truck
        InvalidArgument: Negative weights or sold > load
        AlreadyExists: The truck-day is already reconciled (left untouched)
    """
    get_truck(db, truck_id)
    load = quantize(load_weight)
    sold = quantize(sold_weight)
    _validate_weights(load, sold)

    reconciliation = run_in_transaction(
        db,
        lambda session: _add_reconciliation(session, truck_id, on_date, load, sold, notes),
        description=f"create_reconciliation(truck={truck_id}, date={on_date})",
    )
    db.refresh(reconciliation)
    _log_created(reconciliation)
    return reconciliation


def _complete_day_loads(session: Session, truck_id: int, on_date: date) -> None:
    session.execute(
        update(TruckLoad)
        .where(TruckLoad.truck_id == truck_id, TruckLoad.load_date == on_date)
        .values(status="COMPLETED")
    )


def reconcile_truck_day(db: Session, truck_id: int, on_date: date) -> DailyReconciliation:
    """
    Reconcile from the day's recorded loads and invoices and complete the loads.

    The record and the load status change commit together or not at all.
    """
    get_truck(db, truck_id)

    def unit(session: Session) -> DailyReconciliation:
        load = get_truck_load_weight(session, truck_id, on_date)
        sold = get_truck_sold_weight(session, truck_id, on_date)
        reconciliation = _add_reconciliation(session, truck_id, on_date, load, sold)
        _complete_day_loads(session, truck_id, on_date)
        return reconciliation

    reconciliation = run_in_transaction(
        db, unit, description=f"reconcile_truck_day(truck={truck_id}, date={on_date})"
    )
    db.refresh(reconciliation)
    _log_created(reconciliation)
    return reconciliation


def correct_weights(
    db: Session,
    reconciliation_id: int,
    load_weight=None,
    sold_weight=None,
) -> DailyReconciliation:
    """
    Manually correct the raw weights.

    Derived fields keep their old values until recalculate_reconciliation
    runs, so validate_reconciliation_integrity reports the record as stale
    in between.
    """
    reconciliation = db.get(DailyReconciliation, reconciliation_id)
    if reconciliation is None:
        raise NotFound(f"Reconciliation {reconciliation_id} not found")
    if load_weight is None and sold_weight is None:
        raise InvalidArgument("Nothing to correct")

    changes = {}
    if load_weight is not None:
        load = quantize(load_weight)
        if load < 0:
            raise InvalidArgument("Weights cannot be negative")
        changes["load_weight"] = {"old": reconciliation.load_weight, "new": load}
        reconciliation.load_weight = load
    if sold_weight is not None:
        sold = quantize(sold_weight)
        if sold < 0:
            raise InvalidArgument("Weights cannot be negative")
        changes["sold_weight"] = {"old": reconciliation.sold_weight, "new": sold}
        reconciliation.sold_weight = sold

    reconciliation.notes = append_note(
        reconciliation.notes,
        f"Weights corrected: load {reconciliation.load_weight}, sold {reconciliation.sold_weight}",
    )
    db.commit()
    db.refresh(reconciliation)

    logger.info(f"Corrected weights on reconciliation {reconciliation_id}")
    AuditLog.log_reconciliation("weights_corrected", reconciliation.id, reconciliation.truck_id, changes=changes)
    return reconciliation


def recalculate_reconciliation(db: Session, reconciliation_id: int) -> bool:
    """Re-derive wastage from the stored weights. False when the record is missing."""
    reconciliation = db.get(DailyReconciliation, reconciliation_id)
    if reconciliation is None:
        logger.warning(f"Reconciliation {reconciliation_id} not found for recalculation")
        return False

    old_wastage = reconciliation.wastage_weight
    old_percentage = reconciliation.wastage_percentage
    wastage, percentage = calculate_wastage(reconciliation.load_weight, reconciliation.sold_weight)
    reconciliation.wastage_weight = wastage
    reconciliation.wastage_percentage = percentage
    db.commit()

    logger.info(f"Recalculated reconciliation {reconciliation_id}: {old_percentage}% -> {percentage}%")
    AuditLog.log_reconciliation(
        "recalculated",
        reconciliation_id,
        reconciliation.truck_id,
        changes={
            "wastage_weight": {"old": old_wastage, "new": wastage},
            "wastage_percentage": {"old": old_percentage, "new": percentage},
        },
    )
    return True


def validate_reconciliation_integrity(db: Session, reconciliation_id: int) -> bool:
    reconciliation = db.get(DailyReconciliation, reconciliation_id)
    if reconciliation is None:
        return False

    load = to_decimal(reconciliation.load_weight)
    sold = to_decimal(reconciliation.sold_weight)
    wastage = to_decimal(reconciliation.wastage_weight)
    percentage = to_decimal(reconciliation.wastage_percentage)

    if sold < 0 or load < sold or wastage < 0:
        return False
    if abs(wastage - (load - sold)) >= TOLERANCE:
        return False
    if load > 0:
        expected = wastage / load * Decimal("100")
        if abs(percentage - expected) >= TOLERANCE:
            return False
    elif percentage != 0:
        return False
    return True


def update_status(
    db: Session,
    reconciliation_id: int,
    new_status: str,
    note: Optional[str] = None,
) -> DailyReconciliation:
    """
    Move a reconciliation along its state machine, appending note if given.

    Raises:
        NotFound: Unknown reconciliation
        InvalidArgument: Unknown status or a transition the machine forbids
    """
    new_status = (new_status or "").strip().upper()
    if new_status not in RECONCILIATION_STATUSES:
        raise InvalidArgument(f"Unknown reconciliation status {new_status!r}")

    reconciliation = db.get(DailyReconciliation, reconciliation_id)
    if reconciliation is None:
        raise NotFound(f"Reconciliation {reconciliation_id} not found")

    old_status = reconciliation.status
    if new_status not in STATUS_TRANSITIONS.get(old_status, ()):
        raise InvalidArgument(f"Cannot move reconciliation {reconciliation_id} from {old_status} to {new_status}")

    reconciliation.status = new_status
    if note:
        reconciliation.notes = append_note(reconciliation.notes, note)
    db.commit()
    db.refresh(reconciliation)

    logger.info(f"Reconciliation {reconciliation_id}: {old_status} -> {new_status}")
    AuditLog.log_status_change(reconciliation_id, old_status, new_status, reason=note)
    return reconciliation


def close_investigation(db: Session, reconciliation_id: int, resolution: str) -> bool:
    """UNDER_INVESTIGATION -> COMPLETED. False when missing or not under investigation."""
    reconciliation = db.get(DailyReconciliation, reconciliation_id)
    if reconciliation is None or reconciliation.status != "UNDER_INVESTIGATION":
        return False
    update_status(db, reconciliation_id, "COMPLETED", note=f"Investigation closed: {resolution}")
    return True
