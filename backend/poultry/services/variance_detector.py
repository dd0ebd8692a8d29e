"""
Wastage analytics over daily reconciliations.

Detection only reports. Escalation is a separate, explicit call
(flag_for_investigation); nothing here changes a status on its own.
"""
import logging
import statistics
from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from poultry.core.audit import AuditLog
from poultry.core.numbers import quantize, to_decimal
from poultry.models.reconciliation import DailyReconciliation
from poultry.services.reconciliation_service import append_note

logger = logging.getLogger(__name__)

DEFAULT_MIN_OCCURRENCES = 3
PREDICTION_WINDOW_DAYS = 30


def find_wastage_anomalies(
    db: Session,
    window_days: int = 30,
    k_std_dev: float = 2.0,
    today: Optional[date] = None,
) -> List[DailyReconciliation]:
    """
    Reconciliations whose wastage percentage is strictly above
    mean + k * (population) standard deviation over the trailing window.

    The window runs from today - window_days to today inclusive and covers
    every status. Results are ordered by percentage, highest first.
    """
    today = today or date.today()
    since = today - timedelta(days=window_days)
    reconciliations = db.execute(
        select(DailyReconciliation).where(
            DailyReconciliation.reconciliation_date >= since,
            DailyReconciliation.reconciliation_date <= today,
        )
    ).scalars().all()
    if not reconciliations:
        return []

    percentages = [float(r.wastage_percentage) for r in reconciliations]
    mean = statistics.fmean(percentages)
    std_dev = statistics.pstdev(percentages, mu=mean)
    threshold = mean + float(k_std_dev) * std_dev

    anomalies = [r for r in reconciliations if float(r.wastage_percentage) > threshold]
    anomalies.sort(key=lambda r: r.wastage_percentage, reverse=True)

    if anomalies:
        logger.info(
            f"Found {len(anomalies)} wastage anomalies in {len(reconciliations)} reconciliations "
            f"(mean {mean:.2f}%, std {std_dev:.2f}, threshold {threshold:.2f}%)"
        )
    return anomalies


def find_consistent_variance_patterns(
    db: Session,
    threshold,
    day_range: int,
    min_occurrences: int = DEFAULT_MIN_OCCURRENCES,
    today: Optional[date] = None,
) -> Dict[int, List[DailyReconciliation]]:
    """Trucks with at least min_occurrences high-wastage days in the range, newest first."""
    today = today or date.today()
    since = today - timedelta(days=day_range)
    reconciliations = db.execute(
        select(DailyReconciliation)
        .where(
            DailyReconciliation.reconciliation_date >= since,
            DailyReconciliation.reconciliation_date <= today,
            DailyReconciliation.wastage_percentage >= to_decimal(threshold),
        )
        .order_by(DailyReconciliation.reconciliation_date.desc(), DailyReconciliation.id.desc())
    ).scalars().all()

    by_truck: Dict[int, List[DailyReconciliation]] = defaultdict(list)
    for reconciliation in reconciliations:
        by_truck[reconciliation.truck_id].append(reconciliation)

    return {truck_id: records for truck_id, records in by_truck.items() if len(records) >= min_occurrences}


def flag_for_investigation(db: Session, reconciliation_id: int, reason: str) -> bool:
    """
    Escalate a reconciliation to UNDER_INVESTIGATION from any status.

    Returns:
        False when the reconciliation does not exist
    """
    reconciliation = db.get(DailyReconciliation, reconciliation_id)
    if reconciliation is None:
        logger.warning(f"Reconciliation {reconciliation_id} not found for investigation flagging")
        return False

    old_status = reconciliation.status
    reconciliation.status = "UNDER_INVESTIGATION"
    reconciliation.notes = append_note(reconciliation.notes, f"Investigation: {reason}")
    db.commit()

    logger.warning(f"Flagged reconciliation {reconciliation_id} for investigation: {reason}")
    AuditLog.log_status_change(reconciliation_id, old_status, "UNDER_INVESTIGATION", reason=reason)
    return True


def truck_wastage_metrics(db: Session, start: date, end: date) -> Dict[int, dict]:
    """Average wastage percentage and reconciliation count per truck, start..end inclusive."""
    rows = db.execute(
        select(
            DailyReconciliation.truck_id,
            func.avg(DailyReconciliation.wastage_percentage),
            func.count(DailyReconciliation.id),
        )
        .where(
            DailyReconciliation.reconciliation_date >= start,
            DailyReconciliation.reconciliation_date <= end,
        )
        .group_by(DailyReconciliation.truck_id)
    ).all()
    return {
        truck_id: {"average_wastage_percentage": quantize(average), "reconciliation_count": count}
        for truck_id, average, count in rows
    }


def predict_expected_wastage(db: Session, truck_id: int, load_weight, today: Optional[date] = None) -> Decimal:
    """Expected wastage weight for a load, from the truck's trailing 30-day average percentage."""
    today = today or date.today()
    since = today - timedelta(days=PREDICTION_WINDOW_DAYS)
    average = db.execute(
        select(func.avg(DailyReconciliation.wastage_percentage)).where(
            DailyReconciliation.truck_id == truck_id,
            DailyReconciliation.reconciliation_date >= since,
            DailyReconciliation.reconciliation_date <= today,
        )
    ).scalar()
    if average is None:
        return Decimal("0.00")
    return quantize(to_decimal(load_weight) * to_decimal(average) / Decimal("100"))
