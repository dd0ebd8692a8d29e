"""
Invoice number allocation.

Numbers are YYYYMMDD followed by a 4-digit zero-padded sequence, unique per
date prefix. The primary path increments a per-date counter row in its own
short transaction. The scan path (read the largest number for the prefix,
increment, detect collisions and retry with a random suffix) is kept for
deployments that disable the counter, and as the fallback when the counter
cannot be used.
"""
import logging
import random
from datetime import date, datetime
from typing import Optional

from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from poultry.core.config import settings
from poultry.core.exceptions import AllocationExhausted
from poultry.models.invoice import Invoice
from poultry.models.invoice_sequence import InvoiceSequence

logger = logging.getLogger(__name__)

MAX_ALLOCATION_ATTEMPTS = 10
SEQUENCE_WIDTH = 4


def date_prefix(on_date: date | datetime | None = None) -> str:
    return (on_date or date.today()).strftime("%Y%m%d")


def format_invoice_number(prefix: str, sequence: int) -> str:
    return f"{prefix}{sequence:0{SEQUENCE_WIDTH}d}"


def parse_sequence(invoice_number: str | None, prefix: str) -> Optional[int]:
    """Sequence part of a prefixed number, ignoring any collision suffix."""
    if not invoice_number or not invoice_number.startswith(prefix):
        return None
    tail = invoice_number[len(prefix):len(prefix) + SEQUENCE_WIDTH]
    if len(tail) != SEQUENCE_WIDTH or not tail.isdigit():
        return None
    return int(tail)


def invoice_number_exists(db: Session, invoice_number: str) -> bool:
    return db.execute(
        select(Invoice.id).where(Invoice.invoice_number == invoice_number).limit(1)
    ).first() is not None


def _highest_sequence(db: Session, prefix: str) -> int:
    last_number = db.execute(
        select(Invoice.invoice_number)
        .where(Invoice.invoice_number.like(f"{prefix}%"))
        .order_by(Invoice.invoice_number.desc())
        .limit(1)
    ).scalar()
    return parse_sequence(last_number, prefix) or 0


def _fallback_number() -> str:
    return f"INV-{datetime.now():%Y%m%d%H%M%S}"


def _allocate_from_counter(db: Session, prefix: str) -> Optional[str]:
    """
    Increment the counter row for prefix and commit.

    Returns None when the counter keeps handing out numbers that already
    exist (invoices created through the scan path after the row was seeded).
    """
    for _ in range(MAX_ALLOCATION_ATTEMPTS):
        result = db.execute(
            update(InvoiceSequence)
            .where(InvoiceSequence.date_prefix == prefix)
            .values(last_value=InvoiceSequence.last_value + 1)
        )
        if result.rowcount == 0:
            seed = _highest_sequence(db, prefix)
            try:
                db.execute(insert(InvoiceSequence).values(date_prefix=prefix, last_value=seed + 1))
            except IntegrityError:
                # Another terminal seeded the row first; increment theirs.
                db.rollback()
                continue

        value = db.execute(
            select(InvoiceSequence.last_value).where(InvoiceSequence.date_prefix == prefix)
        ).scalar_one()
        candidate = format_invoice_number(prefix, value)
        taken = invoice_number_exists(db, candidate)
        db.commit()
        if not taken:
            return candidate
        logger.warning(f"Counter for {prefix} produced existing number {candidate}, advancing")
    return None


def _allocate_by_scan(db: Session, prefix: str) -> str:
    """Read-increment-check loop. Tolerates concurrent allocators by retrying."""
    for attempt in range(1, MAX_ALLOCATION_ATTEMPTS + 1):
        candidate = format_invoice_number(prefix, _highest_sequence(db, prefix) + 1)
        if not invoice_number_exists(db, candidate):
            return candidate

        # Lost a race with a concurrent allocator
        candidate = f"{candidate}-{random.randint(1000, 9999)}"
        if not invoice_number_exists(db, candidate):
            logger.info(f"Invoice number collision on attempt {attempt}, using {candidate}")
            return candidate

    raise AllocationExhausted(
        f"Unable to generate unique invoice number for {prefix} after {MAX_ALLOCATION_ATTEMPTS} attempts"
    )


def allocate_invoice_number(
    db: Session,
    on_date: date | datetime | None = None,
    use_counter: Optional[bool] = None,
) -> str:
    """Allocate a unique invoice number for on_date (default: today).

    The counter path commits the session. A storage failure while reading
    falls back to a timestamp number (INV-yyyyMMddHHmmss) instead of blocking
    the sale.

    Raises:
        AllocationExhausted: Scan path collided MAX_ALLOCATION_ATTEMPTS times
    """
    prefix = date_prefix(on_date)
    if use_counter is None:
        use_counter = settings.INVOICE_COUNTER_ENABLED

    if use_counter:
        try:
            number = _allocate_from_counter(db, prefix)
            if number:
                logger.debug(f"Allocated invoice number {number}")
                return number
        except SQLAlchemyError as e:
            db.rollback()
            logger.warning(f"Invoice counter unavailable for {prefix} ({type(e).__name__}), scanning instead")

    try:
        number = _allocate_by_scan(db, prefix)
    except SQLAlchemyError as e:
        db.rollback()
        number = _fallback_number()
        logger.error(f"Error generating invoice number for {prefix}: {e}")
        logger.warning(f"Using fallback invoice number: {number}")
        return number

    logger.debug(f"Allocated invoice number {number}")
    return number
