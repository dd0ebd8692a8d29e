"""Invoice number allocation: format, per-date sequences, uniqueness under load."""
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime

import pytest
from sqlalchemy.exc import OperationalError

from poultry.core.exceptions import AllocationExhausted
from poultry.services import ledger_service, sequence_allocator
from poultry.services.sequence_allocator import allocate_invoice_number, parse_sequence

DAY = date(2025, 5, 28)


@pytest.mark.parametrize("use_counter", [True, False])
def test_first_number_of_the_day(db, use_counter):
    assert allocate_invoice_number(db, DAY, use_counter=use_counter) == "202505280001"


def test_counter_hands_out_consecutive_numbers(db):
    numbers = [allocate_invoice_number(db, DAY, use_counter=True) for _ in range(3)]
    assert numbers == ["202505280001", "202505280002", "202505280003"]


def test_sequences_are_independent_per_date(db):
    allocate_invoice_number(db, DAY)
    allocate_invoice_number(db, DAY)
    assert allocate_invoice_number(db, date(2025, 5, 29)) == "202505290001"


def test_counter_seeds_from_existing_invoices(db, customer, truck, make_invoice_draft):
    draft = make_invoice_draft(
        customer.id, truck.id, invoice_number="202505280007", invoice_date=datetime(2025, 5, 28, 9, 0)
    )
    ledger_service.post_invoice(db, draft)

    assert allocate_invoice_number(db, DAY, use_counter=True) == "202505280008"


def test_scan_skips_past_the_highest_number(db, customer, truck, make_invoice_draft):
    draft = make_invoice_draft(
        customer.id, truck.id, invoice_number="202505280005", invoice_date=datetime(2025, 5, 28, 9, 0)
    )
    ledger_service.post_invoice(db, draft)

    assert allocate_invoice_number(db, DAY, use_counter=False) == "202505280006"


def test_parse_sequence_ignores_collision_suffix():
    assert parse_sequence("202505280012-4821", "20250528") == 12
    assert parse_sequence("INV-20250528101500", "20250528") is None
    assert parse_sequence(None, "20250528") is None


def test_scan_exhaustion_raises(db, monkeypatch):
    monkeypatch.setattr(sequence_allocator, "invoice_number_exists", lambda session, number: True)

    with pytest.raises(AllocationExhausted):
        allocate_invoice_number(db, DAY, use_counter=False)


def test_storage_failure_falls_back_to_timestamp_number(db, monkeypatch):
    def broken_scan(session, prefix):
        raise OperationalError("SELECT invoice_number", {}, Exception("disk I/O error"))

    monkeypatch.setattr(sequence_allocator, "_allocate_by_scan", broken_scan)

    number = allocate_invoice_number(db, DAY, use_counter=False)
    assert number.startswith("INV-")
    assert len(number) == len("INV-") + 14


def test_concurrent_allocations_are_unique(session_factory):
    def allocate(_):
        session = session_factory()
        try:
            return allocate_invoice_number(session, DAY, use_counter=True)
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=16) as pool:
        numbers = list(pool.map(allocate, range(1000)))

    assert len(set(numbers)) == 1000
    assert all(number.startswith("20250528") for number in numbers)
