"""Daily reconciliation: wastage math, uniqueness, integrity, status machine."""
import time as time_module
from datetime import date, datetime, time, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from poultry.core.config import settings
from poultry.core.exceptions import AlreadyExists, InvalidArgument, NotFound, TransactionFailed
from poultry.models.reconciliation import DailyReconciliation
from poultry.models.truck_load import TruckLoad
from poultry.schemas.truck import TruckLoadDraft
from poultry.services import reconciliation_service as recon
from poultry.services.ledger_service import post_invoice
from poultry.services.truck_load_service import create_truck_load

DAY = date(2025, 5, 28)


def test_calculate_wastage():
    assert recon.calculate_wastage(Decimal("1000"), Decimal("950")) == (Decimal("50.00"), Decimal("5.00"))
    assert recon.calculate_wastage(0, 0) == (Decimal("0.00"), Decimal("0.00"))
    assert recon.calculate_wastage("300", "200") == (Decimal("100.00"), Decimal("33.33"))


def test_create_reconciliation(db, truck):
    record = recon.create_reconciliation(db, truck.id, DAY, Decimal("1000"), Decimal("950"), notes="Evening count")

    assert record.wastage_weight == Decimal("50.00")
    assert record.wastage_percentage == Decimal("5.00")
    assert record.status == "COMPLETED"
    assert "Evening count" in record.notes
    assert recon.get_reconciliation(db, truck.id, DAY).id == record.id


def test_empty_load_has_zero_percentage(db, truck):
    record = recon.create_reconciliation(db, truck.id, DAY, 0, 0)

    assert record.wastage_percentage == Decimal("0.00")
    assert recon.validate_reconciliation_integrity(db, record.id)


def test_duplicate_truck_day_leaves_first_record_untouched(db, truck):
    first = recon.create_reconciliation(db, truck.id, DAY, Decimal("1000"), Decimal("950"))

    with pytest.raises(AlreadyExists):
        recon.create_reconciliation(db, truck.id, DAY, Decimal("500"), Decimal("100"))

    db.expire_all()
    assert db.execute(select(func.count(DailyReconciliation.id))).scalar_one() == 1
    assert db.get(DailyReconciliation, first.id).load_weight == Decimal("1000.00")


@pytest.mark.parametrize("load, sold", [("-1", "0"), ("100", "-5"), ("100", "100.01")])
def test_invalid_weights_are_rejected(db, truck, load, sold):
    with pytest.raises(InvalidArgument):
        recon.create_reconciliation(db, truck.id, DAY, Decimal(load), Decimal(sold))


def test_unknown_truck(db):
    with pytest.raises(NotFound):
        recon.create_reconciliation(db, 77, DAY, Decimal("10"), Decimal("5"))


def test_corrected_weights_fail_integrity_until_recalculated(db, truck):
    record = recon.create_reconciliation(db, truck.id, DAY, Decimal("1000"), Decimal("950"))
    assert recon.validate_reconciliation_integrity(db, record.id)

    corrected = recon.correct_weights(db, record.id, sold_weight=Decimal("900"))
    assert corrected.wastage_weight == Decimal("50.00")
    assert not recon.validate_reconciliation_integrity(db, record.id)

    assert recon.recalculate_reconciliation(db, record.id)
    db.refresh(record)
    assert record.wastage_weight == Decimal("100.00")
    assert record.wastage_percentage == Decimal("10.00")
    assert recon.validate_reconciliation_integrity(db, record.id)


def test_sold_above_load_after_correction_is_invalid(db, truck):
    record = recon.create_reconciliation(db, truck.id, DAY, Decimal("500"), Decimal("400"))
    recon.correct_weights(db, record.id, sold_weight=Decimal("600"))
    recon.recalculate_reconciliation(db, record.id)

    assert not recon.validate_reconciliation_integrity(db, record.id)


def test_missing_record_returns_false(db):
    assert recon.recalculate_reconciliation(db, 999) is False
    assert recon.validate_reconciliation_integrity(db, 999) is False
    assert recon.close_investigation(db, 999, "n/a") is False


def test_status_machine(db, truck):
    record = recon.create_reconciliation(db, truck.id, DAY, Decimal("1000"), Decimal("900"), notes="first")

    with pytest.raises(InvalidArgument):
        recon.update_status(db, record.id, "PENDING")
    with pytest.raises(InvalidArgument):
        recon.update_status(db, record.id, "COMPLETED")
    with pytest.raises(InvalidArgument):
        recon.update_status(db, record.id, "ARCHIVED")

    flagged = recon.update_status(db, record.id, "UNDER_INVESTIGATION", note="second")
    assert flagged.status == "UNDER_INVESTIGATION"

    assert recon.close_investigation(db, record.id, "scale was off")
    db.refresh(record)
    assert record.status == "COMPLETED"
    lines = record.notes.splitlines()
    assert len(lines) == 3
    assert lines[0].endswith("first")
    assert lines[1].endswith("second")
    assert lines[2].endswith("Investigation closed: scale was off")


def test_close_investigation_requires_open_investigation(db, truck):
    record = recon.create_reconciliation(db, truck.id, DAY, Decimal("10"), Decimal("10"))
    assert recon.close_investigation(db, record.id, "nothing to close") is False


def test_reconcile_truck_day_uses_loads_and_invoices(db, customer, truck, make_invoice_draft):
    today = date.today()
    load = create_truck_load(db, TruckLoadDraft(truck_id=truck.id, total_weight=Decimal("500"), cages_count=50))
    noon = datetime.combine(today, time(12, 0))
    post_invoice(db, make_invoice_draft(customer.id, truck.id, net_weight="200", invoice_date=noon))
    post_invoice(db, make_invoice_draft(customer.id, truck.id, net_weight="250", invoice_date=noon))
    # Another day's sale does not count
    post_invoice(
        db,
        make_invoice_draft(
            customer.id, truck.id, net_weight="30", invoice_date=noon - timedelta(days=1)
        ),
    )

    record = recon.reconcile_truck_day(db, truck.id, today)

    assert record.load_weight == Decimal("500.00")
    assert record.sold_weight == Decimal("450.00")
    assert record.wastage_percentage == Decimal("10.00")
    db.expire_all()
    assert db.get(TruckLoad, load.id).status == "COMPLETED"


@pytest.fixture
def far_east_local_time(monkeypatch):
    """Local clock at UTC+14, where the local date runs ahead of UTC."""
    if not hasattr(time_module, "tzset"):
        pytest.skip("time.tzset is not available on this platform")
    monkeypatch.setenv("TZ", "Pacific/Kiritimati")
    time_module.tzset()
    yield
    monkeypatch.undo()
    time_module.tzset()


def test_undated_invoices_count_toward_the_local_day(db, customer, truck, make_invoice_draft, far_east_local_time):
    today = date.today()
    create_truck_load(db, TruckLoadDraft(truck_id=truck.id, total_weight=Decimal("1000"), cages_count=50))
    draft = make_invoice_draft(customer.id, truck.id, net_weight="950").model_copy(update={"invoice_date": None})
    invoice = post_invoice(db, draft)

    record = recon.reconcile_truck_day(db, truck.id, today)

    assert invoice.invoice_number.startswith(today.strftime("%Y%m%d"))
    assert record.sold_weight == Decimal("950.00")
    assert record.wastage_percentage == Decimal("5.00")


def test_failed_load_completion_leaves_the_day_open(db, truck, monkeypatch):
    monkeypatch.setattr(settings, "LEDGER_MAX_RETRIES", 2)
    monkeypatch.setattr(settings, "LEDGER_RETRY_BACKOFF_MS", 0)
    load = create_truck_load(db, TruckLoadDraft(truck_id=truck.id, total_weight=Decimal("400"), cages_count=20))

    def locked(session, truck_id, on_date):
        raise OperationalError("UPDATE truck_loads", {}, Exception("database is locked"))

    monkeypatch.setattr(recon, "_complete_day_loads", locked)
    with pytest.raises(TransactionFailed):
        recon.reconcile_truck_day(db, truck.id, date.today())

    db.expire_all()
    assert db.execute(select(func.count(DailyReconciliation.id))).scalar_one() == 0
    assert db.get(TruckLoad, load.id).status == "LOADED"

    monkeypatch.undo()
    record = recon.reconcile_truck_day(db, truck.id, date.today())
    db.expire_all()
    assert record.load_weight == Decimal("400.00")
    assert db.get(TruckLoad, load.id).status == "COMPLETED"


def test_reconcile_unknown_truck(db):
    with pytest.raises(NotFound):
        recon.reconcile_truck_day(db, 321, date.today())
