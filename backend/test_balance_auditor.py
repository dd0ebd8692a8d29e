"""Balance auditor: drift detection, repair, idempotence."""
from decimal import Decimal

import pytest
from sqlalchemy import update

from poultry.core.exceptions import NotFound
from poultry.models.customer import Customer
from poultry.schemas.records import PaymentDraft
from poultry.services import registry
from poultry.services.balance_auditor import (
    find_balance_discrepancies,
    recompute_all_balances,
    recompute_balance,
)
from poultry.services.ledger_service import post_invoice, post_payment


def _corrupt(db, customer_id, balance):
    db.execute(update(Customer).where(Customer.id == customer_id).values(balance=Decimal(balance)))
    db.commit()


def test_consistent_balance_has_zero_drift(db, customer, truck, make_invoice_draft):
    post_invoice(db, make_invoice_draft(customer.id, truck.id, net_weight="100", unit_price="2"))
    post_payment(db, PaymentDraft(customer_id=customer.id, amount=Decimal("50")))

    result = recompute_balance(db, customer.id)

    assert result.drift == Decimal("0")
    assert result.new_balance == Decimal("150.00")


def test_drift_is_repaired_and_second_run_is_clean(db, customer, truck, make_invoice_draft):
    post_invoice(db, make_invoice_draft(customer.id, truck.id, net_weight="100", unit_price="2"))
    _corrupt(db, customer.id, "170.00")

    first = recompute_balance(db, customer.id)
    second = recompute_balance(db, customer.id)

    assert first.drift == Decimal("30.00")
    assert first.new_balance == Decimal("200.00")
    assert second.drift == Decimal("0")
    db.expire_all()
    assert db.get(Customer, customer.id).balance == Decimal("200.00")


def test_drift_within_tolerance_is_left_alone(db, customer, truck, make_invoice_draft):
    post_invoice(db, make_invoice_draft(customer.id, truck.id, net_weight="100", unit_price="1"))
    _corrupt(db, customer.id, "100.01")

    result = recompute_balance(db, customer.id)

    assert result.drift == Decimal("0")
    assert result.new_balance == Decimal("100.01")


def test_overpayment_shows_up_as_credit_in_history(db, customer, truck, make_invoice_draft):
    post_invoice(db, make_invoice_draft(customer.id, truck.id, net_weight="100", unit_price="1"))
    post_payment(db, PaymentDraft(customer_id=customer.id, amount=Decimal("130")))

    result = recompute_balance(db, customer.id)

    assert result.new_balance == Decimal("-30.00")
    assert result.drift == Decimal("-30.00")


def test_unknown_customer(db):
    with pytest.raises(NotFound):
        recompute_balance(db, 4242)


def test_recompute_all_reports_only_repaired_customers(db, customer, truck, make_invoice_draft):
    other = registry.create_customer(db, "Layla Nasser")
    idle = registry.create_customer(db, "Karim Aziz")
    post_invoice(db, make_invoice_draft(customer.id, truck.id, net_weight="100", unit_price="1"))
    post_invoice(db, make_invoice_draft(other.id, truck.id, net_weight="40", unit_price="1"))
    _corrupt(db, customer.id, "90.00")
    _corrupt(db, idle.id, "12.50")

    adjustments = recompute_all_balances(db)

    assert adjustments == {customer.id: Decimal("10.00"), idle.id: Decimal("-12.50")}
    assert recompute_all_balances(db) == {}


def test_discrepancy_report_does_not_repair(db, customer, truck, make_invoice_draft):
    post_invoice(db, make_invoice_draft(customer.id, truck.id, net_weight="100", unit_price="1"))
    _corrupt(db, customer.id, "60.00")

    report = find_balance_discrepancies(db)

    assert len(report) == 1
    assert report[0]["customer_id"] == customer.id
    assert report[0]["drift"] == Decimal("40.00")
    db.expire_all()
    assert db.get(Customer, customer.id).balance == Decimal("60.00")
