"""Shared fixtures: a throwaway SQLite file per test, plus a customer and a truck."""
from datetime import datetime
from decimal import Decimal

import pytest

from poultry import models  # noqa: F401 - register models
from poultry.db.base import Base
from poultry.db.session import create_db_engine, make_session_factory
from poultry.schemas.records import InvoiceDraft
from poultry.services import registry


@pytest.fixture
def engine(tmp_path):
    db_engine = create_db_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    Base.metadata.create_all(bind=db_engine)
    yield db_engine
    db_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def customer(db):
    return registry.create_customer(db, "Ahmed Saleh", phone="0599000000")


@pytest.fixture
def truck(db):
    return registry.create_truck(db, "TR-101", "Omar Khaled")


@pytest.fixture
def make_invoice_draft():
    """Draft with consistent amounts: net = gross - cages, final = net * price."""

    def _make(customer_id, truck_id, net_weight="100", unit_price="1", invoice_date=None, **overrides):
        net = Decimal(str(net_weight))
        price = Decimal(str(unit_price))
        gross = net + Decimal("20")
        fields = dict(
            customer_id=customer_id,
            truck_id=truck_id,
            gross_weight=gross,
            cages_weight=Decimal("20"),
            cages_count=4,
            net_weight=net,
            unit_price=price,
            total_amount=net * price,
            final_amount=net * price,
            invoice_date=invoice_date or datetime.now(),
        )
        fields.update(overrides)
        return InvoiceDraft(**fields)

    return _make
