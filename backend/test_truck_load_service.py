"""Truck loads and registry validation."""
from datetime import date, timedelta
from decimal import Decimal

import pytest

from poultry.core.exceptions import AlreadyExists, InvalidArgument, NotFound
from poultry.schemas.truck import TruckLoadDraft
from poultry.services import registry
from poultry.services.truck_load_service import (
    create_truck_load,
    get_truck_load_weight,
    update_load_status,
)


def _draft(truck_id, weight="800", cages=40, **kwargs):
    return TruckLoadDraft(truck_id=truck_id, total_weight=Decimal(weight), cages_count=cages, **kwargs)


def test_create_load(db, truck):
    load = create_truck_load(db, _draft(truck.id, notes="  morning run  "))

    assert load.status == "LOADED"
    assert load.load_date == date.today()
    assert load.notes == "morning run"
    assert get_truck_load_weight(db, truck.id, date.today()) == Decimal("800.00")


@pytest.mark.parametrize(
    "weight, cages",
    [
        ("0", 10),          # no weight
        ("10001", 200),     # above max weight
        ("500", 0),         # no cages
        ("500", 1001),      # too many cages
        ("1000", 5),        # 200 kg per cage
        ("100", 50),        # 2 kg per cage
    ],
)
def test_out_of_range_loads_are_rejected(db, truck, weight, cages):
    with pytest.raises(InvalidArgument):
        create_truck_load(db, _draft(truck.id, weight=weight, cages=cages))


def test_future_load_date_is_rejected(db, truck):
    with pytest.raises(InvalidArgument):
        create_truck_load(db, _draft(truck.id, load_date=date.today() + timedelta(days=1)))


def test_unknown_and_inactive_trucks(db, truck):
    with pytest.raises(NotFound):
        create_truck_load(db, _draft(555))

    truck.is_active = False
    db.commit()
    with pytest.raises(InvalidArgument):
        create_truck_load(db, _draft(truck.id))


def test_truck_with_open_load_cannot_take_another(db, truck):
    load = create_truck_load(db, _draft(truck.id))
    with pytest.raises(InvalidArgument):
        create_truck_load(db, _draft(truck.id))

    update_load_status(db, load.id, "IN_TRANSIT")
    with pytest.raises(InvalidArgument):
        create_truck_load(db, _draft(truck.id))

    update_load_status(db, load.id, "COMPLETED")
    assert create_truck_load(db, _draft(truck.id, weight="300", cages=20)).status == "LOADED"
    assert get_truck_load_weight(db, truck.id, date.today()) == Decimal("1100.00")


def test_load_status_only_moves_forward(db, truck):
    load = create_truck_load(db, _draft(truck.id))
    update_load_status(db, load.id, "completed")

    with pytest.raises(InvalidArgument):
        update_load_status(db, load.id, "LOADED")
    with pytest.raises(InvalidArgument):
        update_load_status(db, load.id, "PARKED")
    with pytest.raises(NotFound):
        update_load_status(db, 404, "COMPLETED")


def test_customer_name_is_sanitized(db):
    customer = registry.create_customer(db, "  Abu   Ali; DROP TABLE--  ")
    assert customer.name == "Abu Ali DROP TABLE"
    assert customer.balance == Decimal("0.00")

    with pytest.raises(InvalidArgument):
        registry.create_customer(db, "<>")


def test_truck_numbers_are_unique(db, truck):
    with pytest.raises(AlreadyExists):
        registry.create_truck(db, "TR-101", "Someone Else")


def test_registry_lookups(db, customer, truck):
    assert registry.get_customer(db, customer.id).name == "Ahmed Saleh"
    assert registry.get_truck(db, truck.id).truck_number == "TR-101"
    with pytest.raises(NotFound):
        registry.get_customer(db, 9999)
    with pytest.raises(NotFound):
        registry.get_truck(db, 9999)
