"""Customer and truck registration. Balances start at zero and belong to the ledger."""
import logging
import re
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from poultry.core.exceptions import AlreadyExists, InvalidArgument, NotFound
from poultry.models.customer import Customer
from poultry.models.truck import Truck

logger = logging.getLogger(__name__)


def sanitize_customer_name(name: str) -> str:
    """Sanitize customer name to prevent injection and ensure clean data.

    - Remove SQL-like patterns
    - Strip excessive whitespace
    - Keep letters (any script), digits, spaces, hyphens, apostrophes, dots
    - Limit length to 100 characters
    """
    if not name:
        raise InvalidArgument("Customer name cannot be empty")

    # Strip and collapse whitespace
    name = " ".join(name.strip().split())

    dangerous_patterns = [
        r'--',  # SQL comments
        r';',   # SQL statement separator
        r'\/\*', r'\*\/',  # SQL block comments
        r'<script', r'<\/script>',  # XSS
        r'javascript:',  # XSS
    ]
    for pattern in dangerous_patterns:
        name = re.sub(pattern, '', name, flags=re.IGNORECASE)

    name = re.sub(r"[^\w\s\-'.]", '', name)
    name = name.replace("_", "")[:100]

    if not name or len(name.strip()) < 2:
        raise InvalidArgument("Customer name must be at least 2 characters after sanitization")

    return name.strip()


def create_customer(
    db: Session,
    name: str,
    phone: Optional[str] = None,
    address: Optional[str] = None,
) -> Customer:
    """Register a customer with a zero balance.

    Raises:
        InvalidArgument: If name is invalid after sanitization
    """
    customer = Customer(
        name=sanitize_customer_name(name),
        phone=(phone or "").strip() or None,
        address=(address or "").strip() or None,
    )
    db.add(customer)
    db.commit()
    db.refresh(customer)
    logger.info(f"Registered customer {customer.id} ({customer.name})")
    return customer


def get_customer(db: Session, customer_id: int) -> Customer:
    customer = db.get(Customer, customer_id)
    if customer is None:
        raise NotFound(f"Customer {customer_id} not found")
    return customer


def create_truck(db: Session, truck_number: str, driver_name: str) -> Truck:
    truck_number = (truck_number or "").strip()
    driver_name = (driver_name or "").strip()
    if not truck_number or not driver_name:
        raise InvalidArgument("Truck number and driver name are required")

    truck = Truck(truck_number=truck_number[:50], driver_name=driver_name[:100])
    db.add(truck)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise AlreadyExists(f"Truck {truck_number} already registered") from e
    db.refresh(truck)
    logger.info(f"Registered truck {truck.id} ({truck.truck_number})")
    return truck


def get_truck(db: Session, truck_id: int) -> Truck:
    truck = db.get(Truck, truck_id)
    if truck is None:
        raise NotFound(f"Truck {truck_id} not found")
    return truck
