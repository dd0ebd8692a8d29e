from decimal import Decimal

from sqlalchemy import Column, Integer, String, Numeric, Boolean, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from poultry.db.base import Base


class Customer(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, index=True)
    phone = Column(String(20), nullable=True)
    address = Column(String(200), nullable=True)
    # Positive = customer owes money. Written only by the ledger and the auditor.
    balance = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    is_active = Column(Boolean, nullable=False, default=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    invoices = relationship("Invoice", back_populates="customer")
    payments = relationship("Payment", back_populates="customer")

    # Two postings that read the same version cannot both commit.
    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Customer id={self.id} name={self.name!r} balance={self.balance}>"
