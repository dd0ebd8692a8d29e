from sqlalchemy import Column, Integer, String, ForeignKey, Numeric, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from poultry.db.base import Base


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, index=True)
    invoice_number = Column(String(20), nullable=False, unique=True, index=True)  # YYYYMMDDNNNN
    customer_id = Column(Integer, ForeignKey("customers.id", ondelete="RESTRICT"), nullable=False, index=True)
    truck_id = Column(Integer, ForeignKey("trucks.id", ondelete="RESTRICT"), nullable=False, index=True)
    invoice_date = Column(DateTime(timezone=True), nullable=False, index=True)

    gross_weight = Column(Numeric(10, 2), nullable=False)
    cages_weight = Column(Numeric(10, 2), nullable=False)  # Tare
    cages_count = Column(Integer, nullable=False, default=0)
    net_weight = Column(Numeric(10, 2), nullable=False)  # gross - tare
    unit_price = Column(Numeric(8, 2), nullable=False)
    total_amount = Column(Numeric(12, 2), nullable=False)  # net * price
    discount_percentage = Column(Numeric(5, 2), nullable=False, default=0)
    final_amount = Column(Numeric(12, 2), nullable=False)  # total - discount

    # Customer balance immediately before and after this invoice
    previous_balance = Column(Numeric(12, 2), nullable=False, default=0)
    current_balance = Column(Numeric(12, 2), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    customer = relationship("Customer", back_populates="invoices")
    truck = relationship("Truck", back_populates="invoices")
    payments = relationship("Payment", back_populates="invoice")
