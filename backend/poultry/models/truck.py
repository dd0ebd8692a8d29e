from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from poultry.db.base import Base


class Truck(Base):
    __tablename__ = "trucks"

    id = Column(Integer, primary_key=True, index=True)
    truck_number = Column(String(50), nullable=False, unique=True)
    driver_name = Column(String(100), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    loads = relationship("TruckLoad", back_populates="truck")
    invoices = relationship("Invoice", back_populates="truck")
    reconciliations = relationship("DailyReconciliation", back_populates="truck")
