from sqlalchemy import Column, Integer, String, ForeignKey, Numeric, Date, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from poultry.db.base import Base

LOAD_STATUSES = ("LOADED", "IN_TRANSIT", "COMPLETED")


class TruckLoad(Base):
    __tablename__ = "truck_loads"

    id = Column(Integer, primary_key=True, index=True)
    truck_id = Column(Integer, ForeignKey("trucks.id", ondelete="CASCADE"), nullable=False, index=True)
    load_date = Column(Date, nullable=False, index=True)
    total_weight = Column(Numeric(10, 2), nullable=False)
    cages_count = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default="LOADED")  # LOADED, IN_TRANSIT, COMPLETED
    notes = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    truck = relationship("Truck", back_populates="loads")
