from sqlalchemy import Column, Integer, String, ForeignKey, Numeric, Date, DateTime, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from poultry.db.base import Base

RECONCILIATION_STATUSES = ("PENDING", "COMPLETED", "UNDER_INVESTIGATION")


class DailyReconciliation(Base):
    __tablename__ = "daily_reconciliations"
    # One closing record per truck per day
    __table_args__ = (
        UniqueConstraint("truck_id", "reconciliation_date", name="uq_reconciliation_truck_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    truck_id = Column(Integer, ForeignKey("trucks.id", ondelete="CASCADE"), nullable=False, index=True)
    reconciliation_date = Column(Date, nullable=False, index=True)
    load_weight = Column(Numeric(10, 2), nullable=False)
    sold_weight = Column(Numeric(10, 2), nullable=False)
    wastage_weight = Column(Numeric(10, 2), nullable=False)  # load - sold
    wastage_percentage = Column(Numeric(5, 2), nullable=False)  # wastage / load * 100
    status = Column(String(20), nullable=False, default="PENDING")
    notes = Column(String(2000), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    truck = relationship("Truck", back_populates="reconciliations")
