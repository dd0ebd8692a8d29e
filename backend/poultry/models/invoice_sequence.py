from sqlalchemy import Column, Integer, String
from poultry.db.base import Base


class InvoiceSequence(Base):
    """Per-date invoice counter. Incremented in place, one row per YYYYMMDD."""
    __tablename__ = "invoice_sequences"

    date_prefix = Column(String(8), primary_key=True)
    last_value = Column(Integer, nullable=False, default=0)
