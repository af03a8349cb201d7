"""Invoice line item: one delivery, distance or time entry."""

from uuid import uuid4

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Numeric, String, Text
from sqlalchemy.orm import relationship

from invoice_backend.app.core.time import utc_now
from invoice_backend.app.db.base_class import Base


class InvoiceItem(Base):
    __tablename__ = "invoice_items"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    invoice_id = Column(String(36), ForeignKey("invoices.id"), nullable=False, index=True)
    delivery_date = Column(Date, nullable=True)
    description = Column(String(255), nullable=False)
    quantity = Column(Numeric(12, 2), nullable=False)
    unit = Column(String(10), nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False, default=0)
    amount = Column(Numeric(12, 2), nullable=False)
    is_overtime = Column(Boolean, nullable=False, default=False)
    is_special = Column(Boolean, nullable=False, default=False)
    vehicle_no = Column(String(50), nullable=True)
    driver_name = Column(String(255), nullable=True)
    memo = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    invoice = relationship("Invoice", back_populates="items")
