"""Invoice model for partner billing."""

from uuid import uuid4

from sqlalchemy import Column, Date, DateTime, ForeignKey, Numeric, String, Text
from sqlalchemy.orm import relationship

from invoice_backend.app.core.time import utc_now
from invoice_backend.app.db.base_class import Base
from invoice_backend.app.models.enums import InvoiceStatus


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    invoice_no = Column(String(64), nullable=False, index=True)
    partner_id = Column(String(36), ForeignKey("partners.id"), nullable=False, index=True)
    rate_card_id = Column(String(36), ForeignKey("rate_cards.id"), nullable=True)

    period_start = Column(Date, nullable=False)
    period_end = Column(Date, nullable=False)
    memo = Column(Text, nullable=True)

    status = Column(String(20), default=InvoiceStatus.DRAFT.value, nullable=False, index=True)
    subtotal = Column(Numeric(12, 2), default=0, nullable=False)
    tax = Column(Numeric(12, 2), default=0, nullable=False)
    total = Column(Numeric(12, 2), default=0, nullable=False)
    currency = Column(String(3), default="JPY", nullable=False)
    payment_due_date = Column(Date, nullable=True)

    created_by = Column(String(255), nullable=True, index=True)
    approved_by = Column(String(255), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    invoiced_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)

    partner = relationship("Partner", back_populates="invoices")
    rate_card = relationship("RateCard")
    items = relationship(
        "InvoiceItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.delivery_date",
    )
    approvals = relationship(
        "ApprovalEvent",
        back_populates="invoice",
        order_by="ApprovalEvent.approved_at",
    )
