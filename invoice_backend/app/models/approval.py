"""Append-only record of invoice status changes."""

from uuid import uuid4

from sqlalchemy import Column, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import relationship

from invoice_backend.app.core.time import utc_now
from invoice_backend.app.db.base_class import Base


class ApprovalEvent(Base):
    __tablename__ = "approvals"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    invoice_id = Column(String(36), ForeignKey("invoices.id"), nullable=False, index=True)
    approver_role = Column(String(20), nullable=False)
    approver_email = Column(String(255), nullable=True)
    action = Column(String(20), nullable=False)
    comment = Column(Text, nullable=True)
    previous_status = Column(String(20), nullable=False)
    new_status = Column(String(20), nullable=False)
    approved_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    invoice = relationship("Invoice", back_populates="approvals")
