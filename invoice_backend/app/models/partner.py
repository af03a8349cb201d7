"""Billing partner (the customer an invoice is addressed to)."""

from uuid import uuid4

from sqlalchemy import Column, DateTime, String
from sqlalchemy.orm import relationship

from invoice_backend.app.core.time import utc_now
from invoice_backend.app.db.base_class import Base


class Partner(Base):
    __tablename__ = "partners"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    name = Column(String(255), nullable=False)
    billing_code = Column(String(32), nullable=True)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    address = Column(String(512), nullable=True)
    contact_person = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    invoices = relationship("Invoice", back_populates="partner")
    rate_cards = relationship("RateCard", back_populates="partner", cascade="all, delete-orphan")
