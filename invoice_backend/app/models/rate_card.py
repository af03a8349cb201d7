"""Partner rate cards; an invoice references the one in force when it was drafted."""

from uuid import uuid4

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, String
from sqlalchemy.orm import relationship

from invoice_backend.app.core.time import utc_now
from invoice_backend.app.db.base_class import Base


class RateCard(Base):
    __tablename__ = "rate_cards"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    partner_id = Column(String(36), ForeignKey("partners.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    effective_from = Column(Date, nullable=False)
    effective_to = Column(Date, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    partner = relationship("Partner", back_populates="rate_cards")
