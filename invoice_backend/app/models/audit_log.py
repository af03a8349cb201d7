"""Audit log model to track every mutation of billing records."""

from sqlalchemy import JSON, Column, DateTime, Integer, String

from invoice_backend.app.core.time import utc_now
from invoice_backend.app.db.base_class import Base


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    table_name = Column(String(64), nullable=False)
    record_id = Column(String(36), nullable=False, index=True)
    operation = Column(String(10), nullable=False)
    old_values = Column(JSON, nullable=True)
    new_values = Column(JSON, nullable=True)
    changed_by = Column(String(255), nullable=False)
    request_id = Column(String(64), nullable=True)
    changed_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
