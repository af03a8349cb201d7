"""Best-effort audit trail.

Audit rows are written after the primary change has committed, using a
separate session. A failure here is logged and dropped; it never fails or
rolls back the operation being audited.
"""

from typing import Any, Callable, Dict, Optional

import structlog
from fastapi.encoders import jsonable_encoder
from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from invoice_backend.app.db.session import SessionLocal
from invoice_backend.app.models.audit_log import AuditLog

LOGGER = structlog.get_logger(__name__)

AUDIT_OPERATIONS = {"INSERT", "UPDATE", "DELETE"}


def snapshot(instance) -> Dict[str, Any]:
    """Column values of an ORM instance as JSON-safe data."""
    mapper = inspect(instance).mapper
    return jsonable_encoder({attr.key: getattr(instance, attr.key) for attr in mapper.column_attrs})


class AuditRecorder:
    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory

    def record(
        self,
        *,
        table_name: str,
        record_id: str,
        operation: str,
        old_values: Optional[Dict[str, Any]],
        new_values: Optional[Dict[str, Any]],
        changed_by: Optional[str],
        request_id: Optional[str],
    ) -> bool:
        if operation not in AUDIT_OPERATIONS:
            raise ValueError(f"Unsupported audit operation: {operation}")

        db = None
        try:
            db = self.session_factory()
            db.add(
                AuditLog(
                    table_name=table_name,
                    record_id=str(record_id),
                    operation=operation,
                    old_values=jsonable_encoder(old_values) if old_values is not None else None,
                    new_values=jsonable_encoder(new_values) if new_values is not None else None,
                    changed_by=changed_by or "system",
                    request_id=request_id,
                )
            )
            db.commit()
            return True
        except SQLAlchemyError as exc:
            LOGGER.error(
                "audit_log_failed",
                table_name=table_name,
                record_id=str(record_id),
                operation=operation,
                error=str(exc),
            )
            if db is not None:
                db.rollback()
            return False
        finally:
            if db is not None:
                db.close()


def get_audit_recorder() -> AuditRecorder:
    return AuditRecorder()
