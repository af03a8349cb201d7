from invoice_backend.app.db.base_class import Base

# Import models to register metadata for Base.metadata.create_all in tests
from invoice_backend.app.models.partner import Partner  # noqa: F401
from invoice_backend.app.models.rate_card import RateCard  # noqa: F401
from invoice_backend.app.models.invoice import Invoice  # noqa: F401
from invoice_backend.app.models.invoice_item import InvoiceItem  # noqa: F401
from invoice_backend.app.models.approval import ApprovalEvent  # noqa: F401
from invoice_backend.app.models.audit_log import AuditLog  # noqa: F401
