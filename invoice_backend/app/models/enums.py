"""String enums shared by models, schemas and the approval workflow."""

from enum import Enum


class InvoiceStatus(str, Enum):
    DRAFT = "Draft"
    SUBMITTED = "Submitted"
    APPROVED = "Approved"
    INVOICED = "Invoiced"
    REJECTED = "Rejected"


class ItemUnit(str, Enum):
    STOP = "stop"
    KM = "km"
    HOUR = "hour"
    OTHER = "other"


class ApproverRole(str, Enum):
    FIELD = "field"
    MANAGER = "manager"
    ACCOUNTING = "accounting"


class ApprovalAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    REQUEST_CHANGE = "request_change"
