"""Invoice approval state machine.

    Draft --submit--> Submitted --approve--> Approved --approve--> Invoiced
                          |                      |
                          +-------reject---------+--> Rejected --reopen--> Draft

``TRANSITIONS`` is total: any (status, action) pair missing from it is
rejected with ``InvalidStatus`` and leaves the invoice untouched. The status
update is a compare-and-swap on the status that was read, and it commits
together with its ApprovalEvent.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple

import structlog
from sqlalchemy import update
from sqlalchemy.orm import Session

from invoice_backend.app.core.errors import CommentRequired, InvalidStatus, NotFound
from invoice_backend.app.core.identity import Identity
from invoice_backend.app.core.metrics import approval_events_total
from invoice_backend.app.core.rbac import Operation, require
from invoice_backend.app.core.time import utc_now
from invoice_backend.app.models.approval import ApprovalEvent
from invoice_backend.app.models.enums import ApprovalAction, ApproverRole, InvoiceStatus
from invoice_backend.app.models.invoice import Invoice
from invoice_backend.app.services.audit import AuditRecorder

LOGGER = structlog.get_logger(__name__)


class WorkflowAction(str, Enum):
    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
    REOPEN = "reopen"


@dataclass(frozen=True)
class Transition:
    target: InvoiceStatus
    event_action: ApprovalAction
    # None means the caller chooses, falling back to manager
    fixed_role: Optional[ApproverRole] = None


TRANSITIONS: Dict[Tuple[InvoiceStatus, WorkflowAction], Transition] = {
    (InvoiceStatus.DRAFT, WorkflowAction.SUBMIT): Transition(
        InvoiceStatus.SUBMITTED, ApprovalAction.APPROVE, ApproverRole.FIELD
    ),
    (InvoiceStatus.SUBMITTED, WorkflowAction.APPROVE): Transition(InvoiceStatus.APPROVED, ApprovalAction.APPROVE),
    (InvoiceStatus.APPROVED, WorkflowAction.APPROVE): Transition(InvoiceStatus.INVOICED, ApprovalAction.APPROVE),
    (InvoiceStatus.SUBMITTED, WorkflowAction.REJECT): Transition(InvoiceStatus.REJECTED, ApprovalAction.REJECT),
    (InvoiceStatus.APPROVED, WorkflowAction.REJECT): Transition(InvoiceStatus.REJECTED, ApprovalAction.REJECT),
    (InvoiceStatus.REJECTED, WorkflowAction.REOPEN): Transition(
        InvoiceStatus.DRAFT, ApprovalAction.REQUEST_CHANGE, ApproverRole.FIELD
    ),
}

ACTION_OPERATIONS = {
    WorkflowAction.SUBMIT: Operation.SUBMIT,
    WorkflowAction.APPROVE: Operation.APPROVE,
    WorkflowAction.REJECT: Operation.REJECT,
    WorkflowAction.REOPEN: Operation.REOPEN,
}

SUCCESS_MESSAGES = {
    WorkflowAction.SUBMIT: "Invoice submitted for approval",
    WorkflowAction.APPROVE: "Invoice approved successfully",
    WorkflowAction.REJECT: "Invoice rejected successfully",
    WorkflowAction.REOPEN: "Invoice reopened for modification",
}

INVALID_STATUS_MESSAGES = {
    WorkflowAction.SUBMIT: "Only Draft invoices can be submitted",
    WorkflowAction.APPROVE: "Invalid status for approval",
    WorkflowAction.REJECT: "Invalid status for rejection",
    WorkflowAction.REOPEN: "Only Rejected invoices can be reopened",
}

DEFAULT_REOPEN_COMMENT = "Reopened for modification"


def resolve_transition(current_status: str, action: WorkflowAction) -> Transition:
    try:
        status = InvoiceStatus(current_status)
    except ValueError:
        raise InvalidStatus(current_status, INVALID_STATUS_MESSAGES[action]) from None
    transition = TRANSITIONS.get((status, action))
    if transition is None:
        raise InvalidStatus(status.value, INVALID_STATUS_MESSAGES[action])
    return transition


def _normalize_comment(comment: Optional[str]) -> Optional[str]:
    if comment is None:
        return None
    comment = comment.strip()
    return comment or None


@dataclass(frozen=True)
class TransitionOutcome:
    invoice: Invoice
    event: ApprovalEvent
    message: str


class ApprovalWorkflow:
    def __init__(self, db: Session, audit: AuditRecorder, request_id: Optional[str] = None):
        self.db = db
        self.audit = audit
        self.request_id = request_id

    def transition(
        self,
        invoice_id: str,
        action: WorkflowAction,
        identity: Identity,
        *,
        comment: Optional[str] = None,
        approver_role: Optional[ApproverRole] = None,
    ) -> TransitionOutcome:
        require(identity, ACTION_OPERATIONS[action])

        comment = _normalize_comment(comment)
        if action is WorkflowAction.REJECT and comment is None:
            raise CommentRequired()
        if action is WorkflowAction.REOPEN and comment is None:
            comment = DEFAULT_REOPEN_COMMENT

        invoice = self.db.get(Invoice, invoice_id)
        if invoice is None:
            raise NotFound()

        previous_status = invoice.status
        transition = resolve_transition(previous_status, action)
        role = transition.fixed_role or approver_role or ApproverRole.MANAGER

        now = utc_now()
        values = {"status": transition.target.value, "updated_at": now}
        if transition.target is InvoiceStatus.APPROVED:
            values["approved_by"] = identity.email
            values["approved_at"] = now
        elif transition.target is InvoiceStatus.INVOICED:
            values["invoiced_at"] = now

        before = {field: getattr(invoice, field) for field in values}

        result = self.db.execute(
            update(Invoice)
            .where(Invoice.id == invoice_id, Invoice.status == previous_status)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            # Another request moved the invoice between our read and write
            self.db.rollback()
            self.db.refresh(invoice)
            raise InvalidStatus(invoice.status, INVALID_STATUS_MESSAGES[action])

        event = ApprovalEvent(
            invoice_id=invoice_id,
            approver_role=role.value,
            approver_email=identity.email,
            action=transition.event_action.value,
            comment=comment,
            previous_status=previous_status,
            new_status=transition.target.value,
            approved_at=now,
        )
        self.db.add(event)
        self.db.commit()
        self.db.refresh(invoice)
        self.db.refresh(event)

        approval_events_total.labels(action=action.value, role=role.value).inc()
        LOGGER.info(
            "invoice_transitioned",
            invoice_id=invoice_id,
            action=action.value,
            previous_status=previous_status,
            new_status=transition.target.value,
            user_role=identity.role,
        )
        self.audit.record(
            table_name="invoices",
            record_id=invoice_id,
            operation="UPDATE",
            old_values=before,
            new_values=dict(values),
            changed_by=identity.email,
            request_id=self.request_id,
        )
        return TransitionOutcome(invoice=invoice, event=event, message=SUCCESS_MESSAGES[action])
