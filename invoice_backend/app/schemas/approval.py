"""Approval workflow schemas."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from invoice_backend.app.models.enums import ApproverRole


class ApprovalRequest(BaseModel):
    comment: Optional[str] = None
    approver_role: Optional[ApproverRole] = None


class TransitionResult(BaseModel):
    message: str
    status: str


class ApprovalEventRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    invoice_id: str
    approver_role: str
    approver_email: Optional[str] = None
    action: str
    comment: Optional[str] = None
    previous_status: str
    new_status: str
    approved_at: datetime
