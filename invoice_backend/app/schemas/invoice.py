"""Invoice schemas."""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from invoice_backend.app.schemas.approval import ApprovalEventRead
from invoice_backend.app.schemas.invoice_item import InvoiceItemCreate, InvoiceItemRead


class InvoiceCreate(BaseModel):
    # Required fields are checked by the service so the error can list them
    partner_id: Optional[str] = None
    period_start: Optional[date] = None
    period_end: Optional[date] = None
    rate_card_id: Optional[str] = None
    memo: Optional[str] = None
    items: List[InvoiceItemCreate] = Field(default_factory=list)


class InvoiceUpdate(BaseModel):
    partner_id: Optional[str] = None
    period_start: Optional[date] = None
    period_end: Optional[date] = None
    rate_card_id: Optional[str] = None
    memo: Optional[str] = None


class InvoiceItemsAdd(BaseModel):
    items: List[InvoiceItemCreate] = Field(min_length=1)


class InvoiceCreated(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    invoice_no: str
    status: str
    subtotal: Decimal
    tax: Decimal
    total: Decimal


class InvoiceRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    invoice_no: str
    partner_id: str
    rate_card_id: Optional[str] = None
    period_start: date
    period_end: date
    memo: Optional[str] = None

    status: str
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    currency: str
    payment_due_date: Optional[date] = None

    created_by: Optional[str] = None
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    invoiced_at: Optional[datetime] = None

    created_at: datetime
    updated_at: datetime


class InvoiceDetail(InvoiceRead):
    partner_name: Optional[str] = None
    billing_code: Optional[str] = None
    partner_email: Optional[str] = None
    partner_phone: Optional[str] = None
    partner_address: Optional[str] = None
    partner_contact_person: Optional[str] = None

    items: List[InvoiceItemRead] = Field(default_factory=list)
    approvals: List[ApprovalEventRead] = Field(default_factory=list)


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    totalPages: int


class InvoiceListResponse(BaseModel):
    data: List[InvoiceRead]
    pagination: Pagination


class PdfSaved(BaseModel):
    success: bool
    url: str
    path: str
    filename: str
    bytes: int
