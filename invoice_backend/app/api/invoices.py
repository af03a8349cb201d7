"""Invoice routes: CRUD on drafts, approval workflow, PDF output."""

from typing import Literal, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.orm import Session

from invoice_backend.app.core.identity import Identity
from invoice_backend.app.core.logging_config import get_request_id
from invoice_backend.app.core.rbac import Operation, require_operation
from invoice_backend.app.db.session import get_db
from invoice_backend.app.schemas.approval import ApprovalRequest, TransitionResult
from invoice_backend.app.schemas.invoice import (
    InvoiceCreate,
    InvoiceCreated,
    InvoiceDetail,
    InvoiceItemsAdd,
    InvoiceListResponse,
    InvoiceRead,
    InvoiceUpdate,
    PdfSaved,
)
from invoice_backend.app.services import invoices as invoice_service
from invoice_backend.app.services.audit import AuditRecorder, get_audit_recorder
from invoice_backend.app.services.pdf import PdfConverter, generate_invoice_pdf, get_pdf_converter, save_invoice_pdf
from invoice_backend.app.services.workflow import ApprovalWorkflow, WorkflowAction

router = APIRouter(prefix="/api/invoices", tags=["invoices"])


def _content_disposition(filename: str) -> str:
    fallback = filename.encode("ascii", errors="replace").decode("ascii").replace("?", "_")
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename)}"


@router.get("", response_model=InvoiceListResponse)
async def list_invoices(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    status: Optional[str] = None,
    partner_id: Optional[str] = None,
    identity: Identity = Depends(require_operation(Operation.LIST_INVOICES)),
    db: Session = Depends(get_db),
):
    rows, total = invoice_service.list_invoices(
        db, identity=identity, page=page, limit=limit, status=status, partner_id=partner_id
    )
    return {
        "data": rows,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": invoice_service.total_pages(total, limit),
        },
    }


@router.post("", response_model=InvoiceCreated, status_code=status.HTTP_201_CREATED)
async def create_invoice(
    payload: InvoiceCreate,
    request: Request,
    identity: Identity = Depends(require_operation(Operation.CREATE_INVOICE)),
    db: Session = Depends(get_db),
    audit: AuditRecorder = Depends(get_audit_recorder),
):
    invoice = invoice_service.create_invoice(
        db, payload, identity=identity, audit=audit, request_id=get_request_id(request)
    )
    return invoice


@router.get("/{invoice_id}", response_model=InvoiceDetail)
async def get_invoice(
    invoice_id: str,
    identity: Identity = Depends(require_operation(Operation.VIEW_INVOICE)),
    db: Session = Depends(get_db),
):
    invoice = invoice_service.get_visible_invoice(db, invoice_id, identity)
    return invoice_service.build_invoice_detail(invoice)


@router.patch("/{invoice_id}", response_model=InvoiceRead)
async def update_invoice(
    invoice_id: str,
    payload: InvoiceUpdate,
    request: Request,
    identity: Identity = Depends(require_operation(Operation.UPDATE_INVOICE)),
    db: Session = Depends(get_db),
    audit: AuditRecorder = Depends(get_audit_recorder),
):
    return invoice_service.update_invoice(
        db, invoice_id, payload, identity=identity, audit=audit, request_id=get_request_id(request)
    )


@router.post("/{invoice_id}/items", response_model=InvoiceDetail, status_code=status.HTTP_201_CREATED)
async def add_invoice_items(
    invoice_id: str,
    payload: InvoiceItemsAdd,
    request: Request,
    identity: Identity = Depends(require_operation(Operation.EDIT_ITEMS)),
    db: Session = Depends(get_db),
    audit: AuditRecorder = Depends(get_audit_recorder),
):
    invoice = invoice_service.add_items(
        db, invoice_id, payload.items, identity=identity, audit=audit, request_id=get_request_id(request)
    )
    return invoice_service.build_invoice_detail(invoice)


@router.delete("/{invoice_id}/items/{item_id}", response_model=InvoiceDetail)
async def remove_invoice_item(
    invoice_id: str,
    item_id: str,
    request: Request,
    identity: Identity = Depends(require_operation(Operation.EDIT_ITEMS)),
    db: Session = Depends(get_db),
    audit: AuditRecorder = Depends(get_audit_recorder),
):
    invoice = invoice_service.remove_item(
        db, invoice_id, item_id, identity=identity, audit=audit, request_id=get_request_id(request)
    )
    return invoice_service.build_invoice_detail(invoice)


def _run_transition(
    action: WorkflowAction,
    invoice_id: str,
    payload: Optional[ApprovalRequest],
    request: Request,
    identity: Identity,
    db: Session,
    audit: AuditRecorder,
) -> dict:
    payload = payload or ApprovalRequest()
    workflow = ApprovalWorkflow(db, audit, request_id=get_request_id(request))
    outcome = workflow.transition(
        invoice_id,
        action,
        identity,
        comment=payload.comment,
        approver_role=payload.approver_role,
    )
    return {"message": outcome.message, "status": outcome.invoice.status}


@router.post("/{invoice_id}/submit", response_model=TransitionResult)
async def submit_invoice(
    invoice_id: str,
    request: Request,
    payload: Optional[ApprovalRequest] = None,
    identity: Identity = Depends(require_operation(Operation.SUBMIT)),
    db: Session = Depends(get_db),
    audit: AuditRecorder = Depends(get_audit_recorder),
):
    return _run_transition(WorkflowAction.SUBMIT, invoice_id, payload, request, identity, db, audit)


@router.post("/{invoice_id}/approve", response_model=TransitionResult)
async def approve_invoice(
    invoice_id: str,
    request: Request,
    payload: Optional[ApprovalRequest] = None,
    identity: Identity = Depends(require_operation(Operation.APPROVE)),
    db: Session = Depends(get_db),
    audit: AuditRecorder = Depends(get_audit_recorder),
):
    return _run_transition(WorkflowAction.APPROVE, invoice_id, payload, request, identity, db, audit)


@router.post("/{invoice_id}/reject", response_model=TransitionResult)
async def reject_invoice(
    invoice_id: str,
    request: Request,
    payload: Optional[ApprovalRequest] = None,
    identity: Identity = Depends(require_operation(Operation.REJECT)),
    db: Session = Depends(get_db),
    audit: AuditRecorder = Depends(get_audit_recorder),
):
    return _run_transition(WorkflowAction.REJECT, invoice_id, payload, request, identity, db, audit)


@router.post("/{invoice_id}/reopen", response_model=TransitionResult)
async def reopen_invoice(
    invoice_id: str,
    request: Request,
    payload: Optional[ApprovalRequest] = None,
    identity: Identity = Depends(require_operation(Operation.REOPEN)),
    db: Session = Depends(get_db),
    audit: AuditRecorder = Depends(get_audit_recorder),
):
    return _run_transition(WorkflowAction.REOPEN, invoice_id, payload, request, identity, db, audit)


@router.get("/{invoice_id}/pdf", responses={200: {"content": {"application/pdf": {}}, "model": PdfSaved}})
async def get_invoice_pdf(
    invoice_id: str,
    mode: Literal["download", "save"] = "download",
    identity: Identity = Depends(require_operation(Operation.DOWNLOAD_PDF)),
    db: Session = Depends(get_db),
    converter: PdfConverter = Depends(get_pdf_converter),
):
    invoice = invoice_service.get_visible_invoice(db, invoice_id, identity)
    if mode == "save":
        return PdfSaved(**save_invoice_pdf(invoice, converter))

    rendered = generate_invoice_pdf(invoice, converter)
    return Response(
        content=rendered.content,
        media_type="application/pdf",
        headers={"Content-Disposition": _content_disposition(rendered.filename)},
    )
