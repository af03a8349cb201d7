"""Invoice service helpers: creation, listing, detail, draft edits."""

import math
import random
from datetime import date, datetime
from typing import Iterable, List, Optional, Tuple

import structlog
from sqlalchemy import or_
from sqlalchemy.orm import Session

from invoice_backend.app.core.errors import (
    InvalidStatus,
    NoFieldsToUpdate,
    NotFound,
    PartnerNotFound,
    ValidationFailed,
)
from invoice_backend.app.core.identity import Identity
from invoice_backend.app.core.rbac import is_creator_scoped
from invoice_backend.app.core.settings import get_settings
from invoice_backend.app.core.time import utc_now, utc_today
from invoice_backend.app.models.enums import InvoiceStatus
from invoice_backend.app.models.invoice import Invoice
from invoice_backend.app.models.invoice_item import InvoiceItem
from invoice_backend.app.models.partner import Partner
from invoice_backend.app.models.rate_card import RateCard
from invoice_backend.app.schemas.invoice import InvoiceCreate, InvoiceUpdate
from invoice_backend.app.schemas.invoice_item import InvoiceItemCreate
from invoice_backend.app.services.aggregator import recalculate_invoice_totals, resolve_item_amount
from invoice_backend.app.services.audit import AuditRecorder, snapshot

LOGGER = structlog.get_logger(__name__)

REQUIRED_CREATE_FIELDS = ["partner_id", "period_start", "period_end"]
UPDATABLE_FIELDS = ("partner_id", "period_start", "period_end", "rate_card_id", "memo")


def generate_invoice_number(billing_code: Optional[str], now: Optional[datetime] = None, rng=random) -> str:
    """INV-{billing code}-{YYMM}-{3 random digits}; collisions are possible."""
    now = now or utc_now()
    suffix = f"{rng.randint(0, 999):03d}"
    return f"INV-{billing_code or 'UNK'}-{now:%y%m}-{suffix}"


def find_active_rate_card(db: Session, partner_id: str, on_date: Optional[date] = None) -> Optional[RateCard]:
    on_date = on_date or utc_today()
    return (
        db.query(RateCard)
        .filter(
            RateCard.partner_id == partner_id,
            RateCard.is_active.is_(True),
            RateCard.effective_from <= on_date,
            or_(RateCard.effective_to.is_(None), RateCard.effective_to >= on_date),
        )
        .order_by(RateCard.effective_from.desc())
        .first()
    )


def _get_partner(db: Session, partner_id: str) -> Partner:
    partner = db.get(Partner, partner_id)
    if partner is None:
        raise PartnerNotFound()
    return partner


def _check_rate_card(db: Session, rate_card_id: Optional[str], partner_id: str) -> None:
    if rate_card_id is None:
        return
    rate_card = db.get(RateCard, rate_card_id)
    if rate_card is None or rate_card.partner_id != partner_id:
        raise ValidationFailed("Rate card not found for partner", field="rate_card_id")


def build_item(invoice_id: str, payload: InvoiceItemCreate) -> InvoiceItem:
    return InvoiceItem(
        invoice_id=invoice_id,
        delivery_date=payload.delivery_date,
        description=payload.description,
        quantity=payload.quantity,
        unit=payload.unit.value,
        unit_price=payload.unit_price,
        amount=resolve_item_amount(payload.quantity, payload.unit_price, payload.amount),
        is_overtime=payload.is_overtime,
        is_special=payload.is_special,
        vehicle_no=payload.vehicle_no,
        driver_name=payload.driver_name,
        memo=payload.memo,
    )


def create_invoice(
    db: Session,
    payload: InvoiceCreate,
    *,
    identity: Identity,
    audit: AuditRecorder,
    request_id: Optional[str] = None,
) -> Invoice:
    if not payload.partner_id or payload.period_start is None or payload.period_end is None:
        raise ValidationFailed("Missing required fields", required=REQUIRED_CREATE_FIELDS)

    partner = _get_partner(db, payload.partner_id)

    rate_card_id = payload.rate_card_id
    if rate_card_id is None:
        active = find_active_rate_card(db, partner.id)
        rate_card_id = active.id if active else None
    else:
        _check_rate_card(db, rate_card_id, partner.id)

    settings = get_settings()
    invoice = Invoice(
        partner_id=partner.id,
        invoice_no=generate_invoice_number(partner.billing_code),
        period_start=payload.period_start,
        period_end=payload.period_end,
        rate_card_id=rate_card_id,
        memo=payload.memo,
        status=InvoiceStatus.DRAFT.value,
        currency=settings.currency,
        created_by=identity.email,
    )
    db.add(invoice)
    db.flush()  # obtain invoice id for invoice_items
    for item_payload in payload.items:
        db.add(build_item(invoice.id, item_payload))
    recalculate_invoice_totals(db, invoice)
    db.commit()
    db.refresh(invoice)

    LOGGER.info(
        "invoice_created",
        invoice_id=invoice.id,
        invoice_no=invoice.invoice_no,
        partner_id=partner.id,
        item_count=len(payload.items),
    )
    new_values = snapshot(invoice)
    new_values["items"] = [item.model_dump(mode="json") for item in payload.items]
    audit.record(
        table_name="invoices",
        record_id=invoice.id,
        operation="INSERT",
        old_values=None,
        new_values=new_values,
        changed_by=identity.email,
        request_id=request_id,
    )
    return invoice


def list_invoices(
    db: Session,
    *,
    identity: Identity,
    page: int = 1,
    limit: int = 20,
    status: Optional[str] = None,
    partner_id: Optional[str] = None,
) -> Tuple[List[Invoice], int]:
    query = db.query(Invoice)
    if status:
        query = query.filter(Invoice.status == status)
    if partner_id:
        query = query.filter(Invoice.partner_id == partner_id)
    if is_creator_scoped(identity):
        query = query.filter(Invoice.created_by == identity.email)

    total = query.count()
    offset = (page - 1) * limit
    rows = query.order_by(Invoice.created_at.desc(), Invoice.id.desc()).offset(offset).limit(limit).all()
    return rows, total


def total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0


def get_visible_invoice(db: Session, invoice_id: str, identity: Identity) -> Invoice:
    """Fetch an invoice the caller may see; invisible records look absent."""
    query = db.query(Invoice).filter(Invoice.id == invoice_id)
    if is_creator_scoped(identity):
        query = query.filter(Invoice.created_by == identity.email)
    invoice = query.first()
    if invoice is None:
        raise NotFound()
    return invoice


def build_invoice_detail(invoice: Invoice) -> dict:
    partner = invoice.partner
    return {
        **{column: getattr(invoice, column) for column in snapshot(invoice)},
        "partner_name": partner.name if partner else None,
        "billing_code": partner.billing_code if partner else None,
        "partner_email": partner.email if partner else None,
        "partner_phone": partner.phone if partner else None,
        "partner_address": partner.address if partner else None,
        "partner_contact_person": partner.contact_person if partner else None,
        "items": list(invoice.items),
        "approvals": list(invoice.approvals),
    }


def _get_draft_invoice(db: Session, invoice_id: str, message: str) -> Invoice:
    invoice = db.get(Invoice, invoice_id)
    if invoice is None:
        raise NotFound()
    if invoice.status != InvoiceStatus.DRAFT.value:
        raise InvalidStatus(invoice.status, message)
    return invoice


def update_invoice(
    db: Session,
    invoice_id: str,
    payload: InvoiceUpdate,
    *,
    identity: Identity,
    audit: AuditRecorder,
    request_id: Optional[str] = None,
) -> Invoice:
    invoice = _get_draft_invoice(db, invoice_id, "Only Draft invoices can be updated")

    changes = {
        field: value
        for field, value in payload.model_dump(exclude_unset=True).items()
        if field in UPDATABLE_FIELDS
    }
    if not changes:
        raise NoFieldsToUpdate()
    for field in ("partner_id", "period_start", "period_end"):
        if field in changes and changes[field] is None:
            raise ValidationFailed(f"{field} cannot be cleared", field=field)

    partner_id = changes.get("partner_id", invoice.partner_id)
    if "partner_id" in changes:
        _get_partner(db, partner_id)
    if changes.get("rate_card_id") is not None:
        _check_rate_card(db, changes["rate_card_id"], partner_id)
    elif "rate_card_id" not in changes and partner_id != invoice.partner_id:
        # The current rate card belongs to the old partner
        current = db.get(RateCard, invoice.rate_card_id) if invoice.rate_card_id else None
        if current is None or current.partner_id != partner_id:
            active = find_active_rate_card(db, partner_id)
            changes["rate_card_id"] = active.id if active else None

    before = snapshot(invoice)
    for field, value in changes.items():
        setattr(invoice, field, value)
    db.commit()
    db.refresh(invoice)

    LOGGER.info("invoice_updated", invoice_id=invoice.id, fields=sorted(changes))
    audit.record(
        table_name="invoices",
        record_id=invoice.id,
        operation="UPDATE",
        old_values=before,
        new_values=snapshot(invoice),
        changed_by=identity.email,
        request_id=request_id,
    )
    return invoice


def add_items(
    db: Session,
    invoice_id: str,
    items: Iterable[InvoiceItemCreate],
    *,
    identity: Identity,
    audit: AuditRecorder,
    request_id: Optional[str] = None,
) -> Invoice:
    invoice = _get_draft_invoice(db, invoice_id, "Items can only be added to Draft invoices")

    created = [build_item(invoice.id, payload) for payload in items]
    db.add_all(created)
    recalculate_invoice_totals(db, invoice)
    db.commit()
    db.refresh(invoice)

    LOGGER.info("invoice_items_added", invoice_id=invoice.id, item_count=len(created), total=str(invoice.total))
    for item in created:
        audit.record(
            table_name="invoice_items",
            record_id=item.id,
            operation="INSERT",
            old_values=None,
            new_values=snapshot(item),
            changed_by=identity.email,
            request_id=request_id,
        )
    return invoice


def remove_item(
    db: Session,
    invoice_id: str,
    item_id: str,
    *,
    identity: Identity,
    audit: AuditRecorder,
    request_id: Optional[str] = None,
) -> Invoice:
    invoice = _get_draft_invoice(db, invoice_id, "Items can only be removed from Draft invoices")
    item = (
        db.query(InvoiceItem)
        .filter(InvoiceItem.id == item_id, InvoiceItem.invoice_id == invoice.id)
        .first()
    )
    if item is None:
        raise NotFound("Invoice item not found")

    before = snapshot(item)
    invoice.items.remove(item)
    recalculate_invoice_totals(db, invoice)
    db.commit()
    db.refresh(invoice)

    LOGGER.info("invoice_item_removed", invoice_id=invoice.id, item_id=item_id, total=str(invoice.total))
    audit.record(
        table_name="invoice_items",
        record_id=item_id,
        operation="DELETE",
        old_values=before,
        new_values=None,
        changed_by=identity.email,
        request_id=request_id,
    )
    return invoice
