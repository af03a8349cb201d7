"""Invoice PDF rendering.

HTML comes from a Jinja2 template; turning it into PDF bytes is delegated to
a ``PdfConverter`` (WeasyPrint by default). No DB writes happen here.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from time import perf_counter
from typing import Any, Protocol

import structlog
from jinja2 import Environment, FileSystemLoader, select_autoescape

from invoice_backend.app.core.errors import PdfGenerationFailed
from invoice_backend.app.core.metrics import pdf_generation_seconds
from invoice_backend.app.core.settings import get_settings
from invoice_backend.app.models.invoice import Invoice
from invoice_backend.app.services import storage
from invoice_backend.app.services.aggregator import currency_quantum

LOGGER = structlog.get_logger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"

UNIT_LABELS = {
    "stop": "stops",
    "km": "km",
    "hour": "hours",
    "other": "other",
}

PAGE_CSS = "@page { size: A4; margin: 2cm 1cm 2cm 1cm; }"

_environment = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(["html"]),
    trim_blocks=True,
    lstrip_blocks=True,
)


def format_money(value: Any, currency: str = "JPY") -> str:
    amount = Decimal(str(value or 0)).quantize(currency_quantum(currency))
    if currency.upper() == "JPY":
        return f"¥{amount:,}"
    return f"{amount:,} {currency}"


def format_date(value: Any) -> str:
    if not value:
        return ""
    return value.strftime("%Y-%m-%d")


_environment.filters["money"] = format_money
_environment.filters["date"] = format_date
_environment.filters["unit"] = lambda unit: UNIT_LABELS.get(unit, unit)


def _company() -> dict[str, str]:
    settings = get_settings()
    return {
        "name": settings.company_name,
        "address": settings.company_address,
        "phone": settings.company_phone,
        "email": settings.company_email,
        "registration": settings.company_registration,
        "bank_info": settings.company_bank,
    }


def build_invoice_context(invoice: Invoice) -> dict[str, Any]:
    items = sorted(invoice.items, key=lambda item: (item.delivery_date is None, item.delivery_date))
    totals_by_unit: dict[str, Decimal] = {}
    for item in items:
        totals_by_unit[item.unit] = totals_by_unit.get(item.unit, Decimal("0")) + Decimal(str(item.quantity))
    return {
        "invoice": invoice,
        "partner": invoice.partner,
        "items": items,
        "currency": invoice.currency,
        "company": _company(),
        "has_special_items": any(item.is_overtime or item.is_special for item in items),
        "item_count": len(items),
        "total_stops": totals_by_unit.get("stop"),
        "total_km": totals_by_unit.get("km"),
        "total_hours": totals_by_unit.get("hour"),
        "page_css": PAGE_CSS,
    }


def render_invoice_html(invoice: Invoice) -> str:
    template = _environment.get_template("invoice.html")
    return template.render(**build_invoice_context(invoice))


def generate_invoice_filename(invoice: Invoice) -> str:
    """invoice_{YYYYMM}_{partner}_{invoice_no}.pdf with filesystem-safe segments."""
    partner_name = invoice.partner.name if invoice.partner else "partner"
    safe_partner = re.sub(r"[^\w]", "_", partner_name)[:20]
    safe_invoice_no = re.sub(r"[^A-Za-z0-9_-]", "_", invoice.invoice_no)
    return f"invoice_{invoice.period_start:%Y%m}_{safe_partner}_{safe_invoice_no}.pdf"


class PdfConverter(Protocol):
    def convert(self, html: str) -> bytes: ...


class WeasyPrintConverter:
    def __init__(self, base_url: str | None = None):
        self.base_url = base_url or str(TEMPLATES_DIR)

    def convert(self, html: str) -> bytes:
        # Imported lazily: WeasyPrint needs native Pango libraries at import time
        from weasyprint import HTML

        return HTML(string=html, base_url=self.base_url).write_pdf()


def get_pdf_converter() -> PdfConverter:
    return WeasyPrintConverter()


@dataclass(frozen=True)
class RenderedPdf:
    filename: str
    content: bytes


def generate_invoice_pdf(invoice: Invoice, converter: PdfConverter) -> RenderedPdf:
    filename = generate_invoice_filename(invoice)
    html = render_invoice_html(invoice)
    start = perf_counter()
    try:
        content = converter.convert(html)
    except Exception as exc:
        LOGGER.error("pdf_generation_failed", invoice_id=invoice.id, error=str(exc))
        raise PdfGenerationFailed() from exc
    elapsed = perf_counter() - start
    pdf_generation_seconds.observe(elapsed)
    LOGGER.info("pdf_generated", invoice_id=invoice.id, filename=filename, bytes=len(content))
    return RenderedPdf(filename=filename, content=content)


def save_invoice_pdf(invoice: Invoice, converter: PdfConverter) -> dict[str, Any]:
    """Render, upload and return a signed URL for the stored copy."""
    rendered = generate_invoice_pdf(invoice, converter)
    key = storage.build_object_key(
        rendered.filename,
        partner_code=invoice.partner.billing_code if invoice.partner else None,
        reference_date=invoice.period_start,
    )
    storage.upload_bytes(rendered.content, key=key, content_type="application/pdf")
    url = storage.generate_signed_url(key, download_name=rendered.filename)
    return {
        "success": True,
        "url": url,
        "path": key,
        "filename": rendered.filename,
        "bytes": len(rendered.content),
    }
