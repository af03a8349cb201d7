"""Derived invoice totals.

Totals are never edited by hand: after any change to an invoice's items the
caller runs ``recalculate_invoice_totals`` inside the same transaction as the
item change, so the stored subtotal/tax/total always match the stored items.
"""

from dataclasses import dataclass
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from invoice_backend.app.core.settings import get_settings
from invoice_backend.app.models.invoice import Invoice
from invoice_backend.app.models.invoice_item import InvoiceItem

# Currencies without a minor unit.
ZERO_DECIMAL_CURRENCIES = {"JPY", "KRW", "VND"}

CENT = Decimal("0.01")


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: Decimal
    tax: Decimal
    total: Decimal


def currency_quantum(currency: Optional[str]) -> Decimal:
    if (currency or "").upper() in ZERO_DECIMAL_CURRENCIES:
        return Decimal("1")
    return CENT


def resolve_item_amount(quantity, unit_price, amount=None) -> Decimal:
    """Use the explicit amount when given, otherwise quantity x unit price."""
    if amount is not None:
        return Decimal(str(amount)).quantize(CENT, rounding=ROUND_HALF_UP)
    price = Decimal(str(unit_price or 0))
    return (Decimal(str(quantity)) * price).quantize(CENT, rounding=ROUND_HALF_UP)


def compute_totals(subtotal: Decimal, tax_rate: Decimal, currency: Optional[str] = None) -> InvoiceTotals:
    subtotal = Decimal(str(subtotal)).quantize(CENT, rounding=ROUND_HALF_UP)
    # Consumption tax is truncated to the currency's smallest unit
    tax = (subtotal * Decimal(str(tax_rate))).quantize(currency_quantum(currency), rounding=ROUND_DOWN)
    return InvoiceTotals(subtotal=subtotal, tax=tax, total=subtotal + tax)


def sum_item_amounts(db: Session, invoice_id: str) -> Decimal:
    value = (
        db.query(func.coalesce(func.sum(InvoiceItem.amount), 0))
        .filter(InvoiceItem.invoice_id == invoice_id)
        .scalar()
    )
    return Decimal(str(value or 0))


def recalculate_invoice_totals(db: Session, invoice: Invoice) -> InvoiceTotals:
    """Recompute totals from the invoice's current items and stage them on the invoice.

    Pending item changes are flushed first so the aggregate sees them; the
    caller owns the commit.
    """
    settings = get_settings()
    db.flush()
    totals = compute_totals(sum_item_amounts(db, invoice.id), settings.tax_rate, invoice.currency)
    invoice.subtotal = totals.subtotal
    invoice.tax = totals.tax
    invoice.total = totals.total
    return totals
