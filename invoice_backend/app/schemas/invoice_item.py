"""Invoice item schemas."""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from invoice_backend.app.models.enums import ItemUnit


class InvoiceItemBase(BaseModel):
    delivery_date: Optional[date] = None
    description: str = Field(min_length=1, max_length=255)
    quantity: Decimal = Field(ge=0)
    unit: ItemUnit
    unit_price: Decimal = Field(default=Decimal("0"), ge=0)
    is_overtime: bool = False
    is_special: bool = False
    vehicle_no: Optional[str] = None
    driver_name: Optional[str] = None
    memo: Optional[str] = None


class InvoiceItemCreate(InvoiceItemBase):
    # Falls back to quantity x unit_price when omitted
    amount: Optional[Decimal] = Field(default=None, ge=0)


class InvoiceItemRead(InvoiceItemBase):
    model_config = ConfigDict(from_attributes=True)

    id: str
    invoice_id: str
    amount: Decimal
    created_at: datetime
