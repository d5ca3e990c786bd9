from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field

PaymentMethod = Literal["cash", "card_credit", "card_debit", "pix", "voucher", "other"]
FiscalDocumentType = Literal["nfce", "nfe", "sat", "cfe", "none"]


class CartLineRequest(BaseModel):
    product_id: UUID
    qty: int = 1


class DiscountRequest(BaseModel):
    kind: Literal["percentage", "value", "points"]
    value: Decimal
    reason: str | None = None


class TenderRequest(BaseModel):
    method: PaymentMethod
    amount: Decimal | None = None
    received_amount: Decimal | None = None


class SaleRequest(BaseModel):
    model_config = {
        "json_schema_extra": {
            "example": {
                "lines": [{"product_id": "6f1c7a52-7c1f-4b55-9a4b-0d1c2b3a4f50", "qty": 2}],
                "customer_id": None,
                "discount": {"kind": "percentage", "value": "10", "reason": "promo"},
                "payments": [{"method": "cash", "received_amount": "50.00"}],
                "fiscal_document_type": "none",
            }
        }
    }

    lines: list[CartLineRequest] = Field(default_factory=list)
    customer_id: UUID | None = None
    discount: DiscountRequest | None = None
    payments: list[TenderRequest] = Field(default_factory=list)
    fiscal_document_type: FiscalDocumentType | None = None
    notes: str | None = None


class QuoteLineResponse(BaseModel):
    product_id: str
    sku: str
    name: str
    quantity: int
    unit_price: Decimal
    total: Decimal
    tax_rate: Decimal
    tax_amount: Decimal


class TenderResponse(BaseModel):
    method: str
    amount: Decimal
    received_amount: Decimal | None = None
    change_amount: Decimal | None = None
    transaction_id: str | None = None
    authorization_code: str | None = None


class SaleQuoteResponse(BaseModel):
    lines: list[QuoteLineResponse]
    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    total: Decimal
    total_paid: Decimal
    change: Decimal | None
    points_spent: int
    can_complete: bool
    tenders: list[TenderResponse]


class SaleLineResponse(BaseModel):
    id: str
    position: int
    product_id: str
    sku: str
    name: str
    quantity: int
    unit_price: Decimal
    total: Decimal
    tax_rate: Decimal
    tax_amount: Decimal


class SaleResponse(BaseModel):
    id: str
    status: str
    operator_id: str
    terminal_id: str
    cashier_session_id: str
    customer_id: str | None
    subtotal: Decimal
    discount_amount: Decimal
    discount_type: str | None
    discount_reason: str | None
    tax_amount: Decimal
    total: Decimal
    change_amount: Decimal | None
    points_earned: int
    points_spent: int
    fiscal_document_type: str
    fiscal_document_id: str | None
    fiscal_document_number: str | None
    fiscal_document_status: str | None
    notes: str | None
    created_at: datetime
    completed_at: datetime | None
    cancelled_at: datetime | None
    lines: list[SaleLineResponse]
    payments: list[TenderResponse]


class SagaWarningResponse(BaseModel):
    step: str
    message: str
    code: str | None = None


class SaleOutcomeResponse(BaseModel):
    sale: SaleResponse
    warnings: list[SagaWarningResponse]


class SaleCancelRequest(BaseModel):
    reason: str = Field(min_length=1)
