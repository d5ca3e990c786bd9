from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel


class CashierSessionActionRequest(BaseModel):
    action: Literal["OPEN", "WITHDRAW", "DEPOSIT", "CORRECTION", "CLOSE"]
    initial_amount: Decimal | None = None
    amount: Decimal | None = None
    counted_amount: Decimal | None = None
    terminal_id: str | None = None
    reason: str | None = None


class CashierSessionResponse(BaseModel):
    id: str
    operator_id: str
    terminal_id: str
    status: str
    initial_amount: Decimal
    current_amount: Decimal
    final_amount: Decimal | None
    notes: str | None
    opened_at: datetime
    closed_at: datetime | None


class CashierSessionCurrentResponse(BaseModel):
    session: CashierSessionResponse | None


class CashFlowEntryResponse(BaseModel):
    id: str
    session_id: str
    sequence: int
    operator_id: str
    operation_type: str
    amount: Decimal
    notes: str | None
    reference_id: str | None
    created_at: datetime


class CashFlowEntryListResponse(BaseModel):
    rows: list[CashFlowEntryResponse]
    total: int


class CashierSessionSummaryResponse(BaseModel):
    session_id: str
    operator_id: str
    terminal_id: str
    status: str
    opened_at: datetime
    closed_at: datetime | None
    initial_amount: Decimal
    cash_sales: Decimal
    refunds: Decimal
    withdrawals: Decimal
    deposits: Decimal
    corrections: Decimal
    expected_cash_amount: Decimal
    current_amount: Decimal
    difference: Decimal
    sales_count: int
    total_sales: Decimal
    totals_by_method: dict[str, Decimal]
    counted_amount: Decimal | None
    discrepancy: Decimal | None


class CashierSessionActionResponse(BaseModel):
    action: str
    session: CashierSessionResponse
    entry: CashFlowEntryResponse | None = None
    summary: CashierSessionSummaryResponse | None = None
