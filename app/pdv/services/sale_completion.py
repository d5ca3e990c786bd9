"""Turns a priced cart and its tenders into a completed sale.

The work is a fixed sequence of saga steps. Stock check, payment capture,
persistence and finalization are fatal; inventory, financial booking, the cash
leg of the drawer, fiscal issuance and loyalty accrual are best effort and
surface as warnings on the completed sale.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime

from app.pdv.core.context import OperatorContext
from app.pdv.core.error_catalog import AppError, ErrorCatalog
from app.pdv.core.logging import log_json
from app.pdv.core.money import money_str
from app.pdv.db.models import CashierSession, Sale, SaleLine, SalePayment
from app.pdv.domain.cart import Cart
from app.pdv.domain.payments import METHOD_CASH, CashTender, PaymentAllocator, PaymentTender, requires_capture
from app.pdv.services.cashier_ledger import CashierLedger
from app.pdv.services.collaborators import (
    FISCAL_DOCUMENT_TYPES,
    FinancialLedgerCollaborator,
    FiscalCollaborator,
    PaymentCaptureCollaborator,
    StockCollaborator,
)
from app.pdv.services.loyalty import LoyaltyService, points_for_total
from app.pdv.services.saga import SagaRunner, SagaStep, SagaWarning

logger = logging.getLogger("pdv.sales")

SALE_PENDING = "pending"
SALE_COMPLETED = "completed"
SALE_CANCELLED = "cancelled"

FISCAL_NONE = "none"


@dataclass
class SaleOutcome:
    sale: Sale
    warnings: list[SagaWarning] = field(default_factory=list)
    completed_steps: list[str] = field(default_factory=list)


@dataclass
class _CompletionState:
    sale_id: uuid.UUID
    operator_id: uuid.UUID
    session: CashierSession
    tenders: list[PaymentTender]
    sale: Sale | None = None

    def captured_transactions(self) -> list[dict]:
        return [
            {"method": tender.method, "transaction_id": tender.transaction_id}
            for tender in self.tenders
            if not isinstance(tender, CashTender) and tender.transaction_id
        ]


def as_uuid(value) -> uuid.UUID:
    return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))


class SaleCompletionService:
    def __init__(
        self,
        db,
        *,
        stock: StockCollaborator,
        payment_capture: PaymentCaptureCollaborator,
        financial: FinancialLedgerCollaborator,
        fiscal: FiscalCollaborator,
        ledger: CashierLedger | None = None,
        loyalty: LoyaltyService | None = None,
        spend_per_point: int = 10,
        trace_id: str = "",
    ):
        self.db = db
        self.stock = stock
        self.payment_capture = payment_capture
        self.financial = financial
        self.fiscal = fiscal
        self.ledger = ledger or CashierLedger(db, trace_id=trace_id)
        self.loyalty = loyalty or LoyaltyService(db)
        self.spend_per_point = spend_per_point
        self.trace_id = trace_id

    def complete_sale(
        self,
        cart: Cart,
        allocator: PaymentAllocator,
        operator: OperatorContext | None,
        *,
        fiscal_document_type: str = FISCAL_NONE,
        notes: str | None = None,
    ) -> SaleOutcome:
        if operator is None:
            raise AppError(ErrorCatalog.OPERATOR_NOT_AUTHENTICATED)
        operator_id = as_uuid(operator.operator_id)
        session = self.ledger.current(operator_id)
        if session is None:
            raise AppError(ErrorCatalog.CASHIER_SESSION_NOT_OPEN, details={"operator_id": str(operator_id)})
        if cart.is_empty:
            raise AppError(ErrorCatalog.CART_EMPTY)
        if allocator.total_paid < cart.total:
            raise AppError(
                ErrorCatalog.PAYMENT_INSUFFICIENT,
                details={"total": money_str(cart.total), "paid": money_str(allocator.total_paid)},
            )
        if fiscal_document_type not in FISCAL_DOCUMENT_TYPES:
            raise AppError(
                ErrorCatalog.VALIDATION_ERROR,
                details={"message": "unsupported fiscal document type", "fiscal_document_type": fiscal_document_type},
            )

        state = _CompletionState(
            sale_id=uuid.uuid4(),
            operator_id=operator_id,
            session=session,
            tenders=[tender for tender in allocator.tenders if tender.allocated > 0],
        )

        def check_stock() -> None:
            shortfalls = self.stock.check_availability(cart.lines)
            if shortfalls:
                raise AppError(
                    ErrorCatalog.STOCK_INSUFFICIENT,
                    details={
                        "items": [
                            {
                                "product_id": item.product_id,
                                "name": item.name,
                                "available": item.available,
                                "requested": item.requested,
                            }
                            for item in shortfalls
                        ]
                    },
                )

        def capture_payments() -> None:
            for index, tender in enumerate(state.tenders):
                if not requires_capture(tender):
                    continue
                result = self.payment_capture.capture(str(state.sale_id), tender.allocated, tender.method)
                if not result.success:
                    raise AppError(
                        ErrorCatalog.PAYMENT_DECLINED,
                        details={
                            "method": tender.method,
                            "message": result.message,
                            "captured_transactions": state.captured_transactions(),
                        },
                    )
                state.tenders[index] = replace(
                    tender,
                    transaction_id=result.transaction_id,
                    authorization_code=result.authorization_code,
                )

        def persist() -> None:
            try:
                state.sale = self._persist_sale(state, cart, allocator, operator, fiscal_document_type, notes)
            except Exception as exc:
                raise AppError(
                    ErrorCatalog.SALE_PERSIST_FAILED,
                    details={
                        "step": "persist",
                        "message": str(exc) or exc.__class__.__name__,
                        "captured_transactions": state.captured_transactions(),
                    },
                ) from exc

        def decrement_inventory() -> None:
            self.stock.decrement(state.sale.lines, state.sale)

        def book_financial() -> None:
            self.financial.register_sale(state.sale)

        def record_cash_leg() -> None:
            for payment in state.sale.payments:
                if payment.method == METHOD_CASH and payment.amount > 0:
                    self.ledger.record_sale(state.session.id, state.operator_id, state.sale.id, payment.amount)

        def issue_fiscal() -> None:
            document = self.fiscal.issue(state.sale, state.sale.lines, fiscal_document_type)
            state.sale.fiscal_document_id = document.id
            state.sale.fiscal_document_number = document.number
            state.sale.fiscal_document_status = document.status
            self.db.commit()

        def finalize() -> None:
            state.sale.status = SALE_COMPLETED
            state.sale.completed_at = datetime.utcnow()
            self.db.commit()

        def accrue_loyalty() -> None:
            sale = state.sale
            self.loyalty.accrue(sale.customer_id, earned=sale.points_earned, spent=sale.points_spent)

        steps = [
            SagaStep("stock_check", check_stock, fatal=True, failure=ErrorCatalog.STOCK_CHECK_FAILED),
            SagaStep("payment_capture", capture_payments, fatal=True, failure=ErrorCatalog.PAYMENT_DECLINED),
            SagaStep("persist", persist, fatal=True, failure=ErrorCatalog.SALE_PERSIST_FAILED),
            SagaStep("inventory", decrement_inventory),
            SagaStep("financial", book_financial),
            SagaStep("cash_leg", record_cash_leg),
        ]
        if fiscal_document_type != FISCAL_NONE:
            steps.append(SagaStep("fiscal", issue_fiscal))
        steps.append(SagaStep("finalize", finalize, fatal=True, failure=ErrorCatalog.SALE_FINALIZE_FAILED))
        if cart.customer is not None:
            steps.append(SagaStep("loyalty", accrue_loyalty))

        runner = SagaRunner("sale_completion", on_step_error=self._rollback, trace_id=self.trace_id)
        result = runner.run(steps)
        log_json(
            logger,
            {
                "event": "sale_completed",
                "sale_id": str(state.sale.id),
                "operator_id": str(state.operator_id),
                "total": money_str(state.sale.total),
                "warnings": [warning.step for warning in result.warnings],
                "trace_id": self.trace_id,
            },
        )
        return SaleOutcome(sale=state.sale, warnings=result.warnings, completed_steps=result.completed_steps)

    def _persist_sale(
        self,
        state: _CompletionState,
        cart: Cart,
        allocator: PaymentAllocator,
        operator: OperatorContext,
        fiscal_document_type: str,
        notes: str | None,
    ) -> Sale:
        discount_amount = cart.discount_amount
        total = cart.total
        sale = Sale(
            id=state.sale_id,
            operator_id=state.operator_id,
            terminal_id=operator.terminal_id or state.session.terminal_id,
            cashier_session_id=state.session.id,
            customer_id=as_uuid(cart.customer.id) if cart.customer is not None else None,
            status=SALE_PENDING,
            subtotal=cart.subtotal,
            discount_amount=discount_amount,
            discount_type=cart.discount.kind if discount_amount > 0 else None,
            discount_reason=cart.discount.reason if discount_amount > 0 else None,
            tax_amount=cart.tax_amount,
            total=total,
            change_amount=allocator.change,
            points_earned=points_for_total(total, self.spend_per_point) if cart.customer is not None else 0,
            points_spent=cart.points_spent,
            fiscal_document_type=fiscal_document_type,
            fiscal_document_status=None if fiscal_document_type == FISCAL_NONE else "pending",
            notes=notes,
            created_at=datetime.utcnow(),
        )
        sale.lines = [
            SaleLine(
                position=position,
                product_id=as_uuid(line.product_id),
                sku=line.sku,
                name=line.name,
                quantity=line.quantity,
                unit_price=line.unit_price,
                discount=line.discount,
                total=line.total,
                tax_rate=line.tax_rate,
                tax_amount=line.tax_amount,
            )
            for position, line in enumerate(cart.lines, start=1)
        ]
        sale.payments = [
            SalePayment(
                position=position,
                method=tender.method,
                amount=tender.allocated,
                received_amount=tender.received if isinstance(tender, CashTender) else None,
                change_amount=tender.change if isinstance(tender, CashTender) else None,
                transaction_id=None if isinstance(tender, CashTender) else tender.transaction_id,
                authorization_code=None if isinstance(tender, CashTender) else tender.authorization_code,
            )
            for position, tender in enumerate(state.tenders, start=1)
        ]
        self.db.add(sale)
        self.db.commit()
        return sale

    def _rollback(self, step: SagaStep, exc: Exception) -> None:
        self.db.rollback()
