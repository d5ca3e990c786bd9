from __future__ import annotations

import logging
from datetime import datetime

from app.pdv.core.context import OperatorContext
from app.pdv.core.error_catalog import AppError, ErrorCatalog
from app.pdv.core.logging import log_json
from app.pdv.domain.payments import METHOD_CASH
from app.pdv.repos.sales import SaleRepository
from app.pdv.services.cashier_ledger import SESSION_OPEN, CashierLedger
from app.pdv.services.collaborators import (
    FinancialLedgerCollaborator,
    FiscalCollaborator,
    FiscalServiceError,
    StockCollaborator,
)
from app.pdv.services.loyalty import LoyaltyService
from app.pdv.services.sale_completion import SALE_CANCELLED, SALE_COMPLETED, SaleOutcome, as_uuid
from app.pdv.services.saga import SagaRunner, SagaStep

logger = logging.getLogger("pdv.sales")


class CancellationService:
    """Reverses the effects of a completed sale, then marks it cancelled.

    Every reversal is best effort; only the final status change is fatal.
    """

    def __init__(
        self,
        db,
        *,
        stock: StockCollaborator,
        financial: FinancialLedgerCollaborator,
        fiscal: FiscalCollaborator,
        ledger: CashierLedger | None = None,
        loyalty: LoyaltyService | None = None,
        trace_id: str = "",
    ):
        self.db = db
        self.sales = SaleRepository(db)
        self.stock = stock
        self.financial = financial
        self.fiscal = fiscal
        self.ledger = ledger or CashierLedger(db, trace_id=trace_id)
        self.loyalty = loyalty or LoyaltyService(db)
        self.trace_id = trace_id

    def cancel_sale(self, sale_id, reason: str, operator: OperatorContext | None) -> SaleOutcome:
        if operator is None:
            raise AppError(ErrorCatalog.OPERATOR_NOT_AUTHENTICATED)
        if not reason or not reason.strip():
            raise AppError(ErrorCatalog.VALIDATION_ERROR, details={"message": "reason is required"})
        operator_id = as_uuid(operator.operator_id)
        sale = self.sales.get_for_update(as_uuid(sale_id))
        if sale is None:
            raise AppError(ErrorCatalog.SALE_NOT_FOUND, details={"sale_id": str(sale_id)})
        if sale.status == SALE_CANCELLED:
            raise AppError(ErrorCatalog.SALE_ALREADY_CANCELLED, details={"sale_id": str(sale.id)})
        if sale.status != SALE_COMPLETED:
            raise AppError(ErrorCatalog.SALE_NOT_COMPLETED, details={"sale_id": str(sale.id), "status": sale.status})

        def cancel_fiscal() -> None:
            result = self.fiscal.cancel(sale.fiscal_document_id, reason)
            if not result.success:
                raise FiscalServiceError(result.message or "fiscal cancellation failed")
            sale.fiscal_document_status = "cancelled"
            self.db.commit()

        def restock() -> None:
            self.stock.restock(sale.lines, sale)

        def reverse_financial() -> None:
            self.financial.register_cancellation(sale)

        def refund_cash() -> None:
            cash_amount = sum(payment.amount for payment in sale.payments if payment.method == METHOD_CASH)
            if cash_amount <= 0:
                return
            session = self.ledger.sessions.get_by_id(sale.cashier_session_id)
            if session is None or session.status != SESSION_OPEN:
                session = self.ledger.current(operator_id)
            if session is None:
                raise AppError(
                    ErrorCatalog.CASHIER_SESSION_NOT_OPEN,
                    details={"message": "no open cashier session to refund cash from"},
                )
            self.ledger.record_refund(session.id, operator_id, sale.id, cash_amount)

        def reverse_loyalty() -> None:
            self.loyalty.reverse(sale.customer_id, earned=sale.points_earned, spent=sale.points_spent)

        def mark_cancelled() -> None:
            sale.status = SALE_CANCELLED
            sale.cancelled_at = datetime.utcnow()
            note = f"Cancelled: {reason.strip()}"
            sale.notes = f"{sale.notes}\n{note}" if sale.notes else note
            self.db.commit()

        steps = []
        if sale.fiscal_document_id:
            steps.append(SagaStep("fiscal_cancel", cancel_fiscal))
        steps.extend(
            [
                SagaStep("restock", restock),
                SagaStep("financial_reversal", reverse_financial),
                SagaStep("cash_refund", refund_cash),
            ]
        )
        if sale.customer_id is not None and (sale.points_earned or sale.points_spent):
            steps.append(SagaStep("loyalty_reversal", reverse_loyalty))
        steps.append(SagaStep("mark_cancelled", mark_cancelled, fatal=True, failure=ErrorCatalog.SALE_CANCEL_FAILED))

        runner = SagaRunner("sale_cancellation", on_step_error=self._rollback, trace_id=self.trace_id)
        result = runner.run(steps)
        log_json(
            logger,
            {
                "event": "sale_cancelled",
                "sale_id": str(sale.id),
                "operator_id": str(operator_id),
                "warnings": [warning.step for warning in result.warnings],
                "trace_id": self.trace_id,
            },
        )
        return SaleOutcome(sale=sale, warnings=result.warnings, completed_steps=result.completed_steps)

    def _rollback(self, step: SagaStep, exc: Exception) -> None:
        self.db.rollback()
