from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Protocol, Sequence

from sqlalchemy import select

from app.pdv.db.models import FinancialTransaction, InventoryMovement, Product, Sale
from app.pdv.domain.payments import METHOD_CARD_CREDIT, METHOD_CARD_DEBIT, METHOD_PIX, NON_CAPTURED_METHODS

logger = logging.getLogger(__name__)

FISCAL_DOCUMENT_TYPES = ("nfce", "nfe", "sat", "cfe", "none")
FISCAL_STATUSES = ("pending", "processing", "issued", "rejected", "cancelled")


class StockLine(Protocol):
    product_id: object
    quantity: int


@dataclass(frozen=True)
class StockShortfall:
    product_id: str
    name: str
    available: int
    requested: int


@dataclass(frozen=True)
class CaptureResult:
    success: bool
    transaction_id: str | None = None
    authorization_code: str | None = None
    message: str = ""


@dataclass(frozen=True)
class FiscalDocument:
    id: str
    number: str
    status: str
    message: str | None = None


@dataclass(frozen=True)
class FiscalCancelResult:
    success: bool
    message: str = ""


class FiscalServiceError(Exception):
    pass


class StockCollaborator(Protocol):
    def check_availability(self, lines: Sequence[StockLine]) -> list[StockShortfall]: ...

    def decrement(self, lines: Sequence[StockLine], sale: Sale) -> None: ...

    def restock(self, lines: Sequence[StockLine], sale: Sale) -> None: ...


class PaymentCaptureCollaborator(Protocol):
    def capture(self, sale_ref: str, amount: Decimal, method: str) -> CaptureResult: ...


class FiscalCollaborator(Protocol):
    def issue(self, sale: Sale, lines: Sequence[object], document_type: str) -> FiscalDocument: ...

    def cancel(self, document_id: str, reason: str) -> FiscalCancelResult: ...


class FinancialLedgerCollaborator(Protocol):
    def register_sale(self, sale: Sale) -> None: ...

    def register_cancellation(self, sale: Sale) -> None: ...


def _requested_quantities(lines: Iterable[StockLine]) -> dict[str, int]:
    requested: dict[str, int] = {}
    for line in lines:
        key = str(line.product_id)
        requested[key] = requested.get(key, 0) + int(line.quantity)
    return requested


class SqlStockCollaborator:
    """Inventory backed by ``products.stock_quantity`` with a movement log."""

    def __init__(self, db):
        self.db = db

    def check_availability(self, lines: Sequence[StockLine]) -> list[StockShortfall]:
        shortfalls = []
        for product_id, quantity in _requested_quantities(lines).items():
            product = self.db.execute(select(Product).where(Product.id == product_id)).scalars().first()
            if product is None or not product.is_active:
                shortfalls.append(
                    StockShortfall(product_id=product_id, name="product not found", available=0, requested=quantity)
                )
                continue
            if product.stock_quantity < quantity:
                shortfalls.append(
                    StockShortfall(
                        product_id=product_id,
                        name=product.name,
                        available=product.stock_quantity,
                        requested=quantity,
                    )
                )
        return shortfalls

    def decrement(self, lines: Sequence[StockLine], sale: Sale) -> None:
        self._apply(lines, sale, sign=-1, operation_type="sale", reference_type="sale")

    def restock(self, lines: Sequence[StockLine], sale: Sale) -> None:
        self._apply(lines, sale, sign=1, operation_type="adjustment", reference_type="cancellation")

    def _apply(self, lines, sale: Sale, *, sign: int, operation_type: str, reference_type: str) -> None:
        now = datetime.utcnow()
        try:
            for product_id, quantity in _requested_quantities(lines).items():
                product = (
                    self.db.execute(select(Product).where(Product.id == product_id).with_for_update())
                    .scalars()
                    .first()
                )
                if product is None:
                    raise LookupError(f"product {product_id} not found")
                product.stock_quantity = product.stock_quantity + sign * quantity
                product.updated_at = now
                self.db.add(
                    InventoryMovement(
                        product_id=product.id,
                        quantity=sign * quantity,
                        operation_type=operation_type,
                        reference_id=sale.id,
                        reference_type=reference_type,
                        operator_id=sale.operator_id,
                        notes=f"{reference_type} {sale.id}",
                        created_at=now,
                    )
                )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise


class SqlFinancialLedger:
    """Books one financial transaction per tender of a sale."""

    def __init__(self, db):
        self.db = db

    def register_sale(self, sale: Sale) -> None:
        self._book(sale, transaction_type="income", reference_type="sale", description=f"Sale {sale.id}")

    def register_cancellation(self, sale: Sale) -> None:
        self._book(
            sale,
            transaction_type="expense",
            reference_type="cancellation",
            description=f"Cancellation of sale {sale.id}",
        )

    def _book(self, sale: Sale, *, transaction_type: str, reference_type: str, description: str) -> None:
        now = datetime.utcnow()
        try:
            for payment in sale.payments:
                self.db.add(
                    FinancialTransaction(
                        type=transaction_type,
                        amount=payment.amount,
                        payment_method=payment.method,
                        description=description,
                        reference_id=sale.id,
                        reference_type=reference_type,
                        cashier_session_id=sale.cashier_session_id,
                        operator_id=sale.operator_id,
                        status="completed",
                        created_at=now,
                    )
                )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise


class LocalPaymentCapture:
    """Approves every capture locally, for terminals without a gateway."""

    _PREFIXES = {METHOD_CARD_CREDIT: "TR", METHOD_CARD_DEBIT: "TR", METHOD_PIX: "PIX"}

    def capture(self, sale_ref: str, amount: Decimal, method: str) -> CaptureResult:
        if method in NON_CAPTURED_METHODS:
            return CaptureResult(success=True, message=f"{method} payment registered")
        prefix = self._PREFIXES.get(method, "PAY")
        logger.info("Approving %s payment of %s for sale %s locally", method, amount, sale_ref)
        return CaptureResult(
            success=True,
            transaction_id=f"{prefix}{uuid.uuid4().hex[:12].upper()}",
            authorization_code=uuid.uuid4().hex[:8].upper() if method in (METHOD_CARD_CREDIT, METHOD_CARD_DEBIT) else None,
            message=f"{method} payment authorized",
        )


class DisabledFiscalCollaborator:
    """Fiscal integration placeholder used when no fiscal service is configured."""

    def issue(self, sale: Sale, lines: Sequence[object], document_type: str) -> FiscalDocument:
        raise FiscalServiceError("fiscal service is not configured")

    def cancel(self, document_id: str, reason: str) -> FiscalCancelResult:
        return FiscalCancelResult(success=False, message="fiscal service is not configured")
