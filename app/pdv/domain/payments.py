from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Union

from app.pdv.core.error_catalog import AppError, ErrorCatalog
from app.pdv.core.money import ZERO, to_money
from app.pdv.domain.cart import Cart

METHOD_CASH = "cash"
METHOD_CARD_CREDIT = "card_credit"
METHOD_CARD_DEBIT = "card_debit"
METHOD_PIX = "pix"
METHOD_VOUCHER = "voucher"
METHOD_OTHER = "other"

PAYMENT_METHODS = (
    METHOD_CASH,
    METHOD_CARD_CREDIT,
    METHOD_CARD_DEBIT,
    METHOD_PIX,
    METHOD_VOUCHER,
    METHOD_OTHER,
)
NON_CAPTURED_METHODS = frozenset({METHOD_CASH, METHOD_OTHER})


@dataclass(frozen=True)
class CashTender:
    allocated: Decimal = ZERO
    received: Decimal | None = None
    change: Decimal | None = None

    method = METHOD_CASH


@dataclass(frozen=True)
class NonCashTender:
    method: str
    allocated: Decimal = ZERO
    transaction_id: str | None = None
    authorization_code: str | None = None


PaymentTender = Union[CashTender, NonCashTender]


def requires_capture(tender: PaymentTender) -> bool:
    return tender.method not in NON_CAPTURED_METHODS


def _validate_method(method: str) -> None:
    if method not in PAYMENT_METHODS:
        raise AppError(
            ErrorCatalog.VALIDATION_ERROR,
            details={"message": "unsupported payment method", "method": method},
        )


def _validate_amount(amount: Decimal) -> Decimal:
    amount = to_money(amount)
    if amount < 0:
        raise AppError(
            ErrorCatalog.VALIDATION_ERROR,
            details={"message": "amount must be >= 0", "amount": format(amount, "f")},
        )
    return amount


class PaymentAllocator:
    """Distributes tendered amounts over payment methods for the cart's total.

    The tender list always holds at least one tender and at most one cash tender.
    """

    def __init__(self, cart: Cart):
        self.cart = cart
        self.tenders: list[PaymentTender] = [CashTender()]

    @property
    def total(self) -> Decimal:
        return self.cart.total

    def _cash_index(self) -> int | None:
        for index, tender in enumerate(self.tenders):
            if isinstance(tender, CashTender):
                return index
        return None

    def _tender_at(self, index: int) -> PaymentTender:
        if index < 0 or index >= len(self.tenders):
            raise AppError(
                ErrorCatalog.VALIDATION_ERROR,
                details={"message": "tender index out of range", "index": index},
            )
        return self.tenders[index]

    def set_tender_method(self, index: int, method: str) -> None:
        _validate_method(method)
        tender = self._tender_at(index)
        if tender.method == method:
            return
        if method == METHOD_CASH:
            cash_index = self._cash_index()
            if cash_index is not None and cash_index != index:
                raise AppError(ErrorCatalog.CASH_TENDER_DUPLICATE, details={"index": index})
            self.tenders[index] = CashTender(allocated=tender.allocated)
        else:
            self.tenders[index] = NonCashTender(method=method, allocated=tender.allocated)

    def set_tender_amount(self, index: int, amount: Decimal | int | float | str) -> None:
        tender = self._tender_at(index)
        allocated = _validate_amount(Decimal(str(amount)))
        if isinstance(tender, CashTender) and tender.received is not None:
            # Cash handed over bounds what the tender can cover.
            if allocated > tender.received:
                raise AppError(
                    ErrorCatalog.VALIDATION_ERROR,
                    details={
                        "message": "cash amount exceeds received amount",
                        "amount": format(allocated, "f"),
                        "received_amount": format(tender.received, "f"),
                    },
                )
            change = tender.received - allocated if tender.received > allocated else None
            self.tenders[index] = replace(tender, allocated=allocated, change=change)
            return
        self.tenders[index] = replace(tender, allocated=allocated)

    def add_tender(self, method: str = METHOD_CARD_CREDIT, amount: Decimal | int | float | str = ZERO) -> int:
        _validate_method(method)
        allocated = _validate_amount(Decimal(str(amount)))
        if method == METHOD_CASH:
            if self._cash_index() is not None:
                raise AppError(ErrorCatalog.CASH_TENDER_DUPLICATE)
            self.tenders.append(CashTender(allocated=allocated))
        else:
            self.tenders.append(NonCashTender(method=method, allocated=allocated))
        return len(self.tenders) - 1

    def remove_tender(self, index: int) -> None:
        if len(self.tenders) <= 1:
            return
        self._tender_at(index)
        del self.tenders[index]

    def set_cash_received(self, amount: Decimal | int | float | str) -> CashTender:
        received = _validate_amount(Decimal(str(amount)))
        total = self.total
        allocated = min(received, total)
        change = received - total if received > total else None
        tender = CashTender(allocated=allocated, received=received, change=change)
        cash_index = self._cash_index()
        if cash_index is None:
            self.tenders.append(tender)
        else:
            self.tenders[cash_index] = tender
        return tender

    @property
    def cash_tender(self) -> CashTender | None:
        cash_index = self._cash_index()
        return None if cash_index is None else self.tenders[cash_index]

    @property
    def total_paid(self) -> Decimal:
        return sum((tender.allocated for tender in self.tenders), ZERO)

    @property
    def change(self) -> Decimal | None:
        cash = self.cash_tender
        return cash.change if cash is not None else None

    @property
    def can_complete(self) -> bool:
        return not self.cart.is_empty and self.total_paid >= self.total
