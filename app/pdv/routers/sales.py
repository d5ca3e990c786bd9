from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, Depends, Request

from app.pdv.core.config import settings
from app.pdv.core.context import OperatorContext
from app.pdv.core.deps import (
    get_financial_ledger,
    get_fiscal,
    get_payment_capture,
    get_stock,
    require_operator_context,
)
from app.pdv.core.error_catalog import AppError, ErrorCatalog
from app.pdv.core.money import ZERO, to_money
from app.pdv.db.models import Sale
from app.pdv.db.session import get_db
from app.pdv.domain.cart import Cart, CustomerSnapshot, ProductSnapshot
from app.pdv.domain.payments import METHOD_CASH, CashTender, PaymentAllocator, PaymentTender
from app.pdv.repos.catalog import CatalogRepository
from app.pdv.repos.sales import SaleRepository
from app.pdv.schemas.sales import (
    QuoteLineResponse,
    SaleCancelRequest,
    SaleLineResponse,
    SaleOutcomeResponse,
    SaleQuoteResponse,
    SaleRequest,
    SaleResponse,
    SagaWarningResponse,
    TenderResponse,
)
from app.pdv.services.cancellation import CancellationService
from app.pdv.services.cashier_ledger import CashierLedger
from app.pdv.services.sale_completion import SaleCompletionService, SaleOutcome

router = APIRouter()


def _optional_money(value: Decimal | None) -> Decimal | None:
    return to_money(value) if value is not None else None


def _build_cart(db, payload: SaleRequest) -> Cart:
    catalog = CatalogRepository(db)
    cart = Cart(point_value=Decimal(settings.LOYALTY_POINT_VALUE))
    if payload.customer_id is not None:
        customer = catalog.get_customer(payload.customer_id)
        if customer is None or not customer.is_active:
            raise AppError(ErrorCatalog.CUSTOMER_NOT_FOUND, details={"customer_id": str(payload.customer_id)})
        cart.set_customer(
            CustomerSnapshot(
                id=str(customer.id),
                name=customer.name,
                points=customer.points,
                discount_rate=customer.discount_rate,
            )
        )
    for line in payload.lines:
        product = catalog.get_product(line.product_id)
        if product is None or not product.is_active:
            raise AppError(ErrorCatalog.PRODUCT_NOT_FOUND, details={"product_id": str(line.product_id)})
        cart.add_item(
            ProductSnapshot(
                id=str(product.id),
                sku=product.sku,
                name=product.name,
                price=product.price,
                tax_rate=product.tax_rate,
            ),
            line.qty,
        )
    if payload.discount is not None:
        cart.set_discount(payload.discount.kind, payload.discount.value, payload.discount.reason)
    return cart


def _build_allocator(cart: Cart, payload: SaleRequest) -> PaymentAllocator:
    allocator = PaymentAllocator(cart)
    cash_requested = False
    for tender in payload.payments:
        outstanding = max(cart.total - allocator.total_paid, ZERO)
        if tender.method == METHOD_CASH:
            if cash_requested:
                raise AppError(ErrorCatalog.CASH_TENDER_DUPLICATE)
            cash_requested = True
            if tender.received_amount is not None:
                allocator.set_cash_received(tender.received_amount)
            else:
                allocator.set_tender_amount(0, tender.amount if tender.amount is not None else outstanding)
        else:
            allocator.add_tender(tender.method, tender.amount if tender.amount is not None else outstanding)
    if not cash_requested and len(allocator.tenders) > 1:
        allocator.remove_tender(0)
    return allocator


def _tender_response(tender: PaymentTender) -> TenderResponse:
    if isinstance(tender, CashTender):
        return TenderResponse(
            method=tender.method,
            amount=to_money(tender.allocated),
            received_amount=_optional_money(tender.received),
            change_amount=_optional_money(tender.change),
        )
    return TenderResponse(
        method=tender.method,
        amount=to_money(tender.allocated),
        transaction_id=tender.transaction_id,
        authorization_code=tender.authorization_code,
    )


def _sale_response(sale: Sale) -> SaleResponse:
    return SaleResponse(
        id=str(sale.id),
        status=sale.status,
        operator_id=str(sale.operator_id),
        terminal_id=sale.terminal_id,
        cashier_session_id=str(sale.cashier_session_id),
        customer_id=str(sale.customer_id) if sale.customer_id else None,
        subtotal=to_money(sale.subtotal),
        discount_amount=to_money(sale.discount_amount),
        discount_type=sale.discount_type,
        discount_reason=sale.discount_reason,
        tax_amount=to_money(sale.tax_amount),
        total=to_money(sale.total),
        change_amount=_optional_money(sale.change_amount),
        points_earned=sale.points_earned,
        points_spent=sale.points_spent,
        fiscal_document_type=sale.fiscal_document_type,
        fiscal_document_id=sale.fiscal_document_id,
        fiscal_document_number=sale.fiscal_document_number,
        fiscal_document_status=sale.fiscal_document_status,
        notes=sale.notes,
        created_at=sale.created_at,
        completed_at=sale.completed_at,
        cancelled_at=sale.cancelled_at,
        lines=[
            SaleLineResponse(
                id=str(line.id),
                position=line.position,
                product_id=str(line.product_id),
                sku=line.sku,
                name=line.name,
                quantity=line.quantity,
                unit_price=to_money(line.unit_price),
                total=to_money(line.total),
                tax_rate=line.tax_rate,
                tax_amount=to_money(line.tax_amount),
            )
            for line in sale.lines
        ],
        payments=[
            TenderResponse(
                method=payment.method,
                amount=to_money(payment.amount),
                received_amount=_optional_money(payment.received_amount),
                change_amount=_optional_money(payment.change_amount),
                transaction_id=payment.transaction_id,
                authorization_code=payment.authorization_code,
            )
            for payment in sale.payments
        ],
    )


def _outcome_response(outcome: SaleOutcome) -> SaleOutcomeResponse:
    return SaleOutcomeResponse(
        sale=_sale_response(outcome.sale),
        warnings=[
            SagaWarningResponse(step=warning.step, message=warning.message, code=warning.code)
            for warning in outcome.warnings
        ],
    )


@router.post("/pdv/sales/quote", response_model=SaleQuoteResponse)
def quote_sale(
    payload: SaleRequest,
    _operator: OperatorContext = Depends(require_operator_context),
    db=Depends(get_db),
):
    cart = _build_cart(db, payload)
    allocator = _build_allocator(cart, payload)
    return SaleQuoteResponse(
        lines=[
            QuoteLineResponse(
                product_id=line.product_id,
                sku=line.sku,
                name=line.name,
                quantity=line.quantity,
                unit_price=line.unit_price,
                total=line.total,
                tax_rate=line.tax_rate,
                tax_amount=line.tax_amount,
            )
            for line in cart.lines
        ],
        subtotal=cart.subtotal,
        discount_amount=cart.discount_amount,
        tax_amount=cart.tax_amount,
        total=cart.total,
        total_paid=allocator.total_paid,
        change=allocator.change,
        points_spent=cart.points_spent,
        can_complete=allocator.can_complete,
        tenders=[_tender_response(tender) for tender in allocator.tenders],
    )


@router.post("/pdv/sales", response_model=SaleOutcomeResponse, status_code=201)
def complete_sale(
    request: Request,
    payload: SaleRequest,
    operator: OperatorContext = Depends(require_operator_context),
    db=Depends(get_db),
    stock=Depends(get_stock),
    financial=Depends(get_financial_ledger),
    payment_capture=Depends(get_payment_capture),
    fiscal=Depends(get_fiscal),
):
    ledger = CashierLedger(db, trace_id=operator.trace_id)
    ledger.require_open(UUID(operator.operator_id))
    cart = _build_cart(db, payload)
    allocator = _build_allocator(cart, payload)
    service = SaleCompletionService(
        db,
        stock=stock,
        payment_capture=payment_capture,
        financial=financial,
        fiscal=fiscal,
        ledger=ledger,
        spend_per_point=settings.LOYALTY_SPEND_PER_POINT,
        trace_id=operator.trace_id,
    )
    outcome = service.complete_sale(
        cart,
        allocator,
        operator,
        fiscal_document_type=payload.fiscal_document_type or request.app.state.default_fiscal_document_type,
        notes=payload.notes,
    )
    return _outcome_response(outcome)


@router.get("/pdv/sales/{sale_id}", response_model=SaleResponse)
def get_sale(
    sale_id: UUID,
    _operator: OperatorContext = Depends(require_operator_context),
    db=Depends(get_db),
):
    sale = SaleRepository(db).get_by_id(sale_id)
    if sale is None:
        raise AppError(ErrorCatalog.SALE_NOT_FOUND, details={"sale_id": str(sale_id)})
    return _sale_response(sale)


@router.post("/pdv/sales/{sale_id}/cancel", response_model=SaleOutcomeResponse)
def cancel_sale(
    sale_id: UUID,
    payload: SaleCancelRequest,
    operator: OperatorContext = Depends(require_operator_context),
    db=Depends(get_db),
    stock=Depends(get_stock),
    financial=Depends(get_financial_ledger),
    fiscal=Depends(get_fiscal),
):
    service = CancellationService(
        db,
        stock=stock,
        financial=financial,
        fiscal=fiscal,
        trace_id=operator.trace_id,
    )
    outcome = service.cancel_sale(sale_id, payload.reason, operator)
    return _outcome_response(outcome)
