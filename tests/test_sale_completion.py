from decimal import Decimal

import pytest
from sqlalchemy import func, select

from app.pdv.core.context import build_operator_context
from app.pdv.core.error_catalog import AppError, ErrorCatalog
from app.pdv.db.models import Customer, FinancialTransaction, InventoryMovement, Product, Sale
from app.pdv.domain.cart import Cart, CustomerSnapshot, ProductSnapshot
from app.pdv.domain.payments import PaymentAllocator
from app.pdv.services.cashier_ledger import CashierLedger
from app.pdv.services.collaborators import SqlFinancialLedger, SqlStockCollaborator
from app.pdv.services.sale_completion import SaleCompletionService
from tests.fakes import BrokenStockCheck, FailingFinancialLedger, RecordingPaymentCapture, ShortStock, StubFiscal
from tests.pdv_helpers import create_customer, create_operator, create_product


def _context(operator):
    return build_operator_context(
        operator_id=str(operator.id),
        username=operator.username,
        terminal_id="PDV-01",
        role=operator.role,
        trace_id="trace-test",
    )


def _snapshot(product: Product) -> ProductSnapshot:
    return ProductSnapshot(
        id=str(product.id),
        sku=product.sku,
        name=product.name,
        price=product.price,
        tax_rate=product.tax_rate,
    )


def _service(db_session, **overrides):
    params = {
        "stock": SqlStockCollaborator(db_session),
        "payment_capture": RecordingPaymentCapture(),
        "financial": SqlFinancialLedger(db_session),
        "fiscal": StubFiscal(),
    }
    params.update(overrides)
    return SaleCompletionService(db_session, **params)


@pytest.fixture()
def shop(db_session):
    operator = create_operator(db_session, suffix="sale")
    session = CashierLedger(db_session).open(operator.id, "PDV-01", Decimal("50.00"))
    product = create_product(db_session, sku="CAF-001", price="3.50", stock=10)
    return operator, session, product


def _sale_count(db_session) -> int:
    return db_session.execute(select(func.count()).select_from(Sale)).scalar_one()


def test_cash_sale_completes_and_updates_every_collaborator(db_session, shop):
    operator, session, product = shop
    cart = Cart()
    cart.add_item(_snapshot(product), 2)
    allocator = PaymentAllocator(cart)
    allocator.set_cash_received("10.00")

    outcome = _service(db_session).complete_sale(cart, allocator, _context(operator))

    sale = outcome.sale
    assert outcome.warnings == []
    assert sale.status == "completed"
    assert sale.completed_at is not None
    assert sale.total == Decimal("7.00")
    assert sale.change_amount == Decimal("3.00")
    assert sale.fiscal_document_status is None
    assert [(payment.method, payment.amount, payment.received_amount) for payment in sale.payments] == [
        ("cash", Decimal("7.00"), Decimal("10.00"))
    ]

    db_session.expire_all()
    assert db_session.get(Product, product.id).stock_quantity == 8
    movements = db_session.execute(select(InventoryMovement)).scalars().all()
    assert [(movement.quantity, movement.operation_type) for movement in movements] == [(-2, "sale")]
    incomes = db_session.execute(select(FinancialTransaction)).scalars().all()
    assert [(row.type, row.amount) for row in incomes] == [("income", Decimal("7.00"))]

    ledger = CashierLedger(db_session)
    assert ledger.current(operator.id).current_amount == Decimal("57.00")
    assert ledger.history(session.id)[-1].reference_id == sale.id


def test_preconditions_are_checked_in_order(db_session, shop):
    operator, _session, product = shop
    service = _service(db_session)
    empty = Cart()

    with pytest.raises(AppError) as exc:
        service.complete_sale(empty, PaymentAllocator(empty), None)
    assert exc.value.error == ErrorCatalog.OPERATOR_NOT_AUTHENTICATED

    with pytest.raises(AppError) as exc:
        service.complete_sale(empty, PaymentAllocator(empty), _context(operator))
    assert exc.value.error == ErrorCatalog.CART_EMPTY

    cart = Cart()
    cart.add_item(_snapshot(product), 1)
    allocator = PaymentAllocator(cart)
    allocator.set_cash_received("1.00")
    with pytest.raises(AppError) as exc:
        service.complete_sale(cart, allocator, _context(operator))
    assert exc.value.error == ErrorCatalog.PAYMENT_INSUFFICIENT
    assert _sale_count(db_session) == 0


def test_requires_open_cashier_session(db_session):
    operator = create_operator(db_session, suffix="no-session")
    product = create_product(db_session, sku="NS-1", price="1.00")
    cart = Cart()
    cart.add_item(_snapshot(product), 1)
    allocator = PaymentAllocator(cart)
    allocator.set_cash_received("1.00")

    with pytest.raises(AppError) as exc:
        _service(db_session).complete_sale(cart, allocator, _context(operator))
    assert exc.value.error == ErrorCatalog.CASHIER_SESSION_NOT_OPEN


def test_stock_shortfall_aborts_before_anything_is_written(db_session, shop):
    operator, session, product = shop
    cart = Cart()
    cart.add_item(_snapshot(product), 2)
    allocator = PaymentAllocator(cart)
    allocator.set_cash_received("10.00")
    capture = RecordingPaymentCapture()

    with pytest.raises(AppError) as exc:
        _service(db_session, stock=ShortStock(db_session), payment_capture=capture).complete_sale(
            cart, allocator, _context(operator)
        )

    assert exc.value.error == ErrorCatalog.STOCK_INSUFFICIENT
    assert exc.value.details["items"][0]["product_id"] == str(product.id)
    assert exc.value.details["items"][0]["requested"] == 2
    assert capture.captures == []
    assert _sale_count(db_session) == 0
    assert CashierLedger(db_session).summary(session).expected_cash_amount == Decimal("50.00")


def test_real_stock_check_reports_insufficient_quantity(db_session, shop):
    operator, _session, product = shop
    cart = Cart()
    cart.add_item(_snapshot(product), 11)
    allocator = PaymentAllocator(cart)
    allocator.set_cash_received("100.00")

    with pytest.raises(AppError) as exc:
        _service(db_session).complete_sale(cart, allocator, _context(operator))

    assert exc.value.error == ErrorCatalog.STOCK_INSUFFICIENT
    assert exc.value.details["items"][0]["available"] == 10


def test_stock_service_failure_is_a_dependency_error(db_session, shop):
    operator, _session, product = shop
    cart = Cart()
    cart.add_item(_snapshot(product), 1)
    allocator = PaymentAllocator(cart)
    allocator.set_cash_received("5.00")

    with pytest.raises(AppError) as exc:
        _service(db_session, stock=BrokenStockCheck(db_session)).complete_sale(cart, allocator, _context(operator))

    assert exc.value.error == ErrorCatalog.STOCK_CHECK_FAILED
    assert exc.value.kind == "dependency"


def test_declined_card_aborts_sale(db_session, shop):
    operator, _session, product = shop
    cart = Cart()
    cart.add_item(_snapshot(product), 2)
    allocator = PaymentAllocator(cart)
    allocator.set_tender_method(0, "card_credit")
    allocator.set_tender_amount(0, "7.00")

    with pytest.raises(AppError) as exc:
        _service(db_session, payment_capture=RecordingPaymentCapture({"card_credit"})).complete_sale(
            cart, allocator, _context(operator)
        )

    assert exc.value.error == ErrorCatalog.PAYMENT_DECLINED
    assert exc.value.details["method"] == "card_credit"
    assert exc.value.details["message"] == "card declined"
    assert _sale_count(db_session) == 0


def test_split_payment_stores_capture_references(db_session, shop):
    operator, _session, product = shop
    cart = Cart()
    cart.add_item(_snapshot(product), 4)
    allocator = PaymentAllocator(cart)
    allocator.set_tender_amount(0, "4.00")
    allocator.add_tender("pix", "10.00")
    capture = RecordingPaymentCapture()

    outcome = _service(db_session, payment_capture=capture).complete_sale(cart, allocator, _context(operator))

    payments = outcome.sale.payments
    assert [(payment.method, payment.amount) for payment in payments] == [
        ("cash", Decimal("4.00")),
        ("pix", Decimal("10.00")),
    ]
    assert payments[1].transaction_id == "TX-1"
    assert capture.captures == [(str(outcome.sale.id), Decimal("10.00"), "pix")]
    assert CashierLedger(db_session).current(operator.id).current_amount == Decimal("54.00")


def test_fiscal_failure_leaves_sale_completed_with_warning(db_session, shop):
    operator, _session, product = shop
    cart = Cart()
    cart.add_item(_snapshot(product), 2)
    allocator = PaymentAllocator(cart)
    allocator.set_cash_received("20.00")

    outcome = _service(db_session, fiscal=StubFiscal(fail_issue=True)).complete_sale(
        cart, allocator, _context(operator), fiscal_document_type="nfce"
    )

    sale = outcome.sale
    assert sale.status == "completed"
    assert sale.fiscal_document_status == "pending"
    assert [warning.step for warning in outcome.warnings] == ["fiscal"]
    assert "timeout" in outcome.warnings[0].message
    db_session.expire_all()
    assert db_session.get(Product, product.id).stock_quantity == 8
    assert CashierLedger(db_session).current(operator.id).current_amount == Decimal("57.00")


def test_fiscal_success_records_document(db_session, shop):
    operator, _session, product = shop
    cart = Cart()
    cart.add_item(_snapshot(product), 1)
    allocator = PaymentAllocator(cart)
    allocator.set_cash_received("3.50")

    outcome = _service(db_session).complete_sale(cart, allocator, _context(operator), fiscal_document_type="nfce")

    assert outcome.sale.fiscal_document_id == "DOC-1"
    assert outcome.sale.fiscal_document_number == "000001"
    assert outcome.sale.fiscal_document_status == "issued"


def test_financial_failure_is_only_a_warning(db_session, shop):
    operator, _session, product = shop
    cart = Cart()
    cart.add_item(_snapshot(product), 1)
    allocator = PaymentAllocator(cart)
    allocator.set_cash_received("5.00")

    outcome = _service(db_session, financial=FailingFinancialLedger()).complete_sale(
        cart, allocator, _context(operator)
    )

    assert outcome.sale.status == "completed"
    assert [warning.step for warning in outcome.warnings] == ["financial"]
    assert CashierLedger(db_session).current(operator.id).current_amount == Decimal("53.50")


def test_loyalty_points_accrue_and_spent_points_are_deducted(db_session, shop):
    operator, _session, _product = shop
    tv = create_product(db_session, sku="TV-1", price="120.00", stock=2)
    customer = create_customer(db_session, name="Ana", points=100)
    cart = Cart(point_value=Decimal("0.05"))
    cart.add_item(_snapshot(tv), 1)
    cart.set_customer(CustomerSnapshot(id=str(customer.id), name=customer.name, points=customer.points))
    cart.set_discount("points", 100)
    allocator = PaymentAllocator(cart)
    allocator.set_cash_received("115.00")

    outcome = _service(db_session).complete_sale(cart, allocator, _context(operator))

    assert outcome.sale.total == Decimal("115.00")
    assert outcome.sale.points_spent == 100
    assert outcome.sale.points_earned == 11
    db_session.expire_all()
    assert db_session.get(Customer, customer.id).points == 11
