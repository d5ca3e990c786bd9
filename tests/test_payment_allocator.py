from decimal import Decimal

import pytest

from app.pdv.core.error_catalog import AppError, ErrorCatalog
from app.pdv.domain.cart import Cart, ProductSnapshot
from app.pdv.domain.payments import CashTender, NonCashTender, PaymentAllocator


def _cart(price: str = "3.50", qty: int = 2) -> Cart:
    cart = Cart()
    cart.add_item(ProductSnapshot(id="p-1", sku="SKU-1", name="Item", price=Decimal(price)), qty)
    return cart


def test_starts_with_single_zero_cash_tender():
    allocator = PaymentAllocator(_cart())

    assert allocator.tenders == [CashTender()]
    assert allocator.total_paid == Decimal("0.00")
    assert not allocator.can_complete


def test_cash_received_above_total_gives_change():
    allocator = PaymentAllocator(_cart())
    tender = allocator.set_cash_received("10.00")

    assert tender.allocated == Decimal("7.00")
    assert tender.received == Decimal("10.00")
    assert tender.change == Decimal("3.00")
    assert allocator.change == Decimal("3.00")
    assert allocator.can_complete


def test_cash_received_below_total_has_no_change():
    allocator = PaymentAllocator(_cart())
    allocator.set_cash_received("5.00")

    assert allocator.cash_tender.allocated == Decimal("5.00")
    assert allocator.change is None
    assert not allocator.can_complete


def test_split_tender_completes_when_sum_reaches_total():
    allocator = PaymentAllocator(_cart("10.00", 3))
    allocator.set_tender_amount(0, "10.00")
    index = allocator.add_tender("pix", "20.00")

    assert index == 1
    assert isinstance(allocator.tenders[1], NonCashTender)
    assert allocator.total_paid == Decimal("30.00")
    assert allocator.can_complete


def test_add_tender_defaults_to_zero_card_credit():
    allocator = PaymentAllocator(_cart())
    allocator.add_tender()

    assert allocator.tenders[1] == NonCashTender(method="card_credit", allocated=Decimal("0.00"))


def test_second_cash_tender_is_rejected():
    allocator = PaymentAllocator(_cart())
    allocator.add_tender("card_debit", "1.00")

    with pytest.raises(AppError) as exc:
        allocator.set_tender_method(1, "cash")
    assert exc.value.error == ErrorCatalog.CASH_TENDER_DUPLICATE

    with pytest.raises(AppError):
        allocator.add_tender("cash")


def test_cash_amount_above_received_is_rejected():
    allocator = PaymentAllocator(_cart(price="10.00", qty=1))
    allocator.set_cash_received("5.00")

    with pytest.raises(AppError) as exc:
        allocator.set_tender_amount(0, "10.00")

    assert exc.value.error == ErrorCatalog.VALIDATION_ERROR
    tender = allocator.tenders[0]
    assert tender.allocated == Decimal("5.00")
    assert tender.received == Decimal("5.00")
    assert not allocator.can_complete


def test_lowering_cash_amount_recomputes_change():
    allocator = PaymentAllocator(_cart())
    allocator.set_cash_received("10.00")
    allocator.add_tender("card_debit", "2.00")

    allocator.set_tender_amount(0, "5.00")

    tender = allocator.tenders[0]
    assert tender.allocated == Decimal("5.00")
    assert tender.received == Decimal("10.00")
    assert tender.change == Decimal("5.00")
    assert tender.received >= tender.allocated
    assert allocator.total_paid == Decimal("7.00")

    allocator.set_tender_amount(0, "10.00")
    assert allocator.tenders[0].change is None


def test_switching_cash_to_card_drops_received_and_change():
    allocator = PaymentAllocator(_cart())
    allocator.set_cash_received("10.00")
    allocator.set_tender_method(0, "card_debit")

    tender = allocator.tenders[0]
    assert isinstance(tender, NonCashTender)
    assert tender.allocated == Decimal("7.00")
    assert allocator.change is None


def test_set_cash_received_creates_cash_tender_when_absent():
    allocator = PaymentAllocator(_cart())
    allocator.set_tender_method(0, "card_credit")
    allocator.set_cash_received("2.00")

    assert len(allocator.tenders) == 2
    assert allocator.cash_tender.allocated == Decimal("2.00")


def test_removing_last_tender_is_a_no_op():
    allocator = PaymentAllocator(_cart())
    allocator.remove_tender(0)

    assert len(allocator.tenders) == 1


def test_remove_tender_drops_selected_entry():
    allocator = PaymentAllocator(_cart())
    allocator.add_tender("voucher", "7.00")
    allocator.remove_tender(0)

    assert [tender.method for tender in allocator.tenders] == ["voucher"]
    assert allocator.can_complete


def test_empty_cart_never_completes():
    allocator = PaymentAllocator(Cart())
    allocator.set_cash_received("10.00")

    assert not allocator.can_complete


def test_negative_amount_rejected():
    allocator = PaymentAllocator(_cart())
    with pytest.raises(AppError) as exc:
        allocator.set_tender_amount(0, "-1")
    assert exc.value.error == ErrorCatalog.VALIDATION_ERROR
