from decimal import Decimal

import pytest

from app.pdv.core.error_catalog import AppError, ErrorCatalog
from app.pdv.domain.cart import Cart, CustomerSnapshot, ProductSnapshot

COFFEE = ProductSnapshot(id="p-coffee", sku="CAF-001", name="Coffee", price=Decimal("3.50"))
BREAD = ProductSnapshot(id="p-bread", sku="PAO-001", name="Bread", price=Decimal("12.00"), tax_rate=Decimal("10"))


def test_single_line_totals():
    cart = Cart()
    cart.add_item(COFFEE, 2)

    assert cart.subtotal == Decimal("7.00")
    assert cart.discount_amount == Decimal("0.00")
    assert cart.total == Decimal("7.00")


def test_add_item_merges_lines_and_reprices():
    cart = Cart()
    cart.add_item(COFFEE, 1)
    repriced = ProductSnapshot(id="p-coffee", sku="CAF-001", name="Coffee", price=Decimal("4.00"))
    line = cart.add_item(repriced, 2)

    assert len(cart) == 1
    assert line.quantity == 3
    assert line.total == Decimal("12.00")


def test_add_item_rejects_non_positive_quantity():
    cart = Cart()
    with pytest.raises(AppError) as exc:
        cart.add_item(COFFEE, 0)
    assert exc.value.error == ErrorCatalog.VALIDATION_ERROR
    assert cart.is_empty


def test_line_tax_uses_snapshot_rate():
    cart = Cart()
    cart.add_item(BREAD, 1)

    assert cart.tax_amount == Decimal("1.20")


def test_set_quantity_is_idempotent_and_zero_removes():
    cart = Cart()
    line = cart.add_item(COFFEE, 1)

    cart.set_quantity(line.id, 4)
    cart.set_quantity(line.id, 4)
    assert cart.lines[0].quantity == 4
    assert cart.subtotal == Decimal("14.00")

    cart.set_quantity(line.id, 0)
    assert cart.is_empty


def test_percentage_discount_over_range_is_clamped():
    cart = Cart()
    cart.add_item(ProductSnapshot(id="p-tv", sku="TV", name="TV", price=Decimal("100.00")), 1)
    cart.set_discount("percentage", Decimal("110"))

    assert cart.discount_amount == Decimal("100.00")
    assert cart.total == Decimal("0.00")


def test_value_discount_capped_at_subtotal():
    cart = Cart()
    cart.add_item(COFFEE, 2)
    cart.set_discount("value", "50")

    assert cart.discount_amount == Decimal("7.00")
    assert cart.total == Decimal("0.00")


def test_negative_discount_is_ignored():
    cart = Cart()
    cart.add_item(COFFEE, 2)
    cart.set_discount("value", "-5")

    assert cart.discount_amount == Decimal("0.00")
    assert cart.total == Decimal("7.00")


def test_points_discount_limited_by_customer_balance():
    cart = Cart(point_value=Decimal("0.05"))
    cart.add_item(BREAD, 2)
    cart.set_customer(CustomerSnapshot(id="c-1", name="Ana", points=40))
    cart.set_discount("points", 100)

    assert cart.discount_amount == Decimal("2.00")
    assert cart.points_spent == 40
    assert cart.total == Decimal("22.00")


def test_points_discount_without_customer_is_zero():
    cart = Cart()
    cart.add_item(BREAD, 1)
    cart.set_discount("points", 100)

    assert cart.discount_amount == Decimal("0.00")
    assert cart.points_spent == 0


def test_customer_default_discount_applies():
    cart = Cart()
    cart.add_item(BREAD, 1)
    cart.set_customer(CustomerSnapshot(id="c-2", name="Bia", discount_rate=Decimal("10")))

    assert cart.discount.reason == "customer discount"
    assert cart.discount_amount == Decimal("1.20")
    assert cart.total == Decimal("10.80")


def test_unknown_discount_kind_rejected():
    cart = Cart()
    with pytest.raises(AppError):
        cart.set_discount("coupon", 5)


def test_clear_resets_everything():
    cart = Cart()
    cart.add_item(BREAD, 1)
    cart.set_customer(CustomerSnapshot(id="c-2", name="Bia", discount_rate=Decimal("10")))
    cart.clear()

    assert cart.is_empty
    assert cart.customer is None
    assert cart.discount_amount == Decimal("0.00")


@pytest.mark.parametrize(
    "kind,value",
    [("percentage", "0"), ("percentage", "37.5"), ("percentage", "250"), ("value", "3.33"), ("value", "999")],
)
def test_discount_never_exceeds_subtotal(kind, value):
    cart = Cart()
    cart.add_item(COFFEE, 3)
    cart.set_discount(kind, value)

    assert Decimal("0.00") <= cart.discount_amount <= cart.subtotal
    assert cart.total == cart.subtotal - cart.discount_amount
