"""Cart aggregate.

Holds the line items, the attached customer and the single active discount of a
sale that is being rung up. Every amount is derived on read from the current
lines, so the aggregate never stores a stale subtotal. There is no I/O here.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from decimal import ROUND_CEILING, Decimal

from app.pdv.core.error_catalog import AppError, ErrorCatalog
from app.pdv.core.money import ZERO, to_money

DISCOUNT_PERCENTAGE = "percentage"
DISCOUNT_VALUE = "value"
DISCOUNT_POINTS = "points"
DISCOUNT_KINDS = (DISCOUNT_PERCENTAGE, DISCOUNT_VALUE, DISCOUNT_POINTS)

DEFAULT_POINT_VALUE = Decimal("0.05")


@dataclass(frozen=True)
class ProductSnapshot:
    id: str
    sku: str
    name: str
    price: Decimal
    tax_rate: Decimal = ZERO


@dataclass(frozen=True)
class CustomerSnapshot:
    id: str
    name: str
    points: int = 0
    discount_rate: Decimal | None = None


@dataclass
class CartLine:
    product_id: str
    sku: str
    name: str
    quantity: int
    unit_price: Decimal
    tax_rate: Decimal
    discount: Decimal = ZERO
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def total(self) -> Decimal:
        return to_money(self.unit_price * self.quantity)

    @property
    def tax_amount(self) -> Decimal:
        return to_money(self.total * self.tax_rate / Decimal(100))


@dataclass(frozen=True)
class Discount:
    kind: str = DISCOUNT_PERCENTAGE
    value: Decimal = ZERO
    reason: str | None = None


class Cart:
    def __init__(self, *, point_value: Decimal = DEFAULT_POINT_VALUE):
        self.point_value = Decimal(str(point_value))
        self.lines: list[CartLine] = []
        self.customer: CustomerSnapshot | None = None
        self.discount = Discount()

    def __len__(self) -> int:
        return len(self.lines)

    @property
    def is_empty(self) -> bool:
        return not self.lines

    def get_line(self, line_id: str) -> CartLine | None:
        for line in self.lines:
            if line.id == line_id:
                return line
        return None

    def add_item(self, product: ProductSnapshot, qty: int = 1) -> CartLine:
        if qty <= 0:
            raise AppError(
                ErrorCatalog.VALIDATION_ERROR,
                details={"message": "qty must be at least 1", "qty": qty, "product_id": product.id},
            )
        price = to_money(product.price)
        if price < 0:
            raise AppError(
                ErrorCatalog.VALIDATION_ERROR,
                details={"message": "unit_price must be >= 0", "product_id": product.id},
            )
        for line in self.lines:
            if line.product_id == product.id:
                # Merged lines are repriced from the product's current price.
                line.quantity += qty
                line.unit_price = price
                line.tax_rate = Decimal(str(product.tax_rate))
                return line
        line = CartLine(
            product_id=product.id,
            sku=product.sku,
            name=product.name,
            quantity=qty,
            unit_price=price,
            tax_rate=Decimal(str(product.tax_rate)),
        )
        self.lines.append(line)
        return line

    def remove_item(self, line_id: str) -> None:
        self.lines = [line for line in self.lines if line.id != line_id]

    def set_quantity(self, line_id: str, qty: int) -> None:
        if qty <= 0:
            self.remove_item(line_id)
            return
        line = self.get_line(line_id)
        if line is not None:
            line.quantity = qty

    def set_discount(self, kind: str, value: Decimal | int | float | str, reason: str | None = None) -> None:
        if kind not in DISCOUNT_KINDS:
            raise AppError(
                ErrorCatalog.VALIDATION_ERROR,
                details={"message": "unsupported discount kind", "kind": kind},
            )
        self.discount = Discount(kind=kind, value=Decimal(str(value)), reason=reason)

    def set_customer(self, customer: CustomerSnapshot | None) -> None:
        self.customer = customer
        if customer is not None and customer.discount_rate:
            self.discount = Discount(
                kind=DISCOUNT_PERCENTAGE,
                value=Decimal(str(customer.discount_rate)),
                reason="customer discount",
            )

    def clear(self) -> None:
        self.lines = []
        self.customer = None
        self.discount = Discount()

    @property
    def subtotal(self) -> Decimal:
        return sum((line.total for line in self.lines), ZERO)

    @property
    def tax_amount(self) -> Decimal:
        return sum((line.tax_amount for line in self.lines), ZERO)

    @property
    def discount_amount(self) -> Decimal:
        subtotal = self.subtotal
        value = self.discount.value
        if value <= 0 or subtotal <= 0:
            return ZERO
        kind = self.discount.kind
        if kind == DISCOUNT_PERCENTAGE:
            amount = subtotal * min(value, Decimal(100)) / Decimal(100)
        elif kind == DISCOUNT_VALUE:
            amount = value
        elif kind == DISCOUNT_POINTS:
            if self.customer is None or self.customer.points <= 0:
                return ZERO
            amount = min(value * self.point_value, Decimal(self.customer.points) * self.point_value)
        else:
            return ZERO
        return min(to_money(amount), subtotal)

    @property
    def points_spent(self) -> int:
        """Points consumed by a points discount, limited to what was actually applied."""
        if self.discount.kind != DISCOUNT_POINTS or self.customer is None:
            return 0
        amount = self.discount_amount
        if amount <= 0 or self.point_value <= 0:
            return 0
        needed = int((amount / self.point_value).to_integral_value(rounding=ROUND_CEILING))
        return min(needed, int(self.discount.value), self.customer.points)

    @property
    def total(self) -> Decimal:
        return max(self.subtotal - self.discount_amount, ZERO)
