from __future__ import annotations

import logging
from datetime import datetime
from decimal import ROUND_FLOOR, Decimal

from sqlalchemy import select

from app.pdv.core.error_catalog import AppError, ErrorCatalog
from app.pdv.db.models import Customer

logger = logging.getLogger(__name__)


def points_for_total(total: Decimal, spend_per_point: int) -> int:
    """One point per full ``spend_per_point`` of the sale total."""
    if spend_per_point <= 0 or total <= 0:
        return 0
    return int((Decimal(total) / Decimal(spend_per_point)).to_integral_value(rounding=ROUND_FLOOR))


class LoyaltyService:
    def __init__(self, db):
        self.db = db

    def accrue(self, customer_id, *, earned: int, spent: int) -> int:
        return self._adjust(customer_id, earned - spent)

    def reverse(self, customer_id, *, earned: int, spent: int) -> int:
        return self._adjust(customer_id, spent - earned)

    def _adjust(self, customer_id, delta: int) -> int:
        try:
            customer = (
                self.db.execute(select(Customer).where(Customer.id == customer_id).with_for_update())
                .scalars()
                .first()
            )
            if customer is None:
                raise AppError(ErrorCatalog.CUSTOMER_NOT_FOUND, details={"customer_id": str(customer_id)})
            customer.points = max(customer.points + delta, 0)
            customer.updated_at = datetime.utcnow()
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info("Loyalty balance of customer %s adjusted by %s to %s", customer_id, delta, customer.points)
        return customer.points
