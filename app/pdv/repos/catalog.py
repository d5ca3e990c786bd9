from __future__ import annotations

from sqlalchemy import select

from app.pdv.db.models import Customer, Product


class CatalogRepository:
    def __init__(self, db):
        self.db = db

    def get_product(self, product_id) -> Product | None:
        return self.db.execute(select(Product).where(Product.id == product_id)).scalars().first()

    def get_customer(self, customer_id) -> Customer | None:
        return self.db.execute(select(Customer).where(Customer.id == customer_id)).scalars().first()
