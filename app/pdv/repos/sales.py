from __future__ import annotations

from sqlalchemy import select

from app.pdv.db.models import Sale


class SaleRepository:
    def __init__(self, db):
        self.db = db

    def get_by_id(self, sale_id) -> Sale | None:
        return self.db.execute(select(Sale).where(Sale.id == sale_id)).scalars().first()

    def get_for_update(self, sale_id) -> Sale | None:
        return self.db.execute(select(Sale).where(Sale.id == sale_id).with_for_update()).scalars().first()

    def list_for_session(self, session_id, *, status: str | None = None) -> list[Sale]:
        query = select(Sale).where(Sale.cashier_session_id == session_id)
        if status:
            query = query.where(Sale.status == status)
        return self.db.execute(query.order_by(Sale.created_at)).scalars().all()
