from __future__ import annotations

from sqlalchemy import func, select

from app.pdv.db.models import CashFlowEntry, CashierSession


class CashierSessionRepository:
    def __init__(self, db):
        self.db = db

    def get_by_id(self, session_id, *, for_update: bool = False) -> CashierSession | None:
        query = select(CashierSession).where(CashierSession.id == session_id)
        if for_update:
            query = query.with_for_update()
        return self.db.execute(query).scalars().first()

    def get_open_for_operator(self, operator_id, *, for_update: bool = False) -> CashierSession | None:
        query = select(CashierSession).where(
            CashierSession.operator_id == operator_id,
            CashierSession.status == "open",
        )
        if for_update:
            query = query.with_for_update()
        return self.db.execute(query.order_by(CashierSession.opened_at.desc())).scalars().first()

    def get_entries(self, session_id) -> list[CashFlowEntry]:
        return (
            self.db.execute(
                select(CashFlowEntry).where(CashFlowEntry.session_id == session_id).order_by(CashFlowEntry.sequence)
            )
            .scalars()
            .all()
        )

    def next_sequence(self, session_id) -> int:
        current = self.db.execute(
            select(func.max(CashFlowEntry.sequence)).where(CashFlowEntry.session_id == session_id)
        ).scalar()
        return (current or 0) + 1
