"""Cashier session ledger.

The append-only ``cash_flow_entries`` table is the source of truth for a
drawer. ``CashierSession.current_amount`` is only a cache and is recomputed by
replaying the entries every time one is appended, inside the same transaction
and under a row lock on the session.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Iterable

from app.pdv.core.error_catalog import AppError, ErrorCatalog
from app.pdv.core.logging import log_json
from app.pdv.core.money import ZERO, money_str, to_money
from app.pdv.db.models import CashFlowEntry, CashierSession
from app.pdv.repos.cashier import CashierSessionRepository
from app.pdv.repos.sales import SaleRepository

logger = logging.getLogger("pdv.cashier")

SESSION_OPEN = "open"
SESSION_CLOSED = "closed"

ENTRY_INITIAL_BALANCE = "initial_balance"
ENTRY_FINAL_BALANCE = "final_balance"
ENTRY_WITHDRAW = "withdraw"
ENTRY_DEPOSIT = "deposit"
ENTRY_SALE = "sale"
ENTRY_REFUND = "refund"
ENTRY_CORRECTION = "correction"

ENTRY_TYPES = (
    ENTRY_INITIAL_BALANCE,
    ENTRY_FINAL_BALANCE,
    ENTRY_WITHDRAW,
    ENTRY_DEPOSIT,
    ENTRY_SALE,
    ENTRY_REFUND,
    ENTRY_CORRECTION,
)

_INFLOWS = frozenset({ENTRY_INITIAL_BALANCE, ENTRY_DEPOSIT, ENTRY_SALE})
_OUTFLOWS = frozenset({ENTRY_WITHDRAW, ENTRY_REFUND})


def entry_delta(operation_type: str, amount: Decimal) -> Decimal:
    """Signed effect of one entry on the drawer balance."""
    amount = to_money(amount)
    if operation_type in _INFLOWS:
        return amount
    if operation_type in _OUTFLOWS:
        return -amount
    if operation_type == ENTRY_CORRECTION:
        return amount
    # final_balance records the counted amount and does not move the drawer.
    return ZERO


def replay_balance(entries: Iterable) -> Decimal:
    return sum((entry_delta(entry.operation_type, entry.amount) for entry in entries), ZERO)


@dataclass
class SessionSummary:
    session_id: str
    operator_id: str
    terminal_id: str
    status: str
    opened_at: datetime
    closed_at: datetime | None
    initial_amount: Decimal
    cash_sales: Decimal
    refunds: Decimal
    withdrawals: Decimal
    deposits: Decimal
    corrections: Decimal
    expected_cash_amount: Decimal
    current_amount: Decimal
    difference: Decimal
    sales_count: int
    total_sales: Decimal
    totals_by_method: dict[str, Decimal] = field(default_factory=dict)
    counted_amount: Decimal | None = None
    discrepancy: Decimal | None = None


def _positive(amount, field_name: str) -> Decimal:
    value = to_money(amount)
    if value <= 0:
        raise AppError(
            ErrorCatalog.VALIDATION_ERROR,
            details={"message": f"{field_name} must be greater than 0"},
        )
    return value


def _non_negative(amount, field_name: str) -> Decimal:
    value = to_money(amount)
    if value < 0:
        raise AppError(
            ErrorCatalog.VALIDATION_ERROR,
            details={"message": f"{field_name} must be >= 0"},
        )
    return value


def _append_note(existing: str | None, note: str | None) -> str | None:
    if not note:
        return existing
    if not existing:
        return note
    return f"{existing}\n{note}"


class CashierLedger:
    def __init__(self, db, *, trace_id: str = ""):
        self.db = db
        self.sessions = CashierSessionRepository(db)
        self.sales = SaleRepository(db)
        self.trace_id = trace_id

    def current(self, operator_id) -> CashierSession | None:
        return self.sessions.get_open_for_operator(operator_id)

    def require_open(self, operator_id, *, for_update: bool = False) -> CashierSession:
        session = self.sessions.get_open_for_operator(operator_id, for_update=for_update)
        if session is None:
            raise AppError(ErrorCatalog.CASHIER_SESSION_NOT_OPEN, details={"operator_id": str(operator_id)})
        return session

    def get_session(self, session_id) -> CashierSession:
        session = self.sessions.get_by_id(session_id)
        if session is None:
            raise AppError(ErrorCatalog.CASHIER_SESSION_NOT_FOUND, details={"session_id": str(session_id)})
        return session

    def history(self, session_id) -> list[CashFlowEntry]:
        self.get_session(session_id)
        return self.sessions.get_entries(session_id)

    def open(self, operator_id, terminal_id: str, initial_amount, notes: str | None = None) -> CashierSession:
        initial = _non_negative(initial_amount, "initial_amount")
        try:
            existing = self.sessions.get_open_for_operator(operator_id, for_update=True)
            if existing is not None:
                raise AppError(
                    ErrorCatalog.CASHIER_SESSION_ALREADY_OPEN,
                    details={"session_id": str(existing.id)},
                )
            now = datetime.utcnow()
            session = CashierSession(
                operator_id=operator_id,
                terminal_id=terminal_id,
                status=SESSION_OPEN,
                initial_amount=initial,
                current_amount=initial,
                notes=notes,
                opened_at=now,
            )
            self.db.add(session)
            self.db.flush()
            self._insert_entry(session, operator_id, ENTRY_INITIAL_BALANCE, initial, notes="Opening balance")
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self._log("cashier_session_opened", session, amount=initial)
        return session

    def withdraw(self, operator_id, amount, reason: str | None = None) -> CashFlowEntry:
        value = _positive(amount, "amount")
        return self._append_to_open(operator_id, ENTRY_WITHDRAW, value, notes=reason)

    def deposit(self, operator_id, amount, reason: str | None = None) -> CashFlowEntry:
        value = _positive(amount, "amount")
        return self._append_to_open(operator_id, ENTRY_DEPOSIT, value, notes=reason)

    def correction(self, operator_id, amount, reason: str) -> CashFlowEntry:
        """Appends a signed adjustment; ledger entries are never edited in place."""
        value = to_money(amount)
        if value == 0:
            raise AppError(ErrorCatalog.VALIDATION_ERROR, details={"message": "amount must not be 0"})
        if not reason:
            raise AppError(ErrorCatalog.VALIDATION_ERROR, details={"message": "reason is required"})
        return self._append_to_open(operator_id, ENTRY_CORRECTION, value, notes=reason)

    def record_sale(self, session_id, operator_id, sale_id, amount) -> CashFlowEntry:
        value = _positive(amount, "amount")
        return self._append(session_id, operator_id, ENTRY_SALE, value, notes=f"Sale {sale_id}", reference_id=sale_id)

    def record_refund(self, session_id, operator_id, sale_id, amount) -> CashFlowEntry:
        value = _positive(amount, "amount")
        return self._append(
            session_id,
            operator_id,
            ENTRY_REFUND,
            value,
            notes=f"Refund of sale {sale_id}",
            reference_id=sale_id,
        )

    def close(self, operator_id, counted_amount, notes: str | None = None) -> SessionSummary:
        counted = _non_negative(counted_amount, "counted_amount")
        try:
            session = self.require_open(operator_id, for_update=True)
            entries = self.sessions.get_entries(session.id)
            session.current_amount = replay_balance(entries)
            now = datetime.utcnow()
            self._insert_entry(session, operator_id, ENTRY_FINAL_BALANCE, counted, notes="Closing count")
            session.status = SESSION_CLOSED
            session.final_amount = counted
            session.closed_at = now
            session.notes = _append_note(session.notes, notes)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        summary = self.summary(session)
        self._log(
            "cashier_session_closed",
            session,
            amount=counted,
            expected=summary.expected_cash_amount,
            discrepancy=summary.discrepancy,
        )
        return summary

    def summary(self, session: CashierSession) -> SessionSummary:
        entries = self.sessions.get_entries(session.id)
        buckets = {entry_type: ZERO for entry_type in ENTRY_TYPES}
        counted = None
        for entry in entries:
            if entry.operation_type == ENTRY_FINAL_BALANCE:
                counted = to_money(entry.amount)
                continue
            buckets[entry.operation_type] += to_money(entry.amount)
        expected = replay_balance(entries)

        totals_by_method: dict[str, Decimal] = {}
        total_sales = ZERO
        completed = self.sales.list_for_session(session.id, status="completed")
        for sale in completed:
            total_sales += to_money(sale.total)
            for payment in sale.payments:
                totals_by_method[payment.method] = totals_by_method.get(payment.method, ZERO) + to_money(
                    payment.amount
                )

        current = to_money(session.current_amount)
        if session.status == SESSION_CLOSED and counted is None and session.final_amount is not None:
            counted = to_money(session.final_amount)
        return SessionSummary(
            session_id=str(session.id),
            operator_id=str(session.operator_id),
            terminal_id=session.terminal_id,
            status=session.status,
            opened_at=session.opened_at,
            closed_at=session.closed_at,
            initial_amount=to_money(session.initial_amount),
            cash_sales=buckets[ENTRY_SALE],
            refunds=buckets[ENTRY_REFUND],
            withdrawals=buckets[ENTRY_WITHDRAW],
            deposits=buckets[ENTRY_DEPOSIT],
            corrections=buckets[ENTRY_CORRECTION],
            expected_cash_amount=expected,
            current_amount=current,
            difference=current - expected,
            sales_count=len(completed),
            total_sales=total_sales,
            totals_by_method=totals_by_method,
            counted_amount=counted,
            discrepancy=counted - expected if counted is not None else None,
        )

    def _append_to_open(self, operator_id, operation_type: str, amount: Decimal, *, notes: str | None) -> CashFlowEntry:
        session = self.require_open(operator_id)
        return self._append(session.id, operator_id, operation_type, amount, notes=notes)

    def _append(
        self,
        session_id,
        operator_id,
        operation_type: str,
        amount: Decimal,
        *,
        notes: str | None = None,
        reference_id=None,
    ) -> CashFlowEntry:
        try:
            session = self.sessions.get_by_id(session_id, for_update=True)
            if session is None:
                raise AppError(ErrorCatalog.CASHIER_SESSION_NOT_FOUND, details={"session_id": str(session_id)})
            if session.status != SESSION_OPEN:
                raise AppError(ErrorCatalog.CASHIER_SESSION_NOT_OPEN, details={"session_id": str(session_id)})
            balance = replay_balance(self.sessions.get_entries(session.id))
            if operation_type == ENTRY_WITHDRAW and amount > balance:
                raise AppError(
                    ErrorCatalog.CASH_WITHDRAW_EXCEEDS_BALANCE,
                    details={"amount": money_str(amount), "current_amount": money_str(balance)},
                )
            entry = self._insert_entry(
                session,
                operator_id,
                operation_type,
                amount,
                notes=notes,
                reference_id=reference_id,
            )
            session.current_amount = balance + entry_delta(operation_type, amount)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self._log(f"cash_{operation_type}", session, amount=amount)
        return entry

    def _insert_entry(
        self,
        session: CashierSession,
        operator_id,
        operation_type: str,
        amount: Decimal,
        *,
        notes: str | None = None,
        reference_id=None,
    ) -> CashFlowEntry:
        entry = CashFlowEntry(
            session_id=session.id,
            sequence=self.sessions.next_sequence(session.id),
            operator_id=operator_id,
            operation_type=operation_type,
            amount=amount,
            notes=notes,
            reference_id=reference_id,
            created_at=datetime.utcnow(),
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def _log(self, event: str, session: CashierSession, **fields) -> None:
        payload = {
            "event": event,
            "session_id": str(session.id),
            "operator_id": str(session.operator_id),
            "current_amount": money_str(session.current_amount),
            "trace_id": self.trace_id,
        }
        payload.update({key: money_str(value) if isinstance(value, Decimal) else value for key, value in fields.items()})
        log_json(logger, payload)
