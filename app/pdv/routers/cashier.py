from __future__ import annotations

from dataclasses import asdict
from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, Depends

from app.pdv.core.config import settings
from app.pdv.core.context import OperatorContext
from app.pdv.core.deps import require_operator_context
from app.pdv.core.error_catalog import AppError, ErrorCatalog
from app.pdv.core.money import to_money
from app.pdv.db.models import CashFlowEntry, CashierSession
from app.pdv.db.session import get_db
from app.pdv.schemas.cashier import (
    CashFlowEntryListResponse,
    CashFlowEntryResponse,
    CashierSessionActionRequest,
    CashierSessionActionResponse,
    CashierSessionCurrentResponse,
    CashierSessionResponse,
    CashierSessionSummaryResponse,
)
from app.pdv.services.cashier_ledger import CashierLedger, SessionSummary

router = APIRouter()


def _session_response(session: CashierSession) -> CashierSessionResponse:
    return CashierSessionResponse(
        id=str(session.id),
        operator_id=str(session.operator_id),
        terminal_id=session.terminal_id,
        status=session.status,
        initial_amount=to_money(session.initial_amount),
        current_amount=to_money(session.current_amount),
        final_amount=to_money(session.final_amount) if session.final_amount is not None else None,
        notes=session.notes,
        opened_at=session.opened_at,
        closed_at=session.closed_at,
    )


def _entry_response(entry: CashFlowEntry) -> CashFlowEntryResponse:
    return CashFlowEntryResponse(
        id=str(entry.id),
        session_id=str(entry.session_id),
        sequence=entry.sequence,
        operator_id=str(entry.operator_id),
        operation_type=entry.operation_type,
        amount=to_money(entry.amount),
        notes=entry.notes,
        reference_id=str(entry.reference_id) if entry.reference_id else None,
        created_at=entry.created_at,
    )


def _summary_response(summary: SessionSummary) -> CashierSessionSummaryResponse:
    return CashierSessionSummaryResponse(**asdict(summary))


def _require_amount(value: Decimal | None, field: str) -> Decimal:
    if value is None:
        raise AppError(ErrorCatalog.VALIDATION_ERROR, details={"message": f"{field} is required"})
    return value


@router.get("/pdv/cashier/session/current", response_model=CashierSessionCurrentResponse)
def get_current_session(
    operator: OperatorContext = Depends(require_operator_context),
    db=Depends(get_db),
):
    session = CashierLedger(db, trace_id=operator.trace_id).current(UUID(operator.operator_id))
    return CashierSessionCurrentResponse(session=_session_response(session) if session else None)


@router.post("/pdv/cashier/session/actions", response_model=CashierSessionActionResponse)
def cashier_session_action(
    payload: CashierSessionActionRequest,
    operator: OperatorContext = Depends(require_operator_context),
    db=Depends(get_db),
):
    ledger = CashierLedger(db, trace_id=operator.trace_id)
    operator_id = UUID(operator.operator_id)

    if payload.action == "OPEN":
        terminal_id = payload.terminal_id or operator.terminal_id or settings.DEFAULT_TERMINAL_ID
        session = ledger.open(
            operator_id,
            terminal_id,
            _require_amount(payload.initial_amount, "initial_amount"),
            notes=payload.reason,
        )
        entry = ledger.history(session.id)[-1]
        return CashierSessionActionResponse(
            action=payload.action,
            session=_session_response(session),
            entry=_entry_response(entry),
        )

    if payload.action == "CLOSE":
        summary = ledger.close(
            operator_id,
            _require_amount(payload.counted_amount, "counted_amount"),
            notes=payload.reason,
        )
        session = ledger.get_session(summary.session_id)
        return CashierSessionActionResponse(
            action=payload.action,
            session=_session_response(session),
            entry=_entry_response(ledger.history(session.id)[-1]),
            summary=_summary_response(summary),
        )

    amount = _require_amount(payload.amount, "amount")
    if payload.action == "WITHDRAW":
        entry = ledger.withdraw(operator_id, amount, reason=payload.reason)
    elif payload.action == "DEPOSIT":
        entry = ledger.deposit(operator_id, amount, reason=payload.reason)
    else:
        entry = ledger.correction(operator_id, amount, reason=payload.reason or "")
    session = ledger.get_session(entry.session_id)
    return CashierSessionActionResponse(
        action=payload.action,
        session=_session_response(session),
        entry=_entry_response(entry),
    )


@router.get("/pdv/cashier/session/summary", response_model=CashierSessionSummaryResponse)
def get_session_summary(
    session_id: UUID | None = None,
    operator: OperatorContext = Depends(require_operator_context),
    db=Depends(get_db),
):
    ledger = CashierLedger(db, trace_id=operator.trace_id)
    if session_id is not None:
        session = ledger.get_session(session_id)
    else:
        session = ledger.require_open(UUID(operator.operator_id))
    return _summary_response(ledger.summary(session))


@router.get("/pdv/cashier/session/{session_id}/entries", response_model=CashFlowEntryListResponse)
def list_session_entries(
    session_id: UUID,
    operator: OperatorContext = Depends(require_operator_context),
    db=Depends(get_db),
):
    entries = CashierLedger(db, trace_id=operator.trace_id).history(session_id)
    return CashFlowEntryListResponse(rows=[_entry_response(entry) for entry in entries], total=len(entries))
