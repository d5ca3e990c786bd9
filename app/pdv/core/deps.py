import uuid

from fastapi import Depends, Request
from jose import JWTError
from pydantic import ValidationError
from sqlalchemy import select

from app.pdv.core.context import OperatorContext, build_operator_context
from app.pdv.core.error_catalog import AppError, ErrorCatalog
from app.pdv.core.security import TokenData, decode_token, oauth2_scheme
from app.pdv.db.models import Operator
from app.pdv.db.session import get_db
from app.pdv.services.collaborators import SqlFinancialLedger, SqlStockCollaborator


def get_current_token_data(token: str | None = Depends(oauth2_scheme)) -> TokenData:
    if not token:
        raise AppError(ErrorCatalog.OPERATOR_NOT_AUTHENTICATED)
    try:
        payload = decode_token(token)
        return TokenData(**payload)
    except (JWTError, ValidationError, TypeError) as exc:
        raise AppError(ErrorCatalog.INVALID_TOKEN) from exc


def get_current_operator(token_data: TokenData = Depends(get_current_token_data), db=Depends(get_db)):
    try:
        operator_id = uuid.UUID(token_data.sub)
    except ValueError as exc:
        raise AppError(ErrorCatalog.INVALID_TOKEN) from exc
    operator = db.execute(select(Operator).where(Operator.id == operator_id)).scalars().first()
    if operator is None:
        raise AppError(ErrorCatalog.INVALID_TOKEN)
    if not operator.is_active:
        raise AppError(ErrorCatalog.OPERATOR_INACTIVE)
    return operator


def require_operator_context(
    request: Request,
    token_data: TokenData = Depends(get_current_token_data),
    operator=Depends(get_current_operator),
) -> OperatorContext:
    context = build_operator_context(
        operator_id=str(operator.id),
        username=operator.username,
        terminal_id=token_data.terminal_id or operator.default_terminal_id or "",
        role=operator.role,
        trace_id=getattr(request.state, "trace_id", ""),
    )
    request.state.operator_id = context.operator_id
    return context


def get_payment_capture(request: Request):
    return request.app.state.payment_capture


def get_fiscal(request: Request):
    return request.app.state.fiscal


def get_login_attempts(request: Request):
    return request.app.state.login_attempts


def get_stock(db=Depends(get_db)):
    return SqlStockCollaborator(db)


def get_financial_ledger(db=Depends(get_db)):
    return SqlFinancialLedger(db)


__all__ = [
    "get_current_token_data",
    "get_current_operator",
    "require_operator_context",
    "get_payment_capture",
    "get_fiscal",
    "get_login_attempts",
    "get_stock",
    "get_financial_ledger",
]
