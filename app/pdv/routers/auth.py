import logging

from fastapi import APIRouter, Depends, Request

from app.pdv.core.deps import get_login_attempts
from app.pdv.core.error_catalog import AppError
from app.pdv.core.logging import log_json
from app.pdv.db.session import get_db
from app.pdv.schemas.auth import LoginRequest, TokenResponse
from app.pdv.services.auth import OperatorAuthService

logger = logging.getLogger("pdv.auth")

router = APIRouter()


@router.post("/login", response_model=TokenResponse, summary="Operator login")
def login(request: Request, payload: LoginRequest, db=Depends(get_db), attempts=Depends(get_login_attempts)):
    trace_id = getattr(request.state, "trace_id", "")
    service = OperatorAuthService(db, attempts)
    try:
        operator, terminal_id, token = service.login(payload.username, payload.password, payload.terminal_id)
    except AppError as exc:
        log_json(
            logger,
            {"event": "auth_login_failed", "username": payload.username, "error_code": exc.code, "trace_id": trace_id},
            level=logging.WARNING,
        )
        raise
    log_json(logger, {"event": "auth_login", "operator_id": str(operator.id), "trace_id": trace_id})
    return TokenResponse(
        access_token=token,
        operator_id=str(operator.id),
        username=operator.username,
        terminal_id=terminal_id,
        trace_id=trace_id,
    )
