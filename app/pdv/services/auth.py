from sqlalchemy import select

from app.pdv.core.error_catalog import AppError, ErrorCatalog
from app.pdv.core.security import create_operator_access_token, verify_password
from app.pdv.db.models import Operator
from app.pdv.services.login_throttle import LoginAttemptStore


class OperatorAuthService:
    def __init__(self, db, attempts: LoginAttemptStore):
        self.db = db
        self.attempts = attempts

    def login(self, username: str, password: str, terminal_id: str | None = None):
        if self.attempts.is_locked(username):
            raise AppError(ErrorCatalog.LOGIN_RATE_LIMITED, details={"username": username})

        operator = self.db.execute(select(Operator).where(Operator.username == username)).scalars().first()
        if operator is None or not verify_password(password, operator.hashed_password):
            failures = self.attempts.register_failure(username)
            raise AppError(ErrorCatalog.INVALID_CREDENTIALS, details={"failed_attempts": failures})
        if not operator.is_active:
            raise AppError(ErrorCatalog.OPERATOR_INACTIVE)

        self.attempts.reset(username)
        terminal = terminal_id or operator.default_terminal_id
        return operator, terminal, create_operator_access_token(operator, terminal_id=terminal)
