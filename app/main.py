from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI

from app.pdv.api import api_router
from app.pdv.core.config import settings
from app.pdv.core.errors import setup_exception_handlers
from app.pdv.core.logging import configure_logging
from app.pdv.db import session as db_session
from app.pdv.db.seed import init_db, run_seed
from app.pdv.middleware.observability import RequestLogMiddleware
from app.pdv.middleware.trace import TraceIdMiddleware
from app.pdv.services.collaborators import DisabledFiscalCollaborator, LocalPaymentCapture
from app.pdv.services.gateways import HttpFiscalService, HttpPaymentGateway
from app.pdv.services.login_throttle import InMemoryLoginAttemptStore


def build_payment_capture():
    if settings.PAYMENT_GATEWAY_URL:
        return HttpPaymentGateway(
            settings.PAYMENT_GATEWAY_URL,
            settings.PAYMENT_GATEWAY_API_KEY,
            timeout=settings.PAYMENT_GATEWAY_TIMEOUT_SEC,
            max_connections=settings.HTTP_MAX_CONNECTIONS,
        )
    return LocalPaymentCapture()


def build_fiscal():
    if settings.FISCAL_ENABLED and settings.FISCAL_API_URL:
        return HttpFiscalService(
            settings.FISCAL_API_URL,
            settings.FISCAL_API_KEY,
            timeout=settings.FISCAL_TIMEOUT_SEC,
            max_connections=settings.HTTP_MAX_CONNECTIONS,
        )
    return DisabledFiscalCollaborator()


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db(db_session.engine)
    db = db_session.SessionLocal()
    try:
        run_seed(db)
    finally:
        db.close()
    yield


def create_app(payment_capture=None, fiscal=None, login_attempts=None) -> FastAPI:
    configure_logging()
    app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)
    app.state.payment_capture = payment_capture or build_payment_capture()
    app.state.fiscal = fiscal or build_fiscal()
    app.state.login_attempts = login_attempts or InMemoryLoginAttemptStore(
        max_attempts=settings.LOGIN_MAX_ATTEMPTS,
        window=timedelta(minutes=settings.LOGIN_ATTEMPT_WINDOW_MINUTES),
    )
    app.state.default_fiscal_document_type = settings.DEFAULT_FISCAL_DOCUMENT_TYPE if settings.FISCAL_ENABLED else "none"
    app.add_middleware(TraceIdMiddleware)
    app.add_middleware(RequestLogMiddleware)
    setup_exception_handlers(app)
    app.include_router(api_router)
    return app


app = create_app()
