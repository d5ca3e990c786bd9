from sqlalchemy import select

from app.pdv.core.config import settings
from app.pdv.core.security import get_password_hash
from app.pdv.db.models import Base, Operator


def init_db(engine) -> None:
    Base.metadata.create_all(bind=engine)


def _get_or_create_default_operator(db):
    operator = (
        db.execute(select(Operator).where(Operator.username == settings.DEFAULT_OPERATOR_USERNAME))
        .scalars()
        .first()
    )
    if operator:
        return operator
    operator = Operator(
        username=settings.DEFAULT_OPERATOR_USERNAME,
        full_name="Default operator",
        hashed_password=get_password_hash(settings.DEFAULT_OPERATOR_PASSWORD),
        role="cashier",
        default_terminal_id=settings.DEFAULT_TERMINAL_ID,
        is_active=True,
    )
    db.add(operator)
    db.flush()
    return operator


def run_seed(db) -> None:
    _get_or_create_default_operator(db)
    db.commit()
