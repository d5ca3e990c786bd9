import importlib
import os
from pathlib import Path

import pytest
from fastapi.testclient import TestClient


def _setup_app(database_url: str):
    os.environ["DATABASE_URL"] = database_url
    os.environ["SECRET_KEY"] = "test-secret"
    os.environ["PAYMENT_GATEWAY_URL"] = ""
    os.environ["FISCAL_ENABLED"] = "false"

    import app.pdv.core.config as config
    import app.pdv.db.session as session
    import app.main as main

    importlib.reload(config)
    importlib.reload(session)
    importlib.reload(main)

    return main.create_app(), session


@pytest.fixture()
def client(tmp_path: Path):
    db_path = tmp_path / "test.db"
    database_url = f"sqlite+pysqlite:///{db_path}"

    app, session = _setup_app(database_url)

    with TestClient(app) as client:
        yield client

    session.engine.dispose()


@pytest.fixture()
def db_session(client):
    from app.pdv.db.session import SessionLocal

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
