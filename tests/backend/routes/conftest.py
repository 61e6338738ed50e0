import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from backend.database import get_db
from backend.main import app


@pytest.fixture
def client(db_engine, monkeypatch: pytest.MonkeyPatch):
    for module in ('printer_routes', 'job_routes', 'credit_routes'):
        monkeypatch.setattr(f'backend.routes.{module}.ensure_database_ready', lambda: None)

    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)

    def override_get_db():
        db = testing_session_local()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
