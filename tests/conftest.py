"""
Shared pytest fixtures for the expense approval test suite.

Every test gets a fresh in-memory SQLite schema. The API client shares the
test's session through a get_db override, and notifications are captured by a
recording emitter instead of being delivered.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database.database import Base, get_db
from app.database.models.users import Company, ExpenseCategory, User
from app.database.models import expense as _expense_models  # noqa: F401
from app.database.models import notification as _notification_models  # noqa: F401
from app.api.deps import get_notification_emitter
from app.logic import storage
from factories import RecordingEmitter
from main import app as fastapi_app


# ---------------------------------------------------------------------------
# Database lifecycle
# ---------------------------------------------------------------------------

@pytest.fixture
def engine():
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture(autouse=True)
def receipt_dir(tmp_path, monkeypatch):
    """Keep uploaded receipts inside the test's temporary directory"""
    path = tmp_path / "receipts"
    monkeypatch.setattr(storage.receipt_storage, "base_dir", str(path))
    return path


@pytest.fixture
def emitter():
    return RecordingEmitter()


@pytest.fixture
def client(db, emitter):
    def override_get_db():
        yield db

    fastapi_app.dependency_overrides[get_db] = override_get_db
    fastapi_app.dependency_overrides[get_notification_emitter] = lambda: emitter
    yield TestClient(fastapi_app)
    fastapi_app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Seed data
# ---------------------------------------------------------------------------

def _user(db, company, name, role, manager=None, department=None):
    user = User(
        company_id=company.id,
        name=name,
        email=f"{name.lower().replace(' ', '.')}.{company.id}@example.com",
        password_hash="not-a-real-hash",
        role=role,
        manager_id=manager.id if manager else None,
        department=department,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def company(db):
    c = Company(name="Acme Corp", country="United States", currency_code="USD",
                max_expense_amount=Decimal("10000"), require_receipts=True,
                receipt_min_amount=Decimal("25"))
    db.add(c)
    db.commit()
    db.refresh(c)
    return c


@pytest.fixture
def category(db, company):
    cat = ExpenseCategory(company_id=company.id, name="Travel")
    db.add(cat)
    db.commit()
    db.refresh(cat)
    return cat


@pytest.fixture
def admin(db, company):
    return _user(db, company, "Ada Admin", "ADMIN")


@pytest.fixture
def manager(db, company, admin):
    return _user(db, company, "Max Manager", "MANAGER", manager=admin)


@pytest.fixture
def approver_b(db, company):
    return _user(db, company, "Bea Approver", "MANAGER")


@pytest.fixture
def approver_c(db, company):
    return _user(db, company, "Cal Approver", "MANAGER")


@pytest.fixture
def employee(db, company, manager):
    return _user(db, company, "Eve Employee", "EMPLOYEE", manager=manager, department="Engineering")


@pytest.fixture
def coworker(db, company, manager):
    return _user(db, company, "Carl Coworker", "EMPLOYEE", manager=manager)


@pytest.fixture
def other_company(db):
    c = Company(name="Globex", country="Canada", currency_code="CAD")
    db.add(c)
    db.commit()
    db.refresh(c)
    return c


@pytest.fixture
def outsider(db, other_company):
    return _user(db, other_company, "Oscar Outsider", "ADMIN")
