import os

# The application engine is never used by tests; keep it off disk.
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from datetime import date
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient
from uuid import uuid4

from backend.app.models.models import Base, Expense, Attribution
from backend.app.database import get_db_session
from backend.app.main import app
from backend.app.schemas.users import RegisterRequest
from backend.app.services.identity_service import IdentityProvider
from backend.app.services.provisioning_service import create_child_account
from backend.app.services.user_service import register_parent
from backend.app.session import SessionContext

PARENT_EMAIL = "parent@example.com"
PARENT_PASSWORD = "parentpass"
CHILD_EMAIL = "kid@example.com"
CHILD_PASSWORD = "kidpass1"

@pytest.fixture
def db_engine(tmp_path):
    # A file database so the per-child worker threads get their own connections
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    # Teardown - drop all tables
    Base.metadata.drop_all(bind=engine)
    engine.dispose()

@pytest.fixture
def db_session(db_engine):
    """Returns a fresh SQLAlchemy session for each test"""
    Session = sessionmaker(bind=db_engine)
    session = Session()
    yield session
    session.close()

@pytest.fixture
def client(db_session):
    """Test client fixture that uses the db_session fixture"""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db_session] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()

@pytest.fixture
def parent_ctx(db_session):
    """A signed-in parent session"""
    ctx = SessionContext()
    register_parent(db_session, ctx, RegisterRequest(
        email=PARENT_EMAIL, password=PARENT_PASSWORD, display_name="Priya"
    ))
    return ctx

@pytest.fixture
def child_id(db_session, parent_ctx):
    """Id of a child provisioned under parent_ctx"""
    return create_child_account(db_session, parent_ctx, CHILD_EMAIL, CHILD_PASSWORD, "Arjun")

@pytest.fixture
def second_child_id(db_session, parent_ctx, child_id):
    return create_child_account(db_session, parent_ctx, "kid2@example.com", "kidpass2", "Meera")

@pytest.fixture
def child_ctx(db_session, child_id):
    """A signed-in session for the child provisioned by child_id"""
    ctx = SessionContext()
    IdentityProvider(db_session).sign_in(ctx, CHILD_EMAIL, CHILD_PASSWORD)
    return ctx

@pytest.fixture
def other_parent_ctx(db_session):
    ctx = SessionContext()
    register_parent(db_session, ctx, RegisterRequest(
        email="other@example.com", password="otherpass", display_name="Other Parent"
    ))
    return ctx

@pytest.fixture
def add_expense(db_session):
    """Factory that writes an expense row directly"""
    def _add(owner_id, amount, category="food", day=None, attribution=Attribution.CHILD, on_behalf_of=None):
        expense = Expense(
            id=str(uuid4()),
            owner_id=owner_id,
            attribution=attribution.value,
            on_behalf_of_parent_id=on_behalf_of,
            amount=amount,
            category=category,
            description="",
            date=day or date.today(),
        )
        db_session.add(expense)
        db_session.commit()
        db_session.refresh(expense)
        return expense
    return _add

@pytest.fixture
def auth_headers():
    def _headers(ctx):
        return {"Authorization": f"Bearer {ctx.token}"}
    return _headers
