import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import app.main as main_module
from app.config import settings
from app.context import CallerContext, Identity
from app.database import Base, get_db
from app.main import app
from app.middleware.rate_limit import AdmissionControl
from app.models.user import User
from app.services.crypto_utils import hash_password

TEST_JWT_SECRET = "test-signing-secret-do-not-use-in-production-0123456789"


@pytest.fixture(autouse=True)
def jwt_secret(monkeypatch):
    """Every test runs with a configured signing secret unless it removes it."""
    monkeypatch.setattr(settings, "jwt_secret", TEST_JWT_SECRET)
    return TEST_JWT_SECRET


@pytest.fixture
def db_session():
    """Create a fresh in-memory database for each test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def admission():
    """Admission control that lets everything through."""
    return AdmissionControl(enabled=False)


@pytest.fixture
def anon_ctx():
    return CallerContext(address="203.0.113.7", user_agent="pytest-agent")


@pytest.fixture
def owner(db_session):
    user = User(email="owner@example.com", name="Owner", password_hash=hash_password("owner-pass"))
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def owner_ctx(owner):
    return CallerContext(
        address="203.0.113.8",
        user_agent="pytest-agent",
        identity=Identity(user_id=owner.id, email=owner.email),
    )


@pytest.fixture
def client(db_session):
    """Create a test client with the test database and disabled rate limiting."""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    # Disable rate limiting for tests; individual tests may install a live instance
    original_admission = app.state.admission
    app.state.admission = AdmissionControl(enabled=False)

    # Override the engine used by check_database_tables() so it checks the test database
    original_engine = main_module.engine
    main_module.engine = db_session.get_bind()

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    app.state.admission = original_admission
    main_module.engine = original_engine
