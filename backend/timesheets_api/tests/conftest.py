"""
Pytest configuration and fixtures for backend testing.

Provides an in-memory database per test, the FastAPI test client bound to
it, seeded users for every role, a customer, project and activity, bearer
token headers and helpers for configuration and meta-fields.
"""
import pytest
from typing import Callable, Dict, Generator
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from timesheets_api.api.main import app
from timesheets_api.auth.jwt_handler import JWTHandler, PasswordHandler
from timesheets_api.configuration import SystemConfiguration
from timesheets_api.database.connection import get_db, create_tables, drop_tables
from timesheets_api.database.models import User, UserRole, Customer, Project, Activity
from timesheets_api.timesheet.meta_fields import MetaFieldDefinition, meta_field_registry

PASSWORD = "secure_password123"


@pytest.fixture(scope="session")
def password_hash() -> str:
    """Hash the shared test password once; bcrypt is slow."""
    return PasswordHandler.hash_password(PASSWORD)


@pytest.fixture(scope="function")
def engine():
    """Create an in-memory database engine with all tables."""
    test_engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False}
    )
    create_tables(bind=test_engine)
    yield test_engine
    drop_tables(bind=test_engine)
    test_engine.dispose()


@pytest.fixture(scope="function")
def db_session(engine) -> Generator[Session, None, None]:
    """Create a database session for testing."""
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def client(db_session) -> Generator[TestClient, None, None]:
    """Create FastAPI test client with database dependency override."""
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def _create_user(db: Session, password_hash: str, username: str, role: UserRole, **kwargs) -> User:
    user = User(
        username=username,
        email=f"{username}@example.com",
        password_hash=password_hash,
        role=role,
        **kwargs
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def make_user(db_session, password_hash) -> Callable[..., User]:
    """Factory for additional users, e.g. with another timezone."""
    def factory(username: str, role: UserRole = UserRole.USER, **kwargs) -> User:
        return _create_user(db_session, password_hash, username, role, **kwargs)
    return factory


@pytest.fixture
def user(make_user) -> User:
    return make_user("john_user", UserRole.USER, timezone="UTC")


@pytest.fixture
def teamlead(make_user) -> User:
    return make_user("tony_teamlead", UserRole.TEAMLEAD, timezone="UTC")


@pytest.fixture
def admin(make_user) -> User:
    return make_user("susan_admin", UserRole.ADMIN, timezone="UTC")


@pytest.fixture
def customer(db_session) -> Customer:
    customer = Customer(name="Test Customer", visible=True, billable=True)
    db_session.add(customer)
    db_session.commit()
    db_session.refresh(customer)
    return customer


@pytest.fixture
def project(db_session, customer) -> Project:
    project = Project(customer=customer, name="Test Project", visible=True)
    db_session.add(project)
    db_session.commit()
    db_session.refresh(project)
    return project


@pytest.fixture
def activity(db_session) -> Activity:
    """A global activity, usable with every project."""
    activity = Activity(name="Test Activity", visible=True)
    db_session.add(activity)
    db_session.commit()
    db_session.refresh(activity)
    return activity


def auth_headers_for(user: User) -> Dict[str, str]:
    """Bearer token headers for a user."""
    token = JWTHandler.create_user_token(user.id, user.username, user.role.value)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def user_headers(user) -> Dict[str, str]:
    return auth_headers_for(user)


@pytest.fixture
def teamlead_headers(teamlead) -> Dict[str, str]:
    return auth_headers_for(teamlead)


@pytest.fixture
def admin_headers(admin) -> Dict[str, str]:
    return auth_headers_for(admin)


@pytest.fixture
def set_config(db_session) -> Callable[[str, object], None]:
    """Store a system configuration value for the current test database."""
    def setter(name: str, value) -> None:
        SystemConfiguration(db_session).set(name, value)
        db_session.commit()
    return setter


@pytest.fixture
def meta_fields():
    """Register meta-fields for the duration of a test."""
    definitions = [
        MetaFieldDefinition(name="metatestmock", visible=True, label="Ticket"),
        MetaFieldDefinition(name="foobar", visible=True),
        MetaFieldDefinition(name="internal_note", visible=False),
    ]
    for definition in definitions:
        meta_field_registry.register(definition)
    yield meta_field_registry
    for definition in definitions:
        meta_field_registry.unregister(definition.name)
