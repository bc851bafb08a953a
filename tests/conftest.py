import pytest
import os
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set env before importing app components
os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["CRON_SECRET"] = "test-cron-secret"

from app.database import Base, get_db
from app.main import app
from fastapi.testclient import TestClient

# SQLite in-memory database configuration
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="session", autouse=True)
def setup_database():
    """Create tables once for the whole test session."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session():
    """Get a clean database session for each test function with rollback safety."""
    connection = engine.connect()
    transaction = connection.begin()
    # Use sessionmaker with the active connection
    session = TestingSessionLocal(bind=connection)

    yield session

    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture(scope="function")
def org(db_session):
    """Create a default organization for tests."""
    from app.models.organization import Organization
    import uuid
    org = Organization(name=f"Alpha Corp {uuid.uuid4()}", slug=f"alpha-corp-{uuid.uuid4()}")
    db_session.add(org)
    db_session.commit()
    return org


def _make_user(db_session, org, email, role, **kwargs):
    from app.models.user import User
    user = User(
        email=email,
        full_name=email.split("@")[0].title(),
        role=role,
        organization_id=org.id,
        is_active=True,
        **kwargs
    )
    db_session.add(user)
    db_session.flush()
    return user


@pytest.fixture(scope="function")
def people(db_session, org):
    """
    Operations (run by the director) contains Engineering (run by the
    manager). Two employees report to the manager.
    """
    from app.models.department import Department
    from app.models.user import UserRole

    admin = _make_user(db_session, org, "admin@alphacorp.com", UserRole.ADMIN)
    hr = _make_user(db_session, org, "hr@alphacorp.com", UserRole.HR)
    executive = _make_user(db_session, org, "ceo@alphacorp.com", UserRole.EXECUTIVE)

    operations = Department(organization_id=org.id, name="Operations", code="OPS")
    db_session.add(operations)
    db_session.flush()
    director = _make_user(db_session, org, "director@alphacorp.com", UserRole.DEPARTMENT_DIRECTOR,
                          department_id=operations.id)
    operations.manager_user_id = director.id

    engineering = Department(organization_id=org.id, name="Engineering", code="ENG", parent_id=operations.id)
    db_session.add(engineering)
    db_session.flush()
    manager = _make_user(db_session, org, "manager@alphacorp.com", UserRole.MANAGER,
                         department_id=engineering.id, manager_id=director.id)
    engineering.manager_user_id = manager.id

    employee = _make_user(db_session, org, "dev@alphacorp.com", UserRole.EMPLOYEE,
                          department_id=engineering.id, manager_id=manager.id, position="Developer")
    employee2 = _make_user(db_session, org, "qa@alphacorp.com", UserRole.EMPLOYEE,
                           department_id=engineering.id, manager_id=manager.id, position="QA Engineer")
    db_session.commit()

    return {
        "admin": admin,
        "hr": hr,
        "executive": executive,
        "director": director,
        "manager": manager,
        "employee": employee,
        "employee2": employee2,
    }


@pytest.fixture(scope="function")
def admin_user(people):
    return people["admin"]


@pytest.fixture(scope="function")
def get_token():
    """Helper fixture to create access tokens with org_id."""
    from app.services.auth import create_access_token

    def _get_token(user, org_id):
        return create_access_token(data={
            "sub": user.email,
            "role": user.role.value,
            "org_id": org_id,
            "type": "access"
        })
    return _get_token


@pytest.fixture(scope="function")
def auth_headers(get_token, org):
    def _headers(user):
        return {"Authorization": f"Bearer {get_token(user, org.id)}"}
    return _headers


@pytest.fixture(scope="function")
def client(db_session):
    """Get a TestClient that uses the test database session via dependency override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
