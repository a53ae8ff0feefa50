import os

# Use a test database; must be set before the app modules build their engine
TEST_DATABASE_URL = "sqlite:///./test.db"
os.environ["DATABASE_URL"] = TEST_DATABASE_URL

import pytest
from datetime import date
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient
from uuid import uuid4

from backend.app.models.models import Base, User, Couple, CoupleInvitation, CoupleStatus
from backend.app.database import build_engine, get_db_session
from backend.app.main import app

@pytest.fixture(scope="session")
def db_engine():
    engine = build_engine(TEST_DATABASE_URL)
    Base.metadata.create_all(bind=engine)
    yield engine
    # Teardown - drop all tables
    Base.metadata.drop_all(bind=engine)
    engine.dispose()
    if os.path.exists("./test.db"):
        os.remove("./test.db")

@pytest.fixture(scope="session")
def session_factory(db_engine):
    """Creates independent sessions, e.g. one per thread in race tests"""
    return sessionmaker(bind=db_engine, autocommit=False, autoflush=False)

@pytest.fixture(scope="function")
def db_session(session_factory):
    """Returns a fresh SQLAlchemy session for each test"""
    session = session_factory()

    # Clear out test data from previous run
    session.query(CoupleInvitation).delete()
    session.query(Couple).delete()
    session.query(User).delete()
    session.commit()

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
def make_user(db_session):
    """Factory for users that are not in any couple"""
    def _make_user(email=None, display_name=None):
        user = User(
            id=str(uuid4()),
            email=email or f"user-{uuid4().hex[:8]}@example.com",
            display_name=display_name or "Test User"
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user
    return _make_user

@pytest.fixture
def test_user(make_user):
    """Creates a test user and returns it"""
    return make_user(email="test@example.com", display_name="Test User")

@pytest.fixture
def partner_user(make_user):
    return make_user(email="partner@example.com", display_name="Partner User")

@pytest.fixture
def make_couple(db_session):
    """Factory for couples written directly, pointers included"""
    def _make_couple(*members, pairing_code=None, anniversary_date=date(2020, 1, 1)):
        couple = Couple(
            id=str(uuid4()),
            partner_1_id=members[0].id,
            partner_2_id=members[1].id if len(members) > 1 else None,
            pairing_code=pairing_code or uuid4().hex[:8].upper(),
            anniversary_date=anniversary_date,
            status=CoupleStatus.ACTIVE if len(members) > 1 else CoupleStatus.PENDING,
        )
        db_session.add(couple)
        for member in members:
            member.couple_id = couple.id
        db_session.commit()
        db_session.refresh(couple)
        return couple
    return _make_couple

@pytest.fixture
def test_couple(make_couple, test_user, partner_user):
    """Creates a test couple with two users and returns it"""
    return make_couple(test_user, partner_user, pairing_code="TESTCODE")

