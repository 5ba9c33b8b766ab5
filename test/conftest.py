"""
Complaint Box API - Test Configuration and Fixtures
"""
import os
import tempfile
from pathlib import Path
from typing import AsyncGenerator, Generator

# Set testing environment before anything reads config
os.environ['ENVIRONMENT'] = 'test'
os.environ['SECRET_KEY'] = 'test-secret-key-for-testing-only-0f3a9c'
os.environ['SMTP_USER'] = ''
os.environ['SMTP_PASSWORD'] = ''
os.environ['ALLOW_ADMIN_SIGNUP'] = 'false'
os.environ['ADMIN_LOGIN_REQUIRES_TICKET'] = 'true'
os.environ['LOG_FILE'] = str(Path(tempfile.gettempdir()) / 'complaint_box_test.log')

import pytest
import pytest_asyncio
from faker import Faker
from httpx import AsyncClient, ASGITransport
from sqlalchemy.orm import Session

import config
from app import app
from auth.dependencies import get_db_session
from auth.security import create_access_token
from database.connection import Database
from database.models import UserRole
from services.identity_resolver import ResolvedIdentity, identity_resolver

fake = Faker()

DEFAULT_PASSWORD = 'testpassword123'


class RecordingQueue:
    """Stands in for NotificationQueue; keeps messages instead of sending them."""

    def __init__(self):
        self.sent = []

    def enqueue(self, message, description='email'):
        self.sent.append((message, description))


def unique_username() -> str:
    return f"{fake.user_name()}{fake.random_int(100, 99999)}".lower()


def unique_email() -> str:
    return f"{fake.random_int(100, 99999)}.{fake.email()}".lower()


def bearer(resolved: ResolvedIdentity) -> dict:
    """Authorization header for an identity."""
    token = create_access_token(resolved.id, resolved.role.value)
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def database() -> Generator[Database, None, None]:
    """Fresh in-memory database, installed as config.db for the test."""
    test_db = Database('sqlite://')
    test_db.create_tables()
    previous = config.db
    config.db = test_db
    yield test_db
    config.db = previous
    test_db.drop_tables()
    test_db.dispose()


@pytest.fixture
def db_session(database: Database) -> Generator[Session, None, None]:
    """Database session shared by the test and the requests it makes."""
    session = database.SessionLocal()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def notifications() -> RecordingQueue:
    return RecordingQueue()


@pytest_asyncio.fixture
async def client(db_session: Session, notifications: RecordingQueue) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with database override"""
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db_session] = override_get_db
    app.state.notifications = notifications

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url='http://test') as ac:
        yield ac

    app.dependency_overrides.clear()
    app.state.notifications = None


@pytest.fixture
def make_identity(db_session: Session):
    """Factory creating an identity in the given variant."""
    def _make(role=UserRole.STUDENT, password=DEFAULT_PASSWORD, **fields) -> ResolvedIdentity:
        data = {
            'name': fake.name(),
            'username': unique_username(),
            'email': unique_email(),
            'password': password,
        }
        data.update(fields)
        return identity_resolver.create_in_variant(db_session, role, data)

    return _make


@pytest.fixture
def student(make_identity) -> ResolvedIdentity:
    return make_identity(UserRole.STUDENT, department='Computer Science', year_of_study='2')


@pytest.fixture
def faculty(make_identity) -> ResolvedIdentity:
    return make_identity(UserRole.FACULTY, department='Computer Science')


@pytest.fixture
def admin(make_identity) -> ResolvedIdentity:
    return make_identity(UserRole.ADMIN)
