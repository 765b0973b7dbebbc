"""Pytest configuration and fixtures"""
import re
from typing import Dict, Generator, List, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from app.api.deps import get_email_sender, get_password_hasher
from app.database import Base, get_db
from app.main import app
from app.middleware.rate_limit import limiter
from app.services.errors import EmailDeliveryFailed
from app.services.mailer import EmailSender
from app.services.passwords import PasswordHasher

# File-backed SQLite so the upsert dialect path matches a real server
TEST_DATABASE_URL = "sqlite:///./test.db"

engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# bcrypt's minimum cost keeps the suite fast; production uses BCRYPT_ROUNDS
_fast_hasher = PasswordHasher(rounds=4)

STRONG_PASSWORD = "Secret123!"

_TOKEN_IN_LINK = re.compile(r"token=([0-9a-f]{64})")


class RecordingEmailSender(EmailSender):
    """Keeps sent messages in memory; set ``fail`` to simulate an SMTP outage"""

    def __init__(self) -> None:
        super().__init__(frontend_url="http://frontend.test")
        self.outbox: List[Dict[str, Optional[str]]] = []
        self.fail = False

    def send(self, to_email: str, subject: str, html_body: str, text_body: Optional[str] = None) -> None:
        if self.fail:
            raise EmailDeliveryFailed()
        self.outbox.append({"to": to_email, "subject": subject, "html": html_body, "text": text_body})

    def last_reset_secret(self) -> str:
        match = _TOKEN_IN_LINK.search(self.outbox[-1]["text"])
        assert match, "no reset link in last email"
        return match.group(1)


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a fresh database for each test"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory(db: Session) -> sessionmaker:
    """Factory for extra sessions on the test database, one per simulated request"""
    return TestingSessionLocal


@pytest.fixture
def hasher() -> PasswordHasher:
    return _fast_hasher


@pytest.fixture
def mailer() -> RecordingEmailSender:
    return RecordingEmailSender()


@pytest.fixture(scope="function")
def client(db: Session, mailer: RecordingEmailSender) -> Generator[TestClient, None, None]:
    """Create test client with database, hasher and email overrides"""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_password_hasher] = lambda: _fast_hasher
    app.dependency_overrides[get_email_sender] = lambda: mailer
    limiter.reset()
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def user_data() -> dict:
    """Registration payload for a valid account"""
    return {
        "first_name": "Ana",
        "last_name": "Lopez",
        "age": 30,
        "email": "ana@example.com",
        "password": STRONG_PASSWORD,
        "confirm_password": STRONG_PASSWORD,
    }


@pytest.fixture
def registered_user(client: TestClient, user_data: dict) -> dict:
    """Register ``user_data`` and return the auth response body"""
    response = client.post("/api/v1/users/register", json=user_data)
    assert response.status_code == 201
    return response.json()


@pytest.fixture
def auth_headers(registered_user: dict) -> dict:
    return {"Authorization": f"Bearer {registered_user['access_token']}"}
