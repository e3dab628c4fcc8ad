import os
from typing import Dict, Generator, List

os.environ.setdefault("SECRET_KEY", "test-secret-key-with-enough-entropy")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("GOOGLE_CLIENT_ID", "test-client-id")
os.environ.setdefault("GOOGLE_CLIENT_SECRET", "test-client-secret")
os.environ.setdefault("GOOGLE_REDIRECT_URI", "http://localhost:8000/api/auth/google/callback")
os.environ.setdefault("OPENAI_API_KEY", "sk-test")
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core import database
from app.core.database import get_db
from app.main import app
from app.models import Base
from app.services.email_service import EmailService
from app.services.llm_service import LLMService


@pytest.fixture(scope="session")
def _test_engine() -> Generator:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    database.engine = engine
    database.SessionLocal = TestingSessionLocal

    yield engine

    engine.dispose()


@pytest.fixture(scope="function", autouse=True)
def _tables(_test_engine) -> Generator[None, None, None]:
    Base.metadata.create_all(bind=_test_engine)
    yield
    Base.metadata.drop_all(bind=_test_engine)


@pytest.fixture(scope="function")
def db_session(_test_engine) -> Generator[Session, None, None]:
    session = database.SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def client(_test_engine) -> Generator[TestClient, None, None]:
    def override_get_db():
        session = database.SessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.pop(get_db, None)


@pytest.fixture(scope="function", autouse=True)
def llm_calls(monkeypatch) -> List[Dict]:
    """Replace the model call with an echo and record what it was sent."""
    calls: List[Dict] = []

    async def _fake_generate_reply(self: LLMService, history, prompt, images=None) -> str:
        calls.append(
            {
                "history": [(message.role, message.content) for message in history],
                "prompt": prompt,
                "images": list(images or []),
            }
        )
        return f"Echo: {prompt.splitlines()[0]}"

    monkeypatch.setattr(LLMService, "generate_reply", _fake_generate_reply)
    return calls


@pytest.fixture(scope="function", autouse=True)
def sent_emails(monkeypatch) -> List[Dict]:
    sent: List[Dict] = []

    async def _fake_send_otp(self: EmailService, to_email: str, code: str) -> None:
        sent.append({"to": to_email, "code": code})

    monkeypatch.setattr(EmailService, "send_otp", _fake_send_otp)
    return sent


def auth_headers(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def login_with_otp(client: TestClient, phone_number: str, email: str) -> Dict:
    """Run send-otp and verify-otp for a phone number; returns the verify body."""
    sent = client.post("/api/auth/send-otp", json={"phoneNumber": phone_number, "email": email})
    assert sent.status_code == 200, sent.text
    code = sent.json()["otp"]

    verified = client.post("/api/auth/verify-otp", json={"phoneNumber": phone_number, "otp": code})
    assert verified.status_code == 200, verified.text
    # Tests pass the bearer header explicitly; the cookie jar stays anonymous.
    client.cookies.clear()
    return verified.json()
