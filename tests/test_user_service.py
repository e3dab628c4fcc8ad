from datetime import timedelta

import pytest

from app.core.config import settings
from app.core.exceptions import ConflictError
from app.models import AuthMethod
from app.services.user_service import UserService
from app.utils.helpers import utcnow


def _create(service: UserService, **overrides):
    fields = {
        "email": "Person@Example.com",
        "name": "Person",
        "auth_method": AuthMethod.MOBILE.value,
        "phone_number": "+15551234567",
    }
    fields.update(overrides)
    return service.create_user(**fields)


def test_lookups_return_none_on_miss(db_session):
    service = UserService(db_session)

    assert service.get_by_email("nobody@example.com") is None
    assert service.get_by_phone("+15550000000") is None
    assert service.get_by_google_id("missing") is None
    assert service.get_by_session_token("missing") is None


def test_email_is_normalized_on_create_and_lookup(db_session):
    service = UserService(db_session)
    user = _create(service)

    assert user.email == "person@example.com"
    assert service.get_by_email("PERSON@example.com").id == user.id


def test_duplicate_email_raises_conflict(db_session):
    service = UserService(db_session)
    _create(service)

    with pytest.raises(ConflictError) as exc_info:
        _create(service, phone_number="+15559876543")
    assert exc_info.value.code == "ACCOUNT_CONFLICT"


def test_session_pruned_after_lifetime(db_session):
    service = UserService(db_session)
    user = _create(service)
    issued_at = utcnow()
    session = service.append_session(user, issued_at=issued_at)
    token = session.session_token

    service.prune_expired_sessions(user, now=issued_at + timedelta(days=1))
    assert [s.session_token for s in user.sessions] == [token]

    service.prune_expired_sessions(user, now=issued_at + timedelta(days=8))
    assert user.sessions == []


def test_session_expires_exactly_one_lifetime_after_creation(db_session):
    service = UserService(db_session)
    user = _create(service)

    session = service.append_session(user)

    assert session.expires - session.created_at == timedelta(days=settings.SESSION_EXPIRE_DAYS)


def test_multiple_sessions_coexist(db_session):
    service = UserService(db_session)
    user = _create(service)
    service.append_session(user)
    service.append_session(user)

    assert len(user.sessions) == 2
    assert len({s.session_token for s in user.sessions}) == 2


def test_session_token_lookup_only_matches_live_sessions(db_session):
    service = UserService(db_session)
    user = _create(service)
    issued_at = utcnow()
    token = service.append_session(user, issued_at=issued_at).session_token

    assert service.get_by_session_token(token, now=issued_at + timedelta(days=1)).id == user.id
    assert service.get_by_session_token(token, now=issued_at + timedelta(days=8)) is None


def test_login_history_keeps_most_recent_entries(db_session):
    service = UserService(db_session)
    user = _create(service)

    for index in range(settings.LOGIN_HISTORY_LIMIT + 5):
        service.record_login(user, f"10.0.0.{index}", "pytest")

    assert len(user.login_history) == settings.LOGIN_HISTORY_LIMIT
    assert user.login_history[-1]["ip"] == f"10.0.0.{settings.LOGIN_HISTORY_LIMIT + 4}"
    assert user.login_history[-1]["userAgent"] == "pytest"
    assert user.last_login is not None


def test_failed_attempts_lock_account(db_session):
    service = UserService(db_session)
    user = _create(service)
    now = utcnow()

    for _ in range(settings.MAX_FAILED_LOGIN_ATTEMPTS - 1):
        service.register_failed_attempt(user, now=now)
    assert not service.is_locked(user, now=now)

    service.register_failed_attempt(user, now=now)
    assert service.is_locked(user, now=now)
    assert not service.is_locked(user, now=now + timedelta(minutes=settings.ACCOUNT_LOCK_MINUTES + 1))

    service.record_login(user, "127.0.0.1", "pytest")
    assert user.failed_login_attempts == 0
    assert not service.is_locked(user)


def test_delete_user_removes_sessions(db_session):
    service = UserService(db_session)
    user = _create(service)
    token = service.append_session(user).session_token

    service.delete_user(user)

    assert service.get_by_email("person@example.com") is None
    assert service.get_by_session_token(token) is None
