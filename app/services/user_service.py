from datetime import datetime, timedelta
from typing import Optional, Dict, Any
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import ConflictError
from app.core.logging import logger
from app.core.security import issue_session_token
from app.models import User, UserSession
from app.schemas.auth import LoginHistoryEntry
from app.utils.helpers import normalize_email, utcnow


class UserService:
    """Persistence for user records and their per-device sessions.

    Lookups return ``None`` on a miss. Writes that collide with a unique
    column raise ``ConflictError`` so callers can answer with a user-facing
    message instead of a generic failure.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, user_id: UUID) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    def get_by_google_id(self, google_id: str) -> Optional[User]:
        return self.db.query(User).filter(User.google_id == google_id).first()

    def get_by_phone(self, phone_number: str) -> Optional[User]:
        return self.db.query(User).filter(User.phone_number == phone_number).first()

    def get_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == normalize_email(email)).first()

    def get_by_session_token(self, session_token: str, now: Optional[datetime] = None) -> Optional[User]:
        reference_time = now or utcnow()
        return (
            self.db.query(User)
            .join(UserSession, UserSession.user_id == User.id)
            .filter(
                UserSession.session_token == session_token,
                UserSession.expires > reference_time,
            )
            .first()
        )

    def create_user(self, **fields: Any) -> User:
        if "email" in fields and fields["email"]:
            fields["email"] = normalize_email(fields["email"])
        fields.setdefault("login_history", [])

        user = User(**fields)
        self.db.add(user)
        self._commit_or_conflict("Account already exists for this email, Google account or phone number.")
        self.db.refresh(user)
        logger.info("User created", user_id=str(user.id), auth_method=user.auth_method)
        return user

    def update_user(self, user: User, **fields: Any) -> User:
        if "email" in fields and fields["email"]:
            fields["email"] = normalize_email(fields["email"])
        for key, value in fields.items():
            setattr(user, key, value)
        self._commit_or_conflict("Another account already uses this email or phone number.")
        self.db.refresh(user)
        return user

    def append_session(self, user: User, issued_at: Optional[datetime] = None) -> UserSession:
        issued_at = issued_at or utcnow()
        token, expires = issue_session_token(issued_at)
        session = UserSession(session_token=token, expires=expires, created_at=issued_at)
        user.sessions.append(session)
        self.db.commit()
        return session

    def prune_expired_sessions(self, user: User, now: Optional[datetime] = None) -> User:
        reference_time = now or utcnow()
        user.sessions = [session for session in user.sessions if session.expires > reference_time]
        self.db.commit()
        return user

    def record_login(
        self,
        user: User,
        ip: Optional[str],
        user_agent: Optional[str],
        now: Optional[datetime] = None,
    ) -> User:
        timestamp = now or utcnow()
        entry: Dict[str, Any] = LoginHistoryEntry(
            ip=ip, user_agent=user_agent, timestamp=timestamp
        ).model_dump(mode="json", by_alias=True)
        history = list(user.login_history or [])
        history.append(entry)
        # Reassign so the JSON column is flagged dirty.
        user.login_history = history[-settings.LOGIN_HISTORY_LIMIT:]
        user.last_login = timestamp
        user.failed_login_attempts = 0
        user.locked_until = None
        self.db.commit()
        return user

    def register_failed_attempt(self, user: User, now: Optional[datetime] = None) -> User:
        reference_time = now or utcnow()
        user.failed_login_attempts = (user.failed_login_attempts or 0) + 1
        if user.failed_login_attempts >= settings.MAX_FAILED_LOGIN_ATTEMPTS:
            user.locked_until = reference_time + timedelta(minutes=settings.ACCOUNT_LOCK_MINUTES)
            logger.warning(
                "Account locked after repeated failed logins",
                user_id=str(user.id),
                attempts=user.failed_login_attempts,
            )
        self.db.commit()
        return user

    @staticmethod
    def is_locked(user: User, now: Optional[datetime] = None) -> bool:
        return bool(user.locked_until and user.locked_until > (now or utcnow()))

    def delete_user(self, user: User) -> None:
        user_id = str(user.id)
        self.db.delete(user)
        self.db.commit()
        logger.info("User deleted", user_id=user_id)

    def _commit_or_conflict(self, message: str) -> None:
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            logger.warning("Unique constraint violated", error=str(exc.orig))
            raise ConflictError(message, code="ACCOUNT_CONFLICT") from None
