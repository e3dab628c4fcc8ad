from sqlalchemy import Column, String, Boolean, DateTime, Integer, ForeignKey, JSON, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
import enum
import uuid

from app.models.base import Base


class AuthMethod(str, enum.Enum):
    GOOGLE = "google"
    MOBILE = "mobile"


class User(Base):
    __tablename__ = "users"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    google_id = Column(String(255), unique=True, nullable=True, index=True)
    phone_number = Column(String(32), unique=True, nullable=True, index=True)  # E.164
    email = Column(String(255), unique=True, nullable=False, index=True)  # lower-cased
    email_verified = Column(Boolean, nullable=False, default=False)
    phone_verified = Column(Boolean, nullable=False, default=False)
    name = Column(String(255), nullable=False)
    image = Column(String(1024), nullable=True)
    auth_method = Column(String(20), nullable=False, default=AuthMethod.GOOGLE.value)

    # Security metadata
    last_login = Column(DateTime, nullable=True)
    login_history = Column(JSON().with_variant(JSONB, "postgresql"), nullable=False, default=list)
    failed_login_attempts = Column(Integer, nullable=False, default=0)
    locked_until = Column(DateTime, nullable=True)

    sessions = relationship(
        "UserSession",
        back_populates="user",
        cascade="all, delete-orphan",
        order_by="UserSession.created_at",
    )


class UserSession(Base):
    __tablename__ = "user_sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    session_token = Column(String(128), unique=True, nullable=False, index=True)
    expires = Column(DateTime, nullable=False, index=True)

    user = relationship("User", back_populates="sessions")
