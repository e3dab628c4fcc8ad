from sqlalchemy import Column, String, Text, DateTime, Integer, ForeignKey, Index, Uuid
from sqlalchemy.orm import relationship
import enum
import uuid

from app.models.base import Base
from app.utils.helpers import utcnow


class MessageRole(str, enum.Enum):
    USER = "user"
    ASSISTANT = "assistant"


class Thread(Base):
    __tablename__ = "threads"
    __table_args__ = (Index("ix_threads_user_updated", "user_id", "updated_at"),)

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    thread_id = Column(String(255), unique=True, nullable=False, index=True)
    # No foreign key: deleting an account leaves its threads orphaned, not anonymous.
    user_id = Column(Uuid(as_uuid=True), nullable=True, index=True)
    title = Column(String(255), nullable=False, default="New Thread")

    messages = relationship(
        "Message",
        back_populates="thread",
        cascade="all, delete-orphan",
        order_by="Message.id",
    )


class Message(Base):
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    thread_pk = Column(Uuid(as_uuid=True), ForeignKey("threads.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(20), nullable=False)
    content = Column(Text, nullable=False)
    timestamp = Column(DateTime, nullable=False, default=utcnow)

    thread = relationship("Thread", back_populates="messages")
