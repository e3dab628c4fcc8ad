from sqlalchemy import Column, String, Text, BigInteger, DateTime, LargeBinary, JSON, Index, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import deferred
import uuid

from app.models.base import Base
from app.utils.helpers import utcnow


class Upload(Base):
    __tablename__ = "uploads"
    __table_args__ = (
        Index("ix_uploads_user_uploaded", "user_id", "uploaded_at"),
        Index("ix_uploads_thread_uploaded", "thread_id", "uploaded_at"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), nullable=True, index=True)
    thread_id = Column(String(255), nullable=False, index=True)
    filename = Column(String(512), unique=True, nullable=False)
    original_name = Column(String(512), nullable=False)
    mime_type = Column(String(255), nullable=False)
    size = Column(BigInteger, nullable=False)
    # Raw bytes are only loaded for download/base64/vision use.
    file_data = deferred(Column(LargeBinary, nullable=False))
    details = Column("metadata", JSON().with_variant(JSONB, "postgresql"), nullable=False, default=dict)
    extracted_text = Column(Text, nullable=False, default="")
    uploaded_at = Column(DateTime, nullable=False, default=utcnow)

    def is_image(self) -> bool:
        return self.mime_type.startswith("image/")

    def is_owned(self) -> bool:
        return self.user_id is not None
