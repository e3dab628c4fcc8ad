from sqlalchemy import Column, String, Boolean, DateTime, Integer

from app.models.base import Base


class OtpRecord(Base):
    """One live passcode per phone number; the row is replaced on every send."""

    __tablename__ = "otp_records"

    phone_number = Column(String(32), primary_key=True)
    otp_hash = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)
    attempts = Column(Integer, nullable=False, default=0)
    verified = Column(Boolean, nullable=False, default=False)
    verified_at = Column(DateTime, nullable=True)
    request_ip = Column(String(64), nullable=True)
    request_user_agent = Column(String(512), nullable=True)
