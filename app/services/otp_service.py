from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.logging import logger
from app.core.security import generate_otp_code, hash_otp, verify_otp_hash
from app.models import OtpRecord
from app.utils.helpers import mask_email, utcnow


class OtpOutcome(enum.Enum):
    NO_ACTIVE_RECORD = "no_active_record"
    MISMATCH = "mismatch"
    EXHAUSTED = "exhausted"
    SUCCESS = "success"


@dataclass
class OtpVerification:
    outcome: OtpOutcome
    record: Optional[OtpRecord] = None
    attempts_remaining: int = 0


@dataclass
class IssuedOtp:
    record: OtpRecord
    code: str


class OtpService:
    """Short-lived, single-use passcodes keyed by canonical phone number."""

    def __init__(self, db: Session):
        self.db = db

    def purge_expired(self, reference_time: Optional[datetime] = None) -> int:
        if reference_time is None:
            reference_time = utcnow()

        removed = (
            self.db.query(OtpRecord)
            .filter(OtpRecord.expires_at <= reference_time)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        if removed:
            logger.info("Purged expired OTP records", count=removed)
        return removed

    def get_active(self, phone_number: str, now: Optional[datetime] = None) -> Optional[OtpRecord]:
        reference_time = now or utcnow()
        return (
            self.db.query(OtpRecord)
            .filter(
                OtpRecord.phone_number == phone_number,
                OtpRecord.expires_at > reference_time,
            )
            .first()
        )

    def issue(
        self,
        phone_number: str,
        email: str,
        request_ip: Optional[str] = None,
        request_user_agent: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> IssuedOtp:
        """Create the passcode for ``phone_number``, replacing any earlier one."""
        issued_at = now or utcnow()
        self.purge_expired(issued_at)

        code = generate_otp_code()
        record = self.db.get(OtpRecord, phone_number)
        if record is None:
            record = OtpRecord(phone_number=phone_number)
            self.db.add(record)

        record.otp_hash = hash_otp(code)
        record.email = email
        record.expires_at = issued_at + timedelta(minutes=settings.OTP_EXPIRE_MINUTES)
        record.attempts = 0
        record.verified = False
        record.verified_at = None
        record.request_ip = request_ip
        record.request_user_agent = (request_user_agent or "")[:512] or None
        record.created_at = issued_at
        self.db.commit()
        self.db.refresh(record)

        logger.info(
            "OTP issued",
            phone_number=phone_number,
            email=mask_email(email),
            expires_at=record.expires_at.isoformat(),
        )
        return IssuedOtp(record=record, code=code)

    def verify(self, phone_number: str, candidate: str, now: Optional[datetime] = None) -> OtpVerification:
        """Check ``candidate`` against the live record.

        A successful verification leaves the record in place, marked verified;
        the caller reads the target email and then calls :meth:`consume`.
        """
        reference_time = now or utcnow()
        self.purge_expired(reference_time)

        record = self.get_active(phone_number, reference_time)
        if record is None:
            return OtpVerification(OtpOutcome.NO_ACTIVE_RECORD)

        if record.verified or record.attempts >= settings.OTP_MAX_ATTEMPTS:
            return OtpVerification(OtpOutcome.NO_ACTIVE_RECORD)

        if not verify_otp_hash(candidate.strip(), record.otp_hash):
            record.attempts += 1
            if record.attempts >= settings.OTP_MAX_ATTEMPTS:
                self.db.delete(record)
                self.db.commit()
                logger.warning("OTP attempts exhausted", phone_number=phone_number)
                return OtpVerification(OtpOutcome.EXHAUSTED)

            self.db.commit()
            remaining = settings.OTP_MAX_ATTEMPTS - record.attempts
            logger.info("OTP mismatch", phone_number=phone_number, attempts=record.attempts)
            return OtpVerification(OtpOutcome.MISMATCH, record=record, attempts_remaining=remaining)

        record.verified = True
        record.verified_at = reference_time
        self.db.commit()
        return OtpVerification(OtpOutcome.SUCCESS, record=record)

    def consume(self, record: OtpRecord) -> None:
        self.db.delete(record)
        self.db.commit()
