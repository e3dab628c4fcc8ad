from datetime import timedelta

from app.models import OtpRecord
from app.services.otp_service import OtpOutcome, OtpService
from app.utils.helpers import utcnow

PHONE = "+15551234567"


def _wrong(code: str) -> str:
    return "000000" if code != "000000" else "111111"


def test_correct_code_succeeds_exactly_once(db_session):
    service = OtpService(db_session)
    issued = service.issue(PHONE, "a@b.com", "127.0.0.1", "pytest")

    first = service.verify(PHONE, issued.code)
    assert first.outcome is OtpOutcome.SUCCESS
    assert first.record.email == "a@b.com"
    assert first.record.verified is True

    service.consume(first.record)
    assert service.verify(PHONE, issued.code).outcome is OtpOutcome.NO_ACTIVE_RECORD


def test_verified_record_cannot_be_reused_before_consumption(db_session):
    service = OtpService(db_session)
    issued = service.issue(PHONE, "a@b.com")

    assert service.verify(PHONE, issued.code).outcome is OtpOutcome.SUCCESS
    assert service.verify(PHONE, issued.code).outcome is OtpOutcome.NO_ACTIVE_RECORD


def test_three_mismatches_delete_the_record(db_session):
    service = OtpService(db_session)
    issued = service.issue(PHONE, "a@b.com")
    wrong = _wrong(issued.code)

    first = service.verify(PHONE, wrong)
    assert first.outcome is OtpOutcome.MISMATCH
    assert first.attempts_remaining == 2

    second = service.verify(PHONE, wrong)
    assert second.outcome is OtpOutcome.MISMATCH
    assert second.attempts_remaining == 1

    assert service.verify(PHONE, wrong).outcome is OtpOutcome.EXHAUSTED
    assert db_session.get(OtpRecord, PHONE) is None

    # The originally correct code no longer helps.
    assert service.verify(PHONE, issued.code).outcome is OtpOutcome.NO_ACTIVE_RECORD


def test_mismatch_is_persisted(db_session):
    service = OtpService(db_session)
    issued = service.issue(PHONE, "a@b.com")
    service.verify(PHONE, _wrong(issued.code))

    db_session.expire_all()
    assert db_session.get(OtpRecord, PHONE).attempts == 1


def test_expired_code_is_treated_as_absent(db_session):
    service = OtpService(db_session)
    issued_at = utcnow()
    issued = service.issue(PHONE, "a@b.com", now=issued_at)

    result = service.verify(PHONE, issued.code, now=issued_at + timedelta(minutes=11))
    assert result.outcome is OtpOutcome.NO_ACTIVE_RECORD
    assert db_session.get(OtpRecord, PHONE) is None


def test_new_issue_replaces_previous_record(db_session):
    service = OtpService(db_session)
    first = service.issue(PHONE, "first@example.com")
    service.verify(PHONE, _wrong(first.code))

    second = service.issue(PHONE, "second@example.com")

    assert db_session.query(OtpRecord).count() == 1
    record = db_session.get(OtpRecord, PHONE)
    assert record.attempts == 0
    assert record.email == "second@example.com"
    assert record.otp_hash != second.code
    assert service.verify(PHONE, second.code).outcome is OtpOutcome.SUCCESS


def test_get_active_ignores_other_numbers(db_session):
    service = OtpService(db_session)
    service.issue(PHONE, "a@b.com")

    assert service.get_active(PHONE) is not None
    assert service.get_active("+447700900123") is None
