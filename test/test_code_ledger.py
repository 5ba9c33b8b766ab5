"""
Tests for the one-time code ledger
"""
from datetime import datetime, timedelta

import pytest

from core.exceptions import (
    CodeAttemptsExceededError, CodeExpiredError, CodeMismatchError, CodeNotFoundError
)
from database.models import VerificationCode
from services.code_ledger import CodeLedger

EMAIL = 'admin@example.com'
T0 = datetime(2026, 1, 15, 9, 0, 0)


@pytest.fixture
def ledger() -> CodeLedger:
    return CodeLedger(expiry_minutes=10, max_attempts=3)


def test_generated_codes_are_six_digits(ledger):
    for _ in range(50):
        code = ledger.generate_code()
        assert len(code) == 6
        assert code.isdigit()


def test_issue_then_verify(db_session, ledger):
    code = ledger.issue(db_session, EMAIL, now=T0)
    ledger.verify(db_session, EMAIL, code, now=T0 + timedelta(minutes=5))
    assert db_session.query(VerificationCode).count() == 0


def test_code_is_single_use(db_session, ledger):
    code = ledger.issue(db_session, EMAIL, now=T0)
    ledger.verify(db_session, EMAIL, code, now=T0)
    with pytest.raises(CodeNotFoundError):
        ledger.verify(db_session, EMAIL, code, now=T0)


def test_email_is_normalized(db_session, ledger):
    code = ledger.issue(db_session, '  Admin@Example.COM ', now=T0)
    ledger.verify(db_session, EMAIL, code, now=T0)


def test_reissue_replaces_previous_code(db_session, ledger):
    first = ledger.issue(db_session, EMAIL, now=T0)
    second = ledger.issue(db_session, EMAIL, now=T0 + timedelta(minutes=1))

    rows = db_session.query(VerificationCode).filter(VerificationCode.email == EMAIL).all()
    assert len(rows) == 1
    assert rows[0].code == second

    ledger.verify(db_session, EMAIL, second, now=T0 + timedelta(minutes=2))
    with pytest.raises(CodeNotFoundError):
        ledger.verify(db_session, EMAIL, first, now=T0 + timedelta(minutes=2))


def test_no_code_requested(db_session, ledger):
    with pytest.raises(CodeNotFoundError) as exc_info:
        ledger.verify(db_session, EMAIL, '123456', now=T0)
    assert exc_info.value.message == 'No verification code found. Please request a new code.'


def test_valid_at_exact_expiry(db_session, ledger):
    code = ledger.issue(db_session, EMAIL, now=T0)
    ledger.verify(db_session, EMAIL, code, now=T0 + timedelta(minutes=10))


def test_expired_one_millisecond_after(db_session, ledger):
    code = ledger.issue(db_session, EMAIL, now=T0)
    with pytest.raises(CodeExpiredError) as exc_info:
        ledger.verify(db_session, EMAIL, code, now=T0 + timedelta(minutes=10, milliseconds=1))
    assert exc_info.value.message == 'Verification code has expired. Please request a new code.'

    # The expired record is gone; a retry reports it as missing
    with pytest.raises(CodeNotFoundError):
        ledger.verify(db_session, EMAIL, code, now=T0 + timedelta(minutes=11))


def test_expiry_checked_before_match(db_session, ledger):
    ledger.issue(db_session, EMAIL, now=T0)
    with pytest.raises(CodeExpiredError):
        ledger.verify(db_session, EMAIL, 'not-the-code', now=T0 + timedelta(hours=1))


def test_mismatch_keeps_code_until_attempts_run_out(db_session, ledger):
    code = ledger.issue(db_session, EMAIL, now=T0)

    for _ in range(2):
        with pytest.raises(CodeMismatchError) as exc_info:
            ledger.verify(db_session, EMAIL, 'wrong', now=T0)
        assert exc_info.type is CodeMismatchError
        assert exc_info.value.message == 'Invalid verification code'

    with pytest.raises(CodeAttemptsExceededError):
        ledger.verify(db_session, EMAIL, 'wrong', now=T0)

    # Burned: even the right code no longer works
    with pytest.raises(CodeNotFoundError):
        ledger.verify(db_session, EMAIL, code, now=T0)


def test_correct_code_after_a_mismatch(db_session, ledger):
    code = ledger.issue(db_session, EMAIL, now=T0)
    with pytest.raises(CodeMismatchError):
        ledger.verify(db_session, EMAIL, 'wrong', now=T0)
    ledger.verify(db_session, EMAIL, code, now=T0)


def test_codes_are_per_email(db_session, ledger):
    code = ledger.issue(db_session, EMAIL, now=T0)
    with pytest.raises(CodeNotFoundError):
        ledger.verify(db_session, 'someone.else@example.com', code, now=T0)


def test_purge_expired(db_session, ledger):
    ledger.issue(db_session, 'a@example.com', now=T0)
    ledger.issue(db_session, 'b@example.com', now=T0)
    ledger.issue(db_session, 'c@example.com', now=T0 + timedelta(minutes=30))

    removed = ledger.purge_expired(db_session, now=T0 + timedelta(minutes=20))

    assert removed == 2
    remaining = [row.email for row in db_session.query(VerificationCode).all()]
    assert remaining == ['c@example.com']
