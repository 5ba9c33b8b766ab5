"""
One-time code ledger for admin login verification.

Codes are 6-digit strings bound to an email, valid for OTP_EXPIRY_MINUTES and
consumed on first successful use. Issuing a code replaces any earlier code for
the same email. Expired rows are treated as absent by every read and removed
either on that read or by the periodic sweep.
"""
import secrets
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from core.exceptions import (
    CodeAttemptsExceededError, CodeExpiredError, CodeMismatchError, CodeNotFoundError
)
from core.logger import logger
from core.utils import utcnow
from core.validators import normalize_email
from database.models import VerificationCode
import config


class CodeLedger:
    """Issue and check short-lived numeric codes."""

    def __init__(
        self,
        expiry_minutes: Optional[int] = None,
        max_attempts: Optional[int] = None,
        length: int = config.OTP_LENGTH,
    ):
        self.expiry = timedelta(minutes=expiry_minutes or config.OTP_EXPIRY_MINUTES)
        self.max_attempts = max_attempts or config.OTP_MAX_ATTEMPTS
        self.length = length

    def generate_code(self) -> str:
        """Uniformly random digits; leading zeros are kept."""
        return "".join(secrets.choice("0123456789") for _ in range(self.length))

    def issue(self, db: Session, email: str, now: Optional[datetime] = None) -> str:
        """
        Issue a fresh code for ``email``, deleting any previous ones.

        Returns:
            The plaintext code; delivery is the caller's job
        """
        email = normalize_email(email)
        now = now or utcnow()
        code = self.generate_code()

        db.query(VerificationCode).filter(VerificationCode.email == email).delete()
        db.add(VerificationCode(
            email=email,
            code=code,
            attempts=0,
            expires_at=now + self.expiry,
            created_at=now,
        ))
        db.commit()
        logger.info(f"Issued verification code for {email} (expires in {self.expiry})")
        return code

    def verify(self, db: Session, email: str, submitted_code: str, now: Optional[datetime] = None) -> None:
        """
        Check ``submitted_code`` for ``email`` and consume it on success.

        Checks run in order: existence, expiry, match.

        Raises:
            CodeNotFoundError: No code on record
            CodeExpiredError: Code is past expires_at (record removed)
            CodeMismatchError: Code differs
            CodeAttemptsExceededError: Mismatch that used up the last attempt (record removed)
        """
        email = normalize_email(email)
        now = now or utcnow()

        record = self._latest(db, email)
        if record is None:
            raise CodeNotFoundError()

        if self._is_expired(record, now):
            db.delete(record)
            db.commit()
            logger.info(f"Verification code for {email} expired")
            raise CodeExpiredError()

        submitted = (submitted_code or "").strip().encode("utf-8")
        if not secrets.compare_digest(record.code.encode("utf-8"), submitted):
            attempts = record.attempts + 1
            if attempts >= self.max_attempts:
                db.delete(record)
                db.commit()
                logger.warning(f"Verification code for {email} burned after {attempts} failed attempts")
                raise CodeAttemptsExceededError()
            record.attempts = attempts
            db.commit()
            raise CodeMismatchError()

        db.delete(record)
        db.commit()
        logger.info(f"Verification code for {email} accepted")

    def purge_expired(self, db: Session, now: Optional[datetime] = None) -> int:
        """Delete every expired code. Returns the number of rows removed."""
        removed = db.query(VerificationCode).filter(
            VerificationCode.expires_at < (now or utcnow())
        ).delete()
        db.commit()
        if removed:
            logger.info(f"Purged {removed} expired verification code(s)")
        return removed

    @staticmethod
    def _latest(db: Session, email: str) -> Optional[VerificationCode]:
        if not email:
            return None
        return db.query(VerificationCode).filter(
            VerificationCode.email == email
        ).order_by(VerificationCode.created_at.desc(), VerificationCode.id.desc()).first()

    @staticmethod
    def _is_expired(record: VerificationCode, now: datetime) -> bool:
        return now > record.expires_at
