"""One-time password issuing and verification for password resets.

Each user holds at most one code. Issuing a new code replaces the previous
row, and the unique index on ``otp.user_id`` backs that up at the database
level. A successful reset consumes (deletes) the row.
"""

import enum
import hmac
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from accounts.models.otp import OneTimePassword


class OtpCheck(str, enum.Enum):
    """Outcome of comparing a submitted code against the stored one."""

    VALID = "valid"
    MISSING = "missing"
    MISMATCH = "mismatch"
    EXPIRED = "expired"


@dataclass
class OtpIssue:
    """A freshly issued code."""

    code: str
    expires_at: datetime
    ttl_minutes: int


def generate_code(length: int) -> str:
    """Generate a numeric code of exactly ``length`` digits."""
    return "".join(secrets.choice("0123456789") for _ in range(length))


class OtpService:
    """Issues, verifies and consumes password reset codes."""

    def __init__(self, length: int = 6, ttl_minutes: int = 10, enforce_expiry: bool = True) -> None:
        self.length = length
        self.ttl_minutes = ttl_minutes
        self.enforce_expiry = enforce_expiry

    def issue(self, db: Session, user_id: int) -> OtpIssue:
        """Store a new code for the user, superseding any outstanding one."""
        now = datetime.utcnow()
        code = generate_code(self.length)
        expires_at = now + timedelta(minutes=self.ttl_minutes)

        record = self.latest(db, user_id)
        if record is None:
            record = OneTimePassword(user_id=user_id)
            db.add(record)
        self._fill(record, code, expires_at, now)
        try:
            db.commit()
        except IntegrityError:
            # A concurrent request inserted the row first; overwrite it instead
            db.rollback()
            record = db.query(OneTimePassword).filter(OneTimePassword.user_id == user_id).one()
            self._fill(record, code, expires_at, now)
            db.commit()

        return OtpIssue(code=code, expires_at=expires_at, ttl_minutes=self.ttl_minutes)

    @staticmethod
    def _fill(record: OneTimePassword, code: str, expires_at: datetime, now: datetime) -> None:
        record.otp = code
        record.expires_at = expires_at
        record.created_at = now

    def latest(self, db: Session, user_id: int) -> OneTimePassword | None:
        """Most recently issued code for the user."""
        return (
            db.query(OneTimePassword)
            .filter(OneTimePassword.user_id == user_id)
            .order_by(OneTimePassword.created_at.desc(), OneTimePassword.id.desc())
            .first()
        )

    def verify(self, db: Session, user_id: int, code: str) -> OtpCheck:
        """Compare a submitted code with the latest issuance. Does not consume it."""
        record = self.latest(db, user_id)
        if record is None:
            return OtpCheck.MISSING

        if not hmac.compare_digest(record.otp.encode("utf-8"), code.strip().encode("utf-8")):
            return OtpCheck.MISMATCH

        if self.enforce_expiry and record.expires_at < datetime.utcnow():
            return OtpCheck.EXPIRED

        return OtpCheck.VALID

    def consume(self, db: Session, user_id: int, commit: bool = True) -> None:
        """Invalidate the user's code."""
        db.query(OneTimePassword).filter(OneTimePassword.user_id == user_id).delete(synchronize_session=False)
        if commit:
            db.commit()
