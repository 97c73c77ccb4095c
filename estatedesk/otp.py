# One-time passcodes for email sign-up and sign-in.
# Codes are stored hashed; only the newest unused code for an email+purpose can be redeemed.
from __future__ import annotations

import logging
import os
import secrets
from datetime import datetime, timedelta, timezone
from typing import Literal

from passlib.context import CryptContext
from sqlalchemy.orm import Session

from . import mailer, models

logger = logging.getLogger("estatedesk.otp")

Purpose = Literal["registration", "login"]

OTP_TTL_MINUTES = int(os.getenv("OTP_TTL_MINUTES", "5"))
# pbkdf2 keeps hashing pure-python and fast enough for short-lived codes
otp_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def generate_code() -> str:
    """Six-digit numeric code, never starting with 0."""
    return str(100000 + secrets.randbelow(900000))


def _as_utc(value: datetime) -> datetime:
    # SQLite returns naive datetimes; stored values are UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def issue_otp(db: Session, email: str, purpose: Purpose) -> models.EmailOtp:
    """Persist a fresh hashed code and email it. The plain code only leaves through the mailer."""
    code = generate_code()
    row = models.EmailOtp(
        email=email,
        code_hash=otp_context.hash(code),
        purpose=purpose,
        expires_at=datetime.now(timezone.utc) + timedelta(minutes=OTP_TTL_MINUTES),
        used=False,
    )
    db.add(row)
    db.commit()
    db.refresh(row)

    mailer.send_otp_email(email, code, purpose)
    logger.info("otp.issued", extra={"email": email, "purpose": purpose, "otp_id": row.id})
    return row


def verify_otp(db: Session, email: str, code: str, purpose: Purpose) -> bool:
    """
    Check `code` against the newest unused code for email+purpose.

    A match that has not expired is marked used (single use). Older codes are
    never consulted, so requesting a new code invalidates the previous one.
    """
    row = (
        db.query(models.EmailOtp)
        .filter(
            models.EmailOtp.email == email,
            models.EmailOtp.purpose == purpose,
            models.EmailOtp.used.is_(False),
        )
        .order_by(models.EmailOtp.created_at.desc(), models.EmailOtp.id.desc())
        .first()
    )
    if row is None:
        return False
    if _as_utc(row.expires_at) <= datetime.now(timezone.utc):
        return False
    if not otp_context.verify(code, row.code_hash):
        return False

    row.used = True
    db.add(row)
    db.commit()
    return True


def purge_stale_otps(db: Session) -> int:
    """Delete used or expired codes. Returns the number of rows removed."""
    now = datetime.now(timezone.utc)
    deleted = (
        db.query(models.EmailOtp)
        .filter((models.EmailOtp.used.is_(True)) | (models.EmailOtp.expires_at < now))
        .delete(synchronize_session=False)
    )
    db.commit()
    return deleted
