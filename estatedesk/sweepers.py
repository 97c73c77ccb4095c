# Periodic maintenance jobs run from the startup thread in main.py.
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.orm import Session

from .db import SessionLocal
from .otp import purge_stale_otps

logger = logging.getLogger("estatedesk.sweepers")


def sweep_stale_otps(db: Optional[Session] = None) -> int:
    """
    Remove used and expired one-time passcodes.

    Idempotent. Accepts an optional Session; otherwise opens and closes its own.
    Returns the number of rows deleted.
    """
    created_session = False
    if db is None:
        db = SessionLocal()
        created_session = True

    try:
        deleted = purge_stale_otps(db)
        if deleted:
            logger.info("otp.sweep", extra={"deleted": deleted})
        return deleted
    except Exception:
        db.rollback()
        raise
    finally:
        if created_session:
            db.close()
