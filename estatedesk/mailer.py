# Transactional email delivery through the Resend HTTP API.
# Without RESEND_API_KEY the mailer runs offline: messages are logged instead of sent (dev/CI).
from __future__ import annotations

import logging
import os

import requests

logger = logging.getLogger("estatedesk.mailer")

RESEND_API_URL = "https://api.resend.com/emails"
RESEND_API_KEY = os.getenv("RESEND_API_KEY", "").strip()
OTP_FROM_EMAIL = os.getenv("OTP_FROM_EMAIL", "no-reply@estatedesk.local")
REQUEST_TIMEOUT_SECONDS = 10


class EmailDeliveryError(RuntimeError):
    pass


def email_enabled() -> bool:
    return bool(RESEND_API_KEY)


def send_email(to: str, subject: str, html: str) -> None:
    """Send one message; raises EmailDeliveryError when the provider rejects it or is unreachable."""
    if not email_enabled():
        logger.info("mailer.offline", extra={"to": to, "subject": subject})
        return

    try:
        res = requests.post(
            RESEND_API_URL,
            headers={"Authorization": f"Bearer {RESEND_API_KEY}"},
            json={"from": OTP_FROM_EMAIL, "to": [to], "subject": subject, "html": html},
            timeout=REQUEST_TIMEOUT_SECONDS,
        )
    except requests.RequestException as exc:
        raise EmailDeliveryError(f"Email provider unreachable: {exc}") from exc
    if res.status_code >= 400:
        raise EmailDeliveryError(f"Email provider returned {res.status_code}: {res.text[:200]}")
    logger.info("mailer.sent", extra={"to": to, "subject": subject})


def send_otp_email(to: str, code: str, purpose: str) -> None:
    label = "sign-in" if purpose == "login" else "registration"
    send_email(
        to,
        subject="Your EstateDesk verification code",
        html=f"<p>Your {label} code is <strong>{code}</strong>. It expires in a few minutes.</p>",
    )
