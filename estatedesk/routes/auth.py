from __future__ import annotations

import logging
import os
import time
from typing import Optional

import jwt
from fastapi import APIRouter, Depends, HTTPException, Header, status
from sqlalchemy.orm import Session

from ..db import get_db
from .. import models, otp, schemas
from ..mailer import EmailDeliveryError
from ..rate_limit import rate_limit

router = APIRouter()
logger = logging.getLogger("estatedesk.auth")

# Security primitives
JWT_SECRET: str = os.getenv("ESTATEDESK_JWT_SECRET", "dev-secret-change-me")
JWT_ALG: str = "HS256"
JWT_TTL_SECONDS: int = int(os.getenv("JWT_TTL_SECONDS", str(60 * 60 * 24 * 7)))  # 7 days


def _admin_emails() -> set:
    raw = os.getenv("ADMIN_EMAILS", "")
    return {e.strip().lower() for e in raw.split(",") if e.strip()}


# ----------------
# Helpers
# ----------------
def create_access_token(*, agent: models.Agent) -> str:
    now = int(time.time())
    payload = {
        "sub": str(agent.id),
        "email": agent.email,
        "role": agent.role,
        "agency_id": agent.agency_id,
        "iat": now,
        "exp": now + JWT_TTL_SECONDS,
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALG)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALG])
    except jwt.ExpiredSignatureError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired") from exc
    except jwt.InvalidTokenError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc


def _token_response(agent: models.Agent) -> schemas.TokenResponse:
    return schemas.TokenResponse(
        access_token=create_access_token(agent=agent),
        agent=schemas.AgentRead.model_validate(agent),
    )


def _send_code(db: Session, email: str, purpose: otp.Purpose) -> None:
    try:
        otp.issue_otp(db, email, purpose)
    except EmailDeliveryError as exc:
        logger.error("otp.delivery_failed", extra={"email": email, "purpose": purpose, "error": str(exc)})
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Failed to send verification code") from exc


# ----------------
# Dependencies
# ----------------
def bearer_token_from_auth_header(authorization: Optional[str]) -> str:
    if not authorization:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authorization header missing")
    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid Authorization header")
    return parts[1]


def get_current_agent(
    db: Session = Depends(get_db),
    authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> models.Agent:
    token = bearer_token_from_auth_header(authorization)
    payload = decode_token(token)
    agent_id = payload.get("sub")
    if not agent_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload")
    agent = db.get(models.Agent, int(agent_id))
    if not agent:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Agent not found")
    if not agent.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Agent account is disabled")
    return agent


def require_admin(agent: models.Agent = Depends(get_current_agent)) -> models.Agent:
    if agent.role != "admin":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin role required")
    return agent


def require_agency(agent: models.Agent = Depends(get_current_agent)) -> models.Agent:
    """Agents that finished the branding step and belong to an agency."""
    if agent.agency_id is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Complete onboarding to create an agency first")
    return agent


# ----------------
# Routes
# ----------------
@router.post(
    "/auth/request-otp",
    response_model=schemas.MessageResponse,
    dependencies=[Depends(rate_limit("otp_request"))],
)
def request_registration_otp(payload: schemas.OtpRequest, db: Session = Depends(get_db)) -> schemas.MessageResponse:
    email = payload.email
    agent = db.query(models.Agent).filter(models.Agent.email == email).first()
    if agent is None:
        agent = models.Agent(
            email=email,
            name=payload.name,
            role="admin" if email in _admin_emails() else "agent",
            email_verified=False,
            onboarding_step=1,
        )
        db.add(agent)
        db.commit()
        db.refresh(agent)
        logger.info("agent.registered", extra={"agent_id": agent.id, "role": agent.role})
    elif payload.name and not agent.name:
        agent.name = payload.name
        db.add(agent)
        db.commit()

    _send_code(db, email, "registration")
    return schemas.MessageResponse(message="Verification code sent")


@router.post(
    "/auth/verify-otp",
    response_model=schemas.TokenResponse,
    dependencies=[Depends(rate_limit("otp_verify"))],
)
def verify_registration_otp(payload: schemas.OtpVerify, db: Session = Depends(get_db)) -> schemas.TokenResponse:
    agent = db.query(models.Agent).filter(models.Agent.email == payload.email).first()
    if agent is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Agent not found")
    if not otp.verify_otp(db, payload.email, payload.code, "registration"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid or expired code")

    agent.email_verified = True
    agent.onboarding_step = max(agent.onboarding_step or 0, 2)
    db.add(agent)
    db.commit()
    db.refresh(agent)
    logger.info("agent.verified", extra={"agent_id": agent.id})
    return _token_response(agent)


@router.post(
    "/auth/request-login-otp",
    response_model=schemas.MessageResponse,
    dependencies=[Depends(rate_limit("otp_request"))],
)
def request_login_otp(payload: schemas.LoginOtpRequest, db: Session = Depends(get_db)) -> schemas.MessageResponse:
    agent = db.query(models.Agent).filter(models.Agent.email == payload.email).first()
    if agent is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No account found for this email")
    if not agent.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Agent account is disabled")

    _send_code(db, payload.email, "login")
    return schemas.MessageResponse(message="Login code sent")


@router.post(
    "/auth/verify-login-otp",
    response_model=schemas.TokenResponse,
    dependencies=[Depends(rate_limit("otp_verify"))],
)
def verify_login_otp(payload: schemas.OtpVerify, db: Session = Depends(get_db)) -> schemas.TokenResponse:
    agent = db.query(models.Agent).filter(models.Agent.email == payload.email).first()
    if agent is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No account found for this email")
    if not otp.verify_otp(db, payload.email, payload.code, "login"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid or expired code")

    # A login code also proves ownership of the address
    if not agent.email_verified:
        agent.email_verified = True
        agent.onboarding_step = max(agent.onboarding_step or 0, 2)
        db.add(agent)
        db.commit()
        db.refresh(agent)
    logger.info("agent.login", extra={"agent_id": agent.id})
    return _token_response(agent)


@router.get("/auth/me", response_model=schemas.AgentRead)
def me(agent: models.Agent = Depends(get_current_agent)) -> models.Agent:
    return agent
