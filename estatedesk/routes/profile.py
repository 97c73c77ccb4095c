# Account settings and the branding/contact onboarding steps.
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ..db import get_db
from .. import models, schemas
from ..rate_limit import rate_limit
from .auth import get_current_agent

router = APIRouter()
logger = logging.getLogger("estatedesk.profile")

# ProfileUpdate field -> Agency column
_AGENCY_FIELDS = {
    "agency_name": "name",
    "agency_phone": "phone",
    "agency_email": "email",
    "website": "website",
    "locations": "locations",
    "logo": "logo",
    "primary_color": "primary_color",
    "secondary_color": "secondary_color",
}


@router.get("/profile", response_model=schemas.AgentRead)
def get_profile(agent: models.Agent = Depends(get_current_agent)) -> models.Agent:
    return agent


@router.patch("/profile", response_model=schemas.AgentRead, dependencies=[Depends(rate_limit("write"))])
def update_profile(
    payload: schemas.ProfileUpdate,
    db: Session = Depends(get_db),
    agent: models.Agent = Depends(get_current_agent),
) -> models.Agent:
    changes = payload.model_dump(exclude_unset=True)
    agency_changes = {col: changes.pop(field) for field, col in _AGENCY_FIELDS.items() if field in changes}
    if agency_changes and agent.agency is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Agent has no agency to update")

    try:
        for field, value in changes.items():
            setattr(agent, field, value)
        for col, value in agency_changes.items():
            setattr(agent.agency, col, value)
            db.add(agent.agency)
        db.add(agent)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(agent)
    return agent


@router.post("/onboarding/step3", response_model=schemas.AgentRead, dependencies=[Depends(rate_limit("write"))])
def onboarding_branding(
    payload: schemas.OnboardingBranding,
    db: Session = Depends(get_db),
    agent: models.Agent = Depends(get_current_agent),
) -> models.Agent:
    if not agent.email_verified:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Verify your email first")

    try:
        agency = agent.agency
        if agency is None:
            agency = models.Agency(name=payload.agency_name, locations=[])
            db.add(agency)
            db.flush()
            agent.agency_id = agency.id
        agency.name = payload.agency_name
        agency.primary_color = payload.primary_color
        agency.secondary_color = payload.secondary_color
        if payload.logo is not None:
            agency.logo = payload.logo
        agent.onboarding_step = max(agent.onboarding_step or 0, 3)
        db.add(agency)
        db.add(agent)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(agent)
    logger.info("onboarding.branding", extra={"agent_id": agent.id, "agency_id": agent.agency_id})
    return agent


@router.post("/onboarding/step4", response_model=schemas.AgentRead, dependencies=[Depends(rate_limit("write"))])
def onboarding_contact(
    payload: schemas.OnboardingContact,
    db: Session = Depends(get_db),
    agent: models.Agent = Depends(get_current_agent),
) -> models.Agent:
    agency = agent.agency
    if agency is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Complete the branding step first")

    try:
        agency.phone = payload.phone
        agency.website = payload.website
        agency.locations = [loc.strip() for loc in payload.locations if loc.strip()]
        if payload.email is not None:
            agency.email = payload.email
        agent.phone = agent.phone or payload.phone
        agent.onboarding_step = 4
        db.add(agency)
        db.add(agent)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(agent)
    logger.info("onboarding.completed", extra={"agent_id": agent.id, "agency_id": agent.agency_id})
    return agent
