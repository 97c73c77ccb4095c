# Agent directory and admin-only removal.
from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from ..db import get_db
from .. import models, schemas
from ..rate_limit import rate_limit
from .auth import get_current_agent, require_admin

router = APIRouter()
logger = logging.getLogger("estatedesk.agents")


def _get_agent_or_404(db: Session, agent_id: int) -> models.Agent:
    agent = db.get(models.Agent, agent_id)
    if not agent:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Agent not found")
    return agent


@router.get("/agents", response_model=List[schemas.AgentRead])
def list_agents(
    agency_id: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db),
    _: models.Agent = Depends(get_current_agent),
) -> List[models.Agent]:
    q = db.query(models.Agent).filter(models.Agent.is_active.is_(True))
    if agency_id is not None:
        q = q.filter(models.Agent.agency_id == agency_id)
    return q.order_by(models.Agent.name.asc(), models.Agent.id.asc()).all()


@router.get("/agents/{agent_id}", response_model=schemas.AgentRead)
def get_agent(
    agent_id: int,
    db: Session = Depends(get_db),
    _: models.Agent = Depends(get_current_agent),
) -> models.Agent:
    return _get_agent_or_404(db, agent_id)


@router.get("/agents/{agent_id}/properties", response_model=List[schemas.PropertyRead])
def list_agent_properties(
    agent_id: int,
    db: Session = Depends(get_db),
    _: models.Agent = Depends(get_current_agent),
) -> List[models.Property]:
    _get_agent_or_404(db, agent_id)
    return (
        db.query(models.Property)
        .filter(models.Property.created_by_id == agent_id)
        .order_by(models.Property.created_at.desc(), models.Property.id.desc())
        .all()
    )


@router.delete(
    "/agents/{agent_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(rate_limit("write"))],
)
def delete_agent(
    agent_id: int,
    db: Session = Depends(get_db),
    admin: models.Agent = Depends(require_admin),
) -> None:
    agent = _get_agent_or_404(db, agent_id)
    if agent.id == admin.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Admins cannot delete themselves")

    # Bookings and commissions reference agents and must be kept
    has_bookings = (
        db.query(models.Booking.id)
        .filter((models.Booking.owner_agent_id == agent_id) | (models.Booking.booking_agent_id == agent_id))
        .first()
    )
    has_sales = (
        db.query(models.SalesTransaction.id)
        .filter(
            (models.SalesTransaction.seller_agent_id == agent_id)
            | (models.SalesTransaction.buyer_agent_id == agent_id)
        )
        .first()
    )
    if has_bookings or has_sales:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Agent has bookings or transactions; deactivate instead of deleting",
        )

    try:
        # Listings stay with the agency
        db.query(models.Property).filter(models.Property.created_by_id == agent_id).update(
            {models.Property.created_by_id: None}, synchronize_session=False
        )
        db.query(models.SalesProperty).filter(models.SalesProperty.agent_id == agent_id).update(
            {models.SalesProperty.agent_id: None}, synchronize_session=False
        )
        db.delete(agent)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("agent.deleted", extra={"agent_id": agent_id, "admin_id": admin.id})
