# Commission ledgers: booking commissions (admin-wide and per agent) and sales commissions per agent.
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..db import get_db
from .. import models, schemas
from .auth import get_current_agent, require_admin

router = APIRouter()


def _ensure_agent_exists(db: Session, agent_id: int) -> None:
    if not db.get(models.Agent, agent_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Agent not found")


@router.get("/commissions", response_model=List[schemas.CommissionRead])
def list_commissions(
    status_: Optional[str] = Query(None, alias="status", pattern="^(pending|paid)$"),
    db: Session = Depends(get_db),
    _: models.Agent = Depends(require_admin),
) -> List[models.Commission]:
    q = db.query(models.Commission)
    if status_:
        q = q.filter(models.Commission.status == status_)
    return q.order_by(models.Commission.created_at.desc(), models.Commission.id.desc()).all()


@router.get("/commissions/agent/{agent_id}", response_model=List[schemas.CommissionRead])
def agent_commissions(
    agent_id: int,
    db: Session = Depends(get_db),
    _: models.Agent = Depends(get_current_agent),
) -> List[models.Commission]:
    _ensure_agent_exists(db, agent_id)
    return (
        db.query(models.Commission)
        .filter(or_(models.Commission.owner_agent_id == agent_id, models.Commission.booking_agent_id == agent_id))
        .order_by(models.Commission.created_at.desc(), models.Commission.id.desc())
        .all()
    )


@router.get("/sales-commissions/agent/{agent_id}", response_model=List[schemas.SalesCommissionRead])
def agent_sales_commissions(
    agent_id: int,
    db: Session = Depends(get_db),
    _: models.Agent = Depends(get_current_agent),
) -> List[models.SalesCommission]:
    _ensure_agent_exists(db, agent_id)
    return (
        db.query(models.SalesCommission)
        .filter(
            or_(
                models.SalesCommission.seller_agent_id == agent_id,
                models.SalesCommission.buyer_agent_id == agent_id,
            )
        )
        .order_by(models.SalesCommission.created_at.desc(), models.SalesCommission.id.desc())
        .all()
    )
