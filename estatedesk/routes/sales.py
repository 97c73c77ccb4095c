# Sales listings and sales transactions.
# A transaction carries its commission split; completing it sells the listing and pays the commission.
import logging
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ..db import get_db
from .. import models, schemas
from ..commissions import split_sales_commission
from .auth import get_current_agent, require_agency
from ..rate_limit import rate_limit

router = APIRouter()
logger = logging.getLogger("estatedesk.sales")

# Allowed next states; completed and cancelled are final
_TRANSACTION_TRANSITIONS = {
    "pending": {"completed", "cancelled"},
    "completed": set(),
    "cancelled": set(),
}


def _get_sales_property_or_404(db: Session, property_id: int) -> models.SalesProperty:
    obj = db.get(models.SalesProperty, property_id)
    if not obj:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Sales property not found")
    return obj


# ----------------
# Sales properties
# ----------------
@router.get("/sales-properties", response_model=List[schemas.SalesPropertyRead])
def list_sales_properties(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    agency_id: Optional[int] = Query(None, ge=1),
    agent_id: Optional[int] = Query(None, ge=1),
    status_: Optional[schemas.SalesPropertyStatus] = Query(None, alias="status"),
    search: Optional[str] = Query(None, max_length=255),
    db: Session = Depends(get_db),
    _: models.Agent = Depends(get_current_agent),
) -> List[models.SalesProperty]:
    q = db.query(models.SalesProperty)
    if agency_id is not None:
        q = q.filter(models.SalesProperty.agency_id == agency_id)
    if agent_id is not None:
        q = q.filter(models.SalesProperty.agent_id == agent_id)
    if status_:
        q = q.filter(models.SalesProperty.status == status_)
    if search:
        pattern = f"%{search.strip().lower()}%"
        q = q.filter(
            or_(
                func.lower(models.SalesProperty.title).like(pattern),
                func.lower(models.SalesProperty.location).like(pattern),
            )
        )
    return (
        q.order_by(models.SalesProperty.created_at.desc(), models.SalesProperty.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )


@router.post(
    "/sales-properties",
    response_model=schemas.SalesPropertyRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("write"))],
)
def create_sales_property(
    payload: schemas.SalesPropertyCreate,
    db: Session = Depends(get_db),
    agent: models.Agent = Depends(require_agency),
) -> models.SalesProperty:
    obj = models.SalesProperty(
        **payload.model_dump(),
        agency_id=agent.agency_id,
        agent_id=agent.id,
        status="draft",
    )
    db.add(obj)
    db.commit()
    db.refresh(obj)
    logger.info("sales_property.created", extra={"property_id": obj.id, "agency_id": obj.agency_id})
    return obj


@router.get("/sales-properties/{property_id}", response_model=schemas.SalesPropertyRead)
def get_sales_property(
    property_id: int,
    db: Session = Depends(get_db),
    _: models.Agent = Depends(get_current_agent),
) -> models.SalesProperty:
    return _get_sales_property_or_404(db, property_id)


@router.put(
    "/sales-properties/{property_id}",
    response_model=schemas.SalesPropertyRead,
    dependencies=[Depends(rate_limit("write"))],
)
def update_sales_property(
    property_id: int,
    payload: schemas.SalesPropertyUpdate,
    db: Session = Depends(get_db),
    agent: models.Agent = Depends(get_current_agent),
) -> models.SalesProperty:
    obj = _get_sales_property_or_404(db, property_id)
    if agent.role != "admin" and obj.agency_id != agent.agency_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed to modify this property")
    if obj.status == "sold":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Sold properties cannot be edited")

    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(obj, field, value)
    db.add(obj)
    db.commit()
    db.refresh(obj)
    return obj


# ----------------
# Sales transactions
# ----------------
@router.post(
    "/sales-transactions",
    response_model=schemas.SalesTransactionRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("write"))],
)
def create_sales_transaction(
    payload: schemas.SalesTransactionCreate,
    db: Session = Depends(get_db),
    agent: models.Agent = Depends(get_current_agent),
) -> models.SalesTransaction:
    prop = _get_sales_property_or_404(db, payload.property_id)
    if prop.status == "sold":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Property is already sold")
    for agent_id, label in ((payload.seller_agent_id, "Seller"), (payload.buyer_agent_id, "Buyer")):
        if not db.get(models.Agent, agent_id):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{label} agent not found")

    split = split_sales_commission(payload.sale_price)
    try:
        txn = models.SalesTransaction(
            property_id=payload.property_id,
            seller_agent_id=payload.seller_agent_id,
            buyer_agent_id=payload.buyer_agent_id,
            buyer_name=payload.buyer_name,
            buyer_email=payload.buyer_email,
            buyer_phone=payload.buyer_phone,
            sale_price=payload.sale_price,
            sale_date=payload.sale_date,
            status="pending",
        )
        db.add(txn)
        db.flush()
        db.add(
            models.SalesCommission(
                transaction_id=txn.id,
                seller_agent_id=payload.seller_agent_id,
                buyer_agent_id=payload.buyer_agent_id,
                commission_rate=split.commission_rate,
                total_amount=split.total_amount,
                seller_commission=split.seller_commission,
                buyer_commission=split.buyer_commission,
                platform_fee=split.platform_fee,
                status="pending",
            )
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(txn)
    logger.info(
        "sales_transaction.created",
        extra={"transaction_id": txn.id, "property_id": txn.property_id, "agent_id": agent.id},
    )
    return txn


@router.get("/sales-transactions", response_model=List[schemas.SalesTransactionRead])
def list_sales_transactions(
    agent_id: Optional[int] = Query(None, ge=1),
    status_: Optional[schemas.SalesTransactionStatus] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    _: models.Agent = Depends(get_current_agent),
) -> List[models.SalesTransaction]:
    q = db.query(models.SalesTransaction)
    if agent_id is not None:
        q = q.filter(
            or_(
                models.SalesTransaction.seller_agent_id == agent_id,
                models.SalesTransaction.buyer_agent_id == agent_id,
            )
        )
    if status_:
        q = q.filter(models.SalesTransaction.status == status_)
    return q.order_by(models.SalesTransaction.sale_date.desc(), models.SalesTransaction.id.desc()).all()


@router.patch(
    "/sales-transactions/{transaction_id}/status",
    response_model=schemas.SalesTransactionRead,
    dependencies=[Depends(rate_limit("write"))],
)
def update_sales_transaction_status(
    transaction_id: int,
    payload: schemas.SalesTransactionStatusUpdate,
    db: Session = Depends(get_db),
    agent: models.Agent = Depends(get_current_agent),
) -> models.SalesTransaction:
    txn = db.get(models.SalesTransaction, transaction_id)
    if not txn:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Sales transaction not found")
    if agent.role != "admin" and agent.id not in (txn.seller_agent_id, txn.buyer_agent_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed to modify this transaction")

    current = txn.status
    if payload.status == current:
        return txn
    if payload.status not in _TRANSACTION_TRANSITIONS[current]:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Cannot change transaction status from {current} to {payload.status}",
        )

    try:
        txn.status = payload.status
        if payload.status == "completed":
            txn.property.status = "sold"
            db.add(txn.property)
            if txn.commission is not None:
                txn.commission.status = "paid"
                txn.commission.paid_at = datetime.now(timezone.utc)
                db.add(txn.commission)
        db.add(txn)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(txn)
    logger.info("sales_transaction.status_changed", extra={"transaction_id": txn.id, "from": current, "to": txn.status})
    return txn
