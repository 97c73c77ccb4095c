# Rental listing endpoints.
# Agents manage their agency's listings; any signed-in agent can browse all listings.
import logging
import math
from datetime import date
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ..db import get_db
from .. import availability, models, schemas
from .auth import get_current_agent, require_agency
from ..locks import property_lock
from ..rate_limit import rate_limit

# Router namespace for rental property APIs
router = APIRouter()
logger = logging.getLogger("estatedesk.properties")

# Approximate months per unit, used to classify minimum stays
_MONTHS_PER_UNIT = {"days": 1 / 30, "weeks": 1 / 4, "months": 1, "years": 12}


def classify_stay(value: Optional[int], unit: Optional[str]) -> str:
    """Minimum stays of three months or more are Long-Term, anything else Short-Term."""
    months = (value or 0) * _MONTHS_PER_UNIT.get(unit or "", 0)
    return "Long-Term" if months >= 3 else "Short-Term"


def _get_property_or_404(db: Session, property_id: int) -> models.Property:
    obj = db.get(models.Property, property_id)
    if not obj:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Property not found")
    return obj


def _ensure_same_agency(prop: models.Property, agent: models.Agent) -> None:
    if agent.role != "admin" and prop.agency_id != agent.agency_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed to modify this property")


@router.get("/properties/rental", response_model=schemas.PropertyListResponse)
def list_rental_properties(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    agency_id: Optional[int] = Query(None, ge=1),
    agent_id: Optional[int] = Query(None, ge=1),
    status_: Optional[schemas.PropertyStatus] = Query(None, alias="status"),
    property_type: Optional[str] = None,
    location: Optional[str] = None,
    beds: Optional[int] = Query(None, ge=0),
    min_price: Optional[Decimal] = Query(None, ge=0),
    max_price: Optional[Decimal] = Query(None, ge=0),
    search: Optional[str] = Query(None, max_length=255),
    db: Session = Depends(get_db),
    _: models.Agent = Depends(get_current_agent),
) -> schemas.PropertyListResponse:
    """
    List rental properties, newest first.

    Text filters (location, search) match case-insensitively; search covers
    title, description and location.
    """
    q = db.query(models.Property)
    if agency_id is not None:
        q = q.filter(models.Property.agency_id == agency_id)
    if agent_id is not None:
        q = q.filter(models.Property.created_by_id == agent_id)
    if status_:
        q = q.filter(models.Property.status == status_)
    if property_type:
        q = q.filter(models.Property.property_type == property_type)
    if location:
        q = q.filter(func.lower(models.Property.location).like(f"%{location.strip().lower()}%"))
    if beds is not None:
        q = q.filter(models.Property.beds >= beds)
    if min_price is not None:
        q = q.filter(models.Property.price >= min_price)
    if max_price is not None:
        q = q.filter(models.Property.price <= max_price)
    if search:
        pattern = f"%{search.strip().lower()}%"
        q = q.filter(
            or_(
                func.lower(models.Property.title).like(pattern),
                func.lower(models.Property.description).like(pattern),
                func.lower(models.Property.location).like(pattern),
            )
        )

    total = q.count()
    items = (
        q.order_by(models.Property.created_at.desc(), models.Property.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return schemas.PropertyListResponse(
        items=[schemas.PropertyRead.model_validate(p) for p in items],
        pagination=schemas.Pagination(page=page, limit=limit, total=total, pages=math.ceil(total / limit) if total else 0),
    )


@router.post(
    "/properties/rental",
    response_model=schemas.PropertyRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("write"))],
)
def create_rental_property(
    payload: schemas.PropertyCreate,
    db: Session = Depends(get_db),
    agent: models.Agent = Depends(require_agency),
) -> models.Property:
    """New listings belong to the caller's agency and start as drafts."""
    obj = models.Property(
        **payload.model_dump(),
        agency_id=agent.agency_id,
        created_by_id=agent.id,
        classification=classify_stay(payload.minimum_stay_value, payload.minimum_stay_unit),
        status="draft",
    )
    db.add(obj)
    db.commit()
    db.refresh(obj)
    logger.info("property.created", extra={"property_id": obj.id, "agency_id": obj.agency_id})
    return obj


@router.get("/properties/rental/{property_id}", response_model=schemas.PropertyRead)
def get_rental_property(
    property_id: int,
    db: Session = Depends(get_db),
    _: models.Agent = Depends(get_current_agent),
) -> models.Property:
    return _get_property_or_404(db, property_id)


@router.put(
    "/properties/rental/{property_id}",
    response_model=schemas.PropertyRead,
    dependencies=[Depends(rate_limit("write"))],
)
def update_rental_property(
    property_id: int,
    payload: schemas.PropertyUpdate,
    db: Session = Depends(get_db),
    agent: models.Agent = Depends(get_current_agent),
) -> models.Property:
    obj = _get_property_or_404(db, property_id)
    _ensure_same_agency(obj, agent)

    changes = payload.model_dump(exclude_unset=True)
    for field, value in changes.items():
        setattr(obj, field, value)
    if "minimum_stay_value" in changes or "minimum_stay_unit" in changes:
        obj.classification = classify_stay(obj.minimum_stay_value, obj.minimum_stay_unit)

    db.add(obj)
    db.commit()
    db.refresh(obj)
    return obj


@router.delete(
    "/properties/rental/{property_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(rate_limit("write"))],
)
def delete_rental_property(
    property_id: int,
    db: Session = Depends(get_db),
    agent: models.Agent = Depends(get_current_agent),
) -> None:
    obj = _get_property_or_404(db, property_id)
    _ensure_same_agency(obj, agent)

    if db.query(models.Booking.id).filter(models.Booking.property_id == property_id).first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot delete property with existing bookings. Archive it instead.",
        )

    try:
        db.query(models.PropertyAvailability).filter(
            models.PropertyAvailability.property_id == property_id
        ).delete(synchronize_session=False)
        db.delete(obj)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("property.deleted", extra={"property_id": property_id, "agent_id": agent.id})


@router.patch(
    "/properties/rental/{property_id}/status",
    response_model=schemas.PropertyRead,
    dependencies=[Depends(rate_limit("write"))],
)
def update_rental_property_status(
    property_id: int,
    payload: schemas.PropertyStatusUpdate,
    db: Session = Depends(get_db),
    agent: models.Agent = Depends(get_current_agent),
) -> models.Property:
    obj = _get_property_or_404(db, property_id)
    _ensure_same_agency(obj, agent)

    obj.status = payload.status
    db.add(obj)
    db.commit()
    db.refresh(obj)
    return obj


@router.post(
    "/properties/bulk/status",
    response_model=schemas.BulkStatusResponse,
    dependencies=[Depends(rate_limit("write"))],
)
def bulk_update_status(
    payload: schemas.BulkStatusUpdate,
    db: Session = Depends(get_db),
    agent: models.Agent = Depends(get_current_agent),
) -> schemas.BulkStatusResponse:
    q = db.query(models.Property).filter(models.Property.id.in_(payload.property_ids))
    # Non-admins only touch their own agency's listings
    if agent.role != "admin":
        q = q.filter(models.Property.agency_id == agent.agency_id)
    try:
        updated = q.update({models.Property.status: payload.status}, synchronize_session=False)
        db.commit()
    except Exception:
        db.rollback()
        raise
    return schemas.BulkStatusResponse(updated=updated, status=payload.status)


@router.get("/properties/agency/{agency_id}/stats", response_model=schemas.PropertyStatsResponse)
def agency_property_stats(
    agency_id: int,
    db: Session = Depends(get_db),
    _: models.Agent = Depends(get_current_agent),
) -> schemas.PropertyStatsResponse:
    if not db.get(models.Agency, agency_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Agency not found")

    listings = db.query(models.Property).filter(models.Property.agency_id == agency_id)
    total = listings.count()
    published = listings.filter(models.Property.status == "published").count()
    confirmed_count, confirmed_revenue = (
        db.query(func.count(models.Booking.id), func.coalesce(func.sum(models.Booking.total_amount), 0))
        .join(models.Property, models.Property.id == models.Booking.property_id)
        .filter(models.Property.agency_id == agency_id, models.Booking.status == "confirmed")
        .one()
    )
    recent = listings.order_by(models.Property.created_at.desc(), models.Property.id.desc()).limit(5).all()

    return schemas.PropertyStatsResponse(
        total_properties=total,
        published_properties=published,
        confirmed_bookings=int(confirmed_count or 0),
        confirmed_revenue=float(confirmed_revenue or 0),
        recent_properties=[schemas.PropertyRead.model_validate(p) for p in recent],
    )


@router.get("/properties/rental/{property_id}/availability", response_model=List[schemas.AvailabilityRead])
def get_availability(
    property_id: int,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    db: Session = Depends(get_db),
    _: models.Agent = Depends(get_current_agent),
) -> List[models.PropertyAvailability]:
    _get_property_or_404(db, property_id)
    return availability.list_for_property(db, property_id, start_date, end_date)


@router.patch(
    "/properties/rental/{property_id}/availability",
    response_model=schemas.AvailabilityRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("write"))],
)
def add_availability(
    property_id: int,
    payload: schemas.AvailabilityCreate,
    db: Session = Depends(get_db),
    agent: models.Agent = Depends(get_current_agent),
) -> models.PropertyAvailability:
    obj = _get_property_or_404(db, property_id)
    _ensure_same_agency(obj, agent)
    # Same lock as booking writes so a manual block and a booking cannot interleave
    with property_lock(property_id):
        return availability.add_window(
            db, property_id, payload.start_date, payload.end_date, payload.is_available, payload.notes
        )
