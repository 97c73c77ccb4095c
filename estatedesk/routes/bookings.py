# Booking endpoints: create, edit, status changes and the list/stats views.
# Writes on a property are serialized with a Redis lock plus a row lock inside the transaction.
from __future__ import annotations

import logging
import math
from collections import OrderedDict
from datetime import date
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Query as SAQuery, Session

from ..db import get_db
from .. import availability, booking_service, models, schemas
from ..locks import property_lock
from ..rate_limit import rate_limit
from .auth import get_current_agent

router = APIRouter()
logger = logging.getLogger("estatedesk.bookings")


def _get_booking_or_404(db: Session, booking_id: int) -> models.Booking:
    obj = db.get(models.Booking, booking_id)
    if not obj:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found")
    return obj


def _ensure_can_manage(booking: models.Booking, agent: models.Agent) -> None:
    """Admins, the two agents on the booking and members of the listing agency may change it."""
    if agent.role == "admin" or agent.id in (booking.owner_agent_id, booking.booking_agent_id):
        return
    if booking.property is not None and agent.agency_id is not None and booking.property.agency_id == agent.agency_id:
        return
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed to modify this booking")


def _money(value) -> float:
    return float(value or 0)


def _agency_clause(agency_id: int):
    """Bookings on the agency's listings or taken/owned by one of its agents."""
    agency_props = select(models.Property.id).where(models.Property.agency_id == agency_id)
    agency_agents = select(models.Agent.id).where(models.Agent.agency_id == agency_id)
    return or_(
        models.Booking.property_id.in_(agency_props),
        models.Booking.owner_agent_id.in_(agency_agents),
        models.Booking.booking_agent_id.in_(agency_agents),
    )


def _apply_filters(
    q: SAQuery,
    *,
    status_: Optional[str] = None,
    property_id: Optional[int] = None,
    agency_id: Optional[int] = None,
    agent_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    search: Optional[str] = None,
) -> SAQuery:
    if status_:
        q = q.filter(models.Booking.status == status_)
    if property_id is not None:
        q = q.filter(models.Booking.property_id == property_id)
    if agency_id is not None:
        q = q.filter(_agency_clause(agency_id))
    if agent_id is not None:
        q = q.filter(or_(models.Booking.owner_agent_id == agent_id, models.Booking.booking_agent_id == agent_id))
    # Date filters bound check-in only
    if start_date is not None:
        q = q.filter(models.Booking.check_in >= start_date)
    if end_date is not None:
        q = q.filter(models.Booking.check_in <= end_date)
    if search:
        pattern = f"%{search.strip().lower()}%"
        titled = select(models.Property.id).where(func.lower(models.Property.title).like(pattern))
        q = q.filter(
            or_(
                func.lower(models.Booking.client_name).like(pattern),
                func.lower(models.Booking.client_email).like(pattern),
                func.lower(models.Booking.client_phone).like(pattern),
                models.Booking.property_id.in_(titled),
            )
        )
    return q


def _totals(q: SAQuery):
    count, revenue = q.with_entities(
        func.count(models.Booking.id), func.coalesce(func.sum(models.Booking.total_amount), 0)
    ).one()
    return int(count or 0), _money(revenue)


def _page(q: SAQuery, page: int, limit: int) -> List[models.Booking]:
    return (
        q.order_by(models.Booking.created_at.desc(), models.Booking.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )


def _pagination(page: int, limit: int, total: int) -> schemas.Pagination:
    return schemas.Pagination(page=page, limit=limit, total=total, pages=math.ceil(total / limit) if total else 0)


@router.post(
    "/bookings",
    response_model=schemas.BookingCreateResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("write"))],
)
def create_booking(
    payload: schemas.BookingCreate,
    db: Session = Depends(get_db),
    agent: models.Agent = Depends(get_current_agent),
) -> schemas.BookingCreateResponse:
    # Coarse per-property lock to limit cross-process races during availability checks and inserts
    with property_lock(payload.property_id):
        booking, commission = booking_service.create_booking(
            db,
            booking_service.NewBooking(
                property_id=payload.property_id,
                owner_agent_id=payload.owner_agent_id,
                booking_agent_id=payload.booking_agent_id,
                client_name=payload.client_name,
                client_email=payload.client_email,
                client_phone=payload.client_phone,
                notes=payload.notes,
                check_in=payload.check_in,
                check_out=payload.check_out,
                total_amount=payload.total_amount,
            ),
        )

    logger.info("booking.create_request", extra={"booking_id": booking.id, "agent_id": agent.id})
    return schemas.BookingCreateResponse(
        booking=schemas.BookingRead.model_validate(booking),
        commission=schemas.CommissionRead.model_validate(commission),
    )


@router.get("/bookings", response_model=schemas.BookingListResponse)
def list_bookings(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status_: Optional[schemas.BookingStatus] = Query(None, alias="status"),
    property_id: Optional[int] = Query(None, ge=1),
    agency_id: Optional[int] = Query(None, ge=1),
    agent_id: Optional[int] = Query(None, ge=1),
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    search: Optional[str] = Query(None, max_length=255),
    db: Session = Depends(get_db),
    _: models.Agent = Depends(get_current_agent),
) -> schemas.BookingListResponse:
    q = _apply_filters(
        db.query(models.Booking),
        status_=status_,
        property_id=property_id,
        agency_id=agency_id,
        agent_id=agent_id,
        start_date=start_date,
        end_date=end_date,
        search=search,
    )
    total, revenue = _totals(q)
    breakdown = dict(
        q.with_entities(models.Booking.status, func.count(models.Booking.id)).group_by(models.Booking.status).all()
    )
    items = _page(q, page, limit)
    return schemas.BookingListResponse(
        bookings=[schemas.BookingRead.model_validate(b) for b in items],
        pagination=_pagination(page, limit, total),
        stats=schemas.BookingListStats(
            total_bookings=total,
            total_revenue=revenue,
            status_breakdown={k: int(v) for k, v in breakdown.items()},
        ),
    )


@router.get("/bookings/stats", response_model=schemas.BookingStatsResponse)
def booking_stats(
    agency_id: Optional[int] = Query(None, ge=1),
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    db: Session = Depends(get_db),
    _: models.Agent = Depends(get_current_agent),
) -> schemas.BookingStatsResponse:
    q = _apply_filters(db.query(models.Booking), agency_id=agency_id, start_date=start_date, end_date=end_date)
    total, revenue = _totals(q)

    by_status = (
        q.with_entities(
            models.Booking.status,
            func.count(models.Booking.id),
            func.coalesce(func.sum(models.Booking.total_amount), 0),
        )
        .group_by(models.Booking.status)
        .order_by(models.Booking.status.asc())
        .all()
    )

    # Month bucketing in Python; date_trunc/strftime differ across backends
    months: "OrderedDict[str, List]" = OrderedDict()
    rows = q.with_entities(models.Booking.check_in, models.Booking.total_amount).order_by(models.Booking.check_in.desc())
    for check_in, amount in rows:
        bucket = months.setdefault(check_in.strftime("%Y-%m"), [0, Decimal("0")])
        bucket[0] += 1
        bucket[1] += Decimal(amount or 0)
    trends = [
        schemas.MonthlyTrend(month=m, booking_count=c, total_revenue=_money(r))
        for m, (c, r) in list(months.items())[:12]
    ]

    top_rows = (
        q.with_entities(
            models.Booking.property_id,
            func.count(models.Booking.id).label("booking_count"),
            func.coalesce(func.sum(models.Booking.total_amount), 0),
        )
        .group_by(models.Booking.property_id)
        .order_by(func.count(models.Booking.id).desc(), models.Booking.property_id.asc())
        .limit(5)
        .all()
    )
    top_properties = []
    for property_id, count, amount in top_rows:
        prop = db.get(models.Property, property_id)
        top_properties.append(
            schemas.TopProperty(
                property_id=property_id,
                title=prop.title if prop else None,
                location=prop.location if prop else None,
                booking_count=int(count),
                total_revenue=_money(amount),
            )
        )

    booking_ids = select(q.with_entities(models.Booking.id).subquery().c.id)
    paid_total, platform = (
        db.query(
            func.coalesce(func.sum(models.Commission.total_amount), 0),
            func.coalesce(func.sum(models.Commission.platform_fee), 0),
        )
        .filter(models.Commission.status == "paid", models.Commission.booking_id.in_(booking_ids))
        .one()
    )

    return schemas.BookingStatsResponse(
        overall=schemas.OverallStats(
            total_bookings=total,
            total_revenue=revenue,
            average_booking_value=round(revenue / total, 2) if total else 0.0,
        ),
        status_breakdown=[
            schemas.StatusStat(status=s, count=int(c), revenue=_money(r)) for s, c, r in by_status
        ],
        monthly_trends=trends,
        top_properties=top_properties,
        commissions=schemas.CommissionTotals(
            total_commission=_money(paid_total),
            platform_earnings=_money(platform),
            agent_earnings=_money(Decimal(paid_total or 0) - Decimal(platform or 0)),
        ),
    )


@router.get("/bookings/agent/{agent_id}", response_model=schemas.AgentBookingsResponse)
def agent_bookings(
    agent_id: int,
    status_: Optional[schemas.BookingStatus] = Query(None, alias="status"),
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    db: Session = Depends(get_db),
    _: models.Agent = Depends(get_current_agent),
) -> schemas.AgentBookingsResponse:
    if not db.get(models.Agent, agent_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Agent not found")

    q = _apply_filters(
        db.query(models.Booking), status_=status_, agent_id=agent_id, start_date=start_date, end_date=end_date
    )
    total, revenue = _totals(q)
    items = q.order_by(models.Booking.created_at.desc(), models.Booking.id.desc()).all()

    # Only the agent's own share counts: owner share on bookings it owns, booking share on bookings it took
    owner_share = (
        db.query(func.coalesce(func.sum(models.Commission.owner_commission), 0))
        .filter(models.Commission.owner_agent_id == agent_id, models.Commission.status == "paid")
        .scalar()
    )
    booking_share = (
        db.query(func.coalesce(func.sum(models.Commission.booking_commission), 0))
        .filter(models.Commission.booking_agent_id == agent_id, models.Commission.status == "paid")
        .scalar()
    )
    owner_share = Decimal(owner_share or 0)
    booking_share = Decimal(booking_share or 0)

    return schemas.AgentBookingsResponse(
        bookings=[schemas.BookingRead.model_validate(b) for b in items],
        stats=schemas.AgentBookingStats(
            total_bookings=total,
            total_revenue=revenue,
            total_commission=_money(owner_share + booking_share),
            owner_commission=_money(owner_share),
            booking_commission=_money(booking_share),
        ),
    )


@router.get("/bookings/agent/{agent_id}/booking-requests", response_model=List[schemas.BookingRead])
def agent_booking_requests(
    agent_id: int,
    db: Session = Depends(get_db),
    _: models.Agent = Depends(get_current_agent),
) -> List[models.Booking]:
    agent = db.get(models.Agent, agent_id)
    if not agent:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Agent not found")
    if agent.agency_id is None:
        return []

    own_props = select(models.Property.id).where(models.Property.agency_id == agent.agency_id)
    outside_agents = select(models.Agent.id).where(
        or_(models.Agent.agency_id.is_(None), models.Agent.agency_id != agent.agency_id)
    )
    return (
        db.query(models.Booking)
        .filter(
            models.Booking.property_id.in_(own_props),
            models.Booking.status.in_(("pending", "cancellation_requested")),
            models.Booking.booking_agent_id.in_(outside_agents),
        )
        .order_by(models.Booking.created_at.desc(), models.Booking.id.desc())
        .all()
    )


@router.get("/bookings/agency/{agency_id}", response_model=schemas.BookingListResponse)
def agency_bookings(
    agency_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status_: Optional[schemas.BookingStatus] = Query(None, alias="status"),
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    search: Optional[str] = Query(None, max_length=255),
    db: Session = Depends(get_db),
    _: models.Agent = Depends(get_current_agent),
) -> schemas.BookingListResponse:
    if not db.get(models.Agency, agency_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Agency not found")

    q = _apply_filters(
        db.query(models.Booking),
        status_=status_,
        agency_id=agency_id,
        start_date=start_date,
        end_date=end_date,
        search=search,
    )
    total, revenue = _totals(q)
    items = _page(q, page, limit)
    return schemas.BookingListResponse(
        bookings=[schemas.BookingRead.model_validate(b) for b in items],
        pagination=_pagination(page, limit, total),
        stats=schemas.BookingListStats(total_bookings=total, total_revenue=revenue),
    )


@router.get("/bookings/property/{property_id}", response_model=schemas.PropertyBookingsResponse)
def property_bookings(
    property_id: int,
    db: Session = Depends(get_db),
    _: models.Agent = Depends(get_current_agent),
) -> schemas.PropertyBookingsResponse:
    if not db.get(models.Property, property_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Property not found")

    items = (
        db.query(models.Booking)
        .filter(models.Booking.property_id == property_id)
        .order_by(models.Booking.check_in.asc(), models.Booking.id.asc())
        .all()
    )
    rows = availability.list_for_property(db, property_id)
    return schemas.PropertyBookingsResponse(
        bookings=[schemas.BookingRead.model_validate(b) for b in items],
        availability=[schemas.AvailabilityRead.model_validate(r) for r in rows],
    )


@router.get("/bookings/{booking_id}", response_model=schemas.BookingRead)
def get_booking(
    booking_id: int,
    db: Session = Depends(get_db),
    _: models.Agent = Depends(get_current_agent),
) -> models.Booking:
    return _get_booking_or_404(db, booking_id)


@router.put("/bookings/{booking_id}", response_model=schemas.BookingRead, dependencies=[Depends(rate_limit("write"))])
def update_booking(
    booking_id: int,
    payload: schemas.BookingUpdate,
    db: Session = Depends(get_db),
    agent: models.Agent = Depends(get_current_agent),
) -> models.Booking:
    obj = _get_booking_or_404(db, booking_id)
    _ensure_can_manage(obj, agent)

    changes = payload.model_dump(exclude_unset=True)
    # Date and status edits touch the property's availability rows
    if {"check_in", "check_out", "status"} & changes.keys():
        with property_lock(obj.property_id):
            return booking_service.update_booking(db, obj, changes)
    return booking_service.update_booking(db, obj, changes)


@router.patch(
    "/bookings/{booking_id}/status",
    response_model=schemas.BookingActionResponse,
    dependencies=[Depends(rate_limit("write"))],
)
def update_booking_status(
    booking_id: int,
    payload: schemas.BookingStatusUpdate,
    db: Session = Depends(get_db),
    agent: models.Agent = Depends(get_current_agent),
) -> schemas.BookingActionResponse:
    obj = _get_booking_or_404(db, booking_id)
    _ensure_can_manage(obj, agent)

    # Status changes touch the property's availability rows
    with property_lock(obj.property_id):
        obj, message = booking_service.change_status(db, obj, payload.status)

    return schemas.BookingActionResponse(booking=schemas.BookingRead.model_validate(obj), message=message)


@router.patch(
    "/bookings/{booking_id}/request-cancellation",
    response_model=schemas.BookingActionResponse,
    dependencies=[Depends(rate_limit("write"))],
)
def request_cancellation(
    booking_id: int,
    db: Session = Depends(get_db),
    agent: models.Agent = Depends(get_current_agent),
) -> schemas.BookingActionResponse:
    obj = _get_booking_or_404(db, booking_id)
    _ensure_can_manage(obj, agent)

    with property_lock(obj.property_id):
        obj = booking_service.request_cancellation(db, obj)
    return schemas.BookingActionResponse(
        booking=schemas.BookingRead.model_validate(obj),
        message="Cancellation request submitted",
    )


@router.delete(
    "/bookings/{booking_id}",
    response_model=schemas.BookingActionResponse,
    dependencies=[Depends(rate_limit("write"))],
)
def archive_booking(
    booking_id: int,
    db: Session = Depends(get_db),
    agent: models.Agent = Depends(get_current_agent),
) -> schemas.BookingActionResponse:
    obj = _get_booking_or_404(db, booking_id)
    _ensure_can_manage(obj, agent)

    # Soft delete; repeated deletes are no-ops
    with property_lock(obj.property_id):
        obj, message = booking_service.change_status(db, obj, "archived")

    return schemas.BookingActionResponse(booking=schemas.BookingRead.model_validate(obj), message=message)
