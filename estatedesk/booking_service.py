# Booking lifecycle: creation, edits and status transitions with their availability/commission side effects.
# Functions take an open Session and commit on success; on failure they roll back and re-raise.
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Dict, FrozenSet, Optional, Tuple

from sqlalchemy.orm import Session

from . import availability, models
from .commissions import DEFAULT_COMMISSION_RATE, split_booking_commission
from .errors import InvalidRequestError, NotFoundError, UnavailableError

logger = logging.getLogger("estatedesk.bookings")

STATUSES = ("pending", "confirmed", "paid", "cancellation_requested", "cancelled", "archived")
TERMINAL_STATUSES: FrozenSet[str] = frozenset({"cancelled", "archived"})

# Allowed next states per current state; terminal states have none.
TRANSITIONS: Dict[str, FrozenSet[str]] = {
    "pending": frozenset({"confirmed", "cancellation_requested", "cancelled", "archived"}),
    "confirmed": frozenset({"paid", "cancellation_requested", "cancelled", "archived"}),
    "paid": frozenset({"cancelled", "archived"}),
    "cancellation_requested": frozenset({"confirmed", "cancelled", "archived"}),
    "cancelled": frozenset(),
    "archived": frozenset(),
}


@dataclass
class NewBooking:
    property_id: int
    owner_agent_id: int
    client_name: str
    client_email: str
    client_phone: str
    check_in: date
    check_out: date
    total_amount: Decimal
    booking_agent_id: Optional[int] = None
    notes: Optional[str] = None


def _plural(n: int, unit: str) -> str:
    return f"{n} {unit}" if n == 1 else f"{n} {unit}s"


def calculate_duration(check_in: date, check_out: date) -> str:
    """
    Human-readable length of stay.

    1 night, up to 7 nights, then whole weeks up to 30 days, then whole months.
    """
    days = abs((check_out - check_in).days)
    if days <= 7:
        return _plural(days, "night")
    if days <= 30:
        return _plural(days // 7, "week")
    return _plural(days // 30, "month")


def validate_dates(check_in: date, check_out: date) -> None:
    if check_in >= check_out:
        raise InvalidRequestError("Check-out date must be after check-in date")


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def _commission_rate_for(prop: models.Property) -> Decimal:
    agency = prop.agency
    if agency is not None and agency.commission_rate is not None:
        return Decimal(agency.commission_rate)
    return DEFAULT_COMMISSION_RATE


def create_booking(db: Session, data: NewBooking) -> Tuple[models.Booking, models.Commission]:
    """
    Create a pending booking, its commission and its availability block in one transaction.

    The overlap check runs inside the transaction after locking the property row,
    so two concurrent requests for the same window cannot both pass it.
    """
    validate_dates(data.check_in, data.check_out)

    prop = db.get(models.Property, data.property_id)
    if not prop:
        raise NotFoundError("Property not found")
    if not db.get(models.Agent, data.owner_agent_id):
        raise NotFoundError("Owner agent not found")
    booking_agent_id = data.booking_agent_id or data.owner_agent_id
    if booking_agent_id != data.owner_agent_id and not db.get(models.Agent, booking_agent_id):
        raise NotFoundError("Booking agent not found")

    try:
        availability.lock_property_row(db, data.property_id)
        if not availability.is_window_available(db, data.property_id, data.check_in, data.check_out):
            raise UnavailableError("Property is not available for the selected dates")

        booking = models.Booking(
            property_id=data.property_id,
            owner_agent_id=data.owner_agent_id,
            booking_agent_id=booking_agent_id,
            client_name=data.client_name,
            client_email=data.client_email,
            client_phone=data.client_phone,
            notes=data.notes,
            check_in=data.check_in,
            check_out=data.check_out,
            duration=calculate_duration(data.check_in, data.check_out),
            total_amount=data.total_amount,
            status="pending",
        )
        db.add(booking)
        db.flush()  # assigns booking.id for the dependent rows

        availability.block_for_booking(db, booking)

        split = split_booking_commission(data.total_amount, _commission_rate_for(prop))
        commission = models.Commission(
            booking_id=booking.id,
            owner_agent_id=data.owner_agent_id,
            booking_agent_id=booking_agent_id,
            commission_rate=split.commission_rate,
            total_amount=split.total_amount,
            owner_commission=split.owner_commission,
            booking_commission=split.booking_commission,
            platform_fee=split.platform_fee,
            status="pending",
        )
        db.add(commission)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(booking)
    db.refresh(commission)
    logger.info(
        "booking.created",
        extra={
            "booking_id": booking.id,
            "property_id": booking.property_id,
            "owner_agent_id": booking.owner_agent_id,
            "booking_agent_id": booking.booking_agent_id,
            "commission": str(commission.total_amount),
        },
    )
    return booking, commission


def _check_transition(current: str, target: str) -> None:
    if target not in TRANSITIONS:
        raise InvalidRequestError(f"Unknown booking status: {target}")
    if target != current and not can_transition(current, target):
        raise InvalidRequestError(f"Cannot change booking status from {current} to {target}")


def _apply_status(db: Session, booking: models.Booking, target: str) -> str:
    """Stage (not commit) a checked transition and its side effects. Returns the action message."""
    if target == "cancelled":
        availability.release_booking_blocks(db, booking.id, "Cancelled")
        message = "Booking cancelled"
    elif target == "archived":
        availability.release_booking_blocks(db, booking.id, "Archived")
        message = "Booking archived"
    elif target == "confirmed":
        availability.annotate_booking_blocks(db, booking.id, "Confirmed booking")
        message = "Booking confirmed"
    elif target == "cancellation_requested":
        availability.annotate_booking_blocks(db, booking.id, "Cancellation requested")
        message = "Cancellation requested"
    else:  # paid
        commission = booking.commission
        if commission is not None:
            commission.status = "paid"
            commission.paid_at = datetime.now(timezone.utc)
            db.add(commission)
        message = "Booking paid"

    booking.status = target
    db.add(booking)
    return message


def change_status(db: Session, booking: models.Booking, target: str) -> Tuple[models.Booking, str]:
    """
    Move a booking to `target` and apply the transition's side effects.

    Returns the refreshed booking and a short message describing what happened.
    Re-applying the current status is a no-op.
    """
    current = booking.status
    _check_transition(current, target)
    if target == current:
        return booking, f"Booking already {current}"

    try:
        message = _apply_status(db, booking, target)
        db.commit()
    except Exception:
        db.rollback()
        raise

    # Bulk updates bypass the identity map; reload the booking and its children
    db.expire_all()
    db.refresh(booking)
    logger.info("booking.status_changed", extra={"booking_id": booking.id, "from": current, "to": target})
    return booking, message


def request_cancellation(db: Session, booking: models.Booking) -> models.Booking:
    if booking.status not in ("pending", "confirmed"):
        raise InvalidRequestError(f"Cannot request cancellation for booking with status: {booking.status}")
    booking, _ = change_status(db, booking, "cancellation_requested")
    return booking


def update_booking(db: Session, booking: models.Booking, changes: dict) -> models.Booking:
    """
    Apply a partial edit in one transaction.

    - New dates are validated (order + availability excluding this booking) and move its blocks.
    - A new total recomputes the commission with the rate stored on it; a paid commission is frozen.
    - A 'status' key is checked before anything is written and applied with the field edits.
    """
    current = booking.status
    if current in TERMINAL_STATUSES:
        raise InvalidRequestError(f"Cannot edit a booking with status: {current}")

    target_status = changes.pop("status", None)
    if target_status:
        _check_transition(current, target_status)

    check_in = changes.get("check_in") or booking.check_in
    check_out = changes.get("check_out") or booking.check_out
    dates_changed = "check_in" in changes or "check_out" in changes
    if dates_changed:
        validate_dates(check_in, check_out)

    new_total = changes.get("total_amount")
    total_changed = new_total is not None and Decimal(str(new_total)) != Decimal(booking.total_amount)
    commission = booking.commission
    if total_changed and commission is not None and commission.status == "paid":
        raise InvalidRequestError("Cannot change the total of a booking whose commission is paid")

    try:
        if dates_changed:
            availability.lock_property_row(db, booking.property_id)
            if not availability.is_window_available(
                db, booking.property_id, check_in, check_out, exclude_booking_id=booking.id
            ):
                raise UnavailableError("Property is not available for the new dates")
            client_name = changes.get("client_name") or booking.client_name
            availability.move_booking_blocks(
                db, booking.id, check_in, check_out, f"Updated booking for {client_name}"
            )
            booking.duration = calculate_duration(check_in, check_out)

        for field in ("client_name", "client_email", "client_phone", "notes", "check_in", "check_out"):
            if field in changes and changes[field] is not None:
                setattr(booking, field, changes[field])

        if total_changed:
            booking.total_amount = new_total
            if commission is not None:
                split = split_booking_commission(new_total, commission.commission_rate)
                commission.total_amount = split.total_amount
                commission.owner_commission = split.owner_commission
                commission.booking_commission = split.booking_commission
                commission.platform_fee = split.platform_fee
                db.add(commission)

        status_changed = bool(target_status) and target_status != current
        if status_changed:
            _apply_status(db, booking, target_status)

        db.add(booking)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.expire_all()
    db.refresh(booking)
    if status_changed:
        logger.info("booking.status_changed", extra={"booking_id": booking.id, "from": current, "to": target_status})
    return booking
