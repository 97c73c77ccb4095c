# Availability blocks for rental properties.
# A row with is_available=False blocks its date range; bookings create one block each.
from __future__ import annotations

from datetime import date
from typing import List, Optional

from sqlalchemy.orm import Session

from . import models
from .errors import InvalidRequestError, UnavailableError


def lock_property_row(db: Session, property_id: int) -> None:
    """
    Take a row lock on the property for the rest of the transaction.

    Every writer of blocked rows (bookings and manual blocks) calls this before
    its overlap check, so checks and inserts on one property are serialized.
    SQLite has no FOR UPDATE; there the Redis property lock is the guard.
    """
    if db.get_bind().dialect.name != "sqlite":
        db.query(models.Property.id).filter(models.Property.id == property_id).with_for_update().first()


def find_conflict(
    db: Session,
    property_id: int,
    start_date: date,
    end_date: date,
    exclude_booking_id: Optional[int] = None,
    booked_only: bool = False,
) -> Optional[models.PropertyAvailability]:
    """
    Return the first blocked row of the property that intersects [start_date, end_date].

    Overlap logic (range ends inclusive):
    existing.start_date <= end_date AND existing.end_date >= start_date
    Rows tied to exclude_booking_id are ignored so a booking can be moved onto
    dates that overlap its own current block. booked_only skips manual blocks.
    """
    q = db.query(models.PropertyAvailability).filter(
        models.PropertyAvailability.property_id == property_id,
        models.PropertyAvailability.is_available.is_(False),
        models.PropertyAvailability.start_date <= end_date,
        models.PropertyAvailability.end_date >= start_date,
    )
    if booked_only:
        q = q.filter(models.PropertyAvailability.booking_id.isnot(None))
    if exclude_booking_id is not None:
        q = q.filter(
            (models.PropertyAvailability.booking_id.is_(None))
            | (models.PropertyAvailability.booking_id != exclude_booking_id)
        )
    return q.order_by(models.PropertyAvailability.start_date.asc()).first()


def is_window_available(
    db: Session,
    property_id: int,
    start_date: date,
    end_date: date,
    exclude_booking_id: Optional[int] = None,
) -> bool:
    return find_conflict(db, property_id, start_date, end_date, exclude_booking_id) is None


def block_for_booking(db: Session, booking: models.Booking) -> models.PropertyAvailability:
    """Add (not commit) the block covering a booking's stay."""
    row = models.PropertyAvailability(
        property_id=booking.property_id,
        start_date=booking.check_in,
        end_date=booking.check_out,
        is_available=False,
        booking_id=booking.id,
        notes=f"Booked by {booking.client_name}",
    )
    db.add(row)
    return row


def release_booking_blocks(db: Session, booking_id: int, notes: str) -> int:
    """Flip every block of a booking back to available and detach it. Returns rows touched."""
    return (
        db.query(models.PropertyAvailability)
        .filter(models.PropertyAvailability.booking_id == booking_id)
        .update(
            {
                models.PropertyAvailability.is_available: True,
                models.PropertyAvailability.booking_id: None,
                models.PropertyAvailability.notes: notes,
            },
            synchronize_session=False,
        )
    )


def annotate_booking_blocks(db: Session, booking_id: int, notes: str) -> int:
    return (
        db.query(models.PropertyAvailability)
        .filter(models.PropertyAvailability.booking_id == booking_id)
        .update({models.PropertyAvailability.notes: notes}, synchronize_session=False)
    )


def move_booking_blocks(db: Session, booking_id: int, start_date: date, end_date: date, notes: str) -> int:
    return (
        db.query(models.PropertyAvailability)
        .filter(models.PropertyAvailability.booking_id == booking_id)
        .update(
            {
                models.PropertyAvailability.start_date: start_date,
                models.PropertyAvailability.end_date: end_date,
                models.PropertyAvailability.notes: notes,
            },
            synchronize_session=False,
        )
    )


def list_for_property(
    db: Session,
    property_id: int,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> List[models.PropertyAvailability]:
    """Rows of a property ordered by start date, optionally limited to those intersecting the window."""
    q = db.query(models.PropertyAvailability).filter(models.PropertyAvailability.property_id == property_id)
    if start_date is not None and end_date is not None:
        q = q.filter(
            models.PropertyAvailability.start_date <= end_date,
            models.PropertyAvailability.end_date >= start_date,
        )
    elif start_date is not None:
        q = q.filter(models.PropertyAvailability.end_date >= start_date)
    elif end_date is not None:
        q = q.filter(models.PropertyAvailability.start_date <= end_date)
    return q.order_by(models.PropertyAvailability.start_date.asc(), models.PropertyAvailability.id.asc()).all()


def add_window(
    db: Session,
    property_id: int,
    start_date: date,
    end_date: date,
    is_available: bool = True,
    notes: Optional[str] = None,
) -> models.PropertyAvailability:
    """Record a manual availability or block row. A manual block may not cover booked dates."""
    if start_date > end_date:
        raise InvalidRequestError("start_date must not be after end_date")

    try:
        if not is_available:
            lock_property_row(db, property_id)
            if find_conflict(db, property_id, start_date, end_date, booked_only=True):
                raise UnavailableError("Dates overlap an existing booking")
        row = models.PropertyAvailability(
            property_id=property_id,
            start_date=start_date,
            end_date=end_date,
            is_available=is_available,
            notes=notes,
        )
        db.add(row)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(row)
    return row
