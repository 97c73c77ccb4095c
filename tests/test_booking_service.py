# Booking service rules that don't need HTTP: duration labels, the transition table, and the
# availability predicate against rows seeded straight into the database.
from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from estatedesk import availability, booking_service, models
from estatedesk.db import SessionLocal
from estatedesk.errors import InvalidRequestError, NotFoundError, UnavailableError


@pytest.mark.parametrize(
    "check_in, check_out, expected",
    [
        (date(2025, 6, 1), date(2025, 6, 2), "1 night"),
        (date(2025, 6, 1), date(2025, 6, 5), "4 nights"),
        (date(2025, 6, 1), date(2025, 6, 8), "7 nights"),
        (date(2025, 6, 1), date(2025, 6, 9), "1 week"),
        (date(2025, 6, 1), date(2025, 6, 22), "3 weeks"),
        (date(2025, 6, 1), date(2025, 7, 1), "4 weeks"),
        (date(2025, 6, 1), date(2025, 7, 2), "1 month"),
        (date(2025, 1, 1), date(2025, 4, 1), "3 months"),
    ],
)
def test_calculate_duration(check_in, check_out, expected):
    assert booking_service.calculate_duration(check_in, check_out) == expected


def test_transition_table():
    allowed = booking_service.can_transition
    assert allowed("pending", "confirmed")
    assert allowed("confirmed", "paid")
    assert allowed("cancellation_requested", "confirmed")
    assert allowed("paid", "archived")
    assert not allowed("pending", "paid")
    assert not allowed("paid", "confirmed")
    assert not allowed("cancelled", "pending")
    assert not allowed("archived", "confirmed")
    for terminal in booking_service.TERMINAL_STATUSES:
        assert booking_service.TRANSITIONS[terminal] == frozenset()


def test_validate_dates_requires_checkout_after_checkin():
    with pytest.raises(InvalidRequestError):
        booking_service.validate_dates(date(2025, 6, 5), date(2025, 6, 5))
    with pytest.raises(InvalidRequestError):
        booking_service.validate_dates(date(2025, 6, 5), date(2025, 6, 1))
    booking_service.validate_dates(date(2025, 6, 1), date(2025, 6, 2))


def _seed(db) -> tuple[models.Property, models.Agent]:
    agency = models.Agency(name="Palm Realty", locations=[], commission_rate=Decimal("12"))
    db.add(agency)
    db.flush()
    agent = models.Agent(email="owner@example.com", name="Owner", agency_id=agency.id, email_verified=True)
    db.add(agent)
    db.flush()
    prop = models.Property(
        agency_id=agency.id,
        created_by_id=agent.id,
        title="Villa",
        location="Jumeirah",
        property_type="villa",
        price=Decimal("900"),
        amenities=[],
        media=[],
    )
    db.add(prop)
    db.commit()
    return prop, agent


def _new_booking(prop: models.Property, agent: models.Agent, check_in: date, check_out: date, **kw):
    return booking_service.NewBooking(
        property_id=prop.id,
        owner_agent_id=agent.id,
        client_name=kw.get("client_name", "Dana Client"),
        client_email="dana@example.com",
        client_phone="+971500000000",
        check_in=check_in,
        check_out=check_out,
        total_amount=Decimal(kw.get("total", "1000")),
    )


def test_create_booking_uses_agency_rate_and_blocks_window():
    db = SessionLocal()
    try:
        prop, agent = _seed(db)
        booking, commission = booking_service.create_booking(
            db, _new_booking(prop, agent, date(2025, 6, 1), date(2025, 6, 5))
        )
        assert booking.status == "pending"
        assert booking.booking_agent_id == agent.id
        assert booking.duration == "4 nights"
        # Agency rate is 12%
        assert commission.commission_rate == Decimal("12")
        assert commission.total_amount == Decimal("120.00")
        assert commission.platform_fee == Decimal("24.00")
        assert commission.owner_commission == Decimal("67.20")
        assert commission.booking_commission == Decimal("28.80")

        rows = availability.list_for_property(db, prop.id)
        assert len(rows) == 1
        assert rows[0].is_available is False
        assert rows[0].booking_id == booking.id
        assert rows[0].notes == "Booked by Dana Client"
    finally:
        db.close()


def test_overlap_predicate_is_inclusive_and_respects_exclusion():
    db = SessionLocal()
    try:
        prop, agent = _seed(db)
        booking, _ = booking_service.create_booking(db, _new_booking(prop, agent, date(2025, 6, 1), date(2025, 6, 5)))

        assert not availability.is_window_available(db, prop.id, date(2025, 6, 3), date(2025, 6, 7))
        # Ends are inclusive: sharing the boundary day conflicts
        assert not availability.is_window_available(db, prop.id, date(2025, 6, 5), date(2025, 6, 8))
        assert not availability.is_window_available(db, prop.id, date(2025, 5, 28), date(2025, 6, 1))
        assert availability.is_window_available(db, prop.id, date(2025, 6, 6), date(2025, 6, 9))
        # The booking's own block is ignored when moving it
        assert availability.is_window_available(
            db, prop.id, date(2025, 6, 3), date(2025, 6, 7), exclude_booking_id=booking.id
        )

        with pytest.raises(UnavailableError):
            booking_service.create_booking(db, _new_booking(prop, agent, date(2025, 6, 4), date(2025, 6, 6)))
        assert db.query(models.Booking).count() == 1
        assert db.query(models.Commission).count() == 1
    finally:
        db.close()


def test_manual_block_also_prevents_booking():
    db = SessionLocal()
    try:
        prop, agent = _seed(db)
        availability.add_window(db, prop.id, date(2025, 8, 1), date(2025, 8, 10), is_available=False, notes="Maintenance")
        with pytest.raises(UnavailableError):
            booking_service.create_booking(db, _new_booking(prop, agent, date(2025, 8, 9), date(2025, 8, 12)))
        # Available rows never block
        availability.add_window(db, prop.id, date(2025, 9, 1), date(2025, 9, 30), is_available=True)
        booking_service.create_booking(db, _new_booking(prop, agent, date(2025, 9, 5), date(2025, 9, 8)))
    finally:
        db.close()


def test_cancel_releases_and_detaches_blocks():
    db = SessionLocal()
    try:
        prop, agent = _seed(db)
        booking, _ = booking_service.create_booking(db, _new_booking(prop, agent, date(2025, 6, 1), date(2025, 6, 5)))
        booking, message = booking_service.change_status(db, booking, "cancelled")
        assert booking.status == "cancelled"
        assert message == "Booking cancelled"

        rows = availability.list_for_property(db, prop.id)
        assert [(r.is_available, r.booking_id, r.notes) for r in rows] == [(True, None, "Cancelled")]
        # Window is free again
        booking_service.create_booking(db, _new_booking(prop, agent, date(2025, 6, 1), date(2025, 6, 5)))
    finally:
        db.close()


def test_create_booking_missing_references():
    db = SessionLocal()
    try:
        prop, agent = _seed(db)
        data = _new_booking(prop, agent, date(2025, 6, 1), date(2025, 6, 5))
        data.property_id = 9999
        with pytest.raises(NotFoundError):
            booking_service.create_booking(db, data)

        data = _new_booking(prop, agent, date(2025, 6, 1), date(2025, 6, 5))
        data.booking_agent_id = 9999
        with pytest.raises(NotFoundError):
            booking_service.create_booking(db, data)
        assert db.query(models.Booking).count() == 0
    finally:
        db.close()
