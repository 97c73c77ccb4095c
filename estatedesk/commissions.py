# Commission formulas for bookings and sales.
# Pure functions over Decimal; callers persist the results on Commission/SalesCommission rows.
from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Union

Number = Union[Decimal, int, float, str]

CENTS = Decimal("0.01")

# Booking commission: rate% of the total; the platform keeps 20% of that,
# the remaining agent pool is split 70/30 between the owner and the booking agent.
DEFAULT_COMMISSION_RATE = Decimal(os.getenv("DEFAULT_COMMISSION_RATE", "10"))
PLATFORM_SHARE = Decimal("0.20")
OWNER_SHARE = Decimal("0.70")

# Sales commission: 4% of the sale price, split 48/48/4 seller/buyer/platform.
SALES_COMMISSION_RATE = Decimal("4")
SALES_AGENT_SHARE = Decimal("0.48")
SALES_PLATFORM_SHARE = Decimal("0.04")


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def _dec(value: Number) -> Decimal:
    # str() first so floats like 0.1 don't drag binary noise into the result
    return value if isinstance(value, Decimal) else Decimal(str(value))


@dataclass(frozen=True)
class BookingCommissionSplit:
    commission_rate: Decimal
    total_amount: Decimal
    owner_commission: Decimal
    booking_commission: Decimal
    platform_fee: Decimal


@dataclass(frozen=True)
class SalesCommissionSplit:
    commission_rate: Decimal
    total_amount: Decimal
    seller_commission: Decimal
    buyer_commission: Decimal
    platform_fee: Decimal


def split_booking_commission(total_amount: Number, commission_rate: Number = DEFAULT_COMMISSION_RATE) -> BookingCommissionSplit:
    """
    Split a booking's commission three ways.

    commission = total * rate / 100
    platform_fee = commission * 0.20
    owner = (commission - platform_fee) * 0.70
    booking = (commission - platform_fee) - owner

    Each part is rounded to cents; the booking agent's share takes the rounding
    remainder so owner + booking + platform always equals the commission.
    """
    total = _dec(total_amount)
    rate = _dec(commission_rate)
    if total < 0:
        raise ValueError("total_amount must not be negative")
    if rate < 0 or rate > 100:
        raise ValueError("commission_rate must be between 0 and 100")

    commission = _money(total * rate / Decimal(100))
    platform_fee = _money(commission * PLATFORM_SHARE)
    agent_pool = commission - platform_fee
    owner = _money(agent_pool * OWNER_SHARE)
    booking = agent_pool - owner
    return BookingCommissionSplit(
        commission_rate=rate,
        total_amount=commission,
        owner_commission=owner,
        booking_commission=booking,
        platform_fee=platform_fee,
    )


def split_sales_commission(sale_price: Number, commission_rate: Number = SALES_COMMISSION_RATE) -> SalesCommissionSplit:
    """Split a sale's commission 48% seller / 48% buyer / 4% platform (seller absorbs rounding)."""
    price = _dec(sale_price)
    rate = _dec(commission_rate)
    if price < 0:
        raise ValueError("sale_price must not be negative")

    commission = _money(price * rate / Decimal(100))
    buyer = _money(commission * SALES_AGENT_SHARE)
    platform_fee = _money(commission * SALES_PLATFORM_SHARE)
    seller = commission - buyer - platform_fee
    return SalesCommissionSplit(
        commission_rate=rate,
        total_amount=commission,
        seller_commission=seller,
        buyer_commission=buyer,
        platform_fee=platform_fee,
    )
