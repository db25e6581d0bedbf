"""Parking fee calculation.

Flat base rate for the first 4 hours plus a 10 minute grace period, then
fines in 10 minute blocks: 5 per block for the first 30 overage minutes and
10 per block after that. Overage is measured from the end of the grace
period.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from app.core.errors import ValidationError

BASE_RATE = 40  # rupees for the base period
BASE_HOURS = 4
GRACE_PERIOD_MINUTES = 10

FINE_RATE_1 = 5   # per 10 minutes, first 30 overage minutes
FINE_RATE_2 = 10  # per 10 minutes, after the first 30 overage minutes

FINE_BLOCK_MINUTES = 10
FIRST_TIER_MINUTES = 30


@dataclass(frozen=True)
class FeeBreakdown:
    base_amount: int
    fine_amount: int
    total_amount: int
    duration_minutes: int
    overage_minutes: int

    def as_dict(self) -> dict:
        return {
            "baseAmount": self.base_amount,
            "fineAmount": self.fine_amount,
            "totalAmount": self.total_amount,
            "durationMinutes": self.duration_minutes,
            "overageMinutes": self.overage_minutes,
        }


def _as_utc(dt: datetime) -> datetime:
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def _ceil_div(n: int, d: int) -> int:
    return -(-n // d)


def duration_minutes(entry_time: datetime, exit_time: datetime) -> int:
    """Whole minutes between entry and exit, rounded up. Millisecond resolution."""
    elapsed_ms = (_as_utc(exit_time) - _as_utc(entry_time)) // timedelta(milliseconds=1)
    return _ceil_div(elapsed_ms, 60_000)


def calculate_fee(entry_time: datetime, exit_time: datetime) -> FeeBreakdown:
    if entry_time is None or exit_time is None:
        raise ValidationError("entry and exit times are required")
    if _as_utc(exit_time) < _as_utc(entry_time):
        raise ValidationError("exit time is before entry time")

    total_minutes = duration_minutes(entry_time, exit_time)
    base_minutes = BASE_HOURS * 60

    if total_minutes <= base_minutes + GRACE_PERIOD_MINUTES:
        return FeeBreakdown(
            base_amount=BASE_RATE,
            fine_amount=0,
            total_amount=BASE_RATE,
            duration_minutes=total_minutes,
            overage_minutes=0,
        )

    overage = total_minutes - base_minutes - GRACE_PERIOD_MINUTES
    if overage <= FIRST_TIER_MINUTES:
        fine = _ceil_div(overage, FINE_BLOCK_MINUTES) * FINE_RATE_1
    else:
        # first tier is always billed as three full blocks
        fine = (FIRST_TIER_MINUTES // FINE_BLOCK_MINUTES) * FINE_RATE_1
        fine += _ceil_div(overage - FIRST_TIER_MINUTES, FINE_BLOCK_MINUTES) * FINE_RATE_2

    return FeeBreakdown(
        base_amount=BASE_RATE,
        fine_amount=fine,
        total_amount=BASE_RATE + fine,
        duration_minutes=total_minutes,
        overage_minutes=overage,
    )
