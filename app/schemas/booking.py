from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel

from app.models.booking import Booking
from app.services.booking_state import as_utc


def _iso(dt: datetime | None) -> Optional[str]:
    return as_utc(dt).isoformat() if dt else None


class BookingCreate(BaseModel):
    floorId: str
    spotType: Literal["normal", "disability"] = "normal"


class BookingOut(BaseModel):
    id: str
    bookingId: str
    userId: str
    floorId: str
    floorName: Optional[str] = None
    spotType: str
    spotNumber: str
    status: str
    entryTime: Optional[str] = None
    exitTime: Optional[str] = None
    expectedExitTime: Optional[str] = None
    actualAmount: int = 0
    paymentStatus: str
    paymentMethod: str
    createdAt: Optional[str] = None
    expiresAt: Optional[str] = None
    archived: bool = False

    @classmethod
    def from_model(cls, b: Booking, floor_name: str | None = None) -> "BookingOut":
        return cls(
            id=b.id,
            bookingId=b.booking_id,
            userId=b.user_id,
            floorId=b.floor_id,
            floorName=floor_name,
            spotType=b.spot_type,
            spotNumber=b.spot_number,
            status=b.status,
            entryTime=_iso(b.entry_time),
            exitTime=_iso(b.exit_time),
            expectedExitTime=_iso(b.expected_exit_time),
            actualAmount=b.actual_amount or 0,
            paymentStatus=b.payment_status,
            paymentMethod=b.payment_method,
            createdAt=_iso(b.created_at),
            expiresAt=_iso(b.expires_at),
            archived=bool(b.archived),
        )


class BookingPage(BaseModel):
    total: int
    page: int
    items: list[BookingOut]
