from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.api.deps import get_current_user
from app.models.floor import Floor
from app.models.user import User
from app.schemas.booking import BookingCreate, BookingOut, BookingPage
from app.services import booking_service, qr_service

router = APIRouter(tags=["bookings"])


def _out(db: Session, b) -> BookingOut:
    floor = db.get(Floor, b.floor_id)
    return BookingOut.from_model(b, floor.name if floor else None)


@router.post("/bookings", response_model=BookingOut, status_code=201)
def create_booking(body: BookingCreate, db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    booking = booking_service.create_booking(db, me, body.floorId, body.spotType)
    return _out(db, booking)


@router.get("/bookings/active")
def active_booking(db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    booking = booking_service.get_open_booking(db, me)
    return {"booking": _out(db, booking) if booking else None}


@router.get("/bookings/history", response_model=BookingPage)
def booking_history(page: int = 1, limit: int = 10,
                    db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    items, total = booking_service.list_history(db, me, page, limit)
    return BookingPage(total=total, page=page, items=[_out(db, b) for b in items])


@router.get("/bookings/{booking_id}", response_model=BookingOut)
def get_booking(booking_id: str, db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    return _out(db, booking_service.get_booking_for_user(db, me, booking_id))


@router.get("/bookings/{booking_id}/qr")
def booking_qr(booking_id: str, db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    booking = booking_service.get_booking_for_user(db, me, booking_id)
    return Response(content=qr_service.booking_qr_svg(booking), media_type="image/svg+xml")


@router.get("/bookings/{booking_id}/pass")
def booking_pass(booking_id: str, db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    booking = booking_service.get_booking_for_user(db, me, booking_id)
    floor = db.get(Floor, booking.floor_id)
    owner = db.get(User, booking.user_id)
    pdf = qr_service.render_booking_pass_pdf(booking, floor.name if floor else "", owner.name if owner else "")
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{booking.booking_id}.pdf"'},
    )


@router.post("/bookings/{booking_id}/cancel", response_model=BookingOut)
def cancel_booking(booking_id: str, db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    return _out(db, booking_service.cancel_booking(db, me, booking_id))


@router.post("/bookings/{booking_id}/extend", response_model=BookingOut)
def extend_booking(booking_id: str, db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    return _out(db, booking_service.extend_booking(db, me, booking_id))
