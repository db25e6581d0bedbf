from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.api.deps import require_kiosk_key
from app.schemas.kiosk import CompleteExitRequest, ScanRequest
from app.services import kiosk_service

router = APIRouter(tags=["kiosk"], dependencies=[Depends(require_kiosk_key)])


@router.post("/kiosk/entry-scan")
def entry_scan(body: ScanRequest, db: Session = Depends(get_db)):
    return kiosk_service.entry_scan(db, body.qrCode)


@router.post("/kiosk/exit-scan")
def exit_scan(body: ScanRequest, db: Session = Depends(get_db)):
    return kiosk_service.exit_scan(db, body.qrCode)


@router.post("/kiosk/complete-exit")
def complete_exit(body: CompleteExitRequest, db: Session = Depends(get_db)):
    return kiosk_service.complete_exit(db, body.bookingId, body.outcome)


@router.get("/kiosk/bookings/{booking_id}/payment-status")
def payment_status(booking_id: str, db: Session = Depends(get_db)):
    return kiosk_service.payment_status(db, booking_id)
