from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.schemas.floor import FloorOut
from app.services import booking_service

router = APIRouter(tags=["floors"])


@router.get("/floors", response_model=list[FloorOut])
def list_floors(db: Session = Depends(get_db)):
    return booking_service.list_floors_with_availability(db)


@router.get("/floors/available", response_model=list[FloorOut])
def available_floors(db: Session = Depends(get_db)):
    """Active floors with at least one free normal spot."""
    return booking_service.list_available_floors(db)


@router.get("/floors/{floor_id}", response_model=FloorOut)
def get_floor(floor_id: str, db: Session = Depends(get_db)):
    return booking_service.floor_availability(db, booking_service.get_floor(db, floor_id))
