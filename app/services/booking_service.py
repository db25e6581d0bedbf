"""Session registry: booking admission, lookup, floor availability and retention.

Admission is serialized per user by locking the user row and per floor by
locking the floor row; the partial unique index on open bookings backs the
per-user rule at the database level.
"""
import logging
import random
import time
import uuid
from datetime import datetime, timedelta

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import (
    BookingIdUnavailableError,
    CapacityExceededError,
    DuplicateActiveBookingError,
    ForbiddenError,
    NotFoundError,
    OutstandingDuesError,
    ValidationError,
)
from app.db.session import atomic
from app.models.booking import Booking
from app.models.floor import Floor
from app.models.user import User
from app.services import booking_state
from app.services.audit_service import log_audit
from app.services.booking_state import (
    COMPLETED,
    OPEN_STATUSES,
    PENDING,
    as_utc,
    utcnow,
)
from app.services.notification_service import notify

logger = logging.getLogger(__name__)

SPOT_LABEL = "Any Available Spot"
STAFF_ROLES = ("admin", "staff")


def make_booking_id() -> str:
    ms = str(int(time.time() * 1000))
    return f"SP{ms[-6:]}{random.randint(0, 999):03d}"


BOOKING_ID_ATTEMPTS = 10


def _allocate_booking_id(db: Session) -> str:
    # booking_id must be unique
    for _ in range(BOOKING_ID_ATTEMPTS):
        ref = make_booking_id()
        exists = db.execute(select(Booking.id).where(Booking.booking_id == ref)).first()
        if not exists:
            return ref
    logger.error("no free booking id after %d attempts", BOOKING_ID_ATTEMPTS)
    raise BookingIdUnavailableError(BOOKING_ID_ATTEMPTS)


def lock_user(db: Session, user_id: str) -> User:
    """Load the user row with FOR UPDATE, refreshing any stale copy in the session."""
    user = db.execute(
        select(User).where(User.id == user_id).with_for_update().execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if not user:
        raise NotFoundError("User")
    return user


def lock_floor(db: Session, floor_id: str) -> Floor:
    floor = db.execute(
        select(Floor).where(Floor.id == floor_id).with_for_update().execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if not floor:
        raise NotFoundError("Floor")
    return floor


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(value)
    except (ValueError, AttributeError, TypeError):
        return False
    return True


def find_booking_by_identifier(db: Session, identifier: str, lock: bool = False) -> Booking:
    """Resolve a scanned identifier: booking_id first, then primary key if it looks like one."""
    if not identifier:
        raise NotFoundError("Booking")

    def _one(stmt):
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return db.execute(stmt).scalar_one_or_none()

    booking = _one(select(Booking).where(Booking.booking_id == identifier))
    if booking is None and _is_uuid(identifier):
        booking = _one(select(Booking).where(Booking.id == identifier))
    if booking is None:
        raise NotFoundError("Booking")
    return booking


def stale_holds_query(now: datetime, user_id: str | None = None, floor_id: str | None = None):
    """Lapsed pending holds, row-locked with SKIP LOCKED.

    A hold another transaction has locked is left for the next sweep, so
    expiry never waits on a booking row while holding a user or floor lock.
    """
    stmt = select(Booking).where(Booking.status == PENDING, Booking.expires_at <= now)
    if user_id:
        stmt = stmt.where(Booking.user_id == user_id)
    if floor_id:
        stmt = stmt.where(Booking.floor_id == floor_id)
    return stmt.with_for_update(skip_locked=True)


def expire_stale_bookings(db: Session, now: datetime | None = None,
                          user_id: str | None = None, floor_id: str | None = None) -> int:
    """Move pending bookings whose hold has lapsed to expired. Caller commits."""
    now = now or utcnow()
    stale = db.execute(stale_holds_query(now, user_id, floor_id)).scalars().all()
    for b in stale:
        booking_state.expire(b)
    if stale:
        db.flush()
        logger.info("expired %d stale booking hold(s)", len(stale))
    return len(stale)


def _has_open_booking(db: Session, user_id: str) -> bool:
    return db.execute(
        select(Booking.id).where(Booking.user_id == user_id, Booking.status.in_(OPEN_STATUSES))
    ).first() is not None


def _open_count(db: Session, floor_id: str, spot_type: str | None = None) -> int:
    stmt = select(func.count()).select_from(Booking).where(
        Booking.floor_id == floor_id, Booking.status.in_(OPEN_STATUSES)
    )
    if spot_type:
        stmt = stmt.where(Booking.spot_type == spot_type)
    return db.execute(stmt).scalar_one()


def create_booking(db: Session, user: User, floor_id: str, spot_type: str = "normal",
                   now: datetime | None = None) -> Booking:
    now = now or utcnow()
    if spot_type not in ("normal", "disability"):
        raise ValidationError("spot_type must be normal or disability")

    try:
        with atomic(db):
            locked_user = lock_user(db, user.id)
            expire_stale_bookings(db, now, user_id=locked_user.id)

            if _has_open_booking(db, locked_user.id):
                raise DuplicateActiveBookingError()
            if locked_user.due_amount > 0:
                raise OutstandingDuesError(locked_user.due_amount)

            floor = lock_floor(db, floor_id)
            if not floor.is_active:
                raise CapacityExceededError("Floor is not available for booking")
            expire_stale_bookings(db, now, floor_id=floor.id)
            # every booking takes a normal spot regardless of the requested type
            if _open_count(db, floor.id) >= floor.normal_spots:
                raise CapacityExceededError()

            booking = Booking(
                id=str(uuid.uuid4()),
                booking_id=_allocate_booking_id(db),
                user_id=locked_user.id,
                floor_id=floor.id,
                spot_type="normal",
                spot_number=SPOT_LABEL,
                status=PENDING,
                payment_status="pending",
                payment_method="none",
                created_at=now,
                expires_at=booking_state.hold_expiry(now),
            )
            db.add(booking)
            db.flush()
    except IntegrityError:
        # lost the race on uq_bookings_one_open_per_user
        raise DuplicateActiveBookingError()

    logger.info("booking %s created for user %s on floor %s", booking.booking_id, user.id, floor_id)
    notify(db, user, "booking_confirmed", {
        "booking_id": booking.booking_id,
        "floor": floor.name,
        "expires_at": as_utc(booking.expires_at),
    })
    return booking


def get_booking_for_user(db: Session, user: User, identifier: str) -> Booking:
    booking = find_booking_by_identifier(db, identifier)
    if booking.user_id != user.id and user.role not in STAFF_ROLES:
        raise ForbiddenError("Not authorized to view this booking")
    return booking


def get_open_booking(db: Session, user: User, now: datetime | None = None) -> Booking | None:
    """The user's pending or active booking, after lazily expiring a lapsed hold."""
    with atomic(db):
        expire_stale_bookings(db, now, user_id=user.id)
    return db.execute(
        select(Booking)
        .where(Booking.user_id == user.id, Booking.status.in_(OPEN_STATUSES))
        .order_by(Booking.created_at.desc())
    ).scalars().first()


def _paginate(db: Session, stmt, page: int, limit: int) -> tuple[list[Booking], int]:
    page = max(page, 1)
    limit = min(max(limit, 1), 100)
    total = db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
    items = db.execute(
        stmt.order_by(Booking.created_at.desc()).offset((page - 1) * limit).limit(limit)
    ).scalars().all()
    return list(items), total


def list_history(db: Session, user: User, page: int = 1, limit: int = 10) -> tuple[list[Booking], int]:
    stmt = select(Booking).where(Booking.user_id == user.id, Booking.archived == False)  # noqa: E712
    return _paginate(db, stmt, page, limit)


def list_bookings(db: Session, status: str | None = None, page: int = 1, limit: int = 20) -> tuple[list[Booking], int]:
    stmt = select(Booking).where(Booking.archived == False)  # noqa: E712
    if status:
        stmt = stmt.where(Booking.status == status)
    return _paginate(db, stmt, page, limit)


def cancel_booking(db: Session, user: User, identifier: str) -> Booking:
    with atomic(db):
        booking = find_booking_by_identifier(db, identifier, lock=True)
        booking_state.cancel(booking, user.id)
    logger.info("booking %s cancelled", booking.booking_id)
    return booking


def extend_booking(db: Session, user: User, identifier: str) -> Booking:
    with atomic(db):
        booking = find_booking_by_identifier(db, identifier, lock=True)
        if booking.user_id != user.id:
            raise ForbiddenError("Not authorized to extend this booking")
        booking_state.extend(booking)
    logger.info("booking %s extended to %s", booking.booking_id, booking.expected_exit_time)
    notify(db, user, "booking_extended", {
        "booking_id": booking.booking_id,
        "expected_exit_time": as_utc(booking.expected_exit_time),
    })
    return booking


# Floors

def get_floor(db: Session, floor_id: str) -> Floor:
    floor = db.get(Floor, floor_id)
    if not floor:
        raise NotFoundError("Floor")
    return floor


def _open_counts_by_floor(db: Session) -> dict[tuple[str, str], int]:
    rows = db.execute(
        select(Booking.floor_id, Booking.spot_type, func.count())
        .where(Booking.status.in_(OPEN_STATUSES))
        .group_by(Booking.floor_id, Booking.spot_type)
    ).all()
    return {(fid, st): n for fid, st, n in rows}


def _availability(floor: Floor, counts: dict[tuple[str, str], int]) -> dict:
    # disability spots are never allocated, so their availability is informational
    return {
        "id": floor.id,
        "name": floor.name,
        "level": floor.level,
        "normalSpots": floor.normal_spots,
        "disabilitySpots": floor.disability_spots,
        "availableNormalSpots": max(floor.normal_spots - counts.get((floor.id, "normal"), 0), 0),
        "availableDisabilitySpots": max(floor.disability_spots - counts.get((floor.id, "disability"), 0), 0),
        "isActive": floor.is_active,
    }


def floor_availability(db: Session, floor: Floor) -> dict:
    counts = {
        (floor.id, "normal"): _open_count(db, floor.id, "normal"),
        (floor.id, "disability"): _open_count(db, floor.id, "disability"),
    }
    return _availability(floor, counts)


def list_floors_with_availability(db: Session, include_inactive: bool = False) -> list[dict]:
    stmt = select(Floor).order_by(Floor.level.asc(), Floor.name.asc())
    if not include_inactive:
        stmt = stmt.where(Floor.is_active == True)  # noqa: E712
    counts = _open_counts_by_floor(db)
    return [_availability(f, counts) for f in db.execute(stmt).scalars().all()]


def list_available_floors(db: Session) -> list[dict]:
    return [f for f in list_floors_with_availability(db) if f["availableNormalSpots"] > 0]


def _check_spots(normal_spots, disability_spots) -> None:
    for value in (normal_spots, disability_spots):
        if value is not None and value < 0:
            raise ValidationError("Spot counts cannot be negative")


def create_floor(db: Session, actor: User, name: str, level: int, normal_spots: int, disability_spots: int = 0) -> Floor:
    _check_spots(normal_spots, disability_spots)
    with atomic(db):
        floor = Floor(
            id=str(uuid.uuid4()),
            name=name,
            level=level,
            normal_spots=normal_spots,
            disability_spots=disability_spots,
            is_active=True,
        )
        db.add(floor)
        log_audit(db, actor.id, "floor.create", "floor", floor.id,
                  {"name": name, "normalSpots": normal_spots, "disabilitySpots": disability_spots})
    return floor


def update_floor(db: Session, actor: User, floor_id: str, changes: dict) -> Floor:
    allowed = {"name", "level", "normal_spots", "disability_spots", "is_active"}
    changes = {k: v for k, v in changes.items() if k in allowed and v is not None}
    _check_spots(changes.get("normal_spots"), changes.get("disability_spots"))
    with atomic(db):
        floor = lock_floor(db, floor_id)
        for k, v in changes.items():
            setattr(floor, k, v)
        log_audit(db, actor.id, "floor.update", "floor", floor.id, changes)
    return floor


# Retention

def archive_completed_bookings(db: Session, older_than_days: int | None = None, now: datetime | None = None) -> int:
    days = settings.ARCHIVE_AFTER_DAYS if older_than_days is None else older_than_days
    cutoff = (now or utcnow()) - timedelta(days=days)
    with atomic(db):
        result = db.execute(
            update(Booking)
            .where(Booking.status == COMPLETED, Booking.archived == False, Booking.exit_time < cutoff)  # noqa: E712
            .values(archived=True)
            .execution_options(synchronize_session=False)
        )
    if result.rowcount:
        logger.info("archived %d completed booking(s) older than %d days", result.rowcount, days)
    return result.rowcount


def purge_archived_bookings(db: Session, older_than_days: int, actor: User | None = None,
                            now: datetime | None = None) -> int:
    if older_than_days < settings.MIN_PURGE_RETENTION_DAYS:
        raise ValidationError(
            f"Archived bookings must be retained for at least {settings.MIN_PURGE_RETENTION_DAYS} days"
        )
    cutoff = (now or utcnow()) - timedelta(days=older_than_days)
    with atomic(db):
        result = db.execute(
            delete(Booking)
            .where(Booking.status == COMPLETED, Booking.archived == True, Booking.exit_time < cutoff)  # noqa: E712
            .execution_options(synchronize_session=False)
        )
        if actor is not None:
            log_audit(db, actor.id, "bookings.purge", "booking", "*",
                      {"olderThanDays": older_than_days, "deleted": result.rowcount})
    logger.info("purged %d archived booking(s) older than %d days", result.rowcount, older_than_days)
    return result.rowcount


def list_archived_bookings(db: Session, page: int = 1, limit: int = 20) -> tuple[list[Booking], int]:
    stmt = select(Booking).where(Booking.archived == True)  # noqa: E712
    return _paginate(db, stmt, page, limit)
