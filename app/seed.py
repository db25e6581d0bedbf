"""Idempotent bootstrap data: gate staff, an admin, and the default floors."""
import logging
import os
import uuid

from sqlalchemy import select, text
from sqlalchemy.exc import ProgrammingError
from sqlalchemy.orm import Session

from app.core.security import hash_password
from app.db.session import SessionLocal, atomic
from app.models.floor import Floor
from app.models.user import User

logger = logging.getLogger(__name__)

ACCOUNTS = [
    # email, password env var, default password, role, display name
    ("admin@smartpark.local", "SEED_ADMIN_PASSWORD", "admin12345", "admin", "Admin"),
    ("staff@smartpark.local", "SEED_STAFF_PASSWORD", "staff12345", "staff", "Gate Staff"),
]

FLOORS = [
    # name, level, normal spots, disability spots
    ("Ground Floor", 0, 40, 4),
    ("Level 1", 1, 50, 2),
    ("Level 2", 2, 50, 2),
]


def ensure_user(db: Session, email: str, password: str, role: str, name: str) -> bool:
    if db.scalar(select(User.id).where(User.email == email)):
        return False
    db.add(User(id=str(uuid.uuid4()), email=email, name=name, role=role,
                password_hash=hash_password(password), is_active=True))
    return True


def ensure_floor(db: Session, name: str, level: int, normal_spots: int, disability_spots: int) -> bool:
    if db.scalar(select(Floor.id).where(Floor.name == name)):
        return False
    db.add(Floor(id=str(uuid.uuid4()), name=name, level=level, normal_spots=normal_spots,
                 disability_spots=disability_spots, is_active=True))
    return True


def _schema_ready(db: Session) -> bool:
    try:
        db.execute(text("SELECT 1 FROM users LIMIT 1"))
    except ProgrammingError:
        db.rollback()
        return False
    return True


def run(db: Session | None = None):
    """Seed missing rows. Closes the session it was given."""
    db = db or SessionLocal()
    try:
        if not _schema_ready(db):
            logger.warning("users table not found yet; skipping seed (run alembic upgrade head)")
            return
        with atomic(db):
            users = sum(ensure_user(db, email, os.getenv(env, default), role, name)
                        for email, env, default, role, name in ACCOUNTS)
            floors = sum(ensure_floor(db, *row) for row in FLOORS)
        logger.info("seed complete: %d users, %d floors added", users, floors)
    finally:
        db.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    run()
