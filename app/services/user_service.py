"""Admin-side account management: listing, creating, editing, roles, special passes.

Accounts are deactivated, never deleted, so their bookings and ledger rows
keep a valid owner.
"""
import logging
import uuid

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.errors import EmailTakenError, NotFoundError, ValidationError
from app.core.security import hash_password
from app.db.session import atomic
from app.models.user import User
from app.services.audit_service import log_audit
from app.services.booking_service import lock_user

logger = logging.getLogger(__name__)

ROLES = ("user", "staff", "admin")


def _normalize_email(email: str) -> str:
    email = (email or "").strip().lower()
    if not email:
        raise ValidationError("email required")
    return email


def _check_role(role: str) -> None:
    if role not in ROLES:
        raise ValidationError("Invalid role specified")


def _email_taken(db: Session, email: str, exclude_id: str | None = None) -> bool:
    stmt = select(User.id).where(User.email == email)
    if exclude_id:
        stmt = stmt.where(User.id != exclude_id)
    return db.execute(stmt).first() is not None


def list_users(db: Session, role: str | None = None, special_pass: bool | None = None) -> list[User]:
    stmt = select(User)
    if role:
        stmt = stmt.where(User.role == role)
    if special_pass is not None:
        stmt = stmt.where(User.is_special_pass == special_pass)
    return list(db.execute(stmt.order_by(User.name.asc(), User.email.asc())).scalars().all())


def get_user(db: Session, user_id: str) -> User:
    user = db.get(User, user_id)
    if not user:
        raise NotFoundError("User")
    return user


def create_user(db: Session, actor: User, email: str, password: str, name: str = "",
                phone: str = "", role: str = "user") -> User:
    email = _normalize_email(email)
    _check_role(role)
    with atomic(db):
        if _email_taken(db, email):
            raise EmailTakenError(email)
        user = User(
            id=str(uuid.uuid4()),
            email=email,
            name=name,
            phone=phone,
            role=role,
            password_hash=hash_password(password),
            is_active=True,
        )
        db.add(user)
        log_audit(db, actor.id, "user.create", "user", user.id, {"email": email, "role": role})
    logger.info("user %s (%s) created by %s", user.id, role, actor.id)
    return user


def update_user(db: Session, actor: User, user_id: str, changes: dict) -> User:
    """Apply profile changes; ``None`` values are left as they are."""
    changes = {k: v for k, v in changes.items() if v is not None}
    if "email" in changes:
        changes["email"] = _normalize_email(changes["email"])
    if changes.get("is_active") is False and user_id == actor.id:
        raise ValidationError("You cannot deactivate your own account")
    with atomic(db):
        user = lock_user(db, user_id)
        if "email" in changes and _email_taken(db, changes["email"], exclude_id=user.id):
            raise EmailTakenError(changes["email"])
        for field, value in changes.items():
            setattr(user, field, value)
        log_audit(db, actor.id, "user.update", "user", user.id, changes)
    return user


def set_role(db: Session, actor: User, user_id: str, role: str) -> User:
    _check_role(role)
    if user_id == actor.id:
        raise ValidationError("You cannot change your own role")
    with atomic(db):
        user = lock_user(db, user_id)
        previous, user.role = user.role, role
        log_audit(db, actor.id, "user.role", "user", user.id, {"from": previous, "to": role})
    logger.info("user %s role %s -> %s by %s", user.id, previous, role, actor.id)
    return user


def set_special_pass(db: Session, actor: User, user_id: str, enabled: bool) -> User:
    with atomic(db):
        user = lock_user(db, user_id)
        user.is_special_pass = enabled
        log_audit(db, actor.id, "user.special_pass", "user", user.id, {"enabled": enabled})
    return user
