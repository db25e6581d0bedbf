"""Settlement and wallet ledger.

Every balance change locks the user row first and lands in one commit
together with its Transaction rows. Exit settlement never blocks egress:
whatever is not paid becomes a due on the user.
"""
import json
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from urllib.parse import quote, urlencode

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import (
    ErrorCode,
    InsufficientFundsError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from app.db.session import atomic
from app.models.booking import Booking
from app.models.transaction import Transaction
from app.models.user import User
from app.services import booking_state, qr_service
from app.services.audit_service import log_audit
from app.services.booking_service import find_booking_by_identifier, lock_user
from app.services.booking_state import ACTIVE, as_utc, utcnow
from app.services.notification_service import notify
from app.services.pricing import FeeBreakdown, calculate_fee

logger = logging.getLogger(__name__)

OPERATOR_INCOME_TYPES = ("payment", "global_transfer")


@dataclass
class ExitResult:
    status: str  # completed | pending_payment
    booking_id: str
    fee: FeeBreakdown
    payment_status: str
    payment_method: str
    wallet_balance: int
    user_name: str = ""
    entry_time: datetime | None = None
    exit_time: datetime | None = None
    shortfall: int = 0
    payment_channel_ref: str | None = None
    payment_qr_code: str | None = None  # data: URI of the UPI link as a QR image
    payment_due_by: datetime | None = None

    @property
    def amount(self) -> int:
        return self.fee.total_amount

    def as_dict(self) -> dict:
        out = {
            "status": self.status,
            "bookingId": self.booking_id,
            "userName": self.user_name,
            "entryTime": _iso(self.entry_time),
            "exitTime": _iso(self.exit_time),
            "amount": self.amount,
            "duration": self.fee.duration_minutes,
            "fee": self.fee.as_dict(),
            "paymentStatus": self.payment_status,
            "paymentMethod": self.payment_method,
            "method": self.payment_method,
            "walletBalance": self.wallet_balance,
        }
        if self.status == "pending_payment":
            out["shortfall"] = self.shortfall
            out["paymentChannelRef"] = self.payment_channel_ref
            out["paymentQRCode"] = self.payment_qr_code
            out["paymentDueBy"] = _iso(self.payment_due_by)
        return out


def _iso(dt: datetime | None) -> str | None:
    return as_utc(dt).isoformat() if dt else None


def upi_link(amount: int, note: str, ref: str | None = None) -> str:
    params = {
        "pa": settings.UPI_ID,
        "pn": settings.UPI_MERCHANT_NAME,
        "am": amount,
        "cu": "INR",
        "tn": note,
    }
    if ref:
        params["tr"] = ref
    return "upi://pay?" + urlencode(params, quote_via=quote, safe="@")


def record_transaction(db: Session, *, user_id: str | None, amount: int, type: str, status: str = "completed",
                       booking_id: str | None = None, description: str = "", metadata: dict | None = None) -> Transaction:
    txn = Transaction(
        id=str(uuid.uuid4()),
        user_id=user_id,
        booking_id=booking_id,
        amount=amount,
        type=type,
        status=status,
        description=description,
        metadata_json=json.dumps(metadata or {}),
    )
    db.add(txn)
    return txn


def _check_amount(amount: int) -> None:
    if amount is None or amount <= 0:
        raise ValidationError("Amount must be greater than zero")


# Exit settlement

def _pay_from_wallet(db: Session, booking: Booking, user: User, amount: int) -> None:
    user.wallet -= amount
    record_transaction(db, user_id=user.id, booking_id=booking.id, amount=amount, type="payment",
                       description=f"Parking fee for booking {booking.booking_id}",
                       metadata={"method": "wallet"})
    booking_state.complete(booking, "paid", "wallet")


def _settle_as_due(db: Session, booking: Booking, user: User) -> None:
    amount = booking.actual_amount
    user.due_amount += amount
    record_transaction(db, user_id=user.id, booking_id=booking.id, amount=amount, type="fine",
                       description=f"Unpaid parking fee for booking {booking.booking_id}")
    booking_state.complete(booking, "due", "none")


def _notify_completed(db: Session, user: User, booking: Booking, fee: FeeBreakdown) -> None:
    notify(db, user, "exit_completed", {
        "booking_id": booking.booking_id,
        "duration": fee.duration_minutes,
        "amount": fee.total_amount,
        "method": booking.payment_method,
        "wallet": user.wallet,
    })


def _notify_due(db: Session, user: User, booking: Booking) -> None:
    notify(db, user, "payment_due", {"booking_id": booking.booking_id, "amount": booking.actual_amount})


def _quoted_fee(booking: Booking) -> FeeBreakdown:
    return calculate_fee(as_utc(booking.entry_time), as_utc(booking.exit_requested_at))


def settle_exit(db: Session, booking: Booking, now: datetime | None = None) -> ExitResult:
    """Settle a kiosk exit. ``booking`` must already be locked by the caller.

    Pays from the wallet when it covers the fee; otherwise opens the kiosk
    payment window and returns a UPI link. A re-scan inside the window
    re-checks the wallet against the same quote; after the window the quote
    settles as a due.
    """
    now = now or utcnow()
    with atomic(db):
        if booking.status != ACTIVE:
            raise InvalidTransitionError(booking.status, "exit", ErrorCode.NOT_ACTIVE)
        user = lock_user(db, booking.user_id)

        window_open = booking_state.has_open_quote(booking) and booking_state.is_payment_window_open(booking, now)
        if booking_state.has_open_quote(booking) and not window_open:
            fee = _quoted_fee(booking)
            _settle_as_due(db, booking, user)
            lapsed = True
        else:
            lapsed = False
            fee = _quoted_fee(booking) if window_open else booking_state.quote_exit(booking, now)
            if user.wallet >= fee.total_amount:
                _pay_from_wallet(db, booking, user, fee.total_amount)
            elif not window_open:
                booking_state.open_payment_window(booking, now, settings.KIOSK_PAYMENT_WINDOW_SECONDS)

    timing = {
        "user_name": user.name or user.email,
        "entry_time": booking.entry_time,
        "exit_time": booking.exit_time or booking.exit_requested_at,
    }
    if lapsed:
        logger.info("booking %s exit payment window lapsed; %s added to dues", booking.booking_id, fee.total_amount)
        _notify_due(db, user, booking)
        return ExitResult("completed", booking.booking_id, fee, booking.payment_status,
                          booking.payment_method, user.wallet, **timing)

    if booking.status == booking_state.COMPLETED:
        logger.info("booking %s completed, %s paid from wallet", booking.booking_id, fee.total_amount)
        _notify_completed(db, user, booking, fee)
        return ExitResult("completed", booking.booking_id, fee, booking.payment_status,
                          booking.payment_method, user.wallet, **timing)

    logger.info("booking %s awaiting external payment of %s", booking.booking_id, fee.total_amount)
    link = upi_link(fee.total_amount, f"SP{booking.booking_id}")
    return ExitResult(
        "pending_payment",
        booking.booking_id,
        fee,
        booking.payment_status,
        booking.payment_method,
        user.wallet,
        shortfall=fee.total_amount - user.wallet,
        payment_channel_ref=link,
        payment_qr_code=qr_service.data_uri(link),
        payment_due_by=booking.payment_due_by,
        **timing,
    )


def complete_exit(db: Session, identifier: str, outcome: str) -> Booking:
    """Close an exit left pending by settle_exit with the external payment outcome.

    Only ``paid`` counts as paid; any other outcome turns the fee into a due.
    The booking is completed either way.
    """
    with atomic(db):
        booking = find_booking_by_identifier(db, identifier, lock=True)
        if not booking_state.has_open_quote(booking):
            raise InvalidTransitionError(booking.status, "complete exit", ErrorCode.NOT_ACTIVE)
        user = lock_user(db, booking.user_id)
        fee = _quoted_fee(booking)
        if outcome == "paid":
            record_transaction(db, user_id=user.id, booking_id=booking.id, amount=booking.actual_amount,
                               type="payment", description=f"UPI payment for booking {booking.booking_id}",
                               metadata={"method": "upi"})
            booking_state.complete(booking, "paid", "upi")
        else:
            _settle_as_due(db, booking, user)

    logger.info("booking %s exit completed as %s", booking.booking_id, booking.payment_status)
    if booking.payment_status == "paid":
        _notify_completed(db, user, booking, fee)
    else:
        _notify_due(db, user, booking)
    return booking


def settle_lapsed_exit_payments(db: Session, now: datetime | None = None) -> int:
    """Settle as due every exit quote whose kiosk payment window has closed."""
    now = now or utcnow()
    settled: list[tuple[User, Booking]] = []
    with atomic(db):
        lapsed = db.execute(
            select(Booking)
            .where(Booking.status == ACTIVE, Booking.payment_due_by.isnot(None), Booking.payment_due_by <= now)
            .with_for_update(skip_locked=True)
        ).scalars().all()
        for booking in lapsed:
            user = lock_user(db, booking.user_id)
            _settle_as_due(db, booking, user)
            settled.append((user, booking))

    for user, booking in settled:
        _notify_due(db, user, booking)
    if settled:
        logger.info("settled %d lapsed exit payment(s) as dues", len(settled))
    return len(settled)


# Dues and wallet

def _collect_dues(db: Session, user: User, amount: int, waive_off: bool, source: str, actor_id: str | None) -> None:
    if amount > user.due_amount:
        raise ValidationError("Amount exceeds due amount")
    user.due_amount -= amount
    record_transaction(db, user_id=user.id, amount=amount, type="due_clearance",
                       description="Dues waived" if waive_off else "Dues cleared",
                       metadata={"waiveOff": waive_off, "source": source, "clearedBy": actor_id})
    if not waive_off:
        record_transaction(db, user_id=None, amount=amount, type="global_transfer",
                           description=f"Dues collected from {user.email}",
                           metadata={"fromUser": user.id, "source": source})


def clear_dues(db: Session, user_id: str, amount: int, waive_off: bool, actor: User) -> User:
    _check_amount(amount)
    with atomic(db):
        user = lock_user(db, user_id)
        _collect_dues(db, user, amount, waive_off, "admin", actor.id)
        log_audit(db, actor.id, "dues.waive" if waive_off else "dues.clear", "user", user.id,
                  {"amount": amount, "remainingDue": user.due_amount})
    logger.info("dues of %s for user %s %s by %s", amount, user.id, "waived" if waive_off else "cleared", actor.id)
    return user


def pay_dues_from_wallet(db: Session, user: User, amount: int) -> User:
    _check_amount(amount)
    with atomic(db):
        locked = lock_user(db, user.id)
        if locked.wallet < amount:
            raise InsufficientFundsError(locked.wallet, amount)
        _collect_dues(db, locked, amount, False, "wallet", locked.id)
        locked.wallet -= amount
    return locked


def credit_wallet(db: Session, user_id: str, amount: int, actor: User) -> User:
    _check_amount(amount)
    with atomic(db):
        user = lock_user(db, user_id)
        user.wallet += amount
        record_transaction(db, user_id=user.id, amount=amount, type="wallet_credit",
                           description="Wallet credited by admin", metadata={"adminId": actor.id})
        log_audit(db, actor.id, "wallet.credit", "user", user.id, {"amount": amount, "wallet": user.wallet})
    return user


def debit_wallet(db: Session, user_id: str, amount: int, actor: User) -> User:
    _check_amount(amount)
    with atomic(db):
        user = lock_user(db, user_id)
        if user.wallet < amount:
            raise InsufficientFundsError(user.wallet, amount)
        user.wallet -= amount
        record_transaction(db, user_id=user.id, amount=amount, type="wallet_debit",
                           description="Wallet debited by admin", metadata={"adminId": actor.id})
        record_transaction(db, user_id=None, amount=amount, type="global_transfer",
                           description=f"Wallet debit transferred from {user.email}",
                           metadata={"fromUser": user.id, "adminId": actor.id})
        log_audit(db, actor.id, "wallet.debit", "user", user.id, {"amount": amount, "wallet": user.wallet})
    return user


def start_recharge(db: Session, user: User, amount: int) -> tuple[Transaction, str]:
    """Open a pending wallet recharge and return it with the UPI link to pay it."""
    _check_amount(amount)
    with atomic(db):
        txn = record_transaction(db, user_id=user.id, amount=amount, type="wallet_credit", status="pending",
                                 description="UPI payment for wallet recharge", metadata={"channel": "upi"})
    return txn, upi_link(amount, "Wallet Recharge", ref=txn.id)


def confirm_recharge(db: Session, transaction_id: str, outcome: str, user: User | None = None) -> Transaction:
    with atomic(db):
        txn = db.execute(
            select(Transaction).where(Transaction.id == transaction_id).with_for_update()
        ).scalar_one_or_none()
        if not txn or txn.type != "wallet_credit" or (user is not None and txn.user_id != user.id):
            raise NotFoundError("Transaction")
        if txn.status != "pending":
            raise InvalidTransitionError(txn.status, "confirm recharge")
        if outcome == "success":
            owner = lock_user(db, txn.user_id)
            owner.wallet += txn.amount
            txn.status = "completed"
        else:
            txn.status = "failed"
    logger.info("recharge %s %s", txn.id, txn.status)
    return txn


# Reporting

def operator_balance(db: Session) -> int:
    total = db.execute(
        select(func.coalesce(func.sum(Transaction.amount), 0))
        .where(Transaction.status == "completed", Transaction.type.in_(OPERATOR_INCOME_TYPES))
    ).scalar_one()
    return int(total)


def list_transactions(db: Session, user_id: str | None = None, type: str | None = None,
                      limit: int = 50, offset: int = 0) -> list[Transaction]:
    stmt = select(Transaction)
    if user_id:
        stmt = stmt.where(Transaction.user_id == user_id)
    if type:
        stmt = stmt.where(Transaction.type == type)
    stmt = stmt.order_by(Transaction.created_at.desc()).offset(max(offset, 0)).limit(min(max(limit, 1), 200))
    return list(db.execute(stmt).scalars().all())


def list_defaulters(db: Session) -> list[User]:
    return list(db.execute(
        select(User).where(User.due_amount > 0).order_by(User.due_amount.desc())
    ).scalars().all())
