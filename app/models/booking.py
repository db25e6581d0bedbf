from sqlalchemy import String, Integer, DateTime, Boolean, Index, text
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from app.db.session import Base

OPEN_STATUS_SQL = "status IN ('pending', 'active')"

class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        # At most one pending/active booking per user
        Index(
            "uq_bookings_one_open_per_user",
            "user_id",
            unique=True,
            postgresql_where=text(OPEN_STATUS_SQL),
            sqlite_where=text(OPEN_STATUS_SQL),
        ),
        Index("ix_bookings_floor_status", "floor_id", "status"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    booking_id: Mapped[str] = mapped_column(String(20), unique=True, index=True)  # embedded in QR payloads

    user_id: Mapped[str] = mapped_column(String(36), index=True)
    floor_id: Mapped[str] = mapped_column(String(36), index=True)
    spot_type: Mapped[str] = mapped_column(String(12), default="normal")  # normal, disability
    spot_number: Mapped[str] = mapped_column(String(40), default="Any Available Spot")

    status: Mapped[str] = mapped_column(String(12), default="pending", index=True)  # pending, active, completed, cancelled, expired

    entry_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)
    exit_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)
    expected_exit_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)

    actual_amount: Mapped[int] = mapped_column(Integer, default=0)
    payment_status: Mapped[str] = mapped_column(String(12), default="pending")  # pending, paid, due
    payment_method: Mapped[str] = mapped_column(String(12), default="none")     # wallet, upi, free, none

    # Kiosk exit quote awaiting an external payment outcome
    exit_requested_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)
    payment_due_by: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)

    # Exit reminder, picked up by the dispatch_exit_reminders job
    reminder_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    reminder_sent_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    archived: Mapped[bool] = mapped_column(Boolean, default=False)
