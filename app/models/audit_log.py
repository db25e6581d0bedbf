from sqlalchemy import String, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from app.db.session import Base

class AuditLog(Base):
    """Admin actions that move money or change capacity/retention."""
    __tablename__ = "audit_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    actor_user_id: Mapped[str] = mapped_column(String(36), index=True)
    action: Mapped[str] = mapped_column(String(80), index=True)  # e.g. dues.waive, wallet.debit, floor.update, user.special_pass, bookings.purge
    entity_type: Mapped[str] = mapped_column(String(40), index=True)  # user, floor, booking
    entity_id: Mapped[str] = mapped_column(String(36), index=True)  # "*" for bulk actions
    details_json: Mapped[str] = mapped_column(Text, default="{}")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), index=True)
