from sqlalchemy import String, Integer, DateTime, Boolean, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from app.db.session import Base

class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("wallet >= 0", name="ck_users_wallet_non_negative"),
        CheckConstraint("due_amount >= 0", name="ck_users_due_non_negative"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    email: Mapped[str] = mapped_column(String(320), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(200), default="")
    phone: Mapped[str] = mapped_column(String(30), default="")
    role: Mapped[str] = mapped_column(String(20), default="user", index=True)  # user, staff, admin
    password_hash: Mapped[str] = mapped_column(String(255))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    is_special_pass: Mapped[bool] = mapped_column(Boolean, default=False)

    # Balances in whole rupees; only mutated under a row lock (see ledger_service)
    wallet: Mapped[int] = mapped_column(Integer, default=0)
    due_amount: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
