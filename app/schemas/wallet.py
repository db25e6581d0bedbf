import json

from pydantic import BaseModel, Field

from app.models.transaction import Transaction
from app.services.booking_state import as_utc


class AmountRequest(BaseModel):
    amount: int = Field(gt=0)


class ClearDueRequest(BaseModel):
    amount: int = Field(gt=0)
    waiveOff: bool = False


class RechargeConfirmRequest(BaseModel):
    outcome: str = "success"  # success | failed


class SpecialPassRequest(BaseModel):
    enabled: bool = True


class WalletOut(BaseModel):
    wallet: int
    dueAmount: int


class TransactionOut(BaseModel):
    id: str
    userId: str | None = None
    bookingId: str | None = None
    amount: int
    type: str
    status: str
    description: str = ""
    metadata: dict = {}
    createdAt: str | None = None

    @classmethod
    def from_model(cls, t: Transaction) -> "TransactionOut":
        return cls(
            id=t.id,
            userId=t.user_id,
            bookingId=t.booking_id,
            amount=t.amount,
            type=t.type,
            status=t.status,
            description=t.description or "",
            metadata=json.loads(t.metadata_json or "{}"),
            createdAt=as_utc(t.created_at).isoformat() if t.created_at else None,
        )


class RechargeOut(BaseModel):
    transactionId: str
    amount: int
    status: str
    upiQrCode: str
