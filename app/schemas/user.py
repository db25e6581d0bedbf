from typing import Optional

from pydantic import BaseModel, Field

from app.models.user import User
from app.services.booking_state import as_utc


class UserCreate(BaseModel):
    email: str
    password: str = Field(min_length=8)
    name: str = ""
    phone: str = ""
    role: str = "user"


class UserUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    isActive: Optional[bool] = None

    def to_changes(self) -> dict:
        return {"name": self.name, "email": self.email, "phone": self.phone, "is_active": self.isActive}


class RoleUpdate(BaseModel):
    role: str


class UserOut(BaseModel):
    id: str
    email: str
    name: str = ""
    phone: str = ""
    role: str
    isActive: bool
    isSpecialPass: bool
    wallet: int
    dueAmount: int
    createdAt: str | None = None

    @classmethod
    def from_model(cls, u: User) -> "UserOut":
        return cls(
            id=u.id,
            email=u.email,
            name=u.name or "",
            phone=u.phone or "",
            role=u.role,
            isActive=u.is_active,
            isSpecialPass=u.is_special_pass,
            wallet=u.wallet,
            dueAmount=u.due_amount,
            createdAt=as_utc(u.created_at).isoformat() if u.created_at else None,
        )
