from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.api.deps import require_roles
from app.models.floor import Floor
from app.models.user import User
from app.schemas.booking import BookingOut, BookingPage
from app.schemas.floor import FloorCreate, FloorOut, FloorUpdate
from app.schemas.user import RoleUpdate, UserCreate, UserOut, UserUpdate
from app.schemas.wallet import AmountRequest, ClearDueRequest, SpecialPassRequest, TransactionOut
from app.services import booking_service, ledger_service, user_service

router = APIRouter(tags=["admin"])

admin_only = require_roles("admin")
staff_or_admin = require_roles("admin", "staff")


def _page(db: Session, items, total: int, page: int) -> BookingPage:
    names = {f.id: f.name for f in db.query(Floor).all()}
    return BookingPage(total=total, page=page, items=[BookingOut.from_model(b, names.get(b.floor_id)) for b in items])


@router.get("/admin/bookings", response_model=BookingPage)
def list_bookings(status: str | None = None, page: int = 1, limit: int = 20,
                  db: Session = Depends(get_db), me: User = Depends(staff_or_admin)):
    items, total = booking_service.list_bookings(db, status, page, limit)
    return _page(db, items, total, page)


@router.get("/admin/defaulters")
def defaulters(db: Session = Depends(get_db), me: User = Depends(staff_or_admin)):
    return [UserOut.from_model(u) for u in ledger_service.list_defaulters(db)]


@router.post("/admin/users/{user_id}/clear-due")
def clear_due(user_id: str, body: ClearDueRequest,
              db: Session = Depends(get_db), me: User = Depends(admin_only)):
    return UserOut.from_model(ledger_service.clear_dues(db, user_id, body.amount, body.waiveOff, me))


@router.post("/admin/users/{user_id}/wallet/credit")
def credit_wallet(user_id: str, body: AmountRequest,
                  db: Session = Depends(get_db), me: User = Depends(admin_only)):
    return UserOut.from_model(ledger_service.credit_wallet(db, user_id, body.amount, me))


@router.post("/admin/users/{user_id}/wallet/debit")
def debit_wallet(user_id: str, body: AmountRequest,
                 db: Session = Depends(get_db), me: User = Depends(admin_only)):
    return UserOut.from_model(ledger_service.debit_wallet(db, user_id, body.amount, me))


@router.post("/admin/users/{user_id}/special-pass")
def special_pass(user_id: str, body: SpecialPassRequest,
                 db: Session = Depends(get_db), me: User = Depends(admin_only)):
    return UserOut.from_model(user_service.set_special_pass(db, me, user_id, body.enabled))


@router.get("/admin/operator-balance")
def operator_balance(db: Session = Depends(get_db), me: User = Depends(admin_only)):
    return {"balance": ledger_service.operator_balance(db)}


@router.get("/admin/transactions", response_model=list[TransactionOut])
def transactions(userId: str | None = None, type: str | None = None, limit: int = 50, offset: int = 0,
                 db: Session = Depends(get_db), me: User = Depends(staff_or_admin)):
    txns = ledger_service.list_transactions(db, user_id=userId, type=type, limit=limit, offset=offset)
    return [TransactionOut.from_model(t) for t in txns]


@router.post("/admin/floors", response_model=FloorOut, status_code=201)
def create_floor(body: FloorCreate, db: Session = Depends(get_db), me: User = Depends(admin_only)):
    floor = booking_service.create_floor(db, me, body.name, body.level, body.normalSpots, body.disabilitySpots)
    return booking_service.floor_availability(db, floor)


@router.patch("/admin/floors/{floor_id}", response_model=FloorOut)
def update_floor(floor_id: str, body: FloorUpdate, db: Session = Depends(get_db), me: User = Depends(admin_only)):
    floor = booking_service.update_floor(db, me, floor_id, body.to_changes())
    return booking_service.floor_availability(db, floor)


@router.get("/admin/archived-bookings", response_model=BookingPage)
def archived_bookings(page: int = 1, limit: int = 20,
                      db: Session = Depends(get_db), me: User = Depends(admin_only)):
    items, total = booking_service.list_archived_bookings(db, page, limit)
    return _page(db, items, total, page)


@router.post("/admin/archived-bookings/purge")
def purge_archived(olderThanDays: int = 365, db: Session = Depends(get_db), me: User = Depends(admin_only)):
    deleted = booking_service.purge_archived_bookings(db, olderThanDays, actor=me)
    return {"deleted": deleted, "olderThanDays": olderThanDays}


@router.get("/admin/users", response_model=list[UserOut])
def list_users(role: str | None = None, db: Session = Depends(get_db), me: User = Depends(admin_only)):
    return [UserOut.from_model(u) for u in user_service.list_users(db, role=role)]


@router.post("/admin/users", response_model=UserOut, status_code=201)
def create_user(body: UserCreate, db: Session = Depends(get_db), me: User = Depends(admin_only)):
    user = user_service.create_user(db, me, body.email, body.password, body.name, body.phone, body.role)
    return UserOut.from_model(user)


@router.get("/admin/users/{user_id}", response_model=UserOut)
def get_user(user_id: str, db: Session = Depends(get_db), me: User = Depends(admin_only)):
    return UserOut.from_model(user_service.get_user(db, user_id))


@router.put("/admin/users/{user_id}", response_model=UserOut)
def update_user(user_id: str, body: UserUpdate, db: Session = Depends(get_db), me: User = Depends(admin_only)):
    return UserOut.from_model(user_service.update_user(db, me, user_id, body.to_changes()))


@router.put("/admin/users/{user_id}/role", response_model=UserOut)
def set_role(user_id: str, body: RoleUpdate, db: Session = Depends(get_db), me: User = Depends(admin_only)):
    return UserOut.from_model(user_service.set_role(db, me, user_id, body.role))


@router.get("/admin/special-pass-users", response_model=list[UserOut])
def special_pass_users(db: Session = Depends(get_db), me: User = Depends(admin_only)):
    return [UserOut.from_model(u) for u in user_service.list_users(db, special_pass=True)]
