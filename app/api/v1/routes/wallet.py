from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.api.deps import get_current_user
from app.models.user import User
from app.schemas.wallet import AmountRequest, RechargeConfirmRequest, RechargeOut, TransactionOut, WalletOut
from app.services import ledger_service, qr_service

router = APIRouter(tags=["wallet"])


@router.get("/wallet", response_model=WalletOut)
def get_wallet(me: User = Depends(get_current_user)):
    return WalletOut(wallet=me.wallet, dueAmount=me.due_amount)


@router.get("/wallet/transactions", response_model=list[TransactionOut])
def my_transactions(limit: int = 50, offset: int = 0,
                    db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    return [TransactionOut.from_model(t) for t in ledger_service.list_transactions(db, user_id=me.id, limit=limit, offset=offset)]


@router.post("/wallet/recharge", response_model=RechargeOut, status_code=201)
def recharge(body: AmountRequest, db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    txn, link = ledger_service.start_recharge(db, me, body.amount)
    return RechargeOut(transactionId=txn.id, amount=txn.amount, status=txn.status, upiQrCode=link)


@router.post("/wallet/recharge/{transaction_id}/confirm", response_model=TransactionOut)
def confirm_recharge(transaction_id: str, body: RechargeConfirmRequest,
                     db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    return TransactionOut.from_model(ledger_service.confirm_recharge(db, transaction_id, body.outcome, user=me))


@router.post("/wallet/pay-dues", response_model=WalletOut)
def pay_dues(body: AmountRequest, db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    user = ledger_service.pay_dues_from_wallet(db, me, body.amount)
    return WalletOut(wallet=user.wallet, dueAmount=user.due_amount)


@router.get("/wallet/qr")
def user_qr(me: User = Depends(get_current_user)):
    """Personal QR; admitted at the kiosk only for special-pass holders."""
    return Response(content=qr_service.user_qr_svg(me), media_type="image/svg+xml")
