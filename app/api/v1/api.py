from fastapi import APIRouter
from app.api.v1.routes.auth import router as auth_router
from app.api.v1.routes.bookings import router as bookings_router
from app.api.v1.routes.floors import router as floors_router
from app.api.v1.routes.wallet import router as wallet_router
from app.api.v1.routes.kiosk import router as kiosk_router
from app.api.v1.routes.admin import router as admin_router

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(auth_router)
api_router.include_router(bookings_router)
api_router.include_router(floors_router)
api_router.include_router(wallet_router)
api_router.include_router(kiosk_router)
api_router.include_router(admin_router)
