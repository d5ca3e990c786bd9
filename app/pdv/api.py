from fastapi import APIRouter

from app.pdv.routers.auth import router as auth_router
from app.pdv.routers.cashier import router as cashier_router
from app.pdv.routers.health import router as health_router
from app.pdv.routers.sales import router as sales_router

api_router = APIRouter()
api_router.include_router(health_router)
api_router.include_router(auth_router, prefix="/pdv/auth", tags=["auth"])
api_router.include_router(cashier_router, tags=["cashier"])
api_router.include_router(sales_router, tags=["sales"])
