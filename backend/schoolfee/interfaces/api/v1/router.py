from fastapi import APIRouter

from schoolfee.interfaces.api.v1.routes.admin import router as admin_router
from schoolfee.interfaces.api.v1.routes.auth import router as auth_router
from schoolfee.interfaces.api.v1.routes.billing import router as billing_router
from schoolfee.interfaces.api.v1.routes.fee_structures import router as fee_structures_router
from schoolfee.interfaces.api.v1.routes.notifications import router as notifications_router
from schoolfee.interfaces.api.v1.routes.payments import router as payments_router
from schoolfee.interfaces.api.v1.routes.ping import router as ping_router
from schoolfee.interfaces.api.v1.routes.schools import router as schools_router
from schoolfee.interfaces.api.v1.routes.students import router as students_router

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(admin_router)
api_router.include_router(auth_router)
api_router.include_router(billing_router)
api_router.include_router(fee_structures_router)
api_router.include_router(notifications_router)
api_router.include_router(payments_router)
api_router.include_router(ping_router)
api_router.include_router(schools_router)
api_router.include_router(students_router)
