from fastapi import APIRouter

from app.modules.admissions.router import router as admissions_router
from app.modules.auth.router import router as auth_router
from app.modules.fees.router import router as fees_router
from app.modules.hostel.router import router as hostel_router
from app.modules.provisioning.router import router as provisioning_router

api_router = APIRouter()

api_router.include_router(auth_router, prefix="/auth", tags=["Authentication"])

api_router.include_router(admissions_router, prefix="/admissions", tags=["Admissions"])

api_router.include_router(fees_router, prefix="/fees", tags=["Fee Ledger"])

api_router.include_router(provisioning_router, prefix="/provisioning", tags=["Provisioning"])

api_router.include_router(hostel_router, prefix="/hostel", tags=["Hostel"])
