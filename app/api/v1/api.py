from fastapi import APIRouter

# Import routers from modules
from app.api.v1.endpoints import (
    members,
    trainers,
    memberships,
    discount_codes,
    attendance,
    inventory,
    retention,
    marketing
)

# Import modular packages directly
from app.api.v1.endpoints.schedule import router as schedule_router

api_router = APIRouter()

# Members module
api_router.include_router(members.router, prefix="/members", tags=["members"])

# Trainers module
api_router.include_router(trainers.router, prefix="/trainers", tags=["trainers"])

# Schedule module (classes, sessions, bookings, waitlist, credits)
api_router.include_router(schedule_router, prefix="/schedule")

# Memberships module
api_router.include_router(memberships.router, prefix="/memberships", tags=["memberships"])

# Discount codes
api_router.include_router(discount_codes.router, prefix="/discount-codes", tags=["discount-codes"])

# Attendance module
api_router.include_router(attendance.router, prefix="/attendance", tags=["attendance"])

# Inventory and sales
api_router.include_router(inventory.router, prefix="/inventory", tags=["inventory"])

# Retention module
api_router.include_router(retention.router, prefix="/retention", tags=["retention"])

# Marketing campaigns
api_router.include_router(marketing.router, prefix="/marketing", tags=["marketing"])
