from app.routes.lead import router as lead_router
from app.routes.journey import router as journey_router
from app.routes.otp import router as otp_router
from app.routes.device import router as device_router
from app.routes.income import router as income_router
from app.routes.credit import router as credit_router
from app.routes.admin import router as admin_router

__all__ = [
    "lead_router", "journey_router", "otp_router", "device_router",
    "income_router", "credit_router", "admin_router",
]
