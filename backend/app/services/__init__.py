from app.services.event_service import EventService
from app.services.lead_service import LeadService
from app.services.journey_service import JourneyService
from app.services.otp_service import OTPService
from app.services.device_service import DeviceService
from app.services.income_service import IncomeService
from app.services.credit_service import CreditService
from app.services.notification_service import NotificationService
from app.services.address_service import AddressService

__all__ = [
    "EventService", "LeadService", "JourneyService", "OTPService", "DeviceService",
    "IncomeService", "CreditService", "NotificationService", "AddressService",
]
