from app.models.lead import Lead
from app.models.journey import Journey, JourneyStep, JourneyStatus, IncomeStatus, STEP_ORDER
from app.models.otp import OTPCode
from app.models.event import JourneyEvent
from app.models.device import EligibleDevice

__all__ = [
    "Lead", "Journey", "JourneyStep", "JourneyStatus", "IncomeStatus", "STEP_ORDER",
    "OTPCode", "JourneyEvent", "EligibleDevice",
]
