"""
OTP Routes — Send and verify the phone-possession code for a journey.
"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.journey import Journey
from app.routes.deps import get_journey
from app.schemas.schemas import OTPSendResponse, OTPVerifyRequest, OTPVerifyResponse
from app.services.otp_service import OTPService
from app.utils.rate_limiter import OTP_SEND_LIMIT, OTP_VERIFY_LIMIT, limiter

router = APIRouter(prefix="/api/otp", tags=["OTP"])


@router.post("/send", response_model=OTPSendResponse)
@limiter.limit(OTP_SEND_LIMIT)
def send_otp(
    request: Request,
    journey: Journey = Depends(get_journey),
    db: Session = Depends(get_db),
):
    """Send a code to the phone on record, unless a live one was already sent."""
    result = OTPService.send(db, journey)
    return OTPSendResponse(**result)


@router.post("/verify", response_model=OTPVerifyResponse)
@limiter.limit(OTP_VERIFY_LIMIT)
def verify_otp(
    payload: OTPVerifyRequest,
    request: Request,
    journey: Journey = Depends(get_journey),
    db: Session = Depends(get_db),
):
    """Verify a code; advances otp -> device on first success."""
    result = OTPService.verify(db, journey, payload.code)
    return OTPVerifyResponse(**result)
