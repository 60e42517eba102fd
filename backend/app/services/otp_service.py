"""
OTP Service — Issue and verify one-time codes for a journey's phone.

Invariants:
  - at most one unused code per journey (partial unique index on otp_codes);
  - at most OTP_MAX_SENDS_PER_HOUR codes issued per journey per rolling hour;
  - a code stops accepting tries after OTP_MAX_ATTEMPTS failures;
  - verification marks the code used with a conditional UPDATE, so two
    concurrent submissions of the same correct code produce one success.
"""
from datetime import timedelta
from typing import Any, Dict

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import get_settings
from app.errors import Expired, NotFound, RateLimited, ValidationFailed
from app.models.journey import Journey, JourneyStatus, JourneyStep
from app.models.otp import OTPCode
from app.services.event_service import EventService
from app.services.notification_service import NotificationService
from app.utils import hashing
from app.utils.clock import utcnow
from app.utils.logger import get_logger
from app.utils.validators import mask_phone

logger = get_logger("otp_service")


class OTPService:

    @staticmethod
    def send(db: Session, journey: Journey) -> Dict[str, Any]:
        """Issue a code to the lead's phone on record, unless a live one exists."""
        settings = get_settings()
        now = utcnow()

        live = (
            db.query(OTPCode)
            .filter(OTPCode.journey_id == journey.id, OTPCode.used.is_(False))
            .first()
        )
        if live and live.expires_at > now and live.attempts < settings.OTP_MAX_ATTEMPTS:
            return {
                "already_sent": True,
                "message": "A code was already sent and is still valid",
                "channel": settings.OTP_CHANNEL,
                "expires_in_seconds": int((live.expires_at - now).total_seconds()),
            }

        # Retire lapsed or exhausted codes so the new one can take the slot
        if live:
            (
                db.query(OTPCode)
                .filter(OTPCode.id == live.id, OTPCode.used.is_(False))
                .update({"used": True}, synchronize_session=False)
            )
            db.commit()

        window_start = now - timedelta(hours=1)
        sent_last_hour = (
            db.query(func.count(OTPCode.id))
            .filter(OTPCode.journey_id == journey.id, OTPCode.created_at > window_start)
            .scalar()
        )
        if sent_last_hour >= settings.OTP_MAX_SENDS_PER_HOUR:
            oldest = (
                db.query(func.min(OTPCode.created_at))
                .filter(OTPCode.journey_id == journey.id, OTPCode.created_at > window_start)
                .scalar()
            )
            retry_after = max(1, int((oldest + timedelta(hours=1) - now).total_seconds()))
            logger.warning("OTP send limit reached for journey %s", journey.id)
            raise RateLimited(
                "Too many codes requested, try again later",
                reason="otp_send_limit",
                retry_after=retry_after,
            )

        code = hashing.generate_otp_code()
        expires_at = now + timedelta(minutes=settings.OTP_CODE_TTL_MINUTES)
        db.add(OTPCode(
            journey_id=journey.id,
            code_hash=hashing.hash_otp_code(code),
            expires_at=expires_at,
            created_at=now,
        ))
        try:
            db.commit()
        except IntegrityError:
            # Lost the race against a concurrent send
            db.rollback()
            return {
                "already_sent": True,
                "message": "A code was already sent and is still valid",
                "channel": settings.OTP_CHANNEL,
                "expires_in_seconds": settings.OTP_CODE_TTL_MINUTES * 60,
            }

        phone = journey.lead.phone
        delivery = NotificationService.send_otp(phone, code)
        if not delivery.get("success"):
            logger.warning("OTP delivery failed for journey %s: %s", journey.id, delivery.get("error"))
            if settings.DEBUG:
                logger.debug("Undelivered OTP for journey %s: %s", journey.id, code)

        EventService.log(db, journey.id, "otp_sent", journey.current_step, metadata={
            "channel": delivery.get("channel"),
            "success": bool(delivery.get("success")),
            "error": delivery.get("error"),
        })

        return {
            "already_sent": False,
            "message": "Code sent",
            "channel": settings.OTP_CHANNEL,
            "destination": mask_phone(phone),
            "expires_in_seconds": settings.OTP_CODE_TTL_MINUTES * 60,
        }

    @staticmethod
    def verify(db: Session, journey: Journey, code: str) -> Dict[str, Any]:
        """Check a submitted code against the journey's latest code."""
        settings = get_settings()
        now = utcnow()
        code = (code or "").strip()

        latest = (
            db.query(OTPCode)
            .filter(OTPCode.journey_id == journey.id)
            .order_by(OTPCode.id.desc())
            .first()
        )
        if latest is None:
            raise NotFound("No code was requested for this journey", reason="not_found")

        if latest.used:
            if latest.used_at is not None and hashing.otp_code_matches(code, latest.code_hash):
                return OTPService._already_verified(db, journey)
            raise NotFound("No active code, request a new one", reason="not_found")

        if latest.attempts >= settings.OTP_MAX_ATTEMPTS:
            raise RateLimited("Too many attempts, request a new code", reason="too_many_attempts")

        if latest.expires_at <= now:
            raise Expired("Code expired, request a new one", reason="expired")

        if not hashing.otp_code_matches(code, latest.code_hash):
            (
                db.query(OTPCode)
                .filter(OTPCode.id == latest.id, OTPCode.used.is_(False))
                .update({"attempts": OTPCode.attempts + 1}, synchronize_session=False)
            )
            db.commit()
            db.refresh(latest)
            remaining = max(0, settings.OTP_MAX_ATTEMPTS - latest.attempts)
            EventService.log(db, journey.id, "otp_failed", journey.current_step,
                             metadata={"attempts": latest.attempts})
            raise ValidationFailed(
                "Invalid code",
                reason="invalid_code",
                details={"attempts_remaining": remaining},
            )

        # Claim the code; only one concurrent request can flip used
        claimed = (
            db.query(OTPCode)
            .filter(
                OTPCode.id == latest.id,
                OTPCode.used.is_(False),
                OTPCode.attempts < settings.OTP_MAX_ATTEMPTS,
            )
            .update({"used": True, "used_at": now}, synchronize_session=False)
        )
        if claimed == 0:
            db.rollback()
            db.refresh(latest)
            if latest.used:
                return OTPService._already_verified(db, journey)
            raise RateLimited("Too many attempts, request a new code", reason="too_many_attempts")

        # Stamp the proof in the same transaction; advance only from the otp step
        values: Dict[str, Any] = {"otp_verified_at": now, "updated_at": now}
        advanced = (
            db.query(Journey)
            .filter(
                Journey.id == journey.id,
                Journey.current_step == JourneyStep.OTP.value,
                Journey.status == JourneyStatus.IN_PROGRESS.value,
            )
            .update({**values, "current_step": JourneyStep.DEVICE.value}, synchronize_session=False)
        )
        if not advanced:
            (
                db.query(Journey)
                .filter(Journey.id == journey.id)
                .update(values, synchronize_session=False)
            )
        db.commit()
        db.refresh(journey)

        logger.info("OTP verified for journey %s", journey.id)
        EventService.log(db, journey.id, "otp_verified", JourneyStep.OTP.value)
        if advanced:
            EventService.log(db, journey.id, "step_completed", JourneyStep.OTP.value)

        return {
            "already_verified": False,
            "message": "Phone verified",
            "current_step": journey.step,
        }

    @staticmethod
    def _already_verified(db: Session, journey: Journey) -> Dict[str, Any]:
        db.refresh(journey)
        return {
            "already_verified": True,
            "message": "Phone already verified",
            "current_step": journey.step,
        }
