"""
Journey Service — Step sequencing, lifecycle and resume for credit journeys.

Every step change is a conditional UPDATE on (id, current_step, status); the
affected-row count decides which of two concurrent requests wins.
"""
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.config import get_settings
from app.errors import Expired, NotFound, Rejected, StepMismatch, ValidationFailed
from app.models.journey import Journey, JourneyStatus, JourneyStep, STEP_ORDER
from app.schemas.schemas import JourneySnapshot
from app.services.event_service import EventService
from app.services.snapshot import reconcile
from app.utils.clock import utcnow
from app.utils.hashing import generate_journey_token
from app.utils.logger import get_logger

logger = get_logger("journey_service")

# Resume failure reasons keyed by terminal status
_STATUS_REASONS = {
    JourneyStatus.COMPLETED.value: "journey_completed",
    JourneyStatus.ABANDONED.value: "journey_abandoned",
    JourneyStatus.REJECTED.value: "journey_rejected",
    JourneyStatus.EXPIRED.value: "journey_expired",
}


def progress_percent(step: JourneyStep) -> int:
    return round(step.position / (len(STEP_ORDER) - 1) * 100)


def _normalize_model(model: Optional[str]) -> Optional[str]:
    model = (model or "").strip()
    if not model or model.lower() == "unknown":
        return None
    return model[:128]


class JourneyService:

    # ─── Lifecycle ───

    @staticmethod
    def start_or_reuse(
        db: Session,
        lead_id: int,
        device_model: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Tuple[Journey, bool]:
        """Return the lead's live journey for this device, creating one if none exists.

        Returns:
            (journey, reused)
        """
        now = utcnow()
        model = _normalize_model(device_model)

        query = db.query(Journey).filter(
            Journey.lead_id == lead_id,
            Journey.status == JourneyStatus.IN_PROGRESS.value,
            Journey.expires_at > now,
        )
        if model:
            query = query.filter(or_(Journey.device_model == model, Journey.device_model.is_(None)))
        existing = query.order_by(Journey.created_at.desc()).first()
        if existing:
            EventService.log(db, existing.id, "session_resumed", existing.current_step)
            return existing, True

        journey = Journey(
            id=str(uuid.uuid4()),
            token=generate_journey_token(),
            lead_id=lead_id,
            status=JourneyStatus.IN_PROGRESS.value,
            current_step=JourneyStep.OTP.value,
            device_model=model,
            ip_address=ip_address,
            user_agent=(user_agent or "")[:256] or None,
            expires_at=now + timedelta(hours=get_settings().JOURNEY_TTL_HOURS),
        )
        db.add(journey)
        db.commit()
        db.refresh(journey)

        logger.info("Journey started: %s (lead=%s)", journey.id, lead_id)
        EventService.log(db, journey.id, "session_started", JourneyStep.OTP.value,
                         metadata={"model": model} if model else None)
        return journey, False

    @staticmethod
    def get_by_token(db: Session, token: Optional[str]) -> Optional[Journey]:
        if not token:
            return None
        return db.query(Journey).filter(Journey.token == token).first()

    @staticmethod
    def get_active_by_token(db: Session, token: Optional[str]) -> Optional[Journey]:
        """In-progress, unexpired journey for a token, else None. Never raises."""
        journey = JourneyService.get_by_token(db, token)
        if journey is None or journey.status != JourneyStatus.IN_PROGRESS.value or journey.expires_at <= utcnow():
            return None
        return journey

    @staticmethod
    def load(db: Session, token: Optional[str], allow_completed: bool = False) -> Journey:
        """Resolve a token to an active journey or raise the matching error."""
        if not token:
            raise ValidationFailed("Journey token is required", reason="no_token")

        journey = JourneyService.get_by_token(db, token)
        if journey is None:
            raise NotFound("Journey not found", reason="not_found")

        if journey.status == JourneyStatus.IN_PROGRESS.value and journey.expires_at <= utcnow():
            JourneyService.set_status(db, journey, JourneyStatus.EXPIRED)

        JourneyService.require_active(journey, allow_completed)
        return journey

    @staticmethod
    def require_active(journey: Journey, allow_completed: bool = False) -> None:
        """Raise the error matching a journey that is no longer in progress."""
        status = journey.status
        if status == JourneyStatus.IN_PROGRESS.value:
            return
        if status == JourneyStatus.COMPLETED.value:
            if allow_completed:
                return
            raise StepMismatch(journey.current_step, "Journey already completed", reason="journey_completed")
        if status == JourneyStatus.REJECTED.value:
            raise Rejected(reason="journey_rejected")
        raise Expired("Journey is no longer active", reason=_STATUS_REASONS.get(status, "journey_expired"))

    @staticmethod
    def set_status(db: Session, journey: Journey, status: JourneyStatus) -> bool:
        """Move an in-progress journey to a terminal status."""
        values: Dict[str, Any] = {"status": status.value, "updated_at": utcnow()}
        if status == JourneyStatus.COMPLETED:
            values["completed_at"] = utcnow()
        rows = (
            db.query(Journey)
            .filter(Journey.id == journey.id, Journey.status == JourneyStatus.IN_PROGRESS.value)
            .update(values, synchronize_session=False)
        )
        db.commit()
        db.refresh(journey)
        if rows:
            logger.info("Journey %s -> %s", journey.id, status.value)
        return rows == 1

    @staticmethod
    def expire_stale(db: Session) -> int:
        """Sweep in-progress journeys past expires_at to expired."""
        now = utcnow()
        rows = (
            db.query(Journey)
            .filter(Journey.status == JourneyStatus.IN_PROGRESS.value, Journey.expires_at <= now)
            .update({"status": JourneyStatus.EXPIRED.value, "updated_at": now}, synchronize_session=False)
        )
        db.commit()
        if rows:
            logger.info("Expired %d stale journeys", rows)
        return rows

    # ─── Gating ───

    @staticmethod
    def otp_valid(journey: Journey, now: Optional[datetime] = None) -> bool:
        if journey.otp_verified_at is None:
            return False
        now = now or utcnow()
        window = timedelta(minutes=get_settings().OTP_VALIDITY_MINUTES)
        return now - journey.otp_verified_at < window

    @staticmethod
    def require_step(journey: Journey, step: JourneyStep) -> None:
        """Reject actions for any step other than the current one; past OTP, require a live OTP proof."""
        if journey.current_step != step.value:
            raise StepMismatch(journey.current_step, f"Journey is at step '{journey.current_step}', not '{step.value}'")
        if step.position > JourneyStep.OTP.position and not JourneyService.otp_valid(journey):
            raise Expired(
                "Phone verification expired, please confirm the code again",
                reason="otp_expired",
                details={"current_step": journey.current_step, "redirect_step": JourneyStep.OTP.value},
            )

    @staticmethod
    def precondition_met(journey: Journey, step: JourneyStep) -> bool:
        """Whether the journey may leave `step`."""
        if step == JourneyStep.OTP:
            return JourneyService.otp_valid(journey)
        if step == JourneyStep.DEVICE:
            return bool(journey.device_eligible)
        if step == JourneyStep.INCOME:
            return journey.income_status == "verified"
        if step == JourneyStep.OFFER:
            return journey.offer_accepted_at is not None
        if step == JourneyStep.GUARD_REGISTRATION:
            return bool(journey.guard_imei)
        if step == JourneyStep.CONTRACT:
            return journey.contract_signed_at is not None
        return False

    # ─── Transitions ───

    @staticmethod
    def advance(db: Session, journey: Journey, from_step: JourneyStep, values: Optional[Dict[str, Any]] = None) -> bool:
        """CAS-advance from `from_step` to its successor, applying `values` in the same UPDATE.

        Returns True if this call moved the journey; False if it was no longer at `from_step`.
        """
        target = from_step.next
        if target is None:
            raise ValidationFailed("Journey has no further steps", reason="final_step")

        now = utcnow()
        update: Dict[str, Any] = dict(values or {})
        update.update({"current_step": target.value, "updated_at": now})
        if target == JourneyStep.SUCCESS:
            update.update({"status": JourneyStatus.COMPLETED.value, "completed_at": now})

        rows = (
            db.query(Journey)
            .filter(
                Journey.id == journey.id,
                Journey.current_step == from_step.value,
                Journey.status == JourneyStatus.IN_PROGRESS.value,
            )
            .update(update, synchronize_session=False)
        )
        db.commit()
        db.refresh(journey)

        if rows == 1:
            logger.info("Journey %s: %s -> %s", journey.id, from_step.value, target.value)
            EventService.log(db, journey.id, "step_completed", from_step.value)
        return rows == 1

    @staticmethod
    def advance_to(db: Session, journey: Journey, target: JourneyStep) -> Tuple[Journey, bool]:
        """Generic guarded advance. Returns (journey, already_processed)."""
        current = journey.step
        if target == current:
            return journey, True
        if target != current.next:
            raise StepMismatch(journey.current_step, f"Cannot move from '{current.value}' to '{target.value}'")

        JourneyService.require_step(journey, current)
        if not JourneyService.precondition_met(journey, current):
            raise ValidationFailed(
                f"Step '{current.value}' is not complete",
                reason="precondition_failed",
                details={"current_step": current.value},
            )

        if not JourneyService.advance(db, journey, current):
            if journey.current_step == target.value:
                return journey, True
            raise StepMismatch(journey.current_step)
        return journey, False

    @staticmethod
    def heartbeat(db: Session, token: Optional[str]) -> bool:
        """Stamp last_heartbeat_at on an in-progress journey. Never raises for unknown tokens."""
        if not token:
            return False
        rows = (
            db.query(Journey)
            .filter(
                Journey.token == token,
                Journey.status == JourneyStatus.IN_PROGRESS.value,
                Journey.expires_at > utcnow(),
            )
            .update({"last_heartbeat_at": utcnow()}, synchronize_session=False)
        )
        db.commit()
        return rows == 1

    # ─── Resume ───

    @staticmethod
    def view(journey: Journey) -> Dict[str, Any]:
        step = journey.step
        otp_valid = JourneyService.otp_valid(journey)
        device_info = None
        if journey.device_model:
            device_info = {
                "model": journey.device_model,
                "vendor": journey.device_vendor,
                "commercial_name": journey.device_commercial_name,
            }
        return {
            "id": journey.id,
            "step": step,
            "step_code": step.code,
            "progress": progress_percent(step),
            "otp_valid": otp_valid,
            "otp_verified_at": journey.otp_verified_at,
            "needs_otp": not otp_valid and step != JourneyStep.SUCCESS,
            "lead_first_name": journey.lead.first_name if journey.lead else None,
            "device_info": device_info,
            "approved_amount": journey.approved_amount,
            "income_status": journey.income_status,
            "guard_imei": journey.guard_imei,
            "contract_id": journey.contract_id,
            "device_attempts": journey.device_attempts or 0,
            "device_approved": bool(journey.device_eligible),
            "expires_at": journey.expires_at,
        }

    @staticmethod
    def validate(db: Session, token: Optional[str], snapshot: Optional[JourneySnapshot] = None) -> Dict[str, Any]:
        """Resume check: classify the token and rebuild the server view."""
        if not token:
            return {"valid": False, "reason": "no_token"}

        journey = JourneyService.get_by_token(db, token)
        if journey is None:
            return {"valid": False, "reason": "not_found"}

        if journey.status == JourneyStatus.IN_PROGRESS.value and journey.expires_at <= utcnow():
            JourneyService.set_status(db, journey, JourneyStatus.EXPIRED)
            EventService.log(db, journey.id, "session_expired", journey.current_step)

        if journey.status != JourneyStatus.IN_PROGRESS.value:
            return {
                "valid": False,
                "reason": _STATUS_REASONS.get(journey.status, "journey_expired"),
                "status": journey.status,
            }

        result: Dict[str, Any] = {
            "valid": True,
            "status": journey.status,
            "journey": JourneyService.view(journey),
        }
        if snapshot is not None:
            reconciliation = reconcile(snapshot, journey)
            result["reconciliation"] = reconciliation
            if reconciliation.outcome == "server_wins":
                logger.info("Journey %s: client snapshot stale (%s)", journey.id, ", ".join(reconciliation.conflicts))
        return result
