"""
Device Service — Allowlist-based eligibility and allowlist administration.

Approval is sticky: once a journey's device is approved, later calls return
the recorded result. Rejection is not: every call re-evaluates the submitted
model so the applicant can retry with another phone.
"""
import re
from typing import Any, Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.config import get_settings
from app.errors import NotFound, StepMismatch, ValidationFailed
from app.models.device import EligibleDevice
from app.models.journey import Journey, JourneyStatus, JourneyStep
from app.schemas.schemas import EligibleDeviceIn, EligibleDeviceUpdate
from app.services.event_service import EventService
from app.services.journey_service import JourneyService
from app.utils.clock import utcnow
from app.utils.logger import get_logger

logger = get_logger("device_service")

# Default allowlist loaded by app.scripts.seed_devices
DEFAULT_ALLOWLIST = [
    {"brand": "Samsung", "model_pattern": r"SM-A5\d{2}[A-Z]?", "description": "Galaxy A5x"},
    {"brand": "Samsung", "model_pattern": r"SM-A3\d{2}[A-Z]?", "description": "Galaxy A3x"},
    {"brand": "Samsung", "model_pattern": r"SM-A2\d{2}[A-Z]?", "description": "Galaxy A2x"},
    {"brand": "Samsung", "model_pattern": r"SM-S9\d{2}[A-Z]?", "description": "Galaxy S2x", "approved_amount": 2500},
    {"brand": "Samsung", "model_pattern": r"SM-M\d{3}[A-Z]?", "description": "Galaxy M"},
    {"brand": "Motorola", "model_pattern": r"moto\s*g\s*\d{2}", "description": "Moto G"},
    {"brand": "Motorola", "model_pattern": r"motorola\s+edge", "description": "Motorola Edge", "approved_amount": 2000},
    {"brand": "Xiaomi", "model_pattern": r"Redmi\s+Note\s+1[2-4]", "description": "Redmi Note 12-14"},
    {"brand": "Xiaomi", "model_pattern": r"POCO\s+X[5-7]", "description": "POCO X"},
    {"brand": "Realme", "model_pattern": r"RMX3\d{3}", "description": "Realme"},
    {"brand": "Apple", "model_pattern": r"^iPhone", "description": "iPhone", "approved_amount": 2500},
]


def compile_pattern(pattern: str) -> re.Pattern:
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error as e:
        raise ValidationFailed(
            f"Invalid model pattern: {e}",
            reason="invalid_pattern",
            details={"model_pattern": pattern},
        )


class DeviceService:

    # ─── Eligibility ───

    @staticmethod
    def check_eligibility(db: Session, model: str) -> Dict[str, Any]:
        """First active allowlist row whose pattern matches the model wins."""
        rows = (
            db.query(EligibleDevice)
            .filter(EligibleDevice.active.is_(True))
            .order_by(EligibleDevice.id.asc())
            .all()
        )
        for row in rows:
            try:
                matched = re.search(row.model_pattern, model, re.IGNORECASE)
            except re.error:
                logger.warning("Skipping malformed allowlist pattern #%s: %r", row.id, row.model_pattern)
                continue
            if matched:
                return {
                    "eligible": True,
                    "approved_amount": row.approved_amount or get_settings().DEFAULT_APPROVED_AMOUNT,
                    "commercial_name": row.description,
                }
        return {"eligible": False, "approved_amount": None, "commercial_name": None}

    @staticmethod
    def validate(
        db: Session,
        journey: Journey,
        model: str,
        vendor: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Dict[str, Any]:
        model = model.strip()
        if journey.device_eligible:
            return DeviceService._recorded(journey, "Device already approved")

        JourneyService.require_step(journey, JourneyStep.DEVICE)
        result = DeviceService.check_eligibility(db, model)
        now = utcnow()

        device_values: Dict[str, Any] = {
            "device_model": model[:128],
            "device_vendor": (vendor or "")[:64] or None,
            "device_checked_at": now,
            "updated_at": now,
        }
        if user_agent:
            device_values["user_agent"] = user_agent[:256]

        if not result["eligible"]:
            # Soft rejection: count it, keep the step
            (
                db.query(Journey)
                .filter(
                    Journey.id == journey.id,
                    Journey.status == JourneyStatus.IN_PROGRESS.value,
                    or_(Journey.device_eligible.is_(None), Journey.device_eligible.is_(False)),
                )
                .update(
                    {**device_values, "device_eligible": False, "device_attempts": Journey.device_attempts + 1},
                    synchronize_session=False,
                )
            )
            db.commit()
            db.refresh(journey)
            if journey.device_eligible:
                return DeviceService._recorded(journey, "Device approved by a concurrent request")
            JourneyService.require_active(journey)

            EventService.log(db, journey.id, "device_ineligible", JourneyStep.DEVICE.value, metadata={
                "model": model, "vendor": vendor, "eligible": False, "attempts": journey.device_attempts,
            })
            return {
                "eligible": False,
                "approved_amount": None,
                "commercial_name": None,
                "model": model,
                "attempts": journey.device_attempts,
                "already_checked": False,
                "current_step": journey.step,
                "message": "Device not eligible, try another phone",
            }

        won = JourneyService.advance(db, journey, JourneyStep.DEVICE, {
            **device_values,
            "device_eligible": True,
            "approved_amount": result["approved_amount"],
            "device_commercial_name": result["commercial_name"],
            "device_attempts": 0,
        })
        if not won:
            if journey.device_eligible:
                return DeviceService._recorded(journey, "Device approved by a concurrent request")
            JourneyService.require_active(journey)
            JourneyService.require_step(journey, JourneyStep.DEVICE)
            raise StepMismatch(journey.current_step)

        EventService.log(db, journey.id, "device_eligible", JourneyStep.DEVICE.value, metadata={
            "model": model, "vendor": vendor, "eligible": True, "approved_amount": result["approved_amount"],
        })
        return {
            "eligible": True,
            "approved_amount": journey.approved_amount,
            "commercial_name": journey.device_commercial_name,
            "model": journey.device_model,
            "attempts": journey.device_attempts,
            "already_checked": False,
            "current_step": journey.step,
            "message": "Device approved",
        }

    @staticmethod
    def _recorded(journey: Journey, message: str) -> Dict[str, Any]:
        return {
            "eligible": True,
            "approved_amount": journey.approved_amount,
            "commercial_name": journey.device_commercial_name,
            "model": journey.device_model,
            "attempts": journey.device_attempts,
            "already_checked": True,
            "current_step": journey.step,
            "message": message,
        }

    # ─── Allowlist administration ───

    @staticmethod
    def list_devices(db: Session, active: Optional[bool] = None) -> List[EligibleDevice]:
        query = db.query(EligibleDevice)
        if active is not None:
            query = query.filter(EligibleDevice.active.is_(active))
        return query.order_by(EligibleDevice.id.asc()).all()

    @staticmethod
    def get_device(db: Session, device_id: int) -> EligibleDevice:
        device = db.query(EligibleDevice).filter(EligibleDevice.id == device_id).first()
        if device is None:
            raise NotFound("Allowlist entry not found", reason="device_not_found")
        return device

    @staticmethod
    def create_device(db: Session, payload: EligibleDeviceIn) -> EligibleDevice:
        compile_pattern(payload.model_pattern)
        device = EligibleDevice(**payload.model_dump())
        db.add(device)
        db.commit()
        db.refresh(device)
        logger.info("Allowlist entry created: #%s %s", device.id, device.model_pattern)
        return device

    @staticmethod
    def update_device(db: Session, device_id: int, payload: EligibleDeviceUpdate) -> EligibleDevice:
        device = DeviceService.get_device(db, device_id)
        changes = payload.model_dump(exclude_unset=True)
        if "model_pattern" in changes:
            compile_pattern(changes["model_pattern"])
        for field, value in changes.items():
            setattr(device, field, value)
        device.updated_at = utcnow()
        db.commit()
        db.refresh(device)
        return device

    @staticmethod
    def toggle_device(db: Session, device_id: int) -> EligibleDevice:
        device = DeviceService.get_device(db, device_id)
        device.active = not device.active
        device.updated_at = utcnow()
        db.commit()
        db.refresh(device)
        return device

    @staticmethod
    def delete_device(db: Session, device_id: int) -> None:
        device = DeviceService.get_device(db, device_id)
        db.delete(device)
        db.commit()
        logger.info("Allowlist entry deleted: #%s", device_id)

    @staticmethod
    def seed_defaults(db: Session, entries: Optional[List[Dict[str, Any]]] = None) -> int:
        """Insert default allowlist rows whose pattern is not present yet."""
        existing = {p for (p,) in db.query(EligibleDevice.model_pattern).all()}
        added = 0
        for entry in entries or DEFAULT_ALLOWLIST:
            if entry["model_pattern"] in existing:
                continue
            compile_pattern(entry["model_pattern"])
            db.add(EligibleDevice(**entry))
            added += 1
        db.commit()
        return added
