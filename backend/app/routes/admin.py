"""
Admin Routes — Funnel dashboard, journey inspection and device allowlist management.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.database import get_db
from app.errors import NotFound
from app.models.journey import Journey, JourneyStatus, STEP_ORDER
from app.routes.deps import require_admin
from app.schemas.schemas import (
    AdminDashboardResponse, EligibleDeviceIn, EligibleDeviceOut, EligibleDeviceUpdate,
    ExpireSweepResponse, JourneyEventEntry,
)
from app.services.device_service import DeviceService
from app.services.event_service import EventService
from app.services.journey_service import JourneyService, progress_percent

router = APIRouter(prefix="/api/admin", tags=["Admin"], dependencies=[Depends(require_admin)])


@router.get("/dashboard", response_model=AdminDashboardResponse)
def get_dashboard(db: Session = Depends(get_db)):
    """Aggregated funnel metrics."""

    total = db.query(func.count(Journey.id)).scalar() or 0
    completed = db.query(func.count(Journey.id)).filter(
        Journey.status == JourneyStatus.COMPLETED.value
    ).scalar() or 0

    completion_rate = (completed / total * 100) if total > 0 else 0.0

    # Funnel by current step
    steps = db.query(
        Journey.current_step, func.count(Journey.id)
    ).group_by(Journey.current_step).all()
    step_counts = {s: c for s, c in steps}
    funnel = {step.value: step_counts.get(step.value, 0) for step in STEP_ORDER}

    # Status distribution
    statuses = db.query(
        Journey.status, func.count(Journey.id)
    ).group_by(Journey.status).all()
    status_dist = {s: c for s, c in statuses}

    # Device approval rate among checked journeys
    checked = db.query(func.count(Journey.id)).filter(
        Journey.device_checked_at.isnot(None)
    ).scalar() or 0
    approved = db.query(func.count(Journey.id)).filter(
        Journey.device_eligible.is_(True)
    ).scalar() or 0
    approval_rate = (approved / checked * 100) if checked > 0 else 0.0

    # Average completion time (seconds)
    avg_time = 0.0
    completed_journeys = db.query(Journey).filter(
        Journey.status == JourneyStatus.COMPLETED.value,
        Journey.completed_at.isnot(None),
    ).all()
    if completed_journeys:
        total_seconds = sum(
            (j.completed_at - j.created_at).total_seconds()
            for j in completed_journeys
            if j.completed_at and j.created_at
        )
        avg_time = total_seconds / len(completed_journeys)

    return AdminDashboardResponse(
        total_journeys=total,
        completion_rate=round(completion_rate, 1),
        funnel=funnel,
        status_distribution=status_dist,
        device_approval_rate=round(approval_rate, 1),
        avg_completion_seconds=round(avg_time, 1),
    )


@router.get("/journeys")
def list_journeys(
    status: Optional[str] = None,
    step: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    """List journeys with optional status / step filters."""
    query = db.query(Journey).order_by(Journey.created_at.desc())
    if status:
        query = query.filter(Journey.status == status)
    if step:
        query = query.filter(Journey.current_step == step)

    total = query.count()
    journeys = query.offset(offset).limit(limit).all()

    return {
        "total": total,
        "journeys": [
            {
                "id": j.id,
                "status": j.status,
                "current_step": j.current_step,
                "progress": progress_percent(j.step),
                "device_model": j.device_model,
                "device_eligible": j.device_eligible,
                "device_attempts": j.device_attempts,
                "income_status": j.income_status,
                "contract_id": j.contract_id,
                "created_at": j.created_at.isoformat() if j.created_at else None,
                "completed_at": j.completed_at.isoformat() if j.completed_at else None,
            }
            for j in journeys
        ],
    }


@router.get("/journeys/{journey_id}/events", response_model=list[JourneyEventEntry])
def get_journey_events(journey_id: str, db: Session = Depends(get_db)):
    """Full event trail of a journey."""
    if not db.query(Journey.id).filter(Journey.id == journey_id).first():
        raise NotFound("Journey not found", reason="not_found")
    return EventService.get_trail(db, journey_id)


@router.post("/journeys/expire", response_model=ExpireSweepResponse)
def expire_journeys(db: Session = Depends(get_db)):
    """Sweep in-progress journeys past their expiry to expired."""
    return ExpireSweepResponse(expired=JourneyService.expire_stale(db))


# ─── Device allowlist ───

@router.get("/devices", response_model=list[EligibleDeviceOut])
def list_devices(active: Optional[bool] = None, db: Session = Depends(get_db)):
    return DeviceService.list_devices(db, active)


@router.post("/devices", response_model=EligibleDeviceOut, status_code=201)
def create_device(payload: EligibleDeviceIn, db: Session = Depends(get_db)):
    return DeviceService.create_device(db, payload)


@router.patch("/devices/{device_id}", response_model=EligibleDeviceOut)
def update_device(device_id: int, payload: EligibleDeviceUpdate, db: Session = Depends(get_db)):
    return DeviceService.update_device(db, device_id, payload)


@router.post("/devices/{device_id}/toggle", response_model=EligibleDeviceOut)
def toggle_device(device_id: int, db: Session = Depends(get_db)):
    return DeviceService.toggle_device(db, device_id)


@router.delete("/devices/{device_id}", status_code=204)
def delete_device(device_id: int, db: Session = Depends(get_db)):
    DeviceService.delete_device(db, device_id)
