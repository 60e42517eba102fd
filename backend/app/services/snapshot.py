"""
Snapshot Reconciliation — Compare a client-cached journey snapshot with the server record.
The server record is authoritative; the result names the fields the client had wrong.
"""
from datetime import datetime, timezone
from typing import Any

from app.models.journey import Journey
from app.schemas.schemas import JourneySnapshot, Reconciliation

SNAPSHOT_VERSION = 1


def server_snapshot(journey: Journey) -> JourneySnapshot:
    return JourneySnapshot(
        version=SNAPSHOT_VERSION,
        journey_id=journey.id,
        current_step=journey.step,
        otp_verified_at=journey.otp_verified_at,
        device_model=journey.device_model,
        approved_amount=journey.approved_amount,
        guard_imei=journey.guard_imei,
        contract_id=journey.contract_id,
    )


def _comparable(value: Any) -> Any:
    # Client timestamps may arrive timezone-aware; stored ones are naive UTC
    if isinstance(value, datetime) and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def reconcile(client: JourneySnapshot, journey: Journey) -> Reconciliation:
    server = server_snapshot(journey)

    conflicts = []
    if client.version != SNAPSHOT_VERSION:
        conflicts.append("version")
    for field in JourneySnapshot.model_fields:
        if field == "version" or field not in client.model_fields_set:
            continue
        if _comparable(getattr(client, field)) != _comparable(getattr(server, field)):
            conflicts.append(field)

    return Reconciliation(
        outcome="server_wins" if conflicts else "in_sync",
        conflicts=conflicts,
        snapshot=server,
    )
