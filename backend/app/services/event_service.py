"""
Event Service — Append-only analytics trail for journeys.
Events are never updated or deleted; nothing in the funnel depends on them.
"""
from typing import Any, Dict, Optional, Union

from sqlalchemy.orm import Session

from app.models.event import JourneyEvent
from app.schemas.schemas import EventMetadata, categorize_event
from app.utils.clock import utcnow


class EventService:
    """Records categorised journey events with schema-checked metadata."""

    @staticmethod
    def log(
        db: Session,
        journey_id: str,
        event_type: str,
        step_name: Optional[str] = None,
        metadata: Union[EventMetadata, Dict[str, Any], None] = None,
    ) -> JourneyEvent:
        """Append an event to a journey's trail.

        Args:
            db: Database session.
            journey_id: Journey this event belongs to.
            event_type: Catalogue name (e.g. otp_sent) or any custom name.
            step_name: Step the user was on; "unknown" when omitted.
            metadata: Known fields plus ad hoc keys (moved under `extra`).

        Returns:
            The created JourneyEvent row.
        """
        if not isinstance(metadata, EventMetadata):
            metadata = EventMetadata.model_validate(metadata or {})

        stored = metadata.model_dump(mode="json", exclude_none=True)
        if not stored.get("extra"):
            stored.pop("extra", None)

        entry = JourneyEvent(
            journey_id=journey_id,
            event_type=event_type,
            category=categorize_event(event_type).value,
            step_name=step_name or "unknown",
            event_metadata=stored,
            timestamp=utcnow(),
        )

        db.add(entry)
        db.commit()
        db.refresh(entry)

        return entry

    @staticmethod
    def get_trail(db: Session, journey_id: str, limit: Optional[int] = None) -> list[JourneyEvent]:
        """Events of a journey, oldest first."""
        query = (
            db.query(JourneyEvent)
            .filter(JourneyEvent.journey_id == journey_id)
            .order_by(JourneyEvent.timestamp.asc(), JourneyEvent.id.asc())
        )
        if limit:
            query = query.limit(limit)
        return query.all()
