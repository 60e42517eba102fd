"""
Journey Event Model — Append-only analytics trail.
Rows are inserted once and never updated.
"""
from sqlalchemy import Column, String, Integer, DateTime, JSON, ForeignKey

from app.database import Base
from app.utils.clock import utcnow


class JourneyEvent(Base):
    __tablename__ = "journey_events"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    journey_id = Column(String(36), ForeignKey("journeys.id"), nullable=False, index=True)

    event_type = Column(String(50), nullable=False)
    category = Column(String(16), nullable=False, default="custom")
    # Categories: session, navigation, interaction, identity, otp, device, income,
    #             offer, guard, contract, success, lifecycle, technical, custom
    step_name = Column(String(24), nullable=False, default="unknown")

    event_metadata = Column(JSON, default=dict)
    timestamp = Column(DateTime, default=utcnow, index=True)
