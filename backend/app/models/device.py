"""
Eligible Device Model — Regex allowlist used by the device eligibility check.
"""
from sqlalchemy import Column, String, Integer, DateTime, Boolean

from app.database import Base
from app.utils.clock import utcnow


class EligibleDevice(Base):
    __tablename__ = "eligible_devices"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    brand = Column(String(64), nullable=False)
    model_pattern = Column(String(256), nullable=False)   # matched case-insensitively
    description = Column(String(128))                     # commercial name, e.g. "Galaxy A54"
    approved_amount = Column(Integer, nullable=True)      # falls back to DEFAULT_APPROVED_AMOUNT
    active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
