"""
Lead Service — Identity lookup (CPF) and registration.

Lookups go through a short-TTL in-process cache keyed by CPF. Only hits are
cached, so a freshly registered CPF is visible on the next lookup.
"""
from typing import NamedTuple, Optional, Tuple

from cachetools import TTLCache
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import get_settings
from app.models.lead import Lead
from app.schemas.schemas import LeadRegisterRequest
from app.utils.logger import get_logger
from app.utils.validators import normalize_phone_for_storage

logger = get_logger("lead_service")
settings = get_settings()


class LeadRef(NamedTuple):
    id: int
    blacklisted: bool


_lead_cache: TTLCache = TTLCache(maxsize=settings.LEAD_CACHE_MAX_ENTRIES, ttl=settings.LEAD_CACHE_TTL_SECONDS)


def clear_lead_cache() -> None:
    _lead_cache.clear()


class LeadService:

    @staticmethod
    def lookup(db: Session, cpf: str) -> Optional[LeadRef]:
        """Find a lead by its 11-digit CPF."""
        cached = _lead_cache.get(cpf)
        if cached is not None:
            return cached

        lead = db.query(Lead).filter(Lead.cpf == cpf).first()
        if lead is None:
            return None

        ref = LeadRef(id=lead.id, blacklisted=bool(lead.blacklisted))
        _lead_cache[cpf] = ref
        return ref

    @staticmethod
    def register(db: Session, payload: LeadRegisterRequest) -> Tuple[LeadRef, bool]:
        """Create a lead. Returns (ref, created); an existing CPF is not an error."""
        existing = LeadService.lookup(db, payload.cpf)
        if existing:
            return existing, False

        lead = Lead(
            cpf=payload.cpf,
            full_name=payload.full_name,
            phone=normalize_phone_for_storage(payload.phone),
            phone2=normalize_phone_for_storage(payload.phone2) if payload.phone2 else None,
            email=payload.email,
            birth_date=payload.birth_date,
            cep=payload.cep,
            street=payload.street.strip(),
            number=payload.number.strip(),
            complement=(payload.complement or "").strip() or None,
            neighborhood=payload.neighborhood.strip(),
            city=payload.city.strip(),
            uf=payload.uf,
        )
        db.add(lead)
        try:
            db.commit()
        except IntegrityError:
            # Concurrent registration of the same CPF
            db.rollback()
            logger.info("Lead %s registered concurrently, using existing row", payload.cpf[-4:])
            existing = LeadService.lookup(db, payload.cpf)
            if existing is None:
                raise
            return existing, False

        db.refresh(lead)
        logger.info("Lead registered: id=%s", lead.id)
        return LeadRef(id=lead.id, blacklisted=False), True

    @staticmethod
    def get(db: Session, lead_id: int) -> Optional[Lead]:
        return db.query(Lead).filter(Lead.id == lead_id).first()
