"""
Address Service — CEP lookup through ViaCEP, used only for form autofill.
"""
from typing import Dict, Optional

import httpx

from app.config import get_settings
from app.utils.logger import get_logger
from app.utils.validators import only_digits

logger = get_logger("address_service")


class AddressService:

    @staticmethod
    def lookup(cep: str) -> Optional[Dict[str, str]]:
        """Address fields for a CEP, or None when unknown or the lookup failed."""
        clean = only_digits(cep)
        if len(clean) != 8:
            return None

        settings = get_settings()
        url = f"{settings.VIACEP_BASE_URL.rstrip('/')}/{clean}/json/"
        try:
            resp = httpx.get(url, headers={"Accept": "application/json"}, timeout=settings.HTTP_TIMEOUT_SECONDS)
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("ViaCEP lookup failed for %s: %s", clean, e)
            return None

        if data.get("erro"):
            return None

        return {
            "street": data.get("logradouro") or "",
            "neighborhood": data.get("bairro") or "",
            "city": data.get("localidade") or "",
            "uf": data.get("uf") or "",
        }
