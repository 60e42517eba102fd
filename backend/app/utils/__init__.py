from app.utils.clock import utcnow
from app.utils.hashing import hash_otp_code, otp_code_matches, generate_otp_code, generate_journey_token
from app.utils.validators import validate_cpf, validate_phone, validate_imei

__all__ = [
    "utcnow",
    "hash_otp_code", "otp_code_matches", "generate_otp_code", "generate_journey_token",
    "validate_cpf", "validate_phone", "validate_imei",
]
