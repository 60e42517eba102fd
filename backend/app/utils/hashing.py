"""
Cryptographic Helpers — OTP code hashing and journey token generation.
"""
import hashlib
import hmac
import secrets

from app.config import get_settings


def hash_otp_code(code: str) -> str:
    """HMAC-SHA256 of an OTP code, keyed with SECRET_KEY (hex digest)."""
    key = get_settings().SECRET_KEY.encode("utf-8")
    return hmac.new(key, code.strip().encode("utf-8"), hashlib.sha256).hexdigest()


def otp_code_matches(code: str, code_hash: str) -> bool:
    """Constant-time comparison of a submitted code against a stored hash."""
    return hmac.compare_digest(hash_otp_code(code), code_hash)


def generate_otp_code(length: int | None = None) -> str:
    """Random numeric code, zero-padded to the configured length."""
    length = length or get_settings().OTP_CODE_LENGTH
    return f"{secrets.randbelow(10 ** length):0{length}d}"


def generate_journey_token() -> str:
    """Unguessable bearer token for resuming a journey."""
    return secrets.token_urlsafe(get_settings().TOKEN_BYTES)
