"""
Validators — Checksum and rule-based validation for Brazilian identifiers.
"""
import re
from datetime import date


VALID_DDDS = {
    11, 12, 13, 14, 15, 16, 17, 18, 19,
    21, 22, 24, 27, 28,
    31, 32, 33, 34, 35, 37, 38,
    41, 42, 43, 44, 45, 46, 47, 48, 49,
    51, 53, 54, 55,
    61, 62, 63, 64, 65, 66, 67, 68, 69,
    71, 73, 74, 75, 77, 79,
    81, 82, 83, 84, 85, 86, 87, 88, 89,
    91, 92, 93, 94, 95, 96, 97, 98, 99,
}


def only_digits(value: str | None) -> str:
    return re.sub(r"\D", "", value or "")


# ──────────────── CPF ────────────────

def _cpf_check_digit(digits: str) -> int:
    weight = len(digits) + 1
    total = sum(int(d) * (weight - i) for i, d in enumerate(digits))
    remainder = (total * 10) % 11
    return 0 if remainder == 10 else remainder


def validate_cpf(cpf: str | None) -> bool:
    """Validate a CPF (formatted or not) with both check digits."""
    clean = only_digits(cpf)
    if len(clean) != 11:
        return False
    if re.match(r"^(\d)\1{10}$", clean):
        return False
    if _cpf_check_digit(clean[:9]) != int(clean[9]):
        return False
    return _cpf_check_digit(clean[:10]) == int(clean[10])


def parse_cpf(value: str) -> str:
    """Strip formatting; raises ValueError unless the result is a valid CPF."""
    clean = only_digits(value)
    if not validate_cpf(clean):
        raise ValueError("Invalid CPF")
    return clean


# ──────────────── Phone ────────────────

def validate_phone(phone: str | None) -> bool:
    """Brazilian national number: DDD + 8 (landline) or 9 (mobile) digits."""
    clean = only_digits(phone)
    if len(clean) not in (10, 11):
        return False
    if int(clean[:2]) not in VALID_DDDS:
        return False
    if len(clean) == 11:
        return clean[2] == "9"
    return clean[2] in "2345"


def mask_phone(phone: str | None) -> str:
    clean = only_digits(phone)
    if len(clean) < 4:
        return "****"
    return f"*****{clean[-4:]}"


def normalize_phone_for_storage(phone: str) -> str:
    """National number → 55 + DDD + number."""
    clean = only_digits(phone)
    return clean if clean.startswith("55") and len(clean) > 11 else f"55{clean}"


def to_international(phone: str) -> str:
    """Any stored or national form → +55DDDNUMBER."""
    clean = only_digits(phone)
    if not clean.startswith("55") or len(clean) <= 11:
        clean = f"55{clean}"
    return f"+{clean}"


# ──────────────── Dates ────────────────

def parse_birth_date(value: str | None) -> date | None:
    """Parse DD/MM/YYYY; None when it is not a real calendar date."""
    clean = only_digits(value)
    if len(clean) != 8:
        return None
    day, month, year = int(clean[:2]), int(clean[2:4]), int(clean[4:])
    if year < 1900 or year > date.today().year:
        return None
    try:
        return date(year, month, day)
    except ValueError:
        return None


def age_on(birth: date, today: date | None = None) -> int:
    today = today or date.today()
    return today.year - birth.year - ((today.month, today.day) < (birth.month, birth.day))


# ──────────────── Misc ────────────────

def validate_cep(cep: str | None) -> bool:
    return len(only_digits(cep)) == 8


def format_cep(cep: str) -> str:
    clean = only_digits(cep)[:8]
    return f"{clean[:5]}-{clean[5:]}" if len(clean) > 5 else clean


def validate_imei(imei: str | None) -> bool:
    """15 digits with a valid Luhn check digit."""
    clean = re.sub(r"[\s-]", "", imei or "")
    if not re.match(r"^\d{15}$", clean):
        return False
    total = 0
    for i, ch in enumerate(clean[:14]):
        digit = int(ch)
        if i % 2 == 1:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return (10 - total % 10) % 10 == int(clean[14])


def format_currency(value: float) -> str:
    """BRL formatting: R$ 1.500,00"""
    formatted = f"{value:,.2f}".replace(",", "_").replace(".", ",").replace("_", ".")
    return f"R$ {formatted}"


def sanitize_name(name: str | None) -> str:
    """Collapse whitespace; keeps accented letters."""
    if not name:
        return ""
    return re.sub(r"\s+", " ", name.strip())
